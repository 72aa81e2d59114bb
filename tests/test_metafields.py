from __future__ import annotations

from landingkit.metafields import (
    LANDING_FIELDS,
    build_metafield_inputs,
    group_by_namespace,
    merge_with_legacy_fields,
)


def test_build_metafield_inputs_skips_blank_values_and_types_keys():
    inputs = build_metafield_inputs(
        "gid://shopify/Product/1",
        {
            "hero_title": "Breathe easy",
            "section1_text": "Line one\nLine two",
            "review1_stars": 5,
            "about_title": "",
            "scarcity_text": None,
            "custom_list": ["a", "b"],
        },
    )

    assert inputs == [
        {
            "ownerId": "gid://shopify/Product/1",
            "namespace": "landing",
            "key": "hero_title",
            "type": "single_line_text_field",
            "value": "Breathe easy",
        },
        {
            "ownerId": "gid://shopify/Product/1",
            "namespace": "landing",
            "key": "section1_text",
            "type": "multi_line_text_field",
            "value": "Line one\nLine two",
        },
        {
            "ownerId": "gid://shopify/Product/1",
            "namespace": "landing",
            "key": "review1_stars",
            "type": "number_integer",
            "value": "5",
        },
        {
            "ownerId": "gid://shopify/Product/1",
            "namespace": "landing",
            "key": "custom_list",
            "type": "single_line_text_field",
            "value": '["a", "b"]',
        },
    ]


def test_merge_with_legacy_fields_keeps_shop_definitions_first():
    shop_definitions = [{"namespace": "landing", "key": "hero_title", "name": "Shop Hero", "type": "single_line_text_field"}]

    merged = merge_with_legacy_fields(shop_definitions)

    assert merged[0]["name"] == "Shop Hero"
    assert len(merged) == len(LANDING_FIELDS)
    assert sum(1 for item in merged if item["key"] == "hero_title") == 1


def test_group_by_namespace():
    grouped = group_by_namespace(
        [
            {"namespace": "custom", "key": "fabric"},
            {"namespace": "landing", "key": "hero_title"},
            {"namespace": "custom", "key": "care"},
        ]
    )

    assert {name: [item["key"] for item in items] for name, items in grouped.items()} == {
        "custom": ["fabric", "care"],
        "landing": ["hero_title"],
    }
