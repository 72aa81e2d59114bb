from __future__ import annotations

from dataclasses import replace
from math import prod

from landingkit.variants import (
    VariantCombination,
    VariantOption,
    VariantValidationError,
    build_variant_input,
    combination_key,
    derive_options_from_remote_variants,
    format_combination_label,
    generate_combinations,
    generate_combinations_with_defaults,
    merge_combinations,
    options_to_selected,
    parse_selected_options,
    validate_options,
)


def _size_color() -> list[VariantOption]:
    return [
        VariantOption(name="Size", values=["S", "M", "L"]),
        VariantOption(name="Color", values=["Red", "Blue"]),
    ]


def test_generate_combinations_size_is_product_of_value_counts():
    options = _size_color() + [VariantOption(name="Material", values=["Cotton", "Linen"])]

    combinations = generate_combinations(options)

    assert len(combinations) == prod(len(option.values) for option in options) == 12


def test_generate_combinations_orders_by_declared_option_then_value():
    combinations = generate_combinations(_size_color())

    assert [format_combination_label(item) for item in combinations] == [
        "S / Red",
        "S / Blue",
        "M / Red",
        "M / Blue",
        "L / Red",
        "L / Blue",
    ]


def test_generate_combinations_assigns_every_non_empty_option_once():
    options = _size_color() + [VariantOption(name="Fit", values=[])]

    combinations = generate_combinations(options)

    assert combinations
    for assignment in combinations:
        assert set(assignment) == {"Size", "Color"}


def test_generate_combinations_has_no_duplicate_labels():
    labels = [format_combination_label(item) for item in generate_combinations(_size_color())]

    assert len(labels) == len(set(labels))


def test_generate_combinations_without_values_is_empty():
    assert generate_combinations([]) == []
    assert generate_combinations([VariantOption(name="Size", values=[])]) == []


def test_generate_combinations_with_defaults_fills_price_sku_and_inventory():
    combinations = generate_combinations_with_defaults(
        _size_color(),
        default_price="19.99",
        default_compare_at_price="29.99",
    )

    assert len(combinations) == 6
    assert all(item.price == "19.99" for item in combinations)
    assert all(item.compare_at_price == "29.99" for item in combinations)
    assert all(item.sku == "" and item.inventory_quantity == 0 for item in combinations)
    assert all(item.id is None for item in combinations)


def test_validate_options_rejects_more_than_three_options():
    options = [VariantOption(name=f"Option {index}", values=["a"]) for index in range(4)]

    result = validate_options(options)

    assert not result.valid
    assert result.error == VariantValidationError.TOO_MANY_OPTIONS


def test_validate_options_combination_ceiling():
    eleven = [str(index) for index in range(11)]
    ten = [str(index) for index in range(10)]

    too_many = validate_options([VariantOption(name="A", values=eleven), VariantOption(name="B", values=eleven)])
    at_limit = validate_options([VariantOption(name="A", values=ten), VariantOption(name="B", values=ten)])

    assert too_many.error == VariantValidationError.TOO_MANY_COMBINATIONS
    assert "121" in (too_many.message or "")
    assert at_limit.valid
    assert at_limit.error is None


def test_validate_options_reports_empty_option_by_name():
    result = validate_options([VariantOption(name="Size", values=[])])

    assert result.error == VariantValidationError.EMPTY_OPTION
    assert result.option_name == "Size"
    assert "Size" in (result.message or "")


def test_validate_options_treats_blank_values_as_empty():
    result = validate_options([VariantOption(name="Size", values=["  ", ""])])

    assert result.error == VariantValidationError.EMPTY_OPTION


def test_validate_options_rejects_unnamed_option_before_later_checks():
    result = validate_options(
        [VariantOption(name="Size", values=["S"]), VariantOption(name="  ", values=[])]
    )

    assert result.error == VariantValidationError.UNNAMED_OPTION


def test_validate_options_rejects_repeated_option_names():
    result = validate_options(
        [VariantOption(name="Size", values=["S", "M"]), VariantOption(name=" size ", values=["L"])]
    )

    assert result.error == VariantValidationError.DUPLICATE_OPTION
    assert result.option_name == "size"


def test_generate_combinations_expands_repeated_values_once():
    options = [VariantOption(name="Size", values=["S", "S", "M"]), VariantOption(name="Color", values=["Red", "Red"])]

    assert generate_combinations(options) == [{"Size": "S", "Color": "Red"}, {"Size": "M", "Color": "Red"}]
    assert validate_options([VariantOption(name="A", values=["x"] * 101)]).valid


def test_merge_keeps_edits_for_exact_matches():
    previous = generate_combinations_with_defaults(_size_color())
    previous[2] = replace(previous[2], price="29.99", sku="TEE-M-RED", id="gid://shopify/ProductVariant/7")

    merged = merge_combinations(previous, generate_combinations_with_defaults(_size_color()))

    edited = next(item for item in merged if item.options == {"Size": "M", "Color": "Red"})
    assert edited.price == "29.99"
    assert edited.sku == "TEE-M-RED"
    assert edited.id == "gid://shopify/ProductVariant/7"
    untouched = next(item for item in merged if item.options == {"Size": "S", "Color": "Red"})
    assert untouched.price == "0.00"


def test_merge_carries_price_when_an_option_is_added():
    previous = generate_combinations_with_defaults(_size_color())
    previous[2] = replace(previous[2], price="29.99", sku="TEE-M-RED", id="gid://shopify/ProductVariant/7")
    extended = _size_color() + [VariantOption(name="Material", values=["Cotton", "Linen"])]

    merged = merge_combinations(previous, generate_combinations_with_defaults(extended))

    m_red = [item for item in merged if item.options["Size"] == "M" and item.options["Color"] == "Red"]
    assert [format_combination_label(item.options) for item in m_red] == ["M / Red / Cotton", "M / Red / Linen"]
    assert all(item.price == "29.99" for item in m_red)
    assert all(item.sku == "" and item.id is None for item in m_red)
    others = [item for item in merged if item not in m_red]
    assert all(item.price == "0.00" for item in others)


def test_merge_carries_price_when_an_option_is_removed():
    previous = generate_combinations_with_defaults(_size_color())
    previous[2] = replace(previous[2], price="24.00", inventory_quantity=5, sku="TEE-M-RED")
    previous[3] = replace(previous[3], price="26.00")

    merged = merge_combinations(previous, generate_combinations_with_defaults([_size_color()[0]]))

    # M / Red is the first previous combination that narrows to M.
    medium = next(item for item in merged if item.options == {"Size": "M"})
    assert medium.price == "24.00"
    assert medium.inventory_quantity == 5
    assert medium.sku == ""
    small = next(item for item in merged if item.options == {"Size": "S"})
    assert small.price == "0.00"


def test_combination_key_distinguishes_assignments_with_colliding_labels():
    first = {"A": "x / y", "B": "z"}
    second = {"A": "x", "B": "y / z"}

    assert format_combination_label(first) == format_combination_label(second)
    assert combination_key(first) != combination_key(second)


def test_derive_options_reconstructs_generated_options():
    options = _size_color() + [VariantOption(name="Material", values=["Cotton"])]
    remote_variants = [{"selectedOptions": options_to_selected(item)} for item in generate_combinations(options)]

    derived = derive_options_from_remote_variants(remote_variants)

    assert {item.name: set(item.values) for item in derived} == {item.name: set(item.values) for item in options}
    assert [item.values for item in derived][0] == ["S", "M", "L"]


def test_parse_selected_options_skips_malformed_entries():
    assert parse_selected_options([{"name": "Size", "value": "M"}, {"name": "Color"}, {"value": "x"}]) == {"Size": "M"}


def test_build_variant_input_for_new_variant():
    combination = VariantCombination(
        options={"Size": "M", "Color": "Red"},
        price="29.99",
        compare_at_price="39.99",
        sku="TEE-M-RED",
        inventory_quantity=4,
        image_id="gid://shopify/MediaImage/1",
    )

    payload = build_variant_input(combination, location_id="gid://shopify/Location/1")

    assert payload == {
        "price": "29.99",
        "optionValues": [{"optionName": "Size", "name": "M"}, {"optionName": "Color", "name": "Red"}],
        "compareAtPrice": "39.99",
        "inventoryItem": {"sku": "TEE-M-RED"},
        "mediaId": "gid://shopify/MediaImage/1",
        "inventoryQuantities": [{"availableQuantity": 4, "locationId": "gid://shopify/Location/1"}],
    }


def test_build_variant_input_for_existing_variant_skips_inventory():
    combination = VariantCombination(
        options={"Size": "M"},
        price="10.00",
        inventory_quantity=4,
        id="gid://shopify/ProductVariant/9",
    )

    payload = build_variant_input(combination, location_id="gid://shopify/Location/1", include_option_values=False)

    assert payload == {"price": "10.00", "id": "gid://shopify/ProductVariant/9", "compareAtPrice": None}
