from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import asdict, dataclass
import json
from typing import Any, Optional

LANDING_NAMESPACE = "landing"

SINGLE_LINE = "single_line_text_field"
MULTI_LINE = "multi_line_text_field"
INTEGER = "number_integer"
URL = "url"


@dataclass(frozen=True)
class MetafieldField:
    namespace: str
    key: str
    name: str
    type: str
    description: Optional[str] = None

    def as_dict(self) -> dict[str, Any]:
        return asdict(self)


def _landing(key: str, name: str, field_type: str = SINGLE_LINE, description: Optional[str] = None) -> MetafieldField:
    return MetafieldField(LANDING_NAMESPACE, key, name, field_type, description)


LANDING_FIELDS: tuple[MetafieldField, ...] = (
    _landing("hero_overtitle", "Hero Overtitle"),
    _landing("hero_title", "Hero Title"),
    _landing("hero_subtitle", "Hero Subtitle", MULTI_LINE, "Supports HTML"),
    _landing("hero_image", "Hero Image", URL),
    _landing("about_title", "About Title"),
    _landing("about_subtitle", "About Subtitle"),
    _landing("scarcity_text", "Scarcity Text"),
    _landing("cta_button_text", "CTA Button Text"),
    _landing("sticky_cta_text", "Sticky CTA Text"),
    _landing("icon1_text", "Icon 1 Text"),
    _landing("icon2_text", "Icon 2 Text"),
    _landing("icon3_text", "Icon 3 Text"),
    _landing("section1_overtitle", "Section 1 Overtitle"),
    _landing("section1_title", "Section 1 Title"),
    _landing("section1_text", "Section 1 Text", MULTI_LINE),
    _landing("section1_bullets", "Section 1 Bullet Points", MULTI_LINE, "Separate with |"),
    _landing("section1_image", "Section 1 Image", URL),
    _landing("section2_overtitle", "Section 2 Overtitle"),
    _landing("section2_title", "Section 2 Title"),
    _landing("section2_text", "Section 2 Text", MULTI_LINE),
    _landing("section2_bullets", "Section 2 Bullet Points", MULTI_LINE, "Separate with |"),
    _landing("section2_image", "Section 2 Image", URL),
    _landing("section3_overtitle", "Section 3 Overtitle"),
    _landing("section3_title", "Section 3 Title"),
    _landing("section3_text", "Section 3 Text", MULTI_LINE),
    _landing("section3_image", "Section 3 Image", URL),
    _landing("text_block_subtitle", "Text Block Subtitle"),
    _landing("text_block_description", "Text Block Description", MULTI_LINE),
    _landing("text_block_image", "Text Block Image", URL),
    _landing("reviews_title", "Reviews Title"),
    _landing("review1_stars", "Review 1 Stars", INTEGER, "1-5"),
    _landing("review1_author", "Review 1 Author"),
    _landing("review1_text", "Review 1 Text", MULTI_LINE),
    _landing("review2_stars", "Review 2 Stars", INTEGER, "1-5"),
    _landing("review2_author", "Review 2 Author"),
    _landing("review2_text", "Review 2 Text", MULTI_LINE),
    _landing("review3_stars", "Review 3 Stars", INTEGER, "1-5"),
    _landing("review3_author", "Review 3 Author"),
    _landing("review3_text", "Review 3 Text", MULTI_LINE),
    _landing("bullet_1", "Bullet 1"),
    _landing("bullet_2", "Bullet 2"),
    _landing("bullet_3", "Bullet 3"),
    _landing("angle_1_title", "Angle 1 Title"),
    _landing("angle_1_text", "Angle 1 Text", MULTI_LINE),
    _landing("angle_2_title", "Angle 2 Title"),
    _landing("angle_2_text", "Angle 2 Text", MULTI_LINE),
    _landing("angle_3_title", "Angle 3 Title"),
    _landing("angle_3_text", "Angle 3 Text", MULTI_LINE),
    _landing("lifestyle_main_title", "Lifestyle Main Title"),
    _landing("lifestyle_left_title", "Lifestyle Left Title"),
    _landing("lifestyle_left_text", "Lifestyle Left Text", MULTI_LINE),
    _landing("lifestyle_right_title", "Lifestyle Right Title"),
    _landing("lifestyle_right_text", "Lifestyle Right Text", MULTI_LINE),
)

_LANDING_TYPES = {field.key: field.type for field in LANDING_FIELDS}


def metafield_type_for(key: str) -> str:
    return _LANDING_TYPES.get(key, SINGLE_LINE)


def build_metafield_inputs(
    owner_id: str,
    values: Mapping[str, Any],
    namespace: str = LANDING_NAMESPACE,
) -> list[dict[str, str]]:
    """Turn a ``{key: value}`` mapping into ``MetafieldsSetInput`` payloads.

    Blank values are skipped so they never overwrite what is already stored.
    """
    inputs: list[dict[str, str]] = []
    for key, value in values.items():
        if value is None:
            continue
        if isinstance(value, str):
            serialized = value
        else:
            serialized = json.dumps(value)
        if not serialized.strip():
            continue
        inputs.append(
            {
                "ownerId": owner_id,
                "namespace": namespace,
                "key": key,
                "type": metafield_type_for(key) if namespace == LANDING_NAMESPACE else SINGLE_LINE,
                "value": serialized,
            }
        )
    return inputs


def merge_with_legacy_fields(shop_definitions: Iterable[Mapping[str, Any]]) -> list[dict[str, Any]]:
    merged = [dict(definition) for definition in shop_definitions]
    existing = {f"{item.get('namespace')}.{item.get('key')}" for item in merged}
    for field in LANDING_FIELDS:
        if f"{field.namespace}.{field.key}" not in existing:
            merged.append(field.as_dict())
    return merged


def group_by_namespace(definitions: Iterable[Mapping[str, Any]]) -> dict[str, list[dict[str, Any]]]:
    grouped: dict[str, list[dict[str, Any]]] = {}
    for definition in definitions:
        grouped.setdefault(str(definition.get("namespace")), []).append(dict(definition))
    return grouped
