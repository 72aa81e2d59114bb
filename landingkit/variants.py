"""Variant option math: cartesian expansion, platform-limit validation and merging.

Everything in this module is pure. Callers (routes, scripts, tests) pass in-memory values
and get new values back.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any

MAX_OPTIONS = 3
MAX_VARIANTS = 100
LABEL_SEPARATOR = " / "


@dataclass
class VariantOption:
    name: str
    values: list[str] = field(default_factory=list)


@dataclass
class VariantCombination:
    options: dict[str, str]
    price: str = "0.00"
    compare_at_price: str | None = None
    sku: str | None = None
    inventory_quantity: int | None = None
    image_id: str | None = None
    image_url: str | None = None
    id: str | None = None


class VariantValidationError(str, Enum):
    TOO_MANY_OPTIONS = "TooManyOptions"
    UNNAMED_OPTION = "UnnamedOption"
    EMPTY_OPTION = "EmptyOption"
    DUPLICATE_OPTION = "DuplicateOption"
    TOO_MANY_COMBINATIONS = "TooManyCombinations"


@dataclass(frozen=True)
class VariantValidationResult:
    valid: bool
    error: VariantValidationError | None = None
    message: str | None = None
    option_name: str | None = None

    @classmethod
    def ok(cls) -> "VariantValidationResult":
        return cls(valid=True)


def _clean_values(values: Iterable[str]) -> list[str]:
    return [value.strip() for value in values if isinstance(value, str) and value.strip()]


def unique_values(values: Iterable[str]) -> list[str]:
    """Drop repeated values, keeping first-seen order."""
    return list(dict.fromkeys(values))


def generate_combinations(options: Sequence[VariantOption]) -> list[dict[str, str]]:
    """Expand options into every assignment of one value per option.

    Options without values are skipped rather than collapsing the product to nothing.
    Output order follows the declared option order, then the declared value order.
    A value repeated within one option is expanded once.
    """
    valid_options = [(option.name, unique_values(option.values)) for option in options if option.values]
    if not valid_options:
        return []

    first_name, first_values = valid_options[0]
    combinations: list[dict[str, str]] = [{first_name: value} for value in first_values]
    for name, values in valid_options[1:]:
        combinations = [
            {**combination, name: value}
            for combination in combinations
            for value in values
        ]
    return combinations


def generate_combinations_with_defaults(
    options: Sequence[VariantOption],
    default_price: str = "0.00",
    default_compare_at_price: str | None = None,
) -> list[VariantCombination]:
    return [
        VariantCombination(
            options=assignment,
            price=default_price,
            compare_at_price=default_compare_at_price,
            sku="",
            inventory_quantity=0,
        )
        for assignment in generate_combinations(options)
    ]


def validate_options(options: Sequence[VariantOption]) -> VariantValidationResult:
    if len(options) > MAX_OPTIONS:
        return VariantValidationResult(
            valid=False,
            error=VariantValidationError.TOO_MANY_OPTIONS,
            message=f"Shopify allows at most {MAX_OPTIONS} options (e.g. Size, Color, Material).",
        )

    seen_names: set[str] = set()
    for option in options:
        name = option.name.strip() if isinstance(option.name, str) else ""
        if not name:
            return VariantValidationResult(
                valid=False,
                error=VariantValidationError.UNNAMED_OPTION,
                message="Every option must have a name.",
            )
        if name.casefold() in seen_names:
            return VariantValidationResult(
                valid=False,
                error=VariantValidationError.DUPLICATE_OPTION,
                message=f'Option "{name}" is defined more than once.',
                option_name=name,
            )
        seen_names.add(name.casefold())
        if not _clean_values(option.values):
            return VariantValidationResult(
                valid=False,
                error=VariantValidationError.EMPTY_OPTION,
                message=f'Option "{name}" must have at least one value.',
                option_name=name,
            )

    total = 1
    for option in options:
        total *= max(len(unique_values(option.values)), 1)
    if total > MAX_VARIANTS:
        return VariantValidationResult(
            valid=False,
            error=VariantValidationError.TOO_MANY_COMBINATIONS,
            message=f"Too many combinations ({total}). Shopify allows at most {MAX_VARIANTS} variants.",
        )

    return VariantValidationResult.ok()


def format_combination_label(assignment: Mapping[str, str]) -> str:
    """Display label such as ``"M / Red"``.

    Labels are not unique when a value itself contains the separator, so identity
    comparisons go through :func:`combination_key` instead.
    """
    return LABEL_SEPARATOR.join(assignment.values())


def combination_key(assignment: Mapping[str, str]) -> tuple[tuple[str, str], ...]:
    return tuple(sorted(assignment.items()))


def _is_sub_assignment(smaller: Mapping[str, str], larger: Mapping[str, str]) -> bool:
    if len(smaller) >= len(larger):
        return False
    return all(larger.get(name) == value for name, value in smaller.items())


def merge_combinations(
    previous: Sequence[VariantCombination],
    regenerated: Sequence[VariantCombination],
) -> list[VariantCombination]:
    """Carry operator edits from ``previous`` onto freshly ``regenerated`` combinations."""
    by_key = {combination_key(item.options): item for item in previous}
    merged: list[VariantCombination] = []
    for fresh in regenerated:
        exact = by_key.get(combination_key(fresh.options))
        if exact is not None:
            merged.append(
                replace(
                    fresh,
                    price=exact.price,
                    compare_at_price=exact.compare_at_price,
                    sku=exact.sku,
                    inventory_quantity=exact.inventory_quantity,
                    image_id=exact.image_id,
                    image_url=exact.image_url,
                    id=exact.id,
                )
            )
            continue

        # sku and remote id stay unique per variant, so partial matches only carry prices.
        related = next(
            (
                item
                for item in previous
                if _is_sub_assignment(item.options, fresh.options)
                or _is_sub_assignment(fresh.options, item.options)
            ),
            None,
        )
        if related is not None:
            merged.append(
                replace(
                    fresh,
                    price=related.price,
                    compare_at_price=related.compare_at_price,
                    inventory_quantity=related.inventory_quantity,
                )
            )
            continue

        merged.append(fresh)
    return merged


def parse_selected_options(selected_options: Iterable[Mapping[str, Any]]) -> dict[str, str]:
    assignment: dict[str, str] = {}
    for item in selected_options:
        name = item.get("name")
        value = item.get("value")
        if isinstance(name, str) and isinstance(value, str):
            assignment[name] = value
    return assignment


def options_to_selected(assignment: Mapping[str, str]) -> list[dict[str, str]]:
    return [{"name": name, "value": value} for name, value in assignment.items()]


def derive_options_from_remote_variants(
    variants: Iterable[Mapping[str, Any]],
) -> list[VariantOption]:
    values_by_name: dict[str, list[str]] = {}
    for variant in variants:
        for name, value in parse_selected_options(variant.get("selectedOptions") or []).items():
            seen = values_by_name.setdefault(name, [])
            if value not in seen:
                seen.append(value)
    return [VariantOption(name=name, values=values) for name, values in values_by_name.items()]


def build_variant_input(
    combination: VariantCombination,
    *,
    location_id: str | None = None,
    include_option_values: bool = True,
) -> dict[str, Any]:
    """Build a ``ProductVariantsBulkInput`` payload for one combination."""
    payload: dict[str, Any] = {"price": combination.price}
    if combination.id:
        payload["id"] = combination.id
    if include_option_values:
        payload["optionValues"] = [
            {"optionName": name, "name": value} for name, value in combination.options.items()
        ]
    payload["compareAtPrice"] = combination.compare_at_price or None
    if combination.sku:
        payload["inventoryItem"] = {"sku": combination.sku}
    if combination.image_id:
        payload["mediaId"] = combination.image_id
    if location_id and combination.inventory_quantity is not None and not combination.id:
        payload["inventoryQuantities"] = [
            {"availableQuantity": combination.inventory_quantity, "locationId": location_id}
        ]
    return payload
