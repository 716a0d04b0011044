"""Variant selection by entity attributes."""

from collections.abc import Mapping, Sequence

from comp_worker.application.services.attributes import normalize_attribute
from comp_worker.domain.entities import Variant
from comp_worker.domain.types import AttributeValue

VARIANT_FALLBACK_FLAG = "variant_fallback"


def matches(variant: Variant, attributes: Mapping[str, AttributeValue]) -> bool:
    """Check every eligibility criterion against the entity's attributes."""
    return all(
        normalize_attribute(attributes.get(field)) == normalize_attribute(expected)
        for field, expected in variant.eligibility.items()
    )


def select_variant(
    variants: Sequence[Variant],
    attributes: Mapping[str, AttributeValue],
) -> tuple[Variant, tuple[str, ...]]:
    """Pick the variant for an entity.

    First eligible variant with criteria, then the first variant without
    criteria, then the first variant flagged as a fallback.
    """
    for variant in variants:
        if variant.eligibility and matches(variant, attributes):
            return variant, ()
    for variant in variants:
        if not variant.eligibility:
            return variant, ()
    return variants[0], (VARIANT_FALLBACK_FLAG,)
