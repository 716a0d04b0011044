"""Entity attribute normalization shared by variant and grid selection."""

from comp_worker.domain.types import AttributeValue


def normalize_attribute(value: AttributeValue | None) -> str:
    """Normalize an attribute for comparison.

    Integral floats compare as ints (aggregated ``1.0`` matches ``"1"``),
    then surrounding whitespace and case are ignored.
    """
    if value is None:
        return ""
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    return str(value).strip().lower()
