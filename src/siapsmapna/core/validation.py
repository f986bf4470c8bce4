import math
from numbers import Real
from typing import Any, Iterable, List


class InvalidInputError(ValueError):
    """A value that must be numeric is missing its number (corrupt cell, wrong type)."""


def is_number(value: Any) -> bool:
    return isinstance(value, Real) and not isinstance(value, bool) and not math.isnan(value)


def require_number(value: Any, field_name: str) -> float:
    """Return ``value`` as float; ``None`` counts as 0, anything non-numeric raises."""
    if value is None:
        return 0.0
    if not is_number(value):
        raise InvalidInputError(f"{field_name} must be a number, got {value!r}")
    return float(value)


def require_numbers(values: Iterable[Any], field_name: str) -> List[float]:
    if values is None:
        return []
    if isinstance(values, (str, bytes)):
        raise InvalidInputError(f"{field_name} must be a sequence of numbers")
    result: List[float] = []
    for index, value in enumerate(values, start=1):
        if value is None or not is_number(value):
            raise InvalidInputError(f"{field_name}[{index}] must be a number, got {value!r}")
        result.append(float(value))
    return result


def coerce_number(value: Any, field_name: str) -> float:
    """Loose coercion for documents and spreadsheet cells.

    Blank cells become 0, numeric text is parsed (a decimal comma is
    accepted), anything else is rejected.
    """
    if value is None:
        return 0.0
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return 0.0
        try:
            parsed = float(text.replace(",", "."))
        except ValueError as exc:
            raise InvalidInputError(f"{field_name} must be a number, got {value!r}") from exc
        if math.isnan(parsed) or math.isinf(parsed):
            raise InvalidInputError(f"{field_name} must be a finite number, got {value!r}")
        return parsed
    return require_number(value, field_name)


def coerce_whole_number(value: Any, field_name: str) -> int:
    """Like :func:`coerce_number`, but ``1.7`` or ``"90,5"`` is rejected instead of truncated."""
    number = coerce_number(value, field_name)
    if math.isinf(number) or not number.is_integer():
        raise InvalidInputError(f"{field_name} must be a whole number, got {value!r}")
    return int(number)


def parse_assignment_scores(text: str) -> List[float]:
    """Parse the comma-separated assignment entry used by the grade form, e.g. ``"80, 90"``."""
    if text is None:
        return []
    scores: List[float] = []
    for index, token in enumerate(str(text).split(","), start=1):
        token = token.strip()
        if not token:
            continue
        try:
            value = float(token)
        except ValueError as exc:
            raise InvalidInputError(f"tugas[{index}] must be a number, got {token!r}") from exc
        if math.isnan(value) or math.isinf(value):
            raise InvalidInputError(f"tugas[{index}] must be a finite number, got {token!r}")
        scores.append(value)
    return scores
