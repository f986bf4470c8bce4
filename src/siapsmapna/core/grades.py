import math
from typing import Any, Iterable

from siapsmapna.core.models import GradeRecord, WeightConfiguration
from siapsmapna.core.validation import InvalidInputError, is_number, require_number, require_numbers


MAX_GRADE = 100.0


def round_half_away(value: float, *, round_to: int = 2) -> float:
    """Round like ``Math.round(x * 10**n) / 10**n`` but symmetric around zero."""
    factor = 10 ** round_to
    scaled = abs(value) * factor
    rounded = math.floor(scaled + 0.5) / factor
    return math.copysign(rounded, value) if value else 0.0


def compute_average(numbers: Iterable[Any]) -> float:
    """
    Arithmetic mean where non-numeric entries (NaN, blank spreadsheet cells)
    add 0 to the sum but still count toward the divisor.
    """
    if numbers is None:
        return 0.0
    values = list(numbers)
    if not values:
        return 0.0
    total = sum(float(value) if is_number(value) else 0.0 for value in values)
    return total / len(values)


def compute_final_grade(record: GradeRecord, weights: WeightConfiguration, *, round_to: int = 2) -> float:
    """
    final = min(100, Σ(component * weight/100) + eskul/100 * eskul_max + osis/100 * osis_max)

    Missing scores count as 0; a present but non-numeric score raises
    :class:`InvalidInputError` instead of being coerced.
    """
    if record is None or weights is None:
        raise InvalidInputError("Both a grade record and a weight configuration are required")

    assignments = require_numbers(record.assignment_scores, "tugas")
    avg_assignments = compute_average(assignments)

    test = require_number(record.test_score, "tes")
    midterm = require_number(record.midterm_score, "pts")
    final_exam = require_number(record.final_score, "pas")
    attendance = require_number(record.attendance_percent, "kehadiran")
    extracurricular = require_number(record.extracurricular_score, "eskul")
    student_council = require_number(record.student_council_score, "osis")

    academic_grade = (
        avg_assignments * (require_number(weights.assignment_weight, "bobot.tugas") / 100)
        + test * (require_number(weights.test_weight, "bobot.tes") / 100)
        + midterm * (require_number(weights.midterm_weight, "bobot.pts") / 100)
        + final_exam * (require_number(weights.final_weight, "bobot.pas") / 100)
        + attendance * (require_number(weights.attendance_weight, "bobot.kehadiran") / 100)
    )

    extracurricular_bonus = (extracurricular / 100) * require_number(
        weights.extracurricular_bonus_max, "bobot.eskul"
    )
    student_council_bonus = (student_council / 100) * require_number(
        weights.student_council_bonus_max, "bobot.osis"
    )

    final_grade = min(MAX_GRADE, academic_grade + extracurricular_bonus + student_council_bonus)
    return round_half_away(final_grade, round_to=round_to)


def attendance_percent(days_present: float, effective_days: int, *, round_to: int = 2) -> float:
    """Convert a count of days present into the ``kehadiran`` percentage."""
    days = require_number(days_present, "days_present")
    if not is_number(effective_days) or effective_days <= 0:
        raise InvalidInputError("effective_days must be greater than 0")
    if days < 0:
        raise InvalidInputError("days_present must not be negative")
    return round_half_away(min(MAX_GRADE, days / effective_days * 100), round_to=round_to)
