import calendar
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Dict, Iterable, Optional, Set

from siapsmapna.core.grades import round_half_away
from siapsmapna.core.validation import InvalidInputError


ATTENDANCE_STATUSES = ("Hadir", "Izin", "Sakit", "Alpa")


def check_month(year: int, month: int) -> None:
    if not isinstance(year, int) or isinstance(year, bool) or year < 1:
        raise InvalidInputError(f"year must be a positive integer, got {year!r}")
    if not isinstance(month, int) or isinstance(month, bool) or not 1 <= month <= 12:
        raise InvalidInputError(f"month must be between 1 and 12, got {month!r}")


def to_date(value: Any) -> Optional[date]:
    """Accept a date, datetime, ``YYYY-MM-DD`` string or a record carrying one."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, dict):
        # dateString is the local calendar day; date may be a UTC timestamp.
        return to_date(value.get("dateString") or value.get("date"))
    if isinstance(value, str):
        text = value.strip()[:10]
        try:
            return date.fromisoformat(text)
        except ValueError as exc:
            raise InvalidInputError(f"Invalid date {value!r}, expected YYYY-MM-DD") from exc
    # Objects with a ``date`` attribute, e.g. a record dataclass.
    return to_date(getattr(value, "date", None))


def _date_keys(values: Iterable[Any]) -> Set[str]:
    keys: Set[str] = set()
    for value in values or ():
        day = to_date(value)
        if day is not None:
            keys.add(day.isoformat())
    return keys


def count_workdays(
    year: int,
    month: int,
    holiday_dates: Optional[Iterable[Any]] = None,
    attendance_records: Optional[Iterable[Any]] = None,
) -> int:
    """
    Mon-Fri days of the month minus holidays, plus any Sat/Sun that has at
    least one attendance record on that exact date.
    """
    check_month(year, month)
    holidays = _date_keys(holiday_dates)
    recorded = _date_keys(attendance_records)

    _, days_in_month = calendar.monthrange(year, month)
    workdays = 0
    for day_number in range(1, days_in_month + 1):
        day = date(year, month, day_number)
        key = day.isoformat()
        if day.weekday() < calendar.SATURDAY:
            if key not in holidays:
                workdays += 1
        elif key in recorded:
            workdays += 1
    return workdays


@dataclass
class MonthlyAttendanceSummary:
    counts: Dict[str, int] = field(default_factory=lambda: {status: 0 for status in ATTENDANCE_STATUSES})
    total_recorded: int = 0
    workdays: int = 0
    presence_percent: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            **self.counts,
            "TotalTercatat": self.total_recorded,
            "TotalHariKerja": self.workdays,
            "PersentaseHadir": self.presence_percent,
        }


def summarize_monthly_attendance(records: Iterable[Any], workdays: int) -> MonthlyAttendanceSummary:
    summary = MonthlyAttendanceSummary(workdays=workdays)
    for record in records or ():
        status = record.get("status") if isinstance(record, dict) else getattr(record, "status", None)
        if status in summary.counts:
            summary.counts[status] += 1
        summary.total_recorded += 1

    if workdays > 0:
        summary.presence_percent = round_half_away(summary.counts["Hadir"] / workdays * 100, round_to=1)
    return summary
