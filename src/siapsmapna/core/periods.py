from datetime import date
from typing import Dict, List, Optional


SEMESTERS: List[Dict] = [
    {"value": 1, "label": "Ganjil"},
    {"value": 2, "label": "Genap"},
]

# The academic year rolls over in July.
ACADEMIC_YEAR_START_MONTH = 7


def format_academic_year(start_year: int) -> str:
    return f"{start_year}/{start_year + 1}"


def current_academic_year(today: Optional[date] = None) -> str:
    today = today or date.today()
    if today.month >= ACADEMIC_YEAR_START_MONTH:
        return format_academic_year(today.year)
    return format_academic_year(today.year - 1)


def academic_years(start_year: int = 2020, end_year: int = 2049) -> List[str]:
    """Selectable academic years, most recent first."""
    if end_year < start_year:
        raise ValueError("end_year must not be before start_year")
    return [format_academic_year(year) for year in range(end_year, start_year - 1, -1)]


def academic_year_key(tahun_ajaran: str) -> str:
    """Firestore-safe id for an academic year: ``2023/2024`` -> ``2023_2024``."""
    return tahun_ajaran.strip().replace("/", "_")


def semester_label(semester: int) -> str:
    for item in SEMESTERS:
        if item["value"] == semester:
            return item["label"]
    raise ValueError(f"Unsupported semester: {semester}. Use 1 or 2.")
