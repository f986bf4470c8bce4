from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional

from siapsmapna.core.validation import (
    InvalidInputError,
    coerce_number,
    coerce_whole_number,
    parse_assignment_scores,
)


SEMESTER_ODD = 1
SEMESTER_EVEN = 2


@dataclass(frozen=True)
class WeightConfiguration:
    assignment_weight: float = 20
    test_weight: float = 20
    midterm_weight: float = 20
    final_weight: float = 25
    attendance_weight: float = 15
    extracurricular_bonus_max: float = 5
    student_council_bonus_max: float = 5
    effective_days_odd_semester: int = 90
    effective_days_even_semester: int = 90

    # Firestore key -> attribute name
    FIELD_MAP = {
        "tugas": "assignment_weight",
        "tes": "test_weight",
        "pts": "midterm_weight",
        "pas": "final_weight",
        "kehadiran": "attendance_weight",
        "eskul": "extracurricular_bonus_max",
        "osis": "student_council_bonus_max",
        "totalHariEfektifGanjil": "effective_days_odd_semester",
        "totalHariEfektifGenap": "effective_days_even_semester",
    }

    @property
    def academic_weight_total(self) -> float:
        return (
            self.assignment_weight
            + self.test_weight
            + self.midterm_weight
            + self.final_weight
            + self.attendance_weight
        )

    def effective_days_for(self, semester: int) -> int:
        if semester == SEMESTER_ODD:
            return self.effective_days_odd_semester
        if semester == SEMESTER_EVEN:
            return self.effective_days_even_semester
        raise InvalidInputError(f"Unsupported semester: {semester}. Use 1 or 2.")

    @classmethod
    def from_mapping(cls, data: Optional[Mapping[str, Any]]) -> "WeightConfiguration":
        """Build from a ``bobot`` document, substituting defaults for absent keys."""
        if not data:
            return cls()
        values: Dict[str, Any] = {}
        for key, attr in cls.FIELD_MAP.items():
            raw = data.get(key)
            if raw is None or raw == "":
                continue
            if attr.startswith("effective_days"):
                days = coerce_whole_number(raw, key)
                if days <= 0:
                    raise InvalidInputError(f"{key} must be a positive number of days")
                values[attr] = days
            else:
                number = coerce_number(raw, key)
                if number < 0:
                    raise InvalidInputError(f"{key} must not be negative")
                values[attr] = number
        return cls(**values)

    def to_mapping(self) -> Dict[str, Any]:
        return {key: getattr(self, attr) for key, attr in self.FIELD_MAP.items()}


@dataclass
class GradeRecord:
    id_siswa: str = ""
    mapel: str = ""
    semester: int = SEMESTER_ODD
    tahun_ajaran: str = ""
    assignment_scores: List[float] = field(default_factory=list)
    test_score: float = 0
    midterm_score: float = 0
    final_score: float = 0
    attendance_percent: float = 0
    extracurricular_score: float = 0
    student_council_score: float = 0
    teacher_uid: Optional[str] = None
    final_grade: Optional[float] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    SCORE_FIELDS = {
        "tes": "test_score",
        "pts": "midterm_score",
        "pas": "final_score",
        "kehadiran": "attendance_percent",
        "eskul": "extracurricular_score",
        "osis": "student_council_score",
    }

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "GradeRecord":
        """Coerce a ``nilai`` document or a parsed spreadsheet row.

        Blank score cells become 0; anything that is present but not a
        number raises :class:`InvalidInputError`.
        """
        if data is None:
            raise InvalidInputError("Grade record is empty")

        semester_raw = data.get("semester", SEMESTER_ODD)
        semester = coerce_whole_number(semester_raw, "semester")
        if semester not in (SEMESTER_ODD, SEMESTER_EVEN):
            raise InvalidInputError(f"Unsupported semester: {semester_raw!r}. Use 1 or 2.")

        scores = {
            attr: coerce_number(data.get(key), key) for key, attr in cls.SCORE_FIELDS.items()
        }

        final_grade = data.get("nilai_akhir")
        return cls(
            id_siswa=str(data.get("id_siswa") or "").strip(),
            mapel=str(data.get("mapel") or "").strip(),
            semester=semester,
            tahun_ajaran=str(data.get("tahun_ajaran") or "").strip(),
            assignment_scores=_coerce_assignments(data.get("tugas")),
            teacher_uid=data.get("teacherUid"),
            final_grade=None if final_grade is None else coerce_number(final_grade, "nilai_akhir"),
            created_at=data.get("createdAt"),
            updated_at=data.get("updatedAt"),
            **scores,
        )

    def to_mapping(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "id_siswa": self.id_siswa,
            "mapel": self.mapel,
            "semester": self.semester,
            "tahun_ajaran": self.tahun_ajaran,
            "tugas": list(self.assignment_scores),
            "teacherUid": self.teacher_uid,
            "nilai_akhir": self.final_grade,
        }
        for key, attr in self.SCORE_FIELDS.items():
            data[key] = getattr(self, attr)
        return data


def _coerce_assignments(value: Any) -> List[float]:
    if value is None:
        return []
    if isinstance(value, str):
        return parse_assignment_scores(value)
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return [coerce_number(value, "tugas")]
    try:
        items = list(value)
    except TypeError as exc:
        raise InvalidInputError(f"tugas must be a list of numbers, got {value!r}") from exc
    return [coerce_number(item, f"tugas[{index}]") for index, item in enumerate(items, start=1)]


@dataclass(frozen=True)
class ComponentScore:
    name: str
    value: float


@dataclass(frozen=True)
class CompletionResult:
    complete: bool
    failing_components: List[ComponentScore] = field(default_factory=list)
    kkm: float = 70

    @property
    def status_label(self) -> str:
        return "Tuntas" if self.complete else "Belum Tuntas"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "complete": self.complete,
            "status": self.status_label,
            "kkm": self.kkm,
            "failing_components": [
                {"name": item.name, "value": item.value} for item in self.failing_components
            ],
        }
