from dataclasses import dataclass
from typing import Dict, Iterable, List, Mapping, Optional

from siapsmapna.core.grades import compute_final_grade
from siapsmapna.core.models import ComponentScore, CompletionResult, GradeRecord, WeightConfiguration
from siapsmapna.core.validation import InvalidInputError, require_number, require_numbers


DEFAULT_KKM = 70.0


def gated_components(record: GradeRecord, final_grade: float) -> List[ComponentScore]:
    """Academic components that must each reach the KKM, in display order."""
    components = [
        ComponentScore(f"Tugas {index}", score)
        for index, score in enumerate(require_numbers(record.assignment_scores, "tugas"), start=1)
    ]
    components.append(ComponentScore("Tes", require_number(record.test_score, "tes")))
    components.append(ComponentScore("PTS", require_number(record.midterm_score, "pts")))
    components.append(ComponentScore("PAS", require_number(record.final_score, "pas")))
    components.append(ComponentScore("Nilai Akhir", require_number(final_grade, "nilai_akhir")))
    return components


def is_complete(record: GradeRecord, final_grade: float, kkm: Optional[float] = DEFAULT_KKM) -> CompletionResult:
    """
    Tuntas only when every assignment, the test, PTS, PAS and the final grade
    are >= kkm. Attendance and the eskul/OSIS bonuses are not part of the gate.
    """
    threshold = DEFAULT_KKM if kkm is None else require_number(kkm, "kkm")
    if threshold < 0 or threshold > 100:
        raise InvalidInputError(f"kkm must be between 0 and 100, got {kkm!r}")

    failing = [item for item in gated_components(record, final_grade) if item.value < threshold]
    return CompletionResult(complete=not failing, failing_components=failing, kkm=threshold)


@dataclass(frozen=True)
class RecapRow:
    record: GradeRecord
    final_grade: float
    completion: CompletionResult

    def to_dict(self) -> Dict:
        data = self.record.to_mapping()
        data["nilai_akhir"] = self.final_grade
        data["completion"] = self.completion.to_dict()
        return data


def build_grade_recap(
    records: Iterable[GradeRecord],
    weights: WeightConfiguration,
    kkm_by_subject: Optional[Mapping[str, float]] = None,
    *,
    default_kkm: float = DEFAULT_KKM,
) -> List[RecapRow]:
    """Final grade and completion status for each record, recomputed from raw scores."""
    kkm_by_subject = kkm_by_subject or {}
    rows: List[RecapRow] = []
    for record in records:
        final_grade = compute_final_grade(record, weights)
        kkm = kkm_by_subject.get(record.mapel, default_kkm)
        rows.append(RecapRow(record, final_grade, is_complete(record, final_grade, kkm)))
    return rows
