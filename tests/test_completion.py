import unittest

from siapsmapna.core.completion import build_grade_recap, is_complete
from siapsmapna.core.models import GradeRecord, WeightConfiguration
from siapsmapna.core.validation import InvalidInputError


def passing_record(**overrides):
    values = dict(
        mapel="Matematika",
        assignment_scores=[80, 75],
        test_score=78,
        midterm_score=82,
        final_score=85,
        attendance_percent=40,
        extracurricular_score=0,
        student_council_score=0,
    )
    values.update(overrides)
    return GradeRecord(**values)


class CompletionTests(unittest.TestCase):
    def test_all_components_at_or_above_kkm(self):
        result = is_complete(passing_record(), 80, 70)
        self.assertTrue(result.complete)
        self.assertEqual(result.failing_components, [])
        self.assertEqual(result.status_label, "Tuntas")

    def test_threshold_is_inclusive(self):
        record = passing_record(assignment_scores=[70], test_score=70, midterm_score=70, final_score=70)
        self.assertTrue(is_complete(record, 70, 70).complete)

    def test_failing_assignment_is_named_by_position(self):
        result = is_complete(passing_record(assignment_scores=[80, 65]), 78, 70)
        self.assertFalse(result.complete)
        self.assertEqual(result.status_label, "Belum Tuntas")
        self.assertEqual(
            [(item.name, item.value) for item in result.failing_components],
            [("Tugas 2", 65)],
        )

    def test_final_grade_is_gated(self):
        result = is_complete(passing_record(), 69.99, 70)
        self.assertFalse(result.complete)
        self.assertEqual(result.failing_components[-1].name, "Nilai Akhir")

    def test_attendance_and_bonus_are_not_gated(self):
        record = passing_record(attendance_percent=0, extracurricular_score=0, student_council_score=0)
        self.assertTrue(is_complete(record, 75, 70).complete)

    def test_failing_components_in_display_order(self):
        record = passing_record(assignment_scores=[60, 90, 50], test_score=10, midterm_score=20, final_score=30)
        result = is_complete(record, 40, 70)
        self.assertEqual(
            [item.name for item in result.failing_components],
            ["Tugas 1", "Tugas 3", "Tes", "PTS", "PAS", "Nilai Akhir"],
        )

    def test_default_kkm_is_70(self):
        record = passing_record(test_score=69)
        self.assertFalse(is_complete(record, 80).complete)
        self.assertEqual(is_complete(record, 80, None).kkm, 70)

    def test_kkm_out_of_range(self):
        with self.assertRaises(InvalidInputError):
            is_complete(passing_record(), 80, 120)

    def test_to_dict(self):
        data = is_complete(passing_record(test_score=50), 75, 75).to_dict()
        self.assertEqual(data["status"], "Belum Tuntas")
        self.assertEqual(data["failing_components"], [{"name": "Tes", "value": 50}])


class RecapTests(unittest.TestCase):
    def test_recap_uses_subject_kkm(self):
        weights = WeightConfiguration()
        records = [passing_record(), passing_record(mapel="Fisika")]
        rows = build_grade_recap(records, weights, {"Matematika": 90})
        self.assertFalse(rows[0].completion.complete)
        self.assertEqual(rows[0].completion.kkm, 90)
        self.assertEqual(rows[1].completion.kkm, 70)
        self.assertEqual(rows[0].to_dict()["nilai_akhir"], rows[0].final_grade)


if __name__ == "__main__":
    unittest.main()
