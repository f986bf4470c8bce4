import unittest

from siapsmapna.core.models import GradeRecord, WeightConfiguration
from siapsmapna.core.validation import InvalidInputError, parse_assignment_scores


class WeightConfigurationTests(unittest.TestCase):
    def test_defaults_when_document_missing(self):
        weights = WeightConfiguration.from_mapping(None)
        self.assertEqual(weights.assignment_weight, 20)
        self.assertEqual(weights.attendance_weight, 15)
        self.assertEqual(weights.extracurricular_bonus_max, 5)
        self.assertEqual(weights.effective_days_odd_semester, 90)
        self.assertEqual(weights.academic_weight_total, 100)

    def test_partial_document_keeps_defaults(self):
        weights = WeightConfiguration.from_mapping({"tugas": 30, "pas": "15"})
        self.assertEqual(weights.assignment_weight, 30)
        self.assertEqual(weights.final_weight, 15)
        self.assertEqual(weights.test_weight, 20)
        self.assertEqual(weights.effective_days_even_semester, 90)

    def test_effective_days_by_semester(self):
        weights = WeightConfiguration.from_mapping({"totalHariEfektifGanjil": 95, "totalHariEfektifGenap": 88})
        self.assertEqual(weights.effective_days_for(1), 95)
        self.assertEqual(weights.effective_days_for(2), 88)
        with self.assertRaises(InvalidInputError):
            weights.effective_days_for(3)

    def test_rejects_bad_values(self):
        for data in ({"tes": "abc"}, {"tes": -5}, {"totalHariEfektifGanjil": 0}):
            with self.subTest(data=data):
                with self.assertRaises(InvalidInputError):
                    WeightConfiguration.from_mapping(data)

    def test_fractional_day_count_is_rejected(self):
        for raw in (90.5, "90,5"):
            with self.subTest(raw=raw):
                with self.assertRaises(InvalidInputError):
                    WeightConfiguration.from_mapping({"totalHariEfektifGanjil": raw})
        weights = WeightConfiguration.from_mapping({"totalHariEfektifGenap": "92"})
        self.assertEqual(weights.effective_days_even_semester, 92)

    def test_round_trip_keys(self):
        mapping = WeightConfiguration().to_mapping()
        self.assertEqual(set(mapping), set(WeightConfiguration.FIELD_MAP))


class GradeRecordTests(unittest.TestCase):
    def test_from_firestore_document(self):
        record = GradeRecord.from_mapping(
            {
                "id_siswa": "S001",
                "mapel": "Biologi",
                "semester": 2,
                "tahun_ajaran": "2024/2025",
                "tugas": [80, 90],
                "tes": 85,
                "pts": 88,
                "pas": 90,
                "kehadiran": 100,
                "eskul": 100,
                "teacherUid": "guru-1",
                "nilai_akhir": 94.1,
            }
        )
        self.assertEqual(record.assignment_scores, [80.0, 90.0])
        self.assertEqual(record.student_council_score, 0)
        self.assertEqual(record.teacher_uid, "guru-1")
        self.assertEqual(record.final_grade, 94.1)
        self.assertEqual(record.semester, 2)

    def test_spreadsheet_row_with_text_cells(self):
        record = GradeRecord.from_mapping(
            {"id_siswa": " S002 ", "semester": "1", "tugas": "70, 80,,90", "tes": "75,5", "pts": ""}
        )
        self.assertEqual(record.id_siswa, "S002")
        self.assertEqual(record.assignment_scores, [70.0, 80.0, 90.0])
        self.assertEqual(record.test_score, 75.5)
        self.assertEqual(record.midterm_score, 0)

    def test_corrupt_cell_is_rejected(self):
        for data in ({"tes": "sembilan"}, {"tugas": [80, "x"]}, {"tugas": "80, abc"}, {"semester": 3}):
            with self.subTest(data=data):
                with self.assertRaises(InvalidInputError):
                    GradeRecord.from_mapping(data)

    def test_fractional_semester_is_rejected(self):
        for raw in (1.7, "1,5"):
            with self.subTest(raw=raw):
                with self.assertRaises(InvalidInputError):
                    GradeRecord.from_mapping({"semester": raw})
        self.assertEqual(GradeRecord.from_mapping({"semester": 2.0}).semester, 2)

    def test_to_mapping_uses_firestore_keys(self):
        data = GradeRecord(id_siswa="S1", assignment_scores=[90], test_score=80).to_mapping()
        self.assertEqual(data["tugas"], [90])
        self.assertEqual(data["tes"], 80)
        self.assertIn("kehadiran", data)


class ParseAssignmentsTests(unittest.TestCase):
    def test_blank_tokens_are_skipped(self):
        self.assertEqual(parse_assignment_scores(" 80 , ,90 "), [80.0, 90.0])
        self.assertEqual(parse_assignment_scores(""), [])

    def test_rejects_words(self):
        with self.assertRaises(InvalidInputError):
            parse_assignment_scores("80, delapan puluh")


if __name__ == "__main__":
    unittest.main()
