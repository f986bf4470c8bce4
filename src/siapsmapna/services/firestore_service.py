from dataclasses import dataclass, field, replace
from datetime import date, datetime, time, timezone
import logging
from typing import Any, Dict, Iterable, List, Mapping, Optional

try:
    from google.cloud import firestore
    from google.api_core.exceptions import GoogleAPIError
except ModuleNotFoundError as exc:
    raise ModuleNotFoundError(
        "Missing dependency 'google-cloud-firestore'. Install the project with pip install -e ."
    ) from exc

from siapsmapna.config.settings import Settings, settings
from siapsmapna.core.attendance import (
    ATTENDANCE_STATUSES,
    MonthlyAttendanceSummary,
    check_month,
    count_workdays,
    summarize_monthly_attendance,
    to_date,
)
from siapsmapna.core.completion import build_grade_recap, is_complete
from siapsmapna.core.grades import compute_final_grade
from siapsmapna.core.models import GradeRecord, WeightConfiguration
from siapsmapna.core.periods import academic_year_key
from siapsmapna.core.validation import InvalidInputError, coerce_number


logger = logging.getLogger(__name__)

# Firestore rejects batches larger than this.
BATCH_LIMIT = 500


class FirestoreServiceError(Exception):
    pass


@dataclass
class ImportFailure:
    row: int
    id_siswa: str
    reason: str


@dataclass
class ImportSummary:
    imported: int = 0
    failures: List[ImportFailure] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "imported": self.imported,
            "failed": len(self.failures),
            "failures": [
                {"row": item.row, "id_siswa": item.id_siswa, "reason": item.reason}
                for item in self.failures
            ],
        }


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _safe_key(value: Any) -> str:
    return str(value).strip().replace("/", "_")


def _month_bounds(year: int, month: int) -> tuple[str, str]:
    check_month(year, month)
    start = date(year, month, 1)
    end = date(year + 1, 1, 1) if month == 12 else date(year, month + 1, 1)
    return start.isoformat(), end.isoformat()


def grade_document_id(record: GradeRecord, teacher_uid: str) -> str:
    """One document per (student, subject, semester, academic year, teacher)."""
    return "_".join(
        [
            _safe_key(record.id_siswa),
            _safe_key(record.mapel),
            str(record.semester),
            academic_year_key(record.tahun_ajaran),
            _safe_key(teacher_uid),
        ]
    )


def kkm_document_id(mapel: str, tahun_ajaran: str) -> str:
    return f"{_safe_key(mapel)}_{academic_year_key(tahun_ajaran)}"


class FirestoreService:
    def __init__(self, project_id: str, client: Any = None, config: Settings = settings) -> None:
        if client is None:
            if not project_id:
                raise FirestoreServiceError("Missing FIREBASE_PROJECT_ID in environment")
            client = firestore.Client(project=project_id)
        self.db = client
        self.config = config

    @classmethod
    def from_settings(cls) -> "FirestoreService":
        return cls(settings.firebase_project_id)

    # --- activity log ---

    def add_activity_log(
        self,
        action: str,
        details: str = "",
        user_id: Optional[str] = None,
        user_name: Optional[str] = None,
    ) -> str:
        ref = self.db.collection(self.config.activity_logs_collection).document()
        try:
            ref.set(
                {
                    "timestamp": _now(),
                    "action": action,
                    "details": details,
                    "userId": user_id,
                    "userName": user_name,
                }
            )
        except GoogleAPIError as exc:
            raise FirestoreServiceError(f"Failed to write activity log '{action}': {exc}") from exc
        return ref.id

    # --- weights ---

    def _weights_ref(self):
        return self.db.collection(self.config.weights_collection).document(self.config.weights_document_id)

    def get_weights(self) -> WeightConfiguration:
        try:
            snap = self._weights_ref().get()
        except GoogleAPIError as exc:
            raise FirestoreServiceError(f"Failed to load weights: {exc}") from exc
        if not snap.exists:
            return WeightConfiguration()
        return WeightConfiguration.from_mapping(snap.to_dict() or {})

    def update_weights(
        self,
        changes: Mapping[str, Any],
        *,
        user_id: Optional[str] = None,
        user_name: Optional[str] = None,
    ) -> WeightConfiguration:
        if not changes:
            raise InvalidInputError("No weight fields supplied")
        unknown = [key for key in changes if key not in WeightConfiguration.FIELD_MAP]
        if unknown:
            raise InvalidInputError(f"Unknown weight fields: {', '.join(sorted(unknown))}")

        merged = {**self.get_weights().to_mapping(), **dict(changes)}
        weights = WeightConfiguration.from_mapping(merged)
        if weights.academic_weight_total != 100:
            logger.warning("Academic weights sum to %s instead of 100", weights.academic_weight_total)

        stored = weights.to_mapping()
        self._weights_ref().set({key: stored[key] for key in changes}, merge=True)

        details = ", ".join(f"{key}={stored[key]}" for key in changes)
        self.add_activity_log("Bobot diperbarui", details, user_id, user_name)
        logger.info("Weights updated: %s", details)
        return weights

    # --- KKM ---

    def get_kkm(self, mapel: str, tahun_ajaran: str) -> float:
        ref = self.db.collection(self.config.kkm_collection).document(kkm_document_id(mapel, tahun_ajaran))
        try:
            snap = ref.get()
        except GoogleAPIError as exc:
            raise FirestoreServiceError(f"Failed to load KKM for {mapel} {tahun_ajaran}: {exc}") from exc
        if not snap.exists:
            return self.config.default_kkm
        value = (snap.to_dict() or {}).get("kkmValue")
        if value is None:
            return self.config.default_kkm
        return coerce_number(value, "kkmValue")

    def list_kkm(self, tahun_ajaran: str) -> Dict[str, float]:
        query = self.db.collection(self.config.kkm_collection).where(
            filter=firestore.FieldFilter("tahun_ajaran", "==", tahun_ajaran)
        )
        results: Dict[str, float] = {}
        for doc in query.stream():
            data = doc.to_dict() or {}
            if data.get("mapel") and data.get("kkmValue") is not None:
                results[str(data["mapel"])] = coerce_number(data["kkmValue"], "kkmValue")
        return results

    def set_kkm(
        self,
        mapel: str,
        tahun_ajaran: str,
        value: float,
        *,
        user_id: Optional[str] = None,
        user_name: Optional[str] = None,
    ) -> Dict[str, Any]:
        if not mapel.strip() or not tahun_ajaran.strip():
            raise InvalidInputError("mapel and tahun_ajaran are required")
        kkm_value = coerce_number(value, "kkmValue")
        if not 0 <= kkm_value <= 100:
            raise InvalidInputError("kkmValue must be between 0 and 100")

        ref = self.db.collection(self.config.kkm_collection).document(kkm_document_id(mapel, tahun_ajaran))
        data = {
            "mapel": mapel.strip(),
            "tahun_ajaran": tahun_ajaran.strip(),
            "kkmValue": kkm_value,
            "updatedAt": _now(),
        }
        ref.set(data)
        self.add_activity_log(
            "KKM diperbarui",
            f"KKM untuk {data['mapel']} TA {data['tahun_ajaran']} menjadi {kkm_value}",
            user_id,
            user_name,
        )
        return {**data, "id": ref.id}

    # --- grades ---

    def save_grade(
        self,
        record: GradeRecord,
        teacher_uid: str,
        *,
        user_name: Optional[str] = None,
        weights: Optional[WeightConfiguration] = None,
        kkm: Optional[float] = None,
        log_activity: bool = True,
    ) -> Dict[str, Any]:
        if not record.id_siswa or not record.mapel or not record.tahun_ajaran:
            raise InvalidInputError("id_siswa, mapel and tahun_ajaran are required")
        if not teacher_uid:
            raise InvalidInputError("teacher_uid is required")

        weights = weights or self.get_weights()
        final_grade = compute_final_grade(record, weights)
        if kkm is None:
            kkm = self.get_kkm(record.mapel, record.tahun_ajaran)
        completion = is_complete(record, final_grade, kkm)

        try:
            snap = self._find_grade(record, teacher_uid)
            if snap is None:
                ref = self.db.collection(self.config.grades_collection).document(
                    grade_document_id(record, teacher_uid)
                )
                existing = {}
            else:
                ref = snap.reference
                existing = snap.to_dict() or {}
            now = _now()
            stored = replace(record, teacher_uid=teacher_uid, final_grade=final_grade)
            data = stored.to_mapping()
            data["createdAt"] = existing.get("createdAt") or now
            data["updatedAt"] = now
            ref.set(data)
        except GoogleAPIError as exc:
            raise FirestoreServiceError(f"Failed to save grade for {record.id_siswa}: {exc}") from exc

        if log_activity:
            self.add_activity_log(
                "Nilai Disimpan",
                f"Nilai {record.mapel} untuk siswa {record.id_siswa} disimpan",
                teacher_uid,
                user_name,
            )
        logger.info("Saved grade %s (nilai_akhir=%s)", ref.id, final_grade)
        return {**data, "id": ref.id, "completion": completion.to_dict()}

    def _find_grade(self, record: GradeRecord, teacher_uid: str):
        """Existing document for the record's tuple, whatever id it was stored under."""
        query = self.db.collection(self.config.grades_collection)
        for field_name, value in (
            ("id_siswa", record.id_siswa),
            ("mapel", record.mapel),
            ("semester", record.semester),
            ("tahun_ajaran", record.tahun_ajaran),
            ("teacherUid", teacher_uid),
        ):
            query = query.where(filter=firestore.FieldFilter(field_name, "==", value))
        matches = list(query.stream())
        if not matches:
            return None
        preferred = grade_document_id(record, teacher_uid)
        chosen = next((snap for snap in matches if snap.id == preferred), matches[0])
        if len(matches) > 1:
            logger.warning("%s grade documents share the tuple of %s; updating %s", len(matches), preferred, chosen.id)
        return chosen

    def list_grades(
        self,
        *,
        teacher_uid: Optional[str] = None,
        mapel: Optional[str] = None,
        tahun_ajaran: Optional[str] = None,
        semester: Optional[int] = None,
        id_siswa: Optional[str] = None,
    ) -> List[Dict]:
        query = self.db.collection(self.config.grades_collection)
        filters = {
            "teacherUid": teacher_uid,
            "mapel": mapel,
            "tahun_ajaran": tahun_ajaran,
            "semester": semester,
            "id_siswa": id_siswa,
        }
        for field_name, value in filters.items():
            if value is not None:
                query = query.where(filter=firestore.FieldFilter(field_name, "==", value))

        results: List[Dict] = []
        for doc in query.stream():
            data = doc.to_dict() or {}
            data["id"] = doc.id
            results.append(data)
        results.sort(
            key=lambda row: row.get("updatedAt") or datetime.min.replace(tzinfo=timezone.utc),
            reverse=True,
        )
        return results

    def get_grade_recap(
        self,
        mapel: str,
        tahun_ajaran: str,
        semester: int,
        *,
        teacher_uid: Optional[str] = None,
    ) -> List[Dict]:
        docs = self.list_grades(teacher_uid=teacher_uid, mapel=mapel, tahun_ajaran=tahun_ajaran, semester=semester)
        weights = self.get_weights()
        kkm_by_subject = {mapel: self.get_kkm(mapel, tahun_ajaran)}

        recap = []
        for doc in docs:
            # A corrupt document is reported on its own row; the rest still compute.
            try:
                record = GradeRecord.from_mapping(doc)
                row = build_grade_recap([record], weights, kkm_by_subject, default_kkm=self.config.default_kkm)[0]
            except InvalidInputError as exc:
                logger.warning("Grade %s skipped in recap: %s", doc["id"], exc)
                recap.append({"id": doc["id"], "id_siswa": doc.get("id_siswa", ""), "error": str(exc)})
                continue
            item = row.to_dict()
            item["id"] = doc["id"]
            recap.append(item)
        recap.sort(key=lambda item: str(item.get("id_siswa") or ""))
        return recap

    def import_grade_rows(
        self,
        rows: Iterable[Mapping[str, Any]],
        teacher_uid: str,
        *,
        mapel: Optional[str] = None,
        semester: Optional[int] = None,
        tahun_ajaran: Optional[str] = None,
        user_name: Optional[str] = None,
    ) -> ImportSummary:
        """
        Save parsed spreadsheet rows one by one. A bad row is reported and
        skipped; rows already written stay written.
        """
        defaults = {"mapel": mapel, "semester": semester, "tahun_ajaran": tahun_ajaran}
        weights = self.get_weights()
        kkm_cache: Dict[tuple, float] = {}
        summary = ImportSummary()

        for row_number, row in enumerate(rows, start=1):
            merged = dict(row or {})
            for key, value in defaults.items():
                if value is not None and merged.get(key) in (None, ""):
                    merged[key] = value
            id_siswa = str(merged.get("id_siswa") or "")
            try:
                record = GradeRecord.from_mapping(merged)
                cache_key = (record.mapel, record.tahun_ajaran)
                if cache_key not in kkm_cache:
                    kkm_cache[cache_key] = self.get_kkm(record.mapel, record.tahun_ajaran)
                self.save_grade(
                    record,
                    teacher_uid,
                    weights=weights,
                    kkm=kkm_cache[cache_key],
                    log_activity=False,
                )
                summary.imported += 1
            except (InvalidInputError, FirestoreServiceError, GoogleAPIError) as exc:
                logger.warning("Import row %s (%s) rejected: %s", row_number, id_siswa, exc)
                summary.failures.append(ImportFailure(row_number, id_siswa, str(exc)))

        try:
            self.add_activity_log(
                "Impor Nilai",
                f"{summary.imported} baris berhasil, {len(summary.failures)} gagal",
                teacher_uid,
                user_name,
            )
        except FirestoreServiceError as exc:
            # The rows are already written; the caller still needs the summary.
            logger.error("Import summary not logged: %s", exc)
        return summary

    # --- students ---

    def delete_student(
        self,
        student_doc_id: str,
        *,
        user_id: Optional[str] = None,
        user_name: Optional[str] = None,
    ) -> int:
        """Delete a student and every grade document that belongs to them.

        Returns the number of grade documents removed.
        """
        student_ref = self.db.collection(self.config.students_collection).document(student_doc_id)
        snap = student_ref.get()
        if not snap.exists:
            raise FirestoreServiceError(f"Student {student_doc_id} not found.")

        student = snap.to_dict() or {}
        id_siswa = student.get("id_siswa")
        student_ref.delete()

        deleted = 0
        if id_siswa:
            grades = self.db.collection(self.config.grades_collection).where(
                filter=firestore.FieldFilter("id_siswa", "==", id_siswa)
            )
            refs = [doc.reference for doc in grades.stream()]
            for start in range(0, len(refs), BATCH_LIMIT):
                batch = self.db.batch()
                for ref in refs[start:start + BATCH_LIMIT]:
                    batch.delete(ref)
                batch.commit()
            deleted = len(refs)

        self.add_activity_log(
            "Siswa Dihapus",
            f"Siswa {student.get('nama', student_doc_id)} beserta {deleted} data nilai dihapus",
            user_id,
            user_name,
        )
        logger.info("Deleted student %s and %s grade documents", student_doc_id, deleted)
        return deleted

    # --- holidays ---

    def list_holidays(self, year: int, month: int) -> List[str]:
        start, end = _month_bounds(year, month)
        query = (
            self.db.collection(self.config.holidays_collection)
            .where(filter=firestore.FieldFilter("dateString", ">=", start))
            .where(filter=firestore.FieldFilter("dateString", "<", end))
        )
        return sorted((doc.to_dict() or {}).get("dateString", doc.id) for doc in query.stream())

    def set_holiday(
        self,
        day: Any,
        description: str = "Hari Libur Ditetapkan Admin",
        *,
        user_id: Optional[str] = None,
        user_name: Optional[str] = None,
    ) -> str:
        date_string = self._date_string(day)
        self.db.collection(self.config.holidays_collection).document(date_string).set(
            {"dateString": date_string, "description": description}
        )
        self.add_activity_log("Hari Libur Ditambahkan", f"Tanggal: {date_string}", user_id, user_name)
        return date_string

    def delete_holiday(
        self,
        day: Any,
        *,
        user_id: Optional[str] = None,
        user_name: Optional[str] = None,
    ) -> str:
        date_string = self._date_string(day)
        self.db.collection(self.config.holidays_collection).document(date_string).delete()
        self.add_activity_log("Hari Libur Dihapus", f"Tanggal: {date_string}", user_id, user_name)
        return date_string

    # --- teacher attendance ---

    @staticmethod
    def _date_string(day: Any) -> str:
        parsed = to_date(day)
        if parsed is None:
            raise InvalidInputError("A date is required")
        return parsed.isoformat()

    def record_teacher_attendance(
        self,
        teacher_uid: str,
        day: Any,
        status: str,
        *,
        teacher_name: Optional[str] = None,
        notes: str = "",
    ) -> Dict[str, Any]:
        if not teacher_uid:
            raise InvalidInputError("teacher_uid is required")
        if status not in ATTENDANCE_STATUSES:
            raise InvalidInputError(f"status must be one of {', '.join(ATTENDANCE_STATUSES)}")

        date_string = self._date_string(day)
        ref = self.db.collection(self.config.teacher_attendance_collection).document(
            f"{teacher_uid}_{date_string}"
        )
        data = {
            "teacherUid": teacher_uid,
            "teacherName": teacher_name,
            "date": datetime.combine(date.fromisoformat(date_string), time(), tzinfo=timezone.utc),
            "dateString": date_string,
            "status": status,
            "notes": notes,
            "recordedAt": _now(),
        }
        try:
            ref.set(data)
        except GoogleAPIError as exc:
            raise FirestoreServiceError(f"Failed to record attendance for {date_string}: {exc}") from exc
        self.add_activity_log(
            "Presensi Dicatat",
            f"Presensi {date_string}: {status}",
            teacher_uid,
            teacher_name,
        )
        return {**data, "id": ref.id}

    def list_teacher_attendance(self, teacher_uid: str, year: int, month: int) -> List[Dict]:
        start, end = _month_bounds(year, month)
        # Equality-only query; the month range is applied here to avoid a composite index.
        query = self.db.collection(self.config.teacher_attendance_collection).where(
            filter=firestore.FieldFilter("teacherUid", "==", teacher_uid)
        )
        results: List[Dict] = []
        for doc in query.stream():
            data = doc.to_dict() or {}
            day = to_date(data)
            if day is None or not start <= day.isoformat() < end:
                continue
            data["id"] = doc.id
            results.append(data)
        results.sort(key=lambda row: to_date(row).isoformat())
        return results

    def get_monthly_attendance_summary(self, teacher_uid: str, year: int, month: int) -> MonthlyAttendanceSummary:
        holidays = self.list_holidays(year, month)
        records = self.list_teacher_attendance(teacher_uid, year, month)
        workdays = count_workdays(year, month, holidays, records)
        return summarize_monthly_attendance(records, workdays)
