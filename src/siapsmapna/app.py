from datetime import date
import logging
import sys
from typing import Any, Dict, List, Literal, Optional, Union

from fastapi import FastAPI, Header, HTTPException, status
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field

from siapsmapna.config.settings import settings
from siapsmapna.core.attendance import count_workdays
from siapsmapna.core.completion import is_complete
from siapsmapna.core.grades import compute_final_grade
from siapsmapna.core.models import GradeRecord, WeightConfiguration
from siapsmapna.core.validation import InvalidInputError
from siapsmapna.services.firestore_service import FirestoreService, FirestoreServiceError


logging.basicConfig(
    level=getattr(logging, settings.log_level, logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[logging.StreamHandler(sys.stdout)],
)
logger = logging.getLogger(__name__)


app = FastAPI(title="SiAP Smapna API", version="1.0.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=list(settings.cors_allowed_origins),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


class WeightsPayload(BaseModel):
    tugas: Optional[float] = Field(default=None, ge=0, le=100)
    tes: Optional[float] = Field(default=None, ge=0, le=100)
    pts: Optional[float] = Field(default=None, ge=0, le=100)
    pas: Optional[float] = Field(default=None, ge=0, le=100)
    kehadiran: Optional[float] = Field(default=None, ge=0, le=100)
    eskul: Optional[float] = Field(default=None, ge=0)
    osis: Optional[float] = Field(default=None, ge=0)
    totalHariEfektifGanjil: Optional[int] = Field(default=None, gt=0)
    totalHariEfektifGenap: Optional[int] = Field(default=None, gt=0)


class KkmPayload(BaseModel):
    mapel: str
    tahun_ajaran: str
    kkmValue: float = Field(ge=0, le=100)


class GradePayload(BaseModel):
    id_siswa: str
    mapel: str
    semester: int = Field(ge=1, le=2)
    tahun_ajaran: str
    tugas: Union[List[float], str] = Field(default_factory=list)
    tes: Optional[float] = Field(default=None, ge=0, le=100)
    pts: Optional[float] = Field(default=None, ge=0, le=100)
    pas: Optional[float] = Field(default=None, ge=0, le=100)
    kehadiran: Optional[float] = Field(default=None, ge=0, le=100)
    eskul: Optional[float] = Field(default=None, ge=0, le=100)
    osis: Optional[float] = Field(default=None, ge=0, le=100)


class GradePreviewPayload(GradePayload):
    bobot: Optional[WeightsPayload] = None
    kkm: Optional[float] = Field(default=None, ge=0, le=100)


class GradeImportPayload(BaseModel):
    rows: List[Dict[str, Any]]
    mapel: Optional[str] = None
    semester: Optional[int] = Field(default=None, ge=1, le=2)
    tahun_ajaran: Optional[str] = None


class HolidayPayload(BaseModel):
    date: date
    description: str = "Hari Libur Ditetapkan Admin"


class AttendancePayload(BaseModel):
    date: date
    status: Literal["Hadir", "Izin", "Sakit", "Alpa"]
    teacher_name: Optional[str] = None
    notes: str = ""


def _required_uid(x_user_id: Optional[str]) -> str:
    if not x_user_id:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing x-user-id header")
    return x_user_id


def _invalid(exc: InvalidInputError) -> HTTPException:
    return HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc))


def _record_from_payload(payload: GradePayload) -> GradeRecord:
    return GradeRecord.from_mapping(payload.model_dump(exclude={"bobot", "kkm"}))


@app.get("/health")
def health() -> Dict[str, str]:
    return {"status": "ok"}


@app.get("/weights")
def get_weights() -> Dict:
    fs = FirestoreService.from_settings()
    try:
        weights = fs.get_weights()
    except FirestoreServiceError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except InvalidInputError as exc:
        raise _invalid(exc) from exc
    return {**weights.to_mapping(), "academic_weight_total": weights.academic_weight_total}


@app.put("/weights")
def update_weights(
    payload: WeightsPayload,
    x_user_id: Optional[str] = Header(default=None),
    x_user_name: Optional[str] = Header(default=None),
) -> Dict:
    uid = _required_uid(x_user_id)
    fs = FirestoreService.from_settings()
    try:
        weights = fs.update_weights(payload.model_dump(exclude_none=True), user_id=uid, user_name=x_user_name)
    except InvalidInputError as exc:
        raise _invalid(exc) from exc
    except FirestoreServiceError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    return {**weights.to_mapping(), "academic_weight_total": weights.academic_weight_total}


@app.get("/kkm")
def get_kkm(mapel: str, tahun_ajaran: str) -> Dict:
    fs = FirestoreService.from_settings()
    try:
        return {"mapel": mapel, "tahun_ajaran": tahun_ajaran, "kkmValue": fs.get_kkm(mapel, tahun_ajaran)}
    except InvalidInputError as exc:
        raise _invalid(exc) from exc
    except FirestoreServiceError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc


@app.put("/kkm")
def set_kkm(
    payload: KkmPayload,
    x_user_id: Optional[str] = Header(default=None),
    x_user_name: Optional[str] = Header(default=None),
) -> Dict:
    uid = _required_uid(x_user_id)
    fs = FirestoreService.from_settings()
    try:
        return fs.set_kkm(payload.mapel, payload.tahun_ajaran, payload.kkmValue, user_id=uid, user_name=x_user_name)
    except InvalidInputError as exc:
        raise _invalid(exc) from exc
    except FirestoreServiceError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc


@app.post("/grades/preview")
def preview_grade(payload: GradePreviewPayload) -> Dict:
    """Final grade and completion status without writing anything."""
    try:
        record = _record_from_payload(payload)
        if payload.bobot is not None:
            weights = WeightConfiguration.from_mapping(payload.bobot.model_dump(exclude_none=True))
            kkm = payload.kkm if payload.kkm is not None else settings.default_kkm
        else:
            fs = FirestoreService.from_settings()
            weights = fs.get_weights()
            kkm = payload.kkm if payload.kkm is not None else fs.get_kkm(record.mapel, record.tahun_ajaran)
        final_grade = compute_final_grade(record, weights)
        completion = is_complete(record, final_grade, kkm)
    except InvalidInputError as exc:
        raise _invalid(exc) from exc
    except FirestoreServiceError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    return {"nilai_akhir": final_grade, "completion": completion.to_dict()}


@app.post("/grades")
def save_grade(
    payload: GradePayload,
    x_user_id: Optional[str] = Header(default=None),
    x_user_name: Optional[str] = Header(default=None),
) -> Dict:
    uid = _required_uid(x_user_id)
    fs = FirestoreService.from_settings()
    try:
        return fs.save_grade(_record_from_payload(payload), uid, user_name=x_user_name)
    except InvalidInputError as exc:
        raise _invalid(exc) from exc
    except FirestoreServiceError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc


@app.get("/grades")
def list_grades(
    mapel: Optional[str] = None,
    tahun_ajaran: Optional[str] = None,
    semester: Optional[int] = None,
    id_siswa: Optional[str] = None,
    teacher_uid: Optional[str] = None,
) -> List[Dict]:
    fs = FirestoreService.from_settings()
    try:
        return fs.list_grades(
            teacher_uid=teacher_uid,
            mapel=mapel,
            tahun_ajaran=tahun_ajaran,
            semester=semester,
            id_siswa=id_siswa,
        )
    except FirestoreServiceError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc


@app.get("/grades/recap")
def grade_recap(mapel: str, tahun_ajaran: str, semester: int, teacher_uid: Optional[str] = None) -> List[Dict]:
    fs = FirestoreService.from_settings()
    try:
        return fs.get_grade_recap(mapel, tahun_ajaran, semester, teacher_uid=teacher_uid)
    except InvalidInputError as exc:
        raise _invalid(exc) from exc
    except FirestoreServiceError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc


@app.post("/grades/import")
def import_grades(
    payload: GradeImportPayload,
    x_user_id: Optional[str] = Header(default=None),
    x_user_name: Optional[str] = Header(default=None),
) -> Dict:
    uid = _required_uid(x_user_id)
    fs = FirestoreService.from_settings()
    try:
        summary = fs.import_grade_rows(
            payload.rows,
            uid,
            mapel=payload.mapel,
            semester=payload.semester,
            tahun_ajaran=payload.tahun_ajaran,
            user_name=x_user_name,
        )
    except InvalidInputError as exc:
        raise _invalid(exc) from exc
    except FirestoreServiceError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    return summary.to_dict()


@app.delete("/students/{student_id}")
def delete_student(
    student_id: str,
    x_user_id: Optional[str] = Header(default=None),
    x_user_name: Optional[str] = Header(default=None),
) -> Dict:
    uid = _required_uid(x_user_id)
    fs = FirestoreService.from_settings()
    try:
        deleted = fs.delete_student(student_id, user_id=uid, user_name=x_user_name)
    except FirestoreServiceError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    return {"status": "deleted", "grades_deleted": deleted}


@app.get("/holidays")
def list_holidays(year: int, month: int) -> List[str]:
    fs = FirestoreService.from_settings()
    try:
        return fs.list_holidays(year, month)
    except InvalidInputError as exc:
        raise _invalid(exc) from exc
    except FirestoreServiceError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc


@app.post("/holidays")
def set_holiday(
    payload: HolidayPayload,
    x_user_id: Optional[str] = Header(default=None),
    x_user_name: Optional[str] = Header(default=None),
) -> Dict[str, str]:
    uid = _required_uid(x_user_id)
    fs = FirestoreService.from_settings()
    try:
        return {"dateString": fs.set_holiday(payload.date, payload.description, user_id=uid, user_name=x_user_name)}
    except FirestoreServiceError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc


@app.delete("/holidays/{date_string}")
def delete_holiday(
    date_string: str,
    x_user_id: Optional[str] = Header(default=None),
    x_user_name: Optional[str] = Header(default=None),
) -> Dict[str, str]:
    uid = _required_uid(x_user_id)
    fs = FirestoreService.from_settings()
    try:
        fs.delete_holiday(date_string, user_id=uid, user_name=x_user_name)
    except InvalidInputError as exc:
        raise _invalid(exc) from exc
    except FirestoreServiceError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    return {"status": "deleted"}


@app.post("/attendance")
def record_attendance(payload: AttendancePayload, x_user_id: Optional[str] = Header(default=None)) -> Dict:
    uid = _required_uid(x_user_id)
    fs = FirestoreService.from_settings()
    try:
        return fs.record_teacher_attendance(
            uid,
            payload.date,
            payload.status,
            teacher_name=payload.teacher_name,
            notes=payload.notes,
        )
    except InvalidInputError as exc:
        raise _invalid(exc) from exc
    except FirestoreServiceError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc


@app.get("/attendance/workdays")
def workdays(year: int, month: int, x_user_id: Optional[str] = Header(default=None)) -> Dict[str, int]:
    fs = FirestoreService.from_settings()
    try:
        holidays = fs.list_holidays(year, month)
        records = fs.list_teacher_attendance(x_user_id, year, month) if x_user_id else []
        return {"year": year, "month": month, "workdays": count_workdays(year, month, holidays, records)}
    except InvalidInputError as exc:
        raise _invalid(exc) from exc
    except FirestoreServiceError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc


@app.get("/attendance/summary")
def attendance_summary(year: int, month: int, x_user_id: Optional[str] = Header(default=None)) -> Dict:
    uid = _required_uid(x_user_id)
    fs = FirestoreService.from_settings()
    try:
        return fs.get_monthly_attendance_summary(uid, year, month).to_dict()
    except InvalidInputError as exc:
        raise _invalid(exc) from exc
    except FirestoreServiceError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
