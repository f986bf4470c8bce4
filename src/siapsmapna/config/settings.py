from dataclasses import dataclass
import os
from dotenv import load_dotenv


load_dotenv()


def _split_csv(value: str) -> tuple[str, ...]:
    return tuple(item.strip() for item in value.split(",") if item.strip())


def _float_env(name: str, default: float) -> float:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


@dataclass(frozen=True)
class Settings:
    firebase_project_id: str = os.getenv("FIREBASE_PROJECT_ID", "")

    weights_collection: str = os.getenv("SIAP_WEIGHTS_COLLECTION", "bobot")
    weights_document_id: str = os.getenv("SIAP_WEIGHTS_DOCUMENT_ID", "global_weights")
    grades_collection: str = os.getenv("SIAP_GRADES_COLLECTION", "nilai")
    students_collection: str = os.getenv("SIAP_STUDENTS_COLLECTION", "siswa")
    kkm_collection: str = os.getenv("SIAP_KKM_COLLECTION", "kkm_settings")
    holidays_collection: str = os.getenv("SIAP_HOLIDAYS_COLLECTION", "school_holidays")
    teacher_attendance_collection: str = os.getenv(
        "SIAP_TEACHER_ATTENDANCE_COLLECTION", "teacher_daily_attendance"
    )
    activity_logs_collection: str = os.getenv("SIAP_ACTIVITY_LOGS_COLLECTION", "activity_logs")

    default_kkm: float = _float_env("SIAP_DEFAULT_KKM", 70.0)
    log_level: str = os.getenv("SIAP_LOG_LEVEL", "INFO").upper()

    cors_allowed_origins: tuple[str, ...] = _split_csv(
        os.getenv("CORS_ALLOWED_ORIGINS", "http://localhost:3000,http://127.0.0.1:3000")
    )


settings = Settings()
