from fastapi import APIRouter

from backend.config import (
    ARTIFACT_DARK,
    ARTIFACT_LIGHT,
    ARTIFACT_MARGIN,
    ARTIFACT_WIDTH,
    BASE_URL,
    CHECKOUT_MODE,
    CODE_MAX_ATTEMPTS,
    MAX_EXTRA_FIELDS,
    MAX_FIELD_KEY_LENGTH,
    MAX_FIELD_LENGTH,
)

router = APIRouter()


@router.get("/health")
def health():
    return {"status": "ok"}


@router.get("/config/attendance")
def attendance_config():
    return {
        "base_url": BASE_URL,
        "checkout_mode": CHECKOUT_MODE,
        "code_max_attempts": CODE_MAX_ATTEMPTS,
        "artifact": {
            "width": ARTIFACT_WIDTH,
            "margin": ARTIFACT_MARGIN,
            "dark": ARTIFACT_DARK,
            "light": ARTIFACT_LIGHT,
        },
        "max_extra_fields": MAX_EXTRA_FIELDS,
        "max_field_key_length": MAX_FIELD_KEY_LENGTH,
        "max_field_length": MAX_FIELD_LENGTH,
    }
