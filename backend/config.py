import os
from pathlib import Path

from backend.network import get_local_ip

BASE_DIR = Path(__file__).resolve().parents[1]

DATA_PATH = Path(os.getenv("ATTENDCODE_DATA_PATH", BASE_DIR / "database" / "attendance.json"))
HOST = os.getenv("ATTENDCODE_HOST", "0.0.0.0").strip() or "0.0.0.0"


def _parse_bool(value: str | None, fallback: bool) -> bool:
    if value is None:
        return fallback
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "on"}:
        return True
    if normalized in {"0", "false", "no", "off"}:
        return False
    return fallback


def _parse_csv(value: str | None, fallback: list[str]) -> list[str]:
    if not value:
        return fallback
    parsed = [item.strip() for item in value.split(",") if item.strip()]
    return parsed or fallback


def _parse_int(value: str | None, fallback: int, *, minimum: int = 0) -> int:
    if not value:
        return fallback
    try:
        return max(minimum, int(value.strip()))
    except ValueError:
        return fallback


def _parse_color(value: str | None, fallback: str) -> str:
    normalized = (value or "").strip().lower()
    if len(normalized) == 7 and normalized.startswith("#"):
        try:
            int(normalized[1:], 16)
        except ValueError:
            return fallback
        return normalized
    return fallback


def _parse_checkout_mode(value: str | None) -> str:
    normalized = (value or "").strip().lower()
    if normalized == "overwrite":
        return "overwrite"
    return "reject"


PORT = _parse_int(os.getenv("ATTENDCODE_PORT"), 3000, minimum=1)
BASE_URL = (
    os.getenv("ATTENDCODE_BASE_URL", "").strip().rstrip("/")
    or f"http://{get_local_ip()}:{PORT}"
)

LOG_LEVEL = os.getenv("ATTENDCODE_LOG_LEVEL", "INFO").strip().upper() or "INFO"

CORS_ALLOW_ORIGINS = _parse_csv(
    os.getenv("ATTENDCODE_CORS_ALLOW_ORIGINS"),
    ["http://localhost:3000", "http://127.0.0.1:3000"],
)
CORS_ALLOW_METHODS = _parse_csv(
    os.getenv("ATTENDCODE_CORS_ALLOW_METHODS"),
    ["GET", "POST", "PUT", "OPTIONS"],
)
CORS_ALLOW_HEADERS = _parse_csv(
    os.getenv("ATTENDCODE_CORS_ALLOW_HEADERS"),
    ["Content-Type", "Accept"],
)
CORS_ALLOW_CREDENTIALS = _parse_bool(os.getenv("ATTENDCODE_CORS_ALLOW_CREDENTIALS"), True)

# QR artifact rendering
ARTIFACT_WIDTH = _parse_int(os.getenv("ATTENDCODE_ARTIFACT_WIDTH"), 300, minimum=21)
ARTIFACT_MARGIN = _parse_int(os.getenv("ATTENDCODE_ARTIFACT_MARGIN"), 2)
ARTIFACT_DARK = _parse_color(os.getenv("ATTENDCODE_ARTIFACT_DARK"), "#000000")
ARTIFACT_LIGHT = _parse_color(os.getenv("ATTENDCODE_ARTIFACT_LIGHT"), "#ffffff")

# reject | overwrite
CHECKOUT_MODE = _parse_checkout_mode(os.getenv("ATTENDCODE_CHECKOUT_MODE"))
CODE_MAX_ATTEMPTS = _parse_int(os.getenv("ATTENDCODE_CODE_MAX_ATTEMPTS"), 25, minimum=1)

MAX_EXTRA_FIELDS = _parse_int(os.getenv("ATTENDCODE_MAX_EXTRA_FIELDS"), 32)
MAX_FIELD_KEY_LENGTH = 64
MAX_FIELD_LENGTH = _parse_int(os.getenv("ATTENDCODE_MAX_FIELD_LENGTH"), 512, minimum=1)
