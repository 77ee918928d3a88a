import logging
import math
from typing import Any, Mapping

from backend.artifact import encode_artifact
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
from backend.errors import AlreadyCheckedOut, DuplicateCode, InvalidFields
from backend.services.codes import generate_code
from database.db import (
    Record,
    append_record,
    find_by_code,
    list_all,
    now_iso,
    update_record,
)

logger = logging.getLogger(__name__)

RESERVED_FIELDS = frozenset({"code", "artifact", "qrCode", "createdAt", "updatedAt", "checkOut"})


def checkout_url(code: str) -> str:
    return f"{BASE_URL}/api/attendance/{code}"


def artifact_options() -> dict[str, Any]:
    return {
        "width": ARTIFACT_WIDTH,
        "margin": ARTIFACT_MARGIN,
        "dark": ARTIFACT_DARK,
        "light": ARTIFACT_LIGHT,
    }


def clean_extra_fields(fields: Mapping[str, Any] | None) -> dict[str, Any]:
    """
    Validates caller-supplied fields against the extension-map bounds.

    Returns a plain dict copy; raises InvalidFields on the first violation.
    """
    if fields is None:
        return {}
    if not isinstance(fields, Mapping):
        raise InvalidFields("Extra fields must be a JSON object.")
    if not fields:
        return {}
    if len(fields) > MAX_EXTRA_FIELDS:
        raise InvalidFields(f"At most {MAX_EXTRA_FIELDS} extra fields are allowed.")

    cleaned: dict[str, Any] = {}
    for key, value in fields.items():
        if not isinstance(key, str) or not key.strip():
            raise InvalidFields("Field names must be non-empty strings.")
        if len(key) > MAX_FIELD_KEY_LENGTH:
            raise InvalidFields(f"Field name {key[:16]!r}... exceeds {MAX_FIELD_KEY_LENGTH} characters.")
        if key in RESERVED_FIELDS:
            raise InvalidFields(f"Field {key!r} is reserved.")
        if value is not None and not isinstance(value, (str, int, float, bool)):
            raise InvalidFields(f"Field {key!r} must be a string, number, boolean or null.")
        if isinstance(value, float) and not math.isfinite(value):
            raise InvalidFields(f"Field {key!r} must be a finite number.")
        if isinstance(value, str) and len(value) > MAX_FIELD_LENGTH:
            raise InvalidFields(f"Field {key!r} exceeds {MAX_FIELD_LENGTH} characters.")
        cleaned[key] = value
    return cleaned


def check_in(extra_fields: Mapping[str, Any] | None = None, *, now: str | None = None) -> tuple[Record, str]:
    """
    Creates a new open attendance record.

    Returns (record, url) where url is the check-out link encoded in the
    record's artifact. A code collision regenerates the code and retries,
    up to CODE_MAX_ATTEMPTS times.
    """
    fields = clean_extra_fields(extra_fields)
    options = artifact_options()

    for attempt in range(1, CODE_MAX_ATTEMPTS + 1):
        code = generate_code()
        url = checkout_url(code)
        timestamp = now or now_iso()
        record: Record = {
            "code": code,
            "artifact": encode_artifact(url, **options),
            "createdAt": timestamp,
            "updatedAt": timestamp,
            **fields,
        }
        try:
            append_record(record)
        except DuplicateCode:
            logger.warning("Code collision on %s (attempt %d/%d)", code, attempt, CODE_MAX_ATTEMPTS)
            continue

        logger.info("Checked in %s", code)
        return record, url

    logger.error("Giving up after %d code collisions", CODE_MAX_ATTEMPTS)
    raise DuplicateCode(code)


def _ensure_open(record: Record) -> None:
    if record.get("checkOut"):
        raise AlreadyCheckedOut(record["code"])


def check_out(code: str, *, now: str | None = None) -> Record:
    """
    Records the check-out time for `code`.

    In "reject" mode a record that already has checkOut raises
    AlreadyCheckedOut; in "overwrite" mode the timestamp is refreshed.
    """
    precondition = _ensure_open if CHECKOUT_MODE == "reject" else None
    try:
        record = update_record(code, {}, touch=("checkOut",), precondition=precondition, now=now)
    except AlreadyCheckedOut:
        logger.info("Rejected repeat check-out for %s", code)
        raise

    logger.info("Checked out %s", code)
    return record


def get_record(code: str) -> Record:
    return find_by_code(code)


def list_records() -> list[Record]:
    return list_all()
