import json
import logging
import os
import tempfile
import threading
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Callable, Iterable

from backend.config import DATA_PATH
from backend.errors import DuplicateCode, RecordNotFound, StorageUnavailable

logger = logging.getLogger(__name__)

# Guards every load-modify-store cycle. Readers never take it: writes land
# through os.replace, so a reader always sees a whole committed document.
STORE_LOCK = threading.Lock()

PROTECTED_FIELDS = frozenset({"code", "createdAt"})
LEGACY_ARTIFACT_KEY = "qrCode"

Record = dict[str, Any]


# -----------------------------
# Timestamps
# -----------------------------
def now_iso() -> str:
    return _format_timestamp(datetime.now(timezone.utc))


def _format_timestamp(value: datetime) -> str:
    return value.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _parse_timestamp(value: str) -> datetime | None:
    try:
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except (TypeError, ValueError):
        return None
    # Naive timestamps are taken as UTC.
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def next_timestamp(previous: str | None, now: str | None = None) -> str:
    """
    Returns `now` (or the current time) unless it does not advance past
    `previous`, in which case `previous + 1ms` is returned instead.
    """
    candidate = now or now_iso()
    if not previous:
        return candidate

    prev_dt = _parse_timestamp(previous)
    cand_dt = _parse_timestamp(candidate)
    if prev_dt is None or cand_dt is None:
        return candidate
    if cand_dt > prev_dt:
        return candidate
    return _format_timestamp(prev_dt + timedelta(milliseconds=1))


# -----------------------------
# File access
# -----------------------------
def _normalize(record: Record) -> Record:
    if "artifact" not in record and LEGACY_ARTIFACT_KEY in record:
        record = dict(record)
        record["artifact"] = record.pop(LEGACY_ARTIFACT_KEY)
    return record


def _read_records(path: Path) -> list[Record]:
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except FileNotFoundError as e:
        raise StorageUnavailable(f"Attendance file not found: {path}") from e
    except (OSError, UnicodeDecodeError) as e:
        raise StorageUnavailable(f"Attendance file unreadable: {e}") from e
    except json.JSONDecodeError as e:
        raise StorageUnavailable(f"Attendance file is not valid JSON: {e}") from e

    if not isinstance(data, list) or not all(isinstance(r, dict) for r in data):
        raise StorageUnavailable("Attendance file must contain a JSON array of objects.")

    return [_normalize(r) for r in data]


def _write_records(path: Path, records: list[Record]) -> None:
    fd = None
    tmp_path = None
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=str(path.parent))
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            fd = None
            json.dump(records, f, indent=2, ensure_ascii=False)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_path, path)
        tmp_path = None
    except OSError as e:
        raise StorageUnavailable(f"Attendance file unwritable: {e}") from e
    finally:
        if fd is not None:
            os.close(fd)
        if tmp_path is not None and os.path.exists(tmp_path):
            os.remove(tmp_path)


def create_store() -> bool:
    """Creates an empty collection at DATA_PATH if none exists. Returns True if created."""
    path = Path(DATA_PATH)
    with STORE_LOCK:
        if path.exists():
            return False
        _write_records(path, [])
    logger.info("Initialized attendance store at %s", path)
    return True


# -----------------------------
# Reads
# -----------------------------
def load_all() -> list[Record]:
    return _read_records(Path(DATA_PATH))


def list_all() -> list[Record]:
    return load_all()


def find_by_code(code: str) -> Record:
    for record in load_all():
        if record.get("code") == code:
            return record
    raise RecordNotFound(code)


# -----------------------------
# Writes
# -----------------------------
def append_record(record: Record) -> None:
    code = record.get("code")
    if not isinstance(code, str) or not code:
        raise ValueError("Record requires a non-empty string code.")

    path = Path(DATA_PATH)
    with STORE_LOCK:
        records = _read_records(path)
        if any(r.get("code") == code for r in records):
            raise DuplicateCode(code)
        records.append(dict(record))
        _write_records(path, records)


def update_record(
    code: str,
    patch: Record,
    *,
    touch: Iterable[str] = (),
    precondition: Callable[[Record], None] | None = None,
    now: str | None = None,
) -> Record:
    """
    Applies `patch` to the record with `code` and refreshes `updatedAt`.

    Fields named in `touch` are set to the same refreshed timestamp.
    `precondition` sees the current record inside the critical section and
    may raise to abort the update before anything is written.
    """
    blocked = PROTECTED_FIELDS.intersection(patch)
    if blocked:
        raise ValueError(f"Cannot update protected fields: {', '.join(sorted(blocked))}")

    path = Path(DATA_PATH)
    with STORE_LOCK:
        records = _read_records(path)
        index = next((i for i, r in enumerate(records) if r.get("code") == code), None)
        if index is None:
            raise RecordNotFound(code)

        current = records[index]
        if precondition is not None:
            precondition(current)

        stamp = next_timestamp(current.get("updatedAt"), now)
        updated = {**current, **patch}
        for field in touch:
            updated[field] = stamp
        updated["updatedAt"] = stamp

        records[index] = updated
        _write_records(path, records)
    return updated
