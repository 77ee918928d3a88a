class AttendanceError(Exception):
    """Base exception for attendance failures surfaced at the HTTP boundary."""

    status_code = 500
    message = "Internal Server Error"

    def __init__(self, detail: str | None = None):
        super().__init__(detail or self.message)
        self.detail = detail or self.message


class RecordNotFound(AttendanceError):
    status_code = 404
    message = "Attendance record not found"

    def __init__(self, code: str):
        super().__init__(f"No attendance record with code {code!r}")
        self.code = code


class AlreadyCheckedOut(AttendanceError):
    status_code = 409
    message = "Attendance record already checked out"

    def __init__(self, code: str):
        super().__init__(f"Attendance record {code!r} is already checked out")
        self.code = code


class InvalidFields(AttendanceError):
    """Raised when caller-supplied extra fields break the configured bounds."""

    status_code = 400

    def __init__(self, detail: str):
        super().__init__(detail)
        self.message = detail


class StorageUnavailable(AttendanceError):
    """Raised when the attendance file cannot be read, parsed or written."""

    status_code = 503
    message = "Attendance store unavailable. Please retry."


class DuplicateCode(AttendanceError):
    def __init__(self, code: str):
        super().__init__(f"Attendance code {code!r} already exists")
        self.code = code


class EncodingFailure(AttendanceError):
    """Raised when the QR artifact cannot be rendered."""
