"""Error kinds raised by the enrollment and grading services.

Every error carries a stable ``kind`` (what went wrong, for callers that
branch on it) and a human-readable ``message`` suitable for display.
"""


class RegistrarError(Exception):
    """Base class for every failure reported by the services."""
    kind = "RegistrarError"
    status = 400

    def __init__(self, message, **details):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self):
        payload = {"success": False, "error": self.kind, "message": self.message}
        payload.update(self.details)
        return payload


class NotFound(RegistrarError):
    """Referenced enrollment, line, assignment or catalog row does not exist."""
    kind = "NotFound"
    status = 404


class ValidationFailed(RegistrarError):
    """Malformed input: unknown status, missing lines, bad weight..."""
    kind = "ValidationFailed"


class DuplicateEnrollment(RegistrarError):
    kind = "DuplicateEnrollment"
    status = 409


class DuplicatePreEnrollment(RegistrarError):
    kind = "DuplicatePreEnrollment"
    status = 409


class CapacityExceeded(RegistrarError):
    kind = "CapacityExceeded"
    status = 409


class NotApproved(RegistrarError):
    kind = "NotApproved"
    status = 409


class OutOfRange(RegistrarError):
    kind = "OutOfRange"


class NoScores(RegistrarError):
    kind = "NoScores"
    status = 409


class IncompleteGrades(RegistrarError):
    """Closure attempted while lines still lack a final grade."""
    kind = "IncompleteGrades"
    status = 409

    def __init__(self, missing):
        super().__init__(
            f"{missing} student(s) have no final grade recorded", missing=missing
        )
        self.missing = missing


class RecordsSealed(RegistrarError):
    """The grade roster was already closed by an acta."""
    kind = "RecordsSealed"
    status = 409


class StorageError(RegistrarError):
    kind = "InternalError"
    status = 500
