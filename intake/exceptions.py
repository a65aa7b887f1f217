"""Error taxonomy shared by the session manager, orchestrator and ledger."""

from typing import ClassVar


class IntakeError(Exception):
    """Base exception for all invoice-intake errors."""

    http_status: ClassVar[int] = 500
    code: ClassVar[str] = "INTAKE_ERROR"


class ValidationError(IntakeError):
    """Raised on malformed input (page out of range, missing amount, ...)."""

    http_status = 400
    code = "VALIDATION_ERROR"


class AuthorizationError(IntakeError):
    """Raised when the acting user does not own the session or record."""

    http_status = 403
    code = "FORBIDDEN"


class NotFoundError(IntakeError):
    """Raised when a session or finalized record does not exist."""

    http_status = 404
    code = "NOT_FOUND"


class ConflictError(IntakeError):
    """Raised when a request contradicts already recorded metadata."""

    http_status = 409
    code = "CONFLICT"


class InvalidStateError(IntakeError):
    """Raised when an operation is not allowed in the current status."""

    http_status = 409
    code = "INVALID_STATE"


class DuplicateError(IntakeError):
    """Raised when the same issuer and document number are already recorded."""

    http_status = 409
    code = "DUPLICATE"

    def __init__(self, message: str, existing_ref: str) -> None:
        super().__init__(message)
        self.existing_ref = existing_ref


def error_response(exc: Exception) -> tuple[int, dict[str, str]]:
    """Map an exception to an HTTP-style status code and JSON-ready body."""
    if isinstance(exc, IntakeError):
        return exc.http_status, {"error": str(exc), "code": exc.code}
    return 500, {"error": str(exc), "code": "INTERNAL_ERROR"}
