from intake.exceptions import IntakeError


class AssemblyError(IntakeError):
    """Raised when a page blob is missing, unreadable, or of an unsupported type."""

    http_status = 422
    code = "ASSEMBLY_ERROR"
