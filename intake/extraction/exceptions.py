from intake.exceptions import IntakeError


class ExtractionError(IntakeError):
    """Raised when recognition or field extraction fails or returns nothing usable."""

    http_status = 502
    code = "EXTRACTION_ERROR"


class ExtractionValidationError(ExtractionError):
    """Raised when the structured result does not match the declared schema."""


class ExtractionNetworkError(ExtractionError):
    """Raised when the AI provider call fails due to network/infrastructure issues."""


class ExtractionConfigError(ValueError):
    """Raised at startup when the field mapping and the JSON schema disagree."""
