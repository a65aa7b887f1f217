"""Owner-facing status messages for processed sessions."""

from intake.extraction.parsing import UNKNOWN_ISSUER_NAME
from intake.processor.pipeline import PipelineContext


def _invoice_label(context: PipelineContext) -> str | None:
    fields = context.fields
    if fields is None or not fields.document_number:
        return None
    if fields.issuer_name == UNKNOWN_ISSUER_NAME:
        return None
    return f"Invoice {fields.document_number} from {fields.issuer_name}"


def format_failure(context: PipelineContext, exc: Exception) -> str:
    """Error message, prefixed with document number and issuer once both are known."""
    label = _invoice_label(context)
    message = str(exc) or type(exc).__name__
    return f"{label} failed. {message}" if label else message


def format_success(context: PipelineContext) -> str:
    label = _invoice_label(context)
    return f"{label} processed." if label else f"Session {context.session_id} processed."
