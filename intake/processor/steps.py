from intake.assembly.assembler import PDF_CONTENT_TYPE, DocumentAssembler
from intake.database.models import (
    InvoiceRecord,
    IssuerProfile,
    PaymentStatus,
    SessionRecord,
    SessionStatus,
    utc_now,
)
from intake.database.repositories.invoice_repository import InvoiceRepository
from intake.database.repositories.issuer_repository import IssuerRepository
from intake.database.repositories.session_repository import SessionRepository
from intake.exceptions import DuplicateError, NotFoundError, ValidationError
from intake.extraction.base import BaseExtractor
from intake.extraction.exceptions import ExtractionError
from intake.extraction.parsing import UNKNOWN_ISSUER_NAME, normalize_fields
from intake.logging.logger import Log
from intake.notification.base import BaseNotifier
from intake.processor.messages import format_success
from intake.processor.pipeline import PipelineContext, PipelineStep
from intake.sessions.transitions import ensure_transition
from intake.storage.base import BaseObjectStorage

PROCESSED_STATUS = "processed"


def artifact_path(issuer_id: str, session_id: str) -> str:
    return f"issuers/{issuer_id}/invoices/{session_id}.pdf"


class ValidatePagesStep(PipelineStep):
    def run(self, context: PipelineContext) -> PipelineContext:
        session = context.session
        if not session.pages:
            raise ValidationError(f"Session {session.session_id} has no pages")
        if session.total_pages is None or len(session.pages) != session.total_pages:
            raise ValidationError(
                f"Session {session.session_id} has {len(session.pages)} pages, "
                f"expected {session.total_pages}"
            )
        return context


class AssembleStep(PipelineStep):
    def __init__(self, assembler: DocumentAssembler) -> None:
        self._assembler = assembler

    def run(self, context: PipelineContext) -> PipelineContext:
        context.assembly = self._assembler.assemble(context.session.pages)
        return context


class SelectPagesStep(PipelineStep):
    """Issuer details sit on the first page and totals on the last one."""

    def run(self, context: PipelineContext) -> PipelineContext:
        if context.assembly is None:
            raise ValueError("PipelineContext.assembly must be set before page selection")
        pages = sorted(context.assembly.decoded_pages, key=lambda page: page.page_number)
        context.selected_pages = pages if len(pages) <= 2 else [pages[0], pages[-1]]
        Log.info(
            f"Selected pages {[page.page_number for page in context.selected_pages]} "
            f"for extraction",
            session_id=context.session_id,
        )
        return context


class ExtractFieldsStep(PipelineStep):
    def __init__(self, extractor: BaseExtractor) -> None:
        self._extractor = extractor

    def run(self, context: PipelineContext) -> PipelineContext:
        extracted = self._extractor.extract(context.selected_pages)
        if extracted.is_empty:
            raise ExtractionError("Extraction returned an empty result")
        context.extracted = extracted
        return context


class NormalizeFieldsStep(PipelineStep):
    def __init__(self, default_currency: str) -> None:
        self._default_currency = default_currency

    def run(self, context: PipelineContext) -> PipelineContext:
        if context.extracted is None:
            raise ValueError("PipelineContext.extracted must be set before normalization")
        context.fields = normalize_fields(context.extracted, self._default_currency)
        Log.info(
            f"Normalized fields for session {context.session_id}",
            issuer_id=context.fields.issuer_id,
            document_number=context.fields.document_number,
            total=context.fields.total_amount,
        )
        return context


class UpsertIssuerStep(PipelineStep):
    def __init__(self, issuer_repo: IssuerRepository) -> None:
        self._issuer_repo = issuer_repo

    def run(self, context: PipelineContext) -> PipelineContext:
        fields = context.fields
        if fields is None:
            raise ValueError("PipelineContext.fields must be set before issuer upsert")
        name = None if fields.issuer_name == UNKNOWN_ISSUER_NAME else fields.issuer_name
        context.issuer = self._issuer_repo.upsert(
            IssuerProfile(issuer_id=fields.issuer_id, name=name, tax_id=fields.issuer_tax_id)
        )
        return context


class DuplicateCheckStep(PipelineStep):
    def __init__(self, invoice_repo: InvoiceRepository) -> None:
        self._invoice_repo = invoice_repo

    def run(self, context: PipelineContext) -> PipelineContext:
        fields = context.fields
        if fields is None:
            raise ValueError("PipelineContext.fields must be set before duplicate check")
        if not fields.document_number:
            Log.warning(
                "No document number extracted, skipping duplicate check",
                session_id=context.session_id,
            )
            return context
        existing = self._invoice_repo.find_by_document_number(
            fields.issuer_id,
            fields.document_number,
            exclude_invoice_id=context.session_id,
        )
        if existing is not None:
            raise DuplicateError(
                f"Duplicate invoice: document {fields.document_number} of issuer "
                f"{fields.issuer_id} is already recorded as {existing.path}",
                existing_ref=existing.path,
            )
        return context


class PersistArtifactStep(PipelineStep):
    def __init__(self, storage: BaseObjectStorage) -> None:
        self._storage = storage

    def run(self, context: PipelineContext) -> PipelineContext:
        if context.assembly is None or context.fields is None:
            raise ValueError("Assembly and fields must be set before persisting the artifact")
        path = artifact_path(context.fields.issuer_id, context.session_id)
        self._storage.put(path, context.assembly.artifact, PDF_CONTENT_TYPE)
        context.artifact_ref = path
        Log.info(f"Stored assembled artifact at {path}", bytes=len(context.assembly.artifact))
        return context


class CreateInvoiceStep(PipelineStep):
    def __init__(self, invoice_repo: InvoiceRepository) -> None:
        self._invoice_repo = invoice_repo

    def run(self, context: PipelineContext) -> PipelineContext:
        fields = context.fields
        if fields is None or context.extracted is None:
            raise ValueError("PipelineContext.fields must be set before creating the invoice")
        now = utc_now()
        record = InvoiceRecord(
            issuer_id=fields.issuer_id,
            invoice_id=context.session_id,
            owner_id=context.session.owner_id,
            issuer_name=fields.issuer_name,
            issuer_tax_id=fields.issuer_tax_id,
            document_number=fields.document_number,
            invoice_date=fields.invoice_date,
            due_date=fields.due_date,
            net_amount=fields.net_amount,
            vat_amount=fields.vat_amount,
            total_amount=fields.total_amount,
            currency=fields.currency,
            confidence=fields.confidence,
            source_object_refs=[page.object_ref for page in context.session.pages],
            assembled_artifact_ref=context.artifact_ref or None,
            processing_status=PROCESSED_STATUS,
            payment_status=PaymentStatus.UNPAID,
            paid_amount=0.0,
            unpaid_amount=fields.total_amount,
            raw_fields=dict(context.extracted.raw),
            created_at=now,
            updated_at=now,
        )
        self._invoice_repo.upsert(record)
        context.invoice = record
        Log.info(f"Finalized record {record.ref.path}", session_id=context.session_id)
        return context


class MarkDoneStep(PipelineStep):
    def __init__(self, session_repo: SessionRepository) -> None:
        self._session_repo = session_repo

    def run(self, context: PipelineContext) -> PipelineContext:
        if context.invoice is None:
            raise ValueError("PipelineContext.invoice must be set before marking done")
        invoice_ref = context.invoice.ref.path
        message = format_success(context)

        def mark_done(current: SessionRecord | None) -> SessionRecord:
            if current is None:
                raise NotFoundError(f"Session {context.session_id} not found")
            ensure_transition(current.status, SessionStatus.DONE)
            current.status = SessionStatus.DONE
            current.invoice_ref = invoice_ref
            current.success_message = message
            current.error_message = None
            current.updated_at = utc_now()
            return current

        record = self._session_repo.transact(context.session_id, mark_done)
        if record is not None:
            context.session = record
        Log.info(f"Session {context.session_id} marked as done", invoice=invoice_ref)
        return context


class NotifyStep(PipelineStep):
    """Best effort: a failed notification never undoes the finalized record."""

    def __init__(self, notifier: BaseNotifier) -> None:
        self._notifier = notifier

    def run(self, context: PipelineContext) -> PipelineContext:
        _send(
            self._notifier,
            context,
            {
                "session_id": context.session_id,
                "status": SessionStatus.DONE.value,
                "title": "Invoice processed",
                "body": context.session.success_message or format_success(context),
                "invoice_ref": context.invoice.ref.path if context.invoice else None,
            },
        )
        return context


class MarkFailedStep(PipelineStep):
    """Writes the error status and notifies the owner. Never raises."""

    def __init__(self, session_repo: SessionRepository, notifier: BaseNotifier) -> None:
        self._session_repo = session_repo
        self._notifier = notifier

    def run(self, context: PipelineContext) -> PipelineContext:
        def mark_failed(current: SessionRecord | None) -> SessionRecord | None:
            if current is None or current.status is not SessionStatus.PROCESSING:
                Log.warning(
                    f"Session {context.session_id} is no longer processing, "
                    f"error status not written"
                )
                return None
            ensure_transition(current.status, SessionStatus.ERROR)
            current.status = SessionStatus.ERROR
            current.error_message = context.error_message
            current.duplicate_of = context.duplicate_of
            current.updated_at = utc_now()
            return current

        try:
            self._session_repo.transact(context.session_id, mark_failed)
            Log.error(
                f"Session {context.session_id} marked as failed: {context.error_message}"
            )
        except Exception as exc:
            Log.error(f"Failed to record error status for session {context.session_id}: {exc}")

        _send(
            self._notifier,
            context,
            {
                "session_id": context.session_id,
                "status": SessionStatus.ERROR.value,
                "title": "Invoice processing failed",
                "body": context.error_message,
                "duplicate_of": context.duplicate_of,
            },
        )
        return context


def _send(notifier: BaseNotifier, context: PipelineContext, payload: dict[str, object]) -> None:
    try:
        result = notifier.notify(context.session.owner_id, payload)
    except Exception as exc:
        Log.warning(f"Notification for session {context.session_id} failed: {exc}")
        return
    if result.failed:
        Log.warning(
            f"Notification for session {context.session_id} not delivered",
            sent=result.sent,
            failed=result.failed,
        )
