from intake.assembly.assembler import DocumentAssembler
from intake.config.settings import Settings
from intake.database.models import SessionRecord, SessionStatus, utc_now
from intake.database.repositories.invoice_repository import InvoiceRepository
from intake.database.repositories.issuer_repository import IssuerRepository
from intake.database.repositories.session_repository import SessionRepository
from intake.extraction.factory import build_extractor
from intake.logging.logger import Log
from intake.notification.factory import NotifierFactory
from intake.processor.processor import Processor
from intake.processor.steps import (
    AssembleStep,
    CreateInvoiceStep,
    DuplicateCheckStep,
    ExtractFieldsStep,
    MarkDoneStep,
    MarkFailedStep,
    NormalizeFieldsStep,
    NotifyStep,
    PersistArtifactStep,
    SelectPagesStep,
    UpsertIssuerStep,
    ValidatePagesStep,
)
from intake.sessions.transitions import ensure_transition
from intake.storage.factory import ObjectStorageFactory


class ProcessingOrchestrator:
    """Owns the ready -> processing -> done | error transition of a session.

    ``handle`` may be invoked any number of times for the same session. The
    lock transaction lets exactly one invocation move a ready session to
    processing; every other invocation exits without doing any work.
    """

    def __init__(self, session_repo: SessionRepository, processor: Processor) -> None:
        self._session_repo = session_repo
        self._processor = processor

    def handle(self, session_id: str) -> SessionStatus | None:
        """Process a ready session. Never raises.

        Returns the terminal status reached, or None when the session was not
        claimed by this invocation.
        """
        try:
            claimed = self._claim(session_id)
        except Exception as exc:
            Log.error(f"Failed to claim session {session_id}: {exc}")
            return None
        if claimed is None:
            Log.info(f"Session {session_id} already claimed or not ready, skipping")
            return None

        Log.info(f"Session {session_id} claimed for processing")
        try:
            self._processor.process(claimed)
        except Exception as exc:
            Log.error(f"Processing of session {session_id} failed: {exc}")
            return SessionStatus.ERROR
        return SessionStatus.DONE

    def on_session_changed(
        self, before: SessionRecord | None, after: SessionRecord | None
    ) -> SessionStatus | None:
        """Change-listener entry: act on records that just became ready."""
        if after is None or after.status is not SessionStatus.READY:
            return None
        if before is not None and before.status is SessionStatus.READY:
            return None
        return self.handle(after.session_id)

    def _claim(self, session_id: str) -> SessionRecord | None:
        def claim(current: SessionRecord | None) -> SessionRecord | None:
            if current is None or current.status is not SessionStatus.READY:
                return None
            ensure_transition(current.status, SessionStatus.PROCESSING)
            now = utc_now()
            current.status = SessionStatus.PROCESSING
            current.processing_started_at = now
            current.error_message = None
            current.updated_at = now
            return current

        return self._session_repo.transact(session_id, claim)


def build_orchestrator(
    settings: Settings,
    session_repo: SessionRepository | None = None,
) -> ProcessingOrchestrator:
    """Build a ProcessingOrchestrator with all required adapters."""
    session_repo = session_repo or SessionRepository()
    invoice_repo = InvoiceRepository()
    issuer_repo = IssuerRepository()
    storage = ObjectStorageFactory.create(settings)
    notifier = NotifierFactory.create(settings)
    extractor = build_extractor(settings)
    steps = [
        ValidatePagesStep(),
        AssembleStep(DocumentAssembler(storage)),
        SelectPagesStep(),
        ExtractFieldsStep(extractor),
        NormalizeFieldsStep(settings.default_currency),
        UpsertIssuerStep(issuer_repo),
        DuplicateCheckStep(invoice_repo),
        PersistArtifactStep(storage),
        CreateInvoiceStep(invoice_repo),
        MarkDoneStep(session_repo),
        NotifyStep(notifier),
    ]
    processor = Processor(steps=steps, failed_step=MarkFailedStep(session_repo, notifier))
    return ProcessingOrchestrator(session_repo=session_repo, processor=processor)
