import uuid

from intake.database.models import (
    PageRecord,
    SessionMetadata,
    SessionRecord,
    SessionStatus,
    utc_now,
)
from intake.database.repositories.session_repository import SessionRepository
from intake.exceptions import (
    AuthorizationError,
    ConflictError,
    IntakeError,
    NotFoundError,
    ValidationError,
)
from intake.logging.logger import Log
from intake.sessions.transitions import ensure_transition, reset_target
from intake.sessions.upload_paths import parse_upload_object_name, storage_prefix

DEFAULT_CONTENT_TYPE = "application/octet-stream"


class InvoiceSessionManager:
    """Owns the page-upload lifecycle and the pending -> ready transition.

    Every public operation is a single atomic read-modify-write against the
    session record, so concurrent page uploads for one session are serialized
    and readiness is triggered exactly once.
    """

    def __init__(self, session_repo: SessionRepository) -> None:
        self._session_repo = session_repo

    def create_or_get_session(
        self,
        owner_id: str,
        bucket_ref: str,
        total_pages: int | None = None,
        session_id: str | None = None,
    ) -> SessionMetadata:
        """Start a new upload session or return the existing one.

        Raises:
            ValidationError: new session without a positive total_pages.
            ConflictError: total_pages contradicts the recorded value.
            AuthorizationError: the session belongs to another owner.
        """
        resolved_id = session_id or str(uuid.uuid4())
        pages_total = _normalize_total_pages(total_pages)

        def mutate(current: SessionRecord | None) -> SessionRecord:
            now = utc_now()
            if current is None:
                if pages_total is None:
                    raise ValidationError(
                        "total_pages must be provided when starting a new session"
                    )
                return SessionRecord(
                    session_id=resolved_id,
                    owner_id=owner_id,
                    bucket_ref=bucket_ref,
                    storage_prefix=storage_prefix(resolved_id),
                    status=SessionStatus.PENDING,
                    total_pages=pages_total,
                    created_at=now,
                    updated_at=now,
                )
            if current.owner_id != owner_id:
                raise AuthorizationError(f"Session {resolved_id} belongs to another owner")
            if (
                current.total_pages is not None
                and pages_total is not None
                and current.total_pages != pages_total
            ):
                raise ConflictError(
                    f"total_pages {pages_total} does not match the recorded "
                    f"{current.total_pages} for session {resolved_id}"
                )
            if current.total_pages is None:
                current.total_pages = pages_total
            current.updated_at = now
            return current

        record = self._session_repo.transact(resolved_id, mutate)
        if record is None:
            raise NotFoundError(f"Session {resolved_id} not found")
        Log.info("Session ready for uploads", session_id=resolved_id, total_pages=record.total_pages)
        return SessionMetadata.from_record(record)

    def register_page(
        self,
        session_id: str,
        page_number: int,
        object_ref: str,
        content_type: str | None,
        owner_id: str | None = None,
    ) -> SessionMetadata:
        """Record one uploaded page; flip the session to ready when complete.

        Re-registering a page number replaces its previous record. The
        readiness check requires the status to still be pending, so a page
        arriving after readiness was already triggered never re-triggers it.

        Raises:
            NotFoundError: the session does not exist.
            AuthorizationError: owner_id differs from the session owner.
            ValidationError: page_number invalid, out of range, or total_pages unknown.
        """
        number = _normalize_page_number(page_number)

        def mutate(current: SessionRecord | None) -> SessionRecord:
            if current is None:
                raise NotFoundError(f"Session {session_id} not found")
            if owner_id is not None and current.owner_id != owner_id:
                raise AuthorizationError(f"Session {session_id} belongs to another owner")
            if current.total_pages is None:
                raise ValidationError("total_pages must be known before pages are registered")
            if number > current.total_pages:
                raise ValidationError(
                    f"page_number {number} exceeds total_pages {current.total_pages}"
                )
            now = utc_now()
            pages = [page for page in current.pages if page.page_number != number]
            pages.append(
                PageRecord(
                    page_number=number,
                    object_ref=object_ref,
                    content_type=content_type or DEFAULT_CONTENT_TYPE,
                    recorded_at=now,
                )
            )
            current.pages = sorted(pages, key=lambda page: page.page_number)
            current.uploaded_page_numbers.add(number)
            if (
                len(current.uploaded_page_numbers) == current.total_pages
                and current.status is SessionStatus.PENDING
            ):
                ensure_transition(current.status, SessionStatus.READY)
                current.status = SessionStatus.READY
                current.ready_at = now
            current.updated_at = now
            return current

        record = self._session_repo.transact(session_id, mutate)
        if record is None:
            raise NotFoundError(f"Session {session_id} not found")
        Log.info(
            f"Registered page {number} for session {session_id}",
            uploaded=len(record.uploaded_page_numbers),
            total_pages=record.total_pages,
            status=record.status.value,
        )
        return SessionMetadata.from_record(record)

    def handle_uploaded_object(
        self, object_ref: str, content_type: str | None
    ) -> SessionMetadata | None:
        """Entry point for the page-blob-written storage notification.

        Objects outside the uploads prefix or with unparseable names are
        ignored. Domain errors are logged and not raised, since redelivering
        the notification cannot fix them.
        """
        parsed = parse_upload_object_name(object_ref)
        if parsed is None:
            Log.warning(f"Ignoring uploaded object with unrecognized name: {object_ref}")
            return None
        try:
            return self.register_page(
                parsed.session_id,
                parsed.page_number,
                object_ref,
                content_type,
            )
        except IntakeError as exc:
            Log.error(
                f"Failed to register page {parsed.page_number} "
                f"for session {parsed.session_id}: {exc}"
            )
            return None

    def get_session(self, session_id: str) -> SessionMetadata:
        record = self._session_repo.find_by_id(session_id)
        if record is None:
            raise NotFoundError(f"Session {session_id} not found")
        return SessionMetadata.from_record(record)

    def reset_session(self, session_id: str) -> SessionMetadata:
        """Explicit external recovery of a failed or stuck session.

        error -> pending (clears the error); processing -> ready for an attempt
        that crashed without reaching a terminal status.
        """

        def mutate(current: SessionRecord | None) -> SessionRecord:
            if current is None:
                raise NotFoundError(f"Session {session_id} not found")
            target = reset_target(current.status)
            current.status = target
            current.error_message = None
            current.duplicate_of = None
            current.processing_started_at = None
            if target is SessionStatus.PENDING:
                current.ready_at = None
            current.updated_at = utc_now()
            return current

        record = self._session_repo.transact(session_id, mutate)
        if record is None:
            raise NotFoundError(f"Session {session_id} not found")
        Log.warning(f"Session {session_id} reset to {record.status.value}")
        return SessionMetadata.from_record(record)


def _normalize_total_pages(total_pages: int | None) -> int | None:
    if total_pages is None:
        return None
    if isinstance(total_pages, bool) or not isinstance(total_pages, int) or total_pages <= 0:
        raise ValidationError("total_pages must be a positive integer")
    return total_pages


def _normalize_page_number(page_number: int) -> int:
    if isinstance(page_number, bool) or not isinstance(page_number, int) or page_number <= 0:
        raise ValidationError("page_number must be a positive integer")
    return page_number
