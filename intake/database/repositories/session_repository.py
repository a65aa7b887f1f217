from collections.abc import Callable
from datetime import datetime
from typing import Any

import psycopg
from psycopg.rows import dict_row
from psycopg.types.json import Jsonb

from intake.database.connection import get_connection
from intake.database.models import PageRecord, SessionRecord, SessionStatus
from intake.exceptions import ConflictError
from intake.logging.logger import Log

SessionMutation = Callable[[SessionRecord | None], SessionRecord | None]

_COLUMNS = """
    session_id, owner_id, bucket_ref, storage_prefix, status, total_pages,
    uploaded_page_numbers, pages, error_message, invoice_ref, duplicate_of,
    success_message, created_at, updated_at, ready_at, processing_started_at
"""


class SessionRepository:
    """Database operations for the invoice_sessions table."""

    def __init__(self, max_create_retries: int = 3) -> None:
        self._max_create_retries = max_create_retries

    def transact(self, session_id: str, fn: SessionMutation) -> SessionRecord | None:
        """Run ``fn`` as one atomic read-modify-write on a session row.

        The row is read with SELECT ... FOR UPDATE, so concurrent callers for
        the same session are serialized. ``fn`` receives the current record
        (None if absent) and returns the record to persist, or None to write
        nothing. Exceptions raised by ``fn`` roll the transaction back.

        A concurrent insert of the same new session makes the INSERT a no-op;
        the whole transaction is then retried against the now-existing row.
        """
        for attempt in range(1, self._max_create_retries + 1):
            with get_connection() as conn:
                current = self._select_for_update(conn, session_id)
                updated = fn(current)
                if updated is None:
                    conn.commit()
                    return None
                if current is None:
                    if not self._insert(conn, updated):
                        conn.rollback()
                        Log.warning(
                            "Session created concurrently, retrying transaction",
                            session_id=session_id,
                            attempt=attempt,
                        )
                        continue
                else:
                    self._update(conn, updated)
                conn.commit()
                return updated
        raise ConflictError(f"Session {session_id} could not be written, retry the request")

    def find_by_id(self, session_id: str) -> SessionRecord | None:
        with get_connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    f"SELECT {_COLUMNS} FROM invoice_sessions WHERE session_id = %s",
                    (session_id,),
                )
                row = cur.fetchone()
        return _row_to_record(row) if row is not None else None

    def find_ready_ids(self, limit: int) -> list[str]:
        """List sessions waiting for processing, oldest readiness first."""
        with get_connection() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    SELECT session_id
                    FROM invoice_sessions
                    WHERE status = %s
                    ORDER BY ready_at NULLS FIRST
                    LIMIT %s
                    """,
                    (SessionStatus.READY.value, limit),
                )
                rows = cur.fetchall()
        return [row[0] for row in rows]

    def _select_for_update(
        self, conn: psycopg.Connection[Any], session_id: str
    ) -> SessionRecord | None:
        with conn.cursor(row_factory=dict_row) as cur:
            cur.execute(
                f"SELECT {_COLUMNS} FROM invoice_sessions WHERE session_id = %s FOR UPDATE",
                (session_id,),
            )
            row = cur.fetchone()
        return _row_to_record(row) if row is not None else None

    def _insert(self, conn: psycopg.Connection[Any], record: SessionRecord) -> bool:
        with conn.cursor() as cur:
            cur.execute(
                f"""
                INSERT INTO invoice_sessions ({_COLUMNS})
                VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
                ON CONFLICT (session_id) DO NOTHING
                """,
                _record_to_params(record),
            )
            return cur.rowcount == 1

    def _update(self, conn: psycopg.Connection[Any], record: SessionRecord) -> None:
        params = _record_to_params(record)
        conn.execute(
            """
            UPDATE invoice_sessions
            SET owner_id = %s, bucket_ref = %s, storage_prefix = %s, status = %s,
                total_pages = %s, uploaded_page_numbers = %s, pages = %s,
                error_message = %s, invoice_ref = %s, duplicate_of = %s,
                success_message = %s, created_at = %s, updated_at = %s,
                ready_at = %s, processing_started_at = %s
            WHERE session_id = %s
            """,
            (*params[1:], params[0]),
        )


def _record_to_params(record: SessionRecord) -> tuple[Any, ...]:
    return (
        record.session_id,
        record.owner_id,
        record.bucket_ref,
        record.storage_prefix,
        record.status.value,
        record.total_pages,
        sorted(record.uploaded_page_numbers),
        Jsonb([_page_to_dict(page) for page in record.pages]),
        record.error_message,
        record.invoice_ref,
        record.duplicate_of,
        record.success_message,
        record.created_at,
        record.updated_at,
        record.ready_at,
        record.processing_started_at,
    )


def _row_to_record(row: dict[str, Any]) -> SessionRecord:
    return SessionRecord(
        session_id=row["session_id"],
        owner_id=row["owner_id"],
        bucket_ref=row["bucket_ref"],
        storage_prefix=row["storage_prefix"],
        status=SessionStatus(row["status"]),
        total_pages=row["total_pages"],
        uploaded_page_numbers=set(row["uploaded_page_numbers"] or []),
        pages=[_page_from_dict(item) for item in row["pages"] or []],
        error_message=row["error_message"],
        invoice_ref=row["invoice_ref"],
        duplicate_of=row["duplicate_of"],
        success_message=row["success_message"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
        ready_at=row["ready_at"],
        processing_started_at=row["processing_started_at"],
    )


def _page_to_dict(page: PageRecord) -> dict[str, object]:
    return {
        "page_number": page.page_number,
        "object_ref": page.object_ref,
        "content_type": page.content_type,
        "recorded_at": page.recorded_at.isoformat(),
    }


def _page_from_dict(raw: dict[str, Any]) -> PageRecord:
    return PageRecord(
        page_number=int(raw["page_number"]),
        object_ref=raw["object_ref"],
        content_type=raw["content_type"],
        recorded_at=datetime.fromisoformat(raw["recorded_at"]),
    )
