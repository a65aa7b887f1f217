import copy
import io
import threading
from collections.abc import Callable
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, TypeVar

import pymupdf
import pytest
from reportlab.lib.pagesizes import A4
from reportlab.pdfgen import canvas

from intake.database.models import (
    InvoiceRecord,
    InvoiceRef,
    IssuerProfile,
    SessionRecord,
    SessionStatus,
)
from intake.storage.local_storage import LocalObjectStorage

T = TypeVar("T")

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


class _KeyedLocks:
    """One lock per record key, standing in for SELECT ... FOR UPDATE."""

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: dict[Any, threading.Lock] = {}

    def __call__(self, key: Any) -> threading.Lock:
        with self._guard:
            return self._locks.setdefault(key, threading.Lock())


class InMemorySessionRepository:
    """Session store with the same transact() contract as SessionRepository."""

    def __init__(self) -> None:
        self.rows: dict[str, SessionRecord] = {}
        self.transactions = 0
        self._lock_for = _KeyedLocks()

    def transact(
        self,
        session_id: str,
        fn: Callable[[SessionRecord | None], SessionRecord | None],
    ) -> SessionRecord | None:
        with self._lock_for(session_id):
            self.transactions += 1
            current = copy.deepcopy(self.rows.get(session_id))
            updated = fn(current)
            if updated is None:
                return None
            self.rows[session_id] = copy.deepcopy(updated)
            return copy.deepcopy(updated)

    def find_by_id(self, session_id: str) -> SessionRecord | None:
        return copy.deepcopy(self.rows.get(session_id))

    def find_ready_ids(self, limit: int) -> list[str]:
        ready = [row for row in self.rows.values() if row.status is SessionStatus.READY]
        ready.sort(key=lambda row: row.ready_at or _EPOCH)
        return [row.session_id for row in ready[:limit]]


class InMemoryInvoiceRepository:
    """Finalized-record store with the same contract as InvoiceRepository."""

    def __init__(self) -> None:
        self.rows: dict[tuple[str, str], InvoiceRecord] = {}
        self.upserts = 0
        self._lock_for = _KeyedLocks()

    def transact(self, ref: InvoiceRef, fn: Callable[[InvoiceRecord | None], T]) -> T:
        key = (ref.issuer_id, ref.invoice_id)
        with self._lock_for(key):
            record = copy.deepcopy(self.rows.get(key))
            result = fn(record)
            if record is not None:
                self.rows[key] = record
            return result

    def find(self, ref: InvoiceRef) -> InvoiceRecord | None:
        return copy.deepcopy(self.rows.get((ref.issuer_id, ref.invoice_id)))

    def find_by_document_number(
        self,
        issuer_id: str,
        document_number: str,
        exclude_invoice_id: str | None = None,
    ) -> InvoiceRef | None:
        matches = sorted(
            (
                row
                for row in self.rows.values()
                if row.issuer_id == issuer_id
                and row.document_number == document_number
                and row.invoice_id != exclude_invoice_id
            ),
            key=lambda row: row.created_at,
        )
        return matches[0].ref if matches else None

    def upsert(self, record: InvoiceRecord) -> None:
        key = (record.issuer_id, record.invoice_id)
        with self._lock_for(key):
            self.upserts += 1
            existing = self.rows.get(key)
            merged = copy.deepcopy(record)
            if existing is not None:
                merged.payment_status = existing.payment_status
                merged.paid_amount = existing.paid_amount
                merged.unpaid_amount = existing.unpaid_amount
                merged.payment_history = existing.payment_history
                merged.last_edited_by = existing.last_edited_by
                merged.last_edited_at = existing.last_edited_at
                merged.created_at = existing.created_at
            self.rows[key] = merged


class InMemoryIssuerRepository:
    """Issuer store with first-write-wins per field."""

    def __init__(self) -> None:
        self.rows: dict[str, IssuerProfile] = {}

    def upsert(self, profile: IssuerProfile) -> IssuerProfile:
        existing = self.rows.get(profile.issuer_id)
        if existing is None:
            self.rows[profile.issuer_id] = profile
            return profile
        merged = IssuerProfile(
            issuer_id=profile.issuer_id,
            name=existing.name if existing.name is not None else profile.name,
            tax_id=existing.tax_id if existing.tax_id is not None else profile.tax_id,
            category=existing.category if existing.category is not None else profile.category,
        )
        self.rows[profile.issuer_id] = merged
        return merged

    def find_by_id(self, issuer_id: str) -> IssuerProfile | None:
        return self.rows.get(issuer_id)


def _pdf(*page_texts: str) -> bytes:
    buf = io.BytesIO()
    c = canvas.Canvas(buf, pagesize=A4)
    for text in page_texts:
        c.drawString(72, 760, text)
        c.showPage()
    c.save()
    return buf.getvalue()


def _raster(fmt: str, width: int = 40, height: int = 60) -> bytes:
    pix = pymupdf.Pixmap(pymupdf.csRGB, pymupdf.IRect(0, 0, width, height), False)
    pix.clear_with(220)
    return pix.tobytes(fmt)


@pytest.fixture()
def session_repo() -> InMemorySessionRepository:
    return InMemorySessionRepository()


@pytest.fixture()
def invoice_repo() -> InMemoryInvoiceRepository:
    return InMemoryInvoiceRepository()


@pytest.fixture()
def issuer_repo() -> InMemoryIssuerRepository:
    return InMemoryIssuerRepository()


@pytest.fixture()
def storage(tmp_path: Path) -> LocalObjectStorage:
    return LocalObjectStorage(root=tmp_path, bucket="test-bucket")


@pytest.fixture()
def sample_pdf_bytes() -> bytes:
    """Single-page PDF with known text content."""
    return _pdf("Invoice page")


@pytest.fixture()
def multi_page_pdf_bytes() -> bytes:
    """Two-page PDF with known text on each page."""
    return _pdf("Page one content", "Page two content")


@pytest.fixture()
def png_bytes() -> bytes:
    return _raster("png")


@pytest.fixture()
def jpeg_bytes() -> bytes:
    return _raster("jpg", width=80, height=50)
