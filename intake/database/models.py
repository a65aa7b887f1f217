from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from enum import StrEnum


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class SessionStatus(StrEnum):
    PENDING = "pending"
    READY = "ready"
    PROCESSING = "processing"
    DONE = "done"
    ERROR = "error"


class PaymentStatus(StrEnum):
    UNPAID = "unpaid"
    PARTIALLY_PAID = "partially_paid"
    PAID = "paid"


@dataclass
class PageRecord:
    """One uploaded page blob, owned by its session."""

    page_number: int
    object_ref: str
    content_type: str
    recorded_at: datetime = field(default_factory=utc_now)


@dataclass
class SessionRecord:
    """Represents a row from the invoice_sessions table."""

    session_id: str
    owner_id: str
    bucket_ref: str
    storage_prefix: str
    status: SessionStatus = SessionStatus.PENDING
    total_pages: int | None = None
    uploaded_page_numbers: set[int] = field(default_factory=set)
    pages: list[PageRecord] = field(default_factory=list)
    error_message: str | None = None
    invoice_ref: str | None = None
    duplicate_of: str | None = None
    success_message: str | None = None
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)
    ready_at: datetime | None = None
    processing_started_at: datetime | None = None


@dataclass(frozen=True)
class SessionMetadata:
    """Read-only view of a session returned to callers."""

    session_id: str
    owner_id: str
    status: SessionStatus
    total_pages: int | None
    uploaded_page_numbers: tuple[int, ...]
    bucket_ref: str
    storage_prefix: str

    @classmethod
    def from_record(cls, record: SessionRecord) -> "SessionMetadata":
        return cls(
            session_id=record.session_id,
            owner_id=record.owner_id,
            status=record.status,
            total_pages=record.total_pages,
            uploaded_page_numbers=tuple(sorted(record.uploaded_page_numbers)),
            bucket_ref=record.bucket_ref,
            storage_prefix=record.storage_prefix,
        )


@dataclass(frozen=True)
class InvoiceRef:
    """Key of a finalized record: (issuer_id, invoice_id)."""

    issuer_id: str
    invoice_id: str

    @property
    def path(self) -> str:
        return f"issuers/{self.issuer_id}/invoices/{self.invoice_id}"


@dataclass(frozen=True)
class PaymentEntry:
    """One immutable line of a finalized record's payment history."""

    amount: float
    method: str
    paid_on: date
    notes: str | None
    recorded_at: datetime
    recorded_by: str


@dataclass
class InvoiceRecord:
    """Represents a row from the invoices table (the finalized record)."""

    issuer_id: str
    invoice_id: str
    owner_id: str | None = None
    issuer_name: str | None = None
    issuer_tax_id: str | None = None
    document_number: str | None = None
    invoice_date: date | None = None
    due_date: date | None = None
    net_amount: float | None = None
    vat_amount: float | None = None
    vat_rate: float | None = None
    total_amount: float | None = None
    currency: str = "EUR"
    confidence: float | None = None
    source_object_refs: list[str] = field(default_factory=list)
    assembled_artifact_ref: str | None = None
    processing_status: str = "uploaded"
    payment_status: PaymentStatus = PaymentStatus.UNPAID
    paid_amount: float = 0.0
    unpaid_amount: float | None = None
    payment_history: list[PaymentEntry] = field(default_factory=list)
    raw_fields: dict[str, str | None] = field(default_factory=dict)
    last_edited_by: str | None = None
    last_edited_at: datetime | None = None
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)

    @property
    def ref(self) -> InvoiceRef:
        return InvoiceRef(issuer_id=self.issuer_id, invoice_id=self.invoice_id)


@dataclass(frozen=True)
class IssuerProfile:
    """Deduplicated issuer entity; existing non-null fields are never overwritten."""

    issuer_id: str
    name: str | None = None
    tax_id: str | None = None
    category: str | None = None
