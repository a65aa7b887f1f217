from dataclasses import dataclass, field
from enum import StrEnum

from intake.database.models import InvoiceRef, PaymentEntry, PaymentStatus


class PaymentKind(StrEnum):
    FULL = "full"
    PARTIAL = "partial"


@dataclass(frozen=True)
class PaymentResult:
    """Outcome of one applied payment."""

    ref: InvoiceRef
    entry: PaymentEntry
    previous_status: PaymentStatus
    new_status: PaymentStatus
    total_amount: float | None
    paid_amount: float
    unpaid_amount: float


@dataclass(frozen=True)
class FieldUpdateResult:
    """Outcome of a manual correction of a finalized record."""

    ref: InvoiceRef
    updated_fields: list[str] = field(default_factory=list)
    previous_status: PaymentStatus = PaymentStatus.UNPAID
    new_status: PaymentStatus = PaymentStatus.UNPAID
    total_amount: float | None = None
    paid_amount: float = 0.0
    unpaid_amount: float | None = None
