from intake.ledger.models import FieldUpdateResult, PaymentKind, PaymentResult
from intake.ledger.payment_ledger import PaymentLedger
from intake.ledger.status import derive_payment_status

__all__ = [
    "FieldUpdateResult",
    "PaymentKind",
    "PaymentLedger",
    "PaymentResult",
    "derive_payment_status",
]
