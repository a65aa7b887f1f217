from intake.database.models import PaymentStatus


def derive_payment_status(paid_amount: float, total_amount: float | None) -> PaymentStatus:
    """Derive the payment status of a record from its paid and total amounts.

    When the total is unknown (None or <= 0) any payment makes the record
    partially paid.
    """
    if not total_amount or total_amount <= 0:
        return PaymentStatus.PARTIALLY_PAID if paid_amount > 0 else PaymentStatus.UNPAID
    if paid_amount >= total_amount:
        return PaymentStatus.PAID
    if paid_amount > 0:
        return PaymentStatus.PARTIALLY_PAID
    return PaymentStatus.UNPAID


def unpaid_balance(paid_amount: float, total_amount: float | None) -> float:
    return max(0.0, (total_amount or 0.0) - paid_amount)
