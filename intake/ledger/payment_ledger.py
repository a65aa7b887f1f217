"""Payments and manual corrections applied to finalized invoice records."""

import math
from collections.abc import Mapping
from datetime import date
from typing import Any, ClassVar

from intake.database.models import InvoiceRecord, InvoiceRef, PaymentEntry, PaymentStatus, utc_now
from intake.database.repositories.invoice_repository import InvoiceRepository
from intake.exceptions import (
    AuthorizationError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from intake.extraction.parsing import parse_date, round_cents
from intake.ledger.models import FieldUpdateResult, PaymentKind, PaymentResult
from intake.ledger.status import derive_payment_status, unpaid_balance
from intake.logging.logger import Log

DEFAULT_PAYMENT_METHOD = "other"


class PaymentLedger:
    """Applies payments to finalized records, one atomic transaction per call."""

    STRING_FIELDS: ClassVar[frozenset[str]] = frozenset(
        {"issuer_name", "issuer_tax_id", "document_number", "currency"}
    )
    DATE_FIELDS: ClassVar[frozenset[str]] = frozenset({"invoice_date", "due_date"})
    AMOUNT_FIELDS: ClassVar[frozenset[str]] = frozenset(
        {"net_amount", "vat_amount", "vat_rate", "total_amount", "paid_amount"}
    )

    def __init__(self, invoice_repo: InvoiceRepository, tolerance: float = 0.01) -> None:
        self._invoice_repo = invoice_repo
        self._tolerance = tolerance

    @classmethod
    def editable_fields(cls) -> frozenset[str]:
        return cls.STRING_FIELDS | cls.DATE_FIELDS | cls.AMOUNT_FIELDS

    def apply_payment(
        self,
        ref: InvoiceRef,
        actor_id: str,
        kind: PaymentKind | str,
        amount: float | None = None,
        method: str | None = None,
        paid_on: date | None = None,
        notes: str | None = None,
    ) -> PaymentResult:
        """Record a full or partial payment against a finalized record.

        A full payment without an amount settles the outstanding balance.

        Raises:
            NotFoundError: the record does not exist.
            AuthorizationError: the record belongs to another owner.
            InvalidStateError: the record is already paid.
            ValidationError: missing/invalid amount or an overpayment.
        """
        try:
            kind = PaymentKind(kind)
        except ValueError as exc:
            raise ValidationError(f"Unknown payment kind: {kind!r}") from exc
        if amount is not None:
            amount = self._require_amount("amount", amount, allow_zero=False)
        if kind is PaymentKind.PARTIAL and amount is None:
            raise ValidationError("A partial payment requires an explicit amount")

        def apply(record: InvoiceRecord | None) -> PaymentResult:
            record = self._authorize(ref, record, actor_id)
            if record.payment_status is PaymentStatus.PAID:
                raise InvalidStateError(f"Invoice {ref.path} is already paid")

            total = round_cents(record.total_amount) or 0.0
            outstanding = round(total - record.paid_amount, 2)
            payment = amount if amount is not None else outstanding
            if payment <= 0:
                raise ValidationError(
                    "Payment amount is required when the invoice total is unknown"
                )
            if total > 0 and payment > outstanding + self._tolerance:
                raise ValidationError(
                    f"Payment amount ({payment:.2f}) exceeds unpaid balance ({outstanding:.2f})"
                )

            now = utc_now()
            entry = PaymentEntry(
                amount=payment,
                method=method or DEFAULT_PAYMENT_METHOD,
                paid_on=paid_on or now.date(),
                notes=notes,
                recorded_at=now,
                recorded_by=actor_id,
            )
            previous_status = record.payment_status
            record.payment_history.append(entry)
            record.paid_amount = round(record.paid_amount + payment, 2)
            self._recompute(record)
            record.updated_at = now
            return PaymentResult(
                ref=ref,
                entry=entry,
                previous_status=previous_status,
                new_status=record.payment_status,
                total_amount=record.total_amount,
                paid_amount=record.paid_amount,
                unpaid_amount=record.unpaid_amount or 0.0,
            )

        result = self._invoice_repo.transact(ref, apply)
        Log.info(
            f"Payment recorded: {result.previous_status} -> {result.new_status}",
            invoice=ref.path,
            amount=result.entry.amount,
            actor=actor_id,
        )
        return result

    def update_fields(
        self, ref: InvoiceRef, actor_id: str, patch: Mapping[str, Any]
    ) -> FieldUpdateResult:
        """Correct extracted fields of a finalized record.

        Patching total_amount or paid_amount re-runs the overpayment check and
        recomputes the unpaid balance and status. No payment entry is added.
        """
        changes = self._validate_patch(patch)

        def apply(record: InvoiceRecord | None) -> FieldUpdateResult:
            record = self._authorize(ref, record, actor_id)
            previous_status = record.payment_status
            for name, value in changes.items():
                setattr(record, name, value)

            if "total_amount" in changes or "paid_amount" in changes:
                total = record.total_amount
                if total is not None and record.paid_amount > total + self._tolerance:
                    raise ValidationError(
                        f"paid_amount ({record.paid_amount:.2f}) cannot exceed "
                        f"total_amount ({total:.2f})"
                    )
                self._recompute(record)

            now = utc_now()
            record.last_edited_by = actor_id
            record.last_edited_at = now
            record.updated_at = now
            return FieldUpdateResult(
                ref=ref,
                updated_fields=sorted(changes),
                previous_status=previous_status,
                new_status=record.payment_status,
                total_amount=record.total_amount,
                paid_amount=record.paid_amount,
                unpaid_amount=record.unpaid_amount,
            )

        result = self._invoice_repo.transact(ref, apply)
        Log.info(
            f"Invoice fields updated: {', '.join(result.updated_fields)}",
            invoice=ref.path,
            actor=actor_id,
        )
        return result

    def _recompute(self, record: InvoiceRecord) -> None:
        total = round_cents(record.total_amount)
        record.paid_amount = round(record.paid_amount, 2)
        record.unpaid_amount = round(unpaid_balance(record.paid_amount, total), 2)
        record.payment_status = derive_payment_status(record.paid_amount, total)

    @staticmethod
    def _authorize(
        ref: InvoiceRef, record: InvoiceRecord | None, actor_id: str
    ) -> InvoiceRecord:
        if record is None:
            raise NotFoundError(f"Invoice not found: {ref.path}")
        if record.owner_id and record.owner_id != actor_id:
            raise AuthorizationError(f"Actor {actor_id} does not own invoice {ref.path}")
        return record

    def _validate_patch(self, patch: Mapping[str, Any]) -> dict[str, Any]:
        if not patch:
            raise ValidationError("No fields to update")
        unknown = sorted(set(patch) - self.editable_fields())
        if unknown:
            raise ValidationError(
                f"Unknown fields: {', '.join(unknown)}. "
                f"Allowed: {', '.join(sorted(self.editable_fields()))}"
            )

        changes: dict[str, Any] = {}
        for name, value in patch.items():
            if name in self.STRING_FIELDS:
                if not isinstance(value, str):
                    raise ValidationError(f"{name} must be a string")
                changes[name] = value.strip()
            elif name in self.DATE_FIELDS:
                parsed = parse_date(value)
                if parsed is None:
                    raise ValidationError(f"{name} must be a valid date")
                changes[name] = parsed
            else:
                changes[name] = self._require_amount(
                    name, value, allow_zero=True, cents=name != "vat_rate"
                )
        return changes

    @staticmethod
    def _require_amount(
        name: str, value: Any, *, allow_zero: bool, cents: bool = True
    ) -> float:
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ValidationError(f"{name} must be a number")
        amount = float(value)
        if not math.isfinite(amount):
            raise ValidationError(f"{name} must be a finite number")
        if cents:
            amount = round(amount, 2)
        if amount < 0 or (amount == 0 and not allow_zero):
            raise ValidationError(f"{name} must be {'non-negative' if allow_zero else 'positive'}")
        return amount
