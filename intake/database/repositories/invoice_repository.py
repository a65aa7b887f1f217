from collections.abc import Callable
from datetime import date, datetime
from typing import Any, TypeVar

import psycopg
from psycopg.rows import dict_row
from psycopg.types.json import Jsonb

from intake.database.connection import get_connection
from intake.database.models import InvoiceRecord, InvoiceRef, PaymentEntry, PaymentStatus

T = TypeVar("T")

_COLUMNS = """
    issuer_id, invoice_id, owner_id, issuer_name, issuer_tax_id, document_number,
    invoice_date, due_date, net_amount, vat_amount, vat_rate, total_amount,
    currency, confidence, source_object_refs, assembled_artifact_ref,
    processing_status, payment_status, paid_amount, unpaid_amount,
    payment_history, raw_fields, last_edited_by, last_edited_at,
    created_at, updated_at
"""


class InvoiceRepository:
    """Database operations for the invoices table (finalized records)."""

    def transact(self, ref: InvoiceRef, fn: Callable[[InvoiceRecord | None], T]) -> T:
        """Run ``fn`` against the locked record and persist its in-place changes.

        ``fn`` receives None when the record does not exist. Any exception
        raised by ``fn`` aborts the transaction with no partial writes.
        """
        with get_connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    f"""
                    SELECT {_COLUMNS} FROM invoices
                    WHERE issuer_id = %s AND invoice_id = %s
                    FOR UPDATE
                    """,
                    (ref.issuer_id, ref.invoice_id),
                )
                row = cur.fetchone()
            record = _row_to_record(row) if row is not None else None
            result = fn(record)
            if record is not None:
                self._update(conn, record)
            conn.commit()
        return result

    def find(self, ref: InvoiceRef) -> InvoiceRecord | None:
        with get_connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    f"SELECT {_COLUMNS} FROM invoices WHERE issuer_id = %s AND invoice_id = %s",
                    (ref.issuer_id, ref.invoice_id),
                )
                row = cur.fetchone()
        return _row_to_record(row) if row is not None else None

    def find_by_document_number(
        self,
        issuer_id: str,
        document_number: str,
        exclude_invoice_id: str | None = None,
    ) -> InvoiceRef | None:
        """Find another finalized record of the issuer with this document number."""
        with get_connection() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    SELECT invoice_id FROM invoices
                    WHERE issuer_id = %s
                      AND document_number = %s
                      AND invoice_id IS DISTINCT FROM %s
                    ORDER BY created_at
                    LIMIT 1
                    """,
                    (issuer_id, document_number, exclude_invoice_id),
                )
                row = cur.fetchone()
        if row is None:
            return None
        return InvoiceRef(issuer_id=issuer_id, invoice_id=row[0])

    def upsert(self, record: InvoiceRecord) -> None:
        """Create the finalized record, merging extracted fields on re-run.

        Payment state is only written on first insert so a re-run after a
        partial failure never resets recorded payments.
        """
        with get_connection() as conn:
            conn.execute(
                f"""
                INSERT INTO invoices ({_COLUMNS})
                VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s,
                        %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
                ON CONFLICT (issuer_id, invoice_id) DO UPDATE SET
                    owner_id = EXCLUDED.owner_id,
                    issuer_name = EXCLUDED.issuer_name,
                    issuer_tax_id = EXCLUDED.issuer_tax_id,
                    document_number = EXCLUDED.document_number,
                    invoice_date = EXCLUDED.invoice_date,
                    due_date = EXCLUDED.due_date,
                    net_amount = EXCLUDED.net_amount,
                    vat_amount = EXCLUDED.vat_amount,
                    vat_rate = EXCLUDED.vat_rate,
                    total_amount = EXCLUDED.total_amount,
                    currency = EXCLUDED.currency,
                    confidence = EXCLUDED.confidence,
                    source_object_refs = EXCLUDED.source_object_refs,
                    assembled_artifact_ref = EXCLUDED.assembled_artifact_ref,
                    processing_status = EXCLUDED.processing_status,
                    raw_fields = EXCLUDED.raw_fields,
                    updated_at = EXCLUDED.updated_at
                """,
                _record_to_params(record),
            )
            conn.commit()

    def _update(self, conn: psycopg.Connection[Any], record: InvoiceRecord) -> None:
        params = _record_to_params(record)
        conn.execute(
            """
            UPDATE invoices
            SET owner_id = %s, issuer_name = %s, issuer_tax_id = %s,
                document_number = %s, invoice_date = %s, due_date = %s,
                net_amount = %s, vat_amount = %s, vat_rate = %s, total_amount = %s,
                currency = %s, confidence = %s, source_object_refs = %s,
                assembled_artifact_ref = %s, processing_status = %s,
                payment_status = %s, paid_amount = %s, unpaid_amount = %s,
                payment_history = %s, raw_fields = %s, last_edited_by = %s,
                last_edited_at = %s, created_at = %s, updated_at = %s
            WHERE issuer_id = %s AND invoice_id = %s
            """,
            (*params[2:], params[0], params[1]),
        )


def _record_to_params(record: InvoiceRecord) -> tuple[Any, ...]:
    return (
        record.issuer_id,
        record.invoice_id,
        record.owner_id,
        record.issuer_name,
        record.issuer_tax_id,
        record.document_number,
        record.invoice_date,
        record.due_date,
        record.net_amount,
        record.vat_amount,
        record.vat_rate,
        record.total_amount,
        record.currency,
        record.confidence,
        Jsonb(list(record.source_object_refs)),
        record.assembled_artifact_ref,
        record.processing_status,
        record.payment_status.value,
        record.paid_amount,
        record.unpaid_amount,
        Jsonb([_entry_to_dict(entry) for entry in record.payment_history]),
        Jsonb(dict(record.raw_fields)),
        record.last_edited_by,
        record.last_edited_at,
        record.created_at,
        record.updated_at,
    )


def _row_to_record(row: dict[str, Any]) -> InvoiceRecord:
    return InvoiceRecord(
        issuer_id=row["issuer_id"],
        invoice_id=row["invoice_id"],
        owner_id=row["owner_id"],
        issuer_name=row["issuer_name"],
        issuer_tax_id=row["issuer_tax_id"],
        document_number=row["document_number"],
        invoice_date=row["invoice_date"],
        due_date=row["due_date"],
        net_amount=row["net_amount"],
        vat_amount=row["vat_amount"],
        vat_rate=row["vat_rate"],
        total_amount=row["total_amount"],
        currency=row["currency"],
        confidence=row["confidence"],
        source_object_refs=list(row["source_object_refs"] or []),
        assembled_artifact_ref=row["assembled_artifact_ref"],
        processing_status=row["processing_status"],
        payment_status=PaymentStatus(row["payment_status"]),
        paid_amount=row["paid_amount"] or 0.0,
        unpaid_amount=row["unpaid_amount"],
        payment_history=[_entry_from_dict(item) for item in row["payment_history"] or []],
        raw_fields=dict(row["raw_fields"] or {}),
        last_edited_by=row["last_edited_by"],
        last_edited_at=row["last_edited_at"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


def _entry_to_dict(entry: PaymentEntry) -> dict[str, object]:
    return {
        "amount": entry.amount,
        "method": entry.method,
        "paid_on": entry.paid_on.isoformat(),
        "notes": entry.notes,
        "recorded_at": entry.recorded_at.isoformat(),
        "recorded_by": entry.recorded_by,
    }


def _entry_from_dict(raw: dict[str, Any]) -> PaymentEntry:
    return PaymentEntry(
        amount=float(raw["amount"]),
        method=raw["method"],
        paid_on=date.fromisoformat(raw["paid_on"]),
        notes=raw.get("notes"),
        recorded_at=datetime.fromisoformat(raw["recorded_at"]),
        recorded_by=raw["recorded_by"],
    )
