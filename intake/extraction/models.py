from dataclasses import dataclass, field
from datetime import date

from intake.extraction.exceptions import ExtractionError


@dataclass(frozen=True)
class StructuredFields:
    """Extraction output keyed by canonical field name, values as returned."""

    issuer_name: str | None = None
    issuer_tax_id: str | None = None
    document_number: str | None = None
    invoice_date: str | None = None
    due_date: str | None = None
    net_amount: str | None = None
    vat_amount: str | None = None
    total_amount: str | None = None
    currency: str | None = None
    confidence: str | None = None
    raw: dict[str, str | None] = field(default_factory=dict)

    @property
    def is_empty(self) -> bool:
        """True when no field other than confidence carries a value."""
        values = (
            self.issuer_name,
            self.issuer_tax_id,
            self.document_number,
            self.invoice_date,
            self.due_date,
            self.net_amount,
            self.vat_amount,
            self.total_amount,
            self.currency,
        )
        return all(value is None or not value.strip() for value in values)


@dataclass(frozen=True)
class AttemptResult:
    """Outcome of one independent recognition + extraction attempt."""

    fields: StructuredFields | None = None
    error: ExtractionError | None = None

    @property
    def succeeded(self) -> bool:
        return self.fields is not None

    @classmethod
    def success(cls, fields: StructuredFields) -> "AttemptResult":
        return cls(fields=fields)

    @classmethod
    def failure(cls, error: ExtractionError) -> "AttemptResult":
        return cls(error=error)


@dataclass(frozen=True)
class InvoiceFields:
    """Extracted fields after amount, date and identifier normalization."""

    issuer_id: str
    issuer_name: str
    issuer_tax_id: str | None
    document_number: str | None
    invoice_date: date | None
    due_date: date | None
    net_amount: float | None
    vat_amount: float | None
    total_amount: float | None
    currency: str
    confidence: float | None
