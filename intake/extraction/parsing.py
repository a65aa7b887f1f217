"""Normalization of extracted string values into amounts, dates and identifiers.

Unparseable values become None; extraction confidence is reported separately.
"""

import math
import re
from datetime import date, datetime, timezone

from intake.extraction.models import InvoiceFields, StructuredFields

UNKNOWN_ISSUER_ID = "unknown-issuer"
UNKNOWN_ISSUER_NAME = "Unknown Issuer"
MAX_ID_LENGTH = 64

_EUROPEAN_DECIMAL_RE = re.compile(r"\b(\d{1,3}(?:\.\d{3})*),(\d{1,2})\b")
_DAY_FIRST_RE = re.compile(r"(\d{1,2})[/\-.](\d{1,2})[/\-.](\d{4})")
_YEAR_FIRST_RE = re.compile(r"(\d{4})[/\-](\d{1,2})[/\-](\d{1,2})")
_ID_SEPARATOR_RE = re.compile(r"[\W_]+")
_CURRENCY_CODE_RE = re.compile(r"[A-Z]{3}")
_CURRENCY_SYMBOLS = {"€": "EUR", "$": "USD", "£": "GBP"}


def normalize_european_decimals(text: str) -> str:
    """Rewrite '2.383,13' style amounts in free text as '2383.13'."""
    return _EUROPEAN_DECIMAL_RE.sub(
        lambda m: f"{m.group(1).replace('.', '')}.{m.group(2)}", text
    )


def parse_amount(value: object) -> float | None:
    """Parse an amount such as '1.234,56', '1,234.56' or '€ 12,5'.

    The separator followed by a final 1-2 digit group is the decimal point;
    other separators are digit grouping.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value) if math.isfinite(value) else None

    s = re.sub(r"[^\d,.\-]", "", str(value))
    negative = s.startswith("-")
    s = s.replace("-", "")
    if not re.search(r"\d", s):
        return None

    has_dot = "." in s
    has_comma = "," in s
    if has_dot and has_comma:
        if s.rfind(",") > s.rfind("."):
            s = s.replace(".", "").replace(",", ".")
        else:
            s = s.replace(",", "")
    elif has_comma:
        if re.search(r",\d{1,2}$", s) and s.count(",") == 1:
            s = s.replace(",", ".")
        else:
            s = s.replace(",", "")
    elif has_dot:
        if not (re.search(r"\.\d{1,2}$", s) and s.count(".") == 1):
            head, _, tail = s.rpartition(".")
            s = head.replace(".", "") + ("." + tail if len(tail) <= 2 else tail)

    try:
        amount = float(s.strip("."))
    except ValueError:
        return None
    if not math.isfinite(amount):
        return None
    return -amount if negative else amount


def round_cents(value: float | None) -> float | None:
    """Money amounts are stored with cent precision everywhere."""
    if value is None:
        return None
    return round(value, 2)


def parse_date(value: object) -> date | None:
    """Parse d/m/Y, d-m-Y, Y-m-d or Y/m/d (and ISO timestamps) into a UTC calendar date."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return _utc_date(value)
    if isinstance(value, date):
        return value

    s = str(value).strip()
    if not s:
        return None
    try:
        match = _DAY_FIRST_RE.fullmatch(s)
        if match:
            day, month, year = (int(part) for part in match.groups())
            return date(year, month, day)
        match = _YEAR_FIRST_RE.fullmatch(s)
        if match:
            year, month, day = (int(part) for part in match.groups())
            return date(year, month, day)
        return _utc_date(datetime.fromisoformat(s.replace("Z", "+00:00")))
    except ValueError:
        return None


def _utc_date(value: datetime) -> date:
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc)
    return value.date()


def digits_only(value: str | None) -> str | None:
    """Reduce a document number to its digits; None when it has none."""
    if not value:
        return None
    digits = "".join(re.findall(r"\d", value))
    return digits or None


def parse_currency(value: str | None, default: str) -> str:
    if not value:
        return default
    cleaned = value.strip()
    for symbol, code in _CURRENCY_SYMBOLS.items():
        if symbol in cleaned:
            return code
    match = _CURRENCY_CODE_RE.search(cleaned.upper())
    return match.group(0) if match else default


def sanitize_id(value: str | None, fallback: str) -> str:
    """Lowercase, collapse non-word runs to '-', trim, cap the length."""
    if not value:
        return fallback
    cleaned = _ID_SEPARATOR_RE.sub("-", value.casefold()).strip("-")
    cleaned = cleaned[:MAX_ID_LENGTH].strip("-")
    return cleaned or fallback


def derive_issuer_id(tax_id: str | None, name: str | None) -> str:
    """Tax id when present, else the normalized name, else the unknown-issuer id."""
    return sanitize_id(tax_id, sanitize_id(name, UNKNOWN_ISSUER_ID))


def normalize_fields(fields: StructuredFields, default_currency: str) -> InvoiceFields:
    """Turn raw extracted strings into typed invoice fields."""
    tax_id = fields.issuer_tax_id.strip() if fields.issuer_tax_id else None
    name = fields.issuer_name.strip() if fields.issuer_name else None
    return InvoiceFields(
        issuer_id=derive_issuer_id(tax_id, name),
        issuer_name=name or UNKNOWN_ISSUER_NAME,
        issuer_tax_id=tax_id or None,
        document_number=digits_only(fields.document_number),
        invoice_date=parse_date(fields.invoice_date),
        due_date=parse_date(fields.due_date),
        net_amount=round_cents(parse_amount(fields.net_amount)),
        vat_amount=round_cents(parse_amount(fields.vat_amount)),
        total_amount=round_cents(parse_amount(fields.total_amount)),
        currency=parse_currency(fields.currency, default_currency),
        confidence=parse_amount(fields.confidence),
    )
