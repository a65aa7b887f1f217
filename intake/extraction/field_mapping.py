"""Bidirectional mapping between extraction schema labels and canonical field names."""

from collections.abc import Mapping
from dataclasses import fields
from typing import Any

from intake.extraction.exceptions import ExtractionConfigError, ExtractionValidationError
from intake.extraction.models import StructuredFields

DEFAULT_FIELD_LABELS: dict[str, str] = {
    "ΗΜΕΡΟΜΗΝΙΑ": "invoice_date",
    "ΗΜΕΡΟΜΗΝΙΑ ΛΗΞΗΣ": "due_date",
    "ΑΡΙΘΜΟΣ ΤΙΜΟΛΟΓΙΟΥ": "document_number",
    "ΠΡΟΜΗΘΕΥΤΗΣ": "issuer_name",
    "ΑΦΜ ΠΡΟΜΗΘΕΥΤΗ": "issuer_tax_id",
    "ΚΑΘΑΡΗ ΑΞΙΑ": "net_amount",
    "ΦΠΑ": "vat_amount",
    "ΠΛΗΡΩΤΕΟ": "total_amount",
    "ΝΟΜΙΣΜΑ": "currency",
    "ΑΚΡΙΒΕΙΑ": "confidence",
}

_CANONICAL_NAMES = frozenset(f.name for f in fields(StructuredFields) if f.name != "raw")
_NULLABLE_STRING = frozenset({"string", "null"})


class FieldMapping:
    """Maps label-keyed extraction payloads onto StructuredFields.

    The table must be one-to-one and every canonical name must be a field
    of StructuredFields.
    """

    def __init__(self, label_to_field: Mapping[str, str] | None = None) -> None:
        table = dict(label_to_field or DEFAULT_FIELD_LABELS)
        unknown = sorted(set(table.values()) - _CANONICAL_NAMES)
        if unknown:
            raise ExtractionConfigError(f"Unknown canonical field names: {unknown}")
        if len(set(table.values())) != len(table):
            raise ExtractionConfigError("Field mapping must be one-to-one")
        self._label_to_field = table
        self._field_to_label = {name: label for label, name in table.items()}

    @property
    def labels(self) -> frozenset[str]:
        return frozenset(self._label_to_field)

    def field_for(self, label: str) -> str:
        return self._label_to_field[label]

    def label_for(self, field_name: str) -> str:
        return self._field_to_label[field_name]

    def ordered_labels(self) -> list[str]:
        return list(self._label_to_field)

    def validate_against_schema(self, schema: Mapping[str, Any]) -> None:
        """Check that the schema declares exactly the mapped labels as required nullable strings.

        Raises:
            ExtractionConfigError: on any mismatch.
        """
        if schema.get("type") != "object":
            raise ExtractionConfigError("Extraction schema must describe an object")
        if schema.get("additionalProperties") is not False:
            raise ExtractionConfigError("Extraction schema must set additionalProperties to false")

        properties = schema.get("properties")
        if not isinstance(properties, Mapping):
            raise ExtractionConfigError("Extraction schema has no properties")
        declared = set(properties)
        if declared != set(self.labels):
            missing = sorted(self.labels - declared)
            extra = sorted(declared - self.labels)
            raise ExtractionConfigError(
                f"Schema properties do not match field mapping (missing={missing}, extra={extra})"
            )

        required = schema.get("required")
        if not isinstance(required, list) or set(required) != declared:
            raise ExtractionConfigError("Every schema property must be required")

        for label, spec in properties.items():
            types = spec.get("type") if isinstance(spec, Mapping) else None
            if not isinstance(types, list) or set(types) != _NULLABLE_STRING:
                raise ExtractionConfigError(
                    f"Schema property '{label}' must be of type [\"string\", \"null\"]"
                )

    def to_structured(self, payload: Mapping[str, Any]) -> StructuredFields:
        """Validate a parsed payload and map it to canonical names.

        Raises:
            ExtractionValidationError: wrong key set or a non-string, non-null value.
        """
        keys = set(payload)
        missing = sorted(self.labels - keys)
        if missing:
            raise ExtractionValidationError(f"Extraction result is missing fields: {missing}")
        extra = sorted(keys - self.labels)
        if extra:
            raise ExtractionValidationError(f"Extraction result has unexpected fields: {extra}")

        raw: dict[str, str | None] = {}
        values: dict[str, str | None] = {}
        for label in self.ordered_labels():
            value = payload[label]
            if value is not None and not isinstance(value, str):
                raise ExtractionValidationError(
                    f"Field '{label}' must be a string or null, got {type(value).__name__}"
                )
            cleaned = value.strip() if isinstance(value, str) else None
            cleaned = cleaned or None
            raw[label] = cleaned
            values[self.field_for(label)] = cleaned
        return StructuredFields(**values, raw=raw)

    def to_labels(self, structured: StructuredFields) -> dict[str, str | None]:
        return {
            label: getattr(structured, name) for label, name in self._label_to_field.items()
        }
