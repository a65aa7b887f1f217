from unittest.mock import MagicMock

import pytest

from intake.database.models import SessionRecord, SessionStatus
from intake.exceptions import DuplicateError
from intake.extraction.exceptions import ExtractionError
from intake.extraction.models import InvoiceFields
from intake.processor.messages import format_failure, format_success
from intake.processor.pipeline import PipelineContext, PipelineStep
from intake.processor.processor import Processor


def _make_session() -> SessionRecord:
    return SessionRecord(
        session_id="s-1",
        owner_id="owner-1",
        bucket_ref="bucket",
        storage_prefix="uploads/s-1",
        status=SessionStatus.PROCESSING,
        total_pages=1,
    )


def _make_fields(issuer_name: str = "Acme Ltd", document_number: str | None = "42") -> InvoiceFields:
    return InvoiceFields(
        issuer_id="099999999",
        issuer_name=issuer_name,
        issuer_tax_id="099999999",
        document_number=document_number,
        invoice_date=None,
        due_date=None,
        net_amount=None,
        vat_amount=None,
        total_amount=None,
        currency="EUR",
        confidence=None,
    )


class _RecordingStep(PipelineStep):
    def __init__(self, name: str, calls: list[str], error: Exception | None = None) -> None:
        self._name = name
        self._calls = calls
        self._error = error

    def run(self, context: PipelineContext) -> PipelineContext:
        self._calls.append(self._name)
        if self._error is not None:
            raise self._error
        return context


class _SetFieldsStep(PipelineStep):
    def run(self, context: PipelineContext) -> PipelineContext:
        context.fields = _make_fields()
        return context


class TestProcessor:
    def test_runs_steps_in_order(self) -> None:
        calls: list[str] = []
        failed = MagicMock(spec=PipelineStep)
        processor = Processor(
            steps=[_RecordingStep("a", calls), _RecordingStep("b", calls)],
            failed_step=failed,
        )

        context = processor.process(_make_session())

        assert calls == ["a", "b"]
        assert context.session_id == "s-1"
        failed.run.assert_not_called()

    def test_runs_failed_step_and_reraises(self) -> None:
        calls: list[str] = []
        failed = MagicMock(spec=PipelineStep)
        processor = Processor(
            steps=[
                _RecordingStep("a", calls, ExtractionError("no text")),
                _RecordingStep("b", calls),
            ],
            failed_step=failed,
        )

        with pytest.raises(ExtractionError, match="no text"):
            processor.process(_make_session())

        assert calls == ["a"]
        context = failed.run.call_args.args[0]
        assert context.error_message == "no text"
        assert context.duplicate_of is None

    def test_error_message_names_invoice_once_known(self) -> None:
        failed = MagicMock(spec=PipelineStep)
        processor = Processor(
            steps=[
                _SetFieldsStep(),
                _RecordingStep(
                    "dup",
                    [],
                    DuplicateError("Duplicate invoice", existing_ref="issuers/x/invoices/y"),
                ),
            ],
            failed_step=failed,
        )

        with pytest.raises(DuplicateError):
            processor.process(_make_session())

        context = failed.run.call_args.args[0]
        assert context.error_message == "Invoice 42 from Acme Ltd failed. Duplicate invoice"
        assert context.duplicate_of == "issuers/x/invoices/y"

    def test_without_failed_step(self) -> None:
        processor = Processor(steps=[_RecordingStep("a", [], RuntimeError("boom"))])

        with pytest.raises(RuntimeError):
            processor.process(_make_session())


class TestMessages:
    def test_failure_without_fields(self) -> None:
        context = PipelineContext(session=_make_session())
        assert format_failure(context, ValueError("bad")) == "bad"

    def test_failure_with_unknown_issuer(self) -> None:
        context = PipelineContext(session=_make_session(), fields=_make_fields("Unknown Issuer"))
        assert format_failure(context, ValueError("bad")) == "bad"

    def test_failure_with_empty_message_uses_type(self) -> None:
        context = PipelineContext(session=_make_session())
        assert format_failure(context, KeyError()) == "KeyError"

    def test_success_messages(self) -> None:
        assert format_success(PipelineContext(session=_make_session())) == "Session s-1 processed."
        context = PipelineContext(session=_make_session(), fields=_make_fields())
        assert format_success(context) == "Invoice 42 from Acme Ltd processed."
