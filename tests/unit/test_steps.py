from typing import Any
from unittest.mock import MagicMock

import pytest

from intake.assembly.assembler import DocumentAssembler
from intake.assembly.models import AssemblyResult, DecodedPage
from intake.database.models import (
    InvoiceRecord,
    PageRecord,
    PaymentStatus,
    SessionRecord,
    SessionStatus,
)
from intake.exceptions import DuplicateError, InvalidStateError, ValidationError
from intake.extraction.exceptions import ExtractionError
from intake.extraction.models import InvoiceFields, StructuredFields
from intake.extraction.parsing import UNKNOWN_ISSUER_ID, UNKNOWN_ISSUER_NAME
from intake.notification.base import NotificationResult
from intake.processor.pipeline import PipelineContext
from intake.processor.steps import (
    AssembleStep,
    CreateInvoiceStep,
    DuplicateCheckStep,
    ExtractFieldsStep,
    MarkDoneStep,
    MarkFailedStep,
    NormalizeFieldsStep,
    NotifyStep,
    PersistArtifactStep,
    SelectPagesStep,
    UpsertIssuerStep,
    ValidatePagesStep,
    artifact_path,
)
from intake.storage.local_storage import LocalObjectStorage


def _make_session(
    total_pages: int = 2,
    pages: int | None = None,
    status: SessionStatus = SessionStatus.PROCESSING,
) -> SessionRecord:
    count = total_pages if pages is None else pages
    return SessionRecord(
        session_id="s-1",
        owner_id="owner-1",
        bucket_ref="bucket",
        storage_prefix="uploads/s-1",
        status=status,
        total_pages=total_pages,
        uploaded_page_numbers=set(range(1, count + 1)),
        pages=[
            PageRecord(
                page_number=n,
                object_ref=f"uploads/s-1/page-{n:03d}-a.jpg",
                content_type="image/jpeg",
            )
            for n in range(1, count + 1)
        ],
    )


def _make_fields(
    issuer_id: str = "099999999",
    issuer_name: str = "Acme Ltd",
    document_number: str | None = "42",
    total: float | None = 124.0,
) -> InvoiceFields:
    return InvoiceFields(
        issuer_id=issuer_id,
        issuer_name=issuer_name,
        issuer_tax_id=issuer_id if issuer_id != UNKNOWN_ISSUER_ID else None,
        document_number=document_number,
        invoice_date=None,
        due_date=None,
        net_amount=100.0,
        vat_amount=24.0,
        total_amount=total,
        currency="EUR",
        confidence=90.0,
    )


def _decoded(number: int) -> DecodedPage:
    return DecodedPage(page_number=number, buffer=b"img", content_type="image/jpeg")


class TestValidatePagesStep:
    def test_complete_session_passes(self) -> None:
        context = PipelineContext(session=_make_session())
        assert ValidatePagesStep().run(context) is context

    def test_missing_pages_fail(self) -> None:
        with pytest.raises(ValidationError, match="expected 3"):
            ValidatePagesStep().run(PipelineContext(session=_make_session(3, pages=2)))

    def test_no_pages_fail(self) -> None:
        with pytest.raises(ValidationError, match="no pages"):
            ValidatePagesStep().run(PipelineContext(session=_make_session(1, pages=0)))


class TestAssembleStep:
    def test_stores_assembly_on_context(self) -> None:
        assembler = MagicMock(spec=DocumentAssembler)
        assembler.assemble.return_value = AssemblyResult(artifact=b"%PDF", page_count=2)
        session = _make_session()

        context = AssembleStep(assembler).run(PipelineContext(session=session))

        assembler.assemble.assert_called_once_with(session.pages)
        assert context.assembly is not None
        assert context.assembly.artifact == b"%PDF"


class TestSelectPagesStep:
    @pytest.mark.parametrize(
        ("count", "expected"),
        [(1, [1]), (2, [1, 2]), (3, [1, 3]), (5, [1, 5])],
    )
    def test_first_and_last(self, count: int, expected: list[int]) -> None:
        pages = [_decoded(n) for n in reversed(range(1, count + 1))]
        context = PipelineContext(
            session=_make_session(count),
            assembly=AssemblyResult(artifact=b"", decoded_pages=pages),
        )

        SelectPagesStep().run(context)

        assert [page.page_number for page in context.selected_pages] == expected


class TestExtractFieldsStep:
    def test_sets_extracted(self) -> None:
        extractor = MagicMock()
        extractor.extract.return_value = StructuredFields(total_amount="1")
        context = PipelineContext(session=_make_session(), selected_pages=[_decoded(1)])

        ExtractFieldsStep(extractor).run(context)

        assert context.extracted is not None
        assert context.extracted.total_amount == "1"

    def test_empty_result_fails(self) -> None:
        extractor = MagicMock()
        extractor.extract.return_value = StructuredFields(confidence="90")

        with pytest.raises(ExtractionError, match="empty"):
            ExtractFieldsStep(extractor).run(PipelineContext(session=_make_session()))


class TestNormalizeFieldsStep:
    def test_normalizes_amounts(self) -> None:
        context = PipelineContext(
            session=_make_session(),
            extracted=StructuredFields(total_amount="1.234,56", issuer_tax_id="099999999"),
        )

        NormalizeFieldsStep("EUR").run(context)

        assert context.fields is not None
        assert context.fields.total_amount == pytest.approx(1234.56)
        assert context.fields.issuer_id == "099999999"


class TestUpsertIssuerStep:
    def test_upserts_issuer(self, issuer_repo: Any) -> None:
        context = PipelineContext(session=_make_session(), fields=_make_fields())

        UpsertIssuerStep(issuer_repo).run(context)

        profile = issuer_repo.find_by_id("099999999")
        assert profile.name == "Acme Ltd"
        assert context.issuer == profile

    def test_unknown_issuer_name_is_not_stored(self, issuer_repo: Any) -> None:
        fields = _make_fields(issuer_id=UNKNOWN_ISSUER_ID, issuer_name=UNKNOWN_ISSUER_NAME)

        UpsertIssuerStep(issuer_repo).run(PipelineContext(session=_make_session(), fields=fields))

        assert issuer_repo.find_by_id(UNKNOWN_ISSUER_ID).name is None


class TestDuplicateCheckStep:
    def test_raises_with_existing_ref(self, invoice_repo: Any) -> None:
        invoice_repo.upsert(
            InvoiceRecord(issuer_id="099999999", invoice_id="s-0", document_number="42")
        )
        context = PipelineContext(session=_make_session(), fields=_make_fields())

        with pytest.raises(DuplicateError) as exc_info:
            DuplicateCheckStep(invoice_repo).run(context)

        assert exc_info.value.existing_ref == "issuers/099999999/invoices/s-0"

    def test_own_record_is_not_a_duplicate(self, invoice_repo: Any) -> None:
        invoice_repo.upsert(
            InvoiceRecord(issuer_id="099999999", invoice_id="s-1", document_number="42")
        )
        context = PipelineContext(session=_make_session(), fields=_make_fields())

        assert DuplicateCheckStep(invoice_repo).run(context) is context

    def test_other_issuer_is_not_a_duplicate(self, invoice_repo: Any) -> None:
        invoice_repo.upsert(
            InvoiceRecord(issuer_id="111111111", invoice_id="s-0", document_number="42")
        )
        context = PipelineContext(session=_make_session(), fields=_make_fields())

        DuplicateCheckStep(invoice_repo).run(context)

    def test_skipped_without_document_number(self, invoice_repo: Any) -> None:
        context = PipelineContext(
            session=_make_session(), fields=_make_fields(document_number=None)
        )

        assert DuplicateCheckStep(invoice_repo).run(context) is context


class TestPersistArtifactStep:
    def test_writes_pdf_under_issuer(self, storage: LocalObjectStorage) -> None:
        context = PipelineContext(
            session=_make_session(),
            assembly=AssemblyResult(artifact=b"%PDF-1.7", page_count=1),
            fields=_make_fields(),
        )

        PersistArtifactStep(storage).run(context)

        assert context.artifact_ref == artifact_path("099999999", "s-1")
        assert context.artifact_ref == "issuers/099999999/invoices/s-1.pdf"
        assert storage.get(context.artifact_ref) == b"%PDF-1.7"
        assert storage.content_type(context.artifact_ref) == "application/pdf"


class TestCreateInvoiceStep:
    def test_creates_unpaid_record(self, invoice_repo: Any) -> None:
        context = PipelineContext(
            session=_make_session(),
            extracted=StructuredFields(raw={"ΠΛΗΡΩΤΕΟ": "124.00"}),
            fields=_make_fields(),
            artifact_ref="issuers/099999999/invoices/s-1.pdf",
        )

        CreateInvoiceStep(invoice_repo).run(context)

        record = invoice_repo.rows[("099999999", "s-1")]
        assert record.owner_id == "owner-1"
        assert record.payment_status is PaymentStatus.UNPAID
        assert record.paid_amount == 0.0
        assert record.unpaid_amount == 124.0
        assert record.processing_status == "processed"
        assert record.raw_fields == {"ΠΛΗΡΩΤΕΟ": "124.00"}
        assert record.source_object_refs == [page.object_ref for page in context.session.pages]
        assert record.assembled_artifact_ref == "issuers/099999999/invoices/s-1.pdf"
        assert context.invoice is not None


class TestMarkDoneStep:
    def test_marks_done_with_reference(self, session_repo: Any) -> None:
        session_repo.rows["s-1"] = _make_session()
        context = PipelineContext(
            session=_make_session(),
            fields=_make_fields(),
            invoice=InvoiceRecord(issuer_id="099999999", invoice_id="s-1"),
        )

        MarkDoneStep(session_repo).run(context)

        record = session_repo.find_by_id("s-1")
        assert record.status is SessionStatus.DONE
        assert record.invoice_ref == "issuers/099999999/invoices/s-1"
        assert record.success_message == "Invoice 42 from Acme Ltd processed."
        assert context.session.status is SessionStatus.DONE

    def test_refuses_illegal_transition(self, session_repo: Any) -> None:
        session_repo.rows["s-1"] = _make_session(status=SessionStatus.READY)
        context = PipelineContext(
            session=_make_session(),
            invoice=InvoiceRecord(issuer_id="099999999", invoice_id="s-1"),
        )

        with pytest.raises(InvalidStateError):
            MarkDoneStep(session_repo).run(context)
        assert session_repo.find_by_id("s-1").status is SessionStatus.READY


class TestNotifyStep:
    def test_notifies_owner(self) -> None:
        notifier = MagicMock()
        notifier.notify.return_value = NotificationResult(sent=1)
        session = _make_session(status=SessionStatus.DONE)
        session.success_message = "Invoice 42 from Acme Ltd processed."

        NotifyStep(notifier).run(PipelineContext(session=session))

        owner_id, payload = notifier.notify.call_args.args
        assert owner_id == "owner-1"
        assert payload["status"] == "done"
        assert payload["body"] == "Invoice 42 from Acme Ltd processed."

    def test_notifier_failure_is_not_fatal(self) -> None:
        notifier = MagicMock()
        notifier.notify.side_effect = RuntimeError("push service down")
        context = PipelineContext(session=_make_session())

        assert NotifyStep(notifier).run(context) is context


class TestMarkFailedStep:
    def test_writes_error_and_notifies(self, session_repo: Any) -> None:
        session_repo.rows["s-1"] = _make_session()
        notifier = MagicMock()
        notifier.notify.return_value = NotificationResult(sent=1)
        context = PipelineContext(
            session=_make_session(),
            error_message="Invoice 42 from Acme Ltd failed. Duplicate invoice",
            duplicate_of="issuers/099999999/invoices/s-0",
        )

        MarkFailedStep(session_repo, notifier).run(context)

        record = session_repo.find_by_id("s-1")
        assert record.status is SessionStatus.ERROR
        assert record.error_message == context.error_message
        assert record.duplicate_of == "issuers/099999999/invoices/s-0"
        payload = notifier.notify.call_args.args[1]
        assert payload["status"] == "error"
        assert payload["duplicate_of"] == "issuers/099999999/invoices/s-0"

    def test_does_not_overwrite_non_processing_session(self, session_repo: Any) -> None:
        session_repo.rows["s-1"] = _make_session(status=SessionStatus.DONE)
        notifier = MagicMock()
        notifier.notify.return_value = NotificationResult(sent=1)

        MarkFailedStep(session_repo, notifier).run(
            PipelineContext(session=_make_session(), error_message="late failure")
        )

        assert session_repo.find_by_id("s-1").status is SessionStatus.DONE

    def test_never_raises(self) -> None:
        session_repo = MagicMock()
        session_repo.transact.side_effect = RuntimeError("db down")
        notifier = MagicMock()
        notifier.notify.side_effect = RuntimeError("push down")
        context = PipelineContext(session=_make_session(), error_message="boom")

        assert MarkFailedStep(session_repo, notifier).run(context) is context
