from abc import ABC, abstractmethod
from dataclasses import dataclass, field

from intake.assembly.models import AssemblyResult, DecodedPage
from intake.database.models import InvoiceRecord, IssuerProfile, SessionRecord
from intake.extraction.models import InvoiceFields, StructuredFields


@dataclass(slots=True)
class PipelineContext:
    session: SessionRecord
    assembly: AssemblyResult | None = None
    selected_pages: list[DecodedPage] = field(default_factory=list)
    extracted: StructuredFields | None = None
    fields: InvoiceFields | None = None
    issuer: IssuerProfile | None = None
    artifact_ref: str = ""
    invoice: InvoiceRecord | None = None
    error_message: str = ""
    duplicate_of: str | None = None

    @property
    def session_id(self) -> str:
        return self.session.session_id


class PipelineStep(ABC):
    @abstractmethod
    def run(self, context: PipelineContext) -> PipelineContext:
        raise NotImplementedError
