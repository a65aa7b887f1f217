from dataclasses import dataclass, field


@dataclass(frozen=True)
class DecodedPage:
    """A downloaded page blob, as uploaded."""

    page_number: int
    buffer: bytes
    content_type: str
    object_ref: str = ""


@dataclass(frozen=True)
class AssemblyResult:
    """Combined multi-page PDF plus the per-page blobs it was built from."""

    artifact: bytes
    decoded_pages: list[DecodedPage] = field(default_factory=list)
    page_count: int = 0
