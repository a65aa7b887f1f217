from collections.abc import Sequence
from typing import ClassVar

import pymupdf

from intake.assembly.exceptions import AssemblyError
from intake.assembly.models import AssemblyResult, DecodedPage
from intake.database.models import PageRecord
from intake.logging.logger import Log
from intake.storage.base import BaseObjectStorage
from intake.storage.exceptions import StorageError

PDF_CONTENT_TYPE = "application/pdf"


class DocumentAssembler:
    """Merges page blobs into one ordered multi-page PDF using PyMuPDF."""

    RASTER_FILETYPES: ClassVar[dict[str, str]] = {
        "image/jpeg": "jpeg",
        "image/jpg": "jpeg",
        "image/pjpeg": "jpeg",
        "image/png": "png",
        "image/tiff": "tiff",
    }

    def __init__(self, storage: BaseObjectStorage) -> None:
        self._storage = storage

    @classmethod
    def supports(cls, content_type: str) -> bool:
        return content_type == PDF_CONTENT_TYPE or content_type in cls.RASTER_FILETYPES

    def assemble(self, pages: Sequence[PageRecord]) -> AssemblyResult:
        """Download every page and append it to the combined PDF in page order.

        PDF blobs contribute all of their pages; raster images become one
        page each, sized to the image.

        Raises:
            AssemblyError: no pages, a missing blob, or an unsupported/undecodable type.
        """
        if not pages:
            raise AssemblyError("No pages were provided for assembly")

        ordered = sorted(pages, key=lambda page: page.page_number)
        decoded_pages: list[DecodedPage] = []
        with pymupdf.open() as combined:  # type: ignore[no-untyped-call]
            for page in ordered:
                decoded = self._download(page)
                decoded_pages.append(decoded)
                self._append(combined, decoded)
            page_count = combined.page_count
            try:
                artifact = combined.tobytes(garbage=3, deflate=True)
            except Exception as exc:
                raise AssemblyError(f"Failed to write combined PDF: {exc}") from exc

        Log.info(
            f"Assembled {len(decoded_pages)} uploads into a {page_count}-page PDF",
            bytes=len(artifact),
        )
        return AssemblyResult(
            artifact=artifact,
            decoded_pages=decoded_pages,
            page_count=page_count,
        )

    def _download(self, page: PageRecord) -> DecodedPage:
        if not page.object_ref:
            raise AssemblyError(f"Missing object reference for page {page.page_number}")
        content_type = (page.content_type or "").lower()
        if not self.supports(content_type):
            raise AssemblyError(
                f"Unsupported content type '{page.content_type}' for page {page.page_number}"
            )
        try:
            if not self._storage.exists(page.object_ref):
                raise AssemblyError(
                    f"Blob for page {page.page_number} is missing: {page.object_ref}"
                )
            buffer = self._storage.get(page.object_ref)
        except StorageError as exc:
            raise AssemblyError(
                f"Failed to download page {page.page_number}: {exc}"
            ) from exc
        return DecodedPage(
            page_number=page.page_number,
            buffer=buffer,
            content_type=content_type,
            object_ref=page.object_ref,
        )

    def _append(self, combined: pymupdf.Document, page: DecodedPage) -> None:
        try:
            if page.content_type == PDF_CONTENT_TYPE:
                with pymupdf.open(stream=page.buffer, filetype="pdf") as source:  # type: ignore[no-untyped-call]
                    combined.insert_pdf(source)
                return
            filetype = self.RASTER_FILETYPES[page.content_type]
            with pymupdf.open(stream=page.buffer, filetype=filetype) as image:  # type: ignore[no-untyped-call]
                single_page_pdf = image.convert_to_pdf()
            with pymupdf.open(stream=single_page_pdf, filetype="pdf") as source:  # type: ignore[no-untyped-call]
                combined.insert_pdf(source)
        except AssemblyError:
            raise
        except Exception as exc:
            raise AssemblyError(
                f"Page {page.page_number} ({page.content_type}) could not be decoded: {exc}"
            ) from exc
