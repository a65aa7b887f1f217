from abc import ABC, abstractmethod
from collections.abc import Sequence

from intake.assembly.models import DecodedPage
from intake.extraction.models import StructuredFields


class BaseExtractor(ABC):
    """Contract for all extraction adapters."""

    @abstractmethod
    def extract(self, pages: Sequence[DecodedPage]) -> StructuredFields:
        """Recognize the given pages and extract the invoice fields.

        Args:
            pages: Decoded page blobs selected for extraction.

        Returns:
            StructuredFields with at least one non-empty field.

        Raises:
            ExtractionError: when every attempt failed.
        """
