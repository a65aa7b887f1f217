from intake.extraction.base import BaseExtractor
from intake.extraction.extractor import InvoiceExtractor
from intake.extraction.factory import RecognitionClientFactory, build_extractor

__all__ = ["BaseExtractor", "InvoiceExtractor", "RecognitionClientFactory", "build_extractor"]
