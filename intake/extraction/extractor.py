"""AI-powered invoice field extractor."""

import json
from collections.abc import Sequence
from pathlib import Path

from intake.assembly.models import DecodedPage
from intake.extraction.base import BaseExtractor
from intake.extraction.client_base import BaseRecognitionClient
from intake.extraction.exceptions import ExtractionError
from intake.extraction.field_mapping import FieldMapping
from intake.extraction.models import AttemptResult, StructuredFields
from intake.extraction.parsing import normalize_european_decimals
from intake.extraction.prompt_loader import load_json_schema, load_prompt
from intake.logging.logger import Log

PDF_CONTENT_TYPE = "application/pdf"


class InvoiceExtractor(BaseExtractor):
    """Recognizes page text, then extracts schema-constrained fields from it.

    Each attempt re-runs recognition and extraction from scratch. The first
    attempt yielding a non-empty result wins; otherwise the last error is raised.
    """

    def __init__(
        self,
        *,
        client: BaseRecognitionClient,
        model: str,
        recognition_model: str | None = None,
        temperature: float = 0.0,
        max_attempts: int = 3,
        field_mapping: FieldMapping | None = None,
        prompt_dir: Path | None = None,
        json_schema_path: Path | None = None,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self._client = client
        self._model = model
        self._recognition_model = recognition_model or model
        self._temperature = max(0.0, min(0.2, temperature))
        self._max_attempts = max_attempts
        self._mapping = field_mapping or FieldMapping()
        self._json_schema = json.loads(load_json_schema(json_schema_path))
        self._mapping.validate_against_schema(self._json_schema)
        self._system_prompt = load_prompt("system_prompt.txt", prompt_dir)
        self._prompt_template = load_prompt("extraction_prompt.txt", prompt_dir)
        self._recognition_prompt = load_prompt("recognition_prompt.txt", prompt_dir)

    def extract(self, pages: Sequence[DecodedPage]) -> StructuredFields:
        if not pages:
            raise ExtractionError("No pages were selected for extraction")

        last_error: ExtractionError | None = None
        for attempt in range(1, self._max_attempts + 1):
            result = self._attempt(pages)
            if result.fields is not None:
                Log.info(f"Extraction succeeded on attempt {attempt}/{self._max_attempts}")
                return result.fields
            last_error = result.error
            Log.warning(f"Extraction attempt {attempt}/{self._max_attempts} failed: {last_error}")

        raise last_error or ExtractionError(
            f"Extraction failed after {self._max_attempts} attempts"
        )

    def _attempt(self, pages: Sequence[DecodedPage]) -> AttemptResult:
        try:
            text = self._recognize(pages)
            prompt = self._build_prompt(text)
            Log.debug(f"Extraction prompt:\n{prompt}")
            raw_response = self._client.create_chat_completion(
                model=self._model,
                temperature=self._temperature,
                system_prompt=self._system_prompt,
                user_prompt=prompt,
                json_schema=self._json_schema,
            )
            Log.debug(f"AI raw response:\n{raw_response}")
            fields = self._mapping.to_structured(self._parse_json(raw_response))
        except ExtractionError as exc:
            return AttemptResult.failure(exc)

        if fields.is_empty:
            return AttemptResult.failure(ExtractionError("Extraction returned no field values"))
        return AttemptResult.success(fields)

    def _recognize(self, pages: Sequence[DecodedPage]) -> str:
        blocks: list[str] = []
        for page in sorted(pages, key=lambda p: p.page_number):
            if page.content_type == PDF_CONTENT_TYPE:
                Log.warning(f"Skipping text recognition for PDF page {page.page_number}")
                continue
            page_text = self._client.recognize_text(
                model=self._recognition_model,
                image_bytes=page.buffer,
                content_type=page.content_type,
                prompt=self._recognition_prompt,
            ).strip()
            if page_text:
                blocks.append(f"=== PAGE {page.page_number} ===\n{page_text}")
            else:
                Log.warning(f"Recognition returned no text for page {page.page_number}")

        if not blocks:
            raise ExtractionError("Text recognition returned no text for the selected pages")
        return normalize_european_decimals("\n\n".join(blocks))

    def _build_prompt(self, text: str) -> str:
        field_list = "\n".join(
            f"{index}. {label}" for index, label in enumerate(self._mapping.ordered_labels(), 1)
        )
        return self._prompt_template.format(field_list=field_list, page_text=text)

    @staticmethod
    def _parse_json(raw: str) -> dict[str, object]:
        cleaned = raw.strip()
        if cleaned.startswith("```"):
            lines = cleaned.splitlines()
            if lines and lines[0].startswith("```"):
                lines = lines[1:]
            if lines and lines[-1].strip() == "```":
                lines = lines[:-1]
            cleaned = "\n".join(lines)

        try:
            parsed = json.loads(cleaned)
        except json.JSONDecodeError as exc:
            raise ExtractionError(f"Invalid JSON response: {exc}") from exc

        if not isinstance(parsed, dict):
            raise ExtractionError("JSON response must be an object")
        return parsed
