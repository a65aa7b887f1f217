"""Example recognition client adapter.

Use this module as a reference when implementing new provider adapters.
Implement BaseRecognitionClient and register the provider in RecognitionClientFactory.
"""

import json
from typing import ClassVar

from intake.extraction.client_base import BaseRecognitionClient


class ExampleClientAdapter(BaseRecognitionClient):
    """Offline adapter returning fixed page text and a fixed, valid field payload.

    No network calls. Useful for local development and tests.
    """

    DEFAULT_TEXT: ClassVar[str] = "ΤΙΜΟΛΟΓΙΟ ΠΩΛΗΣΗΣ"

    DEFAULT_RESPONSE: ClassVar[dict[str, str | None]] = {
        "ΗΜΕΡΟΜΗΝΙΑ": "01/01/2024",
        "ΗΜΕΡΟΜΗΝΙΑ ΛΗΞΗΣ": None,
        "ΑΡΙΘΜΟΣ ΤΙΜΟΛΟΓΙΟΥ": "000001",
        "ΠΡΟΜΗΘΕΥΤΗΣ": "Example Supplier",
        "ΑΦΜ ΠΡΟΜΗΘΕΥΤΗ": "000000000",
        "ΚΑΘΑΡΗ ΑΞΙΑ": "100.00",
        "ΦΠΑ": "24.00",
        "ΠΛΗΡΩΤΕΟ": "124.00",
        "ΝΟΜΙΣΜΑ": "EUR",
        "ΑΚΡΙΒΕΙΑ": "100",
    }

    def __init__(
        self,
        text: str | None = None,
        response: dict[str, str | None] | None = None,
    ) -> None:
        self._text = self.DEFAULT_TEXT if text is None else text
        self._response = dict(self.DEFAULT_RESPONSE if response is None else response)

    def recognize_text(
        self,
        *,
        model: str,
        image_bytes: bytes,
        content_type: str,
        prompt: str,
    ) -> str:
        _ = model, image_bytes, content_type, prompt
        return self._text

    def create_chat_completion(
        self,
        *,
        model: str,
        temperature: float,
        system_prompt: str,
        user_prompt: str,
        json_schema: dict[str, object],
    ) -> str:
        _ = model, temperature, system_prompt, user_prompt, json_schema
        return json.dumps(self._response, ensure_ascii=False)
