import base64
from collections.abc import Callable
from typing import Any

import httpx
import openai

from intake.extraction.client_base import BaseRecognitionClient
from intake.extraction.exceptions import ExtractionError, ExtractionNetworkError


class OpenAIClientAdapter(BaseRecognitionClient):
    """Recognition client built on the OpenAI-compatible chat API.

    Page recognition sends the image as a base64 data URL to a vision model;
    field extraction uses a strict ``json_schema`` response format.
    """

    def __init__(
        self,
        *,
        api_key: str,
        timeout_seconds: int,
        base_url: str | None = None,
    ) -> None:
        self._client = openai.OpenAI(
            api_key=api_key,
            timeout=timeout_seconds,
            base_url=base_url,
        )

    def recognize_text(
        self,
        *,
        model: str,
        image_bytes: bytes,
        content_type: str,
        prompt: str,
    ) -> str:
        encoded = base64.b64encode(image_bytes).decode("ascii")
        content = self._complete(
            lambda: self._client.chat.completions.create(
                model=model,
                temperature=0.0,
                messages=[
                    {"role": "system", "content": prompt},
                    {
                        "role": "user",
                        "content": [
                            {
                                "type": "image_url",
                                "image_url": {
                                    "url": f"data:{content_type};base64,{encoded}",
                                    "detail": "high",
                                },
                            },
                        ],
                    },
                ],
            )
        )
        return content or ""

    def create_chat_completion(
        self,
        *,
        model: str,
        temperature: float,
        system_prompt: str,
        user_prompt: str,
        json_schema: dict[str, object],
    ) -> str:
        content = self._complete(
            lambda: self._client.chat.completions.create(
                model=model,
                temperature=temperature,
                response_format={
                    "type": "json_schema",
                    "json_schema": {
                        "name": "invoice_fields",
                        "strict": True,
                        "schema": json_schema,
                    },
                },
                messages=[
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": user_prompt},
                ],
            )
        )
        if content is None:
            raise ExtractionError("AI returned empty response")
        return content

    @staticmethod
    def _complete(call: Callable[[], Any]) -> str | None:
        try:
            response = call()
        except (openai.APIConnectionError, httpx.ConnectError, httpx.TimeoutException) as exc:
            raise ExtractionNetworkError(f"AI provider network error: {exc}") from exc
        except openai.APIError as exc:
            raise ExtractionNetworkError(f"AI provider API error: {exc}") from exc

        if not response.choices:
            raise ExtractionError("AI returned no choices")
        return response.choices[0].message.content
