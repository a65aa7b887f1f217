from abc import ABC, abstractmethod


class BaseRecognitionClient(ABC):
    """Contract for provider-specific recognition and extraction AI clients."""

    @abstractmethod
    def recognize_text(
        self,
        *,
        model: str,
        image_bytes: bytes,
        content_type: str,
        prompt: str,
    ) -> str:
        """Return the text visible on one raster page image."""

    @abstractmethod
    def create_chat_completion(
        self,
        *,
        model: str,
        temperature: float,
        system_prompt: str,
        user_prompt: str,
        json_schema: dict[str, object],
    ) -> str:
        """Return provider response as plain text."""
