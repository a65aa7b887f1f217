from typing import ClassVar

from intake.config.settings import Settings
from intake.extraction.base import BaseExtractor
from intake.extraction.client_base import BaseRecognitionClient
from intake.extraction.example_client_adapter import ExampleClientAdapter
from intake.extraction.extractor import InvoiceExtractor
from intake.extraction.openai_client_adapter import OpenAIClientAdapter


class RecognitionClientFactory:
    """Creates the configured recognition client adapter."""

    OPENAI_COMPATIBLE_BASE_URLS: ClassVar[dict[str, str]] = {
        "openrouter": "https://openrouter.ai/api/v1",
        "groq": "https://api.groq.com/openai/v1",
        "together": "https://api.together.xyz/v1",
        "ollama": "http://localhost:11434/v1",
    }

    @classmethod
    def create(cls, settings: Settings) -> BaseRecognitionClient:
        provider = settings.extraction_provider.lower()
        if provider == "example":
            return ExampleClientAdapter()
        return OpenAIClientAdapter(
            api_key=settings.extraction_openai_api_key,
            timeout_seconds=settings.extraction_timeout_seconds,
            base_url=cls._resolve_base_url(provider, settings),
        )

    @classmethod
    def _resolve_base_url(cls, provider: str, settings: Settings) -> str | None:
        configured = settings.extraction_openai_base_url.strip()
        if provider == "openai":
            return configured or None
        if provider == "openai_compatible":
            if not configured:
                raise ValueError(
                    "extraction_openai_base_url is required for "
                    "extraction_provider=openai_compatible"
                )
            return configured
        default_base_url = cls.OPENAI_COMPATIBLE_BASE_URLS.get(provider)
        if default_base_url is not None:
            return configured or default_base_url
        supported = [
            "example",
            "openai",
            "openai_compatible",
            *sorted(cls.OPENAI_COMPATIBLE_BASE_URLS),
        ]
        raise ValueError(
            f"Unknown extraction provider '{provider}'. Choose from: {supported}"
        )


def build_extractor(settings: Settings) -> BaseExtractor:
    """Create the configured invoice extractor from application settings."""
    client = RecognitionClientFactory.create(settings)
    if isinstance(client, ExampleClientAdapter):
        return InvoiceExtractor(client=client, model="example", max_attempts=1)
    return InvoiceExtractor(
        client=client,
        model=settings.extraction_model_name,
        recognition_model=settings.recognition_model_name,
        temperature=settings.extraction_temperature,
        max_attempts=settings.extraction_max_attempts,
    )
