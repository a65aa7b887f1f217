from pathlib import Path

from intake.extraction.exceptions import ExtractionError

PROMPT_DIR = Path(__file__).parent / "prompts"


def load_prompt(name: str, directory: Path | None = None) -> str:
    """Load a bundled prompt text file.

    Raises:
        ExtractionError: if the file cannot be read.
    """
    path = (directory or PROMPT_DIR) / name
    try:
        return path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ExtractionError(f"Failed to load prompt '{name}': {exc}") from exc


def load_json_schema(path: Path | None = None) -> str:
    """Load the extraction JSON schema.

    Args:
        path: Path to the JSON schema file.
              Defaults to the bundled extraction_schema.json.

    Raises:
        ExtractionError: if the file cannot be read.
    """
    if path is None:
        path = PROMPT_DIR / "extraction_schema.json"
    try:
        return path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ExtractionError(f"Failed to load JSON schema: {exc}") from exc
