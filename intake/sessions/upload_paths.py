import re
import uuid
from dataclasses import dataclass

UPLOADS_PREFIX = "uploads/"

_PAGE_PREFIX_RE = re.compile(r"^page-(\d{1,4})-", re.IGNORECASE)
_UNSAFE_FILENAME_RE = re.compile(r"[^a-zA-Z0-9._-]")


@dataclass(frozen=True)
class UploadObjectName:
    session_id: str
    page_number: int
    original_filename: str


def storage_prefix(session_id: str) -> str:
    return f"{UPLOADS_PREFIX}{session_id}"


def sanitize_filename(name: str | None) -> str:
    if not name:
        return str(uuid.uuid4())
    return _UNSAFE_FILENAME_RE.sub("_", name)


def upload_object_name(session_id: str, page_number: int, filename: str | None) -> str:
    """Object path a client uploads one page to: uploads/<id>/page-001-<file>."""
    return f"{storage_prefix(session_id)}/page-{page_number:03d}-{sanitize_filename(filename)}"


def parse_upload_object_name(object_name: str | None) -> UploadObjectName | None:
    """Recover session id and page number from an uploaded object's path.

    Returns None for objects outside the uploads prefix or with a name that
    does not follow the page-<n>-<filename> convention.
    """
    if not object_name or not object_name.startswith(UPLOADS_PREFIX):
        return None
    remainder = object_name[len(UPLOADS_PREFIX):]
    session_id, _, rest = remainder.partition("/")
    if not session_id or not rest:
        return None
    match = _PAGE_PREFIX_RE.match(rest)
    if match is None:
        return None
    page_number = int(match.group(1))
    if page_number <= 0:
        return None
    return UploadObjectName(
        session_id=session_id,
        page_number=page_number,
        original_filename=rest[match.end():],
    )
