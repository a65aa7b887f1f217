import json
import os
import tempfile
from pathlib import Path, PurePosixPath

from intake.storage.base import BaseObjectStorage
from intake.storage.exceptions import (
    InvalidObjectPathError,
    ObjectNotFoundError,
    StorageError,
)

_META_SUFFIX = ".meta.json"


class LocalObjectStorage(BaseObjectStorage):
    """Stores blobs as files under {root}/{bucket}/{path}.

    Writes go to a temporary file in the target directory and are moved into
    place with os.replace, so a reader never observes a partial blob. The
    content type is kept in a sidecar <name>.meta.json file.
    """

    def __init__(self, root: Path, bucket: str) -> None:
        self._base = (root / bucket).resolve()

    def put(self, path: str, data: bytes, content_type: str) -> None:
        target = self._resolve(path)
        target.parent.mkdir(parents=True, exist_ok=True)
        self._write_atomic(target, data)
        meta = json.dumps({"content_type": content_type, "size": len(data)})
        self._write_atomic(self._meta_path(target), meta.encode("utf-8"))

    def get(self, path: str) -> bytes:
        target = self._resolve(path)
        try:
            return target.read_bytes()
        except FileNotFoundError as exc:
            raise ObjectNotFoundError(f"Object not found: {path}") from exc
        except OSError as exc:
            raise StorageError(f"Failed to read object {path}: {exc}") from exc

    def exists(self, path: str) -> bool:
        return self._resolve(path).is_file()

    def content_type(self, path: str) -> str | None:
        meta_path = self._meta_path(self._resolve(path))
        if not meta_path.is_file():
            return None
        meta = json.loads(meta_path.read_text(encoding="utf-8"))
        value = meta.get("content_type")
        return value if isinstance(value, str) else None

    def _resolve(self, path: str) -> Path:
        relative = PurePosixPath(path)
        if not path or relative.is_absolute() or ".." in relative.parts:
            raise InvalidObjectPathError(f"Invalid object path: {path!r}")
        return self._base.joinpath(*relative.parts)

    @staticmethod
    def _meta_path(target: Path) -> Path:
        return target.with_name(target.name + _META_SUFFIX)

    @staticmethod
    def _write_atomic(target: Path, data: bytes) -> None:
        fd, tmp_name = tempfile.mkstemp(dir=target.parent, prefix=f".{target.name}.")
        try:
            with os.fdopen(fd, "wb") as handle:
                handle.write(data)
            os.replace(tmp_name, target)
        except OSError as exc:
            Path(tmp_name).unlink(missing_ok=True)
            raise StorageError(f"Failed to write object {target}: {exc}") from exc
