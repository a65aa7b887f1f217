from abc import ABC, abstractmethod


class BaseObjectStorage(ABC):
    """Contract for blob storage adapters. Paths are opaque strings."""

    @abstractmethod
    def put(self, path: str, data: bytes, content_type: str) -> None:
        """Write a blob atomically: readers see the old object or the new one."""

    @abstractmethod
    def get(self, path: str) -> bytes:
        """Read a blob.

        Raises:
            ObjectNotFoundError: if nothing is stored at path.
        """

    @abstractmethod
    def exists(self, path: str) -> bool:
        """Return True if a blob is stored at path."""

    @abstractmethod
    def content_type(self, path: str) -> str | None:
        """Return the content type recorded on put, if known."""
