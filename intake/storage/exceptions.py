class StorageError(Exception):
    """Base exception for object storage failures."""


class ObjectNotFoundError(StorageError):
    """Raised when no blob exists at the requested path."""


class InvalidObjectPathError(StorageError):
    """Raised when a path escapes the storage root or is empty."""
