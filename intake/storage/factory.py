from pathlib import Path

from intake.config.settings import Settings
from intake.storage.base import BaseObjectStorage
from intake.storage.local_storage import LocalObjectStorage


class ObjectStorageFactory:
    """Creates the object storage adapter selected in settings."""

    ENGINES: tuple[str, ...] = ("local",)

    @classmethod
    def create(cls, settings: Settings) -> BaseObjectStorage:
        engine = settings.storage_engine.lower()
        if engine == "local":
            return LocalObjectStorage(
                root=Path(settings.storage_root),
                bucket=settings.storage_bucket,
            )
        raise ValueError(
            f"Unknown storage engine '{engine}'. Choose from: {list(cls.ENGINES)}"
        )
