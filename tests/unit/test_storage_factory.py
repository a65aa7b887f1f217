from pathlib import Path

import pytest

from intake.config.settings import Settings
from intake.storage.factory import ObjectStorageFactory
from intake.storage.local_storage import LocalObjectStorage


class TestObjectStorageFactory:
    def test_creates_local_storage(self, tmp_path: Path) -> None:
        settings = Settings(storage_engine="local", storage_root=str(tmp_path))

        storage = ObjectStorageFactory.create(settings)

        assert isinstance(storage, LocalObjectStorage)

    def test_engine_name_is_case_insensitive(self, tmp_path: Path) -> None:
        settings = Settings(storage_engine="LOCAL", storage_root=str(tmp_path))

        assert isinstance(ObjectStorageFactory.create(settings), LocalObjectStorage)

    def test_unknown_engine_raises(self) -> None:
        with pytest.raises(ValueError, match="Unknown storage engine"):
            ObjectStorageFactory.create(Settings(storage_engine="gcs"))
