"""Tests for storage backends."""

import pytest

from src.errors import StorageUnavailable
from src.storage import FileStorage, MemoryStorage


class TestMemoryStorage:
    def test_round_trip(self):
        storage = MemoryStorage()
        storage.set_item("k", "v")
        assert storage.get_item("k") == "v"
        storage.remove_item("k")
        assert storage.get_item("k") is None

    def test_disabled_raises(self):
        storage = MemoryStorage(disabled=True)
        with pytest.raises(StorageUnavailable):
            storage.get_item("k")
        with pytest.raises(StorageUnavailable):
            storage.set_item("k", "v")


class TestFileStorage:
    def test_round_trip(self, tmp_path):
        storage = FileStorage(tmp_path / "store")
        assert storage.get_item("plugins:v1") is None
        storage.set_item("plugins:v1", '{"a": 1}')
        assert storage.get_item("plugins:v1") == '{"a": 1}'

    def test_keys_map_to_safe_file_names(self, tmp_path):
        storage = FileStorage(tmp_path)
        storage.set_item("a/b:v1", "x")
        files = [p.name for p in tmp_path.iterdir()]
        assert len(files) == 1
        assert "/" not in files[0]
        assert storage.get_item("a/b:v1") == "x"

    def test_no_temp_files_left(self, tmp_path):
        storage = FileStorage(tmp_path)
        storage.set_item("k", "1")
        storage.set_item("k", "2")
        assert [p.suffix for p in tmp_path.iterdir()] == [".json"]

    def test_remove_and_clear(self, tmp_path):
        storage = FileStorage(tmp_path)
        storage.set_item("a", "1")
        storage.set_item("b", "2")
        storage.remove_item("a")
        storage.remove_item("missing")
        assert storage.get_item("a") is None
        storage.clear()
        assert storage.get_item("b") is None

    def test_unwritable_directory_raises(self, tmp_path):
        blocker = tmp_path / "file"
        blocker.write_text("not a directory")
        storage = FileStorage(blocker / "store")
        with pytest.raises(StorageUnavailable):
            storage.set_item("k", "v")

    def test_clear_leaves_foreign_files(self, tmp_path):
        (tmp_path / "config.json").write_text("{}")
        storage = FileStorage(tmp_path)
        storage.set_item("a", "1")
        storage.clear()
        assert storage.get_item("a") is None
        assert [p.name for p in tmp_path.iterdir()] == ["config.json"]

    def test_failed_replace_removes_temp_file(self, tmp_path, monkeypatch):
        def refuse(src, dst):
            raise OSError("read-only")

        monkeypatch.setattr("src.storage.os.replace", refuse)
        storage = FileStorage(tmp_path)
        with pytest.raises(StorageUnavailable):
            storage.set_item("k", "v")
        assert list(tmp_path.iterdir()) == []
