"""
Unit tests for filesystem storage backend.
"""

import os

import pytest

from fsbridge.storage.adapter import (
    AlreadyExistsError,
    DirectoryNotEmptyError,
    NotFoundError,
    StorageConnectionError,
    StorageIOError,
)
from fsbridge.storage.filesystem import LocalStorage
from fsbridge.storage.models import ConnectionTarget, PermissionSpec, StoragePath


@pytest.fixture
def temp_storage(tmp_path):
    """Create a temporary storage instance."""
    return LocalStorage(ConnectionTarget((tmp_path / "root").as_uri()))


def _write(storage, path, content=b"content"):
    local = storage.base_path.joinpath(*StoragePath(path).parts)
    local.parent.mkdir(parents=True, exist_ok=True)
    local.write_bytes(content)
    return local


class TestLocalStorageInit:
    """Test storage initialization."""

    def test_init_creates_root(self, tmp_path):
        """Test that init creates the root directory."""
        storage = LocalStorage(ConnectionTarget((tmp_path / "a" / "b").as_uri()))

        assert storage.base_path == (tmp_path / "a" / "b").resolve()
        assert storage.base_path.is_dir()

    def test_init_with_existing_root(self, tmp_path):
        """Test that init works with an existing directory."""
        storage = LocalStorage(ConnectionTarget(tmp_path.as_uri()))
        assert storage.base_path == tmp_path.resolve()

    def test_init_root_is_a_file(self, tmp_path):
        """Test that a file as root is rejected."""
        blocker = tmp_path / "blocker"
        blocker.write_text("x")

        with pytest.raises(StorageConnectionError):
            LocalStorage(ConnectionTarget(blocker.as_uri()))

    def test_name(self, temp_storage):
        assert temp_storage.name == "file"


class TestMakeDirectory:
    """Test directory creation."""

    def test_creates_ancestors(self, temp_storage):
        assert temp_storage.make_directory(StoragePath("/atom/test001"), None) is True
        assert (temp_storage.base_path / "atom" / "test001").is_dir()

    def test_applies_permission(self, temp_storage):
        temp_storage.make_directory(StoragePath("/atom/test002"), PermissionSpec.from_mode(0o750))

        mode = os.stat(temp_storage.base_path / "atom" / "test002").st_mode & 0o777
        assert mode == 0o750

    def test_file_in_the_way(self, temp_storage):
        _write(temp_storage, "/taken")

        with pytest.raises(AlreadyExistsError):
            temp_storage.make_directory(StoragePath("/taken"), None)


class TestTransfers:
    """Test put_file / get_file."""

    def test_put_creates_parents(self, temp_storage, sample_file):
        temp_storage.put_file(sample_file, StoragePath("/dir1/dir1-1/a.txt"), True, 4096)

        stored = temp_storage.base_path / "dir1" / "dir1-1" / "a.txt"
        assert stored.read_bytes() == sample_file.read_bytes()

    def test_put_without_overwrite(self, temp_storage, sample_file):
        _write(temp_storage, "/dir2/11.png", b"original")

        with pytest.raises(AlreadyExistsError):
            temp_storage.put_file(sample_file, StoragePath("/dir2/11.png"), False, 4096)
        assert (temp_storage.base_path / "dir2" / "11.png").read_bytes() == b"original"

    def test_get_missing(self, temp_storage, local_dir):
        with pytest.raises(NotFoundError):
            temp_storage.get_file(StoragePath("/nope"), local_dir / "x", 4096)

    def test_get_copies_bytes(self, temp_storage, local_dir):
        _write(temp_storage, "/dir2/11.png", b"\x89PNG")

        temp_storage.get_file(StoragePath("/dir2/11.png"), local_dir / "22.png", 4096)
        assert (local_dir / "22.png").read_bytes() == b"\x89PNG"


class TestStreams:
    """Test open_write / open_read."""

    def test_write_then_read(self, temp_storage):
        with temp_storage.open_write(StoragePath("/s/a.txt"), True, 16) as out:
            out.write(b"hello ")
            out.write(b"world")

        with temp_storage.open_read(StoragePath("/s/a.txt"), 16) as src:
            assert src.read() == b"hello world"

    def test_write_no_overwrite(self, temp_storage):
        _write(temp_storage, "/s/a.txt")

        with pytest.raises(AlreadyExistsError):
            temp_storage.open_write(StoragePath("/s/a.txt"), False, 16)

    def test_write_onto_directory(self, temp_storage):
        temp_storage.make_directory(StoragePath("/s"), None)

        with pytest.raises(AlreadyExistsError):
            temp_storage.open_write(StoragePath("/s"), True, 16)

    def test_read_missing(self, temp_storage):
        with pytest.raises(NotFoundError):
            temp_storage.open_read(StoragePath("/missing"), 16)

    def test_read_directory(self, temp_storage):
        temp_storage.make_directory(StoragePath("/d"), None)

        with pytest.raises(StorageIOError):
            temp_storage.open_read(StoragePath("/d"), 16)


class TestListingAndStatus:
    """Test iter_entries / status."""

    def test_non_recursive(self, temp_storage):
        _write(temp_storage, "/dir2/a.txt")
        _write(temp_storage, "/dir2/b.txt")
        _write(temp_storage, "/dir2/sub/c.txt")

        names = [e.name for e in temp_storage.iter_entries(StoragePath("/dir2"), False)]
        assert names == ["a.txt", "b.txt", "sub"]

    def test_recursive(self, temp_storage):
        _write(temp_storage, "/dir2/a.txt")
        _write(temp_storage, "/dir2/sub/c.txt")
        _write(temp_storage, "/dir2/sub/deeper/d.txt")

        paths = sorted(e.path for e in temp_storage.iter_entries(StoragePath("/dir2"), True))
        assert paths == [
            "/dir2/a.txt",
            "/dir2/sub",
            "/dir2/sub/c.txt",
            "/dir2/sub/deeper",
            "/dir2/sub/deeper/d.txt",
        ]

    def test_listing_is_lazy(self, temp_storage):
        entries = temp_storage.iter_entries(StoragePath("/missing"), False)

        with pytest.raises(NotFoundError):
            next(entries)

    def test_status_file(self, temp_storage):
        _write(temp_storage, "/dir2/a.txt", b"12345")

        entry = temp_storage.status(StoragePath("/dir2/a.txt"))
        assert entry.is_file
        assert entry.length == 5
        assert entry.replication == 1
        assert entry.permission is not None
        assert entry.owner
        assert entry.modification_time is not None

    def test_status_directory(self, temp_storage):
        temp_storage.make_directory(StoragePath("/d"), None)

        entry = temp_storage.status(StoragePath("/d"))
        assert entry.is_directory
        assert entry.length == 0

    def test_status_missing(self, temp_storage):
        with pytest.raises(NotFoundError):
            temp_storage.status(StoragePath("/missing"))

    def test_exists(self, temp_storage):
        _write(temp_storage, "/a")
        assert temp_storage.exists(StoragePath("/a"))
        assert not temp_storage.exists(StoragePath("/b"))


class TestDelete:
    """Test deletion."""

    def test_delete_file(self, temp_storage):
        local = _write(temp_storage, "/dir2/a.txt")

        assert temp_storage.delete(StoragePath("/dir2/a.txt"), False) is True
        assert not local.exists()

    def test_delete_missing(self, temp_storage):
        assert temp_storage.delete(StoragePath("/missing"), True) is False

    def test_delete_empty_dir_non_recursive(self, temp_storage):
        temp_storage.make_directory(StoragePath("/empty"), None)

        assert temp_storage.delete(StoragePath("/empty"), False) is True

    def test_delete_non_empty_dir_non_recursive(self, temp_storage):
        _write(temp_storage, "/dir2/a.txt")

        with pytest.raises(DirectoryNotEmptyError):
            temp_storage.delete(StoragePath("/dir2"), False)
        assert temp_storage.exists(StoragePath("/dir2/a.txt"))

    def test_delete_recursive(self, temp_storage):
        _write(temp_storage, "/dir2/sub/a.txt")

        assert temp_storage.delete(StoragePath("/dir2"), True) is True
        assert not temp_storage.exists(StoragePath("/dir2"))
