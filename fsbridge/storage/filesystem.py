"""
Local filesystem storage backend implementation.

Serves ``file://`` targets. The URI path is the root of the remote namespace:
``file:///srv/data`` maps StoragePath("/a/b.txt") to /srv/data/a/b.txt.
"""

import os
import shutil
import stat as stat_module
from datetime import datetime, timezone
from pathlib import Path
from typing import BinaryIO, ContextManager, Iterator, Optional
from urllib.parse import unquote, urlsplit

from fsbridge.storage.adapter import (
    AlreadyExistsError,
    DirectoryNotEmptyError,
    NotFoundError,
    StorageAdapter,
    StorageConnectionError,
    StorageIOError,
    StoragePermissionError,
)
from fsbridge.storage.models import (
    ConnectionTarget,
    EntryMetadata,
    PermissionSpec,
    StoragePath,
)


class LocalStorage(StorageAdapter):
    """
    Filesystem-based storage implementation.

    Maps the remote namespace onto a directory of the local filesystem and
    enforces POSIX permissions with chmod.
    """

    schemes = ("file",)
    supports_permissions = True

    def __init__(self, target: ConnectionTarget):
        """
        Initialize filesystem storage.

        Args:
            target: Connection target with a ``file://`` URI

        Raises:
            StorageConnectionError: If the root cannot be created
        """
        super().__init__(target)
        root = unquote(urlsplit(target.uri).path) or "/"
        self.base_path = Path(root).resolve()
        self._ensure_structure()

    def _ensure_structure(self) -> None:
        """Create the root directory if it doesn't exist."""
        try:
            self.base_path.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StorageConnectionError(
                f"Cannot use {self.base_path} as storage root: {e}") from e
        if not self.base_path.is_dir():
            raise StorageConnectionError(f"Storage root is not a directory: {self.base_path}")

    def _to_local(self, path: StoragePath) -> Path:
        """Convert a storage path to a filesystem path below the root."""
        return self.base_path.joinpath(*path.parts)

    def _to_entry(self, path: StoragePath, local: Path) -> EntryMetadata:
        st = local.stat()
        return EntryMetadata(
            path=path,
            is_directory=stat_module.S_ISDIR(st.st_mode),
            length=0 if stat_module.S_ISDIR(st.st_mode) else st.st_size,
            owner=_owner_name(local, st),
            group=_group_name(local, st),
            permission=PermissionSpec.from_mode(st.st_mode),
            block_size=getattr(st, "st_blksize", 0),
            replication=1,
            modification_time=datetime.fromtimestamp(st.st_mtime, tz=timezone.utc),
        )

    def make_directory(self, path: StoragePath, permission: Optional[PermissionSpec]) -> bool:
        target = self._to_local(path)
        try:
            target.mkdir(parents=True, exist_ok=True)
            if permission is not None:
                os.chmod(target, permission.mode)
        except FileExistsError as e:
            raise AlreadyExistsError(path, f"Path exists and is not a directory: {path}") from e
        except PermissionError as e:
            raise StoragePermissionError(f"Cannot create directory {path}: {e}") from e
        except OSError as e:
            raise StorageIOError(f"Failed to create directory {path}: {e}") from e
        return True

    def set_permission(self, path: StoragePath, permission: PermissionSpec) -> None:
        target = self._to_local(path)
        try:
            os.chmod(target, permission.mode)
        except FileNotFoundError as e:
            raise NotFoundError(path) from e
        except PermissionError as e:
            raise StoragePermissionError(f"Cannot set permission on {path}: {e}") from e

    def put_file(self, local_path: Path, path: StoragePath, overwrite: bool, buffer_size: int) -> None:
        target = self._to_local(path)
        if target.exists() and not overwrite:
            raise AlreadyExistsError(path)

        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            with open(local_path, "rb") as src, open(target, "wb") as dst:
                shutil.copyfileobj(src, dst, buffer_size)
        except PermissionError as e:
            raise StoragePermissionError(f"Failed to store file {path}: {e}") from e
        except OSError as e:
            raise StorageIOError(f"Failed to store file {path}: {e}") from e

    def get_file(self, path: StoragePath, local_path: Path, buffer_size: int) -> None:
        source = self._to_local(path)
        if not source.is_file():
            raise NotFoundError(path)

        try:
            with open(source, "rb") as src, open(local_path, "wb") as dst:
                shutil.copyfileobj(src, dst, buffer_size)
        except OSError as e:
            raise StorageIOError(f"Failed to retrieve file {path}: {e}") from e

    def open_write(
        self,
        path: StoragePath,
        overwrite: bool,
        buffer_size: int,
        permission: Optional[PermissionSpec] = None,
    ) -> ContextManager[BinaryIO]:
        target = self._to_local(path)
        if target.is_dir():
            raise AlreadyExistsError(path, f"Path is a directory: {path}")

        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            handle = open(target, "wb" if overwrite else "xb", buffering=buffer_size)
        except FileExistsError as e:
            raise AlreadyExistsError(path) from e
        except PermissionError as e:
            raise StoragePermissionError(f"Cannot open {path} for writing: {e}") from e
        except OSError as e:
            raise StorageIOError(f"Cannot open {path} for writing: {e}") from e

        if permission is not None:
            os.chmod(target, permission.mode)
        return handle

    def open_read(self, path: StoragePath, buffer_size: int) -> ContextManager[BinaryIO]:
        source = self._to_local(path)
        if not source.exists():
            raise NotFoundError(path)
        if source.is_dir():
            raise StorageIOError(f"Cannot open directory for reading: {path}")

        try:
            return open(source, "rb", buffering=buffer_size)
        except PermissionError as e:
            raise StoragePermissionError(f"Cannot open {path} for reading: {e}") from e
        except OSError as e:
            raise StorageIOError(f"Cannot open {path} for reading: {e}") from e

    def iter_entries(self, path: StoragePath, recursive: bool) -> Iterator[EntryMetadata]:
        pending = [path]
        while pending:
            current = pending.pop()
            try:
                with os.scandir(self._to_local(current)) as it:
                    names = sorted(entry.name for entry in it)
            except FileNotFoundError as e:
                raise NotFoundError(current) from e
            except OSError as e:
                raise StorageIOError(f"Failed to list {current}: {e}") from e

            subdirs = []
            for name in names:
                child = current / name
                try:
                    entry = self._to_entry(child, self._to_local(child))
                except FileNotFoundError:
                    # Removed while listing
                    continue
                yield entry
                if recursive and entry.is_directory:
                    subdirs.append(child)

            pending.extend(reversed(subdirs))

    def status(self, path: StoragePath) -> EntryMetadata:
        local = self._to_local(path)
        try:
            return self._to_entry(path, local)
        except FileNotFoundError as e:
            raise NotFoundError(path) from e
        except OSError as e:
            raise StorageIOError(f"Failed to stat {path}: {e}") from e

    def delete(self, path: StoragePath, recursive: bool) -> bool:
        local = self._to_local(path)
        if not local.exists() and not local.is_symlink():
            return False

        try:
            if local.is_dir() and not local.is_symlink():
                if recursive:
                    shutil.rmtree(local)
                elif any(local.iterdir()):
                    raise DirectoryNotEmptyError(path)
                else:
                    local.rmdir()
            else:
                local.unlink()
        except DirectoryNotEmptyError:
            raise
        except PermissionError as e:
            raise StoragePermissionError(f"Cannot delete {path}: {e}") from e
        except OSError as e:
            raise StorageIOError(f"Failed to delete {path}: {e}") from e
        return True


def _owner_name(local: Path, st: os.stat_result) -> str:
    try:
        return local.owner()
    except (KeyError, NotImplementedError):
        return str(getattr(st, "st_uid", ""))


def _group_name(local: Path, st: os.stat_result) -> str:
    try:
        return local.group()
    except (KeyError, NotImplementedError):
        return str(getattr(st, "st_gid", ""))
