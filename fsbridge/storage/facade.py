"""
Uniform client over every storage backend.

StorageFacade wraps one connected StorageAdapter and gives callers the same
semantics whichever backend sits underneath:

- local-side concerns (source checks, destination directories, checksum
  side-files, deleting sources) are handled here once
- upload_file/download_file return a boolean and log the cause of a failed
  transfer; put_file/get_file raise the structured error instead
- listings are lazy iterators; missing paths fail when the call is made
"""

import dataclasses
import logging
from pathlib import Path
from typing import Iterator, List, Optional, Union

from fsbridge.common.logging_config import PerformanceTracker
from fsbridge.common.metrics import (
    storage_bytes_transferred_total,
    storage_open_sessions,
    track_storage_operation,
)
from fsbridge.storage.adapter import (
    AlreadyExistsError,
    ChecksumError,
    NotFoundError,
    StorageAdapter,
    StorageError,
    StorageIOError,
)
from fsbridge.storage.checksum import (
    checksum_path,
    verify_checksum_file,
    write_checksum_file,
)
from fsbridge.storage.handles import ReadHandle, WriteHandle
from fsbridge.storage.models import (
    ConnectionTarget,
    EntryMetadata,
    PermissionSpec,
    StoragePath,
    TransferOptions,
)

logger = logging.getLogger(__name__)

PathLike = Union[str, StoragePath]
LocalPathLike = Union[str, Path]

DEFAULT_BUFFER_SIZE = 4096


class StorageFacade:
    """
    One backend session with the full operation set.

    Instances are created by fsbridge.storage.manager.connect() and released
    with close() or by using the facade as a context manager.
    """

    def __init__(self, adapter: StorageAdapter):
        self.adapter = adapter
        self._closed = False
        storage_open_sessions.labels(backend=self.backend).inc()

    @property
    def backend(self) -> str:
        return self.adapter.name

    @property
    def target(self) -> ConnectionTarget:
        return self.adapter.target

    @property
    def closed(self) -> bool:
        return self._closed

    def _check_open(self) -> None:
        if self._closed:
            raise StorageError(f"Storage session to {self.target.uri} is closed")

    def _permission_for_backend(self, path: StoragePath,
                                permission: Optional[PermissionSpec]) -> Optional[PermissionSpec]:
        if permission is not None and not self.adapter.supports_permissions:
            logger.debug(f"Backend {self.backend} ignores permission {permission} for {path}")
            return None
        return permission

    # ----- directories -----

    @track_storage_operation("mkdir")
    def make_directory(self, path: PathLike, permission: Optional[PermissionSpec] = None) -> bool:
        """
        Create a directory and any missing ancestors.

        Idempotent: an existing directory returns True, after applying
        ``permission`` if it differs.

        Raises:
            AlreadyExistsError: If a file exists at the path
            StoragePermissionError: If the backend rejects the mask
            StorageIOError: On transport failure
        """
        self._check_open()
        path = StoragePath(path)
        permission = self._permission_for_backend(path, permission)

        try:
            existing = self.adapter.status(path)
        except NotFoundError:
            existing = None

        if existing is not None:
            if not existing.is_directory:
                raise AlreadyExistsError(path, f"Path exists and is not a directory: {path}")
            if permission is not None and existing.permission != permission:
                self.adapter.set_permission(path, permission)
            return True

        created = self.adapter.make_directory(path, permission)
        if created:
            logger.info(
                f"Created directory {path} on {self.backend}",
                extra={"backend": self.backend, "path": path},
            )
        return created

    # ----- transfers -----

    @track_storage_operation("upload")
    def put_file(self, local_path: LocalPathLike, remote_path: PathLike,
                 opts: TransferOptions) -> StoragePath:
        """
        Copy a local file to the backend, raising on any failure.

        An existing remote directory as destination receives the file under
        its local name.

        Returns:
            The remote path written

        Raises:
            NotFoundError: If the local source is missing
            AlreadyExistsError: If the destination exists and opts.overwrite is False
            ChecksumError: If opts.verify_checksum and the local side-file mismatches
            StorageError: If the transfer fails
        """
        self._check_open()
        local = Path(local_path)
        remote = StoragePath(remote_path)

        if not local.is_file():
            raise NotFoundError(local, f"Local source not found: {local}")

        try:
            if self.adapter.status(remote).is_directory:
                remote = remote / local.name
        except NotFoundError:
            pass

        if opts.verify_checksum:
            verify_checksum_file(local)

        size = local.stat().st_size
        with PerformanceTracker("upload", logger, backend=self.backend,
                                source=str(local), destination=str(remote), bytes=size):
            self.adapter.put_file(local, remote, opts.overwrite, opts.buffer_size)
        storage_bytes_transferred_total.labels(backend=self.backend, direction="upload").inc(size)

        if opts.delete_source:
            local.unlink()
            checksum_path(local).unlink(missing_ok=True)
        return remote

    def upload_file(self, local_path: LocalPathLike, remote_path: PathLike,
                    opts: TransferOptions) -> bool:
        """
        Copy a local file to the backend.

        Returns:
            True on success, False if the transfer failed (cause is logged)

        Raises:
            NotFoundError: If the local source is missing
            AlreadyExistsError: If the destination exists and opts.overwrite is False
        """
        self._check_open()
        try:
            self.put_file(local_path, remote_path, opts)
        except (NotFoundError, AlreadyExistsError):
            raise
        except (StorageError, OSError) as e:
            logger.error(
                f"{self.backend} upload of local file {local_path} failed: {e}",
                exc_info=True,
                extra={"backend": self.backend, "source": local_path, "destination": remote_path},
            )
            return False
        logger.info(
            f"{self.backend} upload of local file [{Path(local_path).name}] succeeded",
            extra={"backend": self.backend, "source": local_path, "destination": remote_path},
        )
        return True

    @track_storage_operation("download")
    def get_file(self, remote_path: PathLike, local_path: LocalPathLike,
                 opts: TransferOptions) -> Path:
        """
        Copy a remote file to local disk, raising on any failure.

        Missing local ancestors are created; an existing local directory
        receives the file under its remote name.

        Returns:
            The local path written

        Raises:
            NotFoundError: If the remote file is missing
            AlreadyExistsError: If the local file exists and opts.overwrite is False
            ChecksumError: If opts.verify_checksum and the length does not match
            StorageError: If the transfer fails
        """
        self._check_open()
        remote = StoragePath(remote_path)
        local = Path(local_path)

        entry = self.adapter.status(remote)
        if entry.is_directory:
            raise StorageIOError(f"Cannot download a directory: {remote}")

        if local.is_dir():
            local = local / remote.name
        if local.exists() and not opts.overwrite:
            raise AlreadyExistsError(local)

        try:
            local.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StorageIOError(f"Cannot create local directory {local.parent}: {e}") from e

        with PerformanceTracker("download", logger, backend=self.backend,
                                source=str(remote), destination=str(local), bytes=entry.length):
            self.adapter.get_file(remote, local, opts.buffer_size)

        side_file = checksum_path(local)
        if opts.verify_checksum:
            actual = local.stat().st_size
            if actual != entry.length:
                local.unlink()
                raise ChecksumError(local, f"expected {entry.length} bytes, got {actual}")
            write_checksum_file(local)
        else:
            # A stale side-file would no longer describe the new content
            side_file.unlink(missing_ok=True)

        storage_bytes_transferred_total.labels(
            backend=self.backend, direction="download").inc(entry.length)

        if opts.delete_source:
            self.adapter.delete(remote, recursive=False)
        return local

    def download_file(self, remote_path: PathLike, local_path: LocalPathLike,
                      opts: TransferOptions) -> bool:
        """
        Copy a remote file to local disk.

        Returns:
            True on success, False if the transfer failed (cause is logged)

        Raises:
            NotFoundError: If the remote file is missing
            AlreadyExistsError: If the local file exists and opts.overwrite is False
        """
        self._check_open()
        try:
            self.get_file(remote_path, local_path, opts)
        except (NotFoundError, AlreadyExistsError):
            raise
        except (StorageError, OSError) as e:
            logger.error(
                f"{self.backend} download of {remote_path} failed: {e}",
                exc_info=True,
                extra={"backend": self.backend, "source": remote_path, "destination": local_path},
            )
            return False
        logger.info(
            f"{self.backend} download of [{StoragePath(remote_path).name}] succeeded",
            extra={"backend": self.backend, "source": remote_path, "destination": local_path},
        )
        return True

    # ----- streams -----

    def open_for_write(self, path: PathLike, overwrite: bool = True,
                       buffer_size: int = DEFAULT_BUFFER_SIZE,
                       permission: Optional[PermissionSpec] = None) -> WriteHandle:
        """
        Open a scoped sequential writer; ancestors are created.

        Use it in a ``with`` block so buffered bytes are flushed and the
        backend stream is released on every exit path.

        Raises:
            AlreadyExistsError: If the file exists and overwrite is False
        """
        self._check_open()
        if buffer_size <= 0:
            raise ValueError(f"buffer_size must be positive, got {buffer_size}")
        path = StoragePath(path)
        permission = self._permission_for_backend(path, permission)
        context = self.adapter.open_write(path, overwrite, buffer_size, permission)
        return WriteHandle(path, context, buffer_size)

    def open_for_read(self, path: PathLike, buffer_size: int = DEFAULT_BUFFER_SIZE) -> ReadHandle:
        """Open a scoped sequential reader."""
        self._check_open()
        if buffer_size <= 0:
            raise ValueError(f"buffer_size must be positive, got {buffer_size}")
        path = StoragePath(path)
        return ReadHandle(path, self.adapter.open_read(path, buffer_size), buffer_size)

    # ----- metadata -----

    @track_storage_operation("list")
    def list_entries(self, path: PathLike, recursive: bool = False,
                     block_locations: bool = False) -> Iterator[EntryMetadata]:
        """
        List a directory lazily.

        Entries are fetched from the backend as the iterator advances; the
        iterator cannot be restarted and must stay with one thread. Listing a
        file yields that file alone.

        Args:
            path: Directory (or file) to list
            recursive: Yield the whole subtree instead of immediate children
            block_locations: Populate block placement of files (chunked backends)

        Raises:
            NotFoundError: If the path does not exist
        """
        self._check_open()
        path = StoragePath(path)
        entry = self.adapter.status(path)

        if entry.is_directory:
            entries = self.adapter.iter_entries(path, recursive)
        else:
            entries = iter([entry])

        if block_locations:
            entries = self._with_block_locations(entries)
        return entries

    def _with_block_locations(self, entries: Iterator[EntryMetadata]) -> Iterator[EntryMetadata]:
        for entry in entries:
            if entry.is_file:
                entry = dataclasses.replace(
                    entry, block_locations=self.adapter.block_locations(entry))
            yield entry

    @track_storage_operation("stat")
    def stat(self, path: PathLike) -> List[EntryMetadata]:
        """
        Children of a directory, or the single entry of a file.

        Check ``is_directory`` on each entry to tell files from directories.

        Raises:
            NotFoundError: If the path does not exist
        """
        self._check_open()
        path = StoragePath(path)
        entry = self.adapter.status(path)
        if not entry.is_directory:
            return [entry]
        return list(self.adapter.iter_entries(path, recursive=False))

    def status(self, path: PathLike) -> EntryMetadata:
        """
        Metadata of the path itself.

        Raises:
            NotFoundError: If the path does not exist
        """
        self._check_open()
        return self.adapter.status(StoragePath(path))

    def exists(self, path: PathLike) -> bool:
        self._check_open()
        return self.adapter.exists(StoragePath(path))

    # ----- deletion -----

    @track_storage_operation("delete")
    def delete(self, path: PathLike, recursive: bool = False) -> bool:
        """
        Delete a file, or a directory with everything below it.

        Warning: with the default ``recursive=False`` a non-empty directory is
        not deleted; DirectoryNotEmptyError is raised instead.

        Returns:
            True if deleted, False if the path did not exist (or is the root)

        Raises:
            DirectoryNotEmptyError: If recursive is False and the directory has children
        """
        self._check_open()
        path = StoragePath(path)
        if path.is_root:
            logger.warning(f"Refusing to delete the root of {self.target.uri}")
            return False

        deleted = self.adapter.delete(path, recursive)
        if deleted:
            logger.info(
                f"Deleted {path} on {self.backend} (recursive={recursive})",
                extra={"backend": self.backend, "path": path},
            )
        else:
            logger.info(
                f"Nothing to delete at {path} on {self.backend}",
                extra={"backend": self.backend, "path": path},
            )
        return deleted

    # ----- lifecycle -----

    def close(self) -> None:
        """Release the backend session; later calls raise StorageError."""
        if self._closed:
            return
        self._closed = True
        storage_open_sessions.labels(backend=self.backend).dec()
        self.adapter.close()
        logger.info(f"Closed {self.backend} session to {self.target.uri}")

    def __enter__(self) -> "StorageFacade":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False

    def __repr__(self) -> str:
        state = "closed" if self._closed else "open"
        return f"<StorageFacade {self.backend} {self.target.uri} ({state})>"
