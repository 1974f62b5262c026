"""
Abstract base class for storage backends.

Defines the interface that all storage implementations must follow, and the
error taxonomy every backend translates its native failures into.
"""

from abc import ABC, abstractmethod
from pathlib import Path
from typing import BinaryIO, ClassVar, ContextManager, Iterator, Optional, Tuple

from fsbridge.storage.models import (
    BlockLocation,
    ConnectionTarget,
    EntryMetadata,
    PermissionSpec,
    StoragePath,
)


class StorageError(Exception):
    """Exception raised for storage-related errors."""
    pass


class StorageConnectionError(StorageError, ConnectionError):
    """Endpoint unreachable, unknown scheme, or authentication rejected."""
    pass


class StoragePermissionError(StorageError, PermissionError):
    """Requested mask rejected or insufficient privilege."""
    pass


class NotFoundError(StorageError, FileNotFoundError):
    """Source or remote path does not exist."""

    def __init__(self, path, message: Optional[str] = None):
        self.path = str(path)
        super().__init__(message or f"Path not found: {path}")


class AlreadyExistsError(StorageError, FileExistsError):
    """Destination exists and overwriting was not allowed."""

    def __init__(self, path, message: Optional[str] = None):
        self.path = str(path)
        super().__init__(message or f"Path already exists: {path}")


class DirectoryNotEmptyError(StorageError, OSError):
    """Non-recursive delete of a populated directory."""

    def __init__(self, path):
        self.path = str(path)
        super().__init__(f"Directory is not empty: {path}")


class StorageIOError(StorageError, OSError):
    """Generic transport or backend failure."""
    pass


class ChecksumError(StorageIOError):
    """Local data does not match its checksum side-file."""

    def __init__(self, path, message: str):
        self.path = str(path)
        super().__init__(f"Checksum error for {path}: {message}")


class StorageAdapter(ABC):
    """
    Abstract base class for storage backends.

    All storage implementations (HDFS, S3, local filesystem) must implement
    these methods to provide a consistent interface. Paths are always
    StoragePath instances; local paths are pathlib.Path objects.
    """

    #: URI schemes served by the backend
    schemes: ClassVar[Tuple[str, ...]] = ()

    #: Whether PermissionSpec masks are enforced
    supports_permissions: ClassVar[bool] = True

    def __init__(self, target: ConnectionTarget):
        self.target = target

    @property
    def name(self) -> str:
        """Backend label used in logs and metrics."""
        return self.schemes[0] if self.schemes else type(self).__name__.lower()

    @abstractmethod
    def make_directory(self, path: StoragePath, permission: Optional[PermissionSpec]) -> bool:
        """
        Create a directory and any missing ancestors.

        Returns:
            True on success

        Raises:
            StoragePermissionError: If the backend rejects the mask
            StorageIOError: On transport failure
        """
        pass

    @abstractmethod
    def set_permission(self, path: StoragePath, permission: PermissionSpec) -> None:
        """Apply a permission mask to an existing path."""
        pass

    @abstractmethod
    def put_file(self, local_path: Path, path: StoragePath, overwrite: bool, buffer_size: int) -> None:
        """
        Copy a local file to the backend, creating ancestors.

        Raises:
            AlreadyExistsError: If the destination exists and overwrite is False
            StorageError: If the transfer fails
        """
        pass

    @abstractmethod
    def get_file(self, path: StoragePath, local_path: Path, buffer_size: int) -> None:
        """
        Copy a remote file to a local path (the local side is already prepared).

        Raises:
            NotFoundError: If the remote file does not exist
            StorageError: If the transfer fails
        """
        pass

    @abstractmethod
    def open_write(
        self,
        path: StoragePath,
        overwrite: bool,
        buffer_size: int,
        permission: Optional[PermissionSpec] = None,
    ) -> ContextManager[BinaryIO]:
        """
        Return a context manager yielding a writable binary sink.

        Data is committed to the backend when the context exits cleanly.
        """
        pass

    @abstractmethod
    def open_read(self, path: StoragePath, buffer_size: int) -> ContextManager[BinaryIO]:
        """Return a context manager yielding a readable binary source."""
        pass

    @abstractmethod
    def iter_entries(self, path: StoragePath, recursive: bool) -> Iterator[EntryMetadata]:
        """
        Lazily yield the entries below a directory.

        Non-recursive listings yield immediate children only; recursive
        listings yield every descendant directory and file exactly once.
        """
        pass

    @abstractmethod
    def status(self, path: StoragePath) -> EntryMetadata:
        """
        Get metadata of the path itself.

        Raises:
            NotFoundError: If the path does not exist
        """
        pass

    @abstractmethod
    def delete(self, path: StoragePath, recursive: bool) -> bool:
        """
        Delete a file or directory.

        Returns:
            True if something was deleted, False if the path did not exist

        Raises:
            DirectoryNotEmptyError: If recursive is False and the directory has children
        """
        pass

    def block_locations(self, entry: EntryMetadata) -> Tuple[BlockLocation, ...]:
        """Block placement of a file; empty for unchunked backends."""
        return ()

    def exists(self, path: StoragePath) -> bool:
        try:
            self.status(path)
        except NotFoundError:
            return False
        return True

    def close(self) -> None:
        """Release the backend session."""
        pass
