"""
Storage backend abstraction for file operations.

Provides the StorageFacade and adapters for HDFS, S3 and local storage.
"""

from fsbridge.storage.adapter import (
    AlreadyExistsError,
    ChecksumError,
    DirectoryNotEmptyError,
    NotFoundError,
    StorageAdapter,
    StorageConnectionError,
    StorageError,
    StorageIOError,
    StoragePermissionError,
)
from fsbridge.storage.facade import StorageFacade
from fsbridge.storage.handles import ReadHandle, WriteHandle
from fsbridge.storage.manager import (
    connect,
    get_storage_facade,
    register_backend,
    reset_storage_facade,
)
from fsbridge.storage.models import (
    BlockLocation,
    ConnectionTarget,
    EntryMetadata,
    FsAction,
    PermissionSpec,
    StoragePath,
    TransferOptions,
)

__all__ = [
    "AlreadyExistsError",
    "BlockLocation",
    "ChecksumError",
    "ConnectionTarget",
    "DirectoryNotEmptyError",
    "EntryMetadata",
    "FsAction",
    "NotFoundError",
    "PermissionSpec",
    "ReadHandle",
    "StorageAdapter",
    "StorageConnectionError",
    "StorageError",
    "StorageFacade",
    "StorageIOError",
    "StoragePath",
    "StoragePermissionError",
    "TransferOptions",
    "WriteHandle",
    "connect",
    "get_storage_facade",
    "register_backend",
    "reset_storage_facade",
]
