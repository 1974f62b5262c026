"""
fsbridge: one client interface over HDFS, S3 and local storage.
"""

from fsbridge.storage import (
    ConnectionTarget,
    PermissionSpec,
    StorageFacade,
    StoragePath,
    TransferOptions,
    connect,
)

__version__ = "0.1.0"

__all__ = [
    "ConnectionTarget",
    "PermissionSpec",
    "StorageFacade",
    "StoragePath",
    "TransferOptions",
    "connect",
]
