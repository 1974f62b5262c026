"""
Value objects shared by the storage facade and its backends.

ConnectionTarget describes where to connect, StoragePath normalizes remote
paths, PermissionSpec models POSIX-like masks, EntryMetadata is what listings
return and TransferOptions controls upload/download behaviour.
"""

import enum
import posixpath
from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Tuple
from urllib.parse import urlsplit


class StoragePath(str):
    """
    Normalized, absolute, backend-agnostic remote path.

    Examples:
        StoragePath("hdfs://nn:8020/a//b/") == "/a/b"
        StoragePath("a/./b/../c") == "/a/c"
    """

    def __new__(cls, value) -> "StoragePath":
        if isinstance(value, StoragePath):
            return value

        raw = str(value)
        if "://" in raw:
            raw = urlsplit(raw).path

        normalized = posixpath.normpath("/" + raw.lstrip("/"))
        return super().__new__(cls, normalized)

    @property
    def name(self) -> str:
        return posixpath.basename(self)

    @property
    def parent(self) -> "StoragePath":
        return StoragePath(posixpath.dirname(self))

    @property
    def parts(self) -> Tuple[str, ...]:
        return tuple(part for part in self.split("/") if part)

    @property
    def is_root(self) -> bool:
        return self == "/"

    def __truediv__(self, other) -> "StoragePath":
        return StoragePath(posixpath.join(self, str(other).lstrip("/")))

    def __repr__(self) -> str:
        return f"StoragePath({str(self)!r})"


class FsAction(enum.IntFlag):
    """Capability set for one permission class."""

    NONE = 0
    EXECUTE = 1
    WRITE = 2
    READ = 4
    READ_EXECUTE = READ | EXECUTE
    READ_WRITE = READ | WRITE
    ALL = READ | WRITE | EXECUTE

    @property
    def symbol(self) -> str:
        return "".join(
            flag_char if self & flag else "-"
            for flag, flag_char in (
                (FsAction.READ, "r"),
                (FsAction.WRITE, "w"),
                (FsAction.EXECUTE, "x"),
            )
        )


@dataclass(frozen=True)
class PermissionSpec:
    """
    Owner/group/other access mask.

    Only meaningful for backends with POSIX-like permissions (HDFS, local);
    object storage ignores it.
    """

    owner: FsAction = FsAction.ALL
    group: FsAction = FsAction.READ_EXECUTE
    other: FsAction = FsAction.READ_EXECUTE

    def __post_init__(self):
        for field_name in ("owner", "group", "other"):
            value = getattr(self, field_name)
            if not 0 <= int(value) <= 7:
                raise ValueError(f"Invalid {field_name} action: {value!r}")
            object.__setattr__(self, field_name, FsAction(int(value)))

    @classmethod
    def from_mode(cls, mode: int) -> "PermissionSpec":
        """Build from an integer mode such as 0o755 (extra bits are dropped)."""
        mode &= 0o777
        return cls(
            owner=FsAction((mode >> 6) & 7),
            group=FsAction((mode >> 3) & 7),
            other=FsAction(mode & 7),
        )

    @classmethod
    def from_octal(cls, value: str) -> "PermissionSpec":
        """Build from an octal string such as "755" or "1777"."""
        try:
            return cls.from_mode(int(value, 8))
        except ValueError as e:
            raise ValueError(f"Invalid octal permission: {value!r}") from e

    @classmethod
    def dir_default(cls) -> "PermissionSpec":
        return cls.from_mode(0o777)

    @classmethod
    def file_default(cls) -> "PermissionSpec":
        return cls.from_mode(0o666)

    @property
    def mode(self) -> int:
        return (int(self.owner) << 6) | (int(self.group) << 3) | int(self.other)

    @property
    def octal(self) -> str:
        return format(self.mode, "03o")

    def apply_umask(self, umask: int = 0o022) -> "PermissionSpec":
        return PermissionSpec.from_mode(self.mode & ~umask)

    def __str__(self) -> str:
        return self.owner.symbol + self.group.symbol + self.other.symbol


@dataclass(frozen=True)
class BlockLocation:
    """Placement of one storage block across replica hosts."""

    offset: int
    length: int
    hosts: Tuple[str, ...] = ()


@dataclass(frozen=True)
class EntryMetadata:
    """Result of a listing or status call."""

    path: StoragePath
    is_directory: bool
    length: int = 0
    owner: str = ""
    group: str = ""
    permission: Optional[PermissionSpec] = None
    block_size: int = 0
    replication: int = 0
    modification_time: Optional[datetime] = None
    block_locations: Tuple[BlockLocation, ...] = ()

    @property
    def name(self) -> str:
        return self.path.name

    @property
    def is_file(self) -> bool:
        return not self.is_directory


@dataclass(frozen=True)
class TransferOptions:
    """
    Flags for upload_file / download_file.

    Attributes:
        overwrite: Replace an existing destination (otherwise AlreadyExistsError)
        delete_source: Remove the source once the copy succeeded
        buffer_size: I/O buffer size in bytes
        verify_checksum: Use local ``.name.crc`` side-files; False bypasses them
    """

    overwrite: bool = True
    delete_source: bool = False
    buffer_size: int = 4096
    verify_checksum: bool = False

    def __post_init__(self):
        if self.buffer_size <= 0:
            raise ValueError(f"buffer_size must be positive, got {self.buffer_size}")


@dataclass(frozen=True)
class ConnectionTarget:
    """
    Identifies a backend and how to authenticate against it.

    Cluster targets use ``user``; object-storage targets use
    ``access_key``/``secret_key`` together with ``endpoint_url``.
    For HDFS, ``endpoint_url`` may point at the WebHDFS HTTP address when it
    cannot be derived from the URI.
    """

    uri: str
    user: Optional[str] = None
    access_key: Optional[str] = None
    secret_key: Optional[str] = None
    endpoint_url: Optional[str] = None
    signature_v4: bool = True
    region: Optional[str] = None
    replication: int = 3
    use_datanode_hostname: bool = False
    timeout: Optional[float] = None

    def __post_init__(self):
        if "://" not in self.uri:
            raise ValueError(f"Connection URI must include a scheme: {self.uri!r}")
        if self.replication < 1:
            raise ValueError(f"replication must be >= 1, got {self.replication}")

    @property
    def scheme(self) -> str:
        return urlsplit(self.uri).scheme.lower()

    @property
    def authority(self) -> str:
        return urlsplit(self.uri).netloc

    @classmethod
    def from_settings(cls, settings) -> "ConnectionTarget":
        """Build a target from a fsbridge.config.settings.Settings instance."""
        return cls(
            uri=settings.storage_uri,
            user=settings.storage_user,
            access_key=settings.storage_access_key or None,
            secret_key=settings.storage_secret_key or None,
            endpoint_url=settings.storage_endpoint_url,
            signature_v4=settings.s3_signature_v4,
            region=settings.storage_region,
            replication=settings.dfs_replication,
            use_datanode_hostname=settings.dfs_use_datanode_hostname,
            timeout=settings.storage_timeout,
        )

    def __repr__(self) -> str:
        # Keep secrets out of logs
        return (
            f"ConnectionTarget(uri={self.uri!r}, user={self.user!r}, "
            f"endpoint_url={self.endpoint_url!r}, replication={self.replication})"
        )
