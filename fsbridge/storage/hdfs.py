"""
HDFS storage backend over WebHDFS.

Uses the HdfsCLI client (``hdfs`` package) for every namespace and transfer
operation. Block locations come from the WebHDFS GETFILEBLOCKLOCATIONS call,
issued with the same requests session.

Target URIs:
- ``webhdfs://host:9870`` / ``swebhdfs://host:9871`` - HTTP(S) address used as is
- ``hdfs://host:8020`` - RPC address; WebHDFS is reached on DEFAULT_WEBHDFS_PORT
  of the same host unless ``endpoint_url`` is set
"""

import logging
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, BinaryIO, ContextManager, Dict, Iterator, Optional, Tuple
from urllib.parse import quote, urlsplit

import requests
from hdfs import HdfsError, InsecureClient

from fsbridge.storage.adapter import (
    AlreadyExistsError,
    DirectoryNotEmptyError,
    NotFoundError,
    StorageAdapter,
    StorageConnectionError,
    StorageError,
    StorageIOError,
    StoragePermissionError,
)
from fsbridge.storage.models import (
    BlockLocation,
    ConnectionTarget,
    EntryMetadata,
    PermissionSpec,
    StoragePath,
)

logger = logging.getLogger(__name__)

DEFAULT_WEBHDFS_PORT = 9870

# Remote exception class name -> error type
_REMOTE_ERRORS = {
    "FileNotFoundException": NotFoundError,
    "FileAlreadyExistsException": AlreadyExistsError,
    "AlreadyBeingCreatedException": AlreadyExistsError,
    "AccessControlException": StoragePermissionError,
    "PathIsNotEmptyDirectoryException": DirectoryNotEmptyError,
}


def webhdfs_url(target: ConnectionTarget) -> str:
    """Resolve the WebHDFS HTTP(S) base URL for a target."""
    if target.endpoint_url:
        return target.endpoint_url.rstrip("/")

    parts = urlsplit(target.uri)
    if not parts.hostname:
        raise StorageConnectionError(f"HDFS URI has no host: {target.uri}")

    if target.scheme == "swebhdfs":
        return f"https://{parts.netloc}"
    if target.scheme == "webhdfs":
        return f"http://{parts.netloc}"
    return f"http://{parts.hostname}:{DEFAULT_WEBHDFS_PORT}"


def _translate_error(error: HdfsError, path: StoragePath) -> StorageError:
    """Map an HdfsError onto the storage error taxonomy."""
    exception_name = getattr(error, "exception", None) or ""
    message = str(error)
    lowered = message.lower()

    error_type = _REMOTE_ERRORS.get(exception_name)
    if error_type is None:
        if "non empty" in lowered or "not empty" in lowered:
            error_type = DirectoryNotEmptyError
        elif "already exists" in lowered:
            error_type = AlreadyExistsError
        elif "does not exist" in lowered or "not found" in lowered:
            error_type = NotFoundError
        elif "permission denied" in lowered:
            error_type = StoragePermissionError

    if error_type is DirectoryNotEmptyError:
        return DirectoryNotEmptyError(path)
    if error_type in (NotFoundError, AlreadyExistsError):
        return error_type(path, message)
    if error_type is StoragePermissionError:
        return StoragePermissionError(message)
    return StorageIOError(f"HDFS operation on {path} failed: {message}")


class HdfsStorage(StorageAdapter):
    """
    HDFS-based storage implementation.

    Writes use the target's replication factor; block locations report
    datanode host names or IP addresses according to
    ``target.use_datanode_hostname``.
    """

    schemes = ("hdfs", "webhdfs", "swebhdfs")
    supports_permissions = True

    def __init__(self, target: ConnectionTarget, client: Optional[InsecureClient] = None):
        """
        Initialize and verify the HDFS session.

        Args:
            target: Connection target
            client: Pre-built client (tests); created from the target otherwise

        Raises:
            StorageConnectionError: If the namenode is unreachable or rejects the user
        """
        super().__init__(target)
        self.url = webhdfs_url(target)
        self.session = requests.Session()

        if client is None:
            client = InsecureClient(
                self.url,
                user=target.user,
                timeout=target.timeout,
                session=self.session,
            )
        self.client = client
        self._verify_connection()

    def _verify_connection(self) -> None:
        try:
            self.client.status("/")
        except requests.exceptions.RequestException as e:
            self.session.close()
            raise StorageConnectionError(f"HDFS namenode unreachable at {self.url}: {e}") from e
        except HdfsError as e:
            self.session.close()
            raise StorageConnectionError(
                f"HDFS rejected connection as {self.target.user!r}: {e}") from e

        logger.info(f"Connected to HDFS at {self.url} as {self.target.user or '<default>'}")

    @contextmanager
    def _errors(self, path: StoragePath, action: str):
        """Translate client exceptions raised inside the block."""
        try:
            yield
        except HdfsError as e:
            raise _translate_error(e, path) from e
        except requests.exceptions.RequestException as e:
            raise StorageIOError(f"Failed to {action} {path}: {e}") from e

    @contextmanager
    def _stream(self, path: StoragePath, action: str, context: ContextManager[BinaryIO]):
        with self._errors(path, action):
            with context as stream:
                yield stream

    def _to_entry(self, path: StoragePath, status: Dict[str, Any]) -> EntryMetadata:
        is_directory = status.get("type") == "DIRECTORY"
        permission = status.get("permission")
        modified = status.get("modificationTime")
        return EntryMetadata(
            path=path,
            is_directory=is_directory,
            length=int(status.get("length", 0)),
            owner=status.get("owner", ""),
            group=status.get("group", ""),
            permission=PermissionSpec.from_octal(permission) if permission else None,
            block_size=int(status.get("blockSize", 0)),
            replication=int(status.get("replication", 0)),
            modification_time=(
                datetime.fromtimestamp(modified / 1000, tz=timezone.utc)
                if modified else None
            ),
        )

    def make_directory(self, path: StoragePath, permission: Optional[PermissionSpec]) -> bool:
        with self._errors(path, "create directory"):
            self.client.makedirs(str(path), permission=permission.octal if permission else None)
        return True

    def set_permission(self, path: StoragePath, permission: PermissionSpec) -> None:
        with self._errors(path, "set permission on"):
            self.client.set_permission(str(path), permission.octal)

    def put_file(self, local_path: Path, path: StoragePath, overwrite: bool, buffer_size: int) -> None:
        with self._errors(path, "upload"):
            self.client.upload(
                str(path),
                str(local_path),
                overwrite=overwrite,
                replication=self.target.replication,
                buffersize=buffer_size,
            )

    def get_file(self, path: StoragePath, local_path: Path, buffer_size: int) -> None:
        with self._errors(path, "download"):
            self.client.download(str(path), str(local_path), overwrite=True, buffer_size=buffer_size)

    def open_write(
        self,
        path: StoragePath,
        overwrite: bool,
        buffer_size: int,
        permission: Optional[PermissionSpec] = None,
    ) -> ContextManager[BinaryIO]:
        with self._errors(path, "open for writing"):
            writer = self.client.write(
                str(path),
                overwrite=overwrite,
                permission=permission.octal if permission else None,
                replication=self.target.replication,
                buffersize=buffer_size,
            )
        return self._stream(path, "write", writer)

    def open_read(self, path: StoragePath, buffer_size: int) -> ContextManager[BinaryIO]:
        return self._stream(path, "read", self.client.read(str(path), buffer_size=buffer_size))

    def iter_entries(self, path: StoragePath, recursive: bool) -> Iterator[EntryMetadata]:
        if not recursive:
            with self._errors(path, "list"):
                children = self.client.list(str(path), status=True)
            for name, status in children:
                yield self._to_entry(path / name, status)
            return

        with self._errors(path, "walk"):
            walker = self.client.walk(str(path), status=True)
            for (dir_path, _), dirs, files in walker:
                parent = StoragePath(dir_path)
                for name, status in dirs:
                    yield self._to_entry(parent / name, status)
                for name, status in files:
                    yield self._to_entry(parent / name, status)

    def status(self, path: StoragePath) -> EntryMetadata:
        with self._errors(path, "stat"):
            status = self.client.status(str(path), strict=False)
        if status is None:
            raise NotFoundError(path)
        return self._to_entry(path, status)

    def delete(self, path: StoragePath, recursive: bool) -> bool:
        with self._errors(path, "delete"):
            return bool(self.client.delete(str(path), recursive=recursive))

    def block_locations(self, entry: EntryMetadata) -> Tuple[BlockLocation, ...]:
        """Fetch block placement of a file through GETFILEBLOCKLOCATIONS."""
        if entry.is_directory:
            return ()

        params = {"op": "GETFILEBLOCKLOCATIONS", "offset": 0, "length": entry.length}
        if self.target.user:
            params["user.name"] = self.target.user

        url = f"{self.url}/webhdfs/v1{quote(str(entry.path))}"
        try:
            response = self.session.get(url, params=params, timeout=self.target.timeout)
        except requests.exceptions.RequestException as e:
            raise StorageIOError(f"Failed to get block locations of {entry.path}: {e}") from e

        payload = _json_or_empty(response)
        if not response.ok:
            remote = payload.get("RemoteException", {})
            raise _translate_error(
                HdfsError(remote.get("message", response.text), exception=remote.get("exception")),
                entry.path,
            )

        locations = payload.get("BlockLocations", {}).get("BlockLocation", [])
        return tuple(self._to_block_location(item) for item in locations)

    def _to_block_location(self, item: Dict[str, Any]) -> BlockLocation:
        if self.target.use_datanode_hostname:
            hosts = item.get("hosts", [])
        else:
            # "names" holds ip:xferPort pairs
            hosts = [name.rsplit(":", 1)[0] for name in item.get("names", [])]
        return BlockLocation(
            offset=int(item.get("offset", 0)),
            length=int(item.get("length", 0)),
            hosts=tuple(hosts),
        )

    def close(self) -> None:
        self.session.close()
        logger.debug(f"Closed HDFS session to {self.url}")


def _json_or_empty(response: requests.Response) -> Dict[str, Any]:
    try:
        return response.json()
    except ValueError:
        return {}
