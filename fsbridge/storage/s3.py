"""
S3 storage backend implementation.

Stores files as objects in one bucket, addressed like the S3A connector:
- ``s3a://{bucket}`` or ``s3://{bucket}`` selects the bucket
- StoragePath("/a/b.txt") is the key ``a/b.txt``
- directories are ``a/`` marker objects, or implied by keys below them

Object storage has no POSIX permissions, owners or blocks; those fields stay
empty and permission masks are ignored.
"""

import logging
import tempfile
from contextlib import contextmanager
from pathlib import Path
from typing import Any, BinaryIO, ContextManager, Dict, Iterator, List, Optional

import boto3
from boto3.exceptions import Boto3Error
from boto3.s3.transfer import TransferConfig
from botocore.config import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError, NoCredentialsError

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
    ConnectionTarget,
    EntryMetadata,
    PermissionSpec,
    StoragePath,
)

logger = logging.getLogger(__name__)

# delete_objects accepts at most this many keys per call
DELETE_BATCH_SIZE = 1000

_NOT_FOUND_CODES = {"404", "NoSuchKey", "NotFound"}
_BUCKET_MISSING_CODES = {"NoSuchBucket"}
_DENIED_CODES = {"403", "AccessDenied", "InvalidAccessKeyId", "SignatureDoesNotMatch"}


def _error_code(error: ClientError) -> str:
    return str(error.response.get("Error", {}).get("Code", ""))


def _message_code(message: str) -> str:
    """Error code quoted in a boto3 transfer message, e.g. "(NoSuchBucket)"."""
    for code in _NOT_FOUND_CODES | _BUCKET_MISSING_CODES | _DENIED_CODES:
        if f"({code})" in message:
            return code
    return ""


def _transfer_cause(error: Boto3Error) -> Optional[Exception]:
    """
    botocore error behind a boto3 managed-transfer failure.

    S3UploadFailedError chains the ClientError it wraps; RetriesExceededError
    keeps the last attempt's error in ``last_exception``.
    """
    for candidate in (
        getattr(error, "last_exception", None),
        error.__cause__,
        error.__context__,
    ):
        if isinstance(candidate, (ClientError, BotoCoreError)):
            return candidate
    return None


def _translate_error(error: Exception, path: StoragePath, action: str) -> StorageError:
    if isinstance(error, Boto3Error):
        cause = _transfer_cause(error)
        if cause is not None:
            return _translate_error(cause, path, action)
        code = _message_code(str(error))
    elif isinstance(error, ClientError):
        code = _error_code(error)
    else:
        code = ""

    if code in _NOT_FOUND_CODES:
        return NotFoundError(path)
    if code in _DENIED_CODES:
        return StoragePermissionError(f"Access denied to {action} {path}: {error}")
    if code in _BUCKET_MISSING_CODES:
        return StorageIOError(f"Failed to {action} {path}, bucket does not exist: {error}")
    return StorageIOError(f"Failed to {action} {path}: {error}")


class _ObjectWriter:
    """
    Spools writes locally and uploads the object when the context exits.

    Up to buffer_size bytes stay in memory before spilling to a temp file.
    Nothing is uploaded if the block raises.
    """

    def __init__(self, storage: "S3Storage", path: StoragePath, buffer_size: int):
        self.storage = storage
        self.path = path
        self.buffer_size = buffer_size
        self._spool = None

    def __enter__(self) -> BinaryIO:
        self._spool = tempfile.SpooledTemporaryFile(max_size=self.buffer_size)
        return self._spool

    def __exit__(self, exc_type, exc_val, exc_tb):
        try:
            if exc_type is None:
                self._spool.seek(0)
                self.storage._upload_fileobj(self._spool, self.path, self.buffer_size)
        finally:
            self._spool.close()
        return False


class S3Storage(StorageAdapter):
    """
    S3-based storage implementation.

    Works against AWS or any S3-compatible endpoint (MinIO, Ceph RGW, ...).
    """

    schemes = ("s3a", "s3")
    supports_permissions = False

    def __init__(self, target: ConnectionTarget, client: Any = None):
        """
        Initialize and verify the S3 session.

        Args:
            target: Connection target; the URI authority is the bucket
            client: Pre-built boto3 S3 client (tests)

        Raises:
            StorageConnectionError: If the bucket is unreachable or credentials are rejected
        """
        super().__init__(target)
        self.bucket = target.authority
        if not self.bucket:
            raise StorageConnectionError(f"S3 URI has no bucket: {target.uri}")

        if client is None:
            client = self._create_client(target)
        self.client = client
        self._test_connection()

    @staticmethod
    def _create_client(target: ConnectionTarget):
        config = BotoConfig(
            signature_version="s3v4" if target.signature_v4 else "s3",
            connect_timeout=target.timeout or 60,
            read_timeout=target.timeout or 60,
            s3={"addressing_style": "path" if target.endpoint_url else "auto"},
        )
        try:
            return boto3.client(
                "s3",
                aws_access_key_id=target.access_key,
                aws_secret_access_key=target.secret_key,
                region_name=target.region,
                endpoint_url=target.endpoint_url,
                config=config,
            )
        except (BotoCoreError, ValueError) as e:
            raise StorageConnectionError(f"Failed to initialize S3 client: {e}") from e

    def _test_connection(self) -> None:
        """Test S3 connection and bucket access."""
        try:
            self.client.head_bucket(Bucket=self.bucket)
        except ClientError as e:
            code = _error_code(e)
            if code in _NOT_FOUND_CODES | _BUCKET_MISSING_CODES:
                raise StorageConnectionError(f"S3 bucket '{self.bucket}' not found") from e
            if code in _DENIED_CODES:
                raise StorageConnectionError(f"Access denied to S3 bucket '{self.bucket}'") from e
            raise StorageConnectionError(f"Error accessing S3 bucket: {e}") from e
        except NoCredentialsError as e:
            raise StorageConnectionError("S3 credentials not found") from e
        except BotoCoreError as e:
            raise StorageConnectionError(f"S3 endpoint unreachable: {e}") from e

        logger.info(f"Connected to S3 bucket: {self.bucket}")

    @contextmanager
    def _errors(self, path: StoragePath, action: str):
        try:
            yield
        except (ClientError, BotoCoreError, Boto3Error) as e:
            raise _translate_error(e, path, action) from e

    @staticmethod
    def _key(path: StoragePath) -> str:
        return str(path).lstrip("/")

    @classmethod
    def _prefix(cls, path: StoragePath) -> str:
        """Key prefix of the objects below a directory."""
        return "" if path.is_root else cls._key(path) + "/"

    def _file_entry(self, path: StoragePath, length: int, modified=None) -> EntryMetadata:
        return EntryMetadata(
            path=path,
            is_directory=False,
            length=int(length),
            replication=1,
            modification_time=modified,
        )

    @staticmethod
    def _dir_entry(path: StoragePath) -> EntryMetadata:
        return EntryMetadata(path=path, is_directory=True)

    def _head(self, path: StoragePath) -> Optional[Dict[str, Any]]:
        try:
            return self.client.head_object(Bucket=self.bucket, Key=self._key(path))
        except ClientError as e:
            if _error_code(e) in _NOT_FOUND_CODES:
                return None
            raise

    def _has_children(self, path: StoragePath, include_marker: bool) -> bool:
        prefix = self._prefix(path)
        response = self.client.list_objects_v2(Bucket=self.bucket, Prefix=prefix, MaxKeys=2)
        keys = [obj["Key"] for obj in response.get("Contents", [])]
        if not include_marker:
            keys = [key for key in keys if key != prefix]
        return bool(keys)

    def _upload_fileobj(self, fileobj: BinaryIO, path: StoragePath, buffer_size: int) -> None:
        with self._errors(path, "upload"):
            self.client.upload_fileobj(
                fileobj, self.bucket, self._key(path),
                Config=TransferConfig(io_chunksize=buffer_size),
            )

    def make_directory(self, path: StoragePath, permission: Optional[PermissionSpec]) -> bool:
        if path.is_root:
            return True
        with self._errors(path, "create directory"):
            self.client.put_object(Bucket=self.bucket, Key=self._prefix(path), Body=b"")
        return True

    def set_permission(self, path: StoragePath, permission: PermissionSpec) -> None:
        logger.debug(f"Ignoring permission {permission} for {path}: not supported by S3")

    def put_file(self, local_path: Path, path: StoragePath, overwrite: bool, buffer_size: int) -> None:
        if not overwrite and self.exists(path):
            raise AlreadyExistsError(path)
        with self._errors(path, "upload"):
            self.client.upload_file(
                str(local_path), self.bucket, self._key(path),
                Config=TransferConfig(io_chunksize=buffer_size),
            )

    def get_file(self, path: StoragePath, local_path: Path, buffer_size: int) -> None:
        with self._errors(path, "download"):
            self.client.download_file(
                self.bucket, self._key(path), str(local_path),
                Config=TransferConfig(io_chunksize=buffer_size),
            )

    def open_write(
        self,
        path: StoragePath,
        overwrite: bool,
        buffer_size: int,
        permission: Optional[PermissionSpec] = None,
    ) -> ContextManager[BinaryIO]:
        if not overwrite and self.exists(path):
            raise AlreadyExistsError(path)
        return _ObjectWriter(self, path, buffer_size)

    @contextmanager
    def _body(self, path: StoragePath):
        with self._errors(path, "read"):
            response = self.client.get_object(Bucket=self.bucket, Key=self._key(path))
        body = response["Body"]
        try:
            with self._errors(path, "read"):
                yield body
        finally:
            body.close()

    def open_read(self, path: StoragePath, buffer_size: int) -> ContextManager[BinaryIO]:
        return self._body(path)

    def iter_entries(self, path: StoragePath, recursive: bool) -> Iterator[EntryMetadata]:
        prefix = self._prefix(path)
        params = {"Bucket": self.bucket, "Prefix": prefix}
        if not recursive:
            params["Delimiter"] = "/"

        seen_dirs = set()
        paginator = self.client.get_paginator("list_objects_v2")
        with self._errors(path, "list"):
            for page in paginator.paginate(**params):
                for common in page.get("CommonPrefixes", []):
                    child = StoragePath(common["Prefix"])
                    if child not in seen_dirs:
                        seen_dirs.add(child)
                        yield self._dir_entry(child)

                for obj in page.get("Contents", []):
                    key = obj["Key"]
                    if key == prefix:
                        continue
                    for entry in self._entries_for_key(
                            path, key, obj, seen_dirs, recursive):
                        yield entry

    def _entries_for_key(self, path, key, obj, seen_dirs, recursive) -> List[EntryMetadata]:
        """Entries contributed by one listed key, including implied directories."""
        entries = []
        child = StoragePath(key)
        relative = child.parts[len(path.parts):]

        # Directories between the listed path and the key
        ancestors = relative[:-1] if recursive else ()
        current = path
        for part in ancestors:
            current = current / part
            if current not in seen_dirs:
                seen_dirs.add(current)
                entries.append(self._dir_entry(current))

        if key.endswith("/"):
            if child not in seen_dirs:
                seen_dirs.add(child)
                entries.append(self._dir_entry(child))
        else:
            entries.append(self._file_entry(child, obj.get("Size", 0), obj.get("LastModified")))
        return entries

    def status(self, path: StoragePath) -> EntryMetadata:
        if path.is_root:
            return self._dir_entry(path)

        with self._errors(path, "stat"):
            head = self._head(path)
            if head is not None:
                return self._file_entry(path, head.get("ContentLength", 0), head.get("LastModified"))
            if self._has_children(path, include_marker=True):
                return self._dir_entry(path)
        raise NotFoundError(path)

    def delete(self, path: StoragePath, recursive: bool) -> bool:
        with self._errors(path, "delete"):
            if not path.is_root and self._head(path) is not None:
                self.client.delete_object(Bucket=self.bucket, Key=self._key(path))
                return True

            if not self._has_children(path, include_marker=True):
                return False
            if not recursive and self._has_children(path, include_marker=False):
                raise DirectoryNotEmptyError(path)

            self._delete_prefix(self._prefix(path))
        return True

    def _delete_prefix(self, prefix: str) -> None:
        paginator = self.client.get_paginator("list_objects_v2")
        batch = []
        for page in paginator.paginate(Bucket=self.bucket, Prefix=prefix):
            for obj in page.get("Contents", []):
                batch.append({"Key": obj["Key"]})
                if len(batch) == DELETE_BATCH_SIZE:
                    self._delete_batch(batch)
                    batch = []
        if batch:
            self._delete_batch(batch)

    def _delete_batch(self, batch: List[Dict[str, str]]) -> None:
        response = self.client.delete_objects(
            Bucket=self.bucket, Delete={"Objects": batch, "Quiet": True})
        errors = response.get("Errors", [])
        if errors:
            first = errors[0]
            raise StorageIOError(
                f"Failed to delete {len(errors)} objects, first {first.get('Key')}: "
                f"{first.get('Message')}")

    def close(self) -> None:
        self.client.close()
        logger.debug(f"Closed S3 session to bucket {self.bucket}")
