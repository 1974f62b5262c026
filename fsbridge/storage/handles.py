"""
Scoped read/write handles returned by the facade.

Both wrap a backend context manager and guarantee it is exited on every path,
so buffered bytes reach the backend and the connection is released. Handles
are owned by a single caller and are not thread-safe.
"""

import logging
from typing import BinaryIO, ContextManager, Iterator, Optional

from fsbridge.storage.adapter import StorageError, StorageIOError
from fsbridge.storage.models import StoragePath

logger = logging.getLogger(__name__)


class _ScopedHandle:
    """Shared enter/exit bookkeeping for read and write handles."""

    def __init__(self, path: StoragePath, context: ContextManager[BinaryIO]):
        self.path = path
        self._context = context
        self._stream: Optional[BinaryIO] = None
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def _acquire(self) -> BinaryIO:
        if self._closed:
            raise StorageError(f"Handle for {self.path} is closed")
        if self._stream is None:
            try:
                self._stream = self._context.__enter__()
            except StorageError:
                self._closed = True
                raise
        return self._stream

    #: Enter the backend context on close even if nothing was read or written
    _enter_on_release = False

    def _release(self, exc_type=None, exc_val=None, exc_tb=None) -> None:
        if self._closed:
            return
        self._closed = True
        if self._stream is None:
            if not self._enter_on_release:
                close = getattr(self._context, "close", None)
                if close is not None:
                    close()
                return
            self._stream = self._context.__enter__()
        self._context.__exit__(exc_type, exc_val, exc_tb)

    def __enter__(self):
        self._acquire()
        return self

    def __del__(self):
        if not getattr(self, "_closed", True) and getattr(self, "_stream", None) is not None:
            logger.warning(f"Handle for {self.path} was garbage collected without close()")


class WriteHandle(_ScopedHandle):
    """
    Sequential, buffered writer.

    Usage:
        with facade.open_for_write("/dir/a.txt") as out:
            out.write(b"hello")
    """

    # An empty handle still creates an empty file
    _enter_on_release = True

    def __init__(self, path: StoragePath, context: ContextManager[BinaryIO], buffer_size: int):
        super().__init__(path, context)
        self.buffer_size = buffer_size
        self._buffer = bytearray()
        self.bytes_written = 0

    def write(self, data: bytes) -> int:
        self._acquire()
        self._buffer.extend(data)
        self.bytes_written += len(data)
        if len(self._buffer) >= self.buffer_size:
            self.flush()
        return len(data)

    def writelines(self, lines) -> None:
        for line in lines:
            self.write(line)

    def flush(self) -> None:
        """Push buffered bytes to the backend stream."""
        stream = self._acquire()
        if not self._buffer:
            return
        try:
            stream.write(bytes(self._buffer))
        except StorageError:
            raise
        except Exception as e:
            raise StorageIOError(f"Failed to write {self.path}: {e}") from e
        self._buffer.clear()
        if hasattr(stream, "flush"):
            stream.flush()

    def close(self) -> None:
        """Flush remaining bytes and commit the file."""
        if self._closed:
            return
        try:
            self.flush()
        except BaseException as e:
            self._release(type(e), e, e.__traceback__)
            raise
        self._release()

    def __exit__(self, exc_type, exc_val, exc_tb):
        if exc_type is None:
            self.close()
        else:
            # Buffered bytes are dropped; the backend decides what to keep
            self._buffer.clear()
            self._release(exc_type, exc_val, exc_tb)
        return False


class ReadHandle(_ScopedHandle):
    """
    Sequential reader.

    Usage:
        with facade.open_for_read("/dir/a.txt") as src:
            data = src.read()
    """

    def __init__(self, path: StoragePath, context: ContextManager[BinaryIO], buffer_size: int):
        super().__init__(path, context)
        self.buffer_size = buffer_size

    def read(self, size: int = -1) -> bytes:
        stream = self._acquire()
        try:
            if size is None or size < 0:
                return stream.read()
            return stream.read(size)
        except StorageError:
            raise
        except Exception as e:
            raise StorageIOError(f"Failed to read {self.path}: {e}") from e

    def iter_chunks(self, chunk_size: Optional[int] = None) -> Iterator[bytes]:
        """Yield the remaining content in chunks of at most chunk_size bytes."""
        size = chunk_size or self.buffer_size
        while True:
            chunk = self.read(size)
            if not chunk:
                return
            yield chunk

    def __iter__(self) -> Iterator[bytes]:
        return self.iter_chunks()

    def close(self) -> None:
        self._release()

    def __exit__(self, exc_type, exc_val, exc_tb):
        self._release(exc_type, exc_val, exc_tb)
        return False
