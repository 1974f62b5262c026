"""
Storage manager for connecting facades to backends.

connect() picks the backend implementation from the target URI's scheme.
get_storage_facade() keeps an optional process-wide facade built from
settings for callers that want a single shared session.
"""

import logging
from functools import lru_cache
from typing import Dict, Type, Union

from fsbridge.config.settings import get_settings
from fsbridge.storage.adapter import StorageAdapter, StorageConnectionError
from fsbridge.storage.facade import StorageFacade
from fsbridge.storage.filesystem import LocalStorage
from fsbridge.storage.hdfs import HdfsStorage
from fsbridge.storage.models import ConnectionTarget
from fsbridge.storage.s3 import S3Storage

logger = logging.getLogger(__name__)

_BACKENDS: Dict[str, Type[StorageAdapter]] = {}


def register_backend(adapter_cls: Type[StorageAdapter]) -> Type[StorageAdapter]:
    """Register an adapter class for every scheme it serves."""
    for scheme in adapter_cls.schemes:
        _BACKENDS[scheme] = adapter_cls
    return adapter_cls


for _adapter_cls in (HdfsStorage, S3Storage, LocalStorage):
    register_backend(_adapter_cls)


def supported_schemes() -> list:
    return sorted(_BACKENDS)


def connect(target: Union[ConnectionTarget, str], **options) -> StorageFacade:
    """
    Connect to the backend named by a target.

    Args:
        target: ConnectionTarget, or a URI string combined with ``options``
        **options: ConnectionTarget fields when ``target`` is a string

    Returns:
        Connected StorageFacade

    Raises:
        StorageConnectionError: If the scheme is unknown, the endpoint is
            unreachable, or authentication is rejected
    """
    if isinstance(target, str):
        try:
            target = ConnectionTarget(uri=target, **options)
        except ValueError as e:
            raise StorageConnectionError(str(e)) from e
    elif options:
        raise TypeError("options are only accepted together with a URI string")

    adapter_cls = _BACKENDS.get(target.scheme)
    if adapter_cls is None:
        raise StorageConnectionError(
            f"Unsupported storage scheme: {target.scheme!r}. "
            f"Supported schemes: {', '.join(supported_schemes())}"
        )

    logger.info(f"Connecting to {target.uri} with {adapter_cls.__name__}")
    return StorageFacade(adapter_cls(target))


@lru_cache()
def get_storage_facade() -> StorageFacade:
    """
    Get the process-wide facade configured by settings.

    Returns:
        StorageFacade connected to settings.storage_uri
    """
    settings = get_settings()
    return connect(ConnectionTarget.from_settings(settings))


def reset_storage_facade() -> None:
    """Close and drop the process-wide facade (useful for testing)."""
    if get_storage_facade.cache_info().currsize:
        get_storage_facade().close()
    get_storage_facade.cache_clear()
