"""
Unit tests for backend selection and the shared facade.
"""

from unittest.mock import MagicMock

import pytest

from fsbridge.storage import manager
from fsbridge.storage.adapter import StorageConnectionError
from fsbridge.storage.filesystem import LocalStorage
from fsbridge.storage.hdfs import HdfsStorage
from fsbridge.storage.models import ConnectionTarget
from fsbridge.storage.s3 import S3Storage


class TestBackendRegistry:
    """Test scheme registration."""

    def test_supported_schemes(self):
        assert manager.supported_schemes() == [
            "file", "hdfs", "s3", "s3a", "swebhdfs", "webhdfs"]

    @pytest.mark.parametrize("scheme, adapter_cls", [
        ("hdfs", HdfsStorage),
        ("webhdfs", HdfsStorage),
        ("s3a", S3Storage),
        ("s3", S3Storage),
        ("file", LocalStorage),
    ])
    def test_scheme_maps_to_backend(self, scheme, adapter_cls):
        assert manager._BACKENDS[scheme] is adapter_cls


class TestConnect:
    """Test connect()."""

    def test_connect_with_uri_string(self, remote_root):
        with manager.connect(remote_root.as_uri()) as facade:
            assert isinstance(facade.adapter, LocalStorage)
            assert facade.backend == "file"
            assert facade.target.uri == remote_root.as_uri()

    def test_connect_with_target(self, remote_root):
        target = ConnectionTarget(remote_root.as_uri(), replication=1)

        with manager.connect(target) as facade:
            assert facade.target is target

    def test_uri_options_build_target(self, remote_root):
        with manager.connect(remote_root.as_uri(), user="root", replication=1) as facade:
            assert facade.target.user == "root"
            assert facade.target.replication == 1

    def test_options_with_target_rejected(self, remote_root):
        with pytest.raises(TypeError):
            manager.connect(ConnectionTarget(remote_root.as_uri()), user="root")

    def test_unknown_scheme(self):
        with pytest.raises(StorageConnectionError, match="Unsupported storage scheme"):
            manager.connect("ftp://files.example.com")

    def test_missing_scheme(self):
        with pytest.raises(StorageConnectionError, match="scheme"):
            manager.connect("10.16.118.247:8020")

    def test_connection_error_is_builtin_compatible(self):
        with pytest.raises(ConnectionError):
            manager.connect("gopher://old")

    def test_dispatches_on_scheme(self, monkeypatch):
        adapter = MagicMock()
        adapter.name = "hdfs"
        factory = MagicMock(return_value=adapter)
        factory.__name__ = "HdfsStorage"
        monkeypatch.setitem(manager._BACKENDS, "hdfs", factory)

        facade = manager.connect("hdfs://10.16.118.247:8020", user="root", replication=1)

        target = factory.call_args.args[0]
        assert target.uri == "hdfs://10.16.118.247:8020"
        assert target.user == "root"
        assert facade.adapter is adapter
        facade.close()
        adapter.close.assert_called_once_with()


class TestSharedFacade:
    """Test get_storage_facade / reset_storage_facade."""

    @pytest.fixture(autouse=True)
    def _settings(self, monkeypatch, test_settings):
        monkeypatch.setattr(manager, "get_settings", lambda: test_settings)
        manager.reset_storage_facade()
        yield
        manager.reset_storage_facade()

    def test_built_from_settings(self, test_settings):
        facade = manager.get_storage_facade()

        assert facade.target.uri == test_settings.storage_uri
        assert facade.target.replication == 1

    def test_cached(self):
        assert manager.get_storage_facade() is manager.get_storage_facade()

    def test_reset_closes(self):
        facade = manager.get_storage_facade()

        manager.reset_storage_facade()

        assert facade.closed
        assert manager.get_storage_facade() is not facade
