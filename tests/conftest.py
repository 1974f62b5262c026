# Test configuration

import os
import sys

import pytest

# Add project root to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))


@pytest.fixture
def test_settings(tmp_path):
    """Override settings for testing"""
    from fsbridge.config.settings import Settings
    return Settings(
        storage_uri=(tmp_path / "remote").as_uri(),
        dfs_replication=1,
        log_json=False,
    )


@pytest.fixture
def remote_root(tmp_path):
    """Directory backing the file:// backend."""
    return tmp_path / "remote"


@pytest.fixture
def facade(remote_root):
    """Facade connected to a local file:// backend."""
    from fsbridge.storage import connect
    with connect(remote_root.as_uri()) as connected:
        yield connected


@pytest.fixture
def local_dir(tmp_path):
    path = tmp_path / "local"
    path.mkdir()
    return path


@pytest.fixture
def sample_file(local_dir):
    """A local file with known content."""
    path = local_dir / "hello.txt"
    path.write_bytes(b"hello hadoop!hello spark!hello flink!")
    return path
