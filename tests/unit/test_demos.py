"""
Unit tests for the demo scripts, run against the file:// backend.
"""

import pytest

from fsbridge.common.logging_config import clear_correlation_id
from fsbridge.storage import TransferOptions, connect
from scripts import hdfs_demo, s3_demo


@pytest.fixture
def demo_settings(monkeypatch, test_settings):
    for module in (hdfs_demo, s3_demo):
        monkeypatch.setattr(module, "get_settings", lambda: test_settings)
        monkeypatch.setattr(module, "setup_logging", lambda *args, **kwargs: None)
    yield test_settings
    clear_correlation_id()


@pytest.fixture
def recorded_options(monkeypatch):
    """TransferOptions built by the demos."""
    recorded = []

    def recording(**kwargs):
        opts = TransferOptions(**kwargs)
        recorded.append(opts)
        return opts

    for module in (hdfs_demo, s3_demo):
        monkeypatch.setattr(module, "TransferOptions", recording)
    return recorded


class TestHdfsDemo:

    def test_creates_directory_and_uploads(self, demo_settings, remote_root, sample_file, capsys):
        assert hdfs_demo.run_demo(str(sample_file)) == 0

        captured = capsys.readouterr()
        assert "create directory success" in captured.out
        assert "upload file success" in captured.out
        assert captured.err.strip().splitlines() == ["12.txt"]
        assert (remote_root / "test002" / "12.txt").read_bytes() == sample_file.read_bytes()

    def test_rerun_overwrites(self, demo_settings, sample_file):
        assert hdfs_demo.run_demo(str(sample_file)) == 0
        assert hdfs_demo.run_demo(str(sample_file)) == 0

    def test_missing_local_file(self, demo_settings, local_dir, capsys):
        assert hdfs_demo.run_demo(str(local_dir / "missing.txt")) == 1
        assert "Upload refused" in capsys.readouterr().err

    def test_uses_configured_buffer_size(self, demo_settings, sample_file, recorded_options):
        demo_settings.transfer_buffer_size = 1024

        assert hdfs_demo.run_demo(str(sample_file)) == 0

        assert [opts.buffer_size for opts in recorded_options] == [1024]
        assert recorded_options[0].overwrite is True


class TestS3Demo:

    def test_requires_object_storage_uri(self, demo_settings, sample_file, capsys):
        assert s3_demo.run_demo(str(sample_file)) == 1
        assert "Expected an s3a:// URI" in capsys.readouterr().err

    def test_uploads_with_configured_buffer_size(
            self, demo_settings, remote_root, sample_file, recorded_options, monkeypatch):
        demo_settings.storage_uri = "s3a://flink-bucket"
        demo_settings.transfer_buffer_size = 8192
        monkeypatch.setattr(s3_demo, "connect", lambda target: connect(remote_root.as_uri()))

        assert s3_demo.run_demo(str(sample_file)) == 0

        assert [opts.buffer_size for opts in recorded_options] == [8192]
        assert (remote_root / "dir2" / "hello.txt").read_bytes() == sample_file.read_bytes()
        assert (remote_root / "resources" / "test002").is_dir()
