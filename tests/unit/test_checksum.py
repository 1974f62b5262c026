"""
Unit tests for checksum side-files.
"""

import struct
import zlib

import pytest

from fsbridge.storage.adapter import ChecksumError
from fsbridge.storage.checksum import (
    CHECKSUM_MAGIC,
    checksum_path,
    compute_checksums,
    read_checksum_file,
    verify_checksum_file,
    write_checksum_file,
)


@pytest.fixture
def data_file(tmp_path):
    path = tmp_path / "22.png"
    path.write_bytes(bytes(range(256)) * 5)  # 1280 bytes, three 512-byte chunks
    return path


class TestChecksumPath:

    def test_hidden_sibling(self, tmp_path):
        assert checksum_path(tmp_path / "22.png") == tmp_path / ".22.png.crc"


class TestComputeChecksums:

    def test_chunking(self, data_file):
        content = data_file.read_bytes()
        checksums = compute_checksums(data_file)

        assert len(checksums) == 3
        assert checksums[0] == zlib.crc32(content[:512])
        assert checksums[2] == zlib.crc32(content[1024:])

    def test_empty_file(self, tmp_path):
        empty = tmp_path / "empty"
        empty.write_bytes(b"")
        assert compute_checksums(empty) == []


class TestSideFile:

    def test_write_layout(self, data_file):
        crc_path = write_checksum_file(data_file)
        raw = crc_path.read_bytes()

        assert raw[:4] == CHECKSUM_MAGIC
        assert struct.unpack(">i", raw[4:8]) == (512,)
        assert len(raw) == 8 + 3 * 4

    def test_read_back(self, data_file):
        crc_path = write_checksum_file(data_file, bytes_per_checksum=100)

        bytes_per_checksum, checksums = read_checksum_file(crc_path)
        assert bytes_per_checksum == 100
        assert checksums == compute_checksums(data_file, 100)

    def test_read_rejects_garbage(self, tmp_path):
        bogus = tmp_path / ".x.crc"
        bogus.write_bytes(b"not a checksum")

        with pytest.raises(ChecksumError, match="not a checksum file"):
            read_checksum_file(bogus)


class TestVerify:

    def test_no_side_file(self, data_file):
        assert verify_checksum_file(data_file) is None

    def test_matches(self, data_file):
        write_checksum_file(data_file)
        assert verify_checksum_file(data_file) is True

    def test_detects_modified_chunk(self, data_file):
        write_checksum_file(data_file)
        content = bytearray(data_file.read_bytes())
        content[600] ^= 0xFF
        data_file.write_bytes(bytes(content))

        with pytest.raises(ChecksumError, match="chunk 1"):
            verify_checksum_file(data_file)

    def test_detects_truncation(self, data_file):
        write_checksum_file(data_file)
        data_file.write_bytes(data_file.read_bytes()[:100])

        with pytest.raises(ChecksumError, match="chunks"):
            verify_checksum_file(data_file)
