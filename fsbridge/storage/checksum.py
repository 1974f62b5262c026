"""
Local checksum side-files.

A file ``dir/name`` may carry a sibling ``dir/.name.crc`` holding one CRC-32
per ``bytes_per_checksum`` chunk:

    b"crc\\0" | int32 bytes_per_checksum | uint32 crc * n   (big-endian)

Downloads write the side-file when verification is requested; uploads verify
against it when it is present.
"""

import struct
import zlib
from pathlib import Path
from typing import List, Optional, Tuple

from fsbridge.storage.adapter import ChecksumError

CHECKSUM_MAGIC = b"crc\0"
BYTES_PER_CHECKSUM = 512


def checksum_path(path: Path) -> Path:
    """Side-file location for a local file."""
    path = Path(path)
    return path.with_name(f".{path.name}.crc")


def compute_checksums(path: Path, bytes_per_checksum: int = BYTES_PER_CHECKSUM) -> List[int]:
    """CRC-32 of every chunk of a local file."""
    checksums = []
    with open(path, "rb") as f:
        while True:
            chunk = f.read(bytes_per_checksum)
            if not chunk:
                break
            checksums.append(zlib.crc32(chunk) & 0xFFFFFFFF)
    return checksums


def write_checksum_file(path: Path, bytes_per_checksum: int = BYTES_PER_CHECKSUM) -> Path:
    """
    Write the side-file for a local file.

    Returns:
        Path of the written side-file
    """
    checksums = compute_checksums(path, bytes_per_checksum)
    crc_path = checksum_path(path)
    with open(crc_path, "wb") as f:
        f.write(CHECKSUM_MAGIC)
        f.write(struct.pack(">i", bytes_per_checksum))
        for value in checksums:
            f.write(struct.pack(">I", value))
    return crc_path


def read_checksum_file(crc_path: Path) -> Tuple[int, List[int]]:
    """Parse a side-file into (bytes_per_checksum, checksums)."""
    data = Path(crc_path).read_bytes()
    if len(data) < 8 or data[:4] != CHECKSUM_MAGIC:
        raise ChecksumError(crc_path, "not a checksum file")

    (bytes_per_checksum,) = struct.unpack(">i", data[4:8])
    body = data[8:]
    if bytes_per_checksum <= 0 or len(body) % 4:
        raise ChecksumError(crc_path, "corrupt checksum file")

    checksums = [value for (value,) in struct.iter_unpack(">I", body)]
    return bytes_per_checksum, checksums


def verify_checksum_file(path: Path) -> Optional[bool]:
    """
    Verify a local file against its side-file.

    Returns:
        True if verified, None if there is no side-file

    Raises:
        ChecksumError: If any chunk mismatches
    """
    crc_path = checksum_path(path)
    if not crc_path.exists():
        return None

    bytes_per_checksum, expected = read_checksum_file(crc_path)
    actual = compute_checksums(path, bytes_per_checksum)

    if len(actual) != len(expected):
        raise ChecksumError(path, f"expected {len(expected)} chunks, found {len(actual)}")

    for index, (want, got) in enumerate(zip(expected, actual)):
        if want != got:
            raise ChecksumError(
                path, f"chunk {index} at offset {index * bytes_per_checksum} mismatches")

    return True
