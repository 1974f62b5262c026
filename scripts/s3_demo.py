#!/usr/bin/env python3
"""
S3 demo: create a directory marker and upload a local file through the
object-storage backend.

Expects STORAGE_URI=s3a://<bucket>, STORAGE_ENDPOINT_URL, STORAGE_ACCESS_KEY
and STORAGE_SECRET_KEY in the environment or .env. The local file is the
first argument.
"""

import sys
from pathlib import Path

from fsbridge.common.logging_config import set_correlation_id, setup_logging
from fsbridge.config.settings import get_settings
from fsbridge.storage import (
    ConnectionTarget,
    FsAction,
    PermissionSpec,
    StorageError,
    TransferOptions,
    connect,
)

DEMO_DIR = "/resources/test002"
UPLOAD_DIR = "/dir2"


def run_demo(local_file: str) -> int:
    settings = get_settings()
    setup_logging(settings.log_level, settings.log_json)
    set_correlation_id()

    target = ConnectionTarget.from_settings(settings)
    if target.scheme not in ("s3a", "s3"):
        print(f"✗ Expected an s3a:// URI, got {target.uri}", file=sys.stderr)
        return 1

    try:
        facade = connect(target)
    except StorageError as e:
        print(f"✗ Connection failed: {e}", file=sys.stderr)
        return 1

    with facade:
        # Ignored by object storage, kept for parity with the HDFS demo
        full_access = PermissionSpec(FsAction.ALL, FsAction.ALL, FsAction.ALL)
        if facade.make_directory(DEMO_DIR, full_access):
            print("✓ create directory success.")

        destination = f"{UPLOAD_DIR}/{Path(local_file).name}"
        try:
            opts = TransferOptions(buffer_size=settings.transfer_buffer_size)
            if facade.upload_file(local_file, destination, opts):
                print("✓ upload file success.")
            else:
                return 1
        except StorageError as e:
            print(f"✗ Upload refused: {e}", file=sys.stderr)
            return 1

    return 0


if __name__ == "__main__":
    if len(sys.argv) < 2:
        print("Usage: s3_demo.py <local-file>", file=sys.stderr)
        sys.exit(2)
    sys.exit(run_demo(sys.argv[1]))
