#!/usr/bin/env python3
"""
HDFS demo: create a directory, upload a local file and list the directory.

Connection settings come from the environment / .env (see
fsbridge.config.settings); the local file defaults to ./hello.txt and can be
given as the first argument.
"""

import sys

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

DEMO_DIR = "/test002"
DEMO_FILE = "/test002/12.txt"


def run_demo(local_file: str) -> int:
    settings = get_settings()
    setup_logging(settings.log_level, settings.log_json)
    set_correlation_id()

    # Single-node cluster: one replica, datanodes addressed by host name
    target = ConnectionTarget(
        uri=settings.storage_uri,
        user=settings.storage_user or "root",
        endpoint_url=settings.storage_endpoint_url,
        replication=1,
        use_datanode_hostname=True,
        timeout=settings.storage_timeout,
    )

    try:
        facade = connect(target)
    except StorageError as e:
        print(f"✗ Connection failed: {e}", file=sys.stderr)
        return 1

    with facade:
        full_access = PermissionSpec(FsAction.ALL, FsAction.ALL, FsAction.ALL)
        if facade.make_directory(DEMO_DIR, full_access):
            print("✓ create directory success.")

        opts = TransferOptions(
            overwrite=True,
            delete_source=False,
            buffer_size=settings.transfer_buffer_size,
        )
        try:
            if facade.upload_file(local_file, DEMO_FILE, opts):
                print("✓ upload file success.")
        except StorageError as e:
            print(f"✗ Upload refused: {e}", file=sys.stderr)
            return 1

        for entry in facade.list_entries(DEMO_DIR, recursive=False):
            print(entry.name, file=sys.stderr)

    return 0


if __name__ == "__main__":
    sys.exit(run_demo(sys.argv[1] if len(sys.argv) > 1 else "hello.txt"))
