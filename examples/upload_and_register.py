#!/usr/bin/env python3
"""
Upload a file and register its CID locally.

Runs the whole pipeline in-process: content store, registry with a file
log, and an indexer listening for registration events. Running it twice
shows handles continuing from the replayed log.

Usage:
    python examples/upload_and_register.py <file> [<data_dir>]
"""

import sys
from pathlib import Path

# Add assetreg to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from assetreg import (
    AssetRegistrationService,
    AssetRegistry,
    DeduplicatingIndexer,
    EventBus,
    FileLog,
    LocalContentStore,
)


def main():
    if len(sys.argv) < 2:
        print(__doc__)
        return 1

    path = Path(sys.argv[1])
    data_dir = Path(sys.argv[2]) if len(sys.argv) > 2 else Path("./example-data")

    bus = EventBus()
    indexer = DeduplicatingIndexer()
    bus.subscribe(indexer)

    registry = AssetRegistry(FileLog(data_dir / "registrations.jsonl"), events=bus)
    print(f"Replayed registrations: {registry.count()}")

    service = AssetRegistrationService(LocalContentStore(data_dir / "blobs"), registry)
    record = service.register_file(path)

    print(f"Uploaded: {path}")
    print(f"CID: {record.cid}")
    print(f"Handle: {record.handle}")
    print(f"Indexed by event: {indexer.get(record.handle)}")
    print()

    print("=== Registry ===")
    for r in registry:
        print(f"  {r.handle}: {r.cid}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
