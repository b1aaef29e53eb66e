# assetreg/registry/__init__.py
"""
Asset registry.

The registry maps sequential handles to content identifiers obtained from a
content store. State lives in an append-only log and is rebuilt by replay.

Example:
    registry = AssetRegistry(FileLog("/path/to/registrations.jsonl"))
    handle = registry.register("bafkrei...")
    registry.get_record(handle)
"""

from .log import RegistrationLog, MemoryLog, FileLog
from .registry import AssetRegistry, Registration

__all__ = [
    "AssetRegistry",
    "Registration",
    "RegistrationLog",
    "MemoryLog",
    "FileLog",
]
