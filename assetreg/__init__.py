# assetreg - Asset registration service
#
# Uploads content to a content-addressed store and records the resulting
# content identifier (CID) against a sequentially issued handle in an
# append-only, durable registry.
#
# Core concepts:
# - ContentStore: Accepts blobs, returns CIDs derived from their bytes
# - AssetRegistry: Issues handles 0, 1, 2, ... and maps each to a CID
# - RegistrationLog: Append-only persistence the registry replays on start
# - EventBus: Publishes a RegistrationEvent after every committed registration
# - AssetRegistrationService: Upload-then-register pipeline

from .errors import (
    RegistryError,
    InvalidInput,
    PersistenceFailure,
    ContentStoreError,
    StoreUnavailable,
    UploadRejected,
)
from .cid import compute_cid, is_valid_cid
from .events import RegistrationEvent, EventBus, DeduplicatingIndexer
from .registry import AssetRegistry, Registration, RegistrationLog, MemoryLog, FileLog
from .store import ContentStore, LocalContentStore, IPFSContentStore
from .service import AssetRegistrationService, build_service
from .config import Config, load_config

__all__ = [
    # Errors
    "RegistryError",
    "InvalidInput",
    "PersistenceFailure",
    "ContentStoreError",
    "StoreUnavailable",
    "UploadRejected",
    # CIDs
    "compute_cid",
    "is_valid_cid",
    # Registry
    "AssetRegistry",
    "Registration",
    "RegistrationLog",
    "MemoryLog",
    "FileLog",
    # Events
    "RegistrationEvent",
    "EventBus",
    "DeduplicatingIndexer",
    # Content stores
    "ContentStore",
    "LocalContentStore",
    "IPFSContentStore",
    # Service
    "AssetRegistrationService",
    "build_service",
    "Config",
    "load_config",
]

__version__ = "0.1.0"
