# assetreg/service.py
"""
Upload-then-register pipeline.

    blob --upload--> ContentStore --cid--> AssetRegistry --handle-->

The store is called first and outside the registry lock. If the upload
fails or times out the registry is never touched; if the registry fails,
the blob stays in the store (content addressing makes a later retry with
the same bytes land on the same CID). No retries happen here.
"""

import logging
from pathlib import Path

from .activitypub import ActorStore
from .config import Config
from .events import EventBus
from .registry import AssetRegistry, FileLog, Registration
from .store import ContentStore, IPFSContentStore, LocalContentStore

logger = logging.getLogger(__name__)


class AssetRegistrationService:
    """
    Composes a content store and an asset registry.

    Usage:
        service = AssetRegistrationService(LocalContentStore("/tmp/blobs"), AssetRegistry())
        record = service.register_blob(b"...")
        print(record.handle, record.cid)
    """

    def __init__(self, store: ContentStore, registry: AssetRegistry):
        self.store = store
        self.registry = registry

    def register_blob(self, blob: bytes, registrant: str = None) -> Registration:
        """Upload a blob and register its CID."""
        cid = self.store.upload(blob)
        return self.register_cid(cid, registrant)

    def register_file(self, path: Path | str, registrant: str = None) -> Registration:
        """Upload a local file and register its CID."""
        cid = self.store.upload_file(path)
        return self.register_cid(cid, registrant)

    def register_cid(self, cid: str, registrant: str = None) -> Registration:
        """Register a CID obtained from the store elsewhere."""
        record = self.registry.register_record(cid, registrant)
        logger.info(f"Asset {record.cid} registered as handle {record.handle}")
        return record


def build_store(config: Config) -> ContentStore:
    """Content store selected by the config."""
    if config.ipfs_api_url:
        return IPFSContentStore(
            config.ipfs_api_url,
            timeout=config.upload_timeout,
            max_size_bytes=config.max_upload_bytes,
        )
    return LocalContentStore(config.blobs_dir, max_size_bytes=config.max_upload_bytes)


def build_service(config: Config, events: EventBus = None) -> AssetRegistrationService:
    """
    Wire up a service from config.

    Raises:
        ValueError: if config.actor names an actor that does not exist
        PersistenceFailure: if the registration log cannot be replayed
    """
    actor = None
    if config.actor:
        actor = ActorStore(config.actors_dir, domain=config.domain).get(config.actor)
        if actor is None:
            raise ValueError(f"Actor {config.actor} not found in {config.actors_dir}")

    registry = AssetRegistry(
        FileLog(config.log_path),
        events=events,
        actor=actor,
        strict=config.strict_cids,
    )
    return AssetRegistrationService(build_store(config), registry)
