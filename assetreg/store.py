# assetreg/store.py
"""
Content-addressed blob stores.

A content store accepts a blob and returns a CID derived from its bytes.
The registry never talks to a store directly; callers (or the registration
service) upload first and register the resulting CID.

Implementations:
    LocalContentStore  - directory on disk, CIDs computed locally
    IPFSContentStore   - an IPFS node, through ipfshttpclient
"""

import io
import ipaddress
import logging
import os
import tempfile
from abc import ABC, abstractmethod
from contextlib import contextmanager
from pathlib import Path
from typing import Optional
from urllib.parse import urlparse

import ipfshttpclient
from ipfshttpclient import exceptions as ipfs_errors

from .cid import compute_cid
from .errors import StoreUnavailable, UploadRejected

logger = logging.getLogger(__name__)


class ContentStore(ABC):
    """
    Base class for content stores.

    Subclasses implement _put(), get() and has(). upload() enforces the
    size limit before anything is stored.
    """

    def __init__(self, max_size_bytes: int = None):
        self.max_size_bytes = max_size_bytes

    def upload(self, blob: bytes) -> str:
        """
        Store a blob.

        Returns:
            The blob's CID

        Raises:
            UploadRejected: empty blob, or larger than max_size_bytes
            StoreUnavailable: the store could not be reached
        """
        if not isinstance(blob, (bytes, bytearray)):
            raise UploadRejected(f"Blob must be bytes, got {type(blob).__name__}")
        if not blob:
            raise UploadRejected("Blob is empty")
        if self.max_size_bytes is not None and len(blob) > self.max_size_bytes:
            raise UploadRejected(
                f"Blob of {len(blob)} bytes exceeds limit of {self.max_size_bytes}"
            )
        cid = self._put(bytes(blob))
        logger.debug(f"Uploaded {len(blob)} bytes as {cid}")
        return cid

    def upload_file(self, path: Path | str) -> str:
        """Store the contents of a local file."""
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"File not found: {path}")
        return self.upload(path.read_bytes())

    @abstractmethod
    def _put(self, blob: bytes) -> str:
        pass

    @abstractmethod
    def get(self, cid: str) -> Optional[bytes]:
        """Fetch a blob by CID, or None if the store does not have it."""
        pass

    @abstractmethod
    def has(self, cid: str) -> bool:
        pass


class LocalContentStore(ContentStore):
    """
    Content-addressed directory.

    Structure:
        store_dir/
            <cid>           # Blob bytes
    """

    def __init__(self, store_dir: Path | str, max_size_bytes: int = None):
        super().__init__(max_size_bytes)
        self.store_dir = Path(store_dir)
        self.store_dir.mkdir(parents=True, exist_ok=True)

    def _blob_path(self, cid: str) -> Path:
        return self.store_dir / cid

    def _put(self, blob: bytes) -> str:
        cid = compute_cid(blob)
        path = self._blob_path(cid)
        if path.exists():
            logger.debug(f"Already stored: {cid}")
            return cid

        try:
            fd, tmp = tempfile.mkstemp(dir=self.store_dir, prefix=".upload-")
        except OSError as e:
            raise StoreUnavailable(f"Cannot write to {self.store_dir}: {e}") from e

        try:
            with os.fdopen(fd, "wb") as f:
                f.write(blob)
            os.replace(tmp, path)
        except OSError as e:
            Path(tmp).unlink(missing_ok=True)
            raise StoreUnavailable(f"Cannot write to {self.store_dir}: {e}") from e
        return cid

    def get(self, cid: str) -> Optional[bytes]:
        path = self._blob_path(cid)
        if not path.is_file():
            return None
        return path.read_bytes()

    def has(self, cid: str) -> bool:
        return self._blob_path(cid).is_file()

    def __len__(self) -> int:
        return sum(1 for p in self.store_dir.iterdir() if not p.name.startswith("."))


def _multiaddr(api_url: str) -> str:
    """Turn an http(s) API URL into the multiaddr ipfshttpclient dials."""
    if api_url.startswith("/"):
        return api_url

    parsed = urlparse(api_url)
    if parsed.scheme not in ("http", "https") or not parsed.hostname:
        raise ValueError(f"Unsupported IPFS API URL: {api_url!r}")

    host = parsed.hostname
    try:
        proto = "ip6" if ipaddress.ip_address(host).version == 6 else "ip4"
    except ValueError:
        proto = "dns"
    port = parsed.port or (443 if parsed.scheme == "https" else 80)
    return f"/{proto}/{host}/tcp/{port}/{parsed.scheme}"


class IPFSContentStore(ContentStore):
    """
    Blobs pinned on an IPFS node, through ipfshttpclient.

    Blobs are added as raw-leaf CIDv1, so a single-chunk blob gets the same
    CID LocalContentStore computes. get() and has() only look at what the
    node holds locally.

    Args:
        api_url: Node API as a URL ("http://127.0.0.1:5001") or multiaddr
            ("/dns/ipfs/tcp/5001/http")
        timeout: Per-request timeout in seconds
        max_size_bytes: Reject larger blobs without contacting the node
        connect: Client factory, ipfshttpclient.connect unless replaced
    """

    def __init__(self, api_url: str = "http://127.0.0.1:5001", timeout: float = 60,
                 max_size_bytes: int = None, connect=None):
        super().__init__(max_size_bytes)
        self.api_url = api_url
        self.addr = _multiaddr(api_url)
        self.timeout = timeout
        self._connect = connect or ipfshttpclient.connect

    @contextmanager
    def _client(self, action: str):
        """Connected client; transport failures become StoreUnavailable."""
        try:
            with self._connect(self.addr, timeout=self.timeout) as client:
                yield client
        except ipfs_errors.ErrorResponse:
            raise
        except ipfs_errors.TimeoutError as e:
            raise StoreUnavailable(f"IPFS {action} timed out after {self.timeout}s") from e
        except (ipfs_errors.Error, ipfs_errors.VersionMismatch) as e:
            raise StoreUnavailable(f"IPFS {action} failed at {self.api_url}: {e}") from e

    def _put(self, blob: bytes) -> str:
        try:
            with self._client("add") as client:
                result = client.add(io.BytesIO(blob), pin=True, cid_version=1, raw_leaves=True)
        except ipfs_errors.ErrorResponse as e:
            raise UploadRejected(f"IPFS add rejected: {e}") from e

        try:
            return result["Hash"]
        except (KeyError, TypeError) as e:
            raise StoreUnavailable(f"Unexpected IPFS add response: {result!r}") from e

    def get(self, cid: str) -> Optional[bytes]:
        try:
            with self._client("cat") as client:
                return client.cat(cid, offline=True)
        except ipfs_errors.ErrorResponse:
            return None

    def has(self, cid: str) -> bool:
        try:
            with self._client("pin/ls") as client:
                client.pin.ls(cid)
        except ipfs_errors.ErrorResponse:
            return False
        return True
