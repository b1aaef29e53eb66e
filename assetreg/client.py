# assetreg/client.py
"""
Client SDK for the registration server.

Usage:
    client = RegistryClient("http://localhost:8080")

    record = client.upload(Path("model.glb").read_bytes())
    print(f"{record.cid} -> handle {record.handle}")

    client.get_record(record.handle)  # -> CID, or None
"""

import json
from pathlib import Path
from typing import List, Optional
from urllib.error import HTTPError, URLError
from urllib.parse import quote
from urllib.request import Request, urlopen

from .errors import (
    ContentStoreError,
    InvalidInput,
    PersistenceFailure,
    RegistryError,
    StoreUnavailable,
    UploadRejected,
)
from .registry import Registration

_STATUS_ERRORS = {
    400: InvalidInput,
    413: UploadRejected,
    502: StoreUnavailable,
    503: PersistenceFailure,
}


class NotFoundError(LookupError):
    """The server answered 404."""


class RegistryClient:
    """
    Client for the registration server.

    Args:
        base_url: Server URL (e.g., "http://localhost:8080")
        timeout: Request timeout in seconds
    """

    def __init__(self, base_url: str = "http://localhost:8080", timeout: float = 60):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout

    def _request(self, method: str, path: str, data: dict = None, body: bytes = None,
                 headers: dict = None, raw: bool = False):
        """Make HTTP request to server."""
        url = f"{self.base_url}{path}"
        headers = dict(headers or {})

        if data is not None:
            body = json.dumps(data).encode()
            headers["Content-Type"] = "application/json"
        elif body is not None:
            headers.setdefault("Content-Type", "application/octet-stream")

        req = Request(url, data=body, headers=headers, method=method)

        try:
            with urlopen(req, timeout=self.timeout) as response:
                payload = response.read()
        except HTTPError as e:
            error_body = e.read().decode(errors="replace")
            try:
                message = json.loads(error_body).get("error", str(e))
            except (json.JSONDecodeError, AttributeError):
                message = f"HTTP {e.code}: {error_body}"
            if e.code == 404:
                raise NotFoundError(message)
            raise _STATUS_ERRORS.get(e.code, RuntimeError)(message)
        except URLError as e:
            raise ConnectionError(f"Failed to connect to server: {e}")

        if raw:
            return payload
        return json.loads(payload.decode())

    def health(self) -> bool:
        """Check if server is healthy."""
        try:
            result = self._request("GET", "/health")
            return result.get("status") == "ok"
        except (ConnectionError, RuntimeError, NotFoundError, RegistryError, ContentStoreError):
            return False

    def upload(self, blob: bytes, registrant: str = None) -> Registration:
        """Upload a blob through the server and register its CID."""
        headers = {"X-Registrant": registrant} if registrant else None
        data = self._request("POST", "/assets", body=blob, headers=headers)
        return Registration.from_dict(data)

    def upload_file(self, path: Path | str, registrant: str = None) -> Registration:
        """Upload a local file and register its CID."""
        return self.upload(Path(path).read_bytes(), registrant)

    def register(self, cid: str, registrant: str = None) -> int:
        """Register a CID, return the issued handle."""
        return self.register_record(cid, registrant).handle

    def register_record(self, cid: str, registrant: str = None) -> Registration:
        payload = {"cid": cid}
        if registrant:
            payload["registrant"] = registrant
        data = self._request("POST", "/register", data=payload)
        return Registration.from_dict(data)

    def get(self, handle: int) -> Optional[Registration]:
        """Registration for a handle, or None if unassigned."""
        try:
            data = self._request("GET", f"/records/{int(handle)}")
        except NotFoundError:
            return None
        return Registration.from_dict(data)

    def get_record(self, handle: int) -> Optional[str]:
        """CID for a handle, or None if unassigned."""
        record = self.get(handle)
        return record.cid if record else None

    def count(self) -> int:
        return self._request("GET", "/count")["count"]

    def list(self, cid: str = None) -> List[Registration]:
        """All registrations, or only those of one CID."""
        path = f"/records?cid={quote(cid)}" if cid else "/records"
        data = self._request("GET", path)
        return [Registration.from_dict(r) for r in data.get("records", [])]

    def fetch_blob(self, cid: str) -> Optional[bytes]:
        """Blob bytes for a CID, or None if the store does not have it."""
        try:
            return self._request("GET", f"/blobs/{quote(cid)}", raw=True)
        except NotFoundError:
            return None


__all__ = ["RegistryClient", "NotFoundError"]
