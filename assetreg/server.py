# assetreg/server.py
"""
HTTP server for the registration service.

Endpoints:
    GET  /health          - Liveness check
    POST /assets          - Upload raw body to the content store and register it
    POST /register        - Register a CID: {"cid": "...", "registrant": "..."}
    GET  /records         - All registrations (optionally ?cid=<cid>)
    GET  /records/:handle - One registration
    GET  /count           - Number of registrations
    GET  /blobs/:cid      - Blob bytes from the content store
    GET  /actor           - Public key document of the signing actor
"""

import json
import logging
import threading
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Any, Optional
from urllib.parse import parse_qs, unquote, urlparse

from .errors import InvalidInput, PersistenceFailure, StoreUnavailable, UploadRejected
from .service import AssetRegistrationService

logger = logging.getLogger(__name__)

_ERROR_STATUS = (
    (InvalidInput, 400),
    (UploadRejected, 413),
    (StoreUnavailable, 502),
    (PersistenceFailure, 503),
)

# /register carries a small JSON document, never a blob
MAX_JSON_BODY = 64 * 1024


class RegistryServer:
    """
    HTTP front end for an AssetRegistrationService.

    Usage:
        server = RegistryServer(service, port=8080)
        server.start()  # Blocking
    """

    def __init__(
        self,
        service: AssetRegistrationService,
        host: str = "127.0.0.1",
        port: int = 8080,
        max_upload_bytes: int = None,
    ):
        """
        Args:
            service: Pipeline requests are served from
            host: Interface to bind
            port: Port to bind (0 picks a free one)
            max_upload_bytes: Largest /assets body accepted. Defaults to
                the content store's own limit.
        """
        self.service = service
        self.host = host
        self.port = port
        if max_upload_bytes is None:
            max_upload_bytes = service.store.max_size_bytes
        self.max_upload_bytes = max_upload_bytes
        self._httpd: Optional[ThreadingHTTPServer] = None

    @property
    def url(self) -> str:
        return f"http://{self.host}:{self.port}"

    def _create_handler(server_instance):
        """Create request handler with access to server instance."""

        class RequestHandler(BaseHTTPRequestHandler):
            server_ref = server_instance

            def log_message(self, format, *args):
                logger.debug(format % args)

            def _send_json(self, data: Any, status: int = 200):
                body = json.dumps(data).encode()
                self.send_response(status)
                self.send_header("Content-Type", "application/json")
                self.send_header("Content-Length", str(len(body)))
                self.end_headers()
                self.wfile.write(body)

            def _send_error(self, message: str, status: int = 400):
                self._send_json({"error": message}, status)

            def _send_failure(self, error: Exception):
                for error_type, status in _ERROR_STATUS:
                    if isinstance(error, error_type):
                        self._send_error(str(error), status)
                        return
                logger.exception(f"Unhandled error on {self.command} {self.path}")
                self._send_error(str(error), 500)

            def _reject_body(self, message: str, status: int):
                # The unread body would be parsed as the next request
                self.close_connection = True
                self._send_error(message, status)

            def _read_body(self, limit: int) -> Optional[bytes]:
                """Request body, or None once an error has been sent."""
                raw = self.headers.get("Content-Length", "0")
                try:
                    length = int(raw)
                except ValueError:
                    length = -1
                if length < 0:
                    self._reject_body(f"Invalid Content-Length: {raw!r}", 400)
                    return None
                if length > limit:
                    self._reject_body(f"Body of {length} bytes exceeds limit of {limit} bytes", 413)
                    return None
                return self.rfile.read(length)

            def do_GET(self):
                parsed = urlparse(self.path)
                path = parsed.path
                service = self.server_ref.service
                registry = service.registry

                if path == "/health":
                    self._send_json({"status": "ok"})

                elif path == "/count":
                    self._send_json({"count": registry.count()})

                elif path == "/records":
                    query = parse_qs(parsed.query)
                    if "cid" in query:
                        records = registry.find_by_cid(query["cid"][0])
                    else:
                        records = registry.list()
                    self._send_json({"records": [r.to_dict() for r in records]})

                elif path.startswith("/records/"):
                    try:
                        handle = int(path[len("/records/"):])
                    except ValueError:
                        self._send_error("Invalid handle", 400)
                        return
                    record = registry.get(handle)
                    if record is None:
                        self._send_error("Handle not found", 404)
                        return
                    self._send_json(record.to_dict())

                elif path.startswith("/blobs/"):
                    cid = unquote(path[len("/blobs/"):])
                    try:
                        blob = service.store.get(cid)
                    except Exception as e:
                        self._send_failure(e)
                        return
                    if blob is None:
                        self._send_error("Blob not found", 404)
                        return
                    self.send_response(200)
                    self.send_header("Content-Type", "application/octet-stream")
                    self.send_header("Content-Length", str(len(blob)))
                    self.end_headers()
                    self.wfile.write(blob)

                elif path == "/actor":
                    actor = registry.actor
                    if actor is None:
                        self._send_error("No signing actor configured", 404)
                        return
                    self._send_json(actor.to_activitypub())

                else:
                    self._send_error("Not found", 404)

            def do_POST(self):
                service = self.server_ref.service

                if self.path == "/assets":
                    blob = self._read_body(self.server_ref.max_upload_bytes)
                    if blob is None:
                        return
                    try:
                        record = service.register_blob(
                            blob,
                            registrant=self.headers.get("X-Registrant"),
                        )
                    except Exception as e:
                        self._send_failure(e)
                        return
                    self._send_json(record.to_dict(), 201)

                elif self.path == "/register":
                    body = self._read_body(MAX_JSON_BODY)
                    if body is None:
                        return
                    try:
                        data = json.loads(body.decode())
                    except (json.JSONDecodeError, UnicodeDecodeError) as e:
                        self._send_error(f"Invalid JSON: {e}")
                        return
                    if not isinstance(data, dict):
                        self._send_error("Expected a JSON object")
                        return
                    try:
                        record = service.register_cid(data.get("cid"), data.get("registrant"))
                    except Exception as e:
                        self._send_failure(e)
                        return
                    self._send_json(record.to_dict(), 201)

                else:
                    self._send_error("Not found", 404)

        return RequestHandler

    def bind(self) -> ThreadingHTTPServer:
        """Bind the listening socket. Port 0 picks a free port."""
        if self._httpd is None:
            self._httpd = ThreadingHTTPServer((self.host, self.port), self._create_handler())
            self.port = self._httpd.server_address[1]
        return self._httpd

    def start(self):
        """Start the HTTP server (blocking)."""
        httpd = self.bind()
        logger.info(f"Registry server starting on {self.host}:{self.port}")
        print(f"Registry server running on {self.url}")
        try:
            httpd.serve_forever()
        except KeyboardInterrupt:
            print("\nShutting down...")
        finally:
            httpd.server_close()

    def start_background(self) -> threading.Thread:
        """Start the server in a background thread."""
        self.bind()
        thread = threading.Thread(target=self.start)
        thread.daemon = True
        thread.start()
        return thread

    def stop(self):
        """Stop a server started with start_background()."""
        if self._httpd is not None:
            self._httpd.shutdown()
            self._httpd = None
