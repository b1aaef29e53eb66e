# assetreg/registry/registry.py
"""
Asset registry.

An append-only ledger mapping sequential handles to content identifiers:
- Handles are issued 0, 1, 2, ... with no gaps and no reuse
- Records are never updated or removed
- Duplicate CIDs are allowed and receive distinct handles
- Every registration is durable before it is visible, and is announced
  on the event bus after it is committed
"""

import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Optional

from ..activitypub import Actor, sign_event
from ..cid import is_valid_cid
from ..errors import InvalidInput, PersistenceFailure, RegistryError
from ..events import EventBus, RegistrationEvent
from .log import MemoryLog, RegistrationLog

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Registration:
    """
    A registered content identifier.

    Attributes:
        handle: Sequential handle issued by the registry
        cid: Content identifier (opaque to the registry)
        registrant: Actor ID of whoever registered it, if known
        registered_at: Timestamp of registration
    """
    handle: int
    cid: str
    registrant: Optional[str] = None
    registered_at: float = field(default_factory=time.time)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "handle": self.handle,
            "cid": self.cid,
            "registrant": self.registrant,
            "registered_at": self.registered_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Registration":
        return cls(
            handle=data["handle"],
            cid=data["cid"],
            registrant=data.get("registrant"),
            registered_at=data.get("registered_at", 0.0),
        )


class AssetRegistry:
    """
    Sequential-handle registry for content identifiers.

    Usage:
        registry = AssetRegistry(FileLog("/var/lib/assetreg/registrations.jsonl"))
        handle = registry.register("bafybeigdyrzt5sfp7udm7hu76uh7y26nf3efuylqabf3oclgtqy55fbzdi")
        registry.get_record(handle)  # -> the CID
    """

    def __init__(
        self,
        log: RegistrationLog = None,
        events: EventBus = None,
        actor: Actor = None,
        strict: bool = False,
        read_only: bool = False,
    ):
        """
        Initialize the registry, replaying any committed entries.

        Args:
            log: Durable log (defaults to an in-memory log)
            events: Bus registration events are published on
            actor: If given, events are signed with this actor's key and
                registrations default to this actor as registrant
            strict: Reject strings that are not CIDv0/CIDv1 syntax
            read_only: Never write to the log; register() is refused.
                Writers repair a torn log tail before replay, readers do not.

        Raises:
            PersistenceFailure: if the log is unreadable or its handles
                are not exactly 0..n-1 in order
            ValueError: if the actor's private key cannot be loaded
        """
        if actor is not None:
            try:
                actor.signing_key()
            except (ValueError, TypeError) as e:
                raise ValueError(f"Actor {actor.username} has an unusable private key: {e}") from e

        self.log = log if log is not None else MemoryLog()
        self.events = events if events is not None else EventBus()
        self.actor = actor
        self.strict = strict
        self.read_only = read_only
        self._records: Dict[int, Registration] = {}
        self._next_handle = 0
        self._lock = threading.Lock()
        if not read_only:
            self.log.recover()
        self._replay()

    def _replay(self):
        for entry in self.log.replay():
            try:
                record = Registration.from_dict(entry)
            except (KeyError, TypeError) as e:
                raise PersistenceFailure(f"Malformed log entry {entry!r}: {e}") from e
            if record.handle != self._next_handle:
                raise PersistenceFailure(
                    f"Log out of sequence: expected handle {self._next_handle}, got {record.handle}"
                )
            self._records[record.handle] = record
            self._next_handle += 1

        if self._next_handle:
            logger.info(f"Replayed {self._next_handle} registrations")

    def _validate(self, cid: str):
        if not isinstance(cid, str) or not cid:
            raise InvalidInput(f"CID must be a non-empty string, got {cid!r}")
        if self.strict and not is_valid_cid(cid):
            raise InvalidInput(f"Malformed CID: {cid!r}")

    def register(self, cid: str, registrant: str = None) -> int:
        """
        Register a CID under a freshly issued handle.

        Args:
            cid: Content identifier
            registrant: Actor ID to attribute the registration to

        Returns:
            The issued handle

        Raises:
            InvalidInput: if the CID is empty, not a string, or malformed
                in strict mode
            PersistenceFailure: if the log could not commit; no handle is
                consumed and no record becomes visible
        """
        return self.register_record(cid, registrant).handle

    def register_record(self, cid: str, registrant: str = None) -> Registration:
        """Same as register(), returning the full Registration."""
        if self.read_only:
            raise RegistryError("Registry is read-only")
        self._validate(cid)
        if registrant is None and self.actor is not None:
            registrant = self.actor.id

        with self._lock:
            record = Registration(
                handle=self._next_handle,
                cid=cid,
                registrant=registrant,
            )
            self.log.append(record.to_dict())
            # Record first, then counter: lock-free readers never see a
            # handle without its record.
            self._records[record.handle] = record
            self._next_handle += 1

        logger.debug(f"Registered {cid} as handle {record.handle}")
        self._publish(record)
        return record

    def _publish(self, record: Registration):
        event = RegistrationEvent(
            handle=record.handle,
            cid=record.cid,
            registrant=record.registrant,
        )
        if self.actor is not None:
            event.domain = self.actor.domain
            try:
                sign_event(event, self.actor)
            except Exception:
                # Already committed: the caller still gets its handle.
                logger.exception(f"Could not sign event for handle {record.handle}, publishing unsigned")
                event.signature = None
        self.events.publish(event)

    def get_record(self, handle: int) -> Optional[str]:
        """CID registered under a handle, or None if the handle is unassigned."""
        record = self.get(handle)
        return record.cid if record else None

    def get(self, handle: int) -> Optional[Registration]:
        """Full registration for a handle, or None."""
        if not isinstance(handle, int) or isinstance(handle, bool) or handle < 0 or handle >= self._next_handle:
            return None
        return self._records.get(handle)

    def count(self) -> int:
        """Number of registrations ever made (the next handle to issue)."""
        return self._next_handle

    def list(self) -> List[Registration]:
        """All registrations in handle order."""
        limit = self._next_handle
        return [self._records[h] for h in range(limit)]

    def find_by_cid(self, cid: str) -> List[Registration]:
        """All registrations of a CID, in handle order."""
        return [r for r in self.list() if r.cid == cid]

    def __contains__(self, handle: int) -> bool:
        return self.get(handle) is not None

    def __len__(self) -> int:
        return self._next_handle

    def __iter__(self) -> Iterator[Registration]:
        return iter(self.list())
