# assetreg/events.py
"""
Registration notifications.

Every successful registration publishes a RegistrationEvent after the record
is committed. Delivery is synchronous and at-least-once: consumers should
deduplicate by handle (see DeduplicatingIndexer).
"""

import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from .activitypub.actor import DOMAIN
from .activitypub.signatures import verify_signature

logger = logging.getLogger(__name__)

Subscriber = Callable[["RegistrationEvent"], None]


def _now() -> str:
    return time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime())


@dataclass
class RegistrationEvent:
    """
    Notification that a CID was registered under a handle.

    Attributes:
        handle: The handle issued by the registry
        cid: The registered content identifier
        registrant: Actor ID of whoever registered it, if known
        published: ISO timestamp
        signature: Linked Data signature (added after signing)
        domain: Domain used to build activity IDs
    """
    handle: int
    cid: str
    registrant: Optional[str] = None
    published: str = field(default_factory=_now)
    signature: Optional[Dict[str, Any]] = None
    domain: str = DOMAIN

    def to_activitypub(self) -> Dict[str, Any]:
        """Return the event as an ActivityStreams Create activity."""
        object_data = {
            "type": "Document",
            "id": f"ipfs://{self.cid}",
            "cid": self.cid,
            "handle": self.handle,
        }
        if self.registrant:
            object_data["attributedTo"] = self.registrant

        activity = {
            "@context": "https://www.w3.org/ns/activitystreams",
            "type": "Create",
            "id": f"https://{self.domain}/registrations/{self.handle}",
            "actor": self.registrant,
            "object": object_data,
            "published": self.published,
        }
        if self.signature:
            activity["signature"] = self.signature
        return activity

    def to_dict(self) -> Dict[str, Any]:
        return {
            "handle": self.handle,
            "cid": self.cid,
            "registrant": self.registrant,
            "published": self.published,
            "signature": self.signature,
            "domain": self.domain,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RegistrationEvent":
        return cls(
            handle=data["handle"],
            cid=data["cid"],
            registrant=data.get("registrant"),
            published=data.get("published", ""),
            signature=data.get("signature"),
            domain=data.get("domain", DOMAIN),
        )


class EventBus:
    """
    Synchronous publish/subscribe for registration events.

    A subscriber that raises is logged and skipped; the remaining
    subscribers still receive the event.
    """

    def __init__(self):
        self._subscribers: List[Subscriber] = []
        self._lock = threading.Lock()

    def subscribe(self, subscriber: Subscriber) -> Callable[[], None]:
        """
        Add a subscriber.

        Returns:
            Function that removes the subscriber again
        """
        with self._lock:
            self._subscribers.append(subscriber)

        def unsubscribe():
            with self._lock:
                if subscriber in self._subscribers:
                    self._subscribers.remove(subscriber)

        return unsubscribe

    def publish(self, event: RegistrationEvent) -> int:
        """
        Deliver an event to every subscriber.

        Returns:
            Number of subscribers that accepted the event without raising
        """
        with self._lock:
            subscribers = list(self._subscribers)

        delivered = 0
        for subscriber in subscribers:
            try:
                subscriber(event)
                delivered += 1
            except Exception:
                logger.exception(f"Subscriber {subscriber!r} failed on handle {event.handle}")
        return delivered

    def __len__(self) -> int:
        with self._lock:
            return len(self._subscribers)


class DeduplicatingIndexer:
    """
    Reference event consumer.

    Keeps one event per handle; redeliveries are counted and ignored. When
    a public key is given, only events carrying a valid signature from that
    key are indexed.
    """

    def __init__(self, public_key_pem: bytes = None):
        self.public_key_pem = public_key_pem
        self._events: Dict[int, RegistrationEvent] = {}
        self._lock = threading.Lock()
        self.duplicates = 0
        self.rejected = 0

    def __call__(self, event: RegistrationEvent) -> None:
        if self.public_key_pem is not None and not verify_signature(event, self.public_key_pem):
            logger.warning(f"Rejecting unverified event for handle {event.handle}")
            with self._lock:
                self.rejected += 1
            return

        with self._lock:
            if event.handle in self._events:
                self.duplicates += 1
                logger.debug(f"Duplicate event for handle {event.handle}")
                return
            self._events[event.handle] = event

    def get(self, handle: int) -> Optional[str]:
        """CID indexed for a handle, or None."""
        with self._lock:
            event = self._events.get(handle)
        return event.cid if event else None

    def handles(self) -> List[int]:
        with self._lock:
            return sorted(self._events)

    def __len__(self) -> int:
        with self._lock:
            return len(self._events)
