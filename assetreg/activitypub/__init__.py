# assetreg/activitypub/__init__.py
"""
Registrant identity and event signing.

Core concepts:
- Actor: A registrant identity with an RSA key pair
- Signature: Proof that a registration event came from an actor
"""

from .actor import Actor, ActorStore, DOMAIN
from .signatures import sign_event, verify_signature, verify_registrant

__all__ = [
    "Actor",
    "ActorStore",
    "DOMAIN",
    "sign_event",
    "verify_signature",
    "verify_registrant",
]
