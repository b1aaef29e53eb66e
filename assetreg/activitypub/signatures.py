# assetreg/activitypub/signatures.py
"""
Signatures for registration events.

Uses RsaSignature2017 Linked Data Signatures (RSA-SHA256 over the hash of
the signature options followed by the hash of the canonical document).
Anything with to_activitypub() and a `signature` attribute can be signed.
"""

import base64
import hashlib
import json
import time
from typing import Any, Dict

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import padding

from .actor import Actor

SIGNATURE_CONTEXT = "https://w3id.org/security/v1"
SIGNATURE_TYPE = "RsaSignature2017"


def _canonicalize(data: Dict[str, Any]) -> str:
    """
    Canonicalize JSON for signing.

    Sorted keys, no whitespace.
    """
    return json.dumps(data, sort_keys=True, separators=(",", ":"))


def _hash_sha256(data: str) -> bytes:
    return hashlib.sha256(data.encode()).digest()


def _signed_bytes(document: Dict[str, Any], creator: str, created: str) -> bytes:
    document = dict(document)
    document.pop("signature", None)
    options = {
        "@context": SIGNATURE_CONTEXT,
        "type": SIGNATURE_TYPE,
        "creator": creator,
        "created": created,
    }
    return _hash_sha256(_canonicalize(options)) + _hash_sha256(_canonicalize(document))


def sign_event(event, actor: Actor):
    """
    Sign an event with the actor's private key.

    Args:
        event: The event to sign (modified in place)
        actor: The actor whose key signs the event

    Returns:
        The event, with signature attached
    """
    private_key = actor.signing_key()
    created = time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime())
    to_sign = _signed_bytes(event.to_activitypub(), actor.key_id, created)

    signature_bytes = private_key.sign(
        to_sign,
        padding.PKCS1v15(),
        hashes.SHA256(),
    )

    event.signature = {
        "type": SIGNATURE_TYPE,
        "creator": actor.key_id,
        "created": created,
        "signatureValue": base64.b64encode(signature_bytes).decode("utf-8"),
    }
    return event


def verify_signature(event, public_key_pem: bytes) -> bool:
    """
    Verify an event's signature against a PEM public key.

    Returns False for unsigned events, tampered events and malformed
    signatures.
    """
    if not event.signature:
        return False

    try:
        public_key = serialization.load_pem_public_key(public_key_pem)
        signed_data = _signed_bytes(
            event.to_activitypub(),
            event.signature["creator"],
            event.signature["created"],
        )
        signature_bytes = base64.b64decode(event.signature["signatureValue"])
        public_key.verify(
            signature_bytes,
            signed_data,
            padding.PKCS1v15(),
            hashes.SHA256(),
        )
        return True

    except (InvalidSignature, KeyError, ValueError, TypeError):
        return False


def verify_registrant(event, actor: Actor) -> bool:
    """Verify that an event was signed by the actor it names as registrant."""
    if not event.signature:
        return False

    if event.registrant != actor.id:
        return False

    if event.signature.get("creator") != actor.key_id:
        return False

    return verify_signature(event, actor.public_key)
