# assetreg/activitypub/actor.py
"""
Registrant identities.

A registrant is an RSA key under a username. Its public half is published
as an ActivityPub Person so indexers can check who registered a CID; the
private half signs registration events and never leaves the actor store.
"""

import os
import re
from dataclasses import dataclass
from functools import cached_property
from pathlib import Path
from typing import Any, Dict, List, Optional

from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa

DOMAIN = "assetreg.local"

_USERNAME = re.compile(r"^[A-Za-z0-9_][A-Za-z0-9_.-]{0,63}$")


@dataclass(frozen=True)
class Actor:
    """
    A registrant that can sign registration events.

    Attributes:
        username: Name the actor ID is built from
        private_key: PEM-encoded PKCS8 RSA private key
        domain: Host the actor ID lives under
    """
    username: str
    private_key: bytes
    domain: str = DOMAIN

    @property
    def id(self) -> str:
        return f"https://{self.domain}/users/{self.username}"

    @property
    def key_id(self) -> str:
        return f"{self.id}#main-key"

    def signing_key(self) -> rsa.RSAPrivateKey:
        """
        Load the private key.

        Raises:
            ValueError: if the PEM is unreadable or not an RSA key
        """
        key = serialization.load_pem_private_key(self.private_key, password=None)
        if not isinstance(key, rsa.RSAPrivateKey):
            raise ValueError(f"{type(key).__name__} is not an RSA private key")
        return key

    @cached_property
    def public_key(self) -> bytes:
        """PEM-encoded public key derived from the private key."""
        return self.signing_key().public_key().public_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PublicFormat.SubjectPublicKeyInfo,
        )

    def to_activitypub(self) -> Dict[str, Any]:
        """Public JSON-LD document. Carries no private material."""
        return {
            "@context": [
                "https://www.w3.org/ns/activitystreams",
                "https://w3id.org/security/v1",
            ],
            "type": "Person",
            "id": self.id,
            "preferredUsername": self.username,
            "publicKey": {
                "id": self.key_id,
                "owner": self.id,
                "publicKeyPem": self.public_key.decode("utf-8"),
            },
        }

    @classmethod
    def generate(cls, username: str, domain: str = DOMAIN) -> "Actor":
        """New actor with a fresh 2048-bit key."""
        key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
        pem = key.private_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PrivateFormat.PKCS8,
            encryption_algorithm=serialization.NoEncryption(),
        )
        return cls(username=username, private_key=pem, domain=domain)


class ActorStore:
    """
    Actors kept as one private key file each.

    Structure:
        store_dir/
            <username>.pem    # PKCS8 private key, mode 0600
    """

    def __init__(self, store_dir: Path | str, domain: str = DOMAIN):
        self.store_dir = Path(store_dir)
        self.store_dir.mkdir(parents=True, exist_ok=True)
        self.domain = domain

    def _key_path(self, username: str) -> Path:
        if not isinstance(username, str) or not _USERNAME.match(username):
            raise ValueError(f"Invalid username: {username!r}")
        return self.store_dir / f"{username}.pem"

    def create(self, username: str) -> Actor:
        """
        Generate and store a new actor.

        Raises:
            ValueError: if the username is invalid or already taken
        """
        path = self._key_path(username)
        actor = Actor.generate(username, domain=self.domain)
        try:
            fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o600)
        except FileExistsError:
            raise ValueError(f"Actor {username} already exists") from None
        with os.fdopen(fd, "wb") as f:
            f.write(actor.private_key)
        return actor

    def get(self, username: str) -> Optional[Actor]:
        path = self._key_path(username)
        if not path.exists():
            return None
        return Actor(username=username, private_key=path.read_bytes(), domain=self.domain)

    def list(self) -> List[Actor]:
        """All stored actors, by username."""
        return [self.get(name) for name in self._usernames()]

    def _usernames(self) -> List[str]:
        return sorted(p.stem for p in self.store_dir.glob("*.pem") if _USERNAME.match(p.stem))

    def __contains__(self, username: str) -> bool:
        if not isinstance(username, str) or not _USERNAME.match(username):
            return False
        return self._key_path(username).exists()

    def __len__(self) -> int:
        return len(self._usernames())
