# assetreg/cid.py
"""
Content identifier helpers.

compute_cid() produces the same CIDv1 an IPFS node returns for a single
raw block added with `--cid-version=1 --raw-leaves`:

    multibase "b" + base32lower(varint(1) + varint(0x55) + multihash)

where the multihash is sha2-256 (code 0x12, length 0x20).
"""

import base64
import hashlib
import re

CID_VERSION = 0x01
RAW_CODEC = 0x55
SHA2_256 = 0x12

_BASE58_ALPHABET = "123456789ABCDEFGHJKLMNPQRSTUVWXYZabcdefghijkmnopqrstuvwxyz"
_CIDV0_RE = re.compile(rf"^Qm[{_BASE58_ALPHABET}]{{44}}$")
_CIDV1_BASE32_RE = re.compile(r"^b[a-z2-7]{58,}$")


def compute_cid(blob: bytes) -> str:
    """
    Compute the CIDv1 (raw codec, sha2-256) of a blob.

    Args:
        blob: Content bytes

    Returns:
        Base32 multibase CID string, e.g. "bafkrei..."
    """
    digest = hashlib.sha256(blob).digest()
    multihash = bytes([SHA2_256, len(digest)]) + digest
    raw = bytes([CID_VERSION, RAW_CODEC]) + multihash
    encoded = base64.b32encode(raw).decode("ascii").lower().rstrip("=")
    return "b" + encoded


def is_valid_cid(value) -> bool:
    """Check CID syntax: CIDv0 (base58btc "Qm...") or CIDv1 base32 ("b...")."""
    if not isinstance(value, str):
        return False
    return bool(_CIDV0_RE.match(value) or _CIDV1_BASE32_RE.match(value))
