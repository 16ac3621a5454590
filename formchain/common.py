# formchain/common.py
"""
Formchain Common Components

Shared helpers for hashing, multibase encodings, content identifiers,
canonical serialization and input validation.

Encodings:
  - Content identifiers: CIDv0 (base58btc "Qm...") or CIDv1 (base32 "b...")
  - Mutable names: CIDv1 libp2p-key, base36 ("k51...")
  - Canonical JSON: sorted keys, no whitespace, UTF-8
"""

from __future__ import annotations

import base64
import hashlib
import json
import re
import time
from typing import Any, Dict


# =============================================================================
# Constants
# =============================================================================

# Multicodec / multihash codes
CID_VERSION_1: int = 0x01
CODEC_RAW: int = 0x55
CODEC_LIBP2P_KEY: int = 0x72
MULTIHASH_IDENTITY: int = 0x00
MULTIHASH_SHA2_256: int = 0x12

BASE36_ALPHABET = "0123456789abcdefghijklmnopqrstuvwxyz"
BASE58_ALPHABET = "123456789ABCDEFGHJKLMNPQRSTUVWXYZabcdefghijkmnopqrstuvwxyz"

IPFS_PATH_PREFIX = "/ipfs/"

DOMAIN_MAX_LENGTH = 63

_DOMAIN_RE = re.compile(r"^[a-z0-9-]+$")
_ADDRESS_RE = re.compile(r"^0x[0-9a-fA-F]{40}$")
_CIDV0_RE = re.compile(r"^Qm[1-9A-HJ-NP-Za-km-z]{44}$")
_CIDV1_RE = re.compile(r"^b[a-z2-7]{50,}$")

ZERO_ADDRESS = "0x" + "0" * 40


# =============================================================================
# Hashing / Serialization
# =============================================================================

def _sha256(*chunks: bytes) -> bytes:
    """Compute SHA-256 hash of concatenated inputs."""
    h = hashlib.sha256()
    for c in chunks:
        h.update(c)
    return h.digest()


def canonical_json(obj: Dict[str, Any]) -> bytes:
    """Deterministic, minimal JSON."""
    return json.dumps(obj, separators=(",", ":"), sort_keys=True, ensure_ascii=False).encode("utf-8")


def b64e(b: bytes) -> str:
    return base64.b64encode(b).decode("ascii")


def b64d(s: str) -> bytes:
    return base64.b64decode(s.encode("ascii"), validate=True)


def now_ts() -> int:
    """Current unix time in whole seconds."""
    return int(time.time())


def iso_now() -> str:
    return time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime())


def short(value: str, n: int = 16) -> str:
    """Truncate identifiers for log lines."""
    return value if len(value) <= n else value[:n] + "..."


# =============================================================================
# Varint / Multibase
# =============================================================================

def encode_varint(n: int) -> bytes:
    """Unsigned LEB128 varint (multiformats)."""
    if n < 0:
        raise ValueError("varint must be non-negative")
    out = bytearray()
    while True:
        byte = n & 0x7F
        n >>= 7
        if n:
            out.append(byte | 0x80)
        else:
            out.append(byte)
            return bytes(out)


def decode_varint(data: bytes, offset: int = 0) -> tuple:
    """Decode varint at offset. Returns (value, new_offset)."""
    value = 0
    shift = 0
    while True:
        if offset >= len(data):
            raise ValueError("truncated varint")
        byte = data[offset]
        offset += 1
        value |= (byte & 0x7F) << shift
        if not byte & 0x80:
            return value, offset
        shift += 7
        if shift > 63:
            raise ValueError("varint too long")


def _encode_base_n(data: bytes, alphabet: str) -> str:
    base = len(alphabet)
    zeros = len(data) - len(data.lstrip(b"\x00"))
    num = int.from_bytes(data, "big")
    chars = []
    while num:
        num, rem = divmod(num, base)
        chars.append(alphabet[rem])
    return alphabet[0] * zeros + "".join(reversed(chars))


def _decode_base_n(text: str, alphabet: str) -> bytes:
    base = len(alphabet)
    num = 0
    for ch in text:
        idx = alphabet.find(ch)
        if idx < 0:
            raise ValueError(f"invalid character {ch!r}")
        num = num * base + idx
    zeros = len(text) - len(text.lstrip(alphabet[0]))
    body = num.to_bytes((num.bit_length() + 7) // 8, "big") if num else b""
    return b"\x00" * zeros + body


def base36_encode(data: bytes) -> str:
    """Multibase base36 (lowercase, 'k' prefix)."""
    return "k" + _encode_base_n(data, BASE36_ALPHABET)


def base36_decode(text: str) -> bytes:
    if not text.startswith("k"):
        raise ValueError("base36 multibase string must start with 'k'")
    return _decode_base_n(text[1:], BASE36_ALPHABET)


def base32_encode(data: bytes) -> str:
    """Multibase base32 (lowercase, unpadded, 'b' prefix)."""
    return "b" + base64.b32encode(data).decode("ascii").lower().rstrip("=")


def base32_decode(text: str) -> bytes:
    if not text.startswith("b"):
        raise ValueError("base32 multibase string must start with 'b'")
    body = text[1:].upper()
    body += "=" * (-len(body) % 8)
    return base64.b32decode(body)


# =============================================================================
# Content Identifiers
# =============================================================================

def compute_cid(data: bytes) -> str:
    """
    CIDv1 (raw codec, sha2-256) for a byte blob.

    Same bytes always give the same identifier ("bafkrei...").
    """
    digest = _sha256(data)
    multihash = bytes([MULTIHASH_SHA2_256, len(digest)]) + digest
    return base32_encode(bytes([CID_VERSION_1, CODEC_RAW]) + multihash)


def is_cid(value: str) -> bool:
    """Check CIDv0 / CIDv1 (base32) shape."""
    if not isinstance(value, str):
        return False
    if _CIDV0_RE.match(value):
        return True
    if _CIDV1_RE.match(value):
        try:
            raw = base32_decode(value)
        except ValueError:
            return False
        return len(raw) > 2 and raw[0] == CID_VERSION_1
    return False


def to_ipfs_path(cid: str) -> str:
    return IPFS_PATH_PREFIX + cid


def from_ipfs_path(value: str) -> str:
    if value.startswith(IPFS_PATH_PREFIX):
        return value[len(IPFS_PATH_PREFIX):]
    return value


# =============================================================================
# Validation
# =============================================================================

def is_valid_domain(domain: str) -> bool:
    """Custom domains: lowercase letters, digits and hyphens."""
    return (
        isinstance(domain, str)
        and 0 < len(domain) <= DOMAIN_MAX_LENGTH
        and bool(_DOMAIN_RE.match(domain))
    )


def is_address(value: str) -> bool:
    return isinstance(value, str) and bool(_ADDRESS_RE.match(value))


def same_address(a: str, b: str) -> bool:
    return a.lower() == b.lower()
