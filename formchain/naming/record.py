# formchain/naming/record.py
"""
Formchain Naming: Mutable Records

A mutable name is derived from an Ed25519 public key only, so it exists
before any registry entry does:

    name = base36( CIDv1 | libp2p-key | identity-multihash( PublicKey{Ed25519, pk} ) )
         = "k51qzi5uqu5d..."

A MutableRecord binds {name, sequence, value, expires_at} under the
name's key. The signature covers the canonical encoding below; field
order and widths are fixed.

Canonical encoding (big-endian):
    RECORD_DOMAIN (20B)
    name_len (2B)  || name  (UTF-8)
    sequence (8B, unsigned)
    value_len (2B) || value (UTF-8, "/ipfs/<cid>")
    expires_at (8B, signed, unix seconds)

Updated: 2026-10-19
Version: 0.1.0
"""

from __future__ import annotations

import struct
from dataclasses import dataclass
from typing import Any, Dict, Tuple

from nacl.encoding import RawEncoder
from nacl.exceptions import CryptoError
from nacl.signing import SigningKey, VerifyKey

from ..common import (
    CID_VERSION_1,
    CODEC_LIBP2P_KEY,
    MULTIHASH_IDENTITY,
    base36_decode,
    base36_encode,
    b64d,
    b64e,
    decode_varint,
    encode_varint,
    from_ipfs_path,
    now_ts,
)
from ..errors import FormchainError, IntegrityError


# =============================================================================
# Constants
# =============================================================================

RECORD_DOMAIN = b"formchain-record-v1\x00"

PRIVATE_KEY_SIZE = 32  # Ed25519 seed
PUBLIC_KEY_SIZE = 32
SIGNATURE_SIZE = 64

# libp2p PublicKey protobuf: field 1 (KeyType) = Ed25519 (1), field 2 (Data) = 32 bytes
_PROTO_ED25519_PREFIX = b"\x08\x01\x12\x20"

UINT64_MAX = 2 ** 64 - 1
INT64_MIN = -(2 ** 63)
INT64_MAX = 2 ** 63 - 1
FIELD_MAX = 2 ** 16 - 1  # length-prefixed as uint16


# =============================================================================
# Exceptions
# =============================================================================

class RecordError(FormchainError):
    """Base mutable record error."""
    pass


class InvalidNameError(RecordError, ValueError):
    """String is not a mutable name."""
    def __init__(self, name: str, reason: str = "malformed"):
        self.name = name
        super().__init__(f"Invalid mutable name {name[:24]!r}: {reason}")


class SignatureInvalidError(RecordError, IntegrityError):
    """Record signature does not verify against its name."""
    def __init__(self, name: str, reason: str = "signature mismatch"):
        self.name = name
        super().__init__(f"Invalid record signature for {name[:16]}...: {reason}")


class SigningError(RecordError):
    """Signing failed (key does not match name, bad key material)."""
    pass


# =============================================================================
# Name Derivation
# =============================================================================

def name_from_public_key(public_key: bytes) -> str:
    """Derive the stable mutable name for an Ed25519 public key."""
    if len(public_key) != PUBLIC_KEY_SIZE:
        raise ValueError(f"public key must be {PUBLIC_KEY_SIZE} bytes")
    proto = _PROTO_ED25519_PREFIX + public_key
    multihash = encode_varint(MULTIHASH_IDENTITY) + encode_varint(len(proto)) + proto
    cid = encode_varint(CID_VERSION_1) + encode_varint(CODEC_LIBP2P_KEY) + multihash
    return base36_encode(cid)


def public_key_from_name(name: str) -> bytes:
    """
    Recover the Ed25519 public key embedded in a mutable name.

    Raises:
        InvalidNameError: Not a base36 libp2p-key CID over an Ed25519 key
    """
    if not isinstance(name, str) or not name.startswith("k"):
        raise InvalidNameError(str(name), "missing base36 prefix")
    try:
        raw = base36_decode(name)
        version, off = decode_varint(raw)
        codec, off = decode_varint(raw, off)
        mh_code, off = decode_varint(raw, off)
        mh_len, off = decode_varint(raw, off)
    except ValueError as e:
        raise InvalidNameError(name, str(e)) from e
    if version != CID_VERSION_1 or codec != CODEC_LIBP2P_KEY:
        raise InvalidNameError(name, "not a libp2p-key CID")
    if mh_code != MULTIHASH_IDENTITY:
        raise InvalidNameError(name, "unsupported multihash")
    proto = raw[off:]
    if len(proto) != mh_len or not proto.startswith(_PROTO_ED25519_PREFIX):
        raise InvalidNameError(name, "not an Ed25519 key")
    public_key = proto[len(_PROTO_ED25519_PREFIX):]
    if len(public_key) != PUBLIC_KEY_SIZE:
        raise InvalidNameError(name, "bad key length")
    return public_key


def is_mutable_name(value: str) -> bool:
    """True if value parses as a mutable name."""
    try:
        public_key_from_name(value)
        return True
    except InvalidNameError:
        return False


def generate_keypair() -> Tuple[str, bytes]:
    """Generate (name, private_key). private_key is the 32-byte Ed25519 seed."""
    sk = SigningKey.generate()
    return name_from_public_key(bytes(sk.verify_key)), bytes(sk)


def name_from_private_key(private_key: bytes) -> str:
    if len(private_key) != PRIVATE_KEY_SIZE:
        raise SigningError(f"private key must be {PRIVATE_KEY_SIZE} bytes, got {len(private_key)}")
    return name_from_public_key(bytes(SigningKey(private_key).verify_key))


# =============================================================================
# MutableRecord
# =============================================================================

@dataclass(frozen=True)
class MutableRecord:
    """
    Signed pointer record.

    Attributes:
        name: Mutable name (k51...)
        sequence: Monotonic revision number, 0 for the first record
        value: Pointed path ("/ipfs/<cid>")
        expires_at: Unix seconds after which the record is stale
        signature: 64-byte Ed25519 signature over signing_bytes()
    """
    name: str
    sequence: int
    value: str
    expires_at: int
    signature: bytes = b""

    @property
    def pointed_cid(self) -> str:
        return from_ipfs_path(self.value)

    @property
    def is_expired(self) -> bool:
        return now_ts() >= self.expires_at

    def signing_bytes(self) -> bytes:
        return encode_record_fields(self.name, self.sequence, self.value, self.expires_at)

    def verify(self) -> None:
        """
        Verify signature against the name's public key.

        Raises:
            SignatureInvalidError: Any field or the signature was altered
        """
        try:
            public_key = public_key_from_name(self.name)
        except InvalidNameError as e:
            raise SignatureInvalidError(self.name, "name does not encode a key") from e
        if len(self.signature) != SIGNATURE_SIZE:
            raise SignatureInvalidError(self.name, "bad signature length")
        try:
            VerifyKey(public_key).verify(self.signing_bytes(), self.signature, encoder=RawEncoder)
        except (CryptoError, ValueError, TypeError, struct.error) as e:
            raise SignatureInvalidError(self.name) from e

    def is_valid_signature(self) -> bool:
        try:
            self.verify()
            return True
        except SignatureInvalidError:
            return False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "sequence": self.sequence,
            "value": self.value,
            "expiresAt": self.expires_at,
            "signature": b64e(self.signature),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> MutableRecord:
        """Parse the public record shape. Does not verify."""
        try:
            return cls(
                name=str(data["name"]),
                sequence=int(data["sequence"]),
                value=str(data["value"]),
                expires_at=int(data["expiresAt"]),
                signature=b64d(data["signature"]),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise RecordError(f"Malformed record: {e}") from e


def encode_record_fields(name: str, sequence: int, value: str, expires_at: int) -> bytes:
    """Canonical encoding signed by the name's key."""
    if not 0 <= sequence <= UINT64_MAX:
        raise ValueError("sequence out of range")
    if not INT64_MIN <= expires_at <= INT64_MAX:
        raise ValueError("expires_at out of range")
    name_b = name.encode("utf-8")
    value_b = value.encode("utf-8")
    if len(name_b) > FIELD_MAX or len(value_b) > FIELD_MAX:
        raise ValueError("field too long")
    return (
        RECORD_DOMAIN
        + struct.pack(">H", len(name_b)) + name_b
        + struct.pack(">Q", sequence)
        + struct.pack(">H", len(value_b)) + value_b
        + struct.pack(">q", expires_at)
    )


def sign_record(private_key: bytes, sequence: int, value: str, expires_at: int) -> MutableRecord:
    """
    Build and sign a record for the name derived from private_key.

    Raises:
        SigningError: Bad key material or out-of-range fields
    """
    try:
        sk = SigningKey(private_key)
        name = name_from_public_key(bytes(sk.verify_key))
        payload = encode_record_fields(name, sequence, value, expires_at)
        signature = sk.sign(payload).signature
    except (CryptoError, ValueError, TypeError, struct.error) as e:
        raise SigningError(f"Failed to sign record: {e}") from e
    return MutableRecord(
        name=name,
        sequence=sequence,
        value=value,
        expires_at=expires_at,
        signature=bytes(signature),
    )
