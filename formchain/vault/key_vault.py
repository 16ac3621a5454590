# formchain/vault/key_vault.py
"""
Formchain Vault: Key Recovery Vault

Wallet-derived encrypted backup of a mutable name's private key, so any
device holding the owner's wallet can recover editing rights.

Flow:
    message   = fixed text(scheme, name, wallet)       deterministic
    signature = wallet.sign(message)                   deterministic (RFC 6979)
    key       = KDF(signature)                         32 bytes
    blob      = AES-256-GCM(key, private_key)          uploaded to content store
    locator   = CID of blob                            recorded on the registry

Schemes:
    v1: wallet-only message, key = SHA-256(signature), no AAD
        (blobs written before per-name wrapping)
    v2: message embeds name + purpose, key = HKDF-SHA256(signature, info=name),
        AAD binds {scheme, name, owner}

rotate() re-wraps the same private key under the current scheme; it does
not replace the keypair.

Only ciphertext reaches the content store and only the message reaches
the signer. Neither the private key nor the signature is sent anywhere.

Usage:
    vault = KeyVault(store)
    locator = await vault.backup(private_key, signer)
    private_key = await vault.restore(locator, signer)
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
from collections import OrderedDict
from dataclasses import dataclass
from typing import Optional, Tuple

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.hkdf import HKDF

from ..common import _sha256, b64d, b64e, canonical_json, iso_now, same_address, short
from ..errors import FormchainError, IntegrityError
from ..naming.record import PRIVATE_KEY_SIZE, SigningError, name_from_private_key
from ..storage import ContentStore
from ..wallet import Signer


logger = logging.getLogger("formchain.vault")


# =============================================================================
# Constants
# =============================================================================

BLOB_VERSION = "1.0"
NONCE_SIZE = 12
KEY_SIZE = 32

SCHEME_V1 = "v1"
SCHEME_V2 = "v2"
CURRENT_SCHEME = SCHEME_V2

VAULT_PURPOSE = "formchain-key-vault"

_V1_MESSAGE = (
    "Sign this message to encrypt/decrypt your form editing keys.\n\n"
    "Wallet: {wallet}\n\n"
    "This signature is used locally and never leaves your device."
)

_V2_MESSAGE = (
    "Sign this message to encrypt/decrypt your form editing keys.\n\n"
    "Form: {name}\n"
    "Wallet: {wallet}\n"
    "Purpose: {purpose}\n\n"
    "This signature is used locally and never leaves your device."
)

_V2_SALT = b"formchain-vault-v2"


# =============================================================================
# Exceptions
# =============================================================================

class VaultError(FormchainError):
    """Base vault error."""
    pass


class DecryptionFailedError(VaultError, IntegrityError):
    """
    Backup could not be opened: wrong wallet, tampered ciphertext or a
    malformed blob. Distinct from failing to fetch the blob.
    """
    def __init__(self, locator: str, reason: str):
        self.locator = locator
        self.reason = reason
        super().__init__(f"Decryption failed for {short(locator, 24)}: {reason}")


# =============================================================================
# Backup Blob
# =============================================================================

@dataclass
class KeyBackup:
    """Encrypted key backup as stored on the content store."""
    name: str
    owner: str
    scheme: str
    nonce: bytes
    ciphertext: bytes  # includes GCM tag
    created_at: str
    version: str = BLOB_VERSION

    def to_bytes(self) -> bytes:
        return json.dumps({
            "version": self.version,
            "scheme": self.scheme,
            "name": self.name,
            "owner": self.owner,
            "nonce": b64e(self.nonce),
            "ciphertext": b64e(self.ciphertext),
            "createdAt": self.created_at,
        }, indent=2).encode("utf-8")

    @classmethod
    def from_bytes(cls, data: bytes) -> KeyBackup:
        obj = json.loads(data.decode("utf-8"))
        if "encryptedKey" in obj:
            # early blobs: single field, IV prepended
            packed = b64d(obj["encryptedKey"])
            nonce, ciphertext = packed[:NONCE_SIZE], packed[NONCE_SIZE:]
        else:
            nonce, ciphertext = b64d(obj["nonce"]), b64d(obj["ciphertext"])
        return cls(
            name=str(obj["name"]),
            owner=str(obj["owner"]),
            scheme=str(obj.get("scheme", SCHEME_V1)),
            nonce=nonce,
            ciphertext=ciphertext,
            created_at=str(obj.get("createdAt", "")),
            version=str(obj.get("version", BLOB_VERSION)),
        )


# =============================================================================
# Scheme Helpers
# =============================================================================

def vault_message(scheme: str, name: str, wallet: str) -> bytes:
    """Deterministic message the wallet signs for a given identity."""
    if scheme == SCHEME_V1:
        return _V1_MESSAGE.format(wallet=wallet).encode("utf-8")
    if scheme == SCHEME_V2:
        return _V2_MESSAGE.format(name=name, wallet=wallet, purpose=VAULT_PURPOSE).encode("utf-8")
    raise ValueError(f"Unknown vault scheme: {scheme}")


def derive_vault_key(scheme: str, signature: bytes, name: str) -> bytes:
    if scheme == SCHEME_V1:
        return _sha256(signature)
    if scheme == SCHEME_V2:
        hkdf = HKDF(algorithm=hashes.SHA256(), length=KEY_SIZE, salt=_V2_SALT, info=name.encode("utf-8"))
        return hkdf.derive(signature)
    raise ValueError(f"Unknown vault scheme: {scheme}")


def _aad(scheme: str, name: str, owner: str) -> Optional[bytes]:
    if scheme == SCHEME_V1:
        return None
    return canonical_json({"scheme": scheme, "name": name, "owner": owner.lower()})


def _encode_plaintext(scheme: str, private_key: bytes) -> bytes:
    # v1 blobs carried the key as base64 text
    if scheme == SCHEME_V1:
        return b64e(private_key).encode("ascii")
    return private_key


def _decode_plaintext(scheme: str, plaintext: bytes) -> bytes:
    if scheme == SCHEME_V1:
        return b64d(plaintext.decode("ascii"))
    return plaintext


def _parse_backup(locator: str, data: bytes) -> KeyBackup:
    try:
        return KeyBackup.from_bytes(data)
    except (ValueError, KeyError, TypeError, AttributeError) as e:
        raise DecryptionFailedError(locator, f"malformed backup: {e}") from e


# =============================================================================
# KeyVault
# =============================================================================

class KeyVault:
    """Wallet-derived encrypted key backup and recovery."""

    def __init__(self, store: ContentStore, cache_keys: bool = True, max_cached_keys: int = 32):
        """
        Args:
            store: Content store for ciphertext blobs
            cache_keys: Remember derived keys per (wallet, scheme, name)
                        so one session signs each message once
            max_cached_keys: Least recently used keys beyond this are dropped
        """
        if max_cached_keys < 1:
            raise ValueError("max_cached_keys must be positive")
        self._store = store
        self._cache_keys = cache_keys
        self._max_cached_keys = max_cached_keys
        self._key_cache: "OrderedDict[Tuple[str, str, str], bytes]" = OrderedDict()

    async def _vault_key(self, signer: Signer, scheme: str, name: str) -> bytes:
        cache_key = (signer.address.lower(), scheme, name if scheme != SCHEME_V1 else "")
        if self._cache_keys and cache_key in self._key_cache:
            self._key_cache.move_to_end(cache_key)
            return self._key_cache[cache_key]
        signature = await signer.sign(vault_message(scheme, name, signer.address))
        key = derive_vault_key(scheme, signature, name)
        if self._cache_keys:
            self._key_cache[cache_key] = key
            while len(self._key_cache) > self._max_cached_keys:
                self._key_cache.popitem(last=False)
        return key

    def clear_cache(self) -> None:
        self._key_cache.clear()

    @property
    def cached_key_count(self) -> int:
        return len(self._key_cache)

    # =========================================================================
    # Backup / Restore
    # =========================================================================

    async def backup(self, private_key: bytes, signer: Signer, scheme: str = CURRENT_SCHEME) -> str:
        """
        Encrypt private_key under the signer's wallet and upload it.

        Returns:
            Content identifier of the backup blob (the key locator)
        """
        name = name_from_private_key(private_key)
        owner = signer.address
        key = await self._vault_key(signer, scheme, name)

        nonce = os.urandom(NONCE_SIZE)
        ciphertext = AESGCM(key).encrypt(nonce, _encode_plaintext(scheme, private_key), _aad(scheme, name, owner))

        blob = KeyBackup(
            name=name,
            owner=owner,
            scheme=scheme,
            nonce=nonce,
            ciphertext=ciphertext,
            created_at=iso_now(),
        )
        locator = await asyncio.to_thread(self._store.put, blob.to_bytes())
        logger.info("Backed up key for %s (%s) -> %s", short(name), scheme, short(locator, 24))
        return locator

    async def restore(self, locator: str, signer: Signer, expected_name: Optional[str] = None) -> bytes:
        """
        Fetch and decrypt a key backup.

        Args:
            locator: Backup blob CID
            signer: Wallet of the owner who made the backup
            expected_name: Reject backups for any other name

        Returns:
            32-byte private key

        Raises:
            ContentNotFoundError / ContentUnavailableError: Blob could not be fetched
            DecryptionFailedError: Wrong wallet, tampered or malformed blob
        """
        data = await asyncio.to_thread(self._store.get, locator)
        backup = _parse_backup(locator, data)

        if not same_address(backup.owner, signer.address):
            raise DecryptionFailedError(locator, "backup belongs to a different wallet")
        if expected_name is not None and backup.name != expected_name:
            raise DecryptionFailedError(locator, "backup is for a different name")
        if len(backup.nonce) != NONCE_SIZE or not backup.ciphertext:
            raise DecryptionFailedError(locator, "ciphertext truncated")

        try:
            key = await self._vault_key(signer, backup.scheme, backup.name)
        except ValueError as e:
            raise DecryptionFailedError(locator, str(e)) from e

        try:
            plaintext = AESGCM(key).decrypt(
                backup.nonce, backup.ciphertext, _aad(backup.scheme, backup.name, backup.owner)
            )
            private_key = _decode_plaintext(backup.scheme, plaintext)
        except InvalidTag as e:
            logger.error("Authentication tag mismatch for backup %s", short(locator, 24))
            raise DecryptionFailedError(locator, "authentication tag mismatch") from e
        except ValueError as e:
            raise DecryptionFailedError(locator, f"bad plaintext: {e}") from e

        if len(private_key) != PRIVATE_KEY_SIZE:
            raise DecryptionFailedError(locator, "recovered key has wrong length")
        try:
            recovered_name = name_from_private_key(private_key)
        except SigningError as e:
            raise DecryptionFailedError(locator, str(e)) from e
        if recovered_name != backup.name:
            raise DecryptionFailedError(locator, "recovered key does not match name")

        logger.info("Restored key for %s from %s", short(backup.name), short(locator, 24))
        return private_key

    def read_backup(self, locator: str) -> KeyBackup:
        """Fetch and parse a backup blob without decrypting it."""
        return _parse_backup(locator, self._store.get(locator))

    # =========================================================================
    # Rotation
    # =========================================================================

    async def rotate(self, private_key: bytes, signer: Signer, scheme: str = CURRENT_SCHEME) -> str:
        """
        Re-wrap the same private key under a freshly derived key and upload it.

        The old blob is left in place, only unreferenced once the caller
        records the new locator.
        """
        locator = await self.backup(private_key, signer, scheme=scheme)
        logger.info("Rotated key wrapper for %s", short(name_from_private_key(private_key)))
        return locator

    def needs_rotation(self, locator: str) -> bool:
        """True if the backup uses a scheme older than the current one."""
        return self.read_backup(locator).scheme != CURRENT_SCHEME
