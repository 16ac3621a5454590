# formchain/vault/__init__.py
"""
Formchain Vault Layer

Wallet-signature-derived encryption of mutable name private keys for
multi-device recovery.
"""

from .key_vault import (
    KeyVault,
    KeyBackup,
    VaultError,
    DecryptionFailedError,
    vault_message,
    derive_vault_key,
    CURRENT_SCHEME,
    SCHEME_V1,
    SCHEME_V2,
)

__all__ = [
    "KeyVault",
    "KeyBackup",
    "VaultError",
    "DecryptionFailedError",
    "vault_message",
    "derive_vault_key",
    "CURRENT_SCHEME",
    "SCHEME_V1",
    "SCHEME_V2",
]
