# formchain/wallet/__init__.py
"""
Formchain Wallet Layer

External signer interface used by the Key Recovery Vault.
"""

from .signer import (
    Signer,
    LocalAccountSigner,
    SignerError,
    SignatureRejectedError,
)

__all__ = [
    "Signer",
    "LocalAccountSigner",
    "SignerError",
    "SignatureRejectedError",
]
