# formchain/wallet/signer.py
"""
Formchain Wallet: External Signer

The wallet is an external collaborator exposing two things: an address
and sign(message) -> signature. The Key Recovery Vault depends on the
signature being deterministic for a fixed message and key, which holds
for secp256k1 personal_sign (RFC 6979 nonces).

Signers:
    Signer:             abstract interface (async, may wait on a human)
    LocalAccountSigner: eth_account key held in-process
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Optional

from eth_account import Account
from eth_account.messages import encode_defunct

from ..errors import ExternalUnavailableError


# =============================================================================
# Exceptions
# =============================================================================

class SignerError(ExternalUnavailableError):
    """Signer unavailable or failed."""
    pass


class SignatureRejectedError(SignerError):
    """User rejected the signature request."""
    pass


# =============================================================================
# Interface
# =============================================================================

class Signer(ABC):
    """External signer."""

    @property
    @abstractmethod
    def address(self) -> str:
        """Account address (0x...)."""
        pass

    @abstractmethod
    async def sign(self, message: bytes) -> bytes:
        """
        Sign message with personal_sign semantics.

        Raises:
            SignatureRejectedError: User declined
            SignerError: Wallet unreachable
        """
        pass


# =============================================================================
# Local Account
# =============================================================================

class LocalAccountSigner(Signer):
    """
    In-process eth_account signer.

    Also exposes the account for registry transactions so the owner's
    own credential signs every write.
    """

    def __init__(self, private_key: Optional[str] = None, auto_approve: bool = True):
        """
        Args:
            private_key: Hex private key (new random account if None)
            auto_approve: False simulates a user rejecting every request
        """
        self._account = Account.from_key(private_key) if private_key else Account.create()
        self._auto_approve = auto_approve
        self.sign_count = 0

    @property
    def address(self) -> str:
        return self._account.address

    @property
    def account(self):
        return self._account

    async def sign(self, message: bytes) -> bytes:
        if not self._auto_approve:
            raise SignatureRejectedError("User rejected signature request")
        signed = self._account.sign_message(encode_defunct(primitive=message))
        self.sign_count += 1
        return bytes(signed.signature)
