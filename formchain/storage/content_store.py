# formchain/storage/content_store.py
"""
Formchain Storage: Content Store Client

Immutable, content-addressed blob storage. put(bytes) returns the
content identifier; get(cid) returns the bytes. Both are idempotent and
there is no update or delete operation.

Backends:
    IPFSContentStore:   IPFS HTTP API via ipfshttpclient
    MemoryContentStore: in-process dict keyed by computed CIDv1

Usage:
    store = IPFSContentStore("/ip4/127.0.0.1/tcp/5001")
    store.connect()
    cid = store.put(b'{"title": "Feedback"}')
    data = store.get(cid)
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Dict, Optional

from ..common import compute_cid, is_cid, short
from ..errors import ExternalUnavailableError, NotFoundError, FormchainError

try:
    import ipfshttpclient
    IPFS_AVAILABLE = True
except ImportError:
    ipfshttpclient = None
    IPFS_AVAILABLE = False


logger = logging.getLogger("formchain.storage")


# =============================================================================
# Exceptions
# =============================================================================

class ContentStoreError(FormchainError):
    """Base content store error."""
    pass


class ContentNotFoundError(ContentStoreError, NotFoundError):
    """No blob stored under this identifier."""
    def __init__(self, cid: str):
        self.cid = cid
        super().__init__(f"Content not found: {cid}")


class ContentUnavailableError(ContentStoreError, ExternalUnavailableError):
    """Store unreachable or request failed."""
    pass


class IPFSNotAvailableError(ContentStoreError):
    """ipfshttpclient not installed."""
    def __init__(self):
        super().__init__("ipfshttpclient not available. Install with: pip install ipfshttpclient")


# =============================================================================
# Interface
# =============================================================================

class ContentStore(ABC):
    """Immutable content-addressed blob store."""

    @abstractmethod
    def put(self, data: bytes) -> str:
        """Store bytes, return content identifier."""
        pass

    @abstractmethod
    def get(self, cid: str) -> bytes:
        """
        Fetch bytes by content identifier.

        Raises:
            ContentNotFoundError: Identifier unknown to the store
            ContentUnavailableError: Store unreachable
        """
        pass


# =============================================================================
# IPFS Backend
# =============================================================================

class IPFSContentStore(ContentStore):
    """IPFS HTTP API client wrapper."""

    def __init__(self, api_addr: str = "/ip4/127.0.0.1/tcp/5001", timeout: float = 60.0, pin: bool = True):
        self.api_addr = api_addr
        self.timeout = timeout
        self.pin = pin
        self.client = None

    @property
    def is_connected(self) -> bool:
        return self.client is not None

    def connect(self) -> None:
        """Connect to IPFS daemon."""
        if not IPFS_AVAILABLE:
            raise IPFSNotAvailableError()
        try:
            self.client = ipfshttpclient.connect(self.api_addr, timeout=self.timeout)
        except Exception as e:
            raise ContentUnavailableError(f"IPFS connection failed: {e}") from e
        logger.info("Connected to IPFS: %s", self.api_addr)

    def close(self) -> None:
        if self.client is not None:
            self.client.close()
            self.client = None

    def _require_client(self):
        if self.client is None:
            self.connect()
        return self.client

    def put(self, data: bytes) -> str:
        client = self._require_client()
        try:
            cid = client.add_bytes(data)
            if self.pin:
                client.pin.add(cid)
        except Exception as e:
            raise ContentUnavailableError(f"IPFS add failed: {e}") from e
        logger.info("Uploaded %d bytes -> %s", len(data), short(cid))
        return cid

    def get(self, cid: str) -> bytes:
        if not is_cid(cid):
            raise ContentNotFoundError(cid)
        client = self._require_client()
        try:
            return client.cat(cid)
        except ipfshttpclient.exceptions.ErrorResponse as e:
            raise ContentNotFoundError(cid) from e
        except Exception as e:
            raise ContentUnavailableError(f"IPFS get failed: {e}") from e


# =============================================================================
# Memory Backend (for testing without a daemon)
# =============================================================================

class MemoryContentStore(ContentStore):
    """
    In-memory content store.

    Identifiers are real CIDv1 (raw, sha2-256), so uploading identical
    bytes twice yields the same identifier.
    """

    def __init__(self):
        self._blobs: Dict[str, bytes] = {}
        self.put_count = 0
        self.fail_next: Optional[Exception] = None

    def put(self, data: bytes) -> str:
        self._maybe_fail()
        cid = compute_cid(data)
        self._blobs[cid] = bytes(data)
        self.put_count += 1
        return cid

    def get(self, cid: str) -> bytes:
        self._maybe_fail()
        if cid not in self._blobs:
            raise ContentNotFoundError(cid)
        return self._blobs[cid]

    def corrupt(self, cid: str, data: bytes) -> None:
        """Overwrite a stored blob (tamper simulation)."""
        self._blobs[cid] = data

    def _maybe_fail(self) -> None:
        if self.fail_next is not None:
            err, self.fail_next = self.fail_next, None
            raise err

    def __contains__(self, cid: str) -> bool:
        return cid in self._blobs

    def __len__(self) -> int:
        return len(self._blobs)
