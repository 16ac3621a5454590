# formchain/naming/network.py
"""
Formchain Naming: Network Layer

Broadcast/storage for MutableRecords. The network only ever sees signed
records; private keys never leave the publisher.

Backends:
    HTTPNameNetwork:   JSON name service over HTTP (requests)
    MemoryNameNetwork: in-process, highest-sequence-wins

The network's own checks are not trusted by readers: MutablePointer
re-verifies everything it receives.

HTTP protocol:
    POST {base}/name/{name}   body: record JSON     201 / 409 stale
    GET  {base}/name/{name}   -> record JSON        200 / 404
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Dict, Optional

import requests

from ..common import short
from ..errors import ConflictError, ExternalUnavailableError, NotFoundError
from .record import MutableRecord, RecordError, SignatureInvalidError


logger = logging.getLogger("formchain.naming")


# =============================================================================
# Exceptions
# =============================================================================

class NameNotFoundError(RecordError, NotFoundError):
    """Name has never published a record."""
    def __init__(self, name: str):
        self.name = name
        super().__init__(f"No record published for {short(name)}")


class StaleSequenceError(RecordError, ConflictError):
    """A record with an equal or higher sequence is already known."""
    def __init__(self, name: str, sequence: int, known_sequence: int):
        self.name = name
        self.sequence = sequence
        self.known_sequence = known_sequence
        super().__init__(
            f"Stale sequence for {short(name)}: {sequence} <= known {known_sequence}"
        )


class NameServiceUnavailableError(RecordError, ExternalUnavailableError):
    """Name network unreachable or returned an unexpected response."""
    pass


# =============================================================================
# Interface
# =============================================================================

class NameNetwork(ABC):
    """Mutable pointer network."""

    @abstractmethod
    def publish(self, record: MutableRecord) -> None:
        """
        Submit a signed record.

        Raises:
            StaleSequenceError: Network already holds sequence >= record.sequence
        """
        pass

    @abstractmethod
    def resolve(self, name: str) -> MutableRecord:
        """
        Fetch the highest-sequence record advertised for name.

        Raises:
            NameNotFoundError: Nothing published for name
        """
        pass


# =============================================================================
# HTTP Backend
# =============================================================================

class HTTPNameNetwork(NameNetwork):
    """JSON name service client."""

    def __init__(self, base_url: str, timeout: float = 30.0, session: Optional[requests.Session] = None):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._session = session or requests.Session()

    def _url(self, name: str) -> str:
        return f"{self.base_url}/name/{name}"

    def publish(self, record: MutableRecord) -> None:
        url = self._url(record.name)
        try:
            res = self._session.post(url, json=record.to_dict(), timeout=self.timeout)
        except requests.RequestException as e:
            raise NameServiceUnavailableError(f"Publish failed: {e}") from e

        if res.status_code == 409:
            known = _known_sequence(res)
            raise StaleSequenceError(record.name, record.sequence, known)
        if not res.ok:
            raise NameServiceUnavailableError(f"Publish failed: {res.status_code} {res.text[:200]}")
        logger.info("Published %s seq=%d -> %s", short(record.name), record.sequence, short(record.value, 24))

    def resolve(self, name: str) -> MutableRecord:
        try:
            res = self._session.get(self._url(name), timeout=self.timeout)
        except requests.RequestException as e:
            raise NameServiceUnavailableError(f"Resolve failed: {e}") from e

        if res.status_code == 404:
            raise NameNotFoundError(name)
        if not res.ok:
            raise NameServiceUnavailableError(f"Resolve failed: {res.status_code} {res.text[:200]}")
        try:
            return MutableRecord.from_dict(res.json())
        except (ValueError, RecordError) as e:
            raise NameServiceUnavailableError(f"Malformed response for {short(name)}: {e}") from e


def _known_sequence(res: requests.Response) -> int:
    try:
        return int(res.json().get("sequence", -1))
    except (ValueError, AttributeError, TypeError):
        return -1


# =============================================================================
# Memory Backend (for testing without a name service)
# =============================================================================

class MemoryNameNetwork(NameNetwork):
    """
    In-memory name network.

    Keeps one record per name; a publish wins only with a strictly higher
    sequence and a valid signature, same as the hosted service.
    """

    def __init__(self):
        self._records: Dict[str, MutableRecord] = {}
        self.publish_count = 0

    def publish(self, record: MutableRecord) -> None:
        record.verify()
        current = self._records.get(record.name)
        if current is not None and current.sequence >= record.sequence:
            raise StaleSequenceError(record.name, record.sequence, current.sequence)
        self._records[record.name] = record
        self.publish_count += 1

    def resolve(self, name: str) -> MutableRecord:
        if name not in self._records:
            raise NameNotFoundError(name)
        return self._records[name]

    def force_put(self, record: MutableRecord) -> None:
        """Store a record without any checks (adversarial network simulation)."""
        self._records[record.name] = record


__all__ = [
    "NameNetwork",
    "HTTPNameNetwork",
    "MemoryNameNetwork",
    "NameNotFoundError",
    "StaleSequenceError",
    "NameServiceUnavailableError",
    "SignatureInvalidError",
]
