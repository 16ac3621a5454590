# formchain/naming/pointer.py
"""
Formchain Naming: Mutable Pointer

Create, publish and resolve mutable names.

State per name:
    Unpublished -> Published(seq=0) -> Published(seq=1) -> ...

There is no terminal state; retirement is signalled by the registry
(RegistryEntry.active = False), not by the pointer layer.

Concurrent writers are reconciled by sequence only: two devices that
publish from the same base sequence race, the network keeps the first
one it accepts and the other gets StaleSequenceError.

Usage:
    pointer = MutablePointer(MemoryNameNetwork())

    name, private_key = MutablePointer.create()
    pointer.publish(private_key, cid_v1)            # seq 0
    pointer.update(private_key, cid_v2)             # seq 1

    record = pointer.resolve_latest(name)
    record.pointed_cid                              # cid_v2

Updated: 2026-10-19
Version: 0.1.0
"""

from __future__ import annotations

import logging
import threading
from typing import Dict, Optional, Tuple

from ..common import now_ts, short, to_ipfs_path
from ..errors import ConflictError
from .network import NameNetwork, NameNotFoundError, StaleSequenceError
from .record import (
    MutableRecord,
    RecordError,
    SignatureInvalidError,
    generate_keypair,
    name_from_private_key,
    sign_record,
)


logger = logging.getLogger("formchain.naming")

DEFAULT_RECORD_LIFETIME = 365 * 24 * 3600


# =============================================================================
# Exceptions
# =============================================================================

class RecordExpiredError(RecordError):
    """
    Record verified but its validity has passed.

    The record is attached so a caller willing to tolerate staleness
    can still use it.
    """
    def __init__(self, record: MutableRecord):
        self.record = record
        super().__init__(
            f"Record for {short(record.name)} seq={record.sequence} expired at {record.expires_at}"
        )


class StaleRecordError(RecordError, ConflictError):
    """Network served a record older than one already accepted (rollback)."""
    def __init__(self, name: str, sequence: int, accepted_sequence: int):
        self.name = name
        self.sequence = sequence
        self.accepted_sequence = accepted_sequence
        super().__init__(
            f"Rejected record for {short(name)}: seq {sequence} does not supersede accepted seq {accepted_sequence}"
        )


# =============================================================================
# Sequence Tracker
# =============================================================================

class SequenceTracker:
    """
    Consumer-side monotonicity check.

    Remembers the highest accepted record per name. A record is accepted
    if its sequence is higher, or if it is the very same record again.
    Anything lower, or a different record claiming an accepted sequence,
    is rejected.
    """

    def __init__(self):
        self._accepted: Dict[str, MutableRecord] = {}
        self._lock = threading.Lock()

    def accept(self, record: MutableRecord) -> None:
        """
        Raises:
            StaleRecordError: Record does not supersede the accepted one
        """
        with self._lock:
            current = self._accepted.get(record.name)
            if current is not None:
                if record.sequence < current.sequence:
                    raise StaleRecordError(record.name, record.sequence, current.sequence)
                if record.sequence == current.sequence and record != current:
                    raise StaleRecordError(record.name, record.sequence, current.sequence)
            self._accepted[record.name] = record

    def highest(self, name: str) -> Optional[int]:
        with self._lock:
            current = self._accepted.get(name)
            return current.sequence if current is not None else None

    def forget(self, name: str) -> None:
        with self._lock:
            self._accepted.pop(name, None)


# =============================================================================
# MutablePointer
# =============================================================================

class MutablePointer:
    """Mutable pointer operations over a NameNetwork."""

    def __init__(
        self,
        network: NameNetwork,
        record_lifetime: int = DEFAULT_RECORD_LIFETIME,
        tracker: Optional[SequenceTracker] = None,
    ):
        """
        Args:
            network: Name network backend
            record_lifetime: Seconds until a newly signed record expires
            tracker: Shared sequence tracker (new one if None)
        """
        self._network = network
        self._record_lifetime = record_lifetime
        self._tracker = tracker or SequenceTracker()

    @property
    def tracker(self) -> SequenceTracker:
        return self._tracker

    @staticmethod
    def create() -> Tuple[str, bytes]:
        """Generate a new keypair. Returns (name, private_key)."""
        return generate_keypair()

    # =========================================================================
    # Write
    # =========================================================================

    def publish(
        self,
        private_key: bytes,
        pointed_cid: str,
        previous_sequence: Optional[int] = None,
    ) -> MutableRecord:
        """
        Sign and publish the next record.

        Args:
            private_key: 32-byte Ed25519 seed of the name
            pointed_cid: Content identifier to point at
            previous_sequence: Sequence being superseded (None for first record)

        Returns:
            The published record (sequence = previous_sequence + 1, or 0)

        Raises:
            StaleSequenceError: Network already holds an equal or higher sequence
            SigningError: Key material unusable
        """
        sequence = 0 if previous_sequence is None else previous_sequence + 1
        name = name_from_private_key(private_key)

        known = self._known_sequence(name)
        if known is not None and known >= sequence:
            raise StaleSequenceError(name, sequence, known)

        record = sign_record(
            private_key,
            sequence=sequence,
            value=to_ipfs_path(pointed_cid),
            expires_at=now_ts() + self._record_lifetime,
        )
        self._network.publish(record)
        self._tracker.accept(record)
        logger.info("Published %s seq=%d -> %s", short(name), sequence, short(pointed_cid, 24))
        return record

    def update(self, private_key: bytes, pointed_cid: str) -> MutableRecord:
        """
        Publish pointed_cid on top of the latest verified record.

        An expired latest record still counts as the base sequence.
        """
        name = name_from_private_key(private_key)
        try:
            current = self.resolve_latest(name)
        except NameNotFoundError:
            return self.publish(private_key, pointed_cid)
        except RecordExpiredError as e:
            current = e.record
        return self.publish(private_key, pointed_cid, previous_sequence=current.sequence)

    # =========================================================================
    # Read
    # =========================================================================

    def resolve_latest(self, name: str) -> MutableRecord:
        """
        Fetch and verify the latest record for name.

        Checks, in order: signature, name binding, monotonicity, expiry.

        Raises:
            NameNotFoundError: Name never published
            SignatureInvalidError: Record does not verify
            StaleRecordError: Record older than one already accepted
            RecordExpiredError: Record valid but past expires_at
        """
        record = self._network.resolve(name)
        if record.name != name:
            raise SignatureInvalidError(name, "record is for a different name")
        try:
            record.verify()
        except SignatureInvalidError:
            logger.error("Invalid signature on record for %s seq=%d", short(name), record.sequence)
            raise
        try:
            self._tracker.accept(record)
        except StaleRecordError:
            logger.warning("Rejected stale record for %s seq=%d", short(name), record.sequence)
            raise
        if record.is_expired:
            raise RecordExpiredError(record)
        return record

    def _known_sequence(self, name: str) -> Optional[int]:
        """Highest sequence seen locally or on the network."""
        highest = self._tracker.highest(name)
        try:
            remote = self._network.resolve(name)
        except NameNotFoundError:
            return highest
        if remote.name == name and remote.is_valid_signature():
            if highest is None or remote.sequence > highest:
                highest = remote.sequence
        return highest


__all__ = [
    "MutablePointer",
    "SequenceTracker",
    "RecordExpiredError",
    "StaleRecordError",
]
