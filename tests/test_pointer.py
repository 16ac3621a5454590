# tests/test_pointer.py
"""
Formchain Naming: Mutable Pointer Tests

Tests:
1. create / publish / resolve_latest lifecycle
2. Network-side stale sequence rejection
3. Consumer-side monotonicity (rollback, equivocation)
4. Expiry and invalid signatures are surfaced, never trusted
5. HTTP name service client status mapping

Run:
    pytest tests/test_pointer.py
"""

import dataclasses

import pytest
import requests

from formchain.common import compute_cid, to_ipfs_path
from formchain.errors import ConflictError, ExternalUnavailableError, IntegrityError, NotFoundError
from formchain.naming import (
    HTTPNameNetwork,
    MemoryNameNetwork,
    MutablePointer,
    NameNotFoundError,
    NameServiceUnavailableError,
    RecordExpiredError,
    SequenceTracker,
    SignatureInvalidError,
    StaleRecordError,
    StaleSequenceError,
    generate_keypair,
    sign_record,
)


C1 = compute_cid(b"v1")
C2 = compute_cid(b"v2")
C3 = compute_cid(b"v3")


def _pointer():
    network = MemoryNameNetwork()
    return network, MutablePointer(network)


# =============================================================================
# Lifecycle
# =============================================================================

def test_create_returns_name_and_key():
    name, sk = MutablePointer.create()
    assert name.startswith("k51")
    assert len(sk) == 32


def test_unpublished_name_not_found():
    _, pointer = _pointer()
    name, _ = pointer.create()
    with pytest.raises(NameNotFoundError) as exc:
        pointer.resolve_latest(name)
    assert isinstance(exc.value, NotFoundError)


def test_publish_then_update_resolves_latest():
    network, pointer = _pointer()
    name, sk = pointer.create()

    first = pointer.publish(sk, C1)
    assert first.sequence == 0
    assert pointer.resolve_latest(name).pointed_cid == C1

    second = pointer.publish(sk, C2, previous_sequence=first.sequence)
    assert second.sequence == 1
    assert pointer.resolve_latest(name).pointed_cid == C2
    assert network.publish_count == 2


def test_duplicate_sequence_rejected_and_latest_kept():
    _, pointer = _pointer()
    name, sk = pointer.create()
    pointer.publish(sk, C1)
    pointer.publish(sk, C2, previous_sequence=0)

    with pytest.raises(StaleSequenceError) as exc:
        pointer.publish(sk, C3, previous_sequence=0)
    assert exc.value.sequence == 1
    assert exc.value.known_sequence == 1
    assert isinstance(exc.value, ConflictError)
    assert pointer.resolve_latest(name).pointed_cid == C2


def test_update_increments_from_network():
    _, pointer = _pointer()
    name, sk = pointer.create()
    assert pointer.update(sk, C1).sequence == 0
    assert pointer.update(sk, C2).sequence == 1
    assert pointer.update(sk, C3).sequence == 2
    assert pointer.resolve_latest(name).pointed_cid == C3


def test_second_device_sees_first_device_publish():
    network = MemoryNameNetwork()
    device_a = MutablePointer(network)
    device_b = MutablePointer(network)
    name, sk = device_a.create()

    device_a.publish(sk, C1)
    device_b.update(sk, C2)
    assert device_a.resolve_latest(name).pointed_cid == C2


def test_concurrent_devices_last_writer_wins():
    network = MemoryNameNetwork()
    device_a = MutablePointer(network)
    device_b = MutablePointer(network)
    name, sk = device_a.create()
    device_a.publish(sk, C1)

    device_a.publish(sk, C2, previous_sequence=0)
    with pytest.raises(StaleSequenceError):
        device_b.publish(sk, C3, previous_sequence=0)
    assert device_b.resolve_latest(name).pointed_cid == C2


def test_update_on_expired_record_supersedes_it():
    network, pointer = _pointer()
    name, sk = pointer.create()
    network.publish(sign_record(sk, 4, to_ipfs_path(C1), 1))

    record = pointer.update(sk, C2)
    assert record.sequence == 5
    assert pointer.resolve_latest(name).pointed_cid == C2


# =============================================================================
# Consumer-side Checks
# =============================================================================

def test_rollback_rejected_by_consumer():
    network, pointer = _pointer()
    name, sk = pointer.create()
    old = sign_record(sk, 0, to_ipfs_path(C1), 4102444800)
    new = sign_record(sk, 1, to_ipfs_path(C2), 4102444800)

    network.force_put(new)
    assert pointer.resolve_latest(name).sequence == 1

    network.force_put(old)
    with pytest.raises(StaleRecordError) as exc:
        pointer.resolve_latest(name)
    assert exc.value.accepted_sequence == 1


def test_equivocating_record_at_same_sequence_rejected():
    network, pointer = _pointer()
    name, sk = pointer.create()
    network.force_put(sign_record(sk, 3, to_ipfs_path(C1), 4102444800))
    pointer.resolve_latest(name)

    network.force_put(sign_record(sk, 3, to_ipfs_path(C2), 4102444800))
    with pytest.raises(StaleRecordError):
        pointer.resolve_latest(name)


def test_same_record_observed_twice_is_fine():
    _, pointer = _pointer()
    name, sk = pointer.create()
    pointer.publish(sk, C1)
    assert pointer.resolve_latest(name).pointed_cid == C1
    assert pointer.resolve_latest(name).pointed_cid == C1


def test_tracker_rules():
    tracker = SequenceTracker()
    _, sk = generate_keypair()
    r0 = sign_record(sk, 0, to_ipfs_path(C1), 4102444800)
    r1 = sign_record(sk, 1, to_ipfs_path(C2), 4102444800)

    assert tracker.highest(r0.name) is None
    tracker.accept(r1)
    with pytest.raises(StaleRecordError):
        tracker.accept(r0)
    tracker.accept(r1)
    assert tracker.highest(r1.name) == 1

    tracker.forget(r1.name)
    tracker.accept(r0)
    assert tracker.highest(r0.name) == 0


def test_invalid_signature_never_trusted():
    network, pointer = _pointer()
    name, sk = pointer.create()
    record = sign_record(sk, 0, to_ipfs_path(C1), 4102444800)
    forged = dataclasses.replace(record, value=to_ipfs_path(C3))
    network.force_put(forged)

    with pytest.raises(SignatureInvalidError) as exc:
        pointer.resolve_latest(name)
    assert isinstance(exc.value, IntegrityError)
    assert pointer.tracker.highest(name) is None


def test_record_signed_by_other_key_rejected():
    network, pointer = _pointer()
    name, _ = pointer.create()
    _, other_sk = pointer.create()
    other = sign_record(other_sk, 9, to_ipfs_path(C3), 4102444800)
    network._records[name] = other

    with pytest.raises(SignatureInvalidError):
        pointer.resolve_latest(name)


def test_out_of_range_expiry_from_network_rejected():
    network, pointer = _pointer()
    name, sk = pointer.create()
    record = sign_record(sk, 0, to_ipfs_path(C1), 4102444800)
    network.force_put(dataclasses.replace(record, expires_at=2 ** 63))

    with pytest.raises(SignatureInvalidError):
        pointer.resolve_latest(name)
    assert pointer.publish(sk, C2, previous_sequence=0).sequence == 1


def test_expired_record_surfaced_with_record():
    network, pointer = _pointer()
    name, sk = pointer.create()
    network.publish(sign_record(sk, 0, to_ipfs_path(C1), 1))

    with pytest.raises(RecordExpiredError) as exc:
        pointer.resolve_latest(name)
    assert exc.value.record.pointed_cid == C1


def test_network_rejects_forged_publish():
    network, _ = _pointer()
    _, sk = generate_keypair()
    record = sign_record(sk, 0, to_ipfs_path(C1), 4102444800)
    with pytest.raises(SignatureInvalidError):
        network.publish(dataclasses.replace(record, sequence=5))


# =============================================================================
# HTTP Client
# =============================================================================

class _FakeResponse:
    def __init__(self, status_code, body=None):
        self.status_code = status_code
        self._body = body
        self.text = "" if body is None else str(body)

    @property
    def ok(self):
        return 200 <= self.status_code < 400

    def json(self):
        if self._body is None:
            raise ValueError("no body")
        return self._body


class _FakeSession:
    def __init__(self, response=None, error=None):
        self.response = response
        self.error = error
        self.calls = []

    def _send(self, method, url, **kwargs):
        self.calls.append((method, url, kwargs))
        if self.error is not None:
            raise self.error
        return self.response

    def get(self, url, **kwargs):
        return self._send("GET", url, **kwargs)

    def post(self, url, **kwargs):
        return self._send("POST", url, **kwargs)


def test_http_resolve_parses_record():
    _, sk = generate_keypair()
    record = sign_record(sk, 2, to_ipfs_path(C2), 4102444800)
    session = _FakeSession(_FakeResponse(200, record.to_dict()))
    network = HTTPNameNetwork("https://names.example/", session=session)

    assert network.resolve(record.name) == record
    assert session.calls[0][1] == f"https://names.example/name/{record.name}"


def test_http_status_mapping():
    _, sk = generate_keypair()
    record = sign_record(sk, 1, to_ipfs_path(C1), 4102444800)

    network = HTTPNameNetwork("https://names.example", session=_FakeSession(_FakeResponse(404)))
    with pytest.raises(NameNotFoundError):
        network.resolve(record.name)

    network = HTTPNameNetwork("https://names.example", session=_FakeSession(_FakeResponse(409, {"sequence": 4})))
    with pytest.raises(StaleSequenceError) as exc:
        network.publish(record)
    assert exc.value.known_sequence == 4

    network = HTTPNameNetwork("https://names.example", session=_FakeSession(_FakeResponse(503)))
    with pytest.raises(NameServiceUnavailableError):
        network.publish(record)

    network = HTTPNameNetwork("https://names.example", session=_FakeSession(_FakeResponse(200, {"name": "x"})))
    with pytest.raises(NameServiceUnavailableError):
        network.resolve(record.name)


def test_http_connection_error_is_transient():
    session = _FakeSession(error=requests.ConnectionError("refused"))
    network = HTTPNameNetwork("https://names.example", session=session)
    with pytest.raises(ExternalUnavailableError):
        network.resolve(generate_keypair()[0])
