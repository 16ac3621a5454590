# tests/test_service.py
"""
Formchain Service: Form Identity Saga Tests

Tests:
1. Create -> update -> resolve by name and domain
2. Partial completion surfaces completed steps; retry converges
3. Nothing-completed failures
4. Multi-device key restore (single, batch, status) and backup rotation
5. Per-system timeouts
6. Response submission, gateway links, configuration

Run:
    pytest tests/test_service.py
"""

import asyncio
import json
import time
from types import SimpleNamespace

import pytest

from formchain.config import FormchainConfig
from formchain.errors import AuthorizationError, NotFoundError, StepTimeoutError
from formchain.naming import MemoryNameNetwork, MutablePointer, StaleSequenceError
from formchain.registry import (
    DomainNotFoundError,
    DomainTakenError,
    EntryNotFoundError,
    MockFormRegistry,
    NotOwnerError,
    PrivacyMode,
    RegistryUnavailableError,
)
from formchain.service import (
    STEP_BACKUP,
    STEP_BIND_DOMAIN,
    STEP_PUBLISH,
    STEP_REGISTER,
    STEP_RESTORE,
    STEP_UPDATE_LOCATOR,
    STEP_UPLOAD,
    FormIdentityService,
    KeyMismatchError,
    KeyNotBackedUpError,
    NothingCompletedError,
    PartialCompletionError,
)
from formchain.storage import ContentUnavailableError, MemoryContentStore
from formchain.vault import SCHEME_V1, DecryptionFailedError, KeyVault
from formchain.wallet import LocalAccountSigner, Signer


DOC_V1 = json.dumps({"title": "Feedback", "fields": ["rating"]}).encode()
DOC_V2 = json.dumps({"title": "Feedback", "fields": ["rating", "comment"]}).encode()
ALL_STEPS = [STEP_UPLOAD, STEP_PUBLISH, STEP_REGISTER, STEP_BACKUP, STEP_UPDATE_LOCATOR]


def run(coro):
    return asyncio.run(coro)


def _env(config=None, registry=None, signer=None):
    """One device: its own pointer, vault and service over shared backends."""
    store = MemoryContentStore()
    network = MemoryNameNetwork()
    registry = registry or MockFormRegistry()
    signer = signer or LocalAccountSigner()
    registry.set_account(signer.address)
    service = FormIdentityService(
        store, MutablePointer(network), registry, KeyVault(store), signer, config,
    )
    return SimpleNamespace(store=store, network=network, registry=registry, signer=signer, service=service)


def _second_device(env, signer=None):
    signer = signer or LocalAccountSigner(private_key="0x" + bytes(env.signer.account.key).hex())
    env.registry.set_account(signer.address)
    return FormIdentityService(
        env.store, MutablePointer(env.network), env.registry, KeyVault(env.store), signer,
    )


class FlakyLocatorRegistry(MockFormRegistry):
    """Fails the first update_key_locator call."""

    def __init__(self):
        super().__init__()
        self.locator_failures = 1

    def update_key_locator(self, owner, name, locator):
        if self.locator_failures:
            self.locator_failures -= 1
            raise RegistryUnavailableError("node dropped the transaction")
        return super().update_key_locator(owner, name, locator)


class SlowRegistry(MockFormRegistry):
    def register(self, *args, **kwargs):
        time.sleep(0.3)
        return super().register(*args, **kwargs)


class SlowBackupStore(MemoryContentStore):
    """Hangs on key backup uploads only; form documents go through."""

    def put(self, data):
        if b"\"ciphertext\"" in data:
            time.sleep(0.5)
        return super().put(data)


class StalledSigner(Signer):
    """Wallet that never answers (user walked away)."""

    def __init__(self, inner: Signer):
        self.inner = inner

    @property
    def address(self) -> str:
        return self.inner.address

    async def sign(self, message: bytes) -> bytes:
        await asyncio.sleep(10)
        return await self.inner.sign(message)


# =============================================================================
# Create / Update / Resolve
# =============================================================================

def test_create_form_runs_every_step():
    env = _env()
    created = run(env.service.create_form(DOC_V1))

    assert created.completed == ALL_STEPS
    assert created.name.startswith("k51")
    assert created.record.sequence == 0
    assert env.store.get(created.document_cid) == DOC_V1

    entry = env.registry.lookup_entry(created.name)
    assert entry.owner == env.signer.address
    assert entry.key_locator == created.key_locator
    assert entry.privacy_mode == PrivacyMode.IDENTIFIED
    assert run(env.service.resolve(created.name)) == created.document_cid


def test_create_update_resolve_by_domain():
    env = _env()
    created = run(env.service.create_form(DOC_V1, domain="feedback"))
    assert STEP_BIND_DOMAIN in created.completed
    assert created.domain == "feedback"
    assert run(env.service.resolve("feedback")) == created.document_cid

    updated = run(env.service.update_form(created.name, DOC_V2))
    assert updated.record.sequence == 1
    assert updated.completed == [STEP_UPLOAD, STEP_PUBLISH]
    assert run(env.service.resolve("feedback")) == updated.document_cid
    assert run(env.service.resolve(created.name)) == updated.document_cid
    assert run(env.service.fetch_document("feedback")) == DOC_V2


def test_duplicate_publish_rejected_resolve_keeps_latest():
    env = _env()
    created = run(env.service.create_form(DOC_V1))
    updated = run(env.service.update_form(created.name, DOC_V2, private_key=created.private_key))

    pointer = MutablePointer(env.network)
    with pytest.raises(StaleSequenceError):
        pointer.publish(created.private_key, created.document_cid, previous_sequence=0)
    assert run(env.service.resolve(created.name)) == updated.document_cid


def test_release_domain_then_not_found():
    env = _env()
    created = run(env.service.create_form(DOC_V1, domain="feedback"))
    run(env.service.release_domain(created.name))

    with pytest.raises(DomainNotFoundError):
        run(env.service.resolve("feedback"))
    assert run(env.service.resolve(created.name)) == created.document_cid


def test_update_from_another_device_restores_key():
    env = _env()
    created = run(env.service.create_form(DOC_V1))

    device_b = _second_device(env)
    updated = run(device_b.update_form(created.name, DOC_V2))
    assert updated.record.sequence == 1
    assert run(env.service.resolve(created.name)) == updated.document_cid


def test_update_with_foreign_key_rejected():
    env = _env()
    created = run(env.service.create_form(DOC_V1))
    other = run(env.service.create_form(DOC_V2))
    store_before = env.store.put_count
    with pytest.raises(NothingCompletedError) as exc:
        run(env.service.update_form(created.name, DOC_V2, private_key=other.private_key))
    assert exc.value.step == STEP_RESTORE
    assert exc.value.completed == []
    assert isinstance(exc.value.cause, KeyMismatchError)
    assert isinstance(exc.value.cause, AuthorizationError)
    assert exc.value.cause.key_name == other.name
    assert env.store.put_count == store_before
    assert run(env.service.resolve(created.name)) == created.document_cid


def test_set_active_retires_identity():
    env = _env()
    created = run(env.service.create_form(DOC_V1, domain="feedback"))
    run(env.service.set_active(created.name, False))
    assert not env.registry.lookup_entry(created.name).active
    # still resolvable unless the caller asks for active identities only
    assert run(env.service.resolve("feedback")) == created.document_cid


# =============================================================================
# Saga Failures
# =============================================================================

def test_upload_failure_means_nothing_completed():
    env = _env()
    env.store.fail_next = ContentUnavailableError("gateway down")

    with pytest.raises(NothingCompletedError) as exc:
        run(env.service.create_form(DOC_V1))
    assert exc.value.step == STEP_UPLOAD
    assert exc.value.completed == []
    assert isinstance(exc.value.cause, ContentUnavailableError)
    assert env.registry.get_owner_names(env.signer.address) == []


def test_registry_failure_is_partial_and_name_resolves():
    env = _env()
    env.registry.fail_next = RegistryUnavailableError("rpc down")

    with pytest.raises(PartialCompletionError) as exc:
        run(env.service.create_form(DOC_V1))
    err = exc.value
    assert err.step == STEP_REGISTER
    assert err.completed == [STEP_UPLOAD, STEP_PUBLISH]

    partial = err.partial
    assert run(env.service.resolve(partial.name)) == partial.document_cid
    with pytest.raises(EntryNotFoundError):
        env.registry.lookup_entry(partial.name)

    retried = run(env.service.create_form(DOC_V1, private_key=partial.private_key))
    assert retried.name == partial.name
    assert retried.record.sequence == 0
    assert retried.completed == ALL_STEPS
    assert env.registry.get_owner_names(env.signer.address) == [partial.name]


def test_locator_failure_retry_converges_without_duplicates():
    env = _env(registry=FlakyLocatorRegistry())

    with pytest.raises(PartialCompletionError) as exc:
        run(env.service.create_form(DOC_V1, domain="feedback"))
    partial = exc.value.partial
    assert exc.value.step == STEP_UPDATE_LOCATOR
    assert exc.value.completed == [STEP_UPLOAD, STEP_PUBLISH, STEP_REGISTER, STEP_BIND_DOMAIN, STEP_BACKUP]

    retried = run(env.service.create_form(DOC_V1, domain="feedback", private_key=partial.private_key))
    assert retried.name == partial.name
    assert retried.domain == "feedback"
    assert env.registry.lookup_entry(partial.name).key_locator == retried.key_locator
    assert env.registry.get_owner_names(env.signer.address) == [partial.name]
    assert env.registry.collected_fees == env.registry.domain_price()

    # a third run finds the locator and skips the backup
    again = run(env.service.create_form(DOC_V1, domain="feedback", private_key=partial.private_key))
    assert again.key_locator == retried.key_locator


def test_taken_domain_is_partial_failure():
    env = _env()
    run(env.service.create_form(DOC_V1, domain="feedback"))

    rival_service = _second_device(env, signer=LocalAccountSigner())

    with pytest.raises(PartialCompletionError) as exc:
        run(rival_service.create_form(DOC_V2, domain="feedback"))
    assert exc.value.step == STEP_BIND_DOMAIN
    assert isinstance(exc.value.cause, DomainTakenError)
    assert run(rival_service.resolve(exc.value.partial.name)) == exc.value.partial.document_cid


def test_registry_writes_use_owner_credential():
    env = _env()
    created = run(env.service.create_form(DOC_V1))

    intruder = LocalAccountSigner()
    service = _second_device(env, signer=intruder)
    with pytest.raises(NotOwnerError):
        run(service.set_active(created.name, False))
    assert env.registry.lookup_entry(created.name).active


# =============================================================================
# Key Recovery
# =============================================================================

def test_restore_key_on_new_device():
    env = _env()
    created = run(env.service.create_form(DOC_V1))
    device_b = _second_device(env)
    assert run(device_b.restore_key(created.name)) == created.private_key


def test_restore_key_with_other_wallet_fails():
    env = _env()
    created = run(env.service.create_form(DOC_V1))
    service = _second_device(env, signer=LocalAccountSigner())
    with pytest.raises(DecryptionFailedError):
        run(service.restore_key(created.name))


def test_restore_key_without_backup():
    env = _env()
    name, _ = MutablePointer.create()
    env.registry.register(env.signer.address, name, "", PrivacyMode.IDENTIFIED)
    with pytest.raises(KeyNotBackedUpError) as exc:
        run(env.service.restore_key(name))
    assert isinstance(exc.value, NotFoundError)
    assert exc.value.name == name


def test_restore_all_keys_reports_each_identity():
    env = _env()
    first = run(env.service.create_form(DOC_V1))
    second = run(env.service.create_form(DOC_V2, privacy_mode=PrivacyMode.ANONYMOUS))
    retired = run(env.service.create_form(b"old form"))
    run(env.service.set_active(retired.name, False))

    no_backup, _ = MutablePointer.create()
    env.registry.register(env.signer.address, no_backup, "", PrivacyMode.IDENTIFIED)

    # locator points at a backup made by someone else's wallet
    foreign_name, foreign_sk = MutablePointer.create()
    foreign = run(KeyVault(env.store).backup(foreign_sk, LocalAccountSigner()))
    env.registry.register(env.signer.address, foreign_name, foreign, PrivacyMode.IDENTIFIED)

    progress = []
    device_b = _second_device(env)
    report = run(device_b.restore_all_keys(on_progress=lambda i, n, name: progress.append((i, n, name))))

    assert report.restored == {first.name: first.private_key, second.name: second.private_key}
    assert set(report.skipped) == {retired.name, no_backup}
    assert list(report.failed) == [foreign_name]
    assert isinstance(report.failed[foreign_name], DecryptionFailedError)
    assert report.total == 5
    assert [p[0] for p in progress] == [1, 2, 3, 4, 5]
    assert all(p[1] == 5 for p in progress)
    assert [p[2] for p in progress] == env.registry.get_owner_names(env.signer.address)


def test_check_restore_status():
    env = _env()
    first = run(env.service.create_form(DOC_V1))
    second = run(env.service.create_form(DOC_V2))

    status = run(env.service.check_restore_status([first.name]))
    assert status.total == 2
    assert status.local == 1
    assert status.missing == [second.name]
    assert status.needs_restore

    status = run(env.service.check_restore_status([first.name, second.name]))
    assert not status.needs_restore


def test_rotate_key_backup_records_new_locator():
    env = _env()
    created = run(env.service.create_form(DOC_V1))
    old = run(KeyVault(env.store).backup(created.private_key, env.signer, scheme=SCHEME_V1))
    env.registry.update_key_locator(env.signer.address, created.name, old)

    new = run(env.service.rotate_key_backup(created.name))
    assert new != old
    assert env.registry.lookup_entry(created.name).key_locator == new
    assert not KeyVault(env.store).needs_rotation(new)
    assert run(_second_device(env).restore_key(created.name)) == created.private_key


# =============================================================================
# Timeouts
# =============================================================================

def test_stalled_wallet_times_out_after_publish():
    signer = LocalAccountSigner()
    config = FormchainConfig(signer_timeout=0.05, content_timeout=1.0)
    env = _env(config=config, signer=StalledSigner(signer))

    with pytest.raises(PartialCompletionError) as exc:
        run(env.service.create_form(DOC_V1))
    assert exc.value.step == STEP_BACKUP
    assert isinstance(exc.value.cause, StepTimeoutError)
    assert exc.value.cause.system == "signer"
    assert run(env.service.resolve(exc.value.partial.name)) == exc.value.partial.document_cid


def test_slow_chain_times_out():
    env = _env(config=FormchainConfig(chain_timeout=0.05), registry=SlowRegistry())
    with pytest.raises(PartialCompletionError) as exc:
        run(env.service.create_form(DOC_V1))
    assert exc.value.step == STEP_REGISTER
    assert isinstance(exc.value.cause, StepTimeoutError)
    assert exc.value.cause.system == "registry"


def test_slow_backup_upload_times_out_without_blocking_loop():
    store = SlowBackupStore()
    network = MemoryNameNetwork()
    registry = MockFormRegistry()
    signer = LocalAccountSigner()
    registry.set_account(signer.address)
    config = FormchainConfig(signer_timeout=0.05, content_timeout=0.05)
    service = FormIdentityService(store, MutablePointer(network), registry, KeyVault(store), signer, config)

    async def scenario():
        started = time.monotonic()
        with pytest.raises(PartialCompletionError) as exc:
            await service.create_form(DOC_V1)
        return exc.value, time.monotonic() - started

    error, elapsed = run(scenario())
    assert error.step == STEP_BACKUP
    assert error.completed == [STEP_UPLOAD, STEP_PUBLISH, STEP_REGISTER]
    assert isinstance(error.cause, StepTimeoutError)
    assert error.cause.system == "signer"
    assert elapsed < 0.4
    assert registry.lookup_entry(error.partial.name).key_locator == ""


# =============================================================================
# Submissions / Links / Config
# =============================================================================

def test_submit_response_follows_privacy_mode():
    env = _env()
    anonymous = run(env.service.create_form(DOC_V1, privacy_mode=PrivacyMode.ANONYMOUS))
    identified = run(env.service.create_form(DOC_V2))
    respondent = "0x" + "b2" * 20

    result = run(env.service.submit_response(anonymous.name, b'{"rating": 5}', submitter=respondent))
    assert env.store.get(result["dataCid"]) == b'{"rating": 5}'
    [stored] = env.registry.get_submissions(anonymous.name)
    assert stored.submission_id == result["submissionId"]
    assert stored.submitter != respondent

    run(env.service.submit_response(identified.name, b'{"rating": 3}', respondent, True, "wallet"))
    [stored] = env.registry.get_submissions(identified.name)
    assert stored.submitter == respondent
    assert stored.verified


def test_list_responses_pages_oldest_first():
    env = _env()
    created = run(env.service.create_form(DOC_V1, privacy_mode=PrivacyMode.ANONYMOUS))
    payloads = [json.dumps({"rating": n}).encode() for n in range(5)]
    for payload in payloads:
        run(env.service.submit_response(created.name, payload))

    everything = run(env.service.list_responses(created.name))
    assert [s.submission_id for s in everything] == sorted(s.submission_id for s in everything)
    assert [run(env.service.fetch_response(s)) for s in everything] == payloads

    page = run(env.service.list_responses(created.name, offset=2, limit=2))
    assert [s.data_cid for s in page] == [s.data_cid for s in everything[2:4]]
    assert run(env.service.list_responses(created.name, offset=10)) == []
    assert everything[0].to_dict()["dataCid"] == everything[0].data_cid

    with pytest.raises(ValueError):
        run(env.service.list_responses(created.name, limit=0))
    with pytest.raises(ValueError):
        run(env.service.list_responses(created.name, limit=101))


def test_list_responses_unknown_form():
    env = _env()
    with pytest.raises(EntryNotFoundError):
        run(env.service.list_responses(MutablePointer(env.network).create()[0]))


def test_gateway_links():
    env = _env(config=FormchainConfig(gateway_url="https://gw.example/"))
    assert env.service.gateway_url("bafyabc") == "https://gw.example/ipfs/bafyabc"
    assert env.service.ipns_gateway_url("k51abc") == "https://gw.example/ipns/k51abc"


def test_config_from_env():
    config = FormchainConfig.from_env({
        "FORMCHAIN_RPC_URL": "https://rpc.example",
        "FORMCHAIN_CHAIN_ID": "84532",
        "FORMCHAIN_SIGNER_TIMEOUT": "12.5",
        "FORMCHAIN_GATEWAY_URL": "",
    })
    assert config.rpc_url == "https://rpc.example"
    assert config.chain_id == 84532
    assert config.signer_timeout == 12.5
    assert config.gateway_url == "https://w3s.link"
    assert config.contract_address is None
    assert config.content_timeout == 60.0


def test_from_config_requires_chain_settings():
    with pytest.raises(ValueError):
        FormIdentityService.from_config(FormchainConfig(), LocalAccountSigner())
