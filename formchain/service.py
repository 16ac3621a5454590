# formchain/service.py
"""
Formchain Service: Form Identity Orchestration

Runs the multi-system flows (content store, name network, registry,
wallet) as sagas. No step is transactional across systems; each one is
idempotent, so a failed flow is retried by running it again with the
same inputs (and the private key from the partial result).

Create:
    upload document -> publish seq 0 -> register -> bind domain (optional)
    -> vault backup -> record key locator

Update:
    upload document -> publish seq + 1

Failures:
    NothingCompletedError    nothing happened, safe to retry or abandon
    PartialCompletionError   earlier steps stand (e.g. the identity already
                             resolves by name); retry to finish

Every external call carries its own timeout (FormchainConfig).

Usage:
    service = FormIdentityService(store, pointer, registry, vault, signer)
    created = await service.create_form(b'{"title": "Feedback"}', domain="feedback")
    await service.update_form(created.name, b'{"title": "Feedback v2"}')
    cid = await service.resolve("feedback")
"""

from __future__ import annotations

import asyncio
import functools
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Optional, Union

from .common import ZERO_ADDRESS, same_address, short
from .config import FormchainConfig
from .errors import AuthorizationError, FormchainError, NotFoundError, StepTimeoutError
from .naming import (
    HTTPNameNetwork,
    MutablePointer,
    MutableRecord,
    NameNotFoundError,
    RecordExpiredError,
    name_from_private_key,
)
from .registry import (
    AlreadyRegisteredError,
    DomainAlreadyBoundError,
    DomainTakenError,
    FormRegistry,
    MockFormRegistry,
    PrivacyMode,
    RegistryEntry,
    Resolver,
    ResolvedForm,
    Submission,
)
from .storage import ContentStore, IPFSContentStore
from .vault import KeyVault
from .wallet import Signer


logger = logging.getLogger("formchain.service")

ProgressCallback = Callable[[int, int, str], None]


# =============================================================================
# Steps
# =============================================================================

STEP_UPLOAD = "upload"
STEP_PUBLISH = "publish"
STEP_REGISTER = "register"
STEP_BIND_DOMAIN = "bind_domain"
STEP_BACKUP = "backup"
STEP_UPDATE_LOCATOR = "update_locator"
STEP_RESTORE = "restore"


# =============================================================================
# Exceptions
# =============================================================================

class SagaError(FormchainError):
    """A multi-system flow stopped at `step`."""
    def __init__(
        self,
        step: str,
        cause: BaseException,
        completed: Optional[List[str]] = None,
        partial: Any = None,
    ):
        self.step = step
        self.cause = cause
        self.completed = list(completed or [])
        self.partial = partial
        super().__init__(self._describe())

    def _describe(self) -> str:
        return f"Step '{self.step}' failed: {self.cause}"


class NothingCompletedError(SagaError):
    """Failed before any step completed."""
    def _describe(self) -> str:
        return f"Nothing completed; step '{self.step}' failed: {self.cause}"


class PartialCompletionError(SagaError):
    """Some steps completed and stand; retry the flow to finish."""
    def _describe(self) -> str:
        done = ", ".join(self.completed)
        return f"Completed [{done}]; step '{self.step}' failed: {self.cause}"


class KeyNotBackedUpError(NotFoundError):
    """Registry entry has no key locator."""
    def __init__(self, name: str):
        self.name = name
        super().__init__(f"No key backup recorded for {short(name)}")


class KeyMismatchError(AuthorizationError):
    """Supplied private key controls a different name."""
    def __init__(self, name: str, key_name: str):
        self.name = name
        self.key_name = key_name
        super().__init__(f"Private key controls {short(key_name)}, not {short(name)}")


# =============================================================================
# Results
# =============================================================================

@dataclass
class CreateResult:
    """Outcome (or partial outcome) of create_form."""
    name: str
    private_key: bytes = field(repr=False)
    document_cid: Optional[str] = None
    record: Optional[MutableRecord] = None
    key_locator: Optional[str] = None
    domain: Optional[str] = None
    completed: List[str] = field(default_factory=list)


@dataclass
class UpdateResult:
    name: str
    document_cid: Optional[str] = None
    record: Optional[MutableRecord] = None
    completed: List[str] = field(default_factory=list)


@dataclass
class RestoreReport:
    """Per-identity outcome of restore_all_keys."""
    restored: Dict[str, bytes] = field(default_factory=dict, repr=False)
    failed: Dict[str, FormchainError] = field(default_factory=dict)
    skipped: List[str] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.restored) + len(self.failed) + len(self.skipped)


@dataclass
class RestoreStatus:
    total: int
    local: int
    missing: List[str]

    @property
    def needs_restore(self) -> bool:
        return bool(self.missing)


# =============================================================================
# FormIdentityService
# =============================================================================

class FormIdentityService:
    """Create, update, restore and resolve form identities."""

    def __init__(
        self,
        store: ContentStore,
        pointer: MutablePointer,
        registry: Union[FormRegistry, MockFormRegistry],
        vault: KeyVault,
        signer: Signer,
        config: Optional[FormchainConfig] = None,
        resolver: Optional[Resolver] = None,
    ):
        self._store = store
        self._pointer = pointer
        self._registry = registry
        self._vault = vault
        self._signer = signer
        self._config = config or FormchainConfig()
        self._resolver = resolver or Resolver(registry, pointer)

    @classmethod
    def from_config(
        cls,
        config: FormchainConfig,
        signer: Signer,
        registry_private_key: Optional[str] = None,
    ) -> FormIdentityService:
        """
        Wire the production backends from config.

        registry_private_key must belong to the signer's address: registry
        writes are signed by the owner's own account.
        """
        if not config.rpc_url or not config.contract_address:
            raise ValueError("FORMCHAIN_RPC_URL and FORMCHAIN_CONTRACT_ADDRESS are required")
        store = IPFSContentStore(config.ipfs_api, timeout=config.content_timeout)
        store.connect()
        network = HTTPNameNetwork(config.name_service_url, timeout=config.pointer_timeout)
        pointer = MutablePointer(network, record_lifetime=config.record_lifetime)
        registry = FormRegistry(
            contract_address=config.contract_address,
            rpc_url=config.rpc_url,
            private_key=registry_private_key,
            chain_id=config.chain_id,
            receipt_timeout=config.chain_timeout,
        )
        return cls(store, pointer, registry, KeyVault(store), signer, config)

    @property
    def owner(self) -> str:
        return self._signer.address

    @property
    def resolver(self) -> Resolver:
        return self._resolver

    # =========================================================================
    # Timeouts
    # =========================================================================

    async def _blocking(self, system: str, timeout: float, fn: Callable, *args, **kwargs):
        """Run a blocking client call in a thread under its own deadline."""
        call = functools.partial(fn, *args, **kwargs)
        try:
            return await asyncio.wait_for(asyncio.to_thread(call), timeout)
        except asyncio.TimeoutError as e:
            raise StepTimeoutError(system, timeout) from e

    async def _awaiting(self, system: str, timeout: float, coro):
        try:
            return await asyncio.wait_for(coro, timeout)
        except asyncio.TimeoutError as e:
            raise StepTimeoutError(system, timeout) from e

    def _content(self, fn: Callable, *args):
        return self._blocking("content store", self._config.content_timeout, fn, *args)

    def _names(self, fn: Callable, *args, **kwargs):
        return self._blocking("name network", self._config.pointer_timeout, fn, *args, **kwargs)

    def _chain(self, fn: Callable, *args, **kwargs):
        return self._blocking("registry", self._config.chain_timeout, fn, *args, **kwargs)

    def _wallet(self, coro):
        # vault calls wait on the signer and then upload or fetch
        return self._awaiting("signer", self._config.signer_timeout + self._config.content_timeout, coro)

    @staticmethod
    def _fail(step: str, cause: BaseException, completed: List[str], partial: Any) -> SagaError:
        if not completed:
            logger.error("%s failed, nothing completed: %s", step, cause)
            return NothingCompletedError(step, cause, completed, partial)
        logger.warning("%s failed after [%s]: %s", step, ", ".join(completed), cause)
        return PartialCompletionError(step, cause, completed, partial)

    # =========================================================================
    # Create
    # =========================================================================

    async def create_form(
        self,
        document: bytes,
        privacy_mode: PrivacyMode = PrivacyMode.IDENTIFIED,
        domain: Optional[str] = None,
        fee: Optional[int] = None,
        private_key: Optional[bytes] = None,
    ) -> CreateResult:
        """
        Create a form identity.

        Args:
            document: Initial form document bytes
            privacy_mode: Response privacy mode recorded on the registry
            domain: Custom domain to bind (optional)
            fee: Domain fee in wei (registry price if None)
            private_key: Reuse the key from a previous partial attempt

        Raises:
            NothingCompletedError: Upload failed
            PartialCompletionError: A later step failed; .partial is the
                CreateResult to pass back via private_key on retry
        """
        if private_key is None:
            name, private_key = self._pointer.create()
        else:
            name = name_from_private_key(private_key)

        result = CreateResult(name=name, private_key=private_key, domain=None)
        completed = result.completed
        owner = self.owner

        step = STEP_UPLOAD
        try:
            result.document_cid = await self._content(self._store.put, document)
            completed.append(step)

            step = STEP_PUBLISH
            result.record = await self._publish_initial(private_key, name, result.document_cid)
            completed.append(step)

            step = STEP_REGISTER
            entry = await self._register(owner, name, privacy_mode)
            completed.append(step)

            if domain:
                step = STEP_BIND_DOMAIN
                await self._bind_domain(owner, name, domain, fee)
                result.domain = domain
                completed.append(step)

            if entry is not None and entry.has_key_locator:
                # backed up by an earlier attempt
                result.key_locator = entry.key_locator
                completed.extend([STEP_BACKUP, STEP_UPDATE_LOCATOR])
            else:
                step = STEP_BACKUP
                result.key_locator = await self._wallet(self._vault.backup(private_key, self._signer))
                completed.append(step)

                step = STEP_UPDATE_LOCATOR
                await self._chain(self._registry.update_key_locator, owner, name, result.key_locator)
                completed.append(step)
        except FormchainError as e:
            raise self._fail(step, e, completed, result) from e

        logger.info("Created form %s -> %s", short(name), short(result.document_cid, 24))
        return result

    async def _publish_initial(self, private_key: bytes, name: str, cid: str) -> MutableRecord:
        try:
            current = await self._names(self._pointer.resolve_latest, name)
        except NameNotFoundError:
            return await self._names(self._pointer.publish, private_key, cid)
        except RecordExpiredError as e:
            current = e.record
        if current.pointed_cid == cid:
            return current
        return await self._names(self._pointer.publish, private_key, cid, current.sequence)

    async def _register(self, owner: str, name: str, privacy_mode: PrivacyMode) -> Optional[RegistryEntry]:
        """Register, treating an existing registration by the same owner as done."""
        try:
            await self._chain(self._registry.register, owner, name, "", privacy_mode)
            return None
        except AlreadyRegisteredError as e:
            if not same_address(e.owner, owner):
                raise
            logger.info("%s already registered by %s", short(name), owner)
            return await self._chain(self._registry.lookup_entry, name)

    async def _bind_domain(self, owner: str, name: str, domain: str, fee: Optional[int]) -> None:
        if fee is None:
            fee = await self._chain(self._registry.domain_price)
        try:
            await self._chain(self._registry.bind_domain, owner, name, domain, fee)
        except DomainTakenError as e:
            if e.bound_to != name:
                raise
            logger.info("Domain %s already bound to %s", domain, short(name))
        except DomainAlreadyBoundError as e:
            if e.domain != domain:
                raise
            logger.info("Domain %s already bound to %s", domain, short(name))

    # =========================================================================
    # Update
    # =========================================================================

    async def update_form(
        self,
        name: str,
        document: bytes,
        private_key: Optional[bytes] = None,
    ) -> UpdateResult:
        """
        Publish a new document version.

        Without private_key the key is restored from the vault first.

        Raises:
            NothingCompletedError: Restore or upload failed (KeyMismatchError cause when
                private_key controls a different name)
            PartialCompletionError: Uploaded, publish failed (StaleSequenceError
                cause means another device published first; re-run)
        """
        result = UpdateResult(name=name)
        completed = result.completed
        step = STEP_RESTORE
        try:
            if private_key is None:
                private_key = await self.restore_key(name)
            else:
                key_name = name_from_private_key(private_key)
                if key_name != name:
                    raise KeyMismatchError(name, key_name)

            step = STEP_UPLOAD
            result.document_cid = await self._content(self._store.put, document)
            completed.append(step)

            step = STEP_PUBLISH
            result.record = await self._names(self._pointer.update, private_key, result.document_cid)
            completed.append(step)
        except FormchainError as e:
            raise self._fail(step, e, completed, result) from e

        logger.info(
            "Updated form %s seq=%d -> %s",
            short(name), result.record.sequence, short(result.document_cid, 24),
        )
        return result

    # =========================================================================
    # Key Recovery
    # =========================================================================

    async def restore_key(self, name: str) -> bytes:
        """
        Recover the private key for name on this device.

        Raises:
            EntryNotFoundError: Name not registered
            KeyNotBackedUpError: No locator recorded
            DecryptionFailedError: Wallet did not make this backup
        """
        entry = await self._chain(self._registry.lookup_entry, name)
        if not entry.has_key_locator:
            raise KeyNotBackedUpError(name)
        return await self._wallet(self._vault.restore(entry.key_locator, self._signer, expected_name=name))

    async def restore_all_keys(self, on_progress: Optional[ProgressCallback] = None) -> RestoreReport:
        """
        Restore every active, backed-up identity owned by the signer.

        One identity failing does not stop the batch.

        Args:
            on_progress: Called as on_progress(done, total, name)
        """
        report = RestoreReport()
        names = await self._chain(self._registry.get_owner_names, self.owner)
        total = len(names)
        logger.info("Restoring keys for %d identities of %s", total, self.owner)

        for i, name in enumerate(names, start=1):
            try:
                entry = await self._chain(self._registry.lookup_entry, name)
                if not entry.active or not entry.has_key_locator:
                    report.skipped.append(name)
                else:
                    report.restored[name] = await self._wallet(
                        self._vault.restore(entry.key_locator, self._signer, expected_name=name)
                    )
            except FormchainError as e:
                logger.warning("Restore failed for %s: %s", short(name), e)
                report.failed[name] = e
            if on_progress is not None:
                on_progress(i, total, name)

        logger.info(
            "Restore finished: %d restored, %d failed, %d skipped",
            len(report.restored), len(report.failed), len(report.skipped),
        )
        return report

    async def check_restore_status(self, local_names: Iterable[str]) -> RestoreStatus:
        """Compare the signer's restorable identities with those held locally."""
        local = set(local_names)
        names = await self._chain(self._registry.get_owner_names, self.owner)
        restorable = []
        for name in names:
            entry = await self._chain(self._registry.lookup_entry, name)
            if entry.active and entry.has_key_locator:
                restorable.append(name)
        missing = [n for n in restorable if n not in local]
        return RestoreStatus(total=len(restorable), local=len(restorable) - len(missing), missing=missing)

    async def rotate_key_backup(self, name: str, private_key: Optional[bytes] = None) -> str:
        """
        Re-wrap the key under the current vault scheme and record the new locator.

        Returns:
            New key locator
        """
        completed: List[str] = []
        step = STEP_RESTORE
        locator = None
        try:
            if private_key is None:
                private_key = await self.restore_key(name)

            step = STEP_BACKUP
            locator = await self._wallet(self._vault.rotate(private_key, self._signer))
            completed.append(step)

            step = STEP_UPDATE_LOCATOR
            await self._chain(self._registry.update_key_locator, self.owner, name, locator)
            completed.append(step)
        except FormchainError as e:
            raise self._fail(step, e, completed, locator) from e
        return locator

    # =========================================================================
    # Registry Passthroughs
    # =========================================================================

    async def bind_domain(self, name: str, domain: str, fee: Optional[int] = None) -> None:
        await self._bind_domain(self.owner, name, domain, fee)

    async def release_domain(self, name: str) -> None:
        await self._chain(self._registry.release_domain, self.owner, name)

    async def set_active(self, name: str, active: bool) -> None:
        await self._chain(self._registry.set_active, self.owner, name, active)

    async def submit_response(
        self,
        name: str,
        data: bytes,
        submitter: str = ZERO_ADDRESS,
        verified: bool = False,
        identity_type: str = "",
    ) -> Dict[str, Any]:
        """
        Upload response data and record it against the form.

        The submission kind follows the form's privacy mode; anonymous
        forms never receive submitter details.
        """
        entry = await self._chain(self._registry.lookup_entry, name)
        data_cid = await self._content(self._store.put, data)
        if entry.privacy_mode == PrivacyMode.ANONYMOUS:
            submission_id = await self._chain(self._registry.submit_anonymous_response, name, data_cid)
        else:
            submission_id = await self._chain(
                self._registry.submit_identified_response,
                name, data_cid, submitter, verified, identity_type,
            )
        return {"submissionId": submission_id, "dataCid": data_cid}

    async def list_responses(
        self,
        name: str,
        offset: int = 0,
        limit: Optional[int] = None,
    ) -> List[Submission]:
        """Submissions recorded against name, oldest first."""
        return await self._chain(self._registry.get_submissions, name, offset, limit)

    async def fetch_response(self, submission: Submission) -> bytes:
        return await self._content(self._store.get, submission.data_cid)

    # =========================================================================
    # Read
    # =========================================================================

    async def resolve(self, identifier: str, **kwargs) -> str:
        return (await self.resolve_record(identifier, **kwargs)).cid

    async def resolve_record(self, identifier: str, **kwargs) -> ResolvedForm:
        timeout = self._config.chain_timeout + self._config.pointer_timeout
        return await self._blocking("resolver", timeout, self._resolver.resolve_record, identifier, **kwargs)

    async def fetch_document(self, identifier: str, **kwargs) -> bytes:
        cid = await self.resolve(identifier, **kwargs)
        return await self._content(self._store.get, cid)

    def gateway_url(self, cid: str) -> str:
        return self._config.gateway_link(cid)

    def ipns_gateway_url(self, name: str) -> str:
        return self._config.ipns_gateway_link(name)
