# formchain/registry/form_registry.py
"""
Formchain Registry: FormRegistry

Python interface to the FormRegistry smart contract: identity ownership,
custom domain bindings, active status, encrypted key locators and
response submissions.

Every mutating call takes the owner it acts for and must be signed by
that owner's own account. The client refuses to act for any other
address. Anonymous response submission is the only unauthenticated write.

Requirements:
    pip install web3

Usage:
    registry = FormRegistry(
        contract_address="0x...",
        rpc_url="https://...",
        private_key="0x...",  # Optional, for write ops
    )

    # Register identity
    registry.register(owner, name, "", PrivacyMode.IDENTIFIED)

    # Bind domain (fee in wei)
    registry.bind_domain(owner, name, "feedback", registry.domain_price())

    # Query
    entry = registry.lookup_entry(name)
    name = registry.lookup_by_domain("feedback")
"""

from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass
from enum import IntEnum
from pathlib import Path
from typing import Optional, List, Dict, Any, Tuple

import requests

from ..common import ZERO_ADDRESS, is_cid, is_valid_domain, same_address, short
from ..errors import (
    FormchainError,
    NotFoundError,
    ConflictError,
    AuthorizationError,
    ExternalUnavailableError,
)

# Optional web3 import
try:
    from web3 import Web3
    from web3.exceptions import ContractLogicError, TimeExhausted
    from web3.middleware import ExtraDataToPOAMiddleware
    from eth_account import Account
    WEB3_AVAILABLE = True
except ImportError:
    WEB3_AVAILABLE = False
    Web3 = None


logger = logging.getLogger("formchain.registry")


# =============================================================================
# Constants
# =============================================================================

# Load ABI
ABI_PATH = Path(__file__).parent / "contracts" / "abi" / "FormRegistry.json"


def _load_abi() -> List[Dict]:
    """Load contract ABI from JSON file."""
    if ABI_PATH.exists():
        with open(ABI_PATH) as f:
            data = json.load(f)
            return data.get("abi", data) if isinstance(data, dict) else data
    return []


CONTRACT_ABI = _load_abi()

DEFAULT_DOMAIN_PRICE = 10 ** 15  # 0.001 ETH in wei
MAX_PAGE_SIZE = 100

# Gas limits per call
GAS_REGISTER = 300000
GAS_DOMAIN = 150000
GAS_UPDATE = 100000
GAS_SUBMIT = 200000


# =============================================================================
# Types
# =============================================================================

class PrivacyMode(IntEnum):
    """Response privacy mode (matches Solidity enum)."""
    IDENTIFIED = 0
    ANONYMOUS = 1


@dataclass
class RegistryEntry:
    """
    Identity entry from the registry.

    Attributes:
        owner: Owner address
        name: Mutable name (also the on-chain form id)
        key_locator: CID of the encrypted key backup ("" if none yet)
        privacy_mode: IDENTIFIED or ANONYMOUS
        active: False once retired (soft delete)
        custom_domain: Bound domain ("" if none)
        created_at: Registration timestamp
    """
    owner: str
    name: str
    key_locator: str
    privacy_mode: PrivacyMode
    active: bool
    custom_domain: str
    created_at: int

    @property
    def has_key_locator(self) -> bool:
        return bool(self.key_locator)

    @property
    def has_domain(self) -> bool:
        return bool(self.custom_domain)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "owner": self.owner,
            "name": self.name,
            "keyLocator": self.key_locator,
            "privacyMode": self.privacy_mode.name.lower(),
            "active": self.active,
            "customDomain": self.custom_domain,
            "createdAt": self.created_at,
        }

    @classmethod
    def from_contract_tuple(cls, data: Tuple) -> RegistryEntry:
        """Create from getForm() return tuple."""
        return cls(
            owner=data[0],
            name=data[1],
            key_locator=data[2],
            privacy_mode=PrivacyMode(int(data[3])),
            created_at=int(data[4]),
            active=bool(data[5]),
            custom_domain=data[6],
        )


@dataclass
class Submission:
    """Response recorded against a form; data_cid points at the stored payload."""
    submission_id: int
    name: str
    data_cid: str
    submitter: str
    verified: bool
    identity_type: str
    timestamp: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.submission_id,
            "name": self.name,
            "dataCid": self.data_cid,
            "submitter": self.submitter,
            "verified": self.verified,
            "identityType": self.identity_type,
            "timestamp": self.timestamp,
        }

    @classmethod
    def from_contract_tuple(cls, submission_id: int, data: Tuple) -> Submission:
        """Create from getResponse() return tuple."""
        return cls(
            submission_id=int(submission_id),
            name=data[0],
            data_cid=data[1],
            submitter=data[2],
            timestamp=int(data[3]),
            verified=bool(data[4]),
            identity_type=data[5],
        )


def page_slice(items: List[Any], offset: int = 0, limit: Optional[int] = None) -> List[Any]:
    """Oldest-first window over items; limit None means to the end."""
    if offset < 0:
        raise ValueError("offset must be >= 0")
    if limit is not None and not 1 <= limit <= MAX_PAGE_SIZE:
        raise ValueError(f"limit must be 1-{MAX_PAGE_SIZE}")
    end = None if limit is None else offset + limit
    return list(items[offset:end])


# =============================================================================
# Exceptions
# =============================================================================

class RegistryError(FormchainError):
    """Base registry error."""
    pass


class EntryNotFoundError(RegistryError, NotFoundError):
    """Name not registered."""
    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Entry not found: {short(name)}")


class DomainNotFoundError(RegistryError, NotFoundError):
    """No binding for domain."""
    def __init__(self, domain: str):
        self.domain = domain
        super().__init__(f"Domain not found: {domain}")


class AlreadyRegisteredError(RegistryError, ConflictError):
    """Name already registered."""
    def __init__(self, name: str, owner: str):
        self.name = name
        self.owner = owner
        super().__init__(f"Already registered: {short(name)}, owner: {owner}")


class DomainTakenError(RegistryError, ConflictError):
    """Domain bound to another (or the same) name."""
    def __init__(self, domain: str, bound_to: str):
        self.domain = domain
        self.bound_to = bound_to
        super().__init__(f"Domain taken: {domain} -> {short(bound_to)}")


class DomainAlreadyBoundError(RegistryError, ConflictError):
    """Name already holds a domain; release it first."""
    def __init__(self, name: str, domain: str):
        self.name = name
        self.domain = domain
        super().__init__(f"Name {short(name)} already bound to domain: {domain}")


class NotOwnerError(RegistryError, AuthorizationError):
    """Caller is not the entry owner."""
    def __init__(self, name: str, caller: str):
        self.name = name
        self.caller = caller
        super().__init__(f"Not owner: {short(name)}, caller: {caller}")


class InsufficientFeeError(RegistryError):
    """Domain fee below the configured price."""
    def __init__(self, fee: int, price: int):
        self.fee = fee
        self.price = price
        super().__init__(f"Insufficient fee: {fee} < {price} wei")


class InvalidDomainError(RegistryError, ValueError):
    """Domain does not match ^[a-z0-9-]+$ or is too long."""
    def __init__(self, domain: str):
        self.domain = domain
        super().__init__(f"Invalid domain: {domain!r}")


class InvalidLocatorError(RegistryError, ValueError):
    """Value is not a content identifier."""
    def __init__(self, value: str):
        self.value = value
        super().__init__(f"Not a content identifier: {value!r}")


class FormInactiveError(RegistryError):
    """Entry is retired."""
    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Form inactive: {short(name)}")


class PrivacyModeError(RegistryError):
    """Submission kind does not match the form's privacy mode."""
    def __init__(self, name: str, mode: PrivacyMode):
        self.name = name
        self.mode = mode
        super().__init__(f"Form {short(name)} accepts {mode.name.lower()} responses only")


class RegistryUnavailableError(RegistryError, ExternalUnavailableError):
    """RPC unreachable or transaction not confirmed."""
    pass


class Web3NotAvailableError(RegistryError):
    """web3.py not installed."""
    def __init__(self):
        super().__init__("web3.py not available. Install with: pip install web3")


# =============================================================================
# Helper Functions
# =============================================================================

def validate_domain(domain: str) -> None:
    if not is_valid_domain(domain):
        raise InvalidDomainError(domain)


def validate_locator(locator: str, allow_empty: bool = True) -> None:
    if locator == "" and allow_empty:
        return
    if not is_cid(locator):
        raise InvalidLocatorError(locator)


# =============================================================================
# FormRegistry
# =============================================================================

class FormRegistry:
    """
    FormRegistry contract interface.

    Reads are free calls; writes are signed by the configured account,
    sent, and waited on until mined.
    """

    def __init__(
        self,
        contract_address: str,
        rpc_url: str,
        private_key: Optional[str] = None,
        chain_id: Optional[int] = None,
        poa: bool = False,
        receipt_timeout: float = 120.0,
    ):
        """
        Initialize FormRegistry.

        Args:
            contract_address: Deployed FormRegistry address
            rpc_url: RPC endpoint URL
            private_key: Owner's private key for write operations (optional)
            chain_id: Chain ID (auto-detected if not provided)
            poa: Inject extraData middleware for PoA chains
            receipt_timeout: Seconds to wait for a transaction to be mined
        """
        if not WEB3_AVAILABLE:
            raise Web3NotAvailableError()

        self.contract_address = Web3.to_checksum_address(contract_address)
        self.rpc_url = rpc_url
        self._receipt_timeout = receipt_timeout

        self._w3 = Web3(Web3.HTTPProvider(rpc_url))
        if poa:
            self._w3.middleware_onion.inject(ExtraDataToPOAMiddleware, layer=0)

        self._contract = self._w3.eth.contract(
            address=self.contract_address,
            abi=CONTRACT_ABI,
        )

        self._account = Account.from_key(private_key) if private_key else None
        self._chain_id = chain_id

    @property
    def account_address(self) -> Optional[str]:
        """Get account address (if private key provided)."""
        return self._account.address if self._account else None

    @property
    def chain_id(self) -> int:
        if self._chain_id is None:
            self._chain_id = self._rpc(lambda: self._w3.eth.chain_id)
        return self._chain_id

    # =========================================================================
    # Internals
    # =========================================================================

    def _rpc(self, fn):
        """Run a read against the node, mapping transport failures."""
        try:
            return fn()
        except (requests.exceptions.RequestException, OSError) as e:
            raise RegistryUnavailableError(f"RPC unreachable: {e}") from e

    def _require_owner(self, owner: str, name: str) -> None:
        if not self._account:
            raise RegistryError("Private key required for write operations")
        if not same_address(owner, self._account.address):
            raise NotOwnerError(name, self._account.address)

    def _map_revert(self, e: Exception, name: str = "", domain: str = "", fee: int = 0):
        msg = str(e)
        if "NotOwner" in msg or "Not form creator" in msg:
            return NotOwnerError(name, self.account_address or "")
        if "AlreadyRegistered" in msg or "Form already exists" in msg:
            return AlreadyRegisteredError(name, self._owner_of(name))
        if "DomainAlreadyBound" in msg:
            return DomainAlreadyBoundError(name, self._domain_of(name))
        if "DomainTaken" in msg or "Domain already registered" in msg:
            return DomainTakenError(domain, self._name_for_domain(domain))
        if "InsufficientFee" in msg or "Insufficient payment" in msg:
            return InsufficientFeeError(fee, self.domain_price())
        if "FormNotFound" in msg or "Form does not exist" in msg:
            return EntryNotFoundError(name)
        if "FormInactive" in msg or "Form is not active" in msg:
            return FormInactiveError(name)
        if "InvalidDomain" in msg:
            return InvalidDomainError(domain)
        if "PrivacyMode" in msg:
            return PrivacyModeError(name, self.lookup_entry(name).privacy_mode)
        return RegistryError(f"Transaction reverted: {msg}")

    def _owner_of(self, name: str) -> str:
        try:
            return self.lookup_entry(name).owner
        except RegistryError:
            return ZERO_ADDRESS

    def _domain_of(self, name: str) -> str:
        try:
            return self.lookup_entry(name).custom_domain
        except RegistryError:
            return ""

    def _name_for_domain(self, domain: str) -> str:
        try:
            return self.lookup_by_domain(domain)
        except RegistryError:
            return ""

    def _transact(
        self,
        fn,
        gas: int,
        value: int = 0,
        name: str = "",
        domain: str = "",
    ):
        """
        Preflight, sign, send and wait for a contract call.

        Returns:
            (tx_hash hex, receipt)
        """
        sender = self._account.address
        try:
            # Dry-run surfaces the revert reason before paying gas
            fn.call({"from": sender, "value": value})
        except ContractLogicError as e:
            raise self._map_revert(e, name=name, domain=domain, fee=value) from e
        except (requests.exceptions.RequestException, OSError) as e:
            raise RegistryUnavailableError(f"RPC unreachable: {e}") from e

        try:
            tx = fn.build_transaction({
                "from": sender,
                "chainId": self.chain_id,
                "nonce": self._w3.eth.get_transaction_count(sender),
                "gas": gas,
                "gasPrice": self._w3.eth.gas_price,
                "value": value,
            })
            signed = self._account.sign_transaction(tx)
            tx_hash = self._w3.eth.send_raw_transaction(signed.raw_transaction)
            receipt = self._w3.eth.wait_for_transaction_receipt(tx_hash, timeout=self._receipt_timeout)
        except TimeExhausted as e:
            raise RegistryUnavailableError(f"Transaction not mined within {self._receipt_timeout}s") from e
        except (requests.exceptions.RequestException, OSError) as e:
            raise RegistryUnavailableError(f"RPC unreachable: {e}") from e

        if receipt["status"] != 1:
            raise RegistryError(f"Transaction failed: {tx_hash.hex()}")

        logger.info("Registry tx confirmed: %s (block %s)", tx_hash.hex(), receipt.get("blockNumber"))
        return tx_hash.hex(), receipt

    # =========================================================================
    # Write Operations
    # =========================================================================

    def register(
        self,
        owner: str,
        name: str,
        key_locator: str,
        privacy_mode: PrivacyMode = PrivacyMode.IDENTIFIED,
    ) -> str:
        """
        Register a new identity.

        Args:
            owner: Owner address (must be this client's account)
            name: Mutable name
            key_locator: Encrypted key backup CID ("" to set later)
            privacy_mode: IDENTIFIED or ANONYMOUS

        Returns:
            tx_hash: Transaction hash

        Raises:
            AlreadyRegisteredError: Name already registered
        """
        self._require_owner(owner, name)
        validate_locator(key_locator)

        fn = self._contract.functions.registerForm(
            Web3.to_checksum_address(owner),
            name,  # form id
            name,
            key_locator,
            int(privacy_mode),
        )
        tx_hash, _ = self._transact(fn, GAS_REGISTER, name=name)
        return tx_hash

    def bind_domain(self, owner: str, name: str, domain: str, fee: int) -> str:
        """
        Bind a custom domain to a name, paying fee (wei).

        Raises:
            DomainTakenError, InsufficientFeeError, NotOwnerError,
            DomainAlreadyBoundError, InvalidDomainError
        """
        self._require_owner(owner, name)
        validate_domain(domain)

        fn = self._contract.functions.registerCustomDomain(name, domain)
        tx_hash, _ = self._transact(fn, GAS_DOMAIN, value=fee, name=name, domain=domain)
        return tx_hash

    def release_domain(self, owner: str, name: str) -> str:
        """Free the name's domain for re-registration by anyone."""
        self._require_owner(owner, name)
        fn = self._contract.functions.releaseCustomDomain(name)
        tx_hash, _ = self._transact(fn, GAS_DOMAIN, name=name)
        return tx_hash

    def set_active(self, owner: str, name: str, active: bool) -> str:
        """Soft delete / restore."""
        self._require_owner(owner, name)
        fn = self._contract.functions.setFormStatus(name, bool(active))
        tx_hash, _ = self._transact(fn, GAS_UPDATE, name=name)
        return tx_hash

    def update_key_locator(self, owner: str, name: str, locator: str) -> str:
        """Record a new encrypted key backup CID."""
        self._require_owner(owner, name)
        validate_locator(locator, allow_empty=False)
        fn = self._contract.functions.updateEncryptedKey(name, locator)
        tx_hash, _ = self._transact(fn, GAS_UPDATE, name=name)
        return tx_hash

    def submit_anonymous_response(self, name: str, data_cid: str) -> int:
        """
        Submit a response to an ANONYMOUS form. Unauthenticated: the
        configured account only pays gas.

        Returns:
            submission_id
        """
        if not self._account:
            raise RegistryError("Private key required for write operations")
        validate_locator(data_cid, allow_empty=False)

        fn = self._contract.functions.submitAnonymousResponse(name, data_cid)
        _, receipt = self._transact(fn, GAS_SUBMIT, name=name)
        logs = self._contract.events.AnonymousSubmissionReceived().process_receipt(receipt)
        if logs:
            return int(logs[0]["args"]["submissionId"])
        return self.get_submission_count(name) - 1

    def submit_identified_response(
        self,
        name: str,
        data_cid: str,
        submitter: str = ZERO_ADDRESS,
        verified: bool = False,
        identity_type: str = "",
    ) -> int:
        """
        Submit a response to an IDENTIFIED form.

        Args:
            submitter: Respondent address (zero address if not disclosed)
            verified: Respondent identity verified by the caller
            identity_type: e.g. "wallet", "email"

        Returns:
            submission_id
        """
        if not self._account:
            raise RegistryError("Private key required for write operations")
        validate_locator(data_cid, allow_empty=False)

        fn = self._contract.functions.submitIdentifiedResponse(
            name,
            data_cid,
            Web3.to_checksum_address(submitter),
            bool(verified),
            identity_type,
        )
        _, receipt = self._transact(fn, GAS_SUBMIT, name=name)
        logs = self._contract.events.IdentifiedSubmissionReceived().process_receipt(receipt)
        if logs:
            return int(logs[0]["args"]["submissionId"])
        return self.get_submission_count(name) - 1

    # =========================================================================
    # Read Operations
    # =========================================================================

    def lookup_entry(self, name: str) -> RegistryEntry:
        """Get entry by name."""
        data = self._rpc(lambda: self._contract.functions.getForm(name).call())
        entry = RegistryEntry.from_contract_tuple(data)
        if same_address(entry.owner, ZERO_ADDRESS):
            raise EntryNotFoundError(name)
        return entry

    def lookup_by_domain(self, domain: str) -> str:
        """Get the name bound to domain."""
        validate_domain(domain)
        name = self._rpc(lambda: self._contract.functions.customDomains(domain).call())
        if not name:
            raise DomainNotFoundError(domain)
        return name

    def get_owner_names(self, owner: str) -> List[str]:
        """All names registered by owner, oldest first."""
        owner = Web3.to_checksum_address(owner)
        return list(self._rpc(lambda: self._contract.functions.getCreatorForms(owner).call()))

    def domain_price(self) -> int:
        """Current domain fee in wei."""
        return int(self._rpc(lambda: self._contract.functions.domainPrice().call()))

    def get_submission_count(self, name: str) -> int:
        return int(self._rpc(lambda: self._contract.functions.getFormSubmissionCount(name).call()))

    def get_submissions(self, name: str, offset: int = 0, limit: Optional[int] = None) -> List[Submission]:
        """Submissions for name, oldest first, one getResponse read per id."""
        ids = self._rpc(lambda: self._contract.functions.getFormResponses(name).call())
        submissions = []
        for submission_id in page_slice(list(ids), offset, limit):
            data = self._rpc(lambda: self._contract.functions.getResponse(submission_id).call())
            submissions.append(Submission.from_contract_tuple(submission_id, data))
        return submissions


# =============================================================================
# Mock FormRegistry (for testing without blockchain)
# =============================================================================

class MockFormRegistry:
    """
    In-memory FormRegistry for testing.

    No blockchain required. Enforces the same rules as the contract;
    set_account() selects whose credential signs subsequent writes.
    """

    def __init__(self, domain_price: int = DEFAULT_DOMAIN_PRICE):
        self._entries: Dict[str, RegistryEntry] = {}
        self._owner_names: Dict[str, List[str]] = {}
        self._domains: Dict[str, str] = {}
        self._submissions: Dict[str, List[Submission]] = {}
        self._domain_price = domain_price
        self._next_submission_id = 0
        self._tx_counter = 0
        self._current_address = "0x" + "1" * 40  # Mock address
        self.collected_fees = 0
        self.fail_next: Optional[Exception] = None

    def set_account(self, address: str) -> None:
        """Set current account address."""
        self._current_address = address

    def set_domain_price(self, price: int) -> None:
        self._domain_price = price

    def _check_available(self) -> None:
        if self.fail_next is not None:
            err, self.fail_next = self.fail_next, None
            raise err

    def _tx_hash(self) -> str:
        self._tx_counter += 1
        return "0x" + format(self._tx_counter, "064x")  # Mock tx hash

    def _require_owner(self, owner: str, name: str) -> RegistryEntry:
        if not same_address(owner, self._current_address):
            raise NotOwnerError(name, self._current_address)
        entry = self._get(name)
        if not same_address(entry.owner, owner):
            raise NotOwnerError(name, owner)
        return entry

    def _get(self, name: str) -> RegistryEntry:
        if name not in self._entries:
            raise EntryNotFoundError(name)
        return self._entries[name]

    # =========================================================================
    # Write Operations
    # =========================================================================

    def register(
        self,
        owner: str,
        name: str,
        key_locator: str,
        privacy_mode: PrivacyMode = PrivacyMode.IDENTIFIED,
    ) -> str:
        """Register a new identity (in memory)."""
        self._check_available()
        if not same_address(owner, self._current_address):
            raise NotOwnerError(name, self._current_address)
        validate_locator(key_locator)

        if name in self._entries:
            raise AlreadyRegisteredError(name, self._entries[name].owner)

        self._entries[name] = RegistryEntry(
            owner=owner,
            name=name,
            key_locator=key_locator,
            privacy_mode=PrivacyMode(privacy_mode),
            active=True,
            custom_domain="",
            created_at=int(time.time()),
        )
        self._owner_names.setdefault(owner.lower(), []).append(name)
        logger.info("Registered %s for %s", short(name), owner)
        return self._tx_hash()

    def bind_domain(self, owner: str, name: str, domain: str, fee: int) -> str:
        """Bind domain (in memory)."""
        self._check_available()
        validate_domain(domain)
        entry = self._require_owner(owner, name)

        if not entry.active:
            raise FormInactiveError(name)
        if domain in self._domains:
            raise DomainTakenError(domain, self._domains[domain])
        if entry.custom_domain:
            raise DomainAlreadyBoundError(name, entry.custom_domain)
        if fee < self._domain_price:
            raise InsufficientFeeError(fee, self._domain_price)

        self._domains[domain] = name
        entry.custom_domain = domain
        self.collected_fees += fee
        logger.info("Bound domain %s -> %s", domain, short(name))
        return self._tx_hash()

    def release_domain(self, owner: str, name: str) -> str:
        """Release domain (in memory). No-op if none bound."""
        self._check_available()
        entry = self._require_owner(owner, name)
        if entry.custom_domain:
            del self._domains[entry.custom_domain]
            logger.info("Released domain %s", entry.custom_domain)
            entry.custom_domain = ""
        return self._tx_hash()

    def set_active(self, owner: str, name: str, active: bool) -> str:
        self._check_available()
        entry = self._require_owner(owner, name)
        entry.active = bool(active)
        return self._tx_hash()

    def update_key_locator(self, owner: str, name: str, locator: str) -> str:
        self._check_available()
        validate_locator(locator, allow_empty=False)
        entry = self._require_owner(owner, name)
        entry.key_locator = locator
        return self._tx_hash()

    def _submit(
        self,
        name: str,
        data_cid: str,
        mode: PrivacyMode,
        submitter: str,
        verified: bool,
        identity_type: str,
    ) -> int:
        self._check_available()
        validate_locator(data_cid, allow_empty=False)
        entry = self._get(name)
        if not entry.active:
            raise FormInactiveError(name)
        if entry.privacy_mode != mode:
            raise PrivacyModeError(name, entry.privacy_mode)

        submission_id = self._next_submission_id
        self._next_submission_id += 1
        self._submissions.setdefault(name, []).append(Submission(
            submission_id=submission_id,
            name=name,
            data_cid=data_cid,
            submitter=submitter,
            verified=verified,
            identity_type=identity_type,
            timestamp=int(time.time()),
        ))
        return submission_id

    def submit_anonymous_response(self, name: str, data_cid: str) -> int:
        """Submit anonymous response (no caller check)."""
        return self._submit(name, data_cid, PrivacyMode.ANONYMOUS, ZERO_ADDRESS, False, "")

    def submit_identified_response(
        self,
        name: str,
        data_cid: str,
        submitter: str = ZERO_ADDRESS,
        verified: bool = False,
        identity_type: str = "",
    ) -> int:
        return self._submit(name, data_cid, PrivacyMode.IDENTIFIED, submitter, verified, identity_type)

    # =========================================================================
    # Read Operations
    # =========================================================================

    def lookup_entry(self, name: str) -> RegistryEntry:
        """Get entry (a copy; mutate only through writes)."""
        self._check_available()
        entry = self._get(name)
        return RegistryEntry(**entry.__dict__)

    def lookup_by_domain(self, domain: str) -> str:
        self._check_available()
        validate_domain(domain)
        if domain not in self._domains:
            raise DomainNotFoundError(domain)
        return self._domains[domain]

    def get_owner_names(self, owner: str) -> List[str]:
        self._check_available()
        return list(self._owner_names.get(owner.lower(), []))

    def domain_price(self) -> int:
        return self._domain_price

    def get_submission_count(self, name: str) -> int:
        self._get(name)
        return len(self._submissions.get(name, []))

    def get_submissions(self, name: str, offset: int = 0, limit: Optional[int] = None) -> List[Submission]:
        self._check_available()
        self._get(name)
        return page_slice(self._submissions.get(name, []), offset, limit)
