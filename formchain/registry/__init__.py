# formchain/registry/__init__.py
"""
Formchain Registry Layer

On-chain identity ownership, domain aliasing and identifier resolution.

Components:
    FormRegistry: web3 client for the FormRegistry contract
    MockFormRegistry: In-memory registry for testing
    Resolver: Identifier -> current content identifier
"""

from .form_registry import (
    FormRegistry,
    MockFormRegistry,
    RegistryEntry,
    PrivacyMode,
    Submission,
    RegistryError,
    EntryNotFoundError,
    DomainNotFoundError,
    AlreadyRegisteredError,
    DomainTakenError,
    DomainAlreadyBoundError,
    NotOwnerError,
    InsufficientFeeError,
    InvalidDomainError,
    InvalidLocatorError,
    FormInactiveError,
    PrivacyModeError,
    RegistryUnavailableError,
    Web3NotAvailableError,
    WEB3_AVAILABLE,
)

from .resolver import (
    Resolver,
    ResolvedForm,
    LegacyTable,
    IdentifierKind,
    ParsedIdentifier,
    classify,
    ResolverError,
    IdentityNotFoundError,
    IdentityRetiredError,
    UnsupportedLegacyFormatError,
)

__all__ = [
    # Registry
    "FormRegistry",
    "MockFormRegistry",
    "RegistryEntry",
    "PrivacyMode",
    "Submission",
    "RegistryError",
    "EntryNotFoundError",
    "DomainNotFoundError",
    "AlreadyRegisteredError",
    "DomainTakenError",
    "DomainAlreadyBoundError",
    "NotOwnerError",
    "InsufficientFeeError",
    "InvalidDomainError",
    "InvalidLocatorError",
    "FormInactiveError",
    "PrivacyModeError",
    "RegistryUnavailableError",
    "Web3NotAvailableError",
    "WEB3_AVAILABLE",
    # Resolver
    "Resolver",
    "ResolvedForm",
    "LegacyTable",
    "IdentifierKind",
    "ParsedIdentifier",
    "classify",
    "ResolverError",
    "IdentityNotFoundError",
    "IdentityRetiredError",
    "UnsupportedLegacyFormatError",
]
