# formchain/__init__.py
"""
Formchain: Form Identity, Publish and Resolution

One long-lived, updateable identifier per form on top of immutable
content-addressed storage:

    storage   Content store client (IPFS, memory)
    naming    Keypair-derived mutable names and signed sequenced records
    wallet    External signer interface
    vault     Wallet-derived encrypted backup of name keys
    registry  On-chain ownership, domain aliases, resolver
    service   Create / update / restore sagas with per-system timeouts

Usage:
    from formchain import FormIdentityService, FormchainConfig, LocalAccountSigner

    service = FormIdentityService.from_config(FormchainConfig.from_env(), signer, key)
    created = await service.create_form(document, domain="feedback")
    cid = await service.resolve("feedback")

Version: 0.1.0
"""

__version__ = "0.1.0"

from .config import FormchainConfig, configure_logging
from .errors import (
    FormchainError,
    NotFoundError,
    ConflictError,
    AuthorizationError,
    IntegrityError,
    ExternalUnavailableError,
    StepTimeoutError,
)
from .storage import ContentStore, IPFSContentStore, MemoryContentStore
from .naming import (
    MutablePointer,
    MutableRecord,
    MemoryNameNetwork,
    HTTPNameNetwork,
    SequenceTracker,
)
from .wallet import Signer, LocalAccountSigner
from .vault import KeyVault, DecryptionFailedError
from .registry import (
    FormRegistry,
    MockFormRegistry,
    PrivacyMode,
    RegistryEntry,
    Resolver,
    LegacyTable,
)
from .service import (
    FormIdentityService,
    CreateResult,
    UpdateResult,
    RestoreReport,
    RestoreStatus,
    SagaError,
    PartialCompletionError,
    NothingCompletedError,
)

__all__ = [
    "__version__",
    # Config
    "FormchainConfig",
    "configure_logging",
    # Errors
    "FormchainError",
    "NotFoundError",
    "ConflictError",
    "AuthorizationError",
    "IntegrityError",
    "ExternalUnavailableError",
    "StepTimeoutError",
    # Storage
    "ContentStore",
    "IPFSContentStore",
    "MemoryContentStore",
    # Naming
    "MutablePointer",
    "MutableRecord",
    "MemoryNameNetwork",
    "HTTPNameNetwork",
    "SequenceTracker",
    # Wallet / Vault
    "Signer",
    "LocalAccountSigner",
    "KeyVault",
    "DecryptionFailedError",
    # Registry
    "FormRegistry",
    "MockFormRegistry",
    "PrivacyMode",
    "RegistryEntry",
    "Resolver",
    "LegacyTable",
    # Service
    "FormIdentityService",
    "CreateResult",
    "UpdateResult",
    "RestoreReport",
    "RestoreStatus",
    "SagaError",
    "PartialCompletionError",
    "NothingCompletedError",
]
