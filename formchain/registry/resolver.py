# formchain/registry/resolver.py
"""
Formchain Registry: Resolver

Turns any accepted form identifier into the current content identifier.

Identifiers are classified before any lookup:
    MUTABLE_NAME  "k51..."          resolve the pointer directly
    DOMAIN        "feedback"        registry domain -> name -> pointer
    LEGACY        "form-1699..."    deprecated table, or a static CID

Every pointer record is verified (signature, name binding, sequence
monotonicity, expiry) on each resolution; only domain -> name mappings
are ever cached, never the pointed CID.

Usage:
    from formchain.registry import Resolver, MockFormRegistry
    from formchain.naming import MutablePointer, MemoryNameNetwork

    resolver = Resolver(registry, MutablePointer(network))
    cid = resolver.resolve("feedback")
    resolved = resolver.resolve_record("k51qzi5uqu5d...")
"""

from __future__ import annotations

import json
import logging
import re
import time
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Optional, Dict, Union, TYPE_CHECKING

from ..common import from_ipfs_path, is_cid, is_valid_domain, short
from ..errors import FormchainError, NotFoundError
from ..naming import (
    MutablePointer,
    MutableRecord,
    NameNotFoundError,
    RecordExpiredError,
    is_mutable_name,
)
from .form_registry import DomainNotFoundError, EntryNotFoundError

if TYPE_CHECKING:
    from .form_registry import FormRegistry, MockFormRegistry


logger = logging.getLogger("formchain.resolver")

LEGACY_ID_RE = re.compile(r"^form-\d+$")


# =============================================================================
# Exceptions
# =============================================================================

class ResolverError(FormchainError):
    """Base resolver error."""
    pass


class IdentityNotFoundError(ResolverError, NotFoundError):
    """Name has never published a record."""
    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Identity not found: {short(name)}")


class UnsupportedLegacyFormatError(ResolverError):
    """Identifier is neither a name, a bound domain, nor a known legacy id."""
    def __init__(self, identifier: str):
        self.identifier = identifier
        super().__init__(f"Unsupported identifier format: {identifier!r}")


class IdentityRetiredError(ResolverError):
    """Registry marks the identity inactive."""
    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Identity retired: {short(name)}")


# =============================================================================
# Identifier Classification
# =============================================================================

class IdentifierKind(Enum):
    MUTABLE_NAME = "mutable_name"
    DOMAIN = "domain"
    LEGACY = "legacy"


@dataclass(frozen=True)
class ParsedIdentifier:
    """Identifier tagged with the lookup path it takes."""
    kind: IdentifierKind
    value: str

    @property
    def is_legacy_shaped(self) -> bool:
        """Looks like a pre-pointer form id or a raw content identifier."""
        return bool(LEGACY_ID_RE.match(self.value)) or is_cid(self.value)


def classify(identifier: str) -> ParsedIdentifier:
    """
    Tag identifier with its kind.

    Raises:
        UnsupportedLegacyFormatError: Empty or non-string identifier
    """
    if not isinstance(identifier, str) or not identifier.strip():
        raise UnsupportedLegacyFormatError(str(identifier))
    value = identifier.strip()
    if is_mutable_name(value):
        return ParsedIdentifier(IdentifierKind.MUTABLE_NAME, value)
    if is_valid_domain(value):
        return ParsedIdentifier(IdentifierKind.DOMAIN, value)
    return ParsedIdentifier(IdentifierKind.LEGACY, value)


# =============================================================================
# Legacy Table
# =============================================================================

class LegacyTable:
    """
    Deprecated mapping for identifiers created before mutable names.

    Values are either a mutable name or a static content identifier.
    Read-only: new identities are never added here.
    """

    def __init__(self, mapping: Optional[Dict[str, str]] = None):
        self._mapping: Dict[str, str] = dict(mapping or {})

    @classmethod
    def load(cls, path: Union[str, Path]) -> LegacyTable:
        with open(path) as f:
            return cls(json.load(f))

    def lookup(self, identifier: str) -> Optional[str]:
        value = self._mapping.get(identifier)
        return from_ipfs_path(value) if value else None

    def __contains__(self, identifier: str) -> bool:
        return identifier in self._mapping

    def __len__(self) -> int:
        return len(self._mapping)


# =============================================================================
# Result
# =============================================================================

@dataclass
class ResolvedForm:
    """Outcome of a resolution."""
    identifier: str
    kind: IdentifierKind
    cid: str
    name: Optional[str] = None
    domain: Optional[str] = None
    record: Optional[MutableRecord] = None
    via_legacy: bool = False
    expired: bool = False

    @property
    def sequence(self) -> Optional[int]:
        return self.record.sequence if self.record else None


@dataclass
class CacheEntry:
    """Cached domain -> name mapping."""
    name: str
    cached_at: float
    ttl: float

    def is_expired(self) -> bool:
        return time.time() > self.cached_at + self.ttl


# =============================================================================
# Resolver
# =============================================================================

class Resolver:
    """
    Identifier resolver.

    Failure modes stay distinct: DomainNotFoundError, IdentityNotFoundError,
    RecordExpiredError, SignatureInvalidError, UnsupportedLegacyFormatError.
    """

    def __init__(
        self,
        registry: Union["FormRegistry", "MockFormRegistry"],
        pointer: MutablePointer,
        legacy: Optional[LegacyTable] = None,
        allow_static_cids: bool = True,
        domain_cache_ttl: float = 0.0,
    ):
        """
        Args:
            registry: FormRegistry or MockFormRegistry instance
            pointer: MutablePointer used for record resolution
            legacy: Deprecated legacy id table (optional)
            allow_static_cids: Raw CIDs resolve to themselves
            domain_cache_ttl: Seconds to cache domain -> name (0 disables)
        """
        self._registry = registry
        self._pointer = pointer
        self._legacy = legacy or LegacyTable()
        self._allow_static_cids = allow_static_cids
        self._cache_ttl = domain_cache_ttl
        self._domain_cache: Dict[str, CacheEntry] = {}

    # =========================================================================
    # Primary Resolution Methods
    # =========================================================================

    def resolve(
        self,
        identifier: str,
        allow_expired: bool = False,
        require_active: bool = False,
    ) -> str:
        """Resolve identifier to the current content identifier."""
        return self.resolve_record(identifier, allow_expired, require_active).cid

    def resolve_record(
        self,
        identifier: str,
        allow_expired: bool = False,
        require_active: bool = False,
    ) -> ResolvedForm:
        """
        Resolve identifier with full provenance.

        Args:
            identifier: Mutable name, custom domain, or legacy id / CID
            allow_expired: Return the pointed CID of an expired but valid record
            require_active: Fail if the registry marks the identity retired

        Raises:
            DomainNotFoundError: Domain-shaped identifier not bound
            IdentityNotFoundError: Name never published
            RecordExpiredError: Latest record expired (allow_expired=False)
            SignatureInvalidError: Record failed verification
            UnsupportedLegacyFormatError: Nothing matched
            IdentityRetiredError: Retired and require_active=True
        """
        parsed = classify(identifier)

        if parsed.kind is IdentifierKind.MUTABLE_NAME:
            return self._resolve_name(parsed, parsed.value, None, allow_expired, require_active)

        if parsed.kind is IdentifierKind.DOMAIN:
            try:
                name = self.lookup_domain(parsed.value)
            except DomainNotFoundError:
                legacy = self._resolve_legacy(parsed, allow_expired, require_active)
                if legacy is not None:
                    return legacy
                if parsed.is_legacy_shaped:
                    raise UnsupportedLegacyFormatError(parsed.value)
                raise
            return self._resolve_name(parsed, name, parsed.value, allow_expired, require_active)

        legacy = self._resolve_legacy(parsed, allow_expired, require_active)
        if legacy is None:
            raise UnsupportedLegacyFormatError(parsed.value)
        return legacy

    def lookup_domain(self, domain: str) -> str:
        """Domain -> name through the registry (optionally cached)."""
        if self._cache_ttl > 0 and domain in self._domain_cache:
            entry = self._domain_cache[domain]
            if not entry.is_expired():
                return entry.name
            del self._domain_cache[domain]

        name = self._registry.lookup_by_domain(domain)
        if self._cache_ttl > 0:
            self._domain_cache[domain] = CacheEntry(name=name, cached_at=time.time(), ttl=self._cache_ttl)
        return name

    # =========================================================================
    # Paths
    # =========================================================================

    def _resolve_name(
        self,
        parsed: ParsedIdentifier,
        name: str,
        domain: Optional[str],
        allow_expired: bool,
        require_active: bool,
        via_legacy: bool = False,
    ) -> ResolvedForm:
        if require_active:
            self._check_active(name)

        expired = False
        try:
            record = self._pointer.resolve_latest(name)
        except NameNotFoundError as e:
            raise IdentityNotFoundError(name) from e
        except RecordExpiredError as e:
            if not allow_expired:
                raise
            logger.warning("Serving expired record for %s seq=%d", short(name), e.record.sequence)
            record = e.record
            expired = True

        return ResolvedForm(
            identifier=parsed.value,
            kind=parsed.kind,
            cid=record.pointed_cid,
            name=name,
            domain=domain,
            record=record,
            via_legacy=via_legacy,
            expired=expired,
        )

    def _resolve_legacy(
        self,
        parsed: ParsedIdentifier,
        allow_expired: bool,
        require_active: bool,
    ) -> Optional[ResolvedForm]:
        target = self._legacy.lookup(parsed.value)
        if target is not None:
            logger.warning("Resolved %s through deprecated legacy table", parsed.value)
            if is_mutable_name(target):
                return self._resolve_name(parsed, target, None, allow_expired, require_active, via_legacy=True)
            if is_cid(target):
                return ResolvedForm(identifier=parsed.value, kind=parsed.kind, cid=target, via_legacy=True)
            raise UnsupportedLegacyFormatError(parsed.value)

        if self._allow_static_cids and is_cid(parsed.value):
            return ResolvedForm(identifier=parsed.value, kind=parsed.kind, cid=parsed.value, via_legacy=True)
        return None

    def _check_active(self, name: str) -> None:
        try:
            entry = self._registry.lookup_entry(name)
        except EntryNotFoundError:
            # unregistered names are still resolvable through the pointer
            return
        if not entry.active:
            raise IdentityRetiredError(name)

    # =========================================================================
    # Cache Management
    # =========================================================================

    def clear_cache(self) -> None:
        self._domain_cache.clear()

    def invalidate(self, domain: str) -> None:
        self._domain_cache.pop(domain, None)

    def cache_stats(self) -> Dict[str, int]:
        valid = sum(1 for e in self._domain_cache.values() if not e.is_expired())
        return {
            "total": len(self._domain_cache),
            "valid": valid,
            "expired": len(self._domain_cache) - valid,
        }
