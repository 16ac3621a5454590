# formchain/naming/__init__.py
"""
Formchain Naming Layer

Keypair-derived mutable names and monotonically sequenced signed records.

Components:
    MutableRecord: Signed {name, sequence, value, expires_at}
    NameNetwork: Record broadcast/storage (HTTP, memory)
    MutablePointer: create / publish / update / resolve_latest
    SequenceTracker: Consumer-side rollback protection
"""

from .record import (
    MutableRecord,
    RecordError,
    InvalidNameError,
    SignatureInvalidError,
    SigningError,
    generate_keypair,
    is_mutable_name,
    name_from_private_key,
    name_from_public_key,
    public_key_from_name,
    sign_record,
    encode_record_fields,
)

from .network import (
    NameNetwork,
    HTTPNameNetwork,
    MemoryNameNetwork,
    NameNotFoundError,
    StaleSequenceError,
    NameServiceUnavailableError,
)

from .pointer import (
    MutablePointer,
    SequenceTracker,
    RecordExpiredError,
    StaleRecordError,
)

__all__ = [
    # Record
    "MutableRecord",
    "RecordError",
    "InvalidNameError",
    "SignatureInvalidError",
    "SigningError",
    "generate_keypair",
    "is_mutable_name",
    "name_from_private_key",
    "name_from_public_key",
    "public_key_from_name",
    "sign_record",
    "encode_record_fields",
    # Network
    "NameNetwork",
    "HTTPNameNetwork",
    "MemoryNameNetwork",
    "NameNotFoundError",
    "StaleSequenceError",
    "NameServiceUnavailableError",
    # Pointer
    "MutablePointer",
    "SequenceTracker",
    "RecordExpiredError",
    "StaleRecordError",
]
