# formchain/storage/__init__.py
"""
Formchain Storage Layer

Content-addressed blob storage for form documents and key backups.
"""

from .content_store import (
    ContentStore,
    IPFSContentStore,
    MemoryContentStore,
    ContentStoreError,
    ContentNotFoundError,
    ContentUnavailableError,
    IPFSNotAvailableError,
    IPFS_AVAILABLE,
)

__all__ = [
    "ContentStore",
    "IPFSContentStore",
    "MemoryContentStore",
    "ContentStoreError",
    "ContentNotFoundError",
    "ContentUnavailableError",
    "IPFSNotAvailableError",
    "IPFS_AVAILABLE",
]
