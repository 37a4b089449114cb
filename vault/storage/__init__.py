"""
Storage Module

Persistence-side building blocks of the trash lifecycle:
- Storage quota ledger (per-user counters and limit enforcement)
- Trash ledger (retention deadlines, listing, expiry scan, stats)
- Asset repository (records, derived visibility, hard delete)
- Blob stores for physical files (local filesystem, MinIO)
"""

from .quota import QuotaLedger, QuotaSnapshot, QuotaExceededError, UserNotFoundError
from .trash import TrashStore, TrashPage, TrashStats, ExpiryCursor
from .repository import AssetRepository, HardDeleteOutcome
from .blobs import (
    BlobStore,
    BlobStorageError,
    LocalBlobStore,
    MinioBlobStore,
    RemovalStatus,
    create_blob_store,
)

__all__ = [
    # Quota management
    'QuotaLedger',
    'QuotaSnapshot',
    'QuotaExceededError',
    'UserNotFoundError',

    # Trash ledger
    'TrashStore',
    'TrashPage',
    'TrashStats',
    'ExpiryCursor',

    # Assets and folders
    'AssetRepository',
    'HardDeleteOutcome',

    # Physical storage
    'BlobStore',
    'BlobStorageError',
    'LocalBlobStore',
    'MinioBlobStore',
    'RemovalStatus',
    'create_blob_store',
]
