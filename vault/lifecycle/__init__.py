"""
Trash Lifecycle Module

State transitions of vault items (soft delete, restore, purge, empty trash)
and the periodic expiry sweep.
"""

from .results import (
    ErrorKind,
    Failure,
    NotFound,
    Forbidden,
    Conflict,
    QuotaExceeded,
    StorageIOError,
    Internal,
    TrashEntryView,
    SoftDeleted,
    Restored,
    RestoredMany,
    Purged,
    TrashEmptied,
    Uploaded,
    Reserved,
    QuotaReconciled,
    QuotaRead,
)
from .engine import LifecycleEngine
from .sweeper import ExpirySweeper, SweepReport

__all__ = [
    # Engine
    'LifecycleEngine',
    'ExpirySweeper',
    'SweepReport',

    # Error variants
    'ErrorKind',
    'Failure',
    'NotFound',
    'Forbidden',
    'Conflict',
    'QuotaExceeded',
    'StorageIOError',
    'Internal',

    # Success variants
    'TrashEntryView',
    'SoftDeleted',
    'Restored',
    'RestoredMany',
    'Purged',
    'TrashEmptied',
    'Uploaded',
    'Reserved',
    'QuotaReconciled',
    'QuotaRead',
]
