"""
Typed results returned by the lifecycle engine.

Every engine call returns one success variant or one error variant; callers
check `result.ok` (or isinstance) instead of catching exceptions.
"""
import enum
from dataclasses import dataclass, field
from datetime import datetime
from typing import ClassVar, Dict, Optional, Union

from vault.models.trash import TrashEntry, TrashItemType
from vault.storage.quota import QuotaSnapshot


class ErrorKind(str, enum.Enum):
    NOT_FOUND = "not_found"
    FORBIDDEN = "forbidden"
    CONFLICT = "conflict"
    QUOTA_EXCEEDED = "quota_exceeded"
    STORAGE_IO_ERROR = "storage_io_error"
    INTERNAL = "internal"


# ============================================================================
# Error variants
# ============================================================================

@dataclass(frozen=True)
class Failure:
    message: str
    kind: ClassVar[ErrorKind]
    ok: ClassVar[bool] = False

    def to_dict(self) -> dict:
        return {"kind": self.kind.value, "message": self.message}


@dataclass(frozen=True)
class NotFound(Failure):
    kind: ClassVar[ErrorKind] = ErrorKind.NOT_FOUND


@dataclass(frozen=True)
class Forbidden(Failure):
    kind: ClassVar[ErrorKind] = ErrorKind.FORBIDDEN


@dataclass(frozen=True)
class Conflict(Failure):
    kind: ClassVar[ErrorKind] = ErrorKind.CONFLICT


@dataclass(frozen=True)
class QuotaExceeded(Failure):
    storage_used: int = 0
    storage_limit: int = 0
    requested: int = 0
    kind: ClassVar[ErrorKind] = ErrorKind.QUOTA_EXCEEDED

    def to_dict(self) -> dict:
        data = super().to_dict()
        data.update(
            storage_used=self.storage_used,
            storage_limit=self.storage_limit,
            requested=self.requested,
        )
        return data


@dataclass(frozen=True)
class StorageIOError(Failure):
    kind: ClassVar[ErrorKind] = ErrorKind.STORAGE_IO_ERROR


@dataclass(frozen=True)
class Internal(Failure):
    kind: ClassVar[ErrorKind] = ErrorKind.INTERNAL


# ============================================================================
# Success variants
# ============================================================================

@dataclass(frozen=True)
class TrashEntryView:
    """
    Detached copy of a trash entry, safe to use after the session closes
    """
    id: int
    owner_id: int
    item_type: TrashItemType
    item_id: int
    original_name: str
    original_path: str
    size_bytes: int
    mime_type: Optional[str]
    deleted_at: datetime
    permanent_delete_at: datetime
    restored_at: Optional[datetime] = None

    @classmethod
    def from_entry(cls, entry: TrashEntry) -> "TrashEntryView":
        return cls(
            id=entry.id,
            owner_id=entry.owner_id,
            item_type=entry.item_type,
            item_id=entry.item_id,
            original_name=entry.original_name,
            original_path=entry.original_path,
            size_bytes=entry.size_bytes,
            mime_type=entry.mime_type,
            deleted_at=entry.deleted_at,
            permanent_delete_at=entry.permanent_delete_at,
            restored_at=entry.restored_at,
        )


@dataclass(frozen=True)
class Success:
    ok: ClassVar[bool] = True


@dataclass(frozen=True)
class SoftDeleted(Success):
    entry: TrashEntryView
    quota: QuotaSnapshot


@dataclass(frozen=True)
class Restored(Success):
    entry: TrashEntryView
    quota: QuotaSnapshot
    reparented: bool = False

    @property
    def over_quota(self) -> bool:
        return self.quota.over_quota


@dataclass(frozen=True)
class Purged(Success):
    entry_id: int
    owner_id: int
    item_type: TrashItemType
    item_id: int
    records_deleted: int = 0
    blobs_removed: int = 0
    blobs_already_gone: int = 0
    cascaded_entry_ids: tuple = ()


@dataclass(frozen=True)
class BatchOutcome(Success):
    """
    Itemized result of a multi-item operation (empty trash, restore many).
    Each item ran in its own transaction.
    """
    outcomes: Dict[int, object] = field(default_factory=dict)
    quota: Optional[QuotaSnapshot] = None

    @property
    def succeeded(self) -> int:
        return sum(1 for r in self.outcomes.values() if r.ok)

    @property
    def failed(self) -> int:
        return sum(1 for r in self.outcomes.values() if not r.ok and not _is_skip(r))

    @property
    def skipped(self) -> int:
        return sum(1 for r in self.outcomes.values() if _is_skip(r))

    def summary(self) -> dict:
        return {"succeeded": self.succeeded, "failed": self.failed, "skipped": self.skipped}


def _is_skip(result) -> bool:
    # The entry vanished or was resolved by someone else: nothing to retry
    return isinstance(result, (NotFound, Conflict))


@dataclass(frozen=True)
class TrashEmptied(BatchOutcome):
    pass


@dataclass(frozen=True)
class RestoredMany(BatchOutcome):
    pass


@dataclass(frozen=True)
class Uploaded(Success):
    asset_id: int
    quota: QuotaSnapshot


@dataclass(frozen=True)
class Reserved(Success):
    quota: QuotaSnapshot


@dataclass(frozen=True)
class QuotaReconciled(Success):
    previous: int
    quota: QuotaSnapshot

    @property
    def drift(self) -> int:
        return self.quota.storage_used - self.previous


@dataclass(frozen=True)
class QuotaRead(Success):
    quota: QuotaSnapshot


SoftDeleteResult = Union[SoftDeleted, NotFound, Forbidden, Conflict, Internal]
RestoreResult = Union[Restored, NotFound, Forbidden, Conflict, Internal]
PurgeResult = Union[Purged, NotFound, Forbidden, Conflict, StorageIOError, Internal]
EmptyTrashResult = Union[TrashEmptied, Internal]
RestoreManyResult = Union[RestoredMany, Internal]
UploadResult = Union[Uploaded, NotFound, Forbidden, Conflict, QuotaExceeded, Internal]
ReserveResult = Union[Reserved, NotFound, QuotaExceeded, Internal]
ReconcileResult = Union[QuotaReconciled, NotFound, Internal]
QuotaReadResult = Union[QuotaRead, NotFound, Internal]
