"""
Trash Lifecycle Engine

Drives every item through ACTIVE -> TRASHED -> PURGED, with TRASHED -> ACTIVE
through restore until the purge happens. Each state change is one database
transaction spanning the item record, its trash entry and the owner's quota
counter.
"""
import logging
import time
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FuturesTimeoutError
from contextlib import contextmanager
from datetime import datetime, timedelta
from typing import Callable, Iterable, Iterator, Optional, Union

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from vault.core.config import settings
from vault.metrics import (
    record_blob_removals,
    record_purge,
    record_trash_operation,
    update_storage_metrics,
)
from vault.models.asset import Asset, AssetType
from vault.models.base import utcnow
from vault.models.trash import TrashItemType
from vault.storage.blobs import BlobStorageError, BlobStore, RemovalStatus
from vault.storage.quota import QuotaExceededError, QuotaLedger, UserNotFoundError
from vault.storage.repository import AssetRepository, HardDeleteOutcome
from vault.storage.trash import TrashPage, TrashStats, TrashStore
from vault.lifecycle.results import (
    Conflict,
    EmptyTrashResult,
    Forbidden,
    Internal,
    NotFound,
    Purged,
    PurgeResult,
    QuotaExceeded,
    QuotaRead,
    QuotaReadResult,
    QuotaReconciled,
    ReconcileResult,
    Reserved,
    ReserveResult,
    Restored,
    RestoredMany,
    RestoreManyResult,
    RestoreResult,
    SoftDeleted,
    SoftDeleteResult,
    StorageIOError,
    TrashEmptied,
    TrashEntryView,
    Uploaded,
    UploadResult,
)

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]
SessionFactory = Callable[[], Session]


class LifecycleEngine:
    """
    Orchestrates soft delete, restore, purge and empty-trash.

    Dependencies are injected so tests can run against SQLite with a fake
    clock and fake blob stores:
    - session_factory: returns a new SQLAlchemy Session per operation
    - blob_store: physical storage used by purge
    - clock: returns the current UTC time
    """

    def __init__(
        self,
        session_factory: SessionFactory,
        blob_store: BlobStore,
        clock: Clock = utcnow,
        retention: Optional[timedelta] = None,
        purge_timeout_seconds: Optional[float] = None,
        purge_workers: Optional[int] = None,
        expiring_soon: Optional[timedelta] = None,
    ):
        self.session_factory = session_factory
        self.blob_store = blob_store
        self.clock = clock
        self.retention = retention or timedelta(days=settings.TRASH_RETENTION_DAYS)
        self.expiring_soon = expiring_soon or timedelta(days=settings.TRASH_EXPIRING_SOON_DAYS)
        self.purge_timeout_seconds = (
            settings.PURGE_TIMEOUT_SECONDS if purge_timeout_seconds is None else purge_timeout_seconds
        )
        # Physical removals run here so a hung storage call can be abandoned
        self._executor = ThreadPoolExecutor(
            max_workers=purge_workers or settings.PURGE_WORKERS,
            thread_name_prefix="vault-purge",
        )

        logger.info(
            f"LifecycleEngine initialized (retention={self.retention.days}d, "
            f"purge_timeout={self.purge_timeout_seconds}s)"
        )

    def close(self) -> None:
        self._executor.shutdown(wait=False, cancel_futures=True)

    @contextmanager
    def _unit_of_work(self) -> Iterator[Session]:
        # Closing without commit rolls back, so early returns discard changes
        session = self.session_factory()
        try:
            yield session
        finally:
            session.close()

    def _remove_blob(self, path: str) -> RemovalStatus:
        future = self._executor.submit(self.blob_store.remove, path)
        try:
            return future.result(timeout=self.purge_timeout_seconds)
        except FuturesTimeoutError:
            future.cancel()
            raise BlobStorageError(
                f"Timed out after {self.purge_timeout_seconds}s removing {path}"
            )
        except BlobStorageError:
            raise
        except Exception as e:
            # Unmapped backend errors still count as a failed removal of this item
            raise BlobStorageError(f"Failed to remove {path}: {e!r}") from e

    # ========================================================================
    # Soft delete
    # ========================================================================

    def soft_delete(
        self,
        owner_id: int,
        item_type: Union[TrashItemType, str],
        item_id: int,
    ) -> SoftDeleteResult:
        """
        Move an asset or folder to the trash.

        Creates the trash entry, flags the item deleted and releases its
        bytes from the owner's quota in a single transaction. For a folder
        the released bytes are those of the visible assets it now hides.
        """
        item_type = TrashItemType(item_type)

        with self._unit_of_work() as session:
            try:
                ledger = QuotaLedger(session)
                ledger.lock_owner(owner_id)

                repo = AssetRepository(session)
                item = repo.get(item_type, item_id)

                if item is None:
                    return self._finish("soft_delete", NotFound(f"{item_type.value} not found: {item_id}"))
                if item.owner_id != owner_id:
                    return self._finish("soft_delete", Forbidden(f"{item_type.value} {item_id} belongs to another user"))
                if item_type.is_folder and item.is_system:
                    return self._finish("soft_delete", Forbidden("System folders cannot be moved to trash"))
                if item.deleted_at is not None:
                    return self._finish("soft_delete", Conflict(f"{item_type.value} {item_id} is already in trash"))
                if not repo.is_visible(item):
                    return self._finish(
                        "soft_delete",
                        Conflict(f"{item_type.value} {item_id} is inside a folder that is in trash"),
                    )

                size = repo.visible_descendant_bytes(item) if item_type.is_folder else item.size_bytes
                now = self.clock()

                entry = TrashStore(session).create(
                    owner_id=owner_id,
                    item_type=item_type,
                    item_id=item.id,
                    original_name=repo.item_name(item),
                    original_path=repo.item_path(item),
                    size_bytes=size,
                    deleted_at=now,
                    retention=self.retention,
                    mime_type=getattr(item, "mime_type", None),
                )
                repo.mark_deleted(item, now)
                quota = ledger.adjust(owner_id, -size)

                view = TrashEntryView.from_entry(entry)
                session.commit()

            except IntegrityError:
                session.rollback()
                return self._finish(
                    "soft_delete",
                    Conflict(f"{item_type.value} {item_id} was moved to trash concurrently"),
                )
            except UserNotFoundError as e:
                session.rollback()
                return self._finish("soft_delete", NotFound(str(e)))
            except SQLAlchemyError:
                session.rollback()
                logger.exception(f"Soft delete of {item_type.value} {item_id} failed")
                return self._finish("soft_delete", Internal("Database error while moving item to trash"))

        logger.info(
            f"Moved {item_type.value} {item_id} to trash for user {owner_id} "
            f"(entry {view.id}, {size} bytes, purge after {view.permanent_delete_at.isoformat()})"
        )
        update_storage_metrics(quota)
        return self._finish("soft_delete", SoftDeleted(entry=view, quota=quota))

    # ========================================================================
    # Restore
    # ========================================================================

    def restore(self, owner_id: int, entry_id: int) -> RestoreResult:
        """
        Bring a trashed item back.

        The quota increase is never refused; an account pushed past its
        limit is reported as over quota. Items whose parent folder is gone
        or hidden are moved to the account root.
        """
        with self._unit_of_work() as session:
            try:
                ledger = QuotaLedger(session)
                ledger.lock_owner(owner_id)

                trash = TrashStore(session)
                entry = trash.get_for_update(entry_id)

                if entry is None:
                    return self._finish("restore", NotFound(f"Trash entry not found: {entry_id}"))
                if entry.owner_id != owner_id:
                    return self._finish("restore", Forbidden(f"Trash entry {entry_id} belongs to another user"))
                if entry.is_resolved:
                    return self._finish("restore", Conflict(f"Trash entry {entry_id} is already restored"))

                repo = AssetRepository(session)
                item = repo.get(entry.item_type, entry.item_id)
                if item is None:
                    return self._finish(
                        "restore",
                        NotFound(f"{entry.item_type.value} {entry.item_id} no longer exists"),
                    )

                # Claim the entry first; a concurrent purge makes this flush fail
                trash.mark_restored(entry, self.clock())

                reparented = False
                if item.parent_folder_id is not None and not repo.is_folder_visible(item.parent_folder_id):
                    repo.move_to_root(item)
                    reparented = True

                repo.clear_deleted(item)
                size = repo.visible_descendant_bytes(item) if entry.item_type.is_folder else item.size_bytes
                quota = ledger.adjust(entry.owner_id, size)

                view = TrashEntryView.from_entry(entry)
                session.commit()

            except StaleDataError:
                session.rollback()
                return self._finish(
                    "restore",
                    Conflict(f"Trash entry {entry_id} was purged or restored concurrently"),
                )
            except UserNotFoundError as e:
                session.rollback()
                return self._finish("restore", NotFound(str(e)))
            except SQLAlchemyError:
                session.rollback()
                logger.exception(f"Restore of trash entry {entry_id} failed")
                return self._finish("restore", Internal("Database error while restoring item"))

        logger.info(
            f"Restored {view.item_type.value} {view.item_id} for user {owner_id} "
            f"({size} bytes{', moved to root' if reparented else ''})"
        )
        update_storage_metrics(quota)
        return self._finish("restore", Restored(entry=view, quota=quota, reparented=reparented))

    def restore_many(self, owner_id: int, entry_ids: Iterable[int]) -> RestoreManyResult:
        """
        Restore several entries, each in its own transaction.
        """
        outcomes = {}
        for entry_id in dict.fromkeys(entry_ids):
            outcomes[entry_id] = self.restore(owner_id, entry_id)

        quota = self.quota_snapshot(owner_id)
        result = RestoredMany(outcomes=outcomes, quota=quota.quota if quota.ok else None)
        logger.info(f"Restore of {len(outcomes)} entries for user {owner_id}: {result.summary()}")
        return result

    # ========================================================================
    # Purge
    # ========================================================================

    def purge(self, entry_id: int) -> PurgeResult:
        """
        Permanently remove a trashed item (system use: sweeper, operators).

        The quota was already released at soft delete time, so nothing is
        adjusted here. A purge whose file is already missing still succeeds.
        """
        return self._purge(entry_id, trigger="system")

    def delete_permanently(self, owner_id: int, entry_id: int) -> PurgeResult:
        """User-initiated purge of one of their own trash entries."""
        return self._purge(entry_id, owner_id=owner_id, trigger="user")

    def _purge(self, entry_id: int, owner_id: Optional[int] = None, trigger: str = "system") -> PurgeResult:
        start_time = time.monotonic()

        with self._unit_of_work() as session:
            try:
                trash = TrashStore(session)
                entry_owner = trash.owner_of(entry_id)
                if entry_owner is None:
                    return self._finish("purge", NotFound(f"Trash entry not found: {entry_id}"))
                QuotaLedger(session).lock_owner(entry_owner)

                entry = trash.get_for_update(entry_id)
                if entry is None:
                    return self._finish("purge", NotFound(f"Trash entry not found: {entry_id}"))
                if owner_id is not None and entry.owner_id != owner_id:
                    return self._finish("purge", Forbidden(f"Trash entry {entry_id} belongs to another user"))
                if entry.is_resolved:
                    return self._finish("purge", Conflict(f"Trash entry {entry_id} was restored"))

                item_type, item_id = entry.item_type, entry.item_id
                repo = AssetRepository(session)
                item = repo.get(item_type, item_id)

                # Claim the entry before touching any physical file
                trash.delete(entry)

                if item is None:
                    logger.warning(f"{item_type.value} {item_id} record already gone while purging entry {entry_id}")
                    outcome = HardDeleteOutcome()
                else:
                    outcome = repo.hard_delete(item, self._remove_blob)

                session.commit()

            except StaleDataError:
                session.rollback()
                return self._finish("purge", Conflict(f"Trash entry {entry_id} was restored or purged concurrently"))
            except BlobStorageError as e:
                session.rollback()
                logger.error(f"Purge of trash entry {entry_id} failed, will retry: {e}")
                record_purge(trigger, time.monotonic() - start_time, success=False)
                return self._finish("purge", StorageIOError(str(e)))
            except UserNotFoundError as e:
                session.rollback()
                return self._finish("purge", Internal(str(e)))
            except SQLAlchemyError:
                session.rollback()
                logger.exception(f"Purge of trash entry {entry_id} failed")
                record_purge(trigger, time.monotonic() - start_time, success=False)
                return self._finish("purge", Internal("Database error while purging item"))

        if outcome.blobs_already_gone:
            logger.info(
                f"Purge of entry {entry_id}: {outcome.blobs_already_gone} file(s) were already absent"
            )
        logger.info(
            f"Purged {item_type.value} {item_id} (entry {entry_id}, trigger={trigger}): "
            f"{outcome.records_deleted} records, {outcome.blobs_removed} files removed"
        )
        record_purge(trigger, time.monotonic() - start_time, success=True)
        record_blob_removals(outcome.blobs_removed, outcome.blobs_already_gone)

        return self._finish(
            "purge",
            Purged(
                entry_id=entry_id,
                owner_id=entry_owner,
                item_type=item_type,
                item_id=item_id,
                records_deleted=outcome.records_deleted,
                blobs_removed=outcome.blobs_removed,
                blobs_already_gone=outcome.blobs_already_gone,
                cascaded_entry_ids=tuple(outcome.cascaded_entry_ids),
            ),
        )

    def empty_trash(self, owner_id: int) -> EmptyTrashResult:
        """
        Purge all of the owner's unresolved entries now, ignoring retention.

        Every entry is its own transaction; a failing item is reported and
        left in trash while the rest proceed.
        """
        try:
            with self._unit_of_work() as session:
                refs = TrashStore(session).list_active_ids(owner_id)
        except SQLAlchemyError:
            logger.exception(f"Could not list trash of user {owner_id}")
            return Internal("Database error while reading trash")

        # Assets before folders so a folder cascade cannot remove entries mid-loop
        ordered = [eid for eid, t in refs if not t.is_folder] + [eid for eid, t in refs if t.is_folder]

        outcomes = {}
        for entry_id in ordered:
            outcomes[entry_id] = self._purge(entry_id, owner_id=owner_id, trigger="empty_trash")

        quota = self.quota_snapshot(owner_id)
        result = TrashEmptied(outcomes=outcomes, quota=quota.quota if quota.ok else None)

        summary = result.summary()
        if summary["failed"]:
            logger.warning(f"Empty trash for user {owner_id} finished with failures: {summary}")
        else:
            logger.info(f"Empty trash for user {owner_id}: {summary}")
        return result

    # ========================================================================
    # Quota
    # ========================================================================

    def register_upload(
        self,
        owner_id: int,
        asset_type: Union[AssetType, str],
        original_name: str,
        size_bytes: int,
        storage_path: str,
        mime_type: Optional[str] = None,
        parent_folder_id: Optional[int] = None,
    ) -> UploadResult:
        """
        Record a newly stored file: reserve quota and create the ACTIVE asset
        in one transaction.
        """
        asset_type = AssetType(asset_type)

        with self._unit_of_work() as session:
            try:
                ledger = QuotaLedger(session)
                ledger.lock_owner(owner_id)

                repo = AssetRepository(session)
                if parent_folder_id is not None:
                    folder = repo.get_folder(parent_folder_id)
                    if folder is None:
                        return self._finish("upload", NotFound(f"folder not found: {parent_folder_id}"))
                    if folder.owner_id != owner_id:
                        return self._finish("upload", Forbidden(f"folder {parent_folder_id} belongs to another user"))
                    if not repo.is_folder_visible(folder.id):
                        return self._finish("upload", Conflict(f"folder {parent_folder_id} is in trash"))

                quota = ledger.reserve(owner_id, size_bytes)

                asset = Asset(
                    owner_id=owner_id,
                    asset_type=asset_type,
                    original_name=original_name,
                    mime_type=mime_type,
                    size_bytes=size_bytes,
                    storage_path=storage_path,
                    parent_folder_id=parent_folder_id,
                )
                session.add(asset)
                session.flush()
                asset_id = asset.id
                session.commit()

            except QuotaExceededError as e:
                session.rollback()
                return self._finish(
                    "upload",
                    QuotaExceeded(str(e), e.storage_used, e.storage_limit, e.requested),
                )
            except UserNotFoundError as e:
                session.rollback()
                return self._finish("upload", NotFound(str(e)))
            except SQLAlchemyError:
                session.rollback()
                logger.exception(f"Upload registration for user {owner_id} failed")
                return self._finish("upload", Internal("Database error while registering upload"))

        update_storage_metrics(quota)
        return self._finish("upload", Uploaded(asset_id=asset_id, quota=quota))

    def reserve(self, user_id: int, delta_bytes: int) -> ReserveResult:
        """Upload-time quota reservation for flows that create the asset elsewhere."""
        with self._unit_of_work() as session:
            try:
                quota = QuotaLedger(session).reserve(user_id, delta_bytes)
                session.commit()
            except QuotaExceededError as e:
                session.rollback()
                return self._finish(
                    "reserve",
                    QuotaExceeded(str(e), e.storage_used, e.storage_limit, e.requested),
                )
            except UserNotFoundError as e:
                session.rollback()
                return self._finish("reserve", NotFound(str(e)))
            except SQLAlchemyError:
                session.rollback()
                logger.exception(f"Quota reservation for user {user_id} failed")
                return self._finish("reserve", Internal("Database error while reserving quota"))

        update_storage_metrics(quota)
        return self._finish("reserve", Reserved(quota=quota))

    def reconcile_quota(self, user_id: int) -> ReconcileResult:
        """
        Recompute storage_used from the user's visible assets.
        """
        with self._unit_of_work() as session:
            try:
                ledger = QuotaLedger(session)
                previous = ledger.lock_owner(user_id).storage_used
                actual = AssetRepository(session).visible_bytes(user_id)
                quota = ledger.recalculate(user_id, actual)
                session.commit()
            except UserNotFoundError as e:
                session.rollback()
                return NotFound(str(e))
            except SQLAlchemyError:
                session.rollback()
                logger.exception(f"Quota reconciliation for user {user_id} failed")
                return Internal("Database error while reconciling quota")

        logger.info(f"Reconciled quota for user {user_id}: {previous} -> {quota.storage_used}")
        update_storage_metrics(quota)
        return QuotaReconciled(previous=previous, quota=quota)

    def quota_snapshot(self, user_id: int) -> QuotaReadResult:
        with self._unit_of_work() as session:
            try:
                return QuotaRead(quota=QuotaLedger(session).snapshot(user_id))
            except UserNotFoundError as e:
                return NotFound(str(e))
            except SQLAlchemyError:
                logger.exception(f"Reading quota of user {user_id} failed")
                return Internal("Database error while reading quota")

    # ========================================================================
    # Read side
    # ========================================================================

    def list_trash(
        self,
        owner_id: int,
        item_type: Optional[Union[TrashItemType, str]] = None,
        page: int = 1,
        limit: int = 50,
    ) -> TrashPage:
        """Unresolved entries of the owner as detached views, newest first."""
        if item_type is not None:
            item_type = TrashItemType(item_type)

        with self._unit_of_work() as session:
            result = TrashStore(session).list_active(owner_id, item_type=item_type, page=page, limit=limit)
            result.items = [TrashEntryView.from_entry(entry) for entry in result.items]
        return result

    def trash_stats(self, owner_id: int) -> TrashStats:
        with self._unit_of_work() as session:
            return TrashStore(session).stats(owner_id, self.clock(), self.expiring_soon)

    @staticmethod
    def _finish(operation: str, result):
        record_trash_operation(operation, result)
        return result
