"""
Unit tests for the trash lifecycle engine.
Tests vault/lifecycle/engine.py
"""
from datetime import timedelta

import pytest
from sqlalchemy.exc import OperationalError

from vault.lifecycle import (
    Conflict,
    Forbidden,
    Internal,
    NotFound,
    Purged,
    QuotaExceeded,
    Restored,
    SoftDeleted,
    StorageIOError,
)
from vault.models import AssetType, Folder, TrashEntry, TrashItemType, User
from vault.storage import QuotaLedger


@pytest.mark.unit
class TestSoftDelete:

    def test_asset_moves_to_trash(self, lifecycle, owner, make_asset, clock, storage_used, load_asset):
        asset_id = make_asset(owner.id, 100)

        result = lifecycle.soft_delete(owner.id, TrashItemType.IMAGE, asset_id)

        assert isinstance(result, SoftDeleted)
        assert result.entry.item_id == asset_id
        assert result.entry.size_bytes == 100
        assert result.entry.deleted_at == clock.now
        assert result.entry.permanent_delete_at == clock.now + timedelta(days=30)
        assert result.quota.storage_used == 0
        assert storage_used(owner.id) == 0
        assert load_asset(asset_id).deleted_at == clock.now

    def test_missing_item(self, lifecycle, owner):
        result = lifecycle.soft_delete(owner.id, TrashItemType.IMAGE, 12345)

        assert isinstance(result, NotFound)

    def test_wrong_asset_type_is_not_found(self, lifecycle, owner, make_asset):
        asset_id = make_asset(owner.id, 10, asset_type=AssetType.DOCUMENT)

        assert isinstance(lifecycle.soft_delete(owner.id, TrashItemType.IMAGE, asset_id), NotFound)

    def test_other_users_item_is_forbidden(self, lifecycle, owner, other_user, make_asset, storage_used):
        asset_id = make_asset(owner.id, 100)

        result = lifecycle.soft_delete(other_user.id, TrashItemType.IMAGE, asset_id)

        assert isinstance(result, Forbidden)
        assert storage_used(owner.id) == 100

    def test_system_folder_is_forbidden(self, lifecycle, owner, make_folder):
        folder_id = make_folder(owner.id, "Uploads", is_system=True)

        result = lifecycle.soft_delete(owner.id, TrashItemType.FOLDER, folder_id)

        assert isinstance(result, Forbidden)

    def test_already_trashed_is_conflict(self, lifecycle, owner, make_asset, storage_used):
        asset_id = make_asset(owner.id, 100)
        lifecycle.soft_delete(owner.id, TrashItemType.IMAGE, asset_id)

        result = lifecycle.soft_delete(owner.id, TrashItemType.IMAGE, asset_id)

        assert isinstance(result, Conflict)
        assert storage_used(owner.id) == 0

    def test_item_hidden_by_trashed_folder_is_conflict(self, lifecycle, owner, make_folder, make_asset):
        folder_id = make_folder(owner.id, "docs")
        asset_id = make_asset(owner.id, 40, folder_id=folder_id)
        lifecycle.soft_delete(owner.id, TrashItemType.FOLDER, folder_id)

        result = lifecycle.soft_delete(owner.id, TrashItemType.IMAGE, asset_id)

        assert isinstance(result, Conflict)

    def test_folder_releases_visible_descendant_bytes(
        self, lifecycle, owner, make_folder, make_asset, storage_used, assert_quota_consistent
    ):
        folder_id = make_folder(owner.id, "photos")
        sub_id = make_folder(owner.id, "2024", parent_id=folder_id)
        make_asset(owner.id, 100, folder_id=folder_id)
        make_asset(owner.id, 30, folder_id=sub_id)
        make_asset(owner.id, 5)

        result = lifecycle.soft_delete(owner.id, TrashItemType.FOLDER, folder_id)

        assert result.ok
        assert result.entry.size_bytes == 130
        assert result.entry.original_path == "/photos"
        assert storage_used(owner.id) == 5
        assert_quota_consistent(owner.id)


@pytest.mark.unit
class TestRestore:

    def test_roundtrip_leaves_quota_unchanged(
        self, lifecycle, owner, make_asset, storage_used, load_asset, assert_quota_consistent
    ):
        asset_id = make_asset(owner.id, 250)
        before = storage_used(owner.id)
        entry_id = lifecycle.soft_delete(owner.id, TrashItemType.IMAGE, asset_id).entry.id

        result = lifecycle.restore(owner.id, entry_id)

        assert isinstance(result, Restored)
        assert result.reparented is False
        assert storage_used(owner.id) == before
        assert load_asset(asset_id).deleted_at is None
        assert_quota_consistent(owner.id)

    def test_restored_entry_is_kept_as_history(self, lifecycle, owner, make_asset, session_factory, clock):
        asset_id = make_asset(owner.id, 10)
        entry_id = lifecycle.soft_delete(owner.id, TrashItemType.IMAGE, asset_id).entry.id
        clock.advance(days=2)

        lifecycle.restore(owner.id, entry_id)

        with session_factory() as session:
            entry = session.get(TrashEntry, entry_id)
            assert entry.restored_at == clock.now
        assert lifecycle.list_trash(owner.id).total == 0

    def test_restore_twice_is_conflict(self, lifecycle, owner, make_asset, storage_used):
        asset_id = make_asset(owner.id, 10)
        entry_id = lifecycle.soft_delete(owner.id, TrashItemType.IMAGE, asset_id).entry.id
        lifecycle.restore(owner.id, entry_id)

        result = lifecycle.restore(owner.id, entry_id)

        assert isinstance(result, Conflict)
        assert storage_used(owner.id) == 10

    def test_unknown_entry(self, lifecycle, owner):
        assert isinstance(lifecycle.restore(owner.id, 999), NotFound)

    def test_other_users_entry_is_forbidden(self, lifecycle, owner, other_user, make_asset):
        asset_id = make_asset(owner.id, 10)
        entry_id = lifecycle.soft_delete(owner.id, TrashItemType.IMAGE, asset_id).entry.id

        assert isinstance(lifecycle.restore(other_user.id, entry_id), Forbidden)

    def test_restore_past_limit_is_allowed_and_flagged(self, lifecycle, make_user, make_asset, storage_used, caplog):
        user = make_user("carol", storage_limit=1000)
        first = make_asset(user.id, 600)
        entry_id = lifecycle.soft_delete(user.id, TrashItemType.IMAGE, first).entry.id
        make_asset(user.id, 500)

        result = lifecycle.restore(user.id, entry_id)

        assert result.ok
        assert result.over_quota is True
        assert storage_used(user.id) == 1100
        assert "over quota" in caplog.text

        upload = lifecycle.register_upload(user.id, AssetType.IMAGE, "more.png", 1, "carol/more.png")
        assert isinstance(upload, QuotaExceeded)

    def test_item_in_trashed_folder_is_reparented_to_root(
        self, lifecycle, owner, make_folder, make_asset, load_asset, storage_used, assert_quota_consistent
    ):
        folder_id = make_folder(owner.id, "docs")
        asset_id = make_asset(owner.id, 50, folder_id=folder_id)
        make_asset(owner.id, 20, folder_id=folder_id)
        asset_entry = lifecycle.soft_delete(owner.id, TrashItemType.IMAGE, asset_id).entry.id
        lifecycle.soft_delete(owner.id, TrashItemType.FOLDER, folder_id)
        assert storage_used(owner.id) == 0

        result = lifecycle.restore(owner.id, asset_entry)

        assert result.ok
        assert result.reparented is True
        assert load_asset(asset_id).parent_folder_id is None
        assert storage_used(owner.id) == 50
        assert_quota_consistent(owner.id)

    def test_folder_restore_reveals_only_untrashed_content(
        self, lifecycle, owner, make_folder, make_asset, storage_used, assert_quota_consistent
    ):
        folder_id = make_folder(owner.id, "docs")
        make_asset(owner.id, 50, folder_id=folder_id)
        separately_trashed = make_asset(owner.id, 20, folder_id=folder_id)
        asset_entry = lifecycle.soft_delete(owner.id, TrashItemType.IMAGE, separately_trashed).entry.id
        folder_entry = lifecycle.soft_delete(owner.id, TrashItemType.FOLDER, folder_id).entry.id

        lifecycle.restore(owner.id, folder_entry)

        assert storage_used(owner.id) == 50
        assert_quota_consistent(owner.id)

        result = lifecycle.restore(owner.id, asset_entry)

        assert result.reparented is False
        assert storage_used(owner.id) == 70
        assert_quota_consistent(owner.id)

    def test_restore_many_reports_each_entry(self, lifecycle, owner, make_asset, storage_used):
        first = lifecycle.soft_delete(owner.id, TrashItemType.IMAGE, make_asset(owner.id, 10)).entry.id
        second = lifecycle.soft_delete(owner.id, TrashItemType.IMAGE, make_asset(owner.id, 20)).entry.id

        result = lifecycle.restore_many(owner.id, [first, second, 999, first])

        assert result.summary() == {"succeeded": 2, "failed": 0, "skipped": 1}
        assert set(result.outcomes) == {first, second, 999}
        assert result.quota.storage_used == 30
        assert storage_used(owner.id) == 30


@pytest.mark.unit
class TestPurge:

    def test_purge_removes_asset_entry_and_file(
        self, lifecycle, owner, make_asset, blob_store, load_asset, storage_used, session_factory
    ):
        asset_id = make_asset(owner.id, 100)
        path = load_asset(asset_id).storage_path
        entry_id = lifecycle.soft_delete(owner.id, TrashItemType.IMAGE, asset_id).entry.id

        result = lifecycle.purge(entry_id)

        assert isinstance(result, Purged)
        assert result.blobs_removed == 1
        assert path in blob_store.removed
        assert load_asset(asset_id) is None
        with session_factory() as session:
            assert session.get(TrashEntry, entry_id) is None
        assert storage_used(owner.id) == 0

    def test_purge_is_idempotent(self, lifecycle, owner, make_asset, storage_used):
        make_asset(owner.id, 40)
        entry_id = lifecycle.soft_delete(owner.id, TrashItemType.IMAGE, make_asset(owner.id, 60)).entry.id

        assert lifecycle.purge(entry_id).ok
        second = lifecycle.purge(entry_id)

        assert isinstance(second, NotFound)
        assert storage_used(owner.id) == 40

    def test_missing_file_still_succeeds(self, lifecycle, owner, make_asset, blob_store):
        asset_id = make_asset(owner.id, 10)
        entry_id = lifecycle.soft_delete(owner.id, TrashItemType.IMAGE, asset_id).entry.id
        blob_store.objects.clear()

        result = lifecycle.purge(entry_id)

        assert result.ok
        assert result.blobs_already_gone == 1

    def test_restored_entry_cannot_be_purged(self, lifecycle, owner, make_asset, storage_used):
        asset_id = make_asset(owner.id, 10)
        entry_id = lifecycle.soft_delete(owner.id, TrashItemType.IMAGE, asset_id).entry.id
        lifecycle.restore(owner.id, entry_id)

        assert isinstance(lifecycle.purge(entry_id), Conflict)
        assert storage_used(owner.id) == 10

    def test_io_failure_leaves_entry_unresolved(self, lifecycle, owner, make_asset, blob_store, load_asset):
        asset_id = make_asset(owner.id, 10)
        blob_store.fail.add(load_asset(asset_id).storage_path)
        entry_id = lifecycle.soft_delete(owner.id, TrashItemType.IMAGE, asset_id).entry.id

        result = lifecycle.purge(entry_id)

        assert isinstance(result, StorageIOError)
        assert load_asset(asset_id) is not None
        assert [e.id for e in lifecycle.list_trash(owner.id).items] == [entry_id]

    def test_timeout_counts_as_io_failure(self, lifecycle, owner, make_asset, blob_store, load_asset):
        asset_id = make_asset(owner.id, 10)
        blob_store.hang.add(load_asset(asset_id).storage_path)
        entry_id = lifecycle.soft_delete(owner.id, TrashItemType.IMAGE, asset_id).entry.id

        result = lifecycle.purge(entry_id)

        assert isinstance(result, StorageIOError)
        assert "Timed out" in result.message
        assert lifecycle.list_trash(owner.id).total == 1

    def test_unexpected_backend_error_counts_as_io_failure(self, lifecycle, owner, make_asset, blob_store, monkeypatch):
        asset_id = make_asset(owner.id, 10)
        entry_id = lifecycle.soft_delete(owner.id, TrashItemType.IMAGE, asset_id).entry.id

        def broken(path):
            raise RuntimeError("backend exploded")

        monkeypatch.setattr(blob_store, "remove", broken)

        result = lifecycle.purge(entry_id)

        assert isinstance(result, StorageIOError)
        assert "backend exploded" in result.message
        assert lifecycle.list_trash(owner.id).total == 1

    def test_delete_permanently_checks_owner(self, lifecycle, owner, other_user, make_asset):
        entry_id = lifecycle.soft_delete(owner.id, TrashItemType.IMAGE, make_asset(owner.id, 10)).entry.id

        assert isinstance(lifecycle.delete_permanently(other_user.id, entry_id), Forbidden)
        assert lifecycle.delete_permanently(owner.id, entry_id).ok

    def test_folder_purge_cascades(
        self, lifecycle, owner, make_folder, make_asset, blob_store, session_factory, storage_used,
        assert_quota_consistent,
    ):
        folder_id = make_folder(owner.id, "photos")
        sub_id = make_folder(owner.id, "raw", parent_id=folder_id)
        make_asset(owner.id, 100, folder_id=folder_id)
        nested = make_asset(owner.id, 30, folder_id=sub_id)
        make_asset(owner.id, 5)
        nested_entry = lifecycle.soft_delete(owner.id, TrashItemType.IMAGE, nested).entry.id
        folder_entry = lifecycle.soft_delete(owner.id, TrashItemType.FOLDER, folder_id).entry.id

        result = lifecycle.purge(folder_entry)

        assert result.ok
        assert result.records_deleted == 4
        assert result.blobs_removed == 2
        assert result.cascaded_entry_ids == (nested_entry,)
        with session_factory() as session:
            assert session.get(Folder, sub_id) is None
        assert storage_used(owner.id) == 5
        assert_quota_consistent(owner.id)
        assert isinstance(lifecycle.restore(owner.id, nested_entry), NotFound)


@pytest.mark.unit
class TestEmptyTrash:

    def test_empties_everything(self, lifecycle, owner, make_folder, make_asset, storage_used):
        folder_id = make_folder(owner.id, "old")
        in_folder = make_asset(owner.id, 10, folder_id=folder_id)
        lifecycle.soft_delete(owner.id, TrashItemType.IMAGE, in_folder)
        lifecycle.soft_delete(owner.id, TrashItemType.FOLDER, folder_id)
        lifecycle.soft_delete(owner.id, TrashItemType.VIDEO, make_asset(owner.id, 20, asset_type=AssetType.VIDEO))

        result = lifecycle.empty_trash(owner.id)

        assert result.summary() == {"succeeded": 3, "failed": 0, "skipped": 0}
        assert lifecycle.list_trash(owner.id).total == 0
        assert storage_used(owner.id) == 0

    def test_one_failure_does_not_block_others(self, lifecycle, owner, make_asset, blob_store, load_asset):
        ids = [make_asset(owner.id, size) for size in (10, 20, 30)]
        blob_store.fail.add(load_asset(ids[1]).storage_path)
        entries = [lifecycle.soft_delete(owner.id, TrashItemType.IMAGE, i).entry.id for i in ids]

        result = lifecycle.empty_trash(owner.id)

        assert result.succeeded == 2
        assert result.failed == 1
        assert isinstance(result.outcomes[entries[1]], StorageIOError)
        assert [e.id for e in lifecycle.list_trash(owner.id).items] == [entries[1]]

    def test_only_own_trash(self, lifecycle, owner, other_user, make_asset):
        lifecycle.soft_delete(owner.id, TrashItemType.IMAGE, make_asset(owner.id, 10))
        lifecycle.soft_delete(other_user.id, TrashItemType.IMAGE, make_asset(other_user.id, 10))

        lifecycle.empty_trash(owner.id)

        assert lifecycle.list_trash(other_user.id).total == 1


@pytest.mark.unit
class TestQuotaOperations:

    def test_register_upload_reserves_quota(self, lifecycle, owner, storage_used):
        result = lifecycle.register_upload(owner.id, "image", "a.png", 300, "alice/a.png", mime_type="image/png")

        assert result.ok
        assert result.quota.storage_used == 300
        assert storage_used(owner.id) == 300

    def test_register_upload_over_limit(self, lifecycle, owner, storage_used):
        result = lifecycle.register_upload(owner.id, "video", "big.mp4", 5000, "alice/big.mp4")

        assert isinstance(result, QuotaExceeded)
        assert result.requested == 5000
        assert storage_used(owner.id) == 0

    def test_register_upload_into_trashed_folder(self, lifecycle, owner, make_folder):
        folder_id = make_folder(owner.id, "gone")
        lifecycle.soft_delete(owner.id, TrashItemType.FOLDER, folder_id)

        result = lifecycle.register_upload(owner.id, "image", "a.png", 1, "alice/a.png", parent_folder_id=folder_id)

        assert isinstance(result, Conflict)

    def test_reserve_unknown_user(self, lifecycle):
        assert isinstance(lifecycle.reserve(404, 10), NotFound)

    def test_quota_read_database_error_is_internal(self, lifecycle, owner, make_asset, monkeypatch):
        entry_id = lifecycle.soft_delete(owner.id, TrashItemType.IMAGE, make_asset(owner.id, 10)).entry.id

        def unreadable(self, user_id):
            raise OperationalError("SELECT storage_used", {}, Exception("connection lost"))

        monkeypatch.setattr(QuotaLedger, "snapshot", unreadable)

        assert isinstance(lifecycle.quota_snapshot(owner.id), Internal)
        emptied = lifecycle.empty_trash(owner.id)
        assert emptied.succeeded == 1
        assert emptied.quota is None
        assert lifecycle.restore_many(owner.id, [entry_id]).quota is None

    def test_reconcile_fixes_drift(self, lifecycle, owner, make_asset, session_factory):
        make_asset(owner.id, 120)
        with session_factory() as session:
            session.get(User, owner.id).storage_used = 999
            session.commit()

        result = lifecycle.reconcile_quota(owner.id)

        assert result.ok
        assert result.previous == 999
        assert result.quota.storage_used == 120
        assert result.drift == -879

    def test_scenario_trash_then_expire(self, lifecycle, sweeper, make_user, make_asset, clock, storage_used):
        user = make_user("dave", storage_limit=1000)
        make_asset(user.id, 200)
        asset_id = make_asset(user.id, 100)
        assert storage_used(user.id) == 300

        trashed = lifecycle.soft_delete(user.id, TrashItemType.IMAGE, asset_id)
        assert storage_used(user.id) == 200
        assert trashed.entry.permanent_delete_at == clock.now + timedelta(days=30)

        report = sweeper.run(now=clock.now + timedelta(days=31))

        assert report.purged == 1
        assert storage_used(user.id) == 200
        assert isinstance(lifecycle.restore(user.id, trashed.entry.id), NotFound)


@pytest.mark.unit
class TestReadHelpers:

    def test_trash_stats(self, lifecycle, owner, make_asset, clock):
        lifecycle.soft_delete(owner.id, TrashItemType.IMAGE, make_asset(owner.id, 10))
        clock.advance(days=25)
        lifecycle.soft_delete(owner.id, TrashItemType.IMAGE, make_asset(owner.id, 20))

        stats = lifecycle.trash_stats(owner.id)

        assert stats.total_items == 2
        assert stats.total_size == 30
        assert stats.expiring_soon == 1

    def test_list_trash_returns_detached_views(self, lifecycle, owner, make_asset):
        lifecycle.soft_delete(owner.id, TrashItemType.IMAGE, make_asset(owner.id, 10))

        page = lifecycle.list_trash(owner.id, item_type="image")

        assert page.total == 1
        assert page.items[0].original_name.startswith("file-")
