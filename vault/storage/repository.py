"""
Asset Repository

Owns asset and folder records and their physical blobs. Implements:
- Lookup by (item type, id)
- Soft-delete flagging (deleted_at) and clearing
- Derived visibility: an item is visible when it is not deleted and no
  ancestor folder is deleted or missing
- Hard delete of an asset, or of a folder with its whole subtree
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Dict, List, Optional, Set, Union

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from vault.models.asset import Asset, Folder
from vault.models.trash import TrashItemType
from vault.storage.blobs import RemovalStatus
from vault.storage.trash import TrashStore

logger = logging.getLogger(__name__)

Item = Union[Asset, Folder]
BlobRemover = Callable[[str], RemovalStatus]


@dataclass
class HardDeleteOutcome:
    """
    What a hard delete removed
    """
    assets_deleted: int = 0
    folders_deleted: int = 0
    blobs_removed: int = 0
    blobs_already_gone: int = 0
    cascaded_entry_ids: List[int] = field(default_factory=list)

    @property
    def records_deleted(self) -> int:
        return self.assets_deleted + self.folders_deleted


class AssetRepository:
    """
    Asset and folder access bound to one database session.
    """

    def __init__(self, session: Session):
        self.session = session

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    def get(self, item_type: TrashItemType, item_id: int) -> Optional[Item]:
        if item_type.is_folder:
            return self.session.get(Folder, item_id)

        asset = self.session.get(Asset, item_id)
        if asset is None or asset.asset_type.value != item_type.value:
            return None
        return asset

    def get_folder(self, folder_id: int) -> Optional[Folder]:
        return self.session.get(Folder, folder_id)

    def item_path(self, item: Item) -> str:
        """Physical path for assets, "/parent/child" display path for folders."""
        if isinstance(item, Asset):
            return item.storage_path

        names = []
        seen: Set[int] = set()
        current: Optional[Folder] = item
        while current is not None and current.id not in seen:
            seen.add(current.id)
            names.append(current.name)
            current = self.get_folder(current.parent_folder_id) if current.parent_folder_id else None
        return "/" + "/".join(reversed(names))

    @staticmethod
    def item_name(item: Item) -> str:
        return item.original_name if isinstance(item, Asset) else item.name

    # ------------------------------------------------------------------
    # Soft delete flag
    # ------------------------------------------------------------------

    def mark_deleted(self, item: Item, timestamp: datetime) -> None:
        item.deleted_at = timestamp
        self.session.flush()

    def clear_deleted(self, item: Item) -> None:
        item.deleted_at = None
        self.session.flush()

    def move_to_root(self, item: Item) -> None:
        item.parent_folder_id = None
        self.session.flush()

    # ------------------------------------------------------------------
    # Visibility
    # ------------------------------------------------------------------

    def is_folder_visible(self, folder_id: int, _cache: Optional[Dict[int, bool]] = None) -> bool:
        """
        True when the folder exists and neither it nor any ancestor is trashed.
        """
        cache = {} if _cache is None else _cache
        chain: List[int] = []
        visible = True
        current_id: Optional[int] = folder_id

        while current_id is not None:
            if current_id in cache:
                visible = cache[current_id]
                break
            if current_id in chain:
                logger.error(f"Folder cycle detected at folder {current_id}")
                visible = False
                break
            chain.append(current_id)

            folder = self.get_folder(current_id)
            if folder is None or folder.deleted_at is not None:
                visible = False
                break
            current_id = folder.parent_folder_id

        for seen_id in chain:
            cache[seen_id] = visible
        return visible

    def is_visible(self, item: Item, _cache: Optional[Dict[int, bool]] = None) -> bool:
        if item.deleted_at is not None:
            return False
        if item.parent_folder_id is None:
            return True
        return self.is_folder_visible(item.parent_folder_id, _cache)

    def _subtree_folder_ids(self, root: Folder, skip_deleted: bool) -> List[int]:
        """Breadth-first ids of root and its descendants."""
        result = [root.id]
        frontier = [root.id]
        seen = {root.id}

        while frontier:
            query = select(Folder).where(Folder.parent_folder_id.in_(frontier))
            if skip_deleted:
                query = query.where(Folder.deleted_at.is_(None))
            children = self.session.execute(query).scalars().all()

            frontier = []
            for child in children:
                if child.id in seen:
                    continue
                seen.add(child.id)
                result.append(child.id)
                frontier.append(child.id)
        return result

    def visible_descendant_bytes(self, folder: Folder) -> int:
        """
        Bytes of the assets that are visible through this folder, treating
        the folder itself as visible. This is what trashing the folder hides
        and what restoring it reveals.
        """
        folder_ids = self._subtree_folder_ids(folder, skip_deleted=True)
        total = self.session.execute(
            select(func.coalesce(func.sum(Asset.size_bytes), 0)).where(
                Asset.parent_folder_id.in_(folder_ids),
                Asset.deleted_at.is_(None),
            )
        ).scalar_one()
        return int(total)

    def list_visible_assets(self, owner_id: int, folder_id: Optional[int] = None) -> List[Asset]:
        """
        Assets the owner can see, optionally restricted to one folder.
        """
        query = select(Asset).where(Asset.owner_id == owner_id, Asset.deleted_at.is_(None))
        if folder_id is not None:
            query = query.where(Asset.parent_folder_id == folder_id)
        query = query.order_by(Asset.created_at.desc(), Asset.id.desc())

        cache: Dict[int, bool] = {}
        return [
            asset for asset in self.session.execute(query).scalars().all()
            if self.is_visible(asset, cache)
        ]

    def visible_bytes(self, owner_id: int) -> int:
        """Actual usage: the bytes of every visible asset of the owner."""
        return sum(asset.size_bytes for asset in self.list_visible_assets(owner_id))

    # ------------------------------------------------------------------
    # Hard delete
    # ------------------------------------------------------------------

    def hard_delete(self, item: Item, remove_blob: BlobRemover) -> HardDeleteOutcome:
        """
        Delete the record(s) and then the physical blob(s).

        Rows are deleted and flushed before any blob is touched; the caller
        commits afterwards and rolls back if a blob removal raises. A blob
        that is already missing counts as removed.

        Raises:
            BlobStorageError: A physical removal failed or timed out
        """
        if isinstance(item, Asset):
            return self._hard_delete_assets([item], [], remove_blob)
        return self._hard_delete_folder(item, remove_blob)

    def _hard_delete_folder(self, folder: Folder, remove_blob: BlobRemover) -> HardDeleteOutcome:
        folder_ids = self._subtree_folder_ids(folder, skip_deleted=False)
        assets = self.session.execute(
            select(Asset).where(Asset.parent_folder_id.in_(folder_ids)).with_for_update()
        ).scalars().all()

        trash = TrashStore(self.session)
        cascaded: List[int] = []

        by_type: Dict[TrashItemType, List[int]] = {}
        for asset in assets:
            by_type.setdefault(TrashItemType.for_asset(asset.asset_type), []).append(asset.id)
        for item_type, ids in by_type.items():
            cascaded.extend(trash.delete_unresolved_for_items(item_type, ids))

        descendant_folder_ids = [fid for fid in folder_ids if fid != folder.id]
        cascaded.extend(trash.delete_unresolved_for_items(TrashItemType.FOLDER, descendant_folder_ids))

        if cascaded:
            logger.info(f"Folder {folder.id} purge drops nested trash entries {cascaded}")

        # Deepest folders first so parent links never point at deleted rows
        folders = [self.get_folder(fid) for fid in reversed(folder_ids)]
        return self._hard_delete_assets(list(assets), folders, remove_blob, cascaded)

    def _hard_delete_assets(
        self,
        assets: List[Asset],
        folders: List[Folder],
        remove_blob: BlobRemover,
        cascaded: Optional[List[int]] = None,
    ) -> HardDeleteOutcome:
        outcome = HardDeleteOutcome(cascaded_entry_ids=list(cascaded or []))
        paths = [asset.storage_path for asset in assets]

        for asset in assets:
            self.session.delete(asset)
            outcome.assets_deleted += 1
        self.session.flush()

        for folder in folders:
            if folder is not None:
                self.session.delete(folder)
                outcome.folders_deleted += 1
        self.session.flush()

        for path in paths:
            status = remove_blob(path)
            if status is RemovalStatus.ALREADY_GONE:
                outcome.blobs_already_gone += 1
            else:
                outcome.blobs_removed += 1

        return outcome
