"""
Trash Store

Durable ledger of trashed items. Implements:
- Entry creation with a fixed retention deadline
- Owner listing (newest first, paginated)
- Expiry scan across all users, keyset-paginated on permanent_delete_at
- Trash statistics for the trash page
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Tuple

from sqlalchemy import and_, case, func, or_, select
from sqlalchemy.orm import Session

from vault.models.trash import TrashEntry, TrashItemType

logger = logging.getLogger(__name__)

# (permanent_delete_at, id) of the last row of the previous page
ExpiryCursor = Tuple[datetime, int]


@dataclass
class TrashPage:
    """
    One page of a user's trash
    """
    items: List[TrashEntry]
    total: int
    page: int
    limit: int

    @property
    def total_pages(self) -> int:
        if self.limit == 0:
            return 0
        return (self.total + self.limit - 1) // self.limit


@dataclass
class TrashStats:
    """
    Aggregate view of a user's trash
    """
    total_items: int = 0
    total_size: int = 0
    by_type: Dict[str, int] = field(default_factory=dict)
    expiring_soon: int = 0

    @property
    def total_size_mb(self) -> float:
        return self.total_size / (1024 ** 2)

    def to_dict(self) -> dict:
        return {
            'total_items': self.total_items,
            'total_size': self.total_size,
            'total_size_mb': round(self.total_size_mb, 2),
            'by_type': self.by_type,
            'expiring_soon': self.expiring_soon,
        }


class TrashStore:
    """
    Trash ledger access bound to one database session.

    Unresolved means restored_at IS NULL; purged rows no longer exist, so
    every query below only ever sees live entries.
    """

    def __init__(self, session: Session):
        self.session = session

    def create(
        self,
        owner_id: int,
        item_type: TrashItemType,
        item_id: int,
        original_name: str,
        original_path: str,
        size_bytes: int,
        deleted_at: datetime,
        retention: timedelta,
        mime_type: Optional[str] = None,
    ) -> TrashEntry:
        """
        Add an entry and flush it so the id is assigned.

        Raises:
            IntegrityError: An unresolved entry for the same item already exists
        """
        entry = TrashEntry(
            owner_id=owner_id,
            item_type=item_type,
            item_id=item_id,
            original_name=original_name,
            original_path=original_path,
            size_bytes=size_bytes,
            mime_type=mime_type,
            deleted_at=deleted_at,
            permanent_delete_at=deleted_at + retention,
        )
        self.session.add(entry)
        self.session.flush()
        return entry

    def get(self, entry_id: int) -> Optional[TrashEntry]:
        return self.session.get(TrashEntry, entry_id)

    def owner_of(self, entry_id: int) -> Optional[int]:
        """Owner id of an entry, read without loading or locking it."""
        return self.session.execute(
            select(TrashEntry.owner_id).where(TrashEntry.id == entry_id)
        ).scalar_one_or_none()

    def get_for_update(self, entry_id: int) -> Optional[TrashEntry]:
        """Load an entry with a row lock (no-op on SQLite)."""
        return self.session.execute(
            select(TrashEntry).where(TrashEntry.id == entry_id).with_for_update()
        ).scalar_one_or_none()

    def find_unresolved_for_item(self, item_type: TrashItemType, item_id: int) -> Optional[TrashEntry]:
        return self.session.execute(
            select(TrashEntry).where(
                TrashEntry.item_type == item_type,
                TrashEntry.item_id == item_id,
                TrashEntry.restored_at.is_(None),
            )
        ).scalar_one_or_none()

    def mark_restored(self, entry: TrashEntry, restored_at: datetime) -> None:
        """
        Resolve an entry. The flush is version-checked.

        Raises:
            StaleDataError: The row changed or vanished since it was loaded
        """
        entry.restored_at = restored_at
        self.session.flush()

    def delete(self, entry: TrashEntry) -> None:
        """
        Remove an entry for good. The flush is version-checked.

        Raises:
            StaleDataError: The row changed or vanished since it was loaded
        """
        self.session.delete(entry)
        self.session.flush()

    def delete_unresolved_for_items(self, item_type: TrashItemType, item_ids: List[int]) -> List[int]:
        """Drop unresolved entries of items removed by a folder purge."""
        if not item_ids:
            return []

        entries = self.session.execute(
            select(TrashEntry).where(
                TrashEntry.item_type == item_type,
                TrashEntry.item_id.in_(item_ids),
                TrashEntry.restored_at.is_(None),
            )
        ).scalars().all()

        removed = []
        for entry in entries:
            removed.append(entry.id)
            self.session.delete(entry)
        return removed

    def list_active(
        self,
        owner_id: int,
        item_type: Optional[TrashItemType] = None,
        page: int = 1,
        limit: int = 50,
    ) -> TrashPage:
        """
        Unresolved entries of one owner, newest deletion first.
        """
        conditions = [TrashEntry.owner_id == owner_id, TrashEntry.restored_at.is_(None)]
        if item_type is not None:
            conditions.append(TrashEntry.item_type == item_type)

        total = self.session.execute(
            select(func.count(TrashEntry.id)).where(*conditions)
        ).scalar_one()

        items = self.session.execute(
            select(TrashEntry)
            .where(*conditions)
            .order_by(TrashEntry.deleted_at.desc(), TrashEntry.id.desc())
            .limit(limit)
            .offset((page - 1) * limit)
        ).scalars().all()

        return TrashPage(items=list(items), total=total, page=page, limit=limit)

    def list_active_ids(self, owner_id: int) -> List[Tuple[int, TrashItemType]]:
        """Every unresolved (id, item_type) of one owner, unpaginated."""
        rows = self.session.execute(
            select(TrashEntry.id, TrashEntry.item_type)
            .where(TrashEntry.owner_id == owner_id, TrashEntry.restored_at.is_(None))
            .order_by(TrashEntry.deleted_at.asc(), TrashEntry.id.asc())
        ).all()
        return [(row.id, row.item_type) for row in rows]

    def find_expired(
        self,
        now: datetime,
        batch_size: int,
        after: Optional[ExpiryCursor] = None,
    ) -> List[TrashEntry]:
        """
        Unresolved entries whose deadline has passed, across all users.

        Args:
            now: Reference time; entries with permanent_delete_at <= now qualify
            batch_size: Maximum rows returned
            after: Cursor from the previous batch; rows at or before it are skipped

        Returns:
            Entries ordered by (permanent_delete_at, id)
        """
        query = select(TrashEntry).where(
            TrashEntry.restored_at.is_(None),
            TrashEntry.permanent_delete_at <= now,
        )

        if after is not None:
            after_deadline, after_id = after
            query = query.where(
                or_(
                    TrashEntry.permanent_delete_at > after_deadline,
                    and_(
                        TrashEntry.permanent_delete_at == after_deadline,
                        TrashEntry.id > after_id,
                    ),
                )
            )

        query = query.order_by(TrashEntry.permanent_delete_at.asc(), TrashEntry.id.asc()).limit(batch_size)
        return list(self.session.execute(query).scalars().all())

    def stats(self, owner_id: int, now: datetime, expiring_within: timedelta) -> TrashStats:
        """
        Aggregate counters over the owner's unresolved entries.
        """
        base = [TrashEntry.owner_id == owner_id, TrashEntry.restored_at.is_(None)]

        row = self.session.execute(
            select(
                func.count(TrashEntry.id),
                func.coalesce(func.sum(TrashEntry.size_bytes), 0),
                func.coalesce(
                    func.sum(case((TrashEntry.permanent_delete_at <= now + expiring_within, 1), else_=0)),
                    0,
                ),
            ).where(*base)
        ).one()

        by_type_rows = self.session.execute(
            select(TrashEntry.item_type, func.count(TrashEntry.id))
            .where(*base)
            .group_by(TrashEntry.item_type)
        ).all()

        return TrashStats(
            total_items=row[0],
            total_size=int(row[1]),
            by_type={item_type.value: count for item_type, count in by_type_rows},
            expiring_soon=int(row[2]),
        )
