"""
SQLAlchemy model for the trash ledger.
One row per soft-deleted asset or folder.
"""
from sqlalchemy import (
    Column,
    Integer,
    String,
    BigInteger,
    Enum,
    ForeignKey,
    Index,
    text,
)
import enum

from vault.models.asset import AssetType
from vault.models.base import Base, UTCDateTime


class TrashItemType(str, enum.Enum):
    """Anything that can be put in the trash."""
    IMAGE = "image"
    VIDEO = "video"
    DOCUMENT = "document"
    FOLDER = "folder"

    @property
    def is_folder(self) -> bool:
        return self is TrashItemType.FOLDER

    @classmethod
    def for_asset(cls, asset_type: AssetType) -> "TrashItemType":
        return cls(asset_type.value)


class TrashEntry(Base):
    """
    Trash ledger row.

    Created only by soft delete; restore sets restored_at, purge deletes the
    row. permanent_delete_at is fixed at creation. The version column makes
    a restore and a purge racing on the same row serialize: whichever
    flushes second matches zero rows and fails with StaleDataError.
    """
    __tablename__ = "trash_entries"

    id = Column(Integer, primary_key=True, autoincrement=True)
    owner_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)

    item_type = Column(Enum(TrashItemType, name="trash_item_type"), nullable=False)
    item_id = Column(Integer, nullable=False)

    # Snapshot of the item at delete time
    original_name = Column(String(255), nullable=False)
    original_path = Column(String(1024), nullable=False)
    size_bytes = Column(BigInteger, default=0, nullable=False)
    mime_type = Column(String(100), nullable=True)

    deleted_at = Column(UTCDateTime, nullable=False)
    permanent_delete_at = Column(UTCDateTime, nullable=False)
    restored_at = Column(UTCDateTime, nullable=True)

    version = Column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        # At most one unresolved entry per item
        Index(
            "uq_trash_entries_unresolved_item",
            "item_type",
            "item_id",
            unique=True,
            postgresql_where=text("restored_at IS NULL"),
            sqlite_where=text("restored_at IS NULL"),
        ),
        Index("idx_trash_entries_permanent_delete_at", "permanent_delete_at"),
        Index("idx_trash_entries_owner_deleted", "owner_id", "deleted_at"),
    )

    def __repr__(self):
        return (
            f"<TrashEntry(id={self.id}, item={self.item_type}:{self.item_id}, "
            f"restored_at={self.restored_at})>"
        )

    @property
    def is_resolved(self) -> bool:
        return self.restored_at is not None
