"""
SQLAlchemy models for vault content: assets (images, videos, documents)
and the folders that organize them.
"""
from sqlalchemy import (
    Column,
    Integer,
    String,
    BigInteger,
    Boolean,
    Enum,
    ForeignKey,
    Index,
)
import enum

from vault.models.base import Base, UTCDateTime, utcnow


class AssetType(str, enum.Enum):
    """Kinds of stored media."""
    IMAGE = "image"
    VIDEO = "video"
    DOCUMENT = "document"


class Folder(Base):
    """
    User folder. System folders (created with the account) cannot be trashed.
    """
    __tablename__ = "folders"

    id = Column(Integer, primary_key=True, autoincrement=True)
    owner_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    is_system = Column(Boolean, default=False, nullable=False)
    parent_folder_id = Column(Integer, ForeignKey("folders.id", ondelete="SET NULL"), nullable=True, index=True)

    deleted_at = Column(UTCDateTime, nullable=True)
    created_at = Column(UTCDateTime, default=utcnow, nullable=False)

    def __repr__(self):
        return f"<Folder(id={self.id}, name={self.name}, deleted_at={self.deleted_at})>"


class Asset(Base):
    """
    Stored media file. storage_path points at the physical object in the
    configured blob store.
    """
    __tablename__ = "assets"

    id = Column(Integer, primary_key=True, autoincrement=True)
    owner_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    asset_type = Column(Enum(AssetType, name="asset_type"), nullable=False)

    original_name = Column(String(255), nullable=False)
    mime_type = Column(String(100), nullable=True)
    size_bytes = Column(BigInteger, nullable=False)
    storage_path = Column(String(1024), nullable=False)
    parent_folder_id = Column(Integer, ForeignKey("folders.id", ondelete="SET NULL"), nullable=True, index=True)

    deleted_at = Column(UTCDateTime, nullable=True)
    created_at = Column(UTCDateTime, default=utcnow, nullable=False)

    __table_args__ = (
        Index("idx_assets_owner_deleted", "owner_id", "deleted_at"),
    )

    def __repr__(self):
        return f"<Asset(id={self.id}, type={self.asset_type}, size={self.size_bytes})>"
