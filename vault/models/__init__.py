"""
SQLAlchemy models for the media vault.
"""
from vault.models.base import Base, UTCDateTime, utcnow
from vault.models.user import User
from vault.models.asset import Asset, AssetType, Folder
from vault.models.trash import TrashEntry, TrashItemType

__all__ = [
    "Base",
    "UTCDateTime",
    "utcnow",
    "User",
    "Asset",
    "AssetType",
    "Folder",
    "TrashEntry",
    "TrashItemType",
]
