"""
SQLAlchemy model for vault users.
Represents the users table; the storage counters live here.
"""
from sqlalchemy import Column, Integer, String, BigInteger

from vault.core.config import settings
from vault.models.base import Base, UTCDateTime, utcnow


class User(Base):
    """
    Vault account.

    storage_used must always equal the bytes of the user's visible assets.
    """
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    username = Column(String(50), unique=True, nullable=False)

    # SHA256 of the user's API key
    api_key_hash = Column(String(128), unique=True, nullable=True, index=True)

    # Quota Management
    storage_used = Column(BigInteger, default=0, nullable=False)
    storage_limit = Column(
        BigInteger,
        default=settings.DEFAULT_STORAGE_LIMIT_BYTES,
        nullable=False,
    )

    created_at = Column(UTCDateTime, default=utcnow, nullable=False)

    def __repr__(self):
        return f"<User(id={self.id}, username={self.username}, storage_used={self.storage_used})>"

    @property
    def over_quota(self) -> bool:
        """Restores may push usage past the limit; uploads are then refused."""
        return self.storage_used > self.storage_limit
