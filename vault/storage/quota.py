"""
Storage Quota Ledger

Keeps each user's storage_used counter and enforces storage_limit on
increases. Implements:
- Upload-time reservations that refuse to cross the limit
- Unconditional signed adjustments for delete / restore / purge flows
- Quota snapshots for API responses and metrics
- Counter recalculation from the actual visible bytes
"""
import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from vault.core.config import settings
from vault.models.user import User

logger = logging.getLogger(__name__)


class QuotaExceededError(Exception):
    """Raised when an upload reservation would exceed the storage limit"""

    def __init__(self, user_id: int, storage_used: int, storage_limit: int, requested: int):
        self.user_id = user_id
        self.storage_used = storage_used
        self.storage_limit = storage_limit
        self.requested = requested
        super().__init__(
            f"Storage quota exceeded for user {user_id}: "
            f"used {storage_used}, limit {storage_limit}, requested {requested}"
        )


class UserNotFoundError(LookupError):
    """Raised when the ledger is asked about an unknown user"""


@dataclass(frozen=True)
class QuotaSnapshot:
    """
    Point-in-time view of a user's quota
    """
    user_id: int
    storage_used: int
    storage_limit: int
    warning_threshold: float = 0.8

    @property
    def usage_percentage(self) -> float:
        if self.storage_limit == 0:
            return 0.0
        return (self.storage_used / self.storage_limit) * 100

    @property
    def available_bytes(self) -> int:
        return max(0, self.storage_limit - self.storage_used)

    @property
    def over_quota(self) -> bool:
        return self.storage_used > self.storage_limit

    @property
    def is_warning(self) -> bool:
        return self.usage_percentage >= (self.warning_threshold * 100)

    def to_dict(self) -> dict:
        return {
            'user_id': self.user_id,
            'storage_used': self.storage_used,
            'storage_limit': self.storage_limit,
            'available_bytes': self.available_bytes,
            'usage_percentage': round(self.usage_percentage, 2),
            'over_quota': self.over_quota,
            'is_warning': self.is_warning,
        }


class QuotaLedger:
    """
    Per-user storage accounting bound to one database session.

    Every mutation locks the user row (SELECT ... FOR UPDATE) so concurrent
    uploads, deletes and restores for the same user serialize. The caller
    owns the transaction: nothing here commits.
    """

    def __init__(self, session: Session, warning_threshold: Optional[float] = None):
        self.session = session
        self.warning_threshold = (
            settings.QUOTA_WARNING_THRESHOLD if warning_threshold is None else warning_threshold
        )

    def lock_owner(self, user_id: int) -> User:
        """
        Lock the user row for the rest of the transaction.

        Every mutation of the user's items takes this lock before reading
        anything, so visibility and sizes are computed on settled data.
        SQLite ignores FOR UPDATE; a no-op write takes its database write
        lock instead.

        Raises:
            UserNotFoundError: If the user does not exist
        """
        if self.session.get_bind().dialect.name == "sqlite":
            self.session.execute(
                update(User).where(User.id == user_id).values(storage_used=User.storage_used)
                .execution_options(synchronize_session=False)
            )
        user = self.session.execute(
            select(User).where(User.id == user_id).with_for_update()
        ).scalar_one_or_none()
        if user is None:
            raise UserNotFoundError(f"User not found: {user_id}")
        return user

    def _snapshot(self, user: User) -> QuotaSnapshot:
        return QuotaSnapshot(
            user_id=user.id,
            storage_used=user.storage_used,
            storage_limit=user.storage_limit,
            warning_threshold=self.warning_threshold,
        )

    def snapshot(self, user_id: int) -> QuotaSnapshot:
        """Read the current counters without locking."""
        user = self.session.get(User, user_id)
        if user is None:
            raise UserNotFoundError(f"User not found: {user_id}")
        return self._snapshot(user)

    def reserve(self, user_id: int, delta_bytes: int) -> QuotaSnapshot:
        """
        Reserve space for a new upload.

        Args:
            user_id: Owner of the upload
            delta_bytes: Size of the incoming file

        Returns:
            Snapshot after the increase

        Raises:
            QuotaExceededError: If storage_used + delta_bytes > storage_limit
            UserNotFoundError: If the user does not exist
        """
        if delta_bytes < 0:
            raise ValueError("reserve() only accepts non-negative sizes; use adjust() to release space")

        user = self.lock_owner(user_id)
        would_use = user.storage_used + delta_bytes

        if would_use > user.storage_limit:
            logger.warning(
                f"Quota exceeded for user {user_id}: "
                f"would use {would_use} / {user.storage_limit} bytes"
            )
            raise QuotaExceededError(user_id, user.storage_used, user.storage_limit, delta_bytes)

        user.storage_used = would_use
        snapshot = self._snapshot(user)

        if snapshot.is_warning:
            logger.warning(
                f"Quota warning for user {user_id}: {snapshot.usage_percentage:.1f}% used"
            )

        return snapshot

    def adjust(self, user_id: int, delta_bytes: int) -> QuotaSnapshot:
        """
        Apply a signed adjustment without enforcing the limit.

        Used by delete (negative) and restore (positive). An increase past
        the limit leaves the account over quota.
        """
        user = self.lock_owner(user_id)
        new_value = user.storage_used + delta_bytes

        if new_value < 0:
            logger.error(
                f"Storage counter for user {user_id} would go negative "
                f"({user.storage_used} + {delta_bytes}); clamping to 0"
            )
            new_value = 0

        user.storage_used = new_value
        snapshot = self._snapshot(user)

        if delta_bytes > 0 and snapshot.over_quota:
            logger.warning(
                f"User {user_id} is over quota after restore: "
                f"{snapshot.storage_used} / {snapshot.storage_limit} bytes"
            )

        return snapshot

    def recalculate(self, user_id: int, actual_bytes: int) -> QuotaSnapshot:
        """
        Overwrite the counter with the measured usage.

        Args:
            user_id: User to fix
            actual_bytes: Sum of the user's visible asset sizes
        """
        user = self.lock_owner(user_id)
        previous = user.storage_used
        user.storage_used = actual_bytes

        if previous != actual_bytes:
            logger.warning(
                f"Storage drift for user {user_id}: counter {previous}, actual {actual_bytes}"
            )

        return self._snapshot(user)
