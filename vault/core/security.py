"""
Security module for API key authentication and authorization.
"""
import hashlib
import hmac
import secrets
from typing import Optional
from fastapi import HTTPException, Security, status, Depends
from fastapi.security import APIKeyHeader
from sqlalchemy.orm import Session

from vault.core.config import settings
from vault.db import get_db
from vault.models.user import User

# API Key header schemes
api_key_header = APIKeyHeader(name="X-API-Key", auto_error=True)
admin_key_header = APIKeyHeader(name="X-Admin-Key", auto_error=False)


def generate_api_key() -> tuple[str, str]:
    """
    Generate a new user API key.

    Returns:
        tuple: (full_key, key_hash)
            - full_key: The key to hand to the user (show only once)
            - key_hash: SHA256 hash to store in users.api_key_hash
    """
    full_key = f"vlt_{secrets.token_urlsafe(32)}"
    return full_key, hash_api_key(full_key)


def hash_api_key(api_key: str) -> str:
    """
    Hash an API key using SHA256.

    Args:
        api_key: The plain text API key

    Returns:
        str: Hexadecimal hash of the API key
    """
    return hashlib.sha256(api_key.encode()).hexdigest()


def verify_api_key(db: Session, api_key: str) -> Optional[User]:
    """
    Return the user owning the API key, or None.
    """
    if not api_key:
        return None

    return db.query(User).filter(User.api_key_hash == hash_api_key(api_key)).first()


async def get_current_user(
    api_key: str = Security(api_key_header),
    db: Session = Depends(get_db)
) -> User:
    """
    FastAPI dependency for API key authentication.

    Raises:
        HTTPException: If API key is invalid or missing
    """
    user = verify_api_key(db, api_key)

    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid API key",
            headers={"WWW-Authenticate": "ApiKey"},
        )

    return user


async def require_admin(admin_key: Optional[str] = Security(admin_key_header)) -> None:
    """
    FastAPI dependency guarding operator endpoints.

    Raises:
        HTTPException: 503 if no admin key is configured, 403 on mismatch
    """
    if not settings.ADMIN_API_KEY:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Admin endpoints are disabled (ADMIN_API_KEY not set)",
        )

    if not admin_key or not hmac.compare_digest(admin_key, settings.ADMIN_API_KEY):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Invalid admin key",
        )
