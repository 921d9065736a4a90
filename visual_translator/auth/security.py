"""Authentication and authorization utilities."""

import secrets
from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import Depends, Header, HTTPException, Request, status
from passlib.context import CryptContext
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from visual_translator.db.models import ApiKey
from visual_translator.db.session import get_db

KEY_PREFIX = "vtk_"
KEY_LENGTH = 36

# Key hashing context
pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")


def generate_api_key() -> tuple[str, str]:
    """
    Generate a new API key.
    Returns: (full_key, prefix)
    Format: vtk_XXXXXXXXXXXXXXXXXXXXXXXXXXXXXXXX (32 hex chars after prefix)
    """
    full_key = f"{KEY_PREFIX}{secrets.token_hex(16)}"
    return full_key, full_key[:12]


def hash_api_key(api_key: str) -> str:
    """Hash an API key for storage."""
    return pwd_context.hash(api_key)


def verify_api_key(plain_key: str, hashed_key: str) -> bool:
    """Verify an API key against its hash."""
    return pwd_context.verify(plain_key, hashed_key)


def _is_expired(expires_at: Optional[datetime]) -> bool:
    if expires_at is None:
        return False
    # SQLite hands back naive datetimes; stored values are UTC
    if expires_at.tzinfo is None:
        expires_at = expires_at.replace(tzinfo=timezone.utc)
    return expires_at < datetime.now(timezone.utc)


async def get_api_key_from_db(
    db: AsyncSession, key_prefix: str, full_key: str
) -> Optional[ApiKey]:
    """Look up an API key by prefix and verify the full key."""
    result = await db.execute(
        select(ApiKey).where(
            ApiKey.key_prefix == key_prefix,
            ApiKey.is_active == True,  # noqa: E712
        )
    )
    for api_key in result.scalars().all():
        if _is_expired(api_key.expires_at):
            continue
        if verify_api_key(full_key, api_key.key_hash):
            return api_key
    return None


class AuthenticatedApiKey:
    """Dependency resolving the caller's API key; jobs are scoped to its user."""

    async def __call__(
        self,
        request: Request,
        authorization: Optional[str] = Header(None),
        x_api_key: Optional[str] = Header(None, alias="X-API-Key"),
        db: AsyncSession = Depends(get_db),
    ) -> ApiKey:
        # Try Authorization header first, then X-API-Key
        api_key_str = None

        if authorization:
            if authorization.startswith("Bearer "):
                api_key_str = authorization[7:]
            else:
                raise HTTPException(
                    status_code=status.HTTP_401_UNAUTHORIZED,
                    detail="Invalid authorization scheme. Use 'Bearer <api_key>'",
                )
        elif x_api_key:
            api_key_str = x_api_key

        if not api_key_str:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Missing API key. Provide via 'Authorization: Bearer <key>' or 'X-API-Key' header",
            )

        if not api_key_str.startswith(KEY_PREFIX) or len(api_key_str) != KEY_LENGTH:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Invalid API key format",
            )

        api_key = await get_api_key_from_db(db, api_key_str[:12], api_key_str)

        if api_key is None:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Invalid or expired API key",
            )

        request.state.api_key = api_key
        return api_key


require_auth = AuthenticatedApiKey()


async def create_api_key(
    db: AsyncSession,
    name: str,
    user_id: str,
    expires_in_days: Optional[int] = None,
) -> tuple[ApiKey, str]:
    """
    Create a new API key acting for `user_id`.
    Returns: (ApiKey model, full_key_string)
    """
    full_key, prefix = generate_api_key()

    expires_at = None
    if expires_in_days:
        expires_at = datetime.now(timezone.utc) + timedelta(days=expires_in_days)

    api_key = ApiKey(
        key_hash=hash_api_key(full_key),
        key_prefix=prefix,
        name=name,
        user_id=user_id,
        expires_at=expires_at,
    )

    db.add(api_key)
    await db.flush()
    await db.refresh(api_key)

    return api_key, full_key
