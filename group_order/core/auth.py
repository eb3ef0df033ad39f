"""
Admin Authentication

Store and menu management needs a signed-in admin. The session token is
read from the session cookie set by /auth/login, or from a Bearer
header for API clients.
"""

import logging
from typing import Optional

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from group_order.core.config import get_settings
from group_order.core.security import (
    create_access_token,
    decode_access_token,
    get_password_hash,
    verify_password,
)
from group_order.database import get_db
from group_order.models import AdminUser

logger = logging.getLogger(__name__)

security = HTTPBearer(auto_error=False)


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def _request_token(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials],
) -> Optional[str]:
    if credentials and credentials.credentials:
        return credentials.credentials
    return request.cookies.get(get_settings().session_cookie_name)


async def _admin_from_token(db: AsyncSession, token: Optional[str]) -> Optional[AdminUser]:
    if not token:
        return None
    payload = decode_access_token(token)
    if not payload or payload.get("role") != "admin" or "sub" not in payload:
        return None
    try:
        admin_id = int(payload["sub"])
    except (TypeError, ValueError):
        return None
    admin = await db.get(AdminUser, admin_id)
    if admin is None or not admin.is_active:
        return None
    return admin


async def get_current_admin(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: AsyncSession = Depends(get_db),
) -> AdminUser:
    token = _request_token(request, credentials)
    if not token:
        raise _unauthorized("Not authenticated")
    admin = await _admin_from_token(db, token)
    if admin is None:
        raise _unauthorized("Invalid or expired session")
    return admin


async def get_optional_admin(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: AsyncSession = Depends(get_db),
) -> Optional[AdminUser]:
    """Same as get_current_admin, but None instead of 401 (for pages)."""
    return await _admin_from_token(db, _request_token(request, credentials))


async def authenticate_admin(db: AsyncSession, email: str, password: str) -> Optional[str]:
    """Check credentials; returns a session token or None."""
    result = await db.execute(
        select(AdminUser).where(AdminUser.email == email.strip().lower())
    )
    admin = result.scalar_one_or_none()
    if admin is None or not admin.is_active:
        return None
    if not verify_password(password, admin.password_hash):
        return None
    return create_access_token(subject=str(admin.id), extra_claims={"role": "admin"})


async def ensure_admin(
    db: AsyncSession,
    email: str,
    password: str,
    reset_password: bool = True,
) -> AdminUser:
    """Create the admin account, or reset its password if it exists."""
    email = email.strip().lower()
    result = await db.execute(select(AdminUser).where(AdminUser.email == email))
    admin = result.scalar_one_or_none()

    if admin is None:
        admin = AdminUser(email=email, password_hash=get_password_hash(password), is_active=True)
        db.add(admin)
        logger.info(f"Admin account created: {email}")
    elif reset_password:
        admin.password_hash = get_password_hash(password)
        admin.is_active = True
        logger.info(f"Admin password reset: {email}")
    else:
        return admin

    await db.commit()
    await db.refresh(admin)
    return admin
