"""
Authentication dependencies for the current user
"""
from fastapi import Request, HTTPException, Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from typing import Optional
import uuid

from app.models.user import User
from app.utils.database import get_db
from app.utils.security import verify_token

security = HTTPBearer(auto_error=False)


async def _load_user(db: AsyncSession, token: str) -> Optional[User]:
    try:
        payload = verify_token(token)
    except HTTPException:
        return None

    subject = payload.get("sub")
    if not subject:
        return None

    try:
        user_id = uuid.UUID(str(subject))
    except ValueError:
        return None

    result = await db.execute(select(User).where(User.id == user_id))
    return result.scalar_one_or_none()


async def get_current_user(
    request: Request,
    db: AsyncSession = Depends(get_db),
    token: HTTPAuthorizationCredentials = Depends(security)
) -> Optional[User]:
    """Get current authenticated user from JWT token"""

    # Try to get token from Authorization header
    if token:
        user = await _load_user(db, token.credentials)
        if user:
            return user

    # Try to get token from session cookie
    session_token = request.cookies.get("session_token")
    if session_token:
        return await _load_user(db, session_token)

    return None


async def require_auth(user: Optional[User] = Depends(get_current_user)) -> User:
    """Require authentication, raise 401 if not authenticated"""
    if not user:
        raise HTTPException(status_code=401, detail="Authentication required")
    return user


async def require_admin(user: User = Depends(require_auth)) -> User:
    """Require an admin user, raise 403 otherwise"""
    if not user.is_admin:
        raise HTTPException(status_code=403, detail="Admin access required")
    return user
