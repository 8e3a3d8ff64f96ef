"""
FastAPI dependencies for Trade Feed Service
"""
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import jwt, JWTError
from typing import Optional

from .config import settings
from .schemas import User

security = HTTPBearer()


def decode_user(token: str) -> User:
    """
    Decode a JWT issued by the auth service

    Raises:
        HTTPException: If the token is invalid or lacks required claims
    """
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    try:
        payload = jwt.decode(
            token,
            settings.JWT_SECRET_KEY,
            algorithms=[settings.JWT_ALGORITHM]
        )
    except JWTError:
        raise credentials_exception

    user_id = payload.get("sub")
    username = payload.get("username")

    if user_id is None or username is None:
        raise credentials_exception

    return User(
        id=str(user_id),
        username=username,
        email=payload.get("email"),
        avatar=payload.get("avatar"),
        is_pro=bool(payload.get("is_pro", False)),
        is_admin=bool(payload.get("is_admin", False)),
    )


async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security)
) -> User:
    """
    Validate JWT token and return current user
    """
    return decode_user(credentials.credentials)


async def get_current_user_optional(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(HTTPBearer(auto_error=False))
) -> Optional[User]:
    """
    Optional authentication - returns None if no token provided
    """
    if not credentials:
        return None

    try:
        return decode_user(credentials.credentials)
    except HTTPException:
        return None


async def get_admin_user(current_user: User = Depends(get_current_user)) -> User:
    """Require an admin (moderation and maintenance endpoints)"""
    if not current_user.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access required"
        )
    return current_user
