"""
Dependencies

FastAPI dependencies for bearer identity and admin checks.
"""
import logging
from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, Header, HTTPException, Query, status
from sqlalchemy.orm import Session

from storefront.database import get_db
from storefront.models.user import User, UserRole
from storefront.utils.jwt_handler import decode_access_token

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CurrentUser:
    id: int
    role: str

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN.value


def _resolve_user(token: str, db: Session) -> CurrentUser:
    """
    Resolve the caller from a JWT.

    The role is read from the users table, not from the token, so a demoted
    admin loses access immediately.

    Raises:
        HTTPException: 401 if the token is invalid or the user no longer exists
    """
    try:
        payload = decode_access_token(token)
        user_id = int(payload.get("sub"))
    except (ValueError, TypeError) as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=str(e) or "Invalid token payload",
        )

    user = db.query(User).filter(User.id == user_id).first()
    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found",
        )
    return CurrentUser(id=user.id, role=user.role.value)


async def get_current_user(
    authorization: str = Header(None, alias="Authorization", description="Bearer JWT token"),
    db: Session = Depends(get_db),
) -> CurrentUser:
    if not authorization or not authorization.startswith("Bearer "):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authorization header",
        )
    return _resolve_user(authorization[7:], db)  # Remove "Bearer " prefix


async def get_stream_user(
    authorization: Optional[str] = Header(None, alias="Authorization"),
    access_token: Optional[str] = Query(None, description="JWT for EventSource clients that cannot send headers"),
    db: Session = Depends(get_db),
) -> CurrentUser:
    """Like get_current_user, but also accepts the token as a query parameter."""
    if authorization and authorization.startswith("Bearer "):
        return _resolve_user(authorization[7:], db)
    if access_token:
        return _resolve_user(access_token, db)
    raise HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Invalid authorization header",
    )


async def require_admin(user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
    if not user.is_admin:
        logger.warning(f"[Auth] Admin route denied: user_id={user.id}")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access required",
        )
    return user
