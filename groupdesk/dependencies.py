"""
Route dependencies: caller identity and group role checks.
"""
import logging

from fastapi import Depends, HTTPException, Security, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from groupdesk.database import get_db
from groupdesk.models.user import User
from groupdesk.security import decode_access_token
from groupdesk.services import group_service, membership_service
from groupdesk.services.exceptions import AuthorizationError

logger = logging.getLogger(__name__)

security = HTTPBearer(auto_error=False)


def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Security(security),
    db: Session = Depends(get_db),
) -> User:
    """Resolve the bearer token to a User or fail with 401."""
    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication required",
            headers={"WWW-Authenticate": "Bearer"},
        )
    user_id = decode_access_token(credentials.credentials)
    user = db.query(User).filter(User.user_id == user_id).first() if user_id else None
    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return user


def require_member(
    group_id: str,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> User:
    """Allow only active members (any role) of the group in the path."""
    group_service.get_group(db, group_id)
    if not membership_service.is_member(db, group_id, user.user_id):
        logger.warning("User %s denied member access to group %s", user.user_id, group_id)
        raise AuthorizationError("You are not a member of this group")
    return user


def require_admin(
    group_id: str,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> User:
    """Allow only admins of the group in the path."""
    group_service.get_group(db, group_id)
    if not membership_service.is_admin(db, group_id, user.user_id):
        logger.warning("User %s denied admin access to group %s", user.user_id, group_id)
        raise AuthorizationError("Only group admins can perform this action")
    return user
