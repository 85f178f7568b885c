"""
Caller identity and capability dependencies.

Identity is resolved from the X-User-ID header set by the upstream gateway;
authorization is by capability (Permission), never by comparing role names.
"""
import logging
from typing import Callable, Optional

from fastapi import Depends, Header
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.exceptions import AccessDeniedError, AuthenticationError
from app.core.permissions import Permission
from app.database import get_db
from app.models.user import User

logger = logging.getLogger(__name__)


def get_current_user(
    x_user_id: Optional[str] = Header(None, alias=settings.user_id_header),
    db: Session = Depends(get_db)
) -> User:
    """
    Extracts and validates the calling user from the identity header.
    """
    if not x_user_id:
        logger.warning("Authentication failed: missing identity header")
        raise AuthenticationError(f"Missing {settings.user_id_header} header")
    try:
        identifier = int(x_user_id)
    except ValueError:
        logger.warning(f"Authentication failed: malformed user id {x_user_id!r}")
        raise AuthenticationError(f"Invalid {settings.user_id_header} header")

    user = db.get(User, identifier)
    if user is None:
        logger.warning(f"Authentication failed: user {identifier} not found")
        raise AuthenticationError("User not found")
    if not user.is_active:
        logger.warning(f"Authentication failed: user {identifier} is inactive")
        raise AccessDeniedError("User is inactive")
    return user


def require_permission(permission: Permission) -> Callable:
    """
    Dependency factory that checks the caller holds a capability.

    Usage:
        @router.get("/vacations")
        def list_vacations(user: User = Depends(require_permission(Permission.VIEW_ALL_VACATIONS))):
            ...
    """
    def permission_checker(current_user: User = Depends(get_current_user)) -> User:
        if not current_user.has_permission(permission):
            raise AccessDeniedError(f"Access denied. Required permission: {permission.value}")
        return current_user
    return permission_checker


def check_department_access(user: User, department_id: int) -> None:
    """
    Department-scoped reads: own department, or any department with
    institution-wide visibility.
    """
    if user.has_permission(Permission.VIEW_ALL_VACATIONS):
        return
    if user.has_permission(Permission.VIEW_DEPARTMENT_VACATIONS) and user.department_id == department_id:
        return
    raise AccessDeniedError("Access denied. You can only access your own department.")
