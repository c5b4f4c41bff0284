"""Permission checking utilities for HR Desk.

Provides decorators and utilities for enforcing RBAC permissions.
"""

import inspect
import logging
from functools import wraps
from typing import Callable, Union, List

from fastapi import HTTPException, status

from .permissions import Permission

logger = logging.getLogger(__name__)


class PermissionChecker:
    """Checks if a user has specific permissions based on their roles."""

    def __init__(self, user_permissions: list[str]):
        """
        Initialize with the user's permissions list.

        Args:
            user_permissions: Permission strings merged from all of the user's roles
        """
        self.permissions = set(user_permissions)

    def has_permission(self, permission: Union[str, Permission]) -> bool:
        """Check if user has a specific permission."""
        perm_str = str(permission) if isinstance(permission, Permission) else permission

        if perm_str in self.permissions:
            return True

        # Wildcard check: resource:* grants all actions on resource
        if ":" in perm_str:
            resource = perm_str.split(":")[0]
            if f"{resource}:*" in self.permissions:
                return True
            # Global admin wildcard
            if "*:*" in self.permissions:
                return True

        return False

    def has_any_permission(self, permissions: List[Union[str, Permission]]) -> bool:
        return any(self.has_permission(p) for p in permissions)

    def has_all_permissions(self, permissions: List[Union[str, Permission]]) -> bool:
        return all(self.has_permission(p) for p in permissions)


def has_permission(user, permission: Union[str, Permission]) -> bool:
    """
    Check if a user has a specific permission.

    Args:
        user: User model instance with roles relationship
        permission: Permission string or Permission object

    Returns:
        True if user has the permission
    """
    if not user or not user.roles:
        return False

    checker = PermissionChecker(user.permissions)
    return checker.has_permission(permission)


def _check_access(current_user, permissions, require_all: bool) -> None:
    if not current_user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication required"
        )

    if not current_user.roles:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="User has no assigned role"
        )

    checker = PermissionChecker(current_user.permissions)
    perm_strs = [str(p) if isinstance(p, Permission) else p for p in permissions]

    if require_all:
        has_access = checker.has_all_permissions(perm_strs)
    else:
        has_access = checker.has_any_permission(perm_strs)

    if not has_access:
        logger.warning("Permission denied for %s, required: %s", current_user.email, ", ".join(perm_strs))
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=f"Insufficient permissions. Required: {', '.join(perm_strs)}"
        )


def require_permission(*permissions: Union[str, Permission], require_all: bool = False):
    """
    Decorator factory for FastAPI endpoints requiring specific permissions.

    Args:
        permissions: One or more permission strings or Permission objects
        require_all: If True, user must have ALL permissions. Default: any one.

    Usage:
        @router.post("/request-types")
        @require_permission("request_types:create")
        def create_request_type(current_user: User = Depends(get_current_user)):
            ...
    """
    def decorator(func: Callable):
        if inspect.iscoroutinefunction(func):
            @wraps(func)
            async def async_wrapper(*args, **kwargs):
                _check_access(kwargs.get("current_user"), permissions, require_all)
                return await func(*args, **kwargs)
            return async_wrapper

        @wraps(func)
        def wrapper(*args, **kwargs):
            _check_access(kwargs.get("current_user"), permissions, require_all)
            return func(*args, **kwargs)

        return wrapper
    return decorator
