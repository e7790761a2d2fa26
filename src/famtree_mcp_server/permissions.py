"""Permission gating for users resolved by the auth provider."""

from __future__ import annotations

from typing import Iterable, Optional

from .errors import PermissionDenied, Unauthenticated
from .models import Permission, User


def user_has_permission(user: Optional[User], permission: Permission, admins: Iterable[str] = ()) -> bool:
    """Whether ``user`` holds ``permission``.

    Usernames listed in ``admins`` hold every permission, and so does
    anyone with the ``admin`` permission.
    """
    if user is None:
        return False
    if user.username.lower() in {a.lower() for a in admins}:
        return True
    granted = set(user.permissions)
    return Permission.ADMIN in granted or Permission(permission) in granted


def require_permission(user: Optional[User], permission: Permission, admins: Iterable[str] = ()) -> User:
    if user is None:
        raise Unauthenticated("authentication required")
    if not user_has_permission(user, permission, admins):
        raise PermissionDenied(f"{Permission(permission).value} permission required")
    return user
