"""
Role based permission lookup.

Every user carries one role; each role maps to a set of permission
strings.  ``admin`` holds ``all``.  Views declare what they need with
``HasPermission('write:appointments')`` and patients holding the
``own`` variant are additionally scoped to their own records by the
service layer.
"""
from rest_framework.permissions import SAFE_METHODS, BasePermission

ROLE_PERMISSIONS: dict[str, set[str]] = {
    'admin': {'all'},
    'doctor': {'read:patients', 'write:patients', 'read:appointments', 'write:appointments'},
    'nurse': {'read:patients', 'read:appointments'},
    'receptionist': {'read:patients', 'read:appointments', 'write:appointments'},
    'patient': {'read:own_appointments', 'write:own_appointments'},
}


def _own_variant(permission: str) -> str | None:
    action, _, resource = permission.partition(':')
    return f"{action}:own_{resource}" if resource else None


def has_permission(user, permission: str) -> bool:
    """Return True if ``user`` holds ``permission`` through their role."""
    if not (user and getattr(user, 'is_authenticated', False)):
        return False
    if getattr(user, 'is_superuser', False):
        return True
    perms = ROLE_PERMISSIONS.get(getattr(user, 'role', ''), set())
    return 'all' in perms or permission in perms


def is_own_scoped(user, permission: str) -> bool:
    """True when the user only holds the ``own`` variant of ``permission``."""
    if has_permission(user, permission):
        return False
    own = _own_variant(permission)
    return bool(own and has_permission(user, own))


def HasPermission(permission: str):
    """Build a DRF permission class requiring ``permission`` or its ``own`` variant."""

    class _HasPermission(BasePermission):
        message = f'permission "{permission}" required'

        def has_permission(self, request, view) -> bool:  # type: ignore[override]
            user = getattr(request, 'user', None)
            return has_permission(user, permission) or is_own_scoped(user, permission)

    _HasPermission.__name__ = f"HasPermission[{permission}]"
    return _HasPermission


class IsAdminRole(BasePermission):
    """Allow access only to administrators."""
    message = "Administrator role required"

    def has_permission(self, request, view) -> bool:  # type: ignore[override]
        user = getattr(request, "user", None)
        if not (user and user.is_authenticated):
            return False
        return user.is_superuser or getattr(user, "role", None) == "admin"


class IsAdminRoleOrReadOnly(IsAdminRole):
    """Reads for any caller, writes for administrators."""
    def has_permission(self, request, view) -> bool:  # type: ignore[override]
        return request.method in SAFE_METHODS or super().has_permission(request, view)
