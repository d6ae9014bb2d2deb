"""
Permission names and the authorization engine.

This module provides:
- Permission name constants (the only place permission strings live)
- The canonical role -> permission table used for seeding
- AuthorizationEngine, which answers "does this user hold permission X"
  from the user's current role and that role's claims
"""

from enum import Enum
from typing import Dict, FrozenSet, Iterable, Union

from loguru import logger
from .database import RoleClaimStore
from .models import Claim


CLAIM_TYPE_PERMISSIONS = "permissions"


class Permission(str, Enum):
    """
    Enum of all permission names.

    Values are the dotted claim values stored on roles and carried in tokens.
    """
    VIEW_AUTH_EVENTS = "Audit.ViewAuthEvents"   # See login/logout events
    ROLE_CHANGES = "Audit.RoleChanges"          # See all events, assign roles


class RoleName(str, Enum):
    """
    Seeded role names.
    """
    BASIC_USER = "BasicUser"                # Default role on first login
    AUTH_OBSERVER = "AuthObserver"          # Can view auth events
    SECURITY_AUDITOR = "SecurityAuditor"    # Can audit role changes


DEFAULT_ROLE = RoleName.BASIC_USER


# Canonical policy table
ROLE_PERMISSIONS: Dict[RoleName, FrozenSet[Permission]] = {
    RoleName.BASIC_USER: frozenset(),
    RoleName.AUTH_OBSERVER: frozenset({
        Permission.VIEW_AUTH_EVENTS,
    }),
    RoleName.SECURITY_AUDITOR: frozenset({
        Permission.VIEW_AUTH_EVENTS,
        Permission.ROLE_CHANGES,
    }),
}


PermissionLike = Union[Permission, str]


def permission_value(permission: PermissionLike) -> str:
    """Plain string form of a permission name."""
    return permission.value if isinstance(permission, Permission) else permission


def permission_claims(claims: Iterable[Claim]) -> list:
    """
    Permission names from a claim list, deduplicated in first-seen order.

    Claims of any other type are ignored.
    """
    seen = []
    for claim in claims:
        if claim.type == CLAIM_TYPE_PERMISSIONS and claim.value not in seen:
            seen.append(claim.value)
    return seen


class AuthorizationEngine:
    """
    Checks if a user has permission to perform an action.

    Every check reads the user's current role and claims from the store;
    nothing is cached, so a role change applies to the next check. Lookups
    fail closed: an unknown user or a user without a role has no permissions.
    """

    def __init__(self, store: RoleClaimStore):
        """
        Initialize the engine.

        Args:
            store: Role/claim store to resolve users against
        """
        self.store = store

    async def has_permission(self, user_id: str, permission: PermissionLike) -> bool:
        """
        Check if a user's role grants a permission.

        Args:
            user_id: Local user id
            permission: Permission name (e.g., Permission.ROLE_CHANGES)

        Returns:
            bool: True iff the role holds a "permissions" claim with that value
        """
        role = await self.store.get_user_role(user_id)
        if role is None:
            logger.debug(f"No role for user {user_id}, denying {permission_value(permission)}")
            return False

        claims = await self.store.get_role_claims(role.role_id)
        return Claim(CLAIM_TYPE_PERMISSIONS, permission_value(permission)) in claims

    async def can_view_auth_events(self, user_id: str) -> bool:
        return await self.has_permission(user_id, Permission.VIEW_AUTH_EVENTS)

    async def can_view_role_changes(self, user_id: str) -> bool:
        return await self.has_permission(user_id, Permission.ROLE_CHANGES)

    async def get_user_permissions(self, user_id: str) -> list:
        """
        Get all permission names granted to a user through their role.

        Returns:
            list: Permission names, empty if the user or role is unknown
        """
        role = await self.store.get_user_role(user_id)
        if role is None:
            return []
        return permission_claims(await self.store.get_role_claims(role.role_id))

