"""
Role assignment.

Changes a user's role and reports the before/after role names. Writing the
RoleAssigned audit event is left to the caller, which knows who asked for
the change; see UserManager.assign_role.
"""

from dataclasses import dataclass

from loguru import logger
from .database import RoleClaimStore


USER_NOT_FOUND = "User not found"
ROLE_NOT_FOUND = "Role not found"
UNAUTHORIZED = "Unauthorized"
UNKNOWN_ROLE_NAME = "Unknown"


@dataclass
class RoleAssignmentResult:
    """
    Result of a role assignment.

    Attributes:
        success: Whether the user's role was updated
        message: Human-readable outcome
        old_role_name: Role name before the change ("Unknown" if none)
        new_role_name: Role name after the change ("" on failure)
        denied: True if the caller lacked permission; nothing was looked up
    """
    success: bool
    message: str
    old_role_name: str = ""
    new_role_name: str = ""
    denied: bool = False


class RoleAssignmentEngine:
    """
    Validates and applies role changes.

    Not-found outcomes come back as unsuccessful results rather than
    exceptions. Callers must check Audit.RoleChanges before calling.
    """

    def __init__(self, store: RoleClaimStore):
        self.store = store

    async def assign_role(self, user_id: str, role_id: str) -> RoleAssignmentResult:
        """
        Update a user's role.

        Args:
            user_id: Target user id
            role_id: Id of the role to assign

        Returns:
            RoleAssignmentResult
        """
        user = await self.store.get_user_by_id(user_id)
        if user is None:
            logger.warning(f"Role assignment failed: user {user_id} not found")
            return RoleAssignmentResult(success=False, message=USER_NOT_FOUND)

        old_role = await self.store.get_role_by_id(user.role_id) if user.role_id else None
        old_role_name = old_role.name if old_role else UNKNOWN_ROLE_NAME

        new_role = await self.store.get_role_by_id(role_id)
        if new_role is None:
            logger.warning(f"Role assignment failed: role {role_id} not found")
            return RoleAssignmentResult(
                success=False,
                message=ROLE_NOT_FOUND,
                old_role_name=old_role_name,
            )

        if not await self.store.update_user_role(user.user_id, new_role.role_id):
            # Row vanished between read and write
            logger.warning(f"Role assignment failed: user {user_id} disappeared")
            return RoleAssignmentResult(
                success=False,
                message=USER_NOT_FOUND,
                old_role_name=old_role_name,
            )

        logger.info(f"User {user_id} role changed: {old_role_name} -> {new_role.name}")
        return RoleAssignmentResult(
            success=True,
            message=f"Role changed from {old_role_name} to {new_role.name}",
            old_role_name=old_role_name,
            new_role_name=new_role.name,
        )
