"""
Identity and access manager.

Combines the store, token handling and the provisioning, authorization,
role-assignment and audit engines into the operations exposed to callers.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

from loguru import logger
from .audit import AuditLedger, EventType, format_details
from .config import TokenSettings
from .context import CallerContext, extract_bearer_token
from .database import RoleClaimStore, UserDatabase
from .errors import TokenError, UnauthenticatedError
from .jwt_handler import JWTHandler
from .models import Claim, Role, SecurityEvent, User
from .permissions import AuthorizationEngine, Permission, PermissionLike
from .provisioning import ProvisioningEngine
from .roles import UNAUTHORIZED, RoleAssignmentEngine, RoleAssignmentResult


@dataclass
class LoginResult:
    """
    Result of a successful federated login.

    Attributes:
        user: Local user record
        role: User's role
        permissions: Permission names embedded in the token
        access_token: Signed bearer token
    """
    user: User
    role: Role
    permissions: List[str] = field(default_factory=list)
    access_token: str = ""


@dataclass
class UserSummary:
    """
    A user with their role and that role's claims, for admin pickers.
    """
    user: User
    role: Optional[Role]
    claims: List[Claim] = field(default_factory=list)


@dataclass
class UserListResult:
    """
    Result of listing users.

    Attributes:
        success: False when the caller lacks Audit.RoleChanges
        message: Human-readable outcome
        users: Users ordered by email (empty when denied)
    """
    success: bool
    message: str
    users: List[UserSummary] = field(default_factory=list)


class UserManager:
    """
    Identity provisioning and access control manager.

    Provides:
    - Login provisioning and token issue
    - Token authentication
    - Permission checks
    - Role assignment (gated by Audit.RoleChanges, audited)
    - Security event recording and permission-filtered queries
    """

    def __init__(
        self,
        store: RoleClaimStore,
        jwt_handler: JWTHandler,
        ledger: Optional[AuditLedger] = None,
        authorization: Optional[AuthorizationEngine] = None,
        provisioning: Optional[ProvisioningEngine] = None,
        role_assignment: Optional[RoleAssignmentEngine] = None,
    ):
        """
        Initialize manager.

        Engines not passed in are built on the same store.

        Args:
            store: Role/claim store
            jwt_handler: Token handler built from TokenSettings
            ledger: Security event ledger
            authorization: Permission checks
            provisioning: Login provisioning
            role_assignment: Role changes
        """
        self.store = store
        self.jwt = jwt_handler
        self.ledger = ledger or AuditLedger(store)
        self.authorization = authorization or AuthorizationEngine(store)
        self.provisioning = provisioning or ProvisioningEngine(store, self.ledger)
        self.role_assignment = role_assignment or RoleAssignmentEngine(store)

    @classmethod
    def create(cls, db_path: Path, settings: TokenSettings) -> "UserManager":
        """Build a manager backed by a SQLite database file."""
        return cls(UserDatabase(db_path), JWTHandler(settings))

    # ========================================================================
    # Login
    # ========================================================================

    async def provision_on_login(self, external_id: str, email: str, provider: str) -> LoginResult:
        """
        Provision the user for an external identity and issue a token.

        Args:
            external_id: Subject id from the identity provider
            email: Email reported by the provider
            provider: Provider name

        Returns:
            LoginResult with the signed access token
        """
        result = await self.provisioning.provision_on_login(external_id, email, provider)

        token = self.jwt.create_access_token(
            user_id=result.user.user_id,
            email=result.user.email,
            role=result.role.name,
            permissions=result.permissions,
        )

        return LoginResult(
            user=result.user,
            role=result.role,
            permissions=result.permissions,
            access_token=token,
        )

    def authenticate(self, token: Optional[str]) -> CallerContext:
        """
        Establish the caller from a bearer token.

        Args:
            token: Raw token or "Bearer <token>" header value

        Returns:
            CallerContext

        Raises:
            UnauthenticatedError: Token missing or invalid; for invalid tokens
                the TokenError subclass is chained as __cause__
        """
        raw = extract_bearer_token(token)
        try:
            payload = self.jwt.verify_token(raw)
        except TokenError as e:
            raise UnauthenticatedError(f"Invalid token: {e}", reason=e.reason) from e
        return CallerContext.from_payload(payload)

    async def logout(self, token: Optional[str]) -> SecurityEvent:
        """
        Record a logout for the token's user.

        Tokens are self-contained, so nothing is revoked server-side.
        """
        caller = self.authenticate(token)
        logger.info(f"User logged out: {caller.email} ({caller.user_id})")
        return await self.ledger.record(
            EventType.LOGOUT,
            author_user_id=caller.user_id,
            affected_user_id=caller.user_id,
        )

    # ========================================================================
    # Authorization
    # ========================================================================

    async def has_permission(self, user_id: str, permission: PermissionLike) -> bool:
        return await self.authorization.has_permission(user_id, permission)

    async def can_view_auth_events(self, user_id: str) -> bool:
        return await self.authorization.can_view_auth_events(user_id)

    async def can_view_role_changes(self, user_id: str) -> bool:
        return await self.authorization.can_view_role_changes(user_id)

    # ========================================================================
    # Role Management
    # ========================================================================

    async def assign_role(self, token: Optional[str], user_id: str, role_id: str) -> RoleAssignmentResult:
        """
        Change a user's role on behalf of the token's caller.

        The caller's current role must grant Audit.RoleChanges. On success a
        RoleAssigned event is written with the caller as author. The role
        change is committed before the event write; if that write fails the
        error propagates even though the new role is already in place.

        Args:
            token: Caller's bearer token
            user_id: Target user id
            role_id: Role to assign

        Returns:
            RoleAssignmentResult; success=False for unknown user or role,
            and with denied=True when the caller lacks Audit.RoleChanges

        Raises:
            UnauthenticatedError: Missing or invalid token
            StoreUnavailableError: Store failure, including the audit write
        """
        caller = self.authenticate(token)
        if not await self.authorization.has_permission(caller.user_id, Permission.ROLE_CHANGES):
            logger.warning(f"Role assignment denied: user {caller.user_id} lacks {Permission.ROLE_CHANGES.value}")
            return RoleAssignmentResult(success=False, message=UNAUTHORIZED, denied=True)

        result = await self.role_assignment.assign_role(user_id, role_id)
        if not result.success:
            return result

        await self.ledger.record(
            EventType.ROLE_ASSIGNED,
            author_user_id=caller.user_id,
            affected_user_id=user_id,
            details=format_details(**{"from": result.old_role_name, "to": result.new_role_name}),
        )
        return result

    async def list_roles(self) -> List[Role]:
        return await self.store.list_roles()

    async def list_users(self, token: Optional[str]) -> UserListResult:
        """
        List users with their role and claims for role administration.

        Gated like assign_role: the caller's current role must grant
        Audit.RoleChanges, otherwise an unsuccessful result is returned.

        Raises:
            UnauthenticatedError: Missing or invalid token
        """
        caller = self.authenticate(token)
        if not await self.authorization.has_permission(caller.user_id, Permission.ROLE_CHANGES):
            logger.warning(f"User listing denied: user {caller.user_id} lacks {Permission.ROLE_CHANGES.value}")
            return UserListResult(success=False, message=UNAUTHORIZED)

        roles = {}
        claims = {}
        summaries = []
        for user in await self.store.list_users():
            if user.role_id and user.role_id not in roles:
                roles[user.role_id] = await self.store.get_role_by_id(user.role_id)
                claims[user.role_id] = await self.store.get_role_claims(user.role_id)
            summaries.append(UserSummary(
                user=user,
                role=roles.get(user.role_id),
                claims=list(claims.get(user.role_id, [])),
            ))

        return UserListResult(success=True, message=f"{len(summaries)} users", users=summaries)

    # ========================================================================
    # Security Events
    # ========================================================================

    async def add_security_event(
        self,
        token: Optional[str],
        event_type: str,
        affected_user_id: str,
        details: str = "",
    ) -> SecurityEvent:
        """
        Record an ad-hoc security event authored by the token's caller.

        Args:
            token: Caller's bearer token
            event_type: Event tag
            affected_user_id: User the event concerns
            details: Free text

        Returns:
            The stored SecurityEvent
        """
        caller = self.authenticate(token)
        return await self.ledger.record(
            event_type,
            author_user_id=caller.user_id,
            affected_user_id=affected_user_id,
            details=details,
        )

    async def get_security_events(self, token: Optional[str]) -> List[SecurityEvent]:
        """
        Get the events visible to the token's caller.

        Visibility follows the permissions carried in the token.
        """
        caller = self.authenticate(token)
        return await self.ledger.query_for_caller(caller.permissions)
