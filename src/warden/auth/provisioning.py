"""
First-login provisioning.

Finds or creates the local user for an external identity, audits the
login and returns what is needed to mint an access token.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import List

from loguru import logger
from .audit import AuditLedger, EventType, format_details
from .database import RoleClaimStore
from .errors import ConfigurationError, StoreUnavailableError, UserAlreadyExistsError
from .models import Role, User
from .permissions import DEFAULT_ROLE, permission_claims


@dataclass
class ProvisionResult:
    """
    Outcome of a login.

    Attributes:
        user: The local user (new or existing)
        role: The user's current role
        permissions: Permission names granted by the role
        created: True if this call created the user
    """
    user: User
    role: Role
    permissions: List[str] = field(default_factory=list)
    created: bool = False


class ProvisioningEngine:
    """
    Idempotent user provisioning.

    A given (provider, external_id) maps to exactly one user, but every
    call writes its own LoginSuccess event.
    """

    def __init__(self, store: RoleClaimStore, ledger: AuditLedger):
        self.store = store
        self.ledger = ledger

    async def provision_on_login(self, external_id: str, email: str, provider: str) -> ProvisionResult:
        """
        Provision (or find) a user and audit the login.

        Args:
            external_id: Subject id from the identity provider
            email: Email reported by the provider
            provider: Provider name (e.g., "Okta")

        Returns:
            ProvisionResult with user, role and permission names

        Raises:
            ConfigurationError: If the default role isn't seeded
            StoreUnavailableError: On store failure
        """
        user = await self.store.get_user_by_external_id(provider, external_id)
        created = False

        if user is None:
            user, created = await self._create_user(external_id, email, provider)

        role = await self.store.get_role_by_id(user.role_id) if user.role_id else None
        if role is None:
            raise ConfigurationError(f"User {user.user_id} references a missing role {user.role_id}")

        claims = await self.store.get_role_claims(role.role_id)

        await self.ledger.record(
            EventType.LOGIN_SUCCESS,
            author_user_id=user.user_id,
            affected_user_id=user.user_id,
            details=format_details(provider=provider),
        )

        logger.info(f"Login provisioned: {user.email} ({user.user_id}) role={role.name} new={created}")
        return ProvisionResult(
            user=user,
            role=role,
            permissions=permission_claims(claims),
            created=created,
        )

    async def _create_user(self, external_id: str, email: str, provider: str):
        default_role = await self.store.get_role_by_name(DEFAULT_ROLE.value)
        if default_role is None:
            logger.error(f"Default role '{DEFAULT_ROLE.value}' is not seeded")
            raise ConfigurationError(f"{DEFAULT_ROLE.value} role not seeded")

        user = User(
            user_id=str(uuid.uuid4()),
            provider=provider,
            external_id=external_id,
            email=email,
            role_id=default_role.role_id,
            created_at=datetime.now(timezone.utc),
        )

        try:
            return await self.store.create_user(user), True
        except UserAlreadyExistsError:
            # Lost a concurrent first-login race; the other insert wins
            logger.info(f"User {provider}/{external_id} provisioned concurrently, re-fetching")
            existing = await self.store.get_user_by_external_id(provider, external_id)
            if existing is None:
                raise StoreUnavailableError(
                    f"User {provider}/{external_id} reported as duplicate but not found"
                )
            return existing, False
