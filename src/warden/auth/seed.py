"""
Default roles, claims and the optional seed user.

seed_defaults() is idempotent: it only creates what is missing.
"""

from datetime import datetime, timezone
from typing import Dict

from loguru import logger
from .database import RoleClaimStore
from .errors import UserAlreadyExistsError
from .models import Claim, Role, User
from .permissions import CLAIM_TYPE_PERMISSIONS, ROLE_PERMISSIONS, RoleName


# Deterministic ids so seeded databases agree across environments
ROLE_IDS: Dict[RoleName, str] = {
    RoleName.BASIC_USER: "aaaaaaaa-aaaa-aaaa-aaaa-aaaaaaaaaaaa",
    RoleName.AUTH_OBSERVER: "bbbbbbbb-bbbb-bbbb-bbbb-bbbbbbbbbbbb",
    RoleName.SECURITY_AUDITOR: "cccccccc-cccc-cccc-cccc-cccccccccccc",
}

ROLE_DESCRIPTIONS: Dict[RoleName, str] = {
    RoleName.BASIC_USER: "Default role",
    RoleName.AUTH_OBSERVER: "Can view auth events",
    RoleName.SECURITY_AUDITOR: "Can audit role changes",
}

SEED_USER_ID = "ffffffff-ffff-ffff-ffff-ffffffffffff"
SEED_USER_EXTERNAL_ID = "seed-user-sub"
SEED_USER_PROVIDER = "Okta"
SEED_USER_EMAIL = "seeduser@example.com"


async def seed_defaults(store: RoleClaimStore, with_seed_user: bool = False) -> Dict[RoleName, Role]:
    """
    Create the default roles and their permission claims.

    Args:
        store: Store to seed
        with_seed_user: Also create the BasicUser seed account

    Returns:
        Mapping of role name to the stored Role
    """
    roles: Dict[RoleName, Role] = {}

    for name, permissions in ROLE_PERMISSIONS.items():
        role = await store.get_role_by_name(name.value)
        if role is None:
            role = await store.create_role(Role(
                role_id=ROLE_IDS[name],
                name=name.value,
                description=ROLE_DESCRIPTIONS[name],
            ))

        for permission in sorted(permissions, key=lambda p: p.value):
            if await store.add_claim_to_role(role.role_id, Claim(CLAIM_TYPE_PERMISSIONS, permission.value)):
                logger.info(f"Granted {permission.value} to {name.value}")

        roles[name] = role

    if with_seed_user:
        await _seed_user(store, roles[RoleName.BASIC_USER])

    return roles


async def _seed_user(store: RoleClaimStore, role: Role) -> None:
    if await store.get_user_by_external_id(SEED_USER_PROVIDER, SEED_USER_EXTERNAL_ID):
        return

    try:
        await store.create_user(User(
            user_id=SEED_USER_ID,
            provider=SEED_USER_PROVIDER,
            external_id=SEED_USER_EXTERNAL_ID,
            email=SEED_USER_EMAIL,
            role_id=role.role_id,
            created_at=datetime.now(timezone.utc),
        ))
    except UserAlreadyExistsError:
        logger.debug("Seed user already present")
