"""
Tests for claim-based authorization.
"""

from datetime import datetime, timezone
from unittest.mock import AsyncMock

import pytest

from warden.auth import (
    AuthorizationEngine,
    Claim,
    Permission,
    Role,
    RoleName,
    ROLE_PERMISSIONS,
    User,
)
from warden.auth.permissions import permission_claims


def make_store(role_name, claims):
    """Store double resolving any user to the given role and claims."""
    store = AsyncMock()
    store.get_user_role.return_value = Role(role_id="r-1", name=role_name) if role_name else None
    store.get_role_claims.return_value = [Claim("permissions", value) for value in claims]
    return store


POLICY = [
    ("BasicUser", [], False, False),
    ("AuthObserver", ["Audit.ViewAuthEvents"], True, False),
    ("SecurityAuditor", ["Audit.ViewAuthEvents", "Audit.RoleChanges"], True, True),
]


class TestPolicyTable:
    """Each seeded role against both audit permissions."""

    @pytest.mark.parametrize("role_name,claims,view_auth,role_changes", POLICY)
    async def test_can_view_auth_events(self, role_name, claims, view_auth, role_changes):
        engine = AuthorizationEngine(make_store(role_name, claims))
        assert await engine.can_view_auth_events("u-1") is view_auth

    @pytest.mark.parametrize("role_name,claims,view_auth,role_changes", POLICY)
    async def test_can_view_role_changes(self, role_name, claims, view_auth, role_changes):
        engine = AuthorizationEngine(make_store(role_name, claims))
        assert await engine.can_view_role_changes("u-1") is role_changes

    def test_canonical_table_matches(self):
        """The seeding table grants what the policy says."""
        assert ROLE_PERMISSIONS[RoleName.BASIC_USER] == frozenset()
        assert ROLE_PERMISSIONS[RoleName.AUTH_OBSERVER] == {Permission.VIEW_AUTH_EVENTS}
        assert ROLE_PERMISSIONS[RoleName.SECURITY_AUDITOR] == {
            Permission.VIEW_AUTH_EVENTS,
            Permission.ROLE_CHANGES,
        }


class TestAuthorizationEngine:
    """Engine behaviour beyond the policy table."""

    async def test_unknown_user_is_denied(self):
        """No role means no permissions, and no exception."""
        store = make_store(None, [])
        engine = AuthorizationEngine(store)

        assert await engine.has_permission("missing", Permission.VIEW_AUTH_EVENTS) is False
        store.get_role_claims.assert_not_called()

    async def test_claim_type_must_be_permissions(self):
        store = AsyncMock()
        store.get_user_role.return_value = Role(role_id="r-1", name="Odd")
        store.get_role_claims.return_value = [Claim("scope", "Audit.RoleChanges")]
        engine = AuthorizationEngine(store)

        assert await engine.has_permission("u-1", Permission.ROLE_CHANGES) is False

    async def test_accepts_plain_string_permission(self):
        engine = AuthorizationEngine(make_store("AuthObserver", ["Audit.ViewAuthEvents"]))
        assert await engine.has_permission("u-1", "Audit.ViewAuthEvents") is True

    async def test_no_caching_between_checks(self):
        """A role change is visible on the very next check."""
        store = make_store("BasicUser", [])
        engine = AuthorizationEngine(store)
        assert await engine.can_view_role_changes("u-1") is False

        store.get_user_role.return_value = Role(role_id="r-3", name="SecurityAuditor")
        store.get_role_claims.return_value = [
            Claim("permissions", "Audit.ViewAuthEvents"),
            Claim("permissions", "Audit.RoleChanges"),
        ]
        assert await engine.can_view_role_changes("u-1") is True

    def test_permission_claims_dedupes_and_filters(self):
        claims = [
            Claim("permissions", "A"),
            Claim("other", "B"),
            Claim("permissions", "A"),
            Claim("permissions", "C"),
        ]
        assert permission_claims(claims) == ["A", "C"]


class TestAuthorizationAgainstDatabase:
    """Same checks against the seeded SQLite store."""

    @pytest.mark.parametrize("role_name,claims,view_auth,role_changes", POLICY)
    async def test_seeded_roles(self, store, roles, role_name, claims, view_auth, role_changes):
        role = roles[RoleName(role_name)]
        await store.create_user(User(
            user_id=f"user-{role_name}",
            provider="Okta",
            external_id=f"ext-{role_name}",
            email=f"{role_name}@example.com",
            role_id=role.role_id,
            created_at=datetime.now(timezone.utc),
        ))

        engine = AuthorizationEngine(store)
        assert await engine.can_view_auth_events(f"user-{role_name}") is view_auth
        assert await engine.can_view_role_changes(f"user-{role_name}") is role_changes
        assert sorted(await engine.get_user_permissions(f"user-{role_name}")) == sorted(claims)
