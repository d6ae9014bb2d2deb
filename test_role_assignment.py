"""
Tests for the role assignment engine.
"""

from datetime import datetime, timezone

import pytest

from warden.auth import RoleAssignmentEngine, RoleName, User


@pytest.fixture
def engine(store, roles):
    return RoleAssignmentEngine(store)


@pytest.fixture
async def basic_user(store, roles):
    return await store.create_user(User(
        user_id="user-1",
        provider="Okta",
        external_id="ext-1",
        email="a@b.com",
        role_id=roles[RoleName.BASIC_USER].role_id,
        created_at=datetime.now(timezone.utc),
    ))


class TestAssignRole:
    """Validation and update."""

    async def test_unknown_user(self, engine, store, roles):
        result = await engine.assign_role("nobody", roles[RoleName.AUTH_OBSERVER].role_id)

        assert result.success is False
        assert result.message == "User not found"
        assert await store.query_events() == []

    async def test_unknown_role_leaves_user_unchanged(self, engine, store, basic_user):
        result = await engine.assign_role(basic_user.user_id, "no-such-role")

        assert result.success is False
        assert result.message == "Role not found"
        assert result.old_role_name == "BasicUser"

        role = await store.get_user_role(basic_user.user_id)
        assert role.name == "BasicUser"
        assert await store.query_events() == []

    async def test_success_reports_old_and_new_names(self, engine, store, roles, basic_user):
        result = await engine.assign_role(basic_user.user_id, roles[RoleName.SECURITY_AUDITOR].role_id)

        assert result.success is True
        assert result.old_role_name == "BasicUser"
        assert result.new_role_name == "SecurityAuditor"
        assert "BasicUser" in result.message and "SecurityAuditor" in result.message

        role = await store.get_user_role(basic_user.user_id)
        assert role.name == "SecurityAuditor"

    async def test_engine_does_not_write_events(self, engine, store, roles, basic_user):
        await engine.assign_role(basic_user.user_id, roles[RoleName.AUTH_OBSERVER].role_id)
        assert await store.query_events() == []

    async def test_reassigning_same_role_succeeds(self, engine, roles, basic_user):
        result = await engine.assign_role(basic_user.user_id, roles[RoleName.BASIC_USER].role_id)

        assert result.success is True
        assert result.old_role_name == result.new_role_name == "BasicUser"

    async def test_user_without_role_reports_unknown(self, engine, store, roles):
        await store.create_user(User(
            user_id="roleless",
            provider="Okta",
            external_id="ext-none",
            email="n@o.com",
            role_id=None,
            created_at=datetime.now(timezone.utc),
        ))

        result = await engine.assign_role("roleless", roles[RoleName.AUTH_OBSERVER].role_id)

        assert result.success is True
        assert result.old_role_name == "Unknown"
        assert result.new_role_name == "AuthObserver"
