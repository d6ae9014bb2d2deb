"""
Tests for access token issue and validation.
"""

from datetime import datetime, timedelta, timezone

import jwt
import pytest

from warden.auth import (
    AudienceMismatchError,
    InvalidSignatureError,
    IssuerMismatchError,
    JWTHandler,
    MalformedTokenError,
    TokenError,
    TokenExpiredError,
    TokenSettings,
)
from conftest import TEST_SECRET


USER_ID = "3f1c2b8e-0000-4000-8000-000000000001"


class TestTokenRoundTrip:
    """Issue then verify."""

    def test_recovers_identity_role_and_permissions(self, jwt_handler):
        token = jwt_handler.create_access_token(
            user_id=USER_ID,
            email="a@b.com",
            role="SecurityAuditor",
            permissions=["Audit.ViewAuthEvents", "Audit.RoleChanges", "Audit.ViewAuthEvents"],
        )

        payload = jwt_handler.verify_token(token)

        assert payload.user_id == USER_ID
        assert payload.email == "a@b.com"
        assert payload.role == "SecurityAuditor"
        assert payload.permissions == ["Audit.ViewAuthEvents", "Audit.RoleChanges"]
        assert payload.issuer == "warden-test"
        assert payload.audience == "warden-clients"

    def test_empty_permissions(self, jwt_handler):
        token = jwt_handler.create_access_token(USER_ID, "a@b.com", "BasicUser", [])
        assert jwt_handler.verify_token(token).permissions == []

    def test_claim_layout(self, jwt_handler):
        """Token carries uid/sub, email, role and a permissions array."""
        token = jwt_handler.create_access_token(USER_ID, "a@b.com", "AuthObserver", ["Audit.ViewAuthEvents"])
        raw = jwt.decode(token, options={"verify_signature": False})

        assert raw["uid"] == USER_ID
        assert raw["sub"] == USER_ID
        assert raw["email"] == "a@b.com"
        assert raw["role"] == "AuthObserver"
        assert raw["permissions"] == ["Audit.ViewAuthEvents"]
        assert jwt.get_unverified_header(token)["alg"] == "HS256"

    def test_default_lifetime_is_sixty_minutes(self, jwt_handler):
        token = jwt_handler.create_access_token(USER_ID, "a@b.com", "BasicUser", [])
        payload = jwt_handler.verify_token(token)
        assert payload.exp - payload.iat == timedelta(minutes=60)

    def test_single_string_permission_is_accepted(self, jwt_handler):
        """A lone permission serialized as a string still decodes to a list."""
        now = datetime.now(timezone.utc)
        token = jwt.encode({
            "iss": "warden-test",
            "aud": "warden-clients",
            "iat": now,
            "exp": now + timedelta(minutes=5),
            "sub": USER_ID,
            "uid": USER_ID,
            "role": "AuthObserver",
            "permissions": "Audit.ViewAuthEvents",
        }, TEST_SECRET, algorithm="HS256")

        assert jwt_handler.verify_token(token).permissions == ["Audit.ViewAuthEvents"]


class TestTokenValidationFailures:
    """Each failure kind is a distinct error."""

    def test_expired(self, jwt_handler):
        token = jwt_handler.create_access_token(
            USER_ID, "a@b.com", "BasicUser", [], expires_delta=timedelta(minutes=-10)
        )
        with pytest.raises(TokenExpiredError):
            jwt_handler.verify_token(token)

    def test_expired_within_clock_skew_is_accepted(self, jwt_handler):
        token = jwt_handler.create_access_token(
            USER_ID, "a@b.com", "BasicUser", [], expires_delta=timedelta(seconds=-30)
        )
        assert jwt_handler.verify_token(token).user_id == USER_ID

    def test_bad_signature(self, jwt_handler):
        other = JWTHandler(TokenSettings(
            secret_key="another-secret-key-of-sufficient-length",
            issuer="warden-test",
            audience="warden-clients",
        ))
        token = other.create_access_token(USER_ID, "a@b.com", "SecurityAuditor", ["Audit.RoleChanges"])

        with pytest.raises(InvalidSignatureError):
            jwt_handler.verify_token(token)

    def test_issuer_mismatch(self, jwt_handler):
        other = JWTHandler(TokenSettings(secret_key=TEST_SECRET, issuer="someone-else", audience="warden-clients"))
        token = other.create_access_token(USER_ID, "a@b.com", "BasicUser", [])

        with pytest.raises(IssuerMismatchError):
            jwt_handler.verify_token(token)

    def test_audience_mismatch(self, jwt_handler):
        other = JWTHandler(TokenSettings(secret_key=TEST_SECRET, issuer="warden-test", audience="another-app"))
        token = other.create_access_token(USER_ID, "a@b.com", "BasicUser", [])

        with pytest.raises(AudienceMismatchError):
            jwt_handler.verify_token(token)

    @pytest.mark.parametrize("token", ["", "not-a-token", "a.b.c"])
    def test_malformed(self, jwt_handler, token):
        with pytest.raises(MalformedTokenError):
            jwt_handler.verify_token(token)

    def test_missing_role_claim_is_malformed(self, jwt_handler):
        now = datetime.now(timezone.utc)
        token = jwt.encode({
            "iss": "warden-test",
            "aud": "warden-clients",
            "iat": now,
            "exp": now + timedelta(minutes=5),
            "sub": USER_ID,
            "uid": USER_ID,
        }, TEST_SECRET, algorithm="HS256")

        with pytest.raises(MalformedTokenError):
            jwt_handler.verify_token(token)

    def test_all_failures_share_base_class(self):
        for error in (
            MalformedTokenError,
            InvalidSignatureError,
            TokenExpiredError,
            IssuerMismatchError,
            AudienceMismatchError,
        ):
            assert issubclass(error, TokenError)
