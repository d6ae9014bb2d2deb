"""
JWT token generation and validation.

Handles creation and verification of signed access tokens carrying a
user's id, email, role and permission claims.
"""

import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Dict, Iterable, List, Optional

import jwt
from loguru import logger

from .config import TokenSettings
from .errors import (
    AudienceMismatchError,
    InvalidSignatureError,
    IssuerMismatchError,
    MalformedTokenError,
    TokenError,
    TokenExpiredError,
)


CLAIM_USER_ID = "uid"
CLAIM_EMAIL = "email"
CLAIM_ROLE = "role"
CLAIM_PERMISSIONS = "permissions"

REQUIRED_CLAIMS = ["exp", "iat", "iss", "aud", "sub"]


@dataclass
class TokenPayload:
    """
    Decoded, validated access token.

    Attributes:
        user_id: User UUID ("uid" claim)
        email: User email
        role: Role name
        permissions: Deduplicated permission names
        exp: Expiration timestamp
        iat: Issued at timestamp
        jti: Token id (informational)
        issuer: "iss" claim
        audience: "aud" claim
    """
    user_id: str
    email: str
    role: str
    permissions: List[str]
    exp: datetime
    iat: datetime
    jti: Optional[str]
    issuer: str
    audience: str


def _dedupe(values: Iterable[str]) -> List[str]:
    result: List[str] = []
    for value in values:
        if value not in result:
            result.append(value)
    return result


class JWTHandler:
    """
    JWT token handler.

    Creates and validates HS256 access tokens using injected TokenSettings.
    """

    def __init__(self, settings: TokenSettings):
        """
        Initialize handler.

        Args:
            settings: Signing secret, issuer, audience, lifetime and skew
        """
        self.settings = settings

    def create_access_token(
        self,
        user_id: str,
        email: str,
        role: str,
        permissions: Iterable[str],
        expires_delta: Optional[timedelta] = None,
    ) -> str:
        """
        Create JWT access token.

        Args:
            user_id: User UUID
            email: User email
            role: Role name
            permissions: Permission names (duplicates are dropped)
            expires_delta: Lifetime override (default: settings.expires_minutes)

        Returns:
            JWT token string
        """
        if expires_delta is None:
            expires_delta = timedelta(minutes=self.settings.expires_minutes)

        now = datetime.now(timezone.utc)
        expire = now + expires_delta

        payload = {
            "iss": self.settings.issuer,
            "aud": self.settings.audience,
            "iat": now,
            "nbf": now,
            "exp": expire,
            "sub": user_id,  # Subject (standard JWT claim)
            CLAIM_USER_ID: user_id,
            CLAIM_EMAIL: email,
            CLAIM_ROLE: role,
            CLAIM_PERMISSIONS: _dedupe(permissions),
            "jti": secrets.token_urlsafe(16),
        }

        token = jwt.encode(payload, self.settings.secret_key, algorithm=self.settings.algorithm)
        logger.debug(f"Access token issued for user {user_id} (role={role})")

        return token

    def verify_token(self, token: str) -> TokenPayload:
        """
        Verify and decode JWT token.

        Args:
            token: JWT token string

        Returns:
            TokenPayload for a valid token

        Raises:
            MalformedTokenError: Token can't be parsed or lacks required claims
            InvalidSignatureError: Signature doesn't verify
            TokenExpiredError: Token is past its expiry (beyond clock skew)
            IssuerMismatchError: Wrong "iss"
            AudienceMismatchError: Wrong "aud"
            TokenError: Any other validation failure (e.g. not yet valid)
        """
        try:
            payload = jwt.decode(
                token,
                self.settings.secret_key,
                algorithms=[self.settings.algorithm],
                audience=self.settings.audience,
                issuer=self.settings.issuer,
                leeway=self.settings.clock_skew_seconds,
                options={"require": REQUIRED_CLAIMS},
            )
        except jwt.ExpiredSignatureError as e:
            logger.warning("Token has expired")
            raise TokenExpiredError("Token has expired") from e
        except jwt.InvalidSignatureError as e:
            logger.warning("Token signature verification failed")
            raise InvalidSignatureError("Token signature is invalid") from e
        except jwt.InvalidIssuerError as e:
            logger.warning(f"Token issuer mismatch: {e}")
            raise IssuerMismatchError(str(e)) from e
        except jwt.InvalidAudienceError as e:
            logger.warning(f"Token audience mismatch: {e}")
            raise AudienceMismatchError(str(e)) from e
        except (jwt.DecodeError, jwt.MissingRequiredClaimError) as e:
            logger.warning(f"Malformed token: {e}")
            raise MalformedTokenError(str(e)) from e
        except jwt.InvalidTokenError as e:
            logger.warning(f"Invalid token: {e}")
            raise TokenError(str(e)) from e

        return self._to_payload(payload)

    @staticmethod
    def _to_payload(payload: Dict) -> TokenPayload:
        user_id = payload.get(CLAIM_USER_ID)
        role = payload.get(CLAIM_ROLE)
        if not user_id or not role:
            logger.warning("Token is missing uid or role claim")
            raise MalformedTokenError("Token is missing uid or role claim")

        permissions = payload.get(CLAIM_PERMISSIONS, [])
        if isinstance(permissions, str):
            permissions = [permissions]
        elif not isinstance(permissions, list):
            raise MalformedTokenError("permissions claim must be a list of strings")

        return TokenPayload(
            user_id=user_id,
            email=payload.get(CLAIM_EMAIL, ""),
            role=role,
            permissions=_dedupe(str(p) for p in permissions),
            exp=datetime.fromtimestamp(payload["exp"], tz=timezone.utc),
            iat=datetime.fromtimestamp(payload["iat"], tz=timezone.utc),
            jti=payload.get("jti"),
            issuer=payload["iss"],
            audience=payload["aud"],
        )

