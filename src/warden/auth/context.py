"""
Caller context for authenticated requests.

Turns a bearer token into the identity and permission set that gated
operations run under.
"""

from dataclasses import dataclass, field
from typing import List, Optional

from .errors import UnauthenticatedError
from .jwt_handler import TokenPayload
from .permissions import PermissionLike, permission_value


BEARER_SCHEME = "bearer"


@dataclass
class CallerContext:
    """
    Authenticated caller.

    Contains the identity and permissions carried by the caller's token.
    """
    user_id: str
    email: str
    role: str
    permissions: List[str] = field(default_factory=list)

    @classmethod
    def from_payload(cls, payload: TokenPayload) -> "CallerContext":
        return cls(
            user_id=payload.user_id,
            email=payload.email,
            role=payload.role,
            permissions=list(payload.permissions),
        )


def extract_bearer_token(authorization: Optional[str]) -> str:
    """
    Pull the token out of an Authorization header value.

    Accepts "Bearer <token>" (scheme is case-insensitive) or a bare token.

    Raises:
        UnauthenticatedError: If no token is present
    """
    if not authorization or not authorization.strip():
        raise UnauthenticatedError("Missing bearer token", reason="missing_token")

    value = authorization.strip()
    scheme, _, rest = value.partition(" ")
    if scheme.lower() == BEARER_SCHEME:
        value = rest.strip()

    if not value:
        raise UnauthenticatedError("Missing bearer token", reason="missing_token")
    return value


def has_permission(context: CallerContext, permission: PermissionLike) -> bool:
    """
    Check if the caller's token carries a permission.

    Args:
        context: Caller context
        permission: Permission name (e.g., "Audit.ViewAuthEvents")

    Returns:
        True on an exact match
    """
    return permission_value(permission) in context.permissions
