"""
Identity and audit data models.

Data classes for users, roles, claims, and security events.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional


@dataclass
class User:
    """
    Local user account tied to an external identity.

    Attributes:
        user_id: Unique user identifier (UUID string)
        provider: Identity provider name (e.g., "Okta", "Google")
        external_id: Subject id issued by the provider
        email: User email address
        role_id: Id of the user's single role
        created_at: Provisioning timestamp (UTC)
    """
    user_id: str
    provider: str
    external_id: str
    email: str
    role_id: Optional[str]
    created_at: datetime


@dataclass
class Role:
    """
    Named role owning a set of permission claims.

    Attributes:
        role_id: Unique role identifier
        name: Unique role name (e.g., "BasicUser", "SecurityAuditor")
        description: Human-readable description
    """
    role_id: str
    name: str
    description: Optional[str] = None


@dataclass(frozen=True)
class Claim:
    """
    Permission grant attached to roles.

    Attributes:
        type: Claim type, conventionally "permissions"
        value: Dotted permission name (e.g., "Audit.ViewAuthEvents")
    """
    type: str
    value: str


@dataclass(frozen=True)
class SecurityEvent:
    """
    Immutable audit record.

    Attributes:
        event_id: Unique event identifier
        event_type: Free-form tag ("LoginSuccess", "Logout", "RoleAssigned", ...)
        author_user_id: User who caused the event
        affected_user_id: User the event concerns
        occurred_utc: Wall-clock time of creation (UTC)
        details: Free text, conventionally "key=value" pairs
    """
    event_id: str
    event_type: str
    author_user_id: str
    affected_user_id: str
    occurred_utc: datetime
    details: str
