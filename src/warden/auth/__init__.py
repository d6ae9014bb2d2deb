"""
Authentication and authorization module for Warden.

Provides login provisioning, JWT access tokens, claim-based RBAC and an
append-only security event ledger.
"""

from .models import User, Role, Claim, SecurityEvent
from .database import RoleClaimStore, UserDatabase
from .config import TokenSettings, load_token_settings
from .jwt_handler import JWTHandler, TokenPayload
from .permissions import (
    CLAIM_TYPE_PERMISSIONS,
    DEFAULT_ROLE,
    ROLE_PERMISSIONS,
    AuthorizationEngine,
    Permission,
    RoleName,
)
from .audit import AuditLedger, EventType
from .provisioning import ProvisioningEngine, ProvisionResult
from .roles import RoleAssignmentEngine, RoleAssignmentResult
from .context import CallerContext, extract_bearer_token, has_permission
from .user_manager import LoginResult, UserListResult, UserManager, UserSummary
from .seed import seed_defaults
from .errors import (
    WardenError,
    ConfigurationError,
    StoreUnavailableError,
    UserAlreadyExistsError,
    AuthError,
    UnauthenticatedError,
    TokenError,
    MalformedTokenError,
    InvalidSignatureError,
    TokenExpiredError,
    IssuerMismatchError,
    AudienceMismatchError,
)

__all__ = [
    # Models and storage
    "User",
    "Role",
    "Claim",
    "SecurityEvent",
    "RoleClaimStore",
    "UserDatabase",
    # Tokens
    "TokenSettings",
    "load_token_settings",
    "JWTHandler",
    "TokenPayload",
    # RBAC
    "CLAIM_TYPE_PERMISSIONS",
    "DEFAULT_ROLE",
    "ROLE_PERMISSIONS",
    "AuthorizationEngine",
    "Permission",
    "RoleName",
    # Engines
    "AuditLedger",
    "EventType",
    "ProvisioningEngine",
    "ProvisionResult",
    "RoleAssignmentEngine",
    "RoleAssignmentResult",
    # Boundary
    "CallerContext",
    "extract_bearer_token",
    "has_permission",
    "LoginResult",
    "UserListResult",
    "UserManager",
    "UserSummary",
    "seed_defaults",
    # Errors
    "WardenError",
    "ConfigurationError",
    "StoreUnavailableError",
    "UserAlreadyExistsError",
    "AuthError",
    "UnauthenticatedError",
    "TokenError",
    "MalformedTokenError",
    "InvalidSignatureError",
    "TokenExpiredError",
    "IssuerMismatchError",
    "AudienceMismatchError",
]
