"""
Exception hierarchy for the auth package.

Business outcomes such as "user not found" are returned as typed results;
the exceptions here cover configuration, infrastructure and authentication
failures that callers must not mistake for an empty permission set.
"""


class WardenError(Exception):
    """Base class for all warden errors."""


class ConfigurationError(WardenError):
    """Bad or missing configuration/seed data. Fatal for the operation."""


class StoreUnavailableError(WardenError):
    """The persistent store failed. Never retried or swallowed here."""


class UserAlreadyExistsError(WardenError):
    """
    A user with the same (provider, external_id) already exists.

    Raised by the store on a unique-constraint violation so provisioning can
    re-fetch the row another caller inserted first.
    """

    def __init__(self, provider: str, external_id: str):
        self.provider = provider
        self.external_id = external_id
        super().__init__(f"User already exists: {provider}/{external_id}")


class AuthError(WardenError):
    """Caller identity could not be established."""


class UnauthenticatedError(AuthError):
    """
    Raised when a request carries no usable credentials.

    Attributes:
        reason: Short machine-readable reason ("missing_token", "expired", ...)
    """

    def __init__(self, message: str, reason: str = "unauthenticated"):
        self.reason = reason
        super().__init__(message)


class TokenError(AuthError):
    """Base class for bearer token validation failures."""

    reason = "invalid_token"


class MalformedTokenError(TokenError):
    """Token could not be parsed or lacks required claims."""

    reason = "malformed"


class InvalidSignatureError(TokenError):
    """Token signature does not match the configured secret."""

    reason = "invalid_signature"


class TokenExpiredError(TokenError):
    """Token expiry is in the past (beyond the allowed clock skew)."""

    reason = "expired"


class IssuerMismatchError(TokenError):
    """Token issuer differs from the configured issuer."""

    reason = "issuer_mismatch"


class AudienceMismatchError(TokenError):
    """Token audience differs from the configured audience."""

    reason = "audience_mismatch"

