"""
Token signing configuration.

Settings are an explicit object handed to JWTHandler at construction.
load_token_settings() builds one from the environment for deployments.
"""

import os
from pathlib import Path
from typing import Mapping, Optional

from loguru import logger
from pydantic import BaseModel, Field, ValidationError, field_validator

from .errors import ConfigurationError


ALGORITHM = "HS256"
DEFAULT_ISSUER = "api"
DEFAULT_AUDIENCE = "client"
ACCESS_TOKEN_EXPIRE_MINUTES = 60  # 1 hour
MAX_CLOCK_SKEW_SECONDS = 120

ENV_SECRET = "WARDEN_JWT_SECRET"
ENV_SECRET_FILE = "WARDEN_JWT_SECRET_FILE"
ENV_ISSUER = "WARDEN_JWT_ISSUER"
ENV_AUDIENCE = "WARDEN_JWT_AUDIENCE"
ENV_EXPIRES_MINUTES = "WARDEN_JWT_EXPIRES_MINUTES"


class TokenSettings(BaseModel):
    """
    Configuration for signing and validating access tokens.

    Attributes:
        secret_key: Symmetric HMAC secret (at least 32 characters)
        issuer: Expected/issued "iss" claim
        audience: Expected/issued "aud" claim
        expires_minutes: Token lifetime from issue time
        clock_skew_seconds: Leeway applied to exp/nbf checks
        algorithm: Signing algorithm (HS256 only)
    """

    model_config = {"frozen": True}

    secret_key: str = Field(min_length=32, repr=False)
    issuer: str = DEFAULT_ISSUER
    audience: str = DEFAULT_AUDIENCE
    expires_minutes: int = Field(default=ACCESS_TOKEN_EXPIRE_MINUTES, gt=0)
    clock_skew_seconds: int = Field(default=MAX_CLOCK_SKEW_SECONDS, ge=0, le=MAX_CLOCK_SKEW_SECONDS)
    algorithm: str = ALGORITHM

    @field_validator("algorithm")
    @classmethod
    def _hmac_only(cls, value: str) -> str:
        if value != ALGORITHM:
            raise ValueError(f"unsupported algorithm {value!r}, expected {ALGORITHM}")
        return value

    @field_validator("issuer", "audience")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("must not be blank")
        return value


def _read_secret_file(path: Path) -> str:
    try:
        return path.read_text().strip()
    except OSError as e:
        raise ConfigurationError(f"Failed to read JWT secret file {path}: {e}") from e


def load_token_settings(environ: Optional[Mapping[str, str]] = None) -> TokenSettings:
    """
    Build TokenSettings from environment variables.

    The secret comes from WARDEN_JWT_SECRET, or from the file named by
    WARDEN_JWT_SECRET_FILE when the variable is unset.

    Args:
        environ: Mapping to read from (default: os.environ)

    Returns:
        Validated TokenSettings

    Raises:
        ConfigurationError: If the secret is missing or any value is invalid
    """
    env = os.environ if environ is None else environ

    secret = env.get(ENV_SECRET)
    if not secret and env.get(ENV_SECRET_FILE):
        secret = _read_secret_file(Path(env[ENV_SECRET_FILE]))
    if not secret:
        raise ConfigurationError(
            f"JWT secret not configured: set {ENV_SECRET} or {ENV_SECRET_FILE}"
        )

    values = {"secret_key": secret}
    if env.get(ENV_ISSUER):
        values["issuer"] = env[ENV_ISSUER]
    if env.get(ENV_AUDIENCE):
        values["audience"] = env[ENV_AUDIENCE]
    if env.get(ENV_EXPIRES_MINUTES):
        values["expires_minutes"] = env[ENV_EXPIRES_MINUTES]

    try:
        settings = TokenSettings(**values)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid token settings: {e}") from e

    logger.info(
        f"Token settings loaded (issuer={settings.issuer}, audience={settings.audience}, "
        f"expires={settings.expires_minutes}m)"
    )
    return settings
