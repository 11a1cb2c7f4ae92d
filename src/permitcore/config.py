"""Configuration contract for permitcore.

This module provides Pydantic-validated configuration models for logging
and for the token codec's key material.

Key material is supplied as base64-encoded PEM text. Two independent key
pairs are used:

    Signing    → sign() needs the private key, verify() the public key
    Encryption → encrypt() needs the public key, decrypt() the private key

A missing key disables the corresponding codec operation instead of
failing at startup. Direct os.environ/os.getenv usage is confined to
load_config_from_env().
"""

from __future__ import annotations

import re
from datetime import timedelta
from enum import Enum
from typing import Optional, Union

from pydantic import BaseModel, Field, field_validator

from .exceptions import ConfigurationError


class LogLevel(str, Enum):
    """Standard log levels."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


# ── Durations ───────────────────────────────────────────

_DURATION_RE = re.compile(r"^\s*(\d+)\s*(s|sec|secs|m|min|mins|h|hr|hrs|d|day|days|w|week|weeks)?\s*$", re.IGNORECASE)

_UNIT_SECONDS = {
    "s": 1,
    "sec": 1,
    "secs": 1,
    "m": 60,
    "min": 60,
    "mins": 60,
    "h": 3600,
    "hr": 3600,
    "hrs": 3600,
    "d": 86400,
    "day": 86400,
    "days": 86400,
    "w": 604800,
    "week": 604800,
    "weeks": 604800,
}

Duration = Union[int, float, str, timedelta]


def parse_duration(value: Duration) -> int:
    """Convert a token lifetime into whole seconds.

    Accepts seconds (``int``/``float``), ``timedelta``, or strings such as
    ``"30s"``, ``"15m"``, ``"2h"``, ``"1d"``. A bare number string is seconds.

    Raises:
        ConfigurationError: If the value cannot be parsed.
    """
    if isinstance(value, bool):
        raise ConfigurationError(f"Invalid duration: {value!r}")
    if isinstance(value, timedelta):
        return int(value.total_seconds())
    if isinstance(value, (int, float)):
        return int(value)
    if isinstance(value, str):
        match = _DURATION_RE.match(value)
        if match:
            amount, unit = match.groups()
            return int(amount) * _UNIT_SECONDS[(unit or "s").lower()]
    raise ConfigurationError(f"Invalid duration: {value!r}", value=value)


class TokenConfig(BaseModel):
    """Key material and default claims for the token codec.

    Environment variables:
        JWT_SIGNING_PRIVATE_KEY     — base64 PEM, signer only
        JWT_SIGNING_PUBLIC_KEY      — base64 PEM, derived from private key if empty
        JWT_ENCRYPTION_PRIVATE_KEY  — base64 PEM, decrypt only
        JWT_ENCRYPTION_PUBLIC_KEY   — base64 PEM, derived from private key if empty
        JWT_ISSUER                  — default ``iss`` claim
        JWT_AUDIENCE                — default ``aud`` claim
        JWT_EXPIRATION              — default lifetime (e.g. "1h")
    """

    model_config = {"extra": "forbid"}

    # Key material (base64-encoded PEM, NOT file paths)
    signing_private_key: str = Field(
        default="",
        description="Base64-encoded PEM private key used to sign capability tokens",
    )
    signing_public_key: str = Field(
        default="",
        description="Base64-encoded PEM public key used to verify capability tokens",
    )
    encryption_private_key: str = Field(
        default="",
        description="Base64-encoded PEM private key used to decrypt capability tokens",
    )
    encryption_public_key: str = Field(
        default="",
        description="Base64-encoded PEM public key used to encrypt capability tokens",
    )

    # Claim defaults
    issuer: str = Field(
        default="permitcore",
        description="Default issuer claim",
    )
    audience: str = Field(
        default="",
        description="Default audience claim (empty = no aud claim)",
    )
    expiration: Union[int, str] = Field(
        default="1h",
        description="Default token lifetime: seconds or a duration string",
    )

    @field_validator("expiration")
    @classmethod
    def validate_expiration(cls, v: Union[int, str]) -> Union[int, str]:
        """Reject lifetimes that cannot be parsed or are not positive."""
        try:
            seconds = parse_duration(v)
        except ConfigurationError as e:
            raise ValueError(e.message)
        if seconds <= 0:
            raise ValueError(f"Token expiration must be positive, got {v!r}")
        return v

    @property
    def expiration_seconds(self) -> int:
        return parse_duration(self.expiration)


class PermitConfig(BaseModel):
    """Top-level configuration for services embedding permitcore.

    RULE: all settings come through this config chain.
    """

    # Logging
    log_level: LogLevel = Field(
        default=LogLevel.INFO,
        description="Logging level",
    )
    log_json: bool = Field(
        default=False,
        description="Use JSON log format (default: plain text)",
    )

    # Service identification
    service_name: Optional[str] = Field(
        default=None,
        description="Service name used as logger identifier",
    )

    tokens: TokenConfig = Field(
        default_factory=TokenConfig,
        description="Token codec configuration",
    )

    @field_validator("log_level", mode="before")
    @classmethod
    def validate_log_level(cls, v: str | LogLevel) -> LogLevel:
        """Convert string to LogLevel enum."""
        if isinstance(v, LogLevel):
            return v
        if isinstance(v, str):
            try:
                return LogLevel[v.upper()]
            except KeyError:
                raise ValueError(f"Invalid log level: {v}. Must be one of {[e.value for e in LogLevel]}")
        raise ValueError(f"Log level must be string or LogLevel enum, got {type(v)}")

    model_config = {
        "use_enum_values": True,
        "extra": "forbid",
    }


def load_config_from_env() -> PermitConfig:
    """Load configuration from environment variables.

    This is the ONLY place where os.getenv is allowed.

    Environment variables:
    - LOG_LEVEL: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    - LOG_JSON: Use JSON log format (true/false, default: false)
    - SERVICE_NAME: Service name
    - JWT_SIGNING_PRIVATE_KEY / JWT_SIGNING_PUBLIC_KEY
    - JWT_ENCRYPTION_PRIVATE_KEY / JWT_ENCRYPTION_PUBLIC_KEY
    - JWT_ISSUER, JWT_AUDIENCE, JWT_EXPIRATION

    Returns:
        PermitConfig instance with values from environment or defaults.
    """
    import os

    tokens = TokenConfig(
        signing_private_key=os.getenv("JWT_SIGNING_PRIVATE_KEY", ""),
        signing_public_key=os.getenv("JWT_SIGNING_PUBLIC_KEY", ""),
        encryption_private_key=os.getenv("JWT_ENCRYPTION_PRIVATE_KEY", ""),
        encryption_public_key=os.getenv("JWT_ENCRYPTION_PUBLIC_KEY", ""),
        issuer=os.getenv("JWT_ISSUER", "permitcore"),
        audience=os.getenv("JWT_AUDIENCE", ""),
        expiration=os.getenv("JWT_EXPIRATION", "1h"),
    )

    return PermitConfig(
        log_level=os.getenv("LOG_LEVEL", "INFO"),
        log_json=os.getenv("LOG_JSON", "false").lower() in ("true", "1", "yes"),
        service_name=os.getenv("SERVICE_NAME"),
        tokens=tokens,
    )


__all__ = [
    "Duration",
    "LogLevel",
    "PermitConfig",
    "TokenConfig",
    "load_config_from_env",
    "parse_duration",
]
