"""Structural schemas for capability token payloads and guard options.

Every model forbids unknown fields, so a payload cannot smuggle extra
claims or options past validation. Wire names are camelCase; Python
attributes are snake_case.

Only the *presence* of the permission tree is validated here: its inner
structure is interpreted by the verifier.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from pydantic import BaseModel, Field, ValidationError

from .exceptions import SchemaValidationError

logger = logging.getLogger(__name__)

_STRICT = {"extra": "forbid"}


# ── Capability payload ──────────────────────────────────


class ResourceId(BaseModel):
    """Marketplace resource identifier (``{"uuid": "..."}``)."""

    model_config = _STRICT

    uuid: str


class ProfileMetadata(BaseModel):
    model_config = _STRICT

    permissions: Optional[dict[str, Any]] = None


class Profile(BaseModel):
    model_config = _STRICT

    metadata: Optional[ProfileMetadata] = None


class UserAttributes(BaseModel):
    model_config = _STRICT

    profile: Optional[Profile] = None


class CurrentUser(BaseModel):
    """The user whose permission tree authorises the request."""

    model_config = _STRICT

    id: ResourceId
    attributes: Optional[UserAttributes] = None

    @property
    def permission_tree(self) -> dict[str, Any]:
        """Granted permission tree, or an empty dict when none is attached."""
        attributes = self.attributes
        if attributes is None or attributes.profile is None or attributes.profile.metadata is None:
            return {}
        return attributes.profile.metadata.permissions or {}


class LoggedInAsUser(BaseModel):
    """The user being impersonated during a "login as" delegation."""

    model_config = _STRICT

    id: ResourceId


class CapabilityPayload(BaseModel):
    """Payload carried inside a capability token."""

    model_config = _STRICT

    current_user: CurrentUser = Field(alias="currentUser")
    logged_in_as_user: Optional[LoggedInAsUser] = Field(default=None, alias="loggedInAsUser")

    @property
    def permission_tree(self) -> dict[str, Any]:
        return self.current_user.permission_tree

    @property
    def current_user_id(self) -> str:
        return self.current_user.id.uuid

    @property
    def logged_in_as_user_id(self) -> Optional[str]:
        if self.logged_in_as_user is None:
            return None
        return self.logged_in_as_user.id.uuid

    def to_claims(self) -> dict[str, Any]:
        """Wire representation (camelCase, unset optionals dropped)."""
        return self.model_dump(by_alias=True, exclude_none=True)


# ── Guard options ───────────────────────────────────────


class MiddlewareOptions(BaseModel):
    """Options accepted by :class:`permitcore.security.PermissionGuard`.

    Attributes:
        require_current_user_detail: Load the current user from the system of
            record instead of trusting the token's permission tree.
        trusted_sdk: Ask the user loader for a trusted (privileged) lookup.
        denormalise: Denormalise the loader's JSON:API response.
        encrypted: Tokens are JWE (decrypt) instead of JWS (verify).
        issuer: Expected ``iss`` claim (None = codec default).
        audience: Expected ``aud`` claim (None = codec default).
    """

    model_config = _STRICT

    require_current_user_detail: bool = Field(default=False, alias="requireCurrentUserDetail")
    trusted_sdk: bool = Field(default=False, alias="trustedSdk")
    denormalise: bool = False
    encrypted: bool = False
    issuer: Optional[str] = None
    audience: Optional[str] = None


# ── Validators ──────────────────────────────────────────


def _errors(exc: ValidationError) -> list[dict[str, Any]]:
    return [
        {"loc": ".".join(str(part) for part in err["loc"]), "msg": err["msg"], "type": err["type"]}
        for err in exc.errors()
    ]


def validate_capability_payload(data: Any) -> CapabilityPayload:
    """Validate a capability payload.

    Raises:
        SchemaValidationError: With ``details["errors"]`` listing each violation.
    """
    if isinstance(data, CapabilityPayload):
        return data
    try:
        return CapabilityPayload.model_validate(data)
    except ValidationError as e:
        errors = _errors(e)
        logger.warning("Capability payload rejected: %s", errors)
        raise SchemaValidationError("Capability payload failed schema validation", errors=errors)


def validate_middleware_options(data: Any) -> MiddlewareOptions:
    """Validate guard options.

    Raises:
        SchemaValidationError: With ``details["errors"]`` listing each violation.
    """
    if data is None:
        return MiddlewareOptions()
    if isinstance(data, MiddlewareOptions):
        return data
    try:
        return MiddlewareOptions.model_validate(data)
    except ValidationError as e:
        errors = _errors(e)
        logger.warning("Middleware options rejected: %s", errors)
        raise SchemaValidationError(
            "Middleware options failed schema validation",
            code="INVALID_OPTIONS",
            errors=errors,
        )


def capability_payload_json_schema() -> dict[str, Any]:
    """JSON Schema document for the capability payload."""
    return CapabilityPayload.model_json_schema(by_alias=True)


__all__ = [
    "CapabilityPayload",
    "CurrentUser",
    "LoggedInAsUser",
    "MiddlewareOptions",
    "Profile",
    "ProfileMetadata",
    "ResourceId",
    "UserAttributes",
    "capability_payload_json_schema",
    "validate_capability_payload",
    "validate_middleware_options",
]
