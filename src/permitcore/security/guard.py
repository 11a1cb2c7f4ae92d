"""Permission guard — token to decision, independent of any web framework.

Flow for each request::

    bearer token ──► TokenCodec.verify / decrypt ──► payload schema
                 ──► (optional) fresh user from the system of record
                 ──► get_missing_permissions ──► VerificationResult

Every failure before the verifier produces a 401 decision. The verifier is
never called with a fabricated empty tree for a request whose token was
rejected.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any, Callable, Optional

from ..data import denormalised_response_entities
from ..exceptions import PermitCoreError, SchemaValidationError, SecurityError
from ..logging import get_permit_logger, safe_log_value
from ..permissions import (
    PermissionTree,
    VerificationResult,
    validate_required_permissions,
    verify_permissions,
)
from ..schemas import CapabilityPayload, CurrentUser, MiddlewareOptions, validate_middleware_options
from ..tokens import Disabled, TokenCodec

logger = logging.getLogger(__name__)

# user_loader(user_id, trusted=...) -> JSON:API response body
UserLoader = Callable[..., Mapping[str, Any]]


def strip_bearer(value: Optional[str]) -> str:
    """Return the token part of an ``Authorization: Bearer ...`` value."""
    if not value:
        return ""
    scheme, _, rest = value.strip().partition(" ")
    if scheme.lower() == "bearer":
        return rest.strip()
    return value.strip()


class PermissionGuard:
    """Authorise requests that carry a capability token.

    Args:
        codec: Token codec used to verify (or decrypt) tokens.
        options: ``MiddlewareOptions`` or its wire-shape dict.
        user_loader: Fetches the current user from the system of record. Used
            only with ``requireCurrentUserDetail``; its profile permissions then
            replace the token's tree. It is called synchronously, including
            from the gRPC interceptor's event loop, so it must not block.
            Any exception it raises yields a 401 decision.

    Raises:
        SchemaValidationError: If ``options`` contains unknown keys or bad values.
    """

    def __init__(
        self,
        codec: TokenCodec,
        options: MiddlewareOptions | Mapping[str, Any] | None = None,
        user_loader: Optional[UserLoader] = None,
    ) -> None:
        self._codec = codec
        self._options = validate_middleware_options(options)
        self._user_loader = user_loader

        if self._options.require_current_user_detail and user_loader is None:
            logger.warning("requireCurrentUserDetail is set but no user loader was given; using token permissions")

    @property
    def options(self) -> MiddlewareOptions:
        return self._options

    # ── steps ───────────────────────────────────────────

    def _decode(self, token: str) -> dict[str, Any] | Disabled:
        if self._options.encrypted:
            return self._codec.decrypt(token, issuer=self._options.issuer)
        return self._codec.verify(token, issuer=self._options.issuer, audience=self._options.audience)

    def _load_current_user(self, user_id: str) -> CurrentUser:
        response = self._user_loader(user_id, trusted=self._options.trusted_sdk)  # type: ignore[misc]
        if self._options.denormalise:
            entities = denormalised_response_entities(dict(response))
            user = entities[0] if entities else None
        else:
            user = response.get("data")
        if not isinstance(user, Mapping):
            raise SecurityError("Current user could not be loaded", code="CURRENT_USER_NOT_FOUND")

        attributes = user.get("attributes") or {}
        profile = attributes.get("profile") or {}
        metadata = profile.get("metadata") or {}
        return CurrentUser.model_validate(
            {
                "id": {"uuid": user_id},
                "attributes": {"profile": {"metadata": {"permissions": metadata.get("permissions") or {}}}},
            }
        )

    # ── entrypoint ──────────────────────────────────────

    def authorize(
        self,
        token: Optional[str],
        required_permissions: PermissionTree,
        resource_id: Optional[str] = None,
    ) -> VerificationResult:
        """Decide whether the token grants ``required_permissions``.

        Args:
            token: Raw token, with or without a ``Bearer`` prefix.
            required_permissions: Permission tree the operation demands.
            resource_id: Id of the resource the request touches (for ``individual`` layers).

        Returns:
            ``VerificationResult`` — 401 for token problems, 403 for missing permissions.

        Raises:
            ConfigurationError: If ``required_permissions`` is not a legal declaration.
        """
        validate_required_permissions(required_permissions)

        raw_token = strip_bearer(token)
        if not raw_token:
            return VerificationResult.deny(status=401, code="UNAUTHENTICATED", message="Missing token")

        try:
            claims = self._decode(raw_token)
            if isinstance(claims, Disabled):
                return VerificationResult.deny(
                    status=401,
                    code="DELEGATION_DISABLED",
                    message="Capability tokens are not accepted in this environment",
                )
            payload: CapabilityPayload = self._codec.payload_from_claims(claims)
        except SchemaValidationError as e:
            logger.warning("Rejected token payload: %s", e.details.get("errors"))
            return VerificationResult.deny(status=e.http_status, code=e.code, message=e.message)
        except SecurityError as e:
            logger.info("Rejected token [%s]: %s", e.code, e.message)
            return VerificationResult.deny(status=e.http_status, code=e.code, message=e.message)

        log = get_permit_logger(__name__, user_id=payload.current_user_id)

        current_user = payload.current_user
        if self._options.require_current_user_detail and self._user_loader is not None:
            try:
                current_user = self._load_current_user(payload.current_user_id)
            except PermitCoreError as e:
                log.warning("Current user lookup failed [%s]: %s", e.code, e.message)
                return VerificationResult.deny(status=401, code=e.code, message=e.message)
            except Exception:
                log.exception("Current user lookup failed")
                return VerificationResult.deny(
                    status=401,
                    code="CURRENT_USER_UNAVAILABLE",
                    message="Current user could not be loaded",
                )

        result = verify_permissions(
            current_user.permission_tree,
            required_permissions,
            current_user,
            resource_id,
        )
        if result.valid:
            log.debug("Access granted (resource=%s)", resource_id)
        else:
            log.info(
                "Access denied (resource=%s, logged_in_as=%s): missing %s",
                resource_id,
                payload.logged_in_as_user_id,
                safe_log_value(result.to_dict()["error"]["data"]["errors"]),
            )
        return result


__all__ = [
    "PermissionGuard",
    "UserLoader",
    "strip_bearer",
]
