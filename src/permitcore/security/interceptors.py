"""gRPC interceptor that guards each RPC with a required permission tree.

The capability token is read from ``x-capability-token`` or from an
``authorization: Bearer ...`` header; the impacted resource id (for
``individual`` requirements) from ``x-resource-id``.

Callers only ever see ``"<service>: <rpc> denied"``. The missing
permissions and token failure codes go to the log.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any, NamedTuple, Optional

import grpc

from ..permissions import PermissionTree, validate_required_permissions
from .guard import PermissionGuard, strip_bearer

logger = logging.getLogger(__name__)

# gRPC metadata keys
AUTH_HEADER = "authorization"
TOKEN_HEADER = "x-capability-token"  # nosec B105
RESOURCE_HEADER = "x-resource-id"

# Health checks and reflection are never permission-checked
_SKIP_PREFIXES = (
    "grpc.health.v1",
    "grpc.reflection.v1",
)

_STATUS_BY_HTTP = {
    401: grpc.StatusCode.UNAUTHENTICATED,
    403: grpc.StatusCode.PERMISSION_DENIED,
}


class EnforcementMode(str, Enum):
    """How denials are handled.

    ``off`` skips checks, ``warn`` logs denials and lets the call through,
    ``enforce`` aborts the call. Read from ``SECURITY_ENFORCEMENT``.
    """

    OFF = "off"
    WARN = "warn"
    ENFORCE = "enforce"

    @classmethod
    def from_env(cls) -> EnforcementMode:
        """Mode from ``SECURITY_ENFORCEMENT``; unset or unknown values mean ``warn``."""
        import os  # Read before any config object exists

        raw = os.environ.get("SECURITY_ENFORCEMENT", cls.WARN.value).strip().lower()
        try:
            return cls(raw)
        except ValueError:
            logger.warning("Ignoring SECURITY_ENFORCEMENT=%r; using 'warn'", raw)
            return cls.WARN


class _Denial(NamedTuple):
    status: grpc.StatusCode
    reason: str


def _extract_rpc_name(full_method: str) -> str:
    """``/marketplace.TransactionService/Transition`` → ``Transition``."""
    _, _, name = full_method.rpartition("/")
    return name


def _should_skip(method: str) -> bool:
    return method.lstrip("/").startswith(_SKIP_PREFIXES)


def _abort_handler(status: grpc.StatusCode, message: str) -> grpc.RpcMethodHandler:
    async def _denied(request, context):
        await context.abort(status, message)

    return grpc.unary_unary_rpc_method_handler(_denied)


class ServicePermissionInterceptor(grpc.aio.ServerInterceptor):
    """Check every incoming RPC against ``rpc_permission_map``.

    RPCs missing from the map are denied. Token problems abort with
    ``UNAUTHENTICATED``, missing permissions with ``PERMISSION_DENIED``.
    The guard runs on the event loop, so its ``user_loader`` must not block.

    Args:
        rpc_permission_map: RPC name → required permission tree.
        guard: Verifies the token and evaluates the tree.
        service_name: Prefix for log lines and abort messages.
        enforcement: Defaults to :meth:`EnforcementMode.from_env`.

    Raises:
        ConfigurationError: If a tree in the map is not a legal declaration.
    """

    def __init__(
        self,
        rpc_permission_map: dict[str, PermissionTree],
        guard: PermissionGuard,
        *,
        service_name: str = "Service",
        enforcement: EnforcementMode | None = None,
    ) -> None:
        for rpc_name, tree in rpc_permission_map.items():
            validate_required_permissions(tree, path=rpc_name)

        self._rpc_map = dict(rpc_permission_map)
        self._guard = guard
        self._service_name = service_name
        self._mode = enforcement or EnforcementMode.from_env()
        logger.info("%s permission checks: %s (%d RPCs mapped)", service_name, self._mode.value, len(self._rpc_map))

    def _check(self, rpc_name: str, metadata: dict[str, str]) -> Optional[_Denial]:
        required = self._rpc_map.get(rpc_name)
        if required is None:
            return _Denial(grpc.StatusCode.PERMISSION_DENIED, "RPC not mapped to permissions")

        token = metadata.get(TOKEN_HEADER, "").strip() or strip_bearer(metadata.get(AUTH_HEADER))
        resource_id = metadata.get(RESOURCE_HEADER, "").strip() or None

        decision = self._guard.authorize(token, required, resource_id)
        if decision.valid:
            return None
        status = _STATUS_BY_HTTP.get(decision.status, grpc.StatusCode.PERMISSION_DENIED)
        return _Denial(status, f"[{decision.code}] {decision.message}")

    async def intercept_service(
        self,
        continuation: Any,
        handler_call_details: grpc.HandlerCallDetails,
    ) -> grpc.RpcMethodHandler:
        method = handler_call_details.method or ""
        if self._mode == EnforcementMode.OFF or _should_skip(method):
            return await continuation(handler_call_details)

        rpc_name = _extract_rpc_name(method)
        denial = self._check(rpc_name, dict(handler_call_details.invocation_metadata or ()))
        if denial is None:
            logger.debug("%s allowed %s", self._service_name, rpc_name)
            return await continuation(handler_call_details)

        if self._mode == EnforcementMode.WARN:
            logger.warning("%s WARN_DENIED %s: %s", self._service_name, rpc_name, denial.reason)
            return await continuation(handler_call_details)

        logger.warning("%s DENIED %s: %s", self._service_name, rpc_name, denial.reason)
        return _abort_handler(denial.status, f"{self._service_name}: {rpc_name} denied")


__all__ = [
    "AUTH_HEADER",
    "EnforcementMode",
    "RESOURCE_HEADER",
    "ServicePermissionInterceptor",
    "TOKEN_HEADER",
    "_extract_rpc_name",
    "_should_skip",
]
