"""Inbound integration: turn capability tokens into access decisions.

Usage (framework-neutral)::

    from permitcore.security import PermissionGuard

    guard = PermissionGuard(TokenCodec(config.tokens))
    decision = guard.authorize(request_token, REQUIRED, resource_id=txn_id)
    if not decision.valid:
        return decision.status, decision.to_dict()

Usage (gRPC)::

    from permitcore.security import get_security_interceptors

    server = grpc.aio.server(interceptors=get_security_interceptors(RPC_MAP, guard))
"""

from __future__ import annotations

import grpc

from ..permissions import PermissionTree
from .guard import PermissionGuard, UserLoader, strip_bearer
from .interceptors import (
    EnforcementMode,
    ServicePermissionInterceptor,
    _extract_rpc_name,
    _should_skip,
)


def get_security_interceptors(
    rpc_permission_map: dict[str, PermissionTree],
    guard: PermissionGuard,
    *,
    service_name: str = "Service",
    enforcement: EnforcementMode | None = None,
) -> list[grpc.aio.ServerInterceptor]:
    """Get gRPC server interceptors for permission enforcement.

    Returns:
        List of interceptors to pass to ``grpc.aio.server()``.
    """
    return [
        ServicePermissionInterceptor(
            rpc_permission_map,
            guard,
            service_name=service_name,
            enforcement=enforcement,
        )
    ]


__all__ = [
    # Guard
    "PermissionGuard",
    "UserLoader",
    "strip_bearer",
    # Interceptors
    "EnforcementMode",
    "ServicePermissionInterceptor",
    "_extract_rpc_name",
    "_should_skip",
    "get_security_interceptors",
]
