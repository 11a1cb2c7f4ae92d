"""Permission verifier: diff a granted permission tree against a required one.

The verifier is a pure function over two nested mappings. It returns the
list of *missing* permissions; an empty list means access is granted.

Precedence at every node, evaluated independently per recursion level:

1. ``customCheck`` on the required node (full override)
2. ``all`` branch in the granted tree (administrator scope)
3. granted keys matched as regex patterns against the resource id
4. per-entity action diff

Example::

    get_missing_permissions(
        {"user": {"permissions": ["get"]}},
        {"user": {"permissions": ["get", "update"]}},
    )
    # → [{"user": ["update"]}]
"""

from __future__ import annotations

import logging
import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

from .definition import CUSTOM_CHECK_KEY, PERMISSIONS_KEY, ReservedKeywords

logger = logging.getLogger(__name__)

PermissionTree = Mapping[str, Any]
MissingPermissions = list[dict[str, Any]]
CustomCheck = Callable[[dict[str, Any]], Any]


# ── Custom checks ───────────────────────────────────────


def _check_name(check: CustomCheck) -> str:
    return getattr(check, "__name__", None) or type(check).__name__


def _run_custom_check(check: CustomCheck, context: dict[str, Any]) -> MissingPermissions:
    """Invoke a custom check and normalise its result.

    - ``True`` / ``None`` / ``[]`` → granted
    - ``False`` → denied
    - non-empty list → returned as the missing permissions
    - anything else → denied (a truthy non-list is never a grant)

    A raising check is denied (fail-closed).
    """
    denial = [{CUSTOM_CHECK_KEY: [_check_name(check)]}]
    try:
        result = check(context)
    except Exception:
        logger.exception("Custom permission check '%s' raised; denying", _check_name(check))
        return denial

    if result is True or result is None:
        return []
    if result is False:
        return denial
    if isinstance(result, list):
        return list(result)

    logger.warning(
        "Custom permission check '%s' returned unsupported %s; denying",
        _check_name(check),
        type(result).__name__,
    )
    return denial


# ── Resource key matching ───────────────────────────────


def resource_key_matches(key: str, resource_id: Optional[str]) -> bool:
    """Check whether a granted key matches the impacted resource id.

    The key is a regular expression searched anywhere in the id, so a key
    may be a full UUID, a fragment of one, or a pattern. Keys that are not
    valid patterns never match.
    """
    if not resource_id:
        return False
    try:
        return re.search(key, resource_id) is not None
    except re.error:
        logger.warning("Ignoring granted key %r: not a valid resource pattern", key)
        return False


def _split_node(node: Any) -> tuple[list[str], dict[str, Any]]:
    """Split a node into its action list and its nested layers.

    Neither the node nor its action list is modified.
    """
    if not isinstance(node, Mapping):
        return [], {}
    actions = node.get(PERMISSIONS_KEY) or []
    rest = {key: value for key, value in node.items() if key != PERMISSIONS_KEY}
    return list(actions), rest


def _required_as_missing(required_permissions: PermissionTree) -> MissingPermissions:
    """Render a whole required tree as missing permissions.

    Used when nothing is granted. Nested layers keep their path
    (``{"loginAs": [{"all": [{"transaction": ["get"]}]}]}``) and nested
    custom checks are reported by name, not invoked.
    """
    missing: MissingPermissions = []
    for key, node in required_permissions.items():
        if key == CUSTOM_CHECK_KEY:
            missing.append({key: [_check_name(node)]})
            continue
        actions, rest = _split_node(node)
        if actions:
            missing.append({key: actions})
        nested = _required_as_missing(rest)
        if nested:
            missing.append({key: nested})
        if not actions and not nested:
            # A declared key is still required even when it lists no actions
            missing.append({key: []})
    return missing


# ── Verifier ────────────────────────────────────────────


def get_missing_permissions(
    user_permissions: Optional[PermissionTree],
    required_permissions: Optional[PermissionTree],
    current_user: Any = None,
    current_impacted_resource_id: Optional[str] = None,
) -> MissingPermissions:
    """Compute the required permissions not covered by the granted tree.

    Args:
        user_permissions: Granted permission tree (from the user's profile or token).
        required_permissions: Permission tree the operation demands.
        current_user: Passed through to custom checks.
        current_impacted_resource_id: Resource id matched against granted keys
            below an ``individual`` layer.

    Returns:
        List of single-key mappings ``{entity: [actions]}`` or
        ``{key: [nested missing]}``. Empty when fully satisfied.
    """
    if not required_permissions:
        return []

    custom_check = required_permissions.get(CUSTOM_CHECK_KEY)
    if custom_check:
        return _run_custom_check(
            custom_check,
            {
                "currentUser": current_user,
                "requiredPermissions": required_permissions,
                "currentImpactedResourceId": current_impacted_resource_id,
            },
        )

    if not isinstance(user_permissions, Mapping) or not user_permissions:
        return _required_as_missing(required_permissions)

    individual = required_permissions.get(ReservedKeywords.INDIVIDUAL)
    if individual is not None:
        # An individual layer is terminal; sibling keys are not evaluated.
        return _verify_individual_layer(
            user_permissions,
            individual,
            current_user,
            current_impacted_resource_id,
        )

    rest = {key: value for key, value in required_permissions.items() if key != ReservedKeywords.INDIVIDUAL}
    return _verify_normal_layer(user_permissions, rest, current_user, current_impacted_resource_id)


def _verify_individual_layer(
    user_permissions: PermissionTree,
    required_permissions: PermissionTree,
    current_user: Any,
    current_impacted_resource_id: Optional[str],
) -> MissingPermissions:
    custom_check = required_permissions.get(CUSTOM_CHECK_KEY) if isinstance(required_permissions, Mapping) else None
    if custom_check:
        return _run_custom_check(
            custom_check,
            {
                "currentUser": current_user,
                "userPermissions": user_permissions,
                "currentImpactedResourceId": current_impacted_resource_id,
            },
        )

    if not required_permissions:
        return []

    administrator_permissions = user_permissions.get(ReservedKeywords.ALL)
    if administrator_permissions is not None:
        missing = get_missing_permissions(administrator_permissions, required_permissions, current_user)
        if missing:
            return [{ReservedKeywords.ALL: missing}]
        return []

    accumulated: MissingPermissions = []
    matched = False
    for key, granted in user_permissions.items():
        if not resource_key_matches(key, current_impacted_resource_id):
            continue
        matched = True
        missing = get_missing_permissions(granted, required_permissions, current_user)
        if missing:
            accumulated.append({key: missing})

    if not matched:
        # No grant on this resource
        return [{ReservedKeywords.INDIVIDUAL: _required_as_missing(required_permissions)}]
    return accumulated


def _verify_normal_layer(
    user_permissions: PermissionTree,
    required_permissions: PermissionTree,
    current_user: Any,
    current_impacted_resource_id: Optional[str],
) -> MissingPermissions:
    accumulated: MissingPermissions = []
    for key, required in required_permissions.items():
        required_actions, required_rest = _split_node(required)
        granted_actions, granted_rest = _split_node(user_permissions.get(key))

        granted_set = set(granted_actions)
        missing_actions = [action for action in required_actions if action not in granted_set]
        if missing_actions:
            accumulated.append({key: missing_actions})

        accumulated.extend(
            get_missing_permissions(
                granted_rest,
                required_rest,
                current_user,
                current_impacted_resource_id,
            )
        )
    return accumulated


# ── Decision object ─────────────────────────────────────


def _jsonable(value: Any) -> Any:
    """Render callables (custom checks) by name so error detail serialises."""
    if callable(value):
        return f"<{_check_name(value)}>"
    if isinstance(value, Mapping):
        return {key: _jsonable(item) for key, item in value.items()}
    if isinstance(value, (list, tuple, set, frozenset)):
        return [_jsonable(item) for item in value]
    return value


@dataclass(frozen=True)
class VerificationResult:
    """Structured access decision.

    ``missing`` always means "required and absent"; it is never a list of
    granted permissions.
    """

    valid: bool
    status: int = 200
    code: str = "OK"
    message: str = ""
    missing: tuple[dict[str, Any], ...] = field(default_factory=tuple)

    @classmethod
    def allow(cls) -> VerificationResult:
        return cls(valid=True)

    @classmethod
    def deny(
        cls,
        *,
        status: int,
        code: str,
        message: str,
        missing: MissingPermissions | tuple[dict[str, Any], ...] = (),
    ) -> VerificationResult:
        return cls(valid=False, status=status, code=code, message=message, missing=tuple(missing))

    def to_dict(self) -> dict[str, Any]:
        """``{"valid": True}`` or ``{"error": {..., "data": {"errors": [...]}}}``."""
        if self.valid:
            return {"valid": True}
        return {
            "error": {
                "status": self.status,
                "code": self.code,
                "message": self.message,
                "data": {"errors": _jsonable(list(self.missing))},
            }
        }


def verify_permissions(
    user_permissions: Optional[PermissionTree],
    required_permissions: Optional[PermissionTree],
    current_user: Any = None,
    current_impacted_resource_id: Optional[str] = None,
) -> VerificationResult:
    """Run the verifier and wrap its result into a decision object."""
    missing = get_missing_permissions(
        user_permissions,
        required_permissions,
        current_user,
        current_impacted_resource_id,
    )
    if not missing:
        return VerificationResult.allow()
    return VerificationResult.deny(
        status=403,
        code="PERMISSION_DENIED",
        message="Missing required permissions",
        missing=missing,
    )


__all__ = [
    "CustomCheck",
    "MissingPermissions",
    "PermissionTree",
    "VerificationResult",
    "get_missing_permissions",
    "resource_key_matches",
    "verify_permissions",
]
