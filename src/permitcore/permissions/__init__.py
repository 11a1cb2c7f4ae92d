"""Permission registry and verifier for capability trees.

Defines:
- Entity / Action / ENTITY_ACTIONS: valid actions per marketplace entity
- ReservedKeywords: ``all`` (administrator scope) and ``individual`` (resource-id layer)
- validate_required_permissions(): reject illegal route declarations
- get_missing_permissions(): recursive diff of granted vs. required trees
- verify_permissions(): the same diff wrapped in a VerificationResult
"""

from .definition import (
    CUSTOM_CHECK_KEY,
    ENTITY_ACTIONS,
    LOGIN_AS_KEY,
    PERMISSIONS_KEY,
    POSSIBLE_CONFIG,
    Action,
    Entity,
    ReservedKeywords,
    is_reserved_keyword,
    validate_required_permissions,
)
from .verifier import (
    CustomCheck,
    MissingPermissions,
    PermissionTree,
    VerificationResult,
    get_missing_permissions,
    resource_key_matches,
    verify_permissions,
)

__all__ = [
    "Action",
    "CUSTOM_CHECK_KEY",
    "CustomCheck",
    "ENTITY_ACTIONS",
    "Entity",
    "LOGIN_AS_KEY",
    "MissingPermissions",
    "PERMISSIONS_KEY",
    "POSSIBLE_CONFIG",
    "PermissionTree",
    "ReservedKeywords",
    "VerificationResult",
    "get_missing_permissions",
    "is_reserved_keyword",
    "resource_key_matches",
    "validate_required_permissions",
    "verify_permissions",
]
