"""Permission definitions: entities, actions and reserved keywords.

Provides:
- ``Entity`` / ``Action`` — the marketplace entities and the actions valid on them.
- ``ENTITY_ACTIONS`` — entity → allowed actions.
- ``ReservedKeywords`` — keys that switch the verifier's matching strategy.
- ``POSSIBLE_CONFIG`` — reference shape of a full permission tree.
- ``validate_required_permissions()`` — reject illegal route declarations.

A permission tree is a nested mapping::

    {
        "user": {
            "permissions": ["get", "update"],
            "loginAs": {
                "all": {"transaction": {"permissions": ["get"]}},
            },
        },
        "listing": {"permissions": ["get"]},
    }
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from ..exceptions import ConfigurationError


class Entity:
    """Entities a permission tree may grant actions on."""

    USER = "user"
    LISTING = "listing"
    TRANSACTION = "transaction"

    ALL = frozenset({"user", "listing", "transaction"})


class Action:
    """Actions that can be granted on an entity."""

    GET = "get"
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"

    ALL = frozenset({"get", "create", "update", "delete"})


ENTITY_ACTIONS: dict[str, frozenset[str]] = {
    Entity.USER: frozenset({Action.GET, Action.CREATE, Action.UPDATE, Action.DELETE}),
    Entity.LISTING: frozenset({Action.GET, Action.CREATE, Action.UPDATE, Action.DELETE}),
    Entity.TRANSACTION: frozenset({Action.GET, Action.CREATE, Action.UPDATE}),
}


class ReservedKeywords:
    """Keys with a special meaning inside a permission tree.

    - ``ALL`` in a granted tree: administrator scope, matches any resource id.
    - ``INDIVIDUAL`` in a required tree: the next layer is keyed by the
      resource id supplied at request time, not by a fixed name.
    """

    ALL = "all"
    INDIVIDUAL = "individual"

    KEYWORDS = frozenset({"all", "individual"})


# Node keys
PERMISSIONS_KEY = "permissions"
CUSTOM_CHECK_KEY = "customCheck"

# Nested relation used by administrator "login as" delegation
LOGIN_AS_KEY = "loginAs"


POSSIBLE_CONFIG: dict[str, Any] = {
    Entity.USER: {
        PERMISSIONS_KEY: sorted(ENTITY_ACTIONS[Entity.USER]),
        LOGIN_AS_KEY: {
            ReservedKeywords.ALL: {
                Entity.TRANSACTION: {PERMISSIONS_KEY: sorted(ENTITY_ACTIONS[Entity.TRANSACTION])},
                Entity.LISTING: {PERMISSIONS_KEY: sorted(ENTITY_ACTIONS[Entity.LISTING])},
            },
            ReservedKeywords.INDIVIDUAL: {
                Entity.TRANSACTION: {PERMISSIONS_KEY: sorted(ENTITY_ACTIONS[Entity.TRANSACTION])},
                Entity.LISTING: {PERMISSIONS_KEY: sorted(ENTITY_ACTIONS[Entity.LISTING])},
            },
        },
    },
    Entity.LISTING: {PERMISSIONS_KEY: sorted(ENTITY_ACTIONS[Entity.LISTING])},
    Entity.TRANSACTION: {PERMISSIONS_KEY: sorted(ENTITY_ACTIONS[Entity.TRANSACTION])},
}


def is_reserved_keyword(key: str) -> bool:
    """Check if a tree key is one of the reserved keywords."""
    return key in ReservedKeywords.KEYWORDS


def validate_required_permissions(tree: Mapping[str, Any], *, path: str = "") -> None:
    """Validate a declared RequiredPermissions tree against the registry.

    Checks, recursively:
    - ``permissions`` is a list/tuple/set/frozenset of strings.
    - Registered entities only request actions listed in ``ENTITY_ACTIONS``.
    - ``customCheck`` is callable.
    - Every other value is a mapping.

    Dynamic keys (resource ids, ``loginAs``) are walked but not action-checked.

    Raises:
        ConfigurationError: On the first illegal node, with its dotted path.
    """
    if not isinstance(tree, Mapping):
        raise ConfigurationError(f"Permission node at '{path or '<root>'}' must be a mapping", path=path)

    entity = path.rsplit(".", 1)[-1] if path else ""

    for key, value in tree.items():
        node_path = f"{path}.{key}" if path else key

        if key == PERMISSIONS_KEY:
            if isinstance(value, (str, bytes)) or not isinstance(value, (list, tuple, set, frozenset)):
                raise ConfigurationError(f"'{node_path}' must be a list of actions", path=node_path)
            if not all(isinstance(action, str) for action in value):
                raise ConfigurationError(f"'{node_path}' must only contain strings", path=node_path)
            allowed = ENTITY_ACTIONS.get(entity)
            if allowed is not None:
                illegal = sorted(set(value) - allowed)
                if illegal:
                    raise ConfigurationError(
                        f"Actions {illegal} are not valid on '{entity}' (at '{node_path}')",
                        path=node_path,
                        actions=illegal,
                    )
            continue

        if key == CUSTOM_CHECK_KEY:
            if not callable(value):
                raise ConfigurationError(f"'{node_path}' must be callable", path=node_path)
            continue

        validate_required_permissions(value, path=node_path)


__all__ = [
    "Action",
    "CUSTOM_CHECK_KEY",
    "ENTITY_ACTIONS",
    "Entity",
    "LOGIN_AS_KEY",
    "PERMISSIONS_KEY",
    "POSSIBLE_CONFIG",
    "ReservedKeywords",
    "is_reserved_keyword",
    "validate_required_permissions",
]
