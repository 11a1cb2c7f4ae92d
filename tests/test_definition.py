"""Tests for permitcore.permissions.definition."""

from __future__ import annotations

import pytest
from permitcore.exceptions import ConfigurationError
from permitcore.permissions import (
    ENTITY_ACTIONS,
    POSSIBLE_CONFIG,
    Action,
    Entity,
    ReservedKeywords,
    is_reserved_keyword,
    validate_required_permissions,
)


class TestRegistry:
    """Entity / action registry."""

    def test_entities_registered(self):
        assert set(ENTITY_ACTIONS) == Entity.ALL

    def test_transaction_cannot_be_deleted(self):
        assert Action.DELETE not in ENTITY_ACTIONS[Entity.TRANSACTION]
        assert Action.UPDATE in ENTITY_ACTIONS[Entity.TRANSACTION]

    def test_actions_subset_of_all(self):
        for actions in ENTITY_ACTIONS.values():
            assert actions <= Action.ALL

    def test_reserved_keywords(self):
        assert is_reserved_keyword("all")
        assert is_reserved_keyword("individual")
        assert not is_reserved_keyword("user")
        assert ReservedKeywords.KEYWORDS == {ReservedKeywords.ALL, ReservedKeywords.INDIVIDUAL}

    def test_possible_config_is_legal(self):
        validate_required_permissions(POSSIBLE_CONFIG)


class TestValidateRequiredPermissions:
    """validate_required_permissions() tests."""

    def test_simple_tree(self):
        validate_required_permissions({"user": {"permissions": ["get", "update"]}})

    def test_empty_tree(self):
        validate_required_permissions({})

    def test_nested_login_as(self):
        validate_required_permissions(
            {"user": {"loginAs": {"individual": {"transaction": {"permissions": ["get", "update"]}}}}}
        )

    def test_illegal_action_rejected(self):
        with pytest.raises(ConfigurationError) as exc:
            validate_required_permissions({"transaction": {"permissions": ["get", "delete"]}})
        assert exc.value.details["path"] == "transaction.permissions"
        assert exc.value.details["actions"] == ["delete"]

    def test_illegal_nested_action_rejected(self):
        with pytest.raises(ConfigurationError, match="not valid on 'transaction'"):
            validate_required_permissions({"user": {"loginAs": {"all": {"transaction": {"permissions": ["put"]}}}}})

    def test_unregistered_entity_not_action_checked(self):
        validate_required_permissions({"asset": {"permissions": ["publish"]}})

    def test_permissions_must_be_list(self):
        with pytest.raises(ConfigurationError, match="list of actions"):
            validate_required_permissions({"user": {"permissions": "get"}})

    def test_permissions_must_be_strings(self):
        with pytest.raises(ConfigurationError, match="only contain strings"):
            validate_required_permissions({"user": {"permissions": ["get", 1]}})

    def test_custom_check_must_be_callable(self):
        with pytest.raises(ConfigurationError, match="callable"):
            validate_required_permissions({"customCheck": "boolean"})

    def test_custom_check_callable_accepted(self):
        validate_required_permissions({"user": {"customCheck": lambda context: True}})

    def test_non_mapping_node_rejected(self):
        with pytest.raises(ConfigurationError, match="must be a mapping"):
            validate_required_permissions({"user": ["get"]})

    def test_root_must_be_mapping(self):
        with pytest.raises(ConfigurationError, match="<root>"):
            validate_required_permissions(["user"])  # type: ignore[arg-type]

    def test_path_prefix(self):
        """An explicit path prefix names the declaration in errors."""
        with pytest.raises(ConfigurationError) as exc:
            validate_required_permissions({"transaction": {"permissions": ["delete"]}}, path="CancelTransaction")
        assert exc.value.details["path"] == "CancelTransaction.transaction.permissions"
