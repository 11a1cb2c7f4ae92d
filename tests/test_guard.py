"""Tests for permitcore.security.guard."""

from __future__ import annotations

import copy
import time
from unittest.mock import MagicMock, patch

import pytest
from permitcore.config import TokenConfig
from permitcore.exceptions import ConfigurationError, SchemaValidationError
from permitcore.security import PermissionGuard, strip_bearer
from permitcore.tokens import TokenCodec

from conftest import ADMIN_ID, TARGET_USER_ID

READ_USER = {"user": {"permissions": ["get"]}}
UPDATE_ANY_TRANSACTION = {
    "user": {"loginAs": {"individual": {"transaction": {"permissions": ["update"]}}}},
}
CREATE_TRANSACTION = {
    "user": {"loginAs": {"individual": {"transaction": {"permissions": ["create"]}}}},
}


def _loaded_user(permissions: dict) -> dict:
    """Loader response in JSON:API shape."""
    return {
        "data": {
            "id": {"uuid": ADMIN_ID},
            "type": "user",
            "attributes": {"profile": {"metadata": {"permissions": permissions}}},
            "relationships": {"profileImage": {"data": None}},
        },
    }


class TestStripBearer:
    """strip_bearer() tests."""

    @pytest.mark.parametrize(
        "value, expected",
        [
            ("Bearer abc.def", "abc.def"),
            ("bearer   abc.def ", "abc.def"),
            ("abc.def", "abc.def"),
            ("Bearer ", ""),
            ("bearer", ""),
            ("", ""),
            (None, ""),
        ],
    )
    def test_strip(self, value, expected):
        assert strip_bearer(value) == expected


class TestPermissionGuard:
    """PermissionGuard.authorize() decisions."""

    def test_allowed(self, codec, admin_payload):
        guard = PermissionGuard(codec)
        result = guard.authorize(f"Bearer {codec.sign(admin_payload)}", READ_USER)
        assert result.valid is True
        assert result.to_dict() == {"valid": True}

    def test_login_as_any_transaction(self, codec, admin_payload):
        """The ``all`` branch satisfies a per-resource requirement."""
        guard = PermissionGuard(codec)
        result = guard.authorize(codec.sign(admin_payload), UPDATE_ANY_TRANSACTION, resource_id="txn-123")
        assert result.valid is True

    def test_missing_permissions_forbidden(self, codec, admin_payload):
        guard = PermissionGuard(codec)
        result = guard.authorize(codec.sign(admin_payload), CREATE_TRANSACTION, resource_id="txn-123")
        assert result.valid is False
        assert result.status == 403
        assert result.code == "PERMISSION_DENIED"
        assert result.missing == ({"all": [{"transaction": ["create"]}]},)

    def test_missing_token(self, codec):
        result = PermissionGuard(codec).authorize(None, READ_USER)
        assert result.status == 401
        assert result.code == "UNAUTHENTICATED"

    def test_bearer_without_token(self, codec):
        result = PermissionGuard(codec).authorize("Bearer ", READ_USER)
        assert result.code == "UNAUTHENTICATED"

    def test_invalid_signature(self, codec, other_key, private_pem_b64, admin_payload):
        forger = TokenCodec(
            TokenConfig(
                signing_private_key=private_pem_b64(other_key),
                issuer="marketplace",
                audience="marketplace-api",
            )
        )
        result = PermissionGuard(codec).authorize(forger.sign(admin_payload), READ_USER)
        assert result.status == 401
        assert result.code == "INVALID_SIGNATURE"

    def test_expired(self, codec, admin_payload):
        with patch("permitcore.tokens.time.time", return_value=time.time() - 3600):
            token = codec.sign(admin_payload, expire="15m")
        result = PermissionGuard(codec).authorize(token, READ_USER)
        assert result.status == 401
        assert result.code == "TOKEN_EXPIRED"

    def test_issuer_option(self, codec, admin_payload):
        token = codec.sign(admin_payload, issuer="partner")
        assert PermissionGuard(codec).authorize(token, READ_USER).code == "CLAIM_MISMATCH"
        assert PermissionGuard(codec, {"issuer": "partner"}).authorize(token, READ_USER).valid is True

    def test_delegation_disabled(self, admin_payload, codec):
        token = codec.sign(admin_payload)
        result = PermissionGuard(TokenCodec(TokenConfig())).authorize(token, READ_USER)
        assert result.status == 401
        assert result.code == "DELEGATION_DISABLED"

    def test_no_grants_rejected_before_verifier(self, codec):
        """An empty tree in a valid token is a 403, never an implicit grant."""
        token = codec.sign({"currentUser": {"id": {"uuid": ADMIN_ID}}})
        result = PermissionGuard(codec).authorize(token, READ_USER)
        assert result.status == 403
        assert result.missing == ({"user": ["get"]},)

    def test_malformed_grant_denied(self, codec, admin_payload):
        """A non-mapping ``all`` grant is a denial, not an error."""
        payload = copy.deepcopy(admin_payload)
        metadata = payload["currentUser"]["attributes"]["profile"]["metadata"]
        metadata["permissions"]["user"]["loginAs"] = {"all": True}

        result = PermissionGuard(codec).authorize(codec.sign(payload), UPDATE_ANY_TRANSACTION, "txn-1")

        assert result.status == 403
        assert result.missing == ({"all": [{"transaction": ["update"]}]},)

    def test_illegal_declaration_raises(self, codec, admin_payload):
        with pytest.raises(ConfigurationError):
            PermissionGuard(codec).authorize(
                codec.sign(admin_payload),
                {"transaction": {"permissions": ["delete"]}},
            )

    def test_custom_check_sees_current_user(self, codec, admin_payload):
        seen = {}

        def owns_resource(context):
            seen.update(context)
            return context["currentUser"].id.uuid == context["currentImpactedResourceId"]

        guard = PermissionGuard(codec)
        token = codec.sign(admin_payload)
        assert guard.authorize(token, {"customCheck": owns_resource}, resource_id=ADMIN_ID).valid is True
        assert guard.authorize(token, {"customCheck": owns_resource}, resource_id=TARGET_USER_ID).valid is False
        assert seen["currentUser"].id.uuid == ADMIN_ID


class TestPermissionGuardOptions:
    """Options handling."""

    def test_unknown_option_rejected(self, codec):
        with pytest.raises(SchemaValidationError) as exc:
            PermissionGuard(codec, {"skipChecks": True})
        assert exc.value.code == "INVALID_OPTIONS"

    def test_options_exposed(self, codec):
        guard = PermissionGuard(codec, {"encrypted": True, "trustedSdk": True})
        assert guard.options.encrypted is True
        assert guard.options.trusted_sdk is True

    def test_encrypted_tokens(self, codec, admin_payload):
        guard = PermissionGuard(codec, {"encrypted": True})
        assert guard.authorize(codec.encrypt(admin_payload), READ_USER).valid is True

    def test_encrypted_rejects_signed_token(self, codec, admin_payload):
        guard = PermissionGuard(codec, {"encrypted": True})
        result = guard.authorize(codec.sign(admin_payload), READ_USER)
        assert result.status == 401
        assert result.code == "DECRYPTION_FAILED"

    def test_loader_required_but_missing_logs(self, codec, caplog):
        PermissionGuard(codec, {"requireCurrentUserDetail": True})
        assert "no user loader" in caplog.text


class TestCurrentUserLoader:
    """requireCurrentUserDetail: fresh permissions from the system of record."""

    def test_loader_permissions_replace_token(self, codec, admin_payload):
        loader = MagicMock(return_value=_loaded_user({"user": {"permissions": []}}))
        guard = PermissionGuard(codec, {"requireCurrentUserDetail": True}, user_loader=loader)

        result = guard.authorize(codec.sign(admin_payload), READ_USER)

        assert result.status == 403
        assert result.missing == ({"user": ["get"]},)
        loader.assert_called_once_with(ADMIN_ID, trusted=False)

    def test_trusted_lookup(self, codec, admin_payload):
        loader = MagicMock(return_value=_loaded_user({"user": {"permissions": ["get"]}}))
        guard = PermissionGuard(codec, {"requireCurrentUserDetail": True, "trustedSdk": True}, user_loader=loader)

        assert guard.authorize(codec.sign(admin_payload), READ_USER).valid is True
        loader.assert_called_once_with(ADMIN_ID, trusted=True)

    def test_denormalised_loader_response(self, codec, admin_payload):
        response = _loaded_user({"user": {"permissions": ["get"]}})
        response["data"]["relationships"] = {"profileImage": {"data": {"id": {"uuid": "img1"}, "type": "image"}}}
        response["included"] = [{"id": {"uuid": "img1"}, "type": "image"}]
        loader = MagicMock(return_value=response)
        guard = PermissionGuard(
            codec,
            {"requireCurrentUserDetail": True, "denormalise": True},
            user_loader=loader,
        )

        assert guard.authorize(codec.sign(admin_payload), READ_USER).valid is True

    def test_loader_without_user(self, codec, admin_payload):
        loader = MagicMock(return_value={"data": None})
        guard = PermissionGuard(codec, {"requireCurrentUserDetail": True}, user_loader=loader)

        result = guard.authorize(codec.sign(admin_payload), READ_USER)
        assert result.status == 401
        assert result.code == "CURRENT_USER_NOT_FOUND"

    def test_loader_missing_relationship(self, codec, admin_payload):
        response = _loaded_user({"user": {"permissions": ["get"]}})
        response["data"]["relationships"] = {"profileImage": {"data": {"id": {"uuid": "img1"}, "type": "image"}}}
        loader = MagicMock(return_value=response)
        guard = PermissionGuard(
            codec,
            {"requireCurrentUserDetail": True, "denormalise": True},
            user_loader=loader,
        )

        result = guard.authorize(codec.sign(admin_payload), READ_USER)
        assert result.status == 401
        assert result.code == "ENTITY_NOT_FOUND"

    @pytest.mark.parametrize("error", [ConnectionError("refused"), KeyError("data")])
    def test_loader_error_is_unauthenticated(self, codec, admin_payload, error, caplog):
        loader = MagicMock(side_effect=error)
        guard = PermissionGuard(codec, {"requireCurrentUserDetail": True}, user_loader=loader)

        result = guard.authorize(codec.sign(admin_payload), READ_USER)

        assert result.status == 401
        assert result.code == "CURRENT_USER_UNAVAILABLE"
        assert "Current user lookup failed" in caplog.text

    def test_payload_untouched(self, codec, admin_payload):
        before = copy.deepcopy(admin_payload)
        loader = MagicMock(return_value=_loaded_user({}))
        guard = PermissionGuard(codec, {"requireCurrentUserDetail": True}, user_loader=loader)
        guard.authorize(codec.sign(admin_payload), READ_USER)
        assert admin_payload == before
