"""Capability token codec: sign / verify / encrypt / decrypt.

Capability tokens carry a :class:`~permitcore.schemas.CapabilityPayload`
plus the registered claims ``iat``, ``iss``, ``aud`` and ``exp``.

Two wire formats are supported:
    JWS  RS256                      sign() / verify()
    JWE  RSA-OAEP-256 + A256GCM     encrypt() / decrypt()

Each operation needs one key. When that key is not configured the
operation is *disabled*: it logs a warning and returns a :class:`Disabled`
sentinel instead of raising, so deployments without key material run with
delegation switched off. ``Disabled`` is falsy and is never a string or a
dict, so it cannot be mistaken for a token or for claims.

Payloads are schema-validated before they reach the signer; a payload that
fails validation raises SchemaValidationError and is never signed.
"""

from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass
from typing import Any, Mapping, Optional, Union

from jose import jwe, jwt
from jose.constants import ALGORITHMS
from jose.exceptions import ExpiredSignatureError, JWEError, JWTClaimsError, JWTError

from .config import Duration, TokenConfig, parse_duration
from .exceptions import (
    ClaimMismatchError,
    ConfigurationError,
    DecryptionFailedError,
    InvalidSignatureError,
    SchemaValidationError,
    TokenExpiredError,
)
from .keys import KeyMaterial
from .schemas import CapabilityPayload, validate_capability_payload

logger = logging.getLogger(__name__)

SIGNING_ALGORITHM = ALGORITHMS.RS256
KEY_WRAP_ALGORITHM = ALGORITHMS.RSA_OAEP_256
CONTENT_ENCRYPTION = ALGORITHMS.A256GCM

REGISTERED_CLAIMS = frozenset({"iat", "exp", "nbf", "iss", "aud", "sub", "jti"})


@dataclass(frozen=True)
class Disabled:
    """Result of a codec operation whose key material is not configured."""

    operation: str
    reason: str

    def __bool__(self) -> bool:
        return False


PayloadInput = Union[CapabilityPayload, Mapping[str, Any]]


class TokenCodec:
    """Issue and consume capability tokens.

    Args:
        config: Key material and default claims.

    Usage::

        codec = TokenCodec(load_config_from_env().tokens)
        token = codec.sign({"currentUser": {"id": {"uuid": admin_id}, ...}})
        if isinstance(token, Disabled):
            ...  # delegation is switched off in this environment
        claims = codec.verify(token)
    """

    def __init__(self, config: Optional[TokenConfig] = None) -> None:
        self._config = config or TokenConfig()
        self._signing_keys = KeyMaterial(
            self._config.signing_private_key,
            self._config.signing_public_key,
            name="signing",
        )
        self._encryption_keys = KeyMaterial(
            self._config.encryption_private_key,
            self._config.encryption_public_key,
            name="encryption",
        )

    @property
    def config(self) -> TokenConfig:
        return self._config

    @property
    def can_sign(self) -> bool:
        return self._signing_keys.has_private

    @property
    def can_verify(self) -> bool:
        return self._signing_keys.has_public

    @property
    def can_encrypt(self) -> bool:
        return self._encryption_keys.has_public

    @property
    def can_decrypt(self) -> bool:
        return self._encryption_keys.has_private

    # ── helpers ─────────────────────────────────────────

    @staticmethod
    def _disabled(operation: str, reason: str) -> Disabled:
        logger.warning("Token %s disabled: %s", operation, reason)
        return Disabled(operation=operation, reason=reason)

    def _build_claims(
        self,
        payload: PayloadInput,
        issuer: Optional[str],
        audience: Optional[str],
        expire: Optional[Duration],
    ) -> dict[str, Any]:
        validated = validate_capability_payload(payload)
        now = int(time.time())
        lifetime = parse_duration(expire) if expire is not None else self._config.expiration_seconds
        if lifetime <= 0:
            raise ConfigurationError(f"Token expiration must be positive, got {expire!r}")

        claims = validated.to_claims()
        claims["iat"] = now
        claims["exp"] = now + lifetime
        iss = issuer if issuer is not None else self._config.issuer
        if iss:
            claims["iss"] = iss
        aud = audience if audience is not None else self._config.audience
        if aud:
            claims["aud"] = aud
        return claims

    def _expected_issuer(self, issuer: Optional[str]) -> Optional[str]:
        expected = issuer if issuer is not None else self._config.issuer
        return expected or None

    def _expected_audience(self, audience: Optional[str]) -> Optional[str]:
        expected = audience if audience is not None else self._config.audience
        return expected or None

    # ── JWS ─────────────────────────────────────────────

    def sign(
        self,
        payload: PayloadInput,
        issuer: Optional[str] = None,
        audience: Optional[str] = None,
        expire: Optional[Duration] = None,
    ) -> Union[str, Disabled]:
        """Sign a capability payload (RS256).

        Args:
            payload: Capability payload (dict in wire shape or model).
            issuer: ``iss`` claim (None = configured default).
            audience: ``aud`` claim (None = configured default).
            expire: Lifetime, e.g. ``"1h"`` or ``900`` (None = configured default).

        Returns:
            Compact JWS string, or ``Disabled`` when no signing key is configured.

        Raises:
            SchemaValidationError: If the payload is malformed (nothing is signed).
            ConfigurationError: If ``expire`` is not a positive duration.
        """
        if not self.can_sign:
            return self._disabled("sign", "no signing private key configured")

        claims = self._build_claims(payload, issuer, audience, expire)
        token = jwt.encode(claims, self._signing_keys.private_pem, algorithm=SIGNING_ALGORITHM)
        logger.debug(
            "Signed capability token for user %s (exp=%s)",
            claims["currentUser"]["id"]["uuid"],
            claims["exp"],
        )
        return token

    def verify(
        self,
        token: str,
        issuer: Optional[str] = None,
        audience: Optional[str] = None,
    ) -> Union[dict[str, Any], Disabled]:
        """Verify a signed token and return its claims.

        Raises:
            TokenExpiredError: ``exp`` is in the past.
            ClaimMismatchError: ``iss`` or ``aud`` does not match.
            InvalidSignatureError: Bad signature or malformed token.
        """
        if not self.can_verify:
            return self._disabled("verify", "no signing public key configured")

        try:
            return jwt.decode(
                token,
                self._signing_keys.public_pem,
                algorithms=[SIGNING_ALGORITHM],
                issuer=self._expected_issuer(issuer),
                audience=self._expected_audience(audience),
            )
        except ExpiredSignatureError as e:
            raise TokenExpiredError(str(e))
        except JWTClaimsError as e:
            raise ClaimMismatchError(str(e))
        except JWTError as e:
            raise InvalidSignatureError(str(e))

    # ── JWE ─────────────────────────────────────────────

    def encrypt(
        self,
        payload: PayloadInput,
        issuer: Optional[str] = None,
        audience: Optional[str] = None,
        expire: Optional[Duration] = None,
    ) -> Union[str, Disabled]:
        """Encrypt a capability payload into a compact JWE.

        Returns:
            Compact JWE string, or ``Disabled`` when no encryption public key is configured.

        Raises:
            SchemaValidationError: If the payload is malformed (nothing is encrypted).
            ConfigurationError: If ``expire`` is not a positive duration.
        """
        if not self.can_encrypt:
            return self._disabled("encrypt", "no encryption public key configured")

        claims = self._build_claims(payload, issuer, audience, expire)
        token = jwe.encrypt(
            json.dumps(claims, separators=(",", ":")).encode(),
            self._encryption_keys.public_pem,
            encryption=CONTENT_ENCRYPTION,
            algorithm=KEY_WRAP_ALGORITHM,
            cty="JWT",
        )
        return token.decode() if isinstance(token, bytes) else token

    def decrypt(
        self,
        token: str,
        issuer: Optional[str] = None,
    ) -> Union[dict[str, Any], Disabled]:
        """Decrypt an encrypted token, then check ``exp`` and ``iss``.

        Raises:
            DecryptionFailedError: Wrong key, tampered ciphertext, or non-JSON plaintext.
            TokenExpiredError: ``exp`` is in the past.
            ClaimMismatchError: ``iss`` does not match.
        """
        if not self.can_decrypt:
            return self._disabled("decrypt", "no encryption private key configured")

        try:
            plaintext = jwe.decrypt(token, self._encryption_keys.private_pem)
        except (JWEError, JWTError, ValueError) as e:
            raise DecryptionFailedError(str(e) or DecryptionFailedError.message)
        if plaintext is None:
            raise DecryptionFailedError()

        try:
            claims = json.loads(plaintext)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise DecryptionFailedError(f"Decrypted payload is not JSON: {e}")
        if not isinstance(claims, dict):
            raise DecryptionFailedError("Decrypted payload is not a JSON object")

        exp = claims.get("exp")
        if not isinstance(exp, (int, float)) or isinstance(exp, bool):
            raise DecryptionFailedError("Decrypted payload has no valid exp claim")
        if exp <= time.time():
            raise TokenExpiredError()

        expected_issuer = self._expected_issuer(issuer)
        if expected_issuer is not None and claims.get("iss") != expected_issuer:
            raise ClaimMismatchError("Invalid issuer")

        return claims

    # ── payload ─────────────────────────────────────────

    @staticmethod
    def payload_from_claims(claims: Mapping[str, Any]) -> CapabilityPayload:
        """Strip registered claims and re-validate the capability payload.

        Raises:
            SchemaValidationError: If the remaining payload is malformed.
        """
        if not isinstance(claims, Mapping):
            raise SchemaValidationError("Token claims must be an object", errors=[])
        payload = {key: value for key, value in claims.items() if key not in REGISTERED_CLAIMS}
        return validate_capability_payload(payload)


__all__ = [
    "Disabled",
    "REGISTERED_CLAIMS",
    "TokenCodec",
]
