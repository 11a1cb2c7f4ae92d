"""Exceptions raised by permitcore.

Every error carries a stable ``code`` (for logs and wire responses) and an
``http_status`` hint for the inbound layer. Codes are indexed in
``error_registry`` so a caller holding only a code can find its class.

Missing permissions are not exceptions: the verifier returns them as data.
Only configuration, schema and cryptographic failures are raised.
"""

from __future__ import annotations

from typing import Any, Callable, Optional, TypeVar

__all__ = [
    "PermitCoreError",
    "ConfigurationError",
    "SecurityError",
    "SchemaValidationError",
    "TokenError",
    "InvalidSignatureError",
    "TokenExpiredError",
    "ClaimMismatchError",
    "DecryptionFailedError",
    "EntityNotFoundError",
    "ErrorRegistry",
    "error_registry",
    "register_error",
]


class PermitCoreError(Exception):
    """Root of the permitcore error tree.

    Attributes:
        code: Stable machine-readable code, e.g. ``"TOKEN_EXPIRED"``.
        message: Human-readable description.
        http_status: Status the inbound layer should answer with.
        details: Extra keyword context given at raise time.
    """

    code: str = "INTERNAL_ERROR"
    message: str = "An internal error occurred"
    http_status: int = 500

    def __init__(self, message: Optional[str] = None, code: Optional[str] = None, **details: Any) -> None:
        if message:
            self.message = message
        if code:
            self.code = code
        self.details = details
        super().__init__(self.message)


class ConfigurationError(PermitCoreError):
    """Malformed key material, bad durations or illegal permission declarations."""

    code = "CONFIGURATION_ERROR"
    message = "Invalid configuration"


class SecurityError(PermitCoreError):
    """The request cannot be authenticated."""

    code = "SECURITY_ERROR"
    message = "Security check failed"
    http_status = 401


class SchemaValidationError(SecurityError):
    """Capability payload or guard options are structurally invalid.

    ``details["errors"]`` lists each violation as ``{loc, msg, type}``.
    """

    code = "SCHEMA_VALIDATION_ERROR"
    message = "Payload failed schema validation"


class TokenError(SecurityError):
    code = "INVALID_TOKEN"
    message = "Invalid token"


class InvalidSignatureError(TokenError):
    code = "INVALID_SIGNATURE"
    message = "Token signature verification failed"


class TokenExpiredError(TokenError):
    code = "TOKEN_EXPIRED"
    message = "Token has expired"


class ClaimMismatchError(TokenError):
    """``iss`` or ``aud`` differs from the expected value."""

    code = "CLAIM_MISMATCH"
    message = "Token claims do not match"


class DecryptionFailedError(TokenError):
    """Wrong key, tampered ciphertext, or a plaintext that is not a claims object."""

    code = "DECRYPTION_FAILED"
    message = "Token decryption failed"


class EntityNotFoundError(PermitCoreError):
    """A JSON:API relationship points at a resource missing from the response."""

    code = "ENTITY_NOT_FOUND"
    message = "Entity not found"


# ── Code registry ───────────────────────────────────────

_ErrorT = TypeVar("_ErrorT", bound=type[PermitCoreError])


class ErrorRegistry:
    """Index of error classes by code."""

    def __init__(self) -> None:
        self._by_code: dict[str, type[PermitCoreError]] = {}

    def register(self, code: str, error_cls: type[PermitCoreError]) -> None:
        self._by_code[code] = error_cls

    def get(self, code: str) -> Optional[type[PermitCoreError]]:
        return self._by_code.get(code)

    def all(self) -> dict[str, type[PermitCoreError]]:
        return dict(self._by_code)


error_registry = ErrorRegistry()


def register_error(code: str) -> Callable[[_ErrorT], _ErrorT]:
    """Class decorator adding an application error to ``error_registry``.

    Usage:
        @register_error("DELEGATION_REVOKED")
        class DelegationRevokedError(SecurityError):
            code = "DELEGATION_REVOKED"
    """

    def decorator(error_cls: _ErrorT) -> _ErrorT:
        error_registry.register(code, error_cls)
        return error_cls

    return decorator


for _error_cls in (
    PermitCoreError,
    ConfigurationError,
    SecurityError,
    SchemaValidationError,
    TokenError,
    InvalidSignatureError,
    TokenExpiredError,
    ClaimMismatchError,
    DecryptionFailedError,
    EntityNotFoundError,
):
    error_registry.register(_error_cls.code, _error_cls)
del _error_cls
