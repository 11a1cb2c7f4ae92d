from .config import LogLevel, PermitConfig, TokenConfig, load_config_from_env, parse_duration
from .exceptions import (
    ClaimMismatchError,
    ConfigurationError,
    DecryptionFailedError,
    EntityNotFoundError,
    InvalidSignatureError,
    PermitCoreError,
    SchemaValidationError,
    SecurityError,
    TokenError,
    TokenExpiredError,
    error_registry,
    register_error,
)
from .logging import (
    PermitFormatter,
    PermitLoggerAdapter,
    get_permit_logger,
    redact_secrets,
    safe_log_value,
    safe_preview,
    setup_logging,
)
from .permissions import (
    ENTITY_ACTIONS,
    Action,
    Entity,
    ReservedKeywords,
    VerificationResult,
    get_missing_permissions,
    validate_required_permissions,
    verify_permissions,
)
from .schemas import (
    CapabilityPayload,
    MiddlewareOptions,
    validate_capability_payload,
    validate_middleware_options,
)
from .tokens import Disabled, TokenCodec

__all__ = [
    # Config
    'LogLevel',
    'PermitConfig',
    'TokenConfig',
    'load_config_from_env',
    'parse_duration',
    # Errors
    'ClaimMismatchError',
    'ConfigurationError',
    'DecryptionFailedError',
    'EntityNotFoundError',
    'InvalidSignatureError',
    'PermitCoreError',
    'SchemaValidationError',
    'SecurityError',
    'TokenError',
    'TokenExpiredError',
    'error_registry',
    'register_error',
    # Logging
    'PermitFormatter',
    'PermitLoggerAdapter',
    'get_permit_logger',
    'redact_secrets',
    'safe_log_value',
    'safe_preview',
    'setup_logging',
    # Permissions
    'Action',
    'ENTITY_ACTIONS',
    'Entity',
    'ReservedKeywords',
    'VerificationResult',
    'get_missing_permissions',
    'validate_required_permissions',
    'verify_permissions',
    # Schemas
    'CapabilityPayload',
    'MiddlewareOptions',
    'validate_capability_payload',
    'validate_middleware_options',
    # Tokens
    'Disabled',
    'TokenCodec',
]
