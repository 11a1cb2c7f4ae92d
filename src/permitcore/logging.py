"""Logging for permitcore and the services that embed it.

Capability tokens, bearer headers and key material must never reach a log
sink in clear text. Everything here funnels through :func:`redact_secrets`:

- ``setup_logging()`` installs a :class:`PermitFormatter` on the root logger
- ``get_permit_logger()`` returns an adapter that stamps request_id / user_id
- ``safe_log_value()`` bounds and redacts untrusted values (e.g. missing
  permission lists) before they are interpolated into a message
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any, Optional

from .config import LogLevel, PermitConfig

# Order matters: compact tokens are removed before the generic key=value rule
# can swallow only their first segment.
SECRET_PATTERNS = [
    r"-----BEGIN [A-Z ]*KEY-----.*?-----END [A-Z ]*KEY-----",
    r"eyJ[\w-]+\.[\w-]*(?:\.[\w-]*){1,3}",
    r"(?i)\b(?:bearer|basic)\s+[\w+/=.-]+",
    r"(?i)\b(?:password|passwd|pwd|secret|token|api[_-]?key|private[_-]?key)\s*[:=]\s*[\"']?[^\"'\s,}]+",
]

_SECRET_RES = [re.compile(pattern, re.DOTALL) for pattern in SECRET_PATTERNS]

_STANDARD_ATTRS = frozenset(vars(logging.LogRecord("", 0, "", 0, "", (), None))) | {
    "message",
    "asctime",
    "request_id",
    "user_id",
}


def safe_preview(value: Any, limit: int = 240) -> str:
    """Single-line, length-bounded rendering of ``value``.

    Mappings and lists are rendered as JSON; ``None`` renders as ``""``.
    """
    if value is None:
        return ""
    if isinstance(value, (dict, list, tuple)):
        try:
            text = json.dumps(value, default=str, ensure_ascii=False)
        except (TypeError, ValueError):
            text = repr(value)
    else:
        text = str(value)

    text = " ".join(text.split())
    return text if len(text) <= limit else text[: limit - 1] + "…"


def redact_secrets(text: str, replacement: str = "[REDACTED]") -> str:
    """Replace tokens, bearer credentials, PEM blocks and ``secret=...`` pairs."""
    if not isinstance(text, str):
        return text
    for pattern in _SECRET_RES:
        text = pattern.sub(replacement, text)
    return text


def safe_log_value(value: Any, limit: int = 240, redact: bool = True) -> str:
    """:func:`safe_preview`, then :func:`redact_secrets` unless disabled."""
    preview = safe_preview(value, limit=limit)
    return redact_secrets(preview) if redact else preview


class PermitFormatter(logging.Formatter):
    """JSON or single-line text formatter.

    ``request_id`` and ``user_id`` record attributes become top-level fields;
    any other ``extra`` attribute is previewed and included as well.
    """

    def __init__(self, json_format: bool = True, redact_secrets: bool = True, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self.json_format = json_format
        self.redact_secrets = redact_secrets

    def _clean(self, text: str) -> str:
        return redact_secrets(text) if self.redact_secrets else text

    def _fields(self, record: logging.LogRecord) -> dict[str, Any]:
        fields: dict[str, Any] = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "message": self._clean(record.getMessage()),
        }
        for name in ("request_id", "user_id"):
            value = getattr(record, name, None)
            if value:
                fields[name] = str(value)
        for name, value in vars(record).items():
            if name not in _STANDARD_ATTRS:
                fields[name] = safe_log_value(value, redact=self.redact_secrets)
        if record.exc_info:
            fields["exception"] = self._clean(self.formatException(record.exc_info))
        return fields

    def format(self, record: logging.LogRecord) -> str:
        fields = self._fields(record)
        if self.json_format:
            return json.dumps(fields, default=str, ensure_ascii=False)

        context = " ".join(f"{name}={fields[name]}" for name in ("request_id", "user_id") if name in fields)
        head = f"[{fields['timestamp']}] {fields['level']} {fields['logger']}"
        if context:
            head = f"{head} {context}"
        line = f"{head} : {fields['message']}"
        if "exception" in fields:
            line = f"{line}\n{fields['exception']}"
        return line


class PermitLoggerAdapter(logging.LoggerAdapter):
    """Adapter carrying request_id / user_id, overridable per call.

    Usage:
        log = get_permit_logger(__name__, request_id=req_id)
        log.info("Access denied", user_id=user_uuid)
    """

    def __init__(
        self,
        logger: logging.Logger,
        request_id: Optional[str] = None,
        user_id: Optional[str] = None,
    ):
        super().__init__(logger, {})
        self.request_id = request_id
        self.user_id = user_id

    def process(self, msg: str, kwargs: dict[str, Any]) -> tuple[str, dict[str, Any]]:
        ids = {
            "request_id": kwargs.pop("request_id", self.request_id),
            "user_id": kwargs.pop("user_id", self.user_id),
        }
        kwargs["extra"] = {**kwargs.get("extra", {}), **{k: v for k, v in ids.items() if v}}
        return msg, kwargs


def setup_logging(
    config: Optional[PermitConfig] = None,
    json_format: Optional[bool] = None,
    redact_secrets: bool = True,
) -> None:
    """Install a single :class:`PermitFormatter` handler on the root logger.

    Args:
        config: Source of ``log_level``, ``log_json`` and ``service_name``
            (loaded from the environment when omitted).
        json_format: Overrides ``config.log_json``.
        redact_secrets: Redact messages and extra fields (default: True).
    """
    if config is None:
        from .config import load_config_from_env

        config = load_config_from_env()

    level = logging.getLevelName(LogLevel(config.log_level).value)
    handler = logging.StreamHandler()
    handler.setFormatter(
        PermitFormatter(
            json_format=config.log_json if json_format is None else json_format,
            redact_secrets=redact_secrets,
        )
    )
    logging.basicConfig(level=level, handlers=[handler], force=True)

    if config.service_name:
        logging.getLogger(config.service_name).setLevel(level)


def get_permit_logger(
    name: str,
    request_id: Optional[str] = None,
    user_id: Optional[str] = None,
) -> PermitLoggerAdapter:
    """Adapter over ``logging.getLogger(name)`` with request/user context."""
    return PermitLoggerAdapter(logging.getLogger(name), request_id=request_id, user_id=user_id)


__all__ = [
    "PermitFormatter",
    "PermitLoggerAdapter",
    "get_permit_logger",
    "redact_secrets",
    "safe_log_value",
    "safe_preview",
    "setup_logging",
]
