"""Key material loading for the token codec.

Keys arrive as base64-encoded PEM text (one environment variable per key).
Decoding and importing is deferred to first use and cached for the process
lifetime; there is no rotation support.
"""

from __future__ import annotations

import base64
import binascii
import logging
import threading
from typing import Optional

from cryptography.hazmat.primitives import serialization

from .exceptions import ConfigurationError

logger = logging.getLogger(__name__)


def decode_b64_pem(value: str) -> bytes:
    """Decode a base64-encoded PEM secret.

    Values that already look like PEM text are accepted verbatim.

    Raises:
        ConfigurationError: If the value is not valid base64.
    """
    stripped = value.strip()
    if stripped.startswith("-----BEGIN"):
        return stripped.encode()
    try:
        return base64.b64decode(stripped, validate=True)
    except (binascii.Error, ValueError) as e:
        raise ConfigurationError(f"Key material is not valid base64: {e}")


class KeyMaterial:
    """Lazily imported RSA key pair.

    Either half may be absent. When only the private key is configured, the
    public key is derived from it.

    Concurrent first use may import twice; the result is identical, so the
    lock only keeps the cache assignment consistent.
    """

    def __init__(self, private_b64: str = "", public_b64: str = "", *, name: str = "key") -> None:
        self._private_b64 = private_b64 or ""
        self._public_b64 = public_b64 or ""
        self._name = name
        self._lock = threading.Lock()
        self._private_pem: Optional[str] = None
        self._public_pem: Optional[str] = None
        self._loaded = False

    @property
    def name(self) -> str:
        return self._name

    @property
    def has_private(self) -> bool:
        return bool(self._private_b64.strip())

    @property
    def has_public(self) -> bool:
        return bool(self._public_b64.strip()) or self.has_private

    def _load(self) -> None:
        if self._loaded:
            return

        private_pem: Optional[str] = None
        public_pem: Optional[str] = None

        if self.has_private:
            raw = decode_b64_pem(self._private_b64)
            try:
                private_key = serialization.load_pem_private_key(raw, password=None)
            except (ValueError, TypeError) as e:
                raise ConfigurationError(f"Invalid {self._name} private key: {e}")
            private_pem = private_key.private_bytes(
                encoding=serialization.Encoding.PEM,
                format=serialization.PrivateFormat.PKCS8,
                encryption_algorithm=serialization.NoEncryption(),
            ).decode()
            derived_public = private_key.public_key()
        else:
            derived_public = None

        if self._public_b64.strip():
            raw = decode_b64_pem(self._public_b64)
            try:
                public_key = serialization.load_pem_public_key(raw)
            except (ValueError, TypeError) as e:
                raise ConfigurationError(f"Invalid {self._name} public key: {e}")
        else:
            public_key = derived_public

        if public_key is not None:
            public_pem = public_key.public_bytes(
                encoding=serialization.Encoding.PEM,
                format=serialization.PublicFormat.SubjectPublicKeyInfo,
            ).decode()

        with self._lock:
            if not self._loaded:
                self._private_pem = private_pem
                self._public_pem = public_pem
                self._loaded = True
                logger.debug("Imported %s key material (private=%s)", self._name, private_pem is not None)

    @property
    def private_pem(self) -> Optional[str]:
        """PKCS8 PEM text of the private key, or None if not configured."""
        if not self.has_private:
            return None
        self._load()
        return self._private_pem

    @property
    def public_pem(self) -> Optional[str]:
        """SubjectPublicKeyInfo PEM text of the public key, or None if not configured."""
        if not self.has_public:
            return None
        self._load()
        return self._public_pem

    def __repr__(self) -> str:
        return f"KeyMaterial(name={self._name!r}, private={self.has_private}, public={self.has_public})"


__all__ = ["KeyMaterial", "decode_b64_pem"]
