"""Shared fixtures: RSA key material and capability payloads."""

from __future__ import annotations

import base64

import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa

from permitcore import TokenCodec, TokenConfig

ADMIN_ID = "5f0c1d2e-0000-4000-8000-00000000a11a"
TARGET_USER_ID = "6639d48a-45b7-4062-84b5-3d82ab9f104c"


def _private_pem_b64(key: rsa.RSAPrivateKey) -> str:
    pem = key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.TraditionalOpenSSL,
        encryption_algorithm=serialization.NoEncryption(),
    )
    return base64.b64encode(pem).decode()


def _public_pem_b64(key: rsa.RSAPrivateKey) -> str:
    pem = key.public_key().public_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    )
    return base64.b64encode(pem).decode()


@pytest.fixture(scope="session")
def signing_key() -> rsa.RSAPrivateKey:
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture(scope="session")
def encryption_key() -> rsa.RSAPrivateKey:
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture(scope="session")
def other_key() -> rsa.RSAPrivateKey:
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture
def token_config(signing_key, encryption_key) -> TokenConfig:
    return TokenConfig(
        signing_private_key=_private_pem_b64(signing_key),
        encryption_private_key=_private_pem_b64(encryption_key),
        issuer="marketplace",
        audience="marketplace-api",
        expiration="15m",
    )


@pytest.fixture
def codec(token_config) -> TokenCodec:
    return TokenCodec(token_config)


@pytest.fixture
def private_pem_b64():
    return _private_pem_b64


@pytest.fixture
def public_pem_b64():
    return _public_pem_b64


@pytest.fixture
def admin_payload() -> dict:
    """Administrator allowed to act on any user's transactions."""
    return {
        "currentUser": {
            "id": {"uuid": ADMIN_ID},
            "attributes": {
                "profile": {
                    "metadata": {
                        "permissions": {
                            "user": {
                                "permissions": ["get"],
                                "loginAs": {
                                    "all": {"transaction": {"permissions": ["get", "update"]}},
                                },
                            },
                        },
                    },
                },
            },
        },
        "loggedInAsUser": {"id": {"uuid": TARGET_USER_ID}},
    }
