from __future__ import annotations

import base64
import hashlib
from functools import lru_cache

from cryptography.fernet import Fernet, InvalidToken

DEV_SECRET = "chatbridge-dev-secret-change-me"


def _derive_key(secret: str) -> bytes:
    digest = hashlib.sha256(secret.encode("utf-8")).digest()
    return base64.urlsafe_b64encode(digest)


@lru_cache(maxsize=4)
def _fernet(secret: str) -> Fernet:
    return Fernet(_derive_key(secret))


def encrypt_api_key(api_key: str, secret: str = DEV_SECRET) -> str:
    """Produce the token accepted by the ``*_API_KEY_ENCRYPTED`` settings."""
    return _fernet(secret).encrypt(api_key.encode("utf-8")).decode("utf-8")


def decrypt_api_key(token: str | None, secret: str = DEV_SECRET) -> str | None:
    if not token:
        return None
    try:
        return _fernet(secret).decrypt(token.encode("utf-8")).decode("utf-8")
    except (InvalidToken, ValueError):
        return None
