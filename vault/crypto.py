"""
vault/crypto.py -- Encryption at rest for vaulted credential secrets.

Uses Fernet (AES-128-CBC + HMAC-SHA256) from the cryptography library. The
key comes from VAULT_ENCRYPTION_KEY when set; otherwise it is derived from
SECRET_KEY with SHA-256 so a development setup needs only one secret.
Rotating SECRET_KEY without setting VAULT_ENCRYPTION_KEY makes existing
secrets unreadable.
"""

from __future__ import annotations

import base64
import hashlib

from cryptography.fernet import Fernet, InvalidToken

from core.config import get_settings
from core.errors import Internal


def _derive_key(secret_key: str) -> bytes:
    digest = hashlib.sha256(b"credvault:vault:" + secret_key.encode("utf-8")).digest()
    return base64.urlsafe_b64encode(digest)


class SecretCipher:
    """Encrypt/decrypt credential secret values."""

    def __init__(self, key: str | bytes | None = None) -> None:
        if key is None:
            settings = get_settings()
            key = settings.vault_encryption_key or _derive_key(settings.secret_key)
        self._fernet = Fernet(key)

    def encrypt(self, plain: str) -> str:
        return self._fernet.encrypt(plain.encode("utf-8")).decode("utf-8")

    def decrypt(self, ciphertext: str) -> str:
        try:
            return self._fernet.decrypt(ciphertext.encode("utf-8")).decode("utf-8")
        except InvalidToken:
            raise Internal("Stored secret could not be decrypted.") from None
