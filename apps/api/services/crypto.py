"""
At-rest encryption for provider tokens.

Access and refresh tokens live in ``social_accounts`` as Fernet ciphertext and
are decrypted only when a provider call needs them. ``ENCRYPTION_KEY`` values
that are not exactly 32 characters are stretched with PBKDF2.
"""

import base64
from functools import lru_cache
from typing import Optional

from cryptography.fernet import Fernet, InvalidToken
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from config import settings


_KDF_SALT = b"sponsoru_token_salt"
_KDF_ITERATIONS = 100000


class TokenDecryptionError(ValueError):
    """Stored ciphertext cannot be read with the configured key."""


@lru_cache(maxsize=4)
def _fernet_for(key: str) -> Fernet:
    if len(key) == 32:
        return Fernet(base64.urlsafe_b64encode(key.encode()))

    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=32,
        salt=_KDF_SALT,
        iterations=_KDF_ITERATIONS,
    )
    return Fernet(base64.urlsafe_b64encode(kdf.derive(key.encode())))


def _get_fernet() -> Fernet:
    # Keyed on the current setting so a changed key takes effect immediately
    return _fernet_for(settings.ENCRYPTION_KEY)


def encrypt_token(token: str) -> str:
    return _get_fernet().encrypt(token.encode()).decode()


def decrypt_token(encrypted_token: str) -> str:
    """
    Decrypt a token produced by ``encrypt_token``.

    Raises:
        TokenDecryptionError: the ciphertext was written with a different key
                              or has been tampered with
    """
    try:
        return _get_fernet().decrypt(encrypted_token.encode()).decode()
    except InvalidToken as exc:
        raise TokenDecryptionError("Stored token could not be decrypted") from exc


def encrypt_optional(token: Optional[str]) -> Optional[str]:
    return encrypt_token(token) if token else None


def decrypt_optional(encrypted_token: Optional[str]) -> Optional[str]:
    return decrypt_token(encrypted_token) if encrypted_token else None
