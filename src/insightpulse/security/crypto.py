"""Fernet encryption for integration webhook secrets at rest."""
from __future__ import annotations
from functools import lru_cache
from cryptography.fernet import Fernet, InvalidToken

from insightpulse.config import get_settings


class EncryptionError(Exception):
    pass


@lru_cache(maxsize=1)
def get_fernet() -> Fernet:
    key = get_settings().integration_secret_key
    if not key:
        raise EncryptionError('INTEGRATION_SECRET_KEY missing')
    try:
        return Fernet(key.encode())
    except ValueError as e:
        raise EncryptionError(f'invalid key: {e}') from e


def encrypt_secret(value: str) -> str:
    f = get_fernet()
    return f.encrypt(value.encode()).decode()


def decrypt_secret(token: str) -> str:
    f = get_fernet()
    try:
        return f.decrypt(token.encode()).decode()
    except InvalidToken as e:
        raise EncryptionError('decryption_failed') from e


__all__ = ["encrypt_secret", "decrypt_secret", "get_fernet", "EncryptionError"]
