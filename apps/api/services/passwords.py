"""
Password hashing and verification using scrypt.

Stored format is ``hex(derived_key) + "." + hex(salt)``.
"""

import asyncio
import os
from functools import lru_cache
from typing import Tuple

from cryptography.exceptions import InvalidKey
from cryptography.hazmat.primitives.kdf.scrypt import Scrypt

from config import settings
from services.errors import MalformedPasswordHash


SALT_BYTES = 16


def _kdf(salt: bytes) -> Scrypt:
    return Scrypt(
        salt=salt,
        length=settings.PASSWORD_KEY_LENGTH,
        n=settings.PASSWORD_SCRYPT_N,
        r=settings.PASSWORD_SCRYPT_R,
        p=settings.PASSWORD_SCRYPT_P,
    )


def _split_stored_hash(stored: str) -> Tuple[bytes, bytes]:
    derived_hex, sep, salt_hex = (stored or "").partition(".")
    if not sep or not derived_hex or not salt_hex:
        raise MalformedPasswordHash("Stored password hash is missing its salt separator.")
    try:
        return bytes.fromhex(derived_hex), bytes.fromhex(salt_hex)
    except ValueError as exc:
        raise MalformedPasswordHash("Stored password hash is not valid hex.") from exc


def hash_password(password: str) -> str:
    """
    Hash a password with a fresh random salt.

    Args:
        password: Plain text password

    Returns:
        Stored hash string ``<key hex>.<salt hex>``
    """
    salt = os.urandom(SALT_BYTES)
    derived = _kdf(salt).derive(password.encode("utf-8"))
    return f"{derived.hex()}.{salt.hex()}"


def verify_password(password: str, stored: str) -> bool:
    """
    Check a supplied password against a stored hash in constant time.

    Raises:
        MalformedPasswordHash: the stored value cannot be parsed
    """
    expected, salt = _split_stored_hash(stored)
    try:
        _kdf(salt).verify(password.encode("utf-8"), expected)
    except InvalidKey:
        return False
    return True


@lru_cache(maxsize=1)
def _dummy_hash() -> str:
    return hash_password("timing-equalizer")


def burn_verification(password: str) -> None:
    """Run a throwaway verification so unknown accounts cost as much as wrong passwords."""
    verify_password(password, _dummy_hash())


async def hash_password_async(password: str) -> str:
    return await asyncio.to_thread(hash_password, password)


async def verify_password_async(password: str, stored: str) -> bool:
    return await asyncio.to_thread(verify_password, password, stored)


async def burn_verification_async(password: str) -> None:
    await asyncio.to_thread(burn_verification, password)
