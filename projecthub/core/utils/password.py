"""Credential hashing for stored users."""

from functools import lru_cache

from pwdlib import PasswordHash
from pwdlib.exceptions import UnknownHashError


@lru_cache(maxsize=1)
def password_hasher() -> PasswordHash:
    """The shared Argon2 hasher (``PasswordHash.recommended()``)."""
    return PasswordHash.recommended()


def hash_password(password: str) -> str:
    """Return the Argon2 digest stored as ``User.password_hash``.

    Example:
        .. code-block:: python

            user = User(..., password_hash=hash_password("secret1"))
    """
    return password_hasher().hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Check a plain password against a stored digest. Digests pwdlib cannot identify never match."""
    if not hashed_password:
        return False
    try:
        return password_hasher().verify(plain_password, hashed_password)
    except UnknownHashError:
        return False


__all__ = ["hash_password", "password_hasher", "verify_password"]
