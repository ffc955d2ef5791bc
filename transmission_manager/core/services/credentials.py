"""
RPC credential hashing.

Transmission accepts a pre-hashed ``rpc-password``: ``{`` followed by
the SHA-1 hex digest of ``password + salt`` and the 8-character salt.
That is the only policy used here, on every host.
"""

from __future__ import annotations

import hashlib
import hmac
import secrets
import string

SALT_LENGTH = 8
DEFAULT_PASSWORD_LENGTH = 16
_SHA1_HEX_LENGTH = 40

_SALT_ALPHABET = string.ascii_letters + string.digits + "./"
_PASSWORD_ALPHABET = string.ascii_letters + string.digits + "._-"


def generate_salt() -> str:
    return "".join(secrets.choice(_SALT_ALPHABET) for _ in range(SALT_LENGTH))


def generate_password(length: int = DEFAULT_PASSWORD_LENGTH) -> str:
    """Random password safe to paste into a shell or a URL."""
    if length < 8:
        raise ValueError("Password length must be at least 8")
    return "".join(secrets.choice(_PASSWORD_ALPHABET) for _ in range(length))


def hash_password(plain: str, salt: str | None = None) -> str:
    """Hash ``plain`` into Transmission's salted format."""
    salt = salt if salt is not None else generate_salt()
    if len(salt) != SALT_LENGTH:
        raise ValueError(f"Salt must be {SALT_LENGTH} characters")
    digest = hashlib.sha1((plain + salt).encode("utf-8")).hexdigest()
    return "{" + digest + salt


def is_password_hash(value: str | None) -> bool:
    """Whether ``value`` looks like a salted hash (vs. a plain password)."""
    if not value or not value.startswith("{"):
        return False
    body = value[1:]
    if len(body) != _SHA1_HEX_LENGTH + SALT_LENGTH:
        return False
    return all(c in string.hexdigits for c in body[:_SHA1_HEX_LENGTH])


def verify_password(plain: str, hashed: str) -> bool:
    """Check ``plain`` against a salted hash."""
    if not is_password_hash(hashed):
        return False
    salt = hashed[-SALT_LENGTH:]
    return hmac.compare_digest(hash_password(plain, salt), hashed)


def new_credential(length: int = DEFAULT_PASSWORD_LENGTH) -> tuple[str, str]:
    """Generate a password and its hash: ``(plain, hashed)``."""
    plain = generate_password(length)
    return plain, hash_password(plain)
