"""Salted PBKDF2-SHA256 password digests.

The digest lives in ``PasswordHash`` and its salt in ``PasswordSalt``.
"""

from __future__ import annotations

import hashlib
import hmac
import secrets

PASSWORD_ITERATIONS = 120000


def new_salt() -> str:
    return secrets.token_hex(16)


def hash_password(password: str, salt: str) -> str:
    raw = hashlib.pbkdf2_hmac(
        "sha256",
        (password or "").encode("utf-8"),
        salt.encode("utf-8"),
        PASSWORD_ITERATIONS,
    )
    return raw.hex()


def set_password(user, password: str) -> None:
    salt = new_salt()
    user.PasswordSalt = salt
    user.PasswordHash = hash_password(password, salt)


def verify_password(user, password: str) -> bool:
    if not user.PasswordHash or not user.PasswordSalt:
        return False
    candidate = hash_password(password, user.PasswordSalt)
    return hmac.compare_digest(candidate, user.PasswordHash)
