"""
auth/passwords.py -- Password hashing with bcrypt.

The cost factor comes from Settings.bcrypt_rounds (default 10) and is encoded
in every hash, so raising it later does not break existing hashes.

The DUMMY_HASH constant enables timing equalization in the credential
validator so response time does not reveal whether a username exists [C1].
"""

from __future__ import annotations

import bcrypt

from core.config import get_settings


def hash_password(plain: str, rounds: int | None = None) -> str:
    """Return a bcrypt hash of the given plaintext password.

    Passwords longer than 72 bytes are truncated by bcrypt. The API layer caps
    password length (Pydantic field) to keep inputs below that threshold.
    """
    cost = rounds if rounds is not None else get_settings().bcrypt_rounds
    return bcrypt.hashpw(plain.encode("utf-8"), bcrypt.gensalt(rounds=cost)).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    """Return True if the plaintext password matches the bcrypt hash.

    bcrypt.checkpw compares in constant time. A malformed stored hash is
    treated as a mismatch, never as an error.
    """
    try:
        return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        return False


# Timing equalization dummy hash [C1].
# Computed once at module load with the configured cost factor so checking an
# unknown username costs the same as checking a real one.
DUMMY_HASH: str = hash_password("gatehouse_timing_dummy")
