"""
auth/passwords.py -- Password hashing and comparison (bcrypt, direct usage).

Using bcrypt directly rather than passlib[bcrypt] because passlib's internal
wrap-bug detection creates a password longer than 72 bytes, which bcrypt 4.x
rejects with an explicit error.

bcrypt hashes at most 72 bytes; bcrypt 5 raises ValueError past that. The API
layer rejects longer passwords with a 422, and hash_password() raises
InvalidUserData for callers that bypass the API models.
"""

from __future__ import annotations

import bcrypt

from auth.errors import InvalidUserData

MAX_PASSWORD_BYTES = 72


def hash_password(plain: str) -> str:
    """Return a bcrypt hash of the given plaintext password."""
    encoded = plain.encode("utf-8")
    if len(encoded) > MAX_PASSWORD_BYTES:
        raise InvalidUserData(f"Password cannot be longer than {MAX_PASSWORD_BYTES} bytes.")
    return bcrypt.hashpw(encoded, bcrypt.gensalt()).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    """Return True if the plaintext password matches the bcrypt hash.

    bcrypt.checkpw compares in constant time. A malformed hash or an
    over-long candidate raises ValueError inside bcrypt; that is a non-match,
    not a server error.
    """
    try:
        return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        return False


# Timing equalization dummy hash [C1].
# Computed once at module load. Login always runs bcrypt, against this hash
# when the email is unknown, so response time does not reveal whether an
# account exists.
DUMMY_HASH: str = hash_password("globalcart_timing_dummy")
