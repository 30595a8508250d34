"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, zero logic). Stores and the
lifecycle service do the work.

Layer rule: no imports from api/.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum


class Role(str, Enum):
    user = "user"
    admin = "admin"


@dataclass
class User:
    """A GlobalCart account.

    hashed_password is None unless the record was read with
    include_secret=True. Only credential checks ask for it.

    reset_password_token holds the HMAC digest of the outstanding reset token,
    never the plaintext. Both reset fields are None when no reset is pending.
    """

    name: str
    email: str
    role: Role = Role.user
    id: int | None = None
    hashed_password: str | None = None
    avatar: str | None = None
    reset_password_token: str | None = None
    reset_password_token_expiry: str | None = None  # ISO 8601 UTC
    created_at: str | None = None


@dataclass
class Session:
    """A freshly issued session credential and the user it belongs to."""

    token: str
    expires_at: datetime
    user: User
