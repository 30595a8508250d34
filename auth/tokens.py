"""
auth/tokens.py -- Session JWTs, password-reset tokens, and the session cookie.

Security design decisions:
  Session tokens: python-jose with HS256. Tokens are signed with SECRET_KEY and
       carry user_id, iat, exp, and a random jti so two tokens issued in the
       same second still differ. Nothing is stored server-side: a session ends
       when the client discards the cookie or the token expires. Verification
       returns None on any failure (bad signature, malformed, expired) so the
       caller cannot tell the cases apart.

  Reset tokens: secrets.token_urlsafe(32) gives 256 bits of entropy. Only
       HMAC-SHA256(SECRET_KEY, plain) is stored. The digest is deterministic so
       the store can look a user up by it, and a leaked database row cannot be
       turned back into a usable link without SECRET_KEY.

  SECRET_KEY: sourced from core.config.get_settings() once at module load and
       never mutated afterwards.

Layer rule: no imports from api/. Import from core/ is allowed.
"""

from __future__ import annotations

import hashlib
import hmac
import secrets
import uuid
from datetime import datetime, timedelta, timezone

from jose import JWTError, jwt

from core.config import get_settings

_settings = get_settings()

_ALGORITHM = "HS256"


# ---------------------------------------------------------------------------
# Session tokens
# ---------------------------------------------------------------------------


def create_session_token(user_id: int, expire_seconds: int = 0) -> tuple[str, datetime]:
    """Encode a signed session JWT for user_id.

    Args:
        user_id:        Numeric user ID stored in the DB.
        expire_seconds: Session duration in seconds. If 0 (default), uses
                        Settings.token_expire_seconds.

    Returns:
        (token, expires_at) -- expires_at is timezone-aware UTC.
    """
    duration = expire_seconds if expire_seconds > 0 else _settings.token_expire_seconds
    now = datetime.now(timezone.utc)
    expires_at = now + timedelta(seconds=duration)
    payload = {
        "sub": str(user_id),
        "user_id": user_id,
        "iat": now,
        "exp": expires_at,
        "jti": uuid.uuid4().hex,
    }
    return jwt.encode(payload, _settings.secret_key, algorithm=_ALGORITHM), expires_at


def decode_session_token(token: str) -> int | None:
    """Verify a session JWT and return the user id it carries, or None.

    Returning None (rather than raising) keeps the caller simple: any invalid
    token is treated as unauthenticated.
    """
    try:
        payload = jwt.decode(token, _settings.secret_key, algorithms=[_ALGORITHM])
    except JWTError:
        return None
    user_id = payload.get("user_id")
    if not isinstance(user_id, int):
        return None
    return user_id


# ---------------------------------------------------------------------------
# Password reset tokens
# ---------------------------------------------------------------------------


def hash_reset_token(plain: str) -> str:
    """Return HMAC-SHA256(SECRET_KEY, plain) as a hex string."""
    return hmac.new(
        _settings.secret_key.encode(),
        plain.encode(),
        hashlib.sha256,
    ).hexdigest()


def generate_reset_token() -> tuple[str, str]:
    """Return (plain, hashed). The plain value is mailed once, the hash is stored."""
    plain = secrets.token_urlsafe(32)
    return plain, hash_reset_token(plain)


def reset_token_expiry(now: datetime | None = None) -> datetime:
    """Return the moment a reset token issued at now stops being valid."""
    issued = now or datetime.now(timezone.utc)
    return issued + timedelta(minutes=_settings.reset_token_expire_minutes)


# ---------------------------------------------------------------------------
# Cookie helpers
# ---------------------------------------------------------------------------


def set_session_cookie(response, token: str, expire_seconds: int = 0) -> None:
    """Write the session JWT as an httpOnly cookie on the response.

    httponly=True: JS cannot read the cookie (XSS mitigation).
    samesite="lax": not sent on cross-site POST (CSRF mitigation).
    secure: only sent over HTTPS when SECURE_COOKIES=true.
    max_age: matches the JWT expiry so both expire together.
    """
    duration = expire_seconds if expire_seconds > 0 else _settings.token_expire_seconds
    response.set_cookie(
        _settings.session_cookie_name,
        value=token,
        httponly=True,
        samesite="lax",
        secure=_settings.secure_cookies,
        max_age=duration,
    )


def clear_session_cookie(response) -> None:
    """Overwrite the session cookie with an already-expired empty value."""
    response.delete_cookie(
        _settings.session_cookie_name,
        httponly=True,
        samesite="lax",
        secure=_settings.secure_cookies,
    )
