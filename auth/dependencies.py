"""
auth/dependencies.py -- Authentication and authorization gates.

Two session sources are checked in priority order:
  1. Session cookie (Settings.session_cookie_name) -- set by POST /login.
  2. Authorization: Bearer <token> header -- API clients. Also used when
     the cookie is present but fails verification.

authenticate() is the framework-free contract: raw token in, User out, or
Unauthenticated. get_current_user() adapts it to FastAPI's Depends().

authorize() is a pure predicate over an already-resolved User.
require_roles() builds a Depends()-ready gate for one protected operation;
because it depends on get_current_user, authentication always runs first.

Layer rule: no imports from api/. This module may import from fastapi
because it is part of the FastAPI dependency injection system.
"""

from __future__ import annotations

from collections.abc import Callable

from fastapi import Depends, Request

from auth.errors import Forbidden, Unauthenticated
from auth.models import Role, User
from auth.store import UserStore
from auth.tokens import decode_session_token
from core.config import get_settings

_settings = get_settings()


def extract_token(request: Request) -> str | None:
    """Return the session token from the cookie or Bearer header, if any.

    The cookie wins when it verifies. A cookie that fails verification (stale
    or signed with a rotated key) does not mask a valid Bearer header.
    """
    cookie = request.cookies.get(_settings.session_cookie_name) or None
    bearer = None
    auth_header = request.headers.get("Authorization", "")
    if auth_header.startswith("Bearer "):
        bearer = auth_header[7:] or None
    if cookie and bearer and decode_session_token(cookie) is None:
        return bearer
    return cookie or bearer


def authenticate(store: UserStore, raw_token: str | None) -> User:
    """Resolve a raw session token to the User it belongs to.

    Raises Unauthenticated when the token is missing, fails verification, or
    names a user that no longer exists. Never writes to the store.
    """
    if not raw_token:
        raise Unauthenticated()
    user_id = decode_session_token(raw_token)
    if user_id is None:
        raise Unauthenticated()
    user = store.get_by_id(user_id)
    if user is None:
        raise Unauthenticated()
    return user


def get_current_user(request: Request) -> User:
    """Require authentication. Attaches the identity to request.state.user.

    Use as a FastAPI dependency:
        @router.get("/protected")
        async def route(user: User = Depends(get_current_user)): ...
    """
    user = authenticate(request.app.state.user_store, extract_token(request))
    request.state.user = user
    return user


def authorize(user: User, allowed_roles: frozenset[Role]) -> None:
    """Raise Forbidden unless user.role is one of allowed_roles."""
    if user.role not in allowed_roles:
        raise Forbidden(Role(user.role).value)


def require_roles(*roles: Role) -> Callable[..., User]:
    """Build a dependency that admits only users holding one of roles.

    Use as a FastAPI dependency:
        @router.patch("/admin/users/{user_id}")
        async def route(user: User = Depends(require_roles(Role.admin))): ...
    """
    allowed = frozenset(roles)

    def _gate(user: User = Depends(get_current_user)) -> User:
        authorize(user, allowed)
        return user

    return _gate


require_admin = require_roles(Role.admin)
