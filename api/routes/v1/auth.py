"""
api/routes/v1/auth.py -- Account, session, and password REST endpoints.

Routes:
  POST /api/v1/register                 -- create account; sets session cookie
  POST /api/v1/login                    -- password login; sets session cookie
  POST /api/v1/logout                   -- expires session cookie; 200
  POST /api/v1/password/forgot          -- mail a single-use reset link
  POST /api/v1/password/reset/{token}   -- set new password from reset link; sets session cookie
  POST /api/v1/password/change          -- change password (requires auth)
  GET  /api/v1/me                       -- current user profile (requires auth)
  PUT  /api/v1/me                       -- update name/email (requires auth)

Security:
  [H2] POST /login and POST /password/forgot are rate-limited per IP.
  [C1] AccountService.login() provides timing equalization.
  [M5] Cache-Control: no-store on every response that carries a session token.

Failures are raised as auth.errors types and rendered by the AuthError
handler in api/main.py; routes do not build error responses themselves.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from api.limiter import limiter
from api.models import (
    ChangePasswordRequest,
    ForgotPasswordRequest,
    LoginRequest,
    MessageResponse,
    ProfileUpdate,
    RegisterRequest,
    ResetPasswordRequest,
    SessionResponse,
    UserResponse,
)
from auth.dependencies import get_current_user
from auth.lifecycle import AccountService
from auth.models import Session, User
from auth.tokens import clear_session_cookie, set_session_cookie
from core.config import get_settings

# Auth policy:
# - POST /register, /login, /logout, /password/forgot, /password/reset/{token}: public
# - POST /password/change, GET /me, PUT /me: requires auth (get_current_user)
router = APIRouter()

_settings = get_settings()


def _session_response(session: Session, status_code: int) -> JSONResponse:
    resp = JSONResponse(
        status_code=status_code,
        content=SessionResponse.from_session(session).model_dump(mode="json"),
    )
    set_session_cookie(resp, session.token)
    resp.headers["Cache-Control"] = "no-store"  # [M5]
    return resp


# ---------------------------------------------------------------------------
# Public endpoints
# ---------------------------------------------------------------------------


@router.post("/register", response_model=SessionResponse, status_code=201)
async def register(request: Request, body: RegisterRequest) -> JSONResponse:
    """Create a user-role account and sign it in."""
    accounts: AccountService = request.app.state.accounts
    session = await accounts.register(body.name, body.email, body.password, body.avatar)
    return _session_response(session, 201)


@limiter.limit(_settings.login_rate_limit)  # [H2] must be ABOVE @router to preserve FastAPI introspection
@router.post("/login", response_model=SessionResponse)
async def login(request: Request, body: LoginRequest) -> JSONResponse:
    """Authenticate with email and password; set the session cookie.

    Unknown email and wrong password produce the same invalid_credentials
    error so the response never reveals whether an account exists.
    """
    accounts: AccountService = request.app.state.accounts
    session = await accounts.login(body.email, body.password)
    return _session_response(session, 200)


@router.post("/logout", response_model=MessageResponse)
async def logout(request: Request) -> JSONResponse:
    """Expire the session cookie. No server-side session exists to revoke."""
    accounts: AccountService = request.app.state.accounts
    message = await accounts.logout()
    resp = JSONResponse(content=MessageResponse(message=message).model_dump())
    clear_session_cookie(resp)
    return resp


@limiter.limit(_settings.forgot_password_rate_limit)  # [H2]
@router.post("/password/forgot", response_model=MessageResponse)
async def forgot_password(request: Request, body: ForgotPasswordRequest) -> MessageResponse:
    """Mail a password reset link to the account holder.

    The link points back at POST /password/reset/{token} on PUBLIC_BASE_URL,
    or on the host this request arrived at when that setting is empty.
    """
    accounts: AccountService = request.app.state.accounts
    base_url = _settings.public_base_url or str(request.base_url)
    message = await accounts.forgot_password(body.email, base_url)
    return MessageResponse(message=message)


@router.post("/password/reset/{token}", response_model=SessionResponse)
async def reset_password(request: Request, token: str, body: ResetPasswordRequest) -> JSONResponse:
    """Consume a reset token, set the new password, and sign the user in."""
    accounts: AccountService = request.app.state.accounts
    session = await accounts.reset_password(token, body.password, body.confirm_password)
    return _session_response(session, 200)


# ---------------------------------------------------------------------------
# Authenticated endpoints
# ---------------------------------------------------------------------------


@router.post("/password/change", response_model=MessageResponse)
async def change_password(
    request: Request,
    body: ChangePasswordRequest,
    current_user: User = Depends(get_current_user),
) -> MessageResponse:
    """Change the current user's password. The current session stays valid."""
    accounts: AccountService = request.app.state.accounts
    await accounts.change_password(current_user, body.old_password, body.password)
    return MessageResponse(message="Password changed.")


@router.get("/me", response_model=UserResponse)
async def me(current_user: User = Depends(get_current_user)) -> UserResponse:
    """Return the profile of the currently authenticated user."""
    return UserResponse.from_user(current_user)


@router.put("/me", response_model=UserResponse)
async def update_me(
    request: Request,
    body: ProfileUpdate,
    current_user: User = Depends(get_current_user),
) -> UserResponse:
    """Update the current user's name and email. Role cannot be changed here."""
    accounts: AccountService = request.app.state.accounts
    updated = await accounts.update_profile(current_user, body.name, body.email)
    return UserResponse.from_user(updated)
