"""
api/routes/v1/admin.py -- Admin-only user management endpoints.

Routes:
  PATCH  /api/v1/admin/users/{id}  -- update name/email/role (admin only)
  DELETE /api/v1/admin/users/{id}  -- delete a user (admin only)

Role is writable only through PATCH here; the self-service PUT /me ignores it.
An admin cannot delete their own account, which keeps at least the caller
able to manage users.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request, Response

from api.models import UserAdminPatch, UserResponse
from auth.dependencies import require_admin
from auth.errors import InvalidUserData
from auth.lifecycle import AccountService
from auth.models import User

router = APIRouter()


@router.patch("/admin/users/{user_id}", response_model=UserResponse)
async def update_user(
    request: Request,
    user_id: int,
    body: UserAdminPatch,
    current_user: User = Depends(require_admin),
) -> UserResponse:
    """Update another user's name, email, or role. Admin only."""
    if body.name is None and body.email is None and body.role is None:
        raise InvalidUserData("No fields to update.")
    accounts: AccountService = request.app.state.accounts
    updated = await accounts.update_user(user_id, name=body.name, email=body.email, role=body.role)
    return UserResponse.from_user(updated)


@router.delete("/admin/users/{user_id}", status_code=204)
async def delete_user(
    request: Request,
    user_id: int,
    current_user: User = Depends(require_admin),
) -> Response:
    """Permanently delete a user. Admin only; admins cannot delete themselves."""
    if user_id == current_user.id:
        raise InvalidUserData("You cannot delete your own account.")
    accounts: AccountService = request.app.state.accounts
    await accounts.delete_user(user_id)
    return Response(status_code=204)
