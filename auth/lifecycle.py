"""
auth/lifecycle.py -- Account and password lifecycle flows.

AccountService composes the credential store, the token helpers, and a
notifier. Each public coroutine is one flow; flows share no state with each
other beyond the store. Every failure raises exactly one auth.errors type and
leaves no partial write behind.

Security:
  [C1] login() always runs bcrypt, against DUMMY_HASH for an unknown email,
       and raises the same InvalidCredentials for unknown email and wrong
       password.
  Reset tokens are stored as a keyed digest only. A successful reset clears
       both token fields in the same UPDATE that writes the new password hash,
       which makes a token single-use.
  forgot_password() rolls the token fields back if delivery fails so the user
       is never left holding a token that was never sent.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from auth.errors import (
    DeliveryError,
    InvalidCredentials,
    InvalidOrExpiredToken,
    NotFound,
    PasswordMismatch,
)
from auth.models import Role, Session, User
from auth.notifier import Notifier
from auth.passwords import DUMMY_HASH, hash_password, verify_password
from auth.store import UserStore, to_iso
from auth.tokens import (
    create_session_token,
    generate_reset_token,
    hash_reset_token,
    reset_token_expiry,
)
from core.config import get_settings

logger = logging.getLogger("globalcart.auth")

_RESET_MESSAGE = (
    "Please click the link below to reset your password.\n\n"
    "{url}\n\n"
    "If you did not request this, you can ignore this email."
)


class AccountService:
    """Login, registration, and password flows over a UserStore.

    Usage:
        accounts = AccountService(UserStore(), ConsoleNotifier())
        session = await accounts.login("a@x.com", "secret1")
    """

    def __init__(self, store: UserStore, notifier: Notifier) -> None:
        self.store = store
        self.notifier = notifier

    def _issue(self, user: User) -> Session:
        token, expires_at = create_session_token(user.id)
        user.hashed_password = None
        return Session(token=token, expires_at=expires_at, user=user)

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    async def register(self, name: str, email: str, password: str, avatar: str | None = None) -> Session:
        """Create a user-role account and sign it in."""
        user = User(
            name=name,
            email=email,
            role=Role.user,
            hashed_password=hash_password(password),
            avatar=avatar,
        )
        self.store.create_user(user)
        logger.info("Registered user id=%s", user.id)
        return self._issue(user)

    async def login(self, email: str, password: str) -> Session:
        user = self.store.get_by_email(email, include_secret=True)
        if user is None:
            # Equalize timing -- do NOT return early before running bcrypt [C1]
            verify_password(password, DUMMY_HASH)
            logger.info("Failed login (unknown email)")
            raise InvalidCredentials()
        if not self.store.compare_password(user, password):
            logger.info("Failed login for user id=%s", user.id)
            raise InvalidCredentials()
        return self._issue(user)

    async def logout(self) -> str:
        # Sessions are not tracked server-side; the route expires the cookie.
        return "Logged out successfully."

    # ------------------------------------------------------------------
    # Password reset
    # ------------------------------------------------------------------

    async def forgot_password(self, email: str, base_url: str) -> str:
        """Issue a reset token for email and mail the plaintext link.

        Any token issued earlier for the same user is overwritten.
        """
        user = self.store.get_by_email(email)
        if user is None:
            raise NotFound("User not found with this email.")

        plain, hashed = generate_reset_token()
        user.reset_password_token = hashed
        user.reset_password_token_expiry = to_iso(reset_token_expiry())
        self.store.save(user, validate=False)

        settings = get_settings()
        reset_url = f"{base_url.rstrip('/')}/api/v1/password/reset/{plain}"
        try:
            await self.notifier.send(
                user.email,
                f"{settings.app_name} Password Recovery",
                _RESET_MESSAGE.format(url=reset_url),
            )
        except Exception as exc:
            user.reset_password_token = None
            user.reset_password_token_expiry = None
            self.store.save(user, validate=False)
            logger.warning("Reset email for user id=%s failed; token revoked: %s", user.id, exc)
            if isinstance(exc, DeliveryError):
                raise
            raise DeliveryError() from exc

        logger.info("Reset token issued for user id=%s", user.id)
        return f"Email sent to {user.email}"

    async def reset_password(self, token: str, password: str, confirm_password: str) -> Session:
        now = datetime.now(timezone.utc)
        user = self.store.get_by_reset_token_hash(hash_reset_token(token), now)
        if user is None:
            raise InvalidOrExpiredToken()
        if password != confirm_password:
            raise PasswordMismatch()

        user.hashed_password = hash_password(password)
        user.reset_password_token = None
        user.reset_password_token_expiry = None
        self.store.save(user, validate=False)
        logger.info("Password reset completed for user id=%s", user.id)
        return self._issue(user)

    # ------------------------------------------------------------------
    # Authenticated account management
    # ------------------------------------------------------------------

    async def change_password(self, user: User, old_password: str, new_password: str) -> None:
        """Replace the password after checking the old one.

        Sessions already issued stay valid until they expire.
        """
        record = self.store.get_by_id(user.id, include_secret=True)
        if record is None or not self.store.compare_password(record, old_password):
            raise InvalidCredentials("Old password is incorrect.")
        record.hashed_password = hash_password(new_password)
        self.store.save(record)
        logger.info("Password changed for user id=%s", record.id)

    async def get_profile(self, user_id: int) -> User:
        user = self.store.get_by_id(user_id)
        if user is None:
            raise NotFound()
        return user

    async def update_profile(self, user: User, name: str, email: str) -> User:
        """Update name and email only. Role is never written from here."""
        record = await self.get_profile(user.id)
        record.name = name
        record.email = email
        self.store.save(record)
        return record

    # ------------------------------------------------------------------
    # Admin (callers gate these with require_admin)
    # ------------------------------------------------------------------

    async def update_user(
        self,
        user_id: int,
        name: str | None = None,
        email: str | None = None,
        role: Role | None = None,
    ) -> User:
        record = await self.get_profile(user_id)
        if name is not None:
            record.name = name
        if email is not None:
            record.email = email
        if role is not None and role != record.role:
            logger.info("Role of user id=%s changed %s -> %s", record.id, Role(record.role).value, Role(role).value)
            record.role = role
        self.store.save(record)
        return record

    async def delete_user(self, user_id: int) -> None:
        if not self.store.delete_user(user_id):
            raise NotFound()
        logger.info("Deleted user id=%s", user_id)
