"""
auth/store.py -- SQLAlchemy Core persistence layer for user credentials.

Pattern: Repository + Data Mapper.
UserStore is the repository; _row_to_user is the mapper.
Route and service code never touches SQL directly.

Security:
  All queries use bound parameters. No f-strings in SQL.
  hashed_password is only selected when the caller passes include_secret=True.
  Reset token lookups filter on expiry in SQL; a hash match alone never
  returns a user.

Timestamps are stored as fixed-width ISO 8601 UTC strings
(timespec="microseconds") so lexicographic comparison in SQL equals
chronological comparison.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import re
from datetime import datetime, timezone

from sqlalchemy import Column, Integer, MetaData, String, Table, Text, create_engine, event, select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError

from auth.errors import EmailAlreadyRegistered, InvalidUserData
from auth.models import Role, User
from auth.passwords import verify_password
from core.config import get_settings

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_users = Table(
    "users",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("name", String(255), nullable=False),
    Column("email", String(255), nullable=False, unique=True),
    Column("hashed_password", Text, nullable=False),
    Column("role", String(30), nullable=False, server_default=Role.user.value),
    Column("avatar", Text),
    Column("reset_password_token", String(64), index=True),  # HMAC-SHA256 hex
    Column("reset_password_token_expiry", String(32)),
    Column("created_at", String(32), nullable=False),
    # AUTOINCREMENT keeps SQLite from reusing the id of a deleted user, so an
    # outstanding session token can never resolve to a newer account.
    sqlite_autoincrement=True,
)

# Every column except the password hash. Default reads select only these.
_public_columns = [c for c in _users.c if c.name != "hashed_password"]


# ---------------------------------------------------------------------------
# WAL mode
# ---------------------------------------------------------------------------


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode for concurrent read safety.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def to_iso(moment: datetime) -> str:
    return moment.astimezone(timezone.utc).isoformat(timespec="microseconds")


def _now_iso() -> str:
    return to_iso(datetime.now(timezone.utc))


def normalize_email(email: str) -> str:
    return email.strip().lower()


def _normalize(user: User) -> None:
    """Canonical form shared by every write: trimmed name, lowercased email."""
    user.email = normalize_email(user.email or "")
    if user.name:
        user.name = user.name.strip()


def _validate(user: User) -> None:
    """Field validation run by save() and create_user().

    Raises InvalidUserData naming the first offending field.
    """
    if not user.name or not user.name.strip():
        raise InvalidUserData("Please enter your name.")
    if len(user.name) > 255:
        raise InvalidUserData("Name cannot exceed 255 characters.")
    if not _EMAIL_RE.match(user.email or ""):
        raise InvalidUserData("Please enter a valid email address.")
    try:
        Role(user.role)
    except ValueError as exc:
        raise InvalidUserData(f"Unknown role {user.role!r}.") from exc


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class UserStore:
    """Repository for User records.

    Usage:
        store = UserStore("sqlite:///:memory:")
        uid = store.create_user(User(name="Ann", email="a@x.com", hashed_password=hash_password("secret")))
        user = store.get_by_email("a@x.com", include_secret=True)
        store.close()
    """

    def __init__(self, db_url: str | None = None) -> None:
        db_url = db_url or get_settings().database_url
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _set_wal_mode)
        _metadata.create_all(self.engine)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def create_user(self, user: User) -> int:
        """Validate and insert a new user, returning its assigned ID.

        The caller must have set hashed_password. Raises EmailAlreadyRegistered
        if the normalized email is taken.
        """
        _normalize(user)
        _validate(user)
        if not user.hashed_password:
            raise InvalidUserData("Please enter a password.")
        user.created_at = _now_iso()
        try:
            with self.engine.connect() as conn:
                result = conn.execute(
                    _users.insert().values(
                        name=user.name,
                        email=user.email,
                        hashed_password=user.hashed_password,
                        role=Role(user.role).value,
                        avatar=user.avatar,
                        created_at=user.created_at,
                    )
                )
                conn.commit()
        except IntegrityError as exc:
            raise EmailAlreadyRegistered() from exc
        user.id = result.inserted_primary_key[0]
        return user.id

    def save(self, user: User, validate: bool = True) -> None:
        """Persist every mutable field of an existing user in one UPDATE.

        validate=False skips field validation. Reset-token bookkeeping uses it
        so a rollback never fails on fields it did not touch.

        hashed_password is written only when present on the object, so a user
        read without its secret can be saved without wiping the hash.
        """
        _normalize(user)
        if validate:
            _validate(user)
        values = {
            "name": user.name,
            "email": user.email,
            "role": Role(user.role).value,
            "avatar": user.avatar,
            "reset_password_token": user.reset_password_token,
            "reset_password_token_expiry": user.reset_password_token_expiry,
        }
        if user.hashed_password:
            values["hashed_password"] = user.hashed_password
        try:
            with self.engine.connect() as conn:
                conn.execute(_users.update().where(_users.c.id == user.id).values(**values))
                conn.commit()
        except IntegrityError as exc:
            raise EmailAlreadyRegistered() from exc

    def delete_user(self, user_id: int) -> bool:
        """Permanently delete a user record. Returns True if deleted, False if not found."""
        with self.engine.connect() as conn:
            result = conn.execute(_users.delete().where(_users.c.id == user_id))
            conn.commit()
        return result.rowcount > 0

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def _select(self, include_secret: bool):
        return _users.select() if include_secret else select(*_public_columns)

    def get_by_email(self, email: str, include_secret: bool = False) -> User | None:
        """Look up a user by email (case-insensitive). Returns None if not found."""
        stmt = self._select(include_secret).where(_users.c.email == normalize_email(email))
        with self.engine.connect() as conn:
            row = conn.execute(stmt).fetchone()
        return _row_to_user(row) if row is not None else None

    def get_by_id(self, user_id: int, include_secret: bool = False) -> User | None:
        """Look up a user by primary key. Returns None if not found."""
        stmt = self._select(include_secret).where(_users.c.id == user_id)
        with self.engine.connect() as conn:
            row = conn.execute(stmt).fetchone()
        return _row_to_user(row) if row is not None else None

    def get_by_reset_token_hash(self, token_hash: str, now: datetime) -> User | None:
        """Return the user holding this reset token hash, if it has not expired.

        Both conditions are applied in the WHERE clause.
        """
        stmt = self._select(include_secret=False).where(
            (_users.c.reset_password_token == token_hash) & (_users.c.reset_password_token_expiry > to_iso(now))
        )
        with self.engine.connect() as conn:
            row = conn.execute(stmt).fetchone()
        return _row_to_user(row) if row is not None else None

    # ------------------------------------------------------------------
    # Credentials
    # ------------------------------------------------------------------

    def compare_password(self, user: User, candidate: str) -> bool:
        """Constant-time bcrypt comparison against the user's stored hash.

        The user must have been read with include_secret=True; without a hash
        the comparison fails.
        """
        if not user.hashed_password:
            return False
        return verify_password(candidate, user.hashed_password)

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mapper (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_user(row) -> User:
    return User(
        id=row.id,
        name=row.name,
        email=row.email,
        role=Role(row.role),
        hashed_password=getattr(row, "hashed_password", None),
        avatar=row.avatar,
        reset_password_token=row.reset_password_token,
        reset_password_token_expiry=row.reset_password_token_expiry,
        created_at=row.created_at,
    )
