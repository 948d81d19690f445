"""
auth/store.py -- SQLAlchemy Core schema, engine factory, and the user repository.

Pattern: Repository + Data Mapper. UserStore is the repository; _row_to_user is
the mapper. Route and manager code never touches SQL directly. The session and
purpose-token repository lives in auth/token_store.py and shares this module's
schema and engine, so a session lookup can join its owning user.

Security:
  All queries use bound parameters. No f-strings in SQL.
  The password column holds a bcrypt hash. Callers hash before writing.

Uniqueness:
  users.email, sessions.id, and tokens.token are UNIQUE at the DB level.
  IntegrityError from any of them is translated to auth.errors.ConflictError
  at this boundary so upper layers never import SQLAlchemy.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    create_engine,
    event,
    func,
    select,
)
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError

from auth.errors import ConflictError
from auth.models import User
from auth.tokens import generate_user_id

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

metadata = MetaData()

users = Table(
    "users",
    metadata,
    Column("id", String(32), primary_key=True),
    Column("name", String(255), nullable=False),
    Column("email", String(255), nullable=False, unique=True),
    Column("password", Text, nullable=False),  # bcrypt hash
    Column("role", String(30), nullable=False, server_default="USER"),
    Column("is_email_verified", Boolean, nullable=False, server_default="0"),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
)

sessions = Table(
    "sessions",
    metadata,
    Column("id", String(64), primary_key=True),  # SHA-256 hex of the raw token
    Column("user_id", String(32), nullable=False, index=True),
    Column("expires_at", DateTime(timezone=True), nullable=False),
)

tokens = Table(
    "tokens",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("token", String(64), nullable=False, unique=True),  # SHA-256 hex
    Column("user_id", String(32), nullable=False, index=True),
    Column("type", String(30), nullable=False),
    Column("expires", DateTime(timezone=True), nullable=False),
    Column("blacklisted", Boolean, nullable=False, server_default="0"),
    Column("created_at", String(32), nullable=False),
)

# Columns accepted by UserStore.update_user and sort keys for query_users.
# Validated before any SQL is built so dynamic keys never reach the database.
_UPDATABLE_FIELDS = frozenset({"name", "email", "password", "role", "is_email_verified"})
_SORTABLE_FIELDS = frozenset({"name", "email", "role", "created_at"})


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------


def _set_sqlite_pragmas(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode for concurrent read safety.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


def create_db_engine(db_url: str) -> Engine:
    """Create the shared engine and make sure every table exists.

    Both UserStore and TokenStore are built on the engine returned here.
    """
    connect_args: dict = {}
    if db_url.startswith("sqlite"):
        connect_args["check_same_thread"] = False
    engine = create_engine(db_url, connect_args=connect_args)
    if db_url.startswith("sqlite"):
        event.listen(engine, "connect", _set_sqlite_pragmas)
    metadata.create_all(engine)
    return engine


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def as_utc(value: datetime) -> datetime:
    """Return value as a timezone-aware UTC datetime.

    SQLite has no timezone storage, so DateTime columns come back naive even
    though every value written is UTC.
    """
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def normalize_email(email: str) -> str:
    return (email or "").strip().lower()


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class UserStore:
    """Repository for User entities.

    Usage:
        engine = create_db_engine("sqlite:///tokengate.db")
        store = UserStore(engine)
        user = store.create_user(User(name="Ada", email="ada@example.com", password=hash_password("s3cretpw")))
        same = store.get_by_email("ADA@example.com")
    """

    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    def ping(self) -> bool:
        """Return True if the database answers a trivial query."""
        with self.engine.connect() as conn:
            conn.execute(select(1))
        return True

    def count_users(self) -> int:
        with self.engine.connect() as conn:
            result = conn.execute(select(func.count()).select_from(users)).scalar()
        return result or 0

    def create_user(self, user: User) -> User:
        """Insert a new user and return it with id and timestamps filled in.

        Raises ConflictError if the email is already registered.
        """
        now = _now_iso()
        user_id = user.id or generate_user_id()
        try:
            with self.engine.connect() as conn:
                conn.execute(
                    users.insert().values(
                        id=user_id,
                        name=user.name,
                        email=normalize_email(user.email),
                        password=user.password,
                        role=user.role,
                        is_email_verified=user.is_email_verified,
                        created_at=now,
                        updated_at=now,
                    )
                )
                conn.commit()
        except IntegrityError as exc:
            raise ConflictError("Email already taken") from exc
        return User(
            id=user_id,
            name=user.name,
            email=normalize_email(user.email),
            password=user.password,
            role=user.role,
            is_email_verified=user.is_email_verified,
            created_at=now,
            updated_at=now,
        )

    def get_by_id(self, user_id: str) -> User | None:
        """Look up a user by primary key. Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(users.select().where(users.c.id == user_id)).fetchone()
        return _row_to_user(row) if row is not None else None

    def get_by_email(self, email: str) -> User | None:
        """Look up a user by email (case-insensitive). Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(users.select().where(users.c.email == normalize_email(email))).fetchone()
        return _row_to_user(row) if row is not None else None

    def is_email_taken(self, email: str, exclude_user_id: str | None = None) -> bool:
        query = select(users.c.id).where(users.c.email == normalize_email(email))
        if exclude_user_id is not None:
            query = query.where(users.c.id != exclude_user_id)
        with self.engine.connect() as conn:
            return conn.execute(query).first() is not None

    def query_users(
        self,
        name: str | None = None,
        role: str | None = None,
        sort_by: str | None = None,
        limit: int = 10,
        page: int = 1,
    ) -> tuple[list[User], int]:
        """Return one page of users plus the total match count.

        sort_by has the form "field" or "field:asc|desc". Unknown fields raise
        ValueError -- column names come from _SORTABLE_FIELDS, never raw input.
        """
        conditions = []
        if name:
            conditions.append(users.c.name == name)
        if role:
            conditions.append(users.c.role == role)

        order = users.c.created_at.asc()
        if sort_by:
            field_name, _, direction = sort_by.partition(":")
            if field_name not in _SORTABLE_FIELDS:
                raise ValueError(f"Unknown sort field: {field_name!r}")
            column = users.c[field_name]
            order = column.desc() if direction.lower() == "desc" else column.asc()

        query = users.select().where(*conditions).order_by(order).limit(limit).offset((page - 1) * limit)
        count_query = select(func.count()).select_from(users).where(*conditions)
        with self.engine.connect() as conn:
            rows = conn.execute(query).fetchall()
            total = conn.execute(count_query).scalar() or 0
        return [_row_to_user(r) for r in rows], total

    def update_user(self, user_id: str, **fields) -> User | None:
        """Update mutable fields on an existing user.

        Accepted fields: name, email, password (already hashed), role,
        is_email_verified. Unknown keys raise ValueError.

        Returns the updated User, or None if user_id was not found.
        Raises ConflictError if the new email belongs to another user.
        """
        unknown = set(fields) - _UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Unknown user fields: {unknown!r}")
        if "email" in fields:
            fields["email"] = normalize_email(fields["email"])
        fields["updated_at"] = _now_iso()
        try:
            with self.engine.connect() as conn:
                result = conn.execute(users.update().where(users.c.id == user_id).values(**fields))
                conn.commit()
        except IntegrityError as exc:
            raise ConflictError("Email already taken") from exc
        if result.rowcount == 0:
            return None
        return self.get_by_id(user_id)

    def delete_user(self, user_id: str) -> bool:
        """Permanently delete a user record. Returns True if deleted, False if not found.

        Sessions and purpose tokens are not cascaded here; callers clear them
        through TokenStore first.
        """
        with self.engine.connect() as conn:
            result = conn.execute(users.delete().where(users.c.id == user_id))
            conn.commit()
        return result.rowcount > 0

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_user(row) -> User:
    return User(
        id=row.id,
        name=row.name,
        email=row.email,
        password=row.password,
        role=row.role,
        is_email_verified=bool(row.is_email_verified),
        created_at=row.created_at,
        updated_at=row.updated_at,
    )
