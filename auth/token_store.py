"""
auth/token_store.py -- Repository for sessions and purpose tokens.

Every record is keyed by the SHA-256 digest of its raw token (see
auth/tokens.hash_token). This module never sees a raw token: callers hash
first and pass the digest in.

Inserts never overwrite. A duplicate digest surfaces as ConflictError so the
caller can retry with a fresh token instead of silently clobbering another
user's session.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import and_, func, select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError

from auth.errors import ConflictError
from auth.models import Session, Token, User
from auth.store import _row_to_user, as_utc, sessions, tokens, users


class TokenStore:
    """Repository for Session and Token entities.

    Usage:
        store = TokenStore(engine)   # same engine as UserStore
        store.create_session(Session(id=hash_token(raw), user_id=uid, expires_at=exp))
        pair = store.get_session_with_user(hash_token(raw))
        store.delete_session(hash_token(raw))
    """

    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    def create_session(self, session: Session) -> Session:
        """Insert a session. Raises ConflictError if the id already exists."""
        try:
            with self.engine.connect() as conn:
                conn.execute(
                    sessions.insert().values(
                        id=session.id,
                        user_id=session.user_id,
                        expires_at=as_utc(session.expires_at),
                    )
                )
                conn.commit()
        except IntegrityError as exc:
            raise ConflictError("Session id already exists") from exc
        return session

    def get_session(self, session_id: str) -> Session | None:
        """Exact lookup by hashed id. Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(sessions.select().where(sessions.c.id == session_id)).fetchone()
        return _row_to_session(row) if row is not None else None

    def get_session_with_user(self, session_id: str) -> tuple[Session, User] | None:
        """Look up a session joined with its owning user.

        Returns None if the session is missing or its user no longer exists.
        """
        query = (
            select(
                sessions.c.id.label("session_id"),
                sessions.c.expires_at,
                users,
            )
            .join(users, users.c.id == sessions.c.user_id)
            .where(sessions.c.id == session_id)
        )
        with self.engine.connect() as conn:
            row = conn.execute(query).fetchone()
        if row is None:
            return None
        session = Session(id=row.session_id, user_id=row.id, expires_at=as_utc(row.expires_at))
        return session, _row_to_user(row)

    def update_session_expiry(self, session_id: str, expires_at: datetime) -> bool:
        """Move a session's expiry. Returns True if a row was updated."""
        with self.engine.connect() as conn:
            result = conn.execute(
                sessions.update().where(sessions.c.id == session_id).values(expires_at=as_utc(expires_at))
            )
            conn.commit()
        return result.rowcount > 0

    def delete_session(self, session_id: str) -> bool:
        """Delete one session. Returns True if deleted, False if it did not exist."""
        with self.engine.connect() as conn:
            result = conn.execute(sessions.delete().where(sessions.c.id == session_id))
            conn.commit()
        return result.rowcount > 0

    def delete_user_sessions(self, user_id: str, except_session_id: str | None = None) -> int:
        """Delete every session owned by user_id, optionally sparing one.

        Returns the number removed.
        """
        query = sessions.delete().where(sessions.c.user_id == user_id)
        if except_session_id is not None:
            query = query.where(sessions.c.id != except_session_id)
        with self.engine.connect() as conn:
            result = conn.execute(query)
            conn.commit()
        return result.rowcount

    def count_user_sessions(self, user_id: str) -> int:
        with self.engine.connect() as conn:
            result = conn.execute(
                select(func.count()).select_from(sessions).where(sessions.c.user_id == user_id)
            ).scalar()
        return result or 0

    # ------------------------------------------------------------------
    # Purpose tokens
    # ------------------------------------------------------------------

    def create_token(self, token: Token) -> Token:
        """Insert a purpose token and return it with id and created_at set.

        Raises ConflictError if the digest already exists.
        """
        created_at = datetime.now(timezone.utc).isoformat()
        try:
            with self.engine.connect() as conn:
                result = conn.execute(
                    tokens.insert().values(
                        token=token.token,
                        user_id=token.user_id,
                        type=token.type,
                        expires=as_utc(token.expires),
                        blacklisted=token.blacklisted,
                        created_at=created_at,
                    )
                )
                conn.commit()
        except IntegrityError as exc:
            raise ConflictError("Token already exists") from exc
        token.id = result.inserted_primary_key[0]
        token.created_at = created_at
        return token

    def find_token(self, token_hash: str, token_type: str, blacklisted: bool = False) -> Token | None:
        """Return the token matching digest, type, and blacklist flag, or None."""
        query = tokens.select().where(
            and_(
                tokens.c.token == token_hash,
                tokens.c.type == token_type,
                tokens.c.blacklisted == blacklisted,
            )
        )
        with self.engine.connect() as conn:
            row = conn.execute(query).first()
        return _row_to_token(row) if row is not None else None

    def delete_tokens(self, user_id: str, token_type: str) -> int:
        """Delete every token of token_type owned by user_id. Returns the number removed."""
        with self.engine.connect() as conn:
            result = conn.execute(
                tokens.delete().where((tokens.c.user_id == user_id) & (tokens.c.type == token_type))
            )
            conn.commit()
        return result.rowcount

    def delete_user_tokens(self, user_id: str) -> int:
        """Delete every purpose token owned by user_id, whatever its type."""
        with self.engine.connect() as conn:
            result = conn.execute(tokens.delete().where(tokens.c.user_id == user_id))
            conn.commit()
        return result.rowcount

    def count_tokens(self, user_id: str, token_type: str) -> int:
        with self.engine.connect() as conn:
            result = conn.execute(
                select(func.count())
                .select_from(tokens)
                .where((tokens.c.user_id == user_id) & (tokens.c.type == token_type))
            ).scalar()
        return result or 0


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_session(row) -> Session:
    return Session(id=row.id, user_id=row.user_id, expires_at=as_utc(row.expires_at))


def _row_to_token(row) -> Token:
    return Token(
        id=row.id,
        token=row.token,
        user_id=row.user_id,
        type=row.type,
        expires=as_utc(row.expires),
        blacklisted=bool(row.blacklisted),
        created_at=row.created_at,
    )
