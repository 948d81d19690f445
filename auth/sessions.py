"""
auth/sessions.py -- Session issuance, validation with sliding renewal, and revocation.

Session lifecycle:

    issue() --> Valid --validate() inside renewal window--> Valid (expiry pushed)
                  |
                  +--validate() at/after expires_at--> removed (lazy expiry)
                  +--invalidate()--> removed (logout)

Expiry is lazy: there is no background sweeper. An expired row stays in the
table until the next validate() for that token finds and deletes it.

Renewal is sliding: a session validated with less than renew_window of life
left gets expires_at = now + lifetime, written synchronously on the read
path. With the default 30-day lifetime and 15-day window, an active session
is rewritten roughly once every two weeks and dies after 30 idle days.

Concurrent validate() calls on one token may both renew. Both writes carry
(nearly) the same timestamp and the store is last-write-wins, which is fine:
nothing depends on the exact value.

Raw tokens are never logged. Log lines carry the first 8 hex chars of the
session id instead.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime, timedelta, timezone

from auth.errors import ConflictError
from auth.models import IssuedSession, Session, SessionValidationResult
from auth.token_store import TokenStore
from auth.tokens import generate_token, hash_token, short_id

logger = logging.getLogger("tokengate.auth.sessions")

DEFAULT_LIFETIME = timedelta(days=30)
DEFAULT_RENEW_WINDOW = timedelta(days=15)

_ABSENT = SessionValidationResult()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SessionManager:
    """Issue, validate, and invalidate opaque bearer sessions.

    Args:
        store:        TokenStore used for every read and write.
        lifetime:     How long a session lives after issue or renewal.
        renew_window: Remaining-life threshold that triggers renewal.
        now:          Clock. Tests pass a frozen callable.
    """

    def __init__(
        self,
        store: TokenStore,
        lifetime: timedelta = DEFAULT_LIFETIME,
        renew_window: timedelta = DEFAULT_RENEW_WINDOW,
        now: Callable[[], datetime] = _utcnow,
    ) -> None:
        if renew_window >= lifetime:
            raise ValueError("renew_window must be shorter than lifetime")
        self.store = store
        self.lifetime = lifetime
        self.renew_window = renew_window
        self._now = now

    def issue(self, user_id: str) -> IssuedSession:
        """Create a session for user_id and return the raw token with its record.

        The raw token goes back to the caller for the response body and is
        not kept anywhere else. A digest collision (ConflictError) gets one
        retry with a fresh token; a second collision propagates.
        """
        token, session = self._new_session(user_id)
        try:
            self.store.create_session(session)
        except ConflictError:
            logger.warning("Session id collision for user %s; retrying with a new token", user_id)
            token, session = self._new_session(user_id)
            self.store.create_session(session)
        logger.info("Session %s issued for user %s", short_id(session.id), user_id)
        return IssuedSession(token=token, session=session)

    def _new_session(self, user_id: str) -> tuple[str, Session]:
        token = generate_token()
        return token, Session(id=hash_token(token), user_id=user_id, expires_at=self._now() + self.lifetime)

    def validate(self, token: str | None) -> SessionValidationResult:
        """Resolve a raw token to its (user, session) pair.

        Returns the absent result for a missing, unknown, or expired token --
        never raises for those cases. Expired sessions, and sessions whose
        user no longer exists, are deleted before returning. Sessions inside
        the renewal window get their expiry pushed to now + lifetime before
        returning.
        """
        if not token:
            return _ABSENT
        session_id = hash_token(token)
        found = self.store.get_session_with_user(session_id)
        if found is None:
            # A session whose user row is gone cannot be joined; drop it here.
            if self.store.delete_session(session_id):
                logger.info("Session %s had no user; removed", short_id(session_id))
            return _ABSENT
        session, user = found

        now = self._now()
        if now >= session.expires_at:
            self.store.delete_session(session_id)
            logger.info("Session %s expired for user %s; removed", short_id(session_id), user.id)
            return _ABSENT

        if now >= session.expires_at - self.renew_window:
            session.expires_at = now + self.lifetime
            self.store.update_session_expiry(session_id, session.expires_at)
            logger.debug("Session %s renewed until %s", short_id(session_id), session.expires_at.isoformat())

        return SessionValidationResult(user=user, session=session)

    def invalidate(self, token: str) -> None:
        """Delete the session for a raw token (logout).

        Idempotent: an unknown or already-deleted session is a no-op, so a
        double logout is not a user-visible error.
        """
        session_id = hash_token(token)
        if self.store.delete_session(session_id):
            logger.info("Session %s revoked", short_id(session_id))
        else:
            logger.debug("Logout for unknown session %s ignored", short_id(session_id))

    def invalidate_all(self, user_id: str) -> int:
        """Delete every session owned by user_id. Returns the number removed."""
        removed = self.store.delete_user_sessions(user_id)
        if removed:
            logger.info("Revoked %d session(s) for user %s", removed, user_id)
        return removed
