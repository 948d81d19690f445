"""
auth/purpose_tokens.py -- Password-reset and email-verification tokens.

A purpose token is an opaque token (same codec as sessions) scoped to one
purpose and one user. Only its SHA-256 digest is stored.

Single use: after a successful consume, every token of that purpose for the
user is deleted, so the raw value (and any older one still in an inbox)
stops working. Issuing a new token also deletes the outstanding ones of the
same purpose -- only the most recent email link is live.

Expiry is enforced by verify(): a token past its expires timestamp is
treated exactly like a missing one.

The consume_* flows collapse every internal failure (unknown token, expired
token, vanished user, database error) into one OperationFailedError. The
cause is logged; the caller only learns that the operation failed, which
gives an attacker no oracle for why.

Sending the email is the caller's job. This module only returns raw tokens.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime, timedelta, timezone

from auth.errors import NotFoundError, OperationFailedError
from auth.models import Token, TokenType
from auth.store import UserStore
from auth.token_store import TokenStore
from auth.tokens import generate_token, hash_password, hash_token, short_id

logger = logging.getLogger("tokengate.auth.purpose_tokens")

DEFAULT_RESET_LIFETIME = timedelta(minutes=10)
DEFAULT_VERIFY_LIFETIME = timedelta(minutes=10)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class PurposeTokenManager:
    """Issue and consume RESET_PASSWORD and VERIFY_EMAIL tokens."""

    def __init__(
        self,
        tokens: TokenStore,
        users: UserStore,
        reset_lifetime: timedelta = DEFAULT_RESET_LIFETIME,
        verify_lifetime: timedelta = DEFAULT_VERIFY_LIFETIME,
        now: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.tokens = tokens
        self.users = users
        self.reset_lifetime = reset_lifetime
        self.verify_lifetime = verify_lifetime
        self._now = now

    # ------------------------------------------------------------------
    # Issue
    # ------------------------------------------------------------------

    def issue_reset_token(self, email: str, expires: datetime | None = None, blacklisted: bool = False) -> str:
        """Create a password-reset token for the user registered under email.

        Raises NotFoundError if no user has that email.
        """
        user = self.users.get_by_email(email)
        if user is None:
            raise NotFoundError("No users found with this email")
        expires = expires or self._now() + self.reset_lifetime
        return self._issue(user.id, TokenType.RESET_PASSWORD, expires, blacklisted)

    def issue_verify_token(self, user_id: str, expires: datetime | None = None) -> str:
        """Create an email-verification token for user_id."""
        expires = expires or self._now() + self.verify_lifetime
        return self._issue(user_id, TokenType.VERIFY_EMAIL, expires, False)

    def _issue(self, user_id: str, token_type: TokenType, expires: datetime, blacklisted: bool) -> str:
        superseded = self.tokens.delete_tokens(user_id, token_type.value)
        if superseded:
            logger.debug("Superseded %d %s token(s) for user %s", superseded, token_type.value, user_id)
        raw = generate_token()
        record = Token(
            token=hash_token(raw),
            user_id=user_id,
            type=token_type.value,
            expires=expires,
            blacklisted=blacklisted,
        )
        self.tokens.create_token(record)
        logger.info("%s token %s issued for user %s", token_type.value, short_id(record.token), user_id)
        return raw

    # ------------------------------------------------------------------
    # Verify
    # ------------------------------------------------------------------

    def verify(self, token: str, token_type: TokenType, blacklisted: bool = False) -> Token:
        """Return the stored record for a raw token of the given purpose.

        Raises NotFoundError if no record matches digest, purpose, and
        blacklist flag, or if the matching record has expired.
        """
        record = self.tokens.find_token(hash_token(token), token_type.value, blacklisted)
        if record is None:
            raise NotFoundError("Token not found")
        if self._now() >= record.expires:
            raise NotFoundError("Token not found")
        return record

    # ------------------------------------------------------------------
    # Consume
    # ------------------------------------------------------------------

    def consume_for_password_reset(self, token: str, new_password: str) -> None:
        """Set a new password using a reset token, then burn the token.

        Every session the user holds is revoked as well: whoever asked for
        the reset should not leave an attacker logged in elsewhere.

        Raises OperationFailedError("Password reset failed") on any failure.
        """
        try:
            record = self.verify(token, TokenType.RESET_PASSWORD)
            user = self.users.get_by_id(record.user_id)
            if user is None:
                raise NotFoundError("User not found")
            self.users.update_user(user.id, password=hash_password(new_password))
            self.tokens.delete_tokens(user.id, TokenType.RESET_PASSWORD.value)
            self.tokens.delete_user_sessions(user.id)
        except Exception as exc:
            logger.warning("Password reset failed: %s", exc, exc_info=not isinstance(exc, NotFoundError))
            raise OperationFailedError("Password reset failed") from exc
        logger.info("Password reset for user %s", user.id)

    def consume_for_email_verification(self, token: str) -> None:
        """Mark the owner's email verified using a verification token.

        Raises OperationFailedError("Email verification failed") on any failure.
        """
        try:
            record = self.verify(token, TokenType.VERIFY_EMAIL)
            self.tokens.delete_tokens(record.user_id, TokenType.VERIFY_EMAIL.value)
            if self.users.update_user(record.user_id, is_email_verified=True) is None:
                raise NotFoundError("User not found")
        except Exception as exc:
            logger.warning("Email verification failed: %s", exc, exc_info=not isinstance(exc, NotFoundError))
            raise OperationFailedError("Email verification failed") from exc
        logger.info("Email verified for user %s", record.user_id)
