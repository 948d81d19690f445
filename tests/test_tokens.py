"""
tests/test_tokens.py -- Unit tests for the opaque token codec and password helpers.

Covers:
  - generate_token(): 32 lowercase base32 chars, no padding, distinct per call
  - hash_token(): deterministic 64-char lowercase hex digest
  - hash_password()/verify_password(): bcrypt round trip and malformed hashes
  - authenticate_user(): success, wrong password, unknown email
"""

from __future__ import annotations

import re

from auth.tokens import (
    authenticate_user,
    generate_token,
    generate_user_id,
    hash_password,
    hash_token,
    short_id,
    verify_password,
)

_B32_LOWER = re.compile(r"^[a-z2-7]{32}$")


class TestGenerateToken:
    def test_format_is_lowercase_base32_without_padding(self) -> None:
        token = generate_token()
        assert _B32_LOWER.match(token), token
        assert "=" not in token

    def test_tokens_are_distinct(self) -> None:
        tokens = {generate_token() for _ in range(1000)}
        assert len(tokens) == 1000


class TestHashToken:
    def test_digest_is_stable(self) -> None:
        token = generate_token()
        assert hash_token(token) == hash_token(token)

    def test_digest_is_64_lowercase_hex(self) -> None:
        assert re.fullmatch(r"[0-9a-f]{64}", hash_token(generate_token()))

    def test_known_vector(self) -> None:
        # sha256("abc")
        assert hash_token("abc") == "ba7816bf8f01cfea414140de5dae2223b00361a396177a9cb410ff61f20015ad"

    def test_different_tokens_hash_differently(self) -> None:
        assert hash_token(generate_token()) != hash_token(generate_token())

    def test_short_id_is_prefix(self) -> None:
        digest = hash_token("abc")
        assert short_id(digest) == digest[:8]


def test_generate_user_id_is_url_safe() -> None:
    user_id = generate_user_id()
    assert len(user_id) == 16
    assert re.fullmatch(r"[A-Za-z0-9_-]+", user_id)


class TestPasswords:
    def test_round_trip(self) -> None:
        hashed = hash_password("correcthorse1")
        assert hashed != "correcthorse1"
        assert verify_password("correcthorse1", hashed)
        assert not verify_password("wrongpass1", hashed)

    def test_malformed_hash_returns_false(self) -> None:
        assert verify_password("anything1", "not-a-bcrypt-hash") is False


class TestAuthenticateUser:
    def test_success(self, user_store, alice) -> None:
        user = authenticate_user(user_store, "alice@example.com", "alicepass1")
        assert user is not None
        assert user.id == alice.id

    def test_email_is_case_insensitive(self, user_store, alice) -> None:
        assert authenticate_user(user_store, "ALICE@Example.com", "alicepass1") is not None

    def test_wrong_password(self, user_store, alice) -> None:
        assert authenticate_user(user_store, "alice@example.com", "nope12345") is None

    def test_unknown_email(self, user_store) -> None:
        assert authenticate_user(user_store, "ghost@example.com", "alicepass1") is None
