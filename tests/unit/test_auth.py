"""Unit tests for bearer token authentication."""

from datetime import timedelta

import jwt
import pytest

from src.core.errors import UnauthorizedError
from src.interfaces.api.auth import ALGORITHM, TokenAuthProvider

SECRET = "unit-test-secret-key-for-bearer-tokens"


class TestTokenAuthProvider:
    """Test cases for TokenAuthProvider."""

    def setup_method(self) -> None:
        self.auth = TokenAuthProvider(SECRET, expire_minutes=30)

    def test_round_trip(self) -> None:
        token = self.auth.issue_token("user-42@example.com")

        assert self.auth.verify_token(token) == "user-42@example.com"

    def test_token_carries_subject_and_expiry(self) -> None:
        claims = jwt.decode(self.auth.issue_token("alice"), SECRET, algorithms=[ALGORITHM])

        assert claims["sub"] == "alice"
        assert claims["exp"] - claims["iat"] == 30 * 60

    def test_expired_token_rejected(self) -> None:
        token = self.auth.issue_token("alice", expires_delta=timedelta(seconds=-5))

        with pytest.raises(UnauthorizedError) as exc_info:
            self.auth.verify_token(token)

        assert exc_info.value.message == "Bearer token expired"

    def test_token_from_other_secret_rejected(self) -> None:
        token = TokenAuthProvider("another-secret-key-for-bearer-tokens").issue_token("alice")

        with pytest.raises(UnauthorizedError):
            self.auth.verify_token(token)

    def test_token_without_expiry_rejected(self) -> None:
        token = jwt.encode({"sub": "alice"}, SECRET, algorithm=ALGORITHM)

        with pytest.raises(UnauthorizedError):
            self.auth.verify_token(token)

    def test_unsigned_token_rejected(self) -> None:
        token = jwt.encode({"sub": "alice", "iat": 0, "exp": 4102444800}, None, algorithm="none")

        with pytest.raises(UnauthorizedError):
            self.auth.verify_token(token)

    @pytest.mark.parametrize("token", ["", "no-dot", "a.b", "a.b.c"])
    def test_malformed_tokens_rejected(self, token: str) -> None:
        with pytest.raises(UnauthorizedError):
            self.auth.verify_token(token)

    def test_secret_key_required(self) -> None:
        with pytest.raises(ValueError):
            TokenAuthProvider("")
