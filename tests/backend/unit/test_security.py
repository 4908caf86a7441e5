"""
Unit tests for core.security module.
Tests access token decoding for tokens signed by the auth service.
"""
import datetime as dt
import jwt
import pytest
from app.core.security import (
    ACCESS_TOKEN_EXPIRE_MINUTES,
    JWT_ALG,
    JWT_SECRET,
    create_access_token,
    decode_access_token,
)


class TestAccessTokens:
    """Tests for token creation and validation."""

    def test_round_trip_claims(self):
        """sub and role survive encoding; iat/exp are present."""
        token = create_access_token("player-42", "admin")
        payload = decode_access_token(token)
        assert payload["sub"] == "player-42"
        assert payload["role"] == "admin"
        assert "iat" in payload and "exp" in payload

    def test_expiration_window(self):
        """exp - iat matches the configured lifetime."""
        payload = decode_access_token(create_access_token("player-1", "user"))
        assert abs((payload["exp"] - payload["iat"]) / 60 - ACCESS_TOKEN_EXPIRE_MINUTES) < 1
        assert payload["exp"] > dt.datetime.now(dt.timezone.utc).timestamp()

    def test_expired_token_rejected(self):
        """A token signed in the past fails with ExpiredSignatureError."""
        past = dt.datetime.now(dt.timezone.utc) - dt.timedelta(hours=2)
        token = jwt.encode(
            {"sub": "player-1", "role": "user", "iat": past, "exp": past + dt.timedelta(minutes=5)},
            JWT_SECRET,
            algorithm=JWT_ALG,
        )
        with pytest.raises(jwt.ExpiredSignatureError):
            decode_access_token(token)

    def test_foreign_signature_rejected(self):
        """Tokens signed with another secret are refused."""
        token = jwt.encode({"sub": "player-1", "role": "admin"}, "someone-else", algorithm=JWT_ALG)
        with pytest.raises(jwt.InvalidSignatureError):
            decode_access_token(token)

    def test_garbage_rejected(self):
        """Malformed strings raise InvalidTokenError."""
        with pytest.raises(jwt.InvalidTokenError):
            decode_access_token("invalid.token.here")
