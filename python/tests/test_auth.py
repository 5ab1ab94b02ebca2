"""
Tests for password hashing and bearer tokens.
"""

import uuid
from datetime import datetime, timedelta, timezone

import pytest
from jose import jwt

from auth import TokenService, hash_password, verify_password
from config_manager import AuthConfig
from database.models import AdminRole
from errors import TokenError


@pytest.fixture
def tokens():
    return TokenService(AuthConfig(jwt_secret="unit-test-secret-value", bcrypt_rounds=4))


class TestPasswords:

    def test_hash_round_trip(self):
        hashed = hash_password("S3cure-pass", rounds=4)
        assert hashed != "S3cure-pass"
        assert verify_password("S3cure-pass", hashed)
        assert not verify_password("s3cure-pass", hashed)

    def test_hashes_are_salted(self):
        assert hash_password("same", rounds=4) != hash_password("same", rounds=4)

    def test_malformed_hash_is_a_mismatch(self):
        assert verify_password("anything", "not-a-bcrypt-hash") is False


class TestTokens:

    def test_issue_and_verify(self, tokens):
        admin_id = uuid.uuid4()
        token = tokens.issue_token(admin_id, "alice@example.com", AdminRole.SUPERADMIN)

        actor = tokens.verify_token(token)

        assert actor.id == admin_id
        assert actor.email == "alice@example.com"
        assert actor.role == AdminRole.SUPERADMIN

    def test_expired_token(self, tokens):
        token = tokens.issue_token(uuid.uuid4(), "a@example.com", AdminRole.ADMIN, expires_delta=timedelta(seconds=-5))

        with pytest.raises(TokenError) as exc_info:
            tokens.verify_token(token)
        assert str(exc_info.value) == "Token expired"
        assert exc_info.value.code == "TOKEN_EXPIRED"

    def test_wrong_secret(self, tokens):
        other = TokenService(AuthConfig(jwt_secret="a-completely-different-secret"))
        token = other.issue_token(uuid.uuid4(), "a@example.com", AdminRole.ADMIN)

        with pytest.raises(TokenError) as exc_info:
            tokens.verify_token(token)
        assert str(exc_info.value) == "Invalid token"

    @pytest.mark.parametrize("token", [None, "", "not.a.token"])
    def test_garbage_token(self, tokens, token):
        with pytest.raises(TokenError):
            tokens.verify_token(token)

    def test_wrong_token_type(self, tokens):
        token = jwt.encode(
            {
                "sub": str(uuid.uuid4()),
                "role": "admin",
                "type": "refresh",
                "exp": datetime.now(timezone.utc) + timedelta(minutes=5),
            },
            "unit-test-secret-value",
            algorithm="HS256",
        )
        with pytest.raises(TokenError):
            tokens.verify_token(token)
