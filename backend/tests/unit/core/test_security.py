"""
Unit Tests for Security Module
Tests for: password hashing, JWT tokens
"""
import pytest
from datetime import datetime, timedelta
from jose import jwt

from campus_portal.core.security import (
    verify_password,
    get_password_hash,
    create_access_token,
    create_refresh_token,
    decode_token,
)
from campus_portal.core.exceptions import InvalidTokenError, TokenExpiredError
from campus_portal.core.config import settings


class TestPasswordHashing:
    """Test password hashing functions"""

    def test_hash_password_returns_different_value(self):
        """Test that hashing returns a different value than input"""
        password = "testpassword123"
        hashed = get_password_hash(password)

        assert hashed != password
        assert len(hashed) > 0

    def test_hash_password_different_each_time(self):
        """Bcrypt generates different salts"""
        password = "testpassword123"
        assert get_password_hash(password) != get_password_hash(password)

    def test_verify_password_correct(self):
        password = "testpassword123"
        assert verify_password(password, get_password_hash(password)) is True

    def test_verify_password_incorrect(self):
        hashed = get_password_hash("testpassword123")
        assert verify_password("wrongpassword", hashed) is False

    def test_verify_password_without_hash(self):
        assert verify_password("anything", None) is False


class TestJWTTokens:
    """Test JWT token creation and decoding"""

    def test_access_token_round_trip(self):
        token = create_access_token({"sub": "user-123", "role": "student"})
        payload = decode_token(token)

        assert payload["sub"] == "user-123"
        assert payload["type"] == "access"
        assert "exp" in payload

    def test_refresh_token_type(self):
        payload = decode_token(create_refresh_token({"sub": "user-123"}))
        assert payload["type"] == "refresh"

    def test_custom_expiry(self):
        token = create_access_token({"sub": "user-123"}, expires_delta=timedelta(minutes=5))
        payload = jwt.decode(token, settings.JWT_SECRET_KEY, algorithms=[settings.JWT_ALGORITHM])
        expires = datetime.utcfromtimestamp(payload["exp"])

        assert expires <= datetime.utcnow() + timedelta(minutes=6)

    def test_expired_token(self):
        token = create_access_token({"sub": "user-123"}, expires_delta=timedelta(seconds=-10))
        with pytest.raises(TokenExpiredError):
            decode_token(token)

    def test_tampered_token(self):
        token = create_access_token({"sub": "user-123"})
        with pytest.raises(InvalidTokenError):
            decode_token(token[:-4] + "abcd")

    def test_wrong_secret(self):
        token = jwt.encode({"sub": "user-123", "type": "access"}, "another-secret", algorithm="HS256")
        with pytest.raises(InvalidTokenError):
            decode_token(token)
