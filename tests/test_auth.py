"""Tests for signup, login and token handling."""
import inspect

import jwt
import pytest

import auth
import config
from errors import (
    AuthenticationError,
    EmailAlreadyRegisteredError,
    InvalidCredentialsError,
)


class TestPasswords:
    def test_hash_is_salted(self):
        assert auth.hash_password("pw") != auth.hash_password("pw")

    def test_verify(self):
        hashed = auth.hash_password("correct horse")
        assert auth.verify_password("correct horse", hashed)
        assert not auth.verify_password("wrong", hashed)
        assert not auth.verify_password("anything", "")


class TestSignupLogin:
    def test_signup_then_login(self, db):
        session = auth.signup(db, "Asha", "asha@example.com", "secret123")
        assert session["user"]["email"] == "asha@example.com"
        assert session["user"]["is_admin"] is False

        again = auth.login(db, "asha@example.com", "secret123")
        assert again["user"]["id"] == session["user"]["id"]
        assert auth.decode_token(again["token"])["id"] == session["user"]["id"]

    def test_duplicate_email(self, db):
        auth.signup(db, "Asha", "asha@example.com", "secret123")
        with pytest.raises(EmailAlreadyRegisteredError):
            auth.signup(db, "Other", "asha@example.com", "secret456")

    def test_bad_password(self, db):
        auth.signup(db, "Asha", "asha@example.com", "secret123")
        with pytest.raises(InvalidCredentialsError):
            auth.login(db, "asha@example.com", "nope")
        with pytest.raises(InvalidCredentialsError):
            auth.login(db, "nobody@example.com", "secret123")

    def test_email_is_case_insensitive(self, db):
        session = auth.signup(db, "Ravi", "  Ravi@Example.com", "secret123")
        assert session["user"]["email"] == "ravi@example.com"

        with pytest.raises(EmailAlreadyRegisteredError):
            auth.signup(db, "Ravi again", "ravi@example.com", "secret456")
        assert auth.login(db, "RAVI@example.COM", "secret123")["user"]["id"] == session["user"]["id"]
        assert db["user"].count_documents({}) == 1

    def test_admin_requires_exact_email_match(self, db, monkeypatch):
        monkeypatch.setattr(config, "ADMIN_EMAILS", {"boss@grocerymart.com"})
        assert auth.signup(db, "Boss", "Boss@GroceryMart.com", "secret123")["user"]["is_admin"] is True
        assert auth.signup(db, "Eve", "admin@evil.com", "secret123")["user"]["is_admin"] is False
        assert auth.signup(db, "Mal", "boss@grocerymart.com.evil.io", "secret123")["user"]["is_admin"] is False


class TestTokens:
    def test_token_does_not_carry_admin_flag(self):
        token = auth.create_token({"id": "abc", "email": "a@b.c"})
        assert "is_admin" not in auth.decode_token(token)

    def test_invalid_token(self):
        with pytest.raises(AuthenticationError):
            auth.decode_token("not-a-token")

    def test_foreign_signature(self):
        token = jwt.encode({"id": "abc"}, "someone-elses-secret", algorithm="HS256")
        with pytest.raises(AuthenticationError):
            auth.decode_token(token)


class TestDependencies:
    @pytest.mark.parametrize("dependency", [auth.get_current_user, auth.require_admin])
    def test_run_in_threadpool(self, dependency):
        # blocking pymongo lookups must not run on the event loop
        assert not inspect.iscoroutinefunction(dependency)
