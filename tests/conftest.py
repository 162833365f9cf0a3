"""Pytest fixtures for storefront tests."""
import mongomock
import pytest
from fastapi.testclient import TestClient

import auth
import catalog
import database
from database import create_document


@pytest.fixture
def db():
    """A fresh in-memory database with the production indexes."""
    database_ = mongomock.MongoClient()["grocerymart_test"]
    database.ensure_indexes(database_)
    return database_


@pytest.fixture
def make_product(db):
    def _make(**overrides):
        data = {
            "name": "Test Apples",
            "description": "Crisp red apples",
            "category": "Fruits",
            "price": 10.0,
            "stock": 100,
        }
        data.update(overrides)
        return catalog.create_product(db, data)

    return _make


@pytest.fixture
def make_user(db):
    counter = {"n": 0}

    def _make(name="Shopper", is_admin=False, email=None):
        counter["n"] += 1
        email = email or f"user{counter['n']}@example.com"
        user_id = create_document(db, "user", {
            "name": name,
            "email": email,
            "password_hash": auth.hash_password("secret123"),
            "is_admin": is_admin,
        })
        return {"id": user_id, "name": name, "email": email, "is_admin": is_admin}

    return _make


@pytest.fixture
def user(make_user):
    return make_user()


@pytest.fixture
def admin(make_user):
    return make_user(name="Admin", is_admin=True)


def auth_headers(user: dict) -> dict:
    return {"Authorization": f"Bearer {auth.create_token({'id': user['id'], 'email': user['email']})}"}


@pytest.fixture
def api_client(db):
    """Test client wired to the in-memory database."""
    from main import app

    app.dependency_overrides[database.get_db] = lambda: db
    yield TestClient(app)
    app.dependency_overrides.clear()
