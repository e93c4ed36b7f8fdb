"""Pytest fixtures for LivestockMart tests."""

import os

# Cheap hashes for tests; must be set before security is imported
os.environ.setdefault("BCRYPT_ROUNDS", "4")

import mongomock
import pytest
from fastapi.testclient import TestClient

from database import ensure_indexes, get_db
from security import Principal

ADDRESS = {
    "label": "Home",
    "name": "Test Customer",
    "line1": "123 Test Street",
    "line2": "Near Test Market",
    "city": "Mumbai",
    "state": "Maharashtra",
    "pincode": "400001",
    "phone": "9876543210",
}

LISTING = {
    "name": "Premium Alpine Goat",
    "category": "Goat",
    "breed": "Alpine",
    "age": "2 years",
    "price": 18000,
    "tags": ["Milk Producer", "Vaccinated"],
    "quantity": 5,
}


@pytest.fixture
def db():
    """In-memory Mongo database with the production indexes."""
    database = mongomock.MongoClient().livestockmart
    ensure_indexes(database)
    return database


@pytest.fixture
def client(db):
    from main import app

    app.dependency_overrides[get_db] = lambda: db
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def make_account(db):
    """Insert an account document directly and return its Principal."""

    def _make(name="Alice", cart=None, is_admin=False):
        email = f"{name.lower()}@example.com"
        res = db["account"].insert_one({
            "name": name,
            "email": email,
            "password_hash": "not-used",
            "is_admin": is_admin,
            "cart": cart or [],
            "wishlist": [],
            "addresses": [],
        })
        return Principal(id=str(res.inserted_id), email=email, name=name, is_admin=is_admin)

    return _make


@pytest.fixture
def register(client, db):
    """Register through the API and return auth headers for the new account."""

    def _register(name="Alice", password="secret123", is_admin=False):
        email = f"{name.lower()}@example.com"
        response = client.post(
            "/api/auth/register", json={"name": name, "email": email, "password": password}
        )
        assert response.status_code == 201, response.text
        if is_admin:
            db["account"].update_one({"email": email}, {"$set": {"is_admin": True}})
        body = response.json()
        return {"Authorization": f"Bearer {body['access_token']}"}

    return _register
