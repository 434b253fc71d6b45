import secrets
from datetime import datetime

import mongomock
import pytest
from fastapi.testclient import TestClient

import database
import main
from booking import utcnow

PASSWORD = "Abcde1!"


@pytest.fixture
def mongo(monkeypatch):
    test_db = mongomock.MongoClient()["mountain_cottage_test"]
    monkeypatch.setattr(database, "db", test_db)
    monkeypatch.setattr(main, "db", test_db)
    return test_db


@pytest.fixture
def client(mongo):
    return TestClient(main.app)


@pytest.fixture
def make_user(mongo):
    def _make(username="tourist1", user_type="tourist", is_active=True, email=None, password=PASSWORD):
        salt = secrets.token_hex(8)
        doc = {
            "username": username,
            "password_hash": main.hash_password(password, salt),
            "salt": salt,
            "first_name": "Ana",
            "last_name": "Petrovic",
            "gender": "F",
            "address": "Main Street 1",
            "phone": "0641234567",
            "email": email or f"{username}@example.com",
            "profile_picture": None,
            "credit_card": "4539123456789012",
            "user_type": user_type,
            "is_active": is_active,
            "created_at": utcnow(),
        }
        return str(mongo["user"].insert_one(doc).inserted_id)
    return _make


@pytest.fixture
def make_cottage(mongo, make_user):
    def _make(owner_id=None, **overrides):
        doc = {
            "name": "Pine Lodge",
            "location": "Zlatibor",
            "owner_id": owner_id or make_user(username="owner1", user_type="owner"),
            "description": "",
            "summer_price": 100.0,
            "winter_price": 60.0,
            "capacity": 4,
            "amenities": [],
            "images": [],
            "phone": "",
            "blocked_until": None,
            "created_at": utcnow(),
        }
        doc.update(overrides)
        return str(mongo["cottage"].insert_one(doc).inserted_id)
    return _make


@pytest.fixture
def make_reservation(mongo):
    def _make(cottage_id, tourist_id, check_in: datetime, check_out: datetime, status="pending", created_at=None):
        doc = {
            "cottage_id": cottage_id,
            "tourist_id": tourist_id,
            "check_in": check_in,
            "check_out": check_out,
            "adults": 2,
            "children": 0,
            "total_price": 0.0,
            "status": status,
            "credit_card": "",
            "note": "",
            "created_at": created_at or utcnow(),
        }
        return str(mongo["reservation"].insert_one(doc).inserted_id)
    return _make


@pytest.fixture
def admin_headers(client, make_user):
    make_user(username="root", user_type="admin")
    resp = client.post("/api/auth/admin-login", json={"username": "root", "password": PASSWORD})
    assert resp.status_code == 200
    return {"Authorization": f"Bearer {resp.json()['token']}"}


@pytest.fixture
def next_year():
    return utcnow().year + 1
