"""Shared fixtures: an in-memory MongoDB and a scripted payment gateway."""

from datetime import datetime, timedelta, timezone

import mongomock
import pytest
from fastapi.testclient import TestClient

from auth import create_token
from catalog import slugify
from config import Settings
from main import create_app
from payments import SaleResult
from schemas import ROLE_ADMIN, ROLE_USER

BASE_TIME = datetime(2024, 1, 1, tzinfo=timezone.utc)


class FakeGateway:
    """Stands in for BraintreeAdapter; records every sale it is asked for."""

    def __init__(self):
        self.token = "fake_token"
        self.token_error = None
        self.sale_result = SaleResult(
            success=True,
            transaction={"id": "test_trans_id", "status": "submitted_for_settlement"},
        )
        self.sale_error = None
        self.sales = []

    def generate_client_token(self):
        if self.token_error is not None:
            raise self.token_error
        return self.token

    def sale(self, nonce, amount):
        self.sales.append((nonce, amount))
        if self.sale_error is not None:
            raise self.sale_error
        return self.sale_result


@pytest.fixture
def db():
    return mongomock.MongoClient().storefront


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def app(db, gateway):
    return create_app(settings=Settings(), db=db, gateway=gateway)


@pytest.fixture
def client(app):
    with TestClient(app) as c:
        yield c


def add_category(db, name):
    return db["category"].insert_one({"name": name, "slug": slugify(name)}).inserted_id


def add_product(db, name, price=10.0, category=None, description="", minutes=0, photo=None, quantity=5):
    created = BASE_TIME + timedelta(minutes=minutes)
    doc = {
        "name": name,
        "slug": slugify(name),
        "description": description,
        "price": price,
        "quantity": quantity,
        "category": category,
        "shipping": True,
        "created_at": created,
        "updated_at": created,
    }
    if photo is not None:
        doc["photo"] = photo
    return db["product"].insert_one(doc).inserted_id


def add_user(db, name="Jane", email="jane@example.com", role=ROLE_USER):
    return db["user"].insert_one({
        "name": name,
        "email": email,
        "password_hash": "not-a-real-hash",
        "phone": "555-0100",
        "address": "1 Main St",
        "answer": "blue",
        "role": role,
    }).inserted_id


@pytest.fixture
def user_id(db):
    return add_user(db)


@pytest.fixture
def admin_id(db):
    return add_user(db, name="Admin", email="admin@example.com", role=ROLE_ADMIN)


@pytest.fixture
def user_headers(db, user_id):
    return {"Authorization": create_token(db, user_id)}


@pytest.fixture
def admin_headers(db, admin_id):
    return {"Authorization": f"Bearer {create_token(db, admin_id)}"}


@pytest.fixture
def electronics(db):
    return add_category(db, "Electronics")


@pytest.fixture
def books(db):
    return add_category(db, "Books")