from datetime import datetime

import mongomock
import pytest
from fastapi.testclient import TestClient

from database import ensure_indexes, get_db
from main import app
from products import create_product
from schemas import Principal, ProductCreate, ShopCreate
from security import create_access_token
from shops import create_shop

T0 = datetime(2026, 3, 1, 12, 0, 0)


@pytest.fixture()
def db():
    database = mongomock.MongoClient()["storefront_test"]
    ensure_indexes(database)
    return database


@pytest.fixture()
def client(db):
    app.dependency_overrides[get_db] = lambda: db
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture()
def owner():
    return Principal(user_id="owner-1")


@pytest.fixture()
def other_owner():
    return Principal(user_id="owner-2")


@pytest.fixture()
def buyer():
    return Principal(user_id="buyer-1")


@pytest.fixture()
def admin():
    return Principal(user_id="admin-1", role="admin")


def auth_headers(principal):
    return {"Authorization": f"Bearer {create_access_token(principal.user_id, principal.role)}"}


def make_shop(db, principal, name="Al Noor Store", now=None, **fields):
    payload = ShopCreate(name=name, contact_number=fields.pop("contact_number", "218912345678"), **fields)
    return create_shop(db, principal, payload, now=now)


def make_product(db, principal, shop_id, **fields):
    data = {
        "name": "Linen shirt",
        "description": "Summer linen shirt",
        "price": 25,
        "category": "clothing",
        "image_url": "https://cdn.example.com/shirt.jpg",
    }
    data.update(fields)
    return create_product(db, principal, shop_id, ProductCreate(**data))


@pytest.fixture()
def shop(db, owner):
    return make_shop(db, owner, now=T0)


@pytest.fixture()
def product(db, owner, shop):
    return make_product(db, owner, shop["id"])
