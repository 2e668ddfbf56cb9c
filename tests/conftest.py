import mongomock
import pytest
from bson import ObjectId
from fastapi.testclient import TestClient

from catalog import has_stock, quality_rating
from database import create_document, get_db
from main import app
from security import hash_password

PASSWORD = "secret123"


@pytest.fixture
def db():
    return mongomock.MongoClient()["atheera_test"]


@pytest.fixture
def client(db):
    app.dependency_overrides[get_db] = lambda: db
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def make_user(db):
    counter = {"n": 0}

    def _make(role="user", email=None, password=PASSWORD, **extra):
        counter["n"] += 1
        email = email or f"user{counter['n']}@example.com"
        doc = {
            "name": f"User {counter['n']}",
            "email": email,
            "password_hash": hash_password(password),
            "role": role,
            "is_active": True,
            "tokens": [],
            "cart": [],
            "cart_version": 0,
            "addresses": [],
            "orders": [],
            "recently_viewed": [],
        }
        doc.update(extra)
        inserted_id = create_document(db, "user", doc)
        return db["user"].find_one({"_id": inserted_id})

    return _make


@pytest.fixture
def make_product(db):
    def _make(variants=None, **fields):
        variants = variants or [{"size": "M", "price": 1000, "discount": 800, "quantity": 2}]
        docs = []
        for i, variant in enumerate(variants):
            doc = {"modelno": f"SKU-{i}", "quality": "", "discount": 0, **variant, "_id": ObjectId()}
            docs.append(doc)
        product = {
            "title": "Diamond Ring",
            "description": "A ring",
            "general_details": "",
            "category": "jewellery",
            "sub_category": "diamond",
            "sub_sub_category": "ring",
            "images": [{"url": f"https://img.example.com/{i}.jpg", "public_id": f"img{i}"} for i in range(3)],
            "variants": docs,
            "availability": has_stock(docs),
            "rating": quality_rating(docs),
        }
        product.update(fields)
        inserted_id = create_document(db, "product", product)
        return db["product"].find_one({"_id": inserted_id})

    return _make


@pytest.fixture
def login(client):
    def _login(user, password=PASSWORD):
        response = client.post("/user/login", json={"email": user["email"], "password": password})
        assert response.status_code == 200, response.text
        return response.json()["token"]

    return _login
