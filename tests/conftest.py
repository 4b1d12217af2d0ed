"""
pytest configuration and shared fixtures for CommerceCraft tests.
"""

import sys
from datetime import datetime
from pathlib import Path
from unittest.mock import MagicMock

import bcrypt
import mongomock
import pytest

# Add backend to path for imports
backend_root = Path(__file__).parent.parent / "backend"
sys.path.insert(0, str(backend_root))

from app import create_app  # noqa: E402

ADMIN_EMAIL = "owner@example.com"
STAFF_EMAIL = "staff@example.com"
PASSWORD = "correct horse battery"


def make_user(db, email, role, password=PASSWORD):
    db.users.insert_one(
        {
            "email": email,
            "name": email.split("@")[0].title(),
            "role": role,
            "password": bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds=4)),
            "created_at": datetime.utcnow(),
        }
    )


@pytest.fixture
def db():
    return mongomock.MongoClient().db


@pytest.fixture
def genai_client():
    client = MagicMock()
    client.generate_json.return_value = {}
    client.generate_image.return_value = "data:image/png;base64,aGVsbG8="
    return client


@pytest.fixture
def app(db, genai_client, tmp_path):
    make_user(db, ADMIN_EMAIL, "admin")
    make_user(db, STAFF_EMAIL, "staff")
    flask_app = create_app(
        {
            "TESTING": True,
            "JWT_SECRET_KEY": "test-secret-key-that-is-long-enough-for-hs256",
            "UPLOAD_FOLDER": str(tmp_path / "uploads"),
            "PUBLIC_BASE_URL": "http://store.test",
            "RESEND_API_KEY": "",
            "STORE_CONTACT_EMAIL": "",
            "EASYPOST_API_KEY": "ep-test",
            "DEFAULT_ADMIN_PASSWORD": "",
            "GENAI_CLIENT": genai_client,
        },
        database=db,
    )
    return flask_app


@pytest.fixture
def client(app):
    return app.test_client()


def login(client, email):
    response = client.post("/api/admin/login", json={"email": email, "password": PASSWORD})
    assert response.status_code == 200, response.get_json()
    return {"Authorization": f"Bearer {response.get_json()['access_token']}"}


@pytest.fixture
def admin_headers(client):
    return login(client, ADMIN_EMAIL)


@pytest.fixture
def staff_headers(client):
    return login(client, STAFF_EMAIL)


@pytest.fixture
def sample_product():
    return {
        "name": "Classic Tee",
        "description": "A soft cotton tee for everyday wear.",
        "longDescription": "Made from combed ring-spun cotton with a relaxed fit and durable stitching.",
        "price": 20.0,
        "category": "Apparel",
        "images": ["https://cdn.example.com/tee.jpg"],
        "variants": [
            {"type": "Size", "options": [{"value": "S"}, {"value": "M"}]},
            {
                "type": "Color",
                "options": [
                    {"value": "Red", "image": "https://cdn.example.com/tee-red.jpg"},
                    {"value": "Blue"},
                ],
            },
        ],
        "inventory": [
            {"id": "S-Red", "price": 21.5, "stock": 4},
            {"id": "M-Blue", "price": 22.0, "stock": 2},
        ],
        "status": "active",
    }
