"""
Shared pytest fixtures: an isolated app per test with its own database and upload dir.
"""
import pytest
from fastapi.testclient import TestClient

from agromarket.config import Config
from agromarket.main import create_app


@pytest.fixture
def config(tmp_path):
    return Config(
        DB_PATH=str(tmp_path / "db" / "test.db"),
        UPLOAD_DIR=str(tmp_path / "uploads"),
        JWT_SECRET="test-secret-key-for-the-agromarket-suite",
        LOG_LEVEL="WARNING",
        LOG_FILE="",
    )


@pytest.fixture
def client(config):
    with TestClient(create_app(config)) as test_client:
        yield test_client


@pytest.fixture
def db(client):
    return client.app.state.context.db


@pytest.fixture
def register(client):
    """Register a user and return its id and auth headers."""
    def _register(name="Alice", email="alice@example.com", password="secret123", phone="0712345678"):
        resp = client.post(
            "/api/auth/register",
            json={"name": name, "email": email, "password": password, "phone": phone},
        )
        assert resp.status_code == 201, resp.text
        body = resp.json()
        return {
            "id": body["user"]["_id"],
            "token": body["token"],
            "headers": {"Authorization": f"Bearer {body['token']}"},
        }
    return _register


@pytest.fixture
def create_listing(client):
    """Create a listing through the API and return the response JSON."""
    def _create(headers, files=None, **overrides):
        form = {
            "title": "Tractor",
            "location": "Nairobi",
            "category": "Tractors and Machinery",
            "description": "Good condition",
            "price": "5000",
        }
        form.update({key: str(value) for key, value in overrides.items()})
        resp = client.post("/api/listings", data=form, files=files, headers=headers)
        assert resp.status_code == 201, resp.text
        return resp.json()
    return _create
