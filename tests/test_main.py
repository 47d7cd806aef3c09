from fastapi.testclient import TestClient

from duk.config import override
from duk.main import app
from duk.s3 import reset_object_store


def test_ping_endpoint():
    """Test the ping endpoint for health checks."""
    client = TestClient(app)
    response = client.get("/ping")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_healthz_endpoint(client):
    """Database and local object storage are both reachable in tests."""
    response = client.get("/healthz")
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "ok"
    assert data["db"] == "ok"
    assert data["s3"] == "ok"


def test_healthz_without_object_storage(client):
    with override(s3_enabled=False):
        reset_object_store()
        data = client.get("/healthz").json()
    reset_object_store()
    assert data["s3"] == "skipped"
    assert data["ok"] is True


def test_version_endpoint():
    """Test the version endpoint."""
    client = TestClient(app)
    response = client.get("/version")
    assert response.status_code == 200
    data = response.json()
    assert "version" in data
    assert "build" in data


def test_openapi_lists_public_routes():
    """The catch-all hash route stays out of the schema."""
    paths = TestClient(app).get("/openapi.json").json()["paths"]
    assert "/api/smart-route/{raw_hash}" in paths
    assert "/api/verify-password" in paths
    assert "/api/mapping/{hash}" in paths
    assert "/{raw_hash}" not in paths


def test_reserved_paths_are_not_hashes(client):
    assert client.get("/docs").status_code == 200
    assert client.get("/ping").json() == {"status": "ok"}
