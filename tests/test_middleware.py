from __future__ import annotations

import pytest
from fastapi import FastAPI, Request
from fastapi.testclient import TestClient

from duk.config import override
from duk.middleware import HotlinkRewriteMiddleware, rewrite_path


@pytest.mark.parametrize(
    "path, expected",
    [
        ("/abc123.png", "/api/smart-route/abc123.png"),
        ("/abc123.JPEG", "/api/smart-route/abc123.JPEG"),
        ("/a-b_c.webp", "/api/smart-route/a-b_c.webp"),
        ("/abc123", None),
        ("/abc123.txt", None),
        ("/abc123/p", None),
        ("/dir/abc123.png", None),
        ("/api/smart-route/abc123.png", None),
        ("/admin/logo.png", None),
        ("/admin", None),
    ],
)
def test_rewrite_path(path, expected):
    assert rewrite_path(path, "/admin") == expected


def test_admin_prefix_is_configurable():
    assert rewrite_path("/admin.png", "/manage") == "/api/smart-route/admin.png"
    assert rewrite_path("/manage/x.png", "/manage") is None


@pytest.fixture
def echo_client():
    app = FastAPI()
    app.add_middleware(HotlinkRewriteMiddleware)

    @app.get("/{full_path:path}")
    def echo(full_path: str, request: Request):
        return {
            "path": request.url.path,
            "query": request.url.query,
            "cookie": request.cookies.get("auth_abc123"),
            "ua": request.headers.get("user-agent"),
        }

    return TestClient(app)


def test_rewrite_keeps_query_headers_and_cookies(echo_client):
    response = echo_client.get(
        "/abc123.png?direct=true",
        headers={"User-Agent": "curl/8.4.0", "Cookie": "auth_abc123=token"},
    )
    assert response.json() == {
        "path": "/api/smart-route/abc123.png",
        "query": "direct=true",
        "cookie": "token",
        "ua": "curl/8.4.0",
    }


def test_other_paths_pass_through(echo_client):
    assert echo_client.get("/about").json()["path"] == "/about"


def test_admin_paths_pass_through(echo_client):
    with override(admin_prefix="/console"):
        assert echo_client.get("/console/logo.png").json()["path"] == "/console/logo.png"
