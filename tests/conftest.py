from __future__ import annotations

import datetime as dt

import httpx
import pytest
from fastapi.testclient import TestClient

from duk import db as dbmod
from duk.config import override
from duk.db import Base, ensure_tables, get_engine
from duk.fetcher import UpstreamFetcher, get_fetcher
from duk.main import app
from duk.models import Mapping
from duk.s3 import put_object, reset_object_store

CHROME_UA = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/126.0.0.0 Safari/537.36"
)
BROWSER_HEADERS = {
    "User-Agent": CHROME_UA,
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,image/avif,image/webp,*/*;q=0.8",
}
IMG_TAG_HEADERS = {"User-Agent": CHROME_UA, "Accept": "image/avif,image/webp,image/apng,image/*,*/*;q=0.8"}
CURL_HEADERS = {"User-Agent": "curl/8.4.0", "Accept": "*/*"}
FACEBOOK_HEADERS = {"User-Agent": "facebookexternalhit/1.1 (+http://www.facebook.com/externalhit_uatext.php)"}
JSON_HEADERS = {"User-Agent": "curl/8.4.0", "Accept": "application/json"}

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 64
JPEG_BYTES = b"\xff\xd8\xff\xe0" + b"\x01" * 64


def streamed_response(status_code: int, content: bytes = b"", content_type: str | None = None) -> httpx.Response:
    """A response whose body is still unread, like one off the network."""
    headers = {"content-length": str(len(content))}
    if content_type:
        headers["content-type"] = content_type
    return httpx.Response(status_code, headers=headers, stream=httpx.ByteStream(content))


class FakeUpstream:
    """Canned responses for outbound image fetches, keyed by URL."""

    def __init__(self):
        self.routes = {}
        self.calls = []

    def add(self, url, content=b"", status_code=200, content_type="image/jpeg"):
        self.routes[url] = (status_code, content, content_type)

    def fail(self, url):
        self.routes[url] = None

    def handler(self, request: httpx.Request) -> httpx.Response:
        url = str(request.url)
        self.calls.append(url)
        if url not in self.routes:
            return httpx.Response(404)
        route = self.routes[url]
        if route is None:
            raise httpx.ConnectError("connection refused", request=request)
        status_code, content, content_type = route
        return streamed_response(status_code, content, content_type)


@pytest.fixture
def settings(tmp_path):
    with override(
        database_url=f"sqlite:///{tmp_path / 'test.db'}",
        environment="development",
        jwt_secret="test-secret",
        s3_enabled=True,
        s3_bucket=None,
        s3_backends={"local": {"type": "local", "base_path": str(tmp_path / "objects")}},
        upstream_retries=1,
        public_base_url="https://duk.tw",
    ) as s:
        reset_object_store()
        yield s
    reset_object_store()


@pytest.fixture
def session_factory(settings):
    engine = get_engine()
    ensure_tables(engine)
    yield dbmod.SessionLocal
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def upstream():
    return FakeUpstream()


@pytest.fixture
def client(session_factory, upstream):
    app.dependency_overrides[get_fetcher] = lambda: UpstreamFetcher(httpx.MockTransport(upstream.handler))
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.pop(get_fetcher, None)


def add_mapping(session_factory, **fields) -> None:
    db = session_factory()
    try:
        db.add(Mapping(**fields))
        db.commit()
    finally:
        db.close()


def view_count(session_factory, hash_: str) -> int:
    db = session_factory()
    try:
        return db.get(Mapping, hash_).view_count
    finally:
        db.close()


@pytest.fixture
def mappings(session_factory, upstream):
    """A small catalogue covering each target kind and access policy."""
    now = dt.datetime.utcnow()
    put_object("images/pbQyTD.png", PNG_BYTES, "image/png")
    put_object("images/abc123.png", PNG_BYTES, "image/png")
    put_object("images/xyz999.png", PNG_BYTES, "image/png")
    upstream.add("https://img.example.com/cat.jpg", JPEG_BYTES)
    upstream.fail("https://down.example.com/dog.jpg")

    add_mapping(session_factory, hash="pbQyTD", filename="sunset.png", object_key="images/pbQyTD.png", file_extension="png")
    add_mapping(session_factory, hash="abc123", filename="abc.png", object_key="images/abc123.png", file_extension="png")
    add_mapping(session_factory, hash="xyz999", filename="secret.png", object_key="images/xyz999.png",
                file_extension="png", password="1234")
    add_mapping(session_factory, hash="ext001", filename="cat.jpg", url="https://img.example.com/cat.jpg",
                file_extension="jpg")
    add_mapping(session_factory, hash="ext002", url="https://down.example.com/dog.jpg", file_extension="jpg")
    add_mapping(session_factory, hash="nofile", object_key="images/nofile.png", file_extension="png")
    add_mapping(session_factory, hash="old001", object_key="images/pbQyTD.png", file_extension="png",
                expires_at=now - dt.timedelta(days=1))
    add_mapping(session_factory, hash="soon01", object_key="images/pbQyTD.png", file_extension="png",
                expires_at=now + dt.timedelta(hours=1))
    add_mapping(session_factory, hash="gone01", object_key="images/pbQyTD.png", file_extension="png",
                is_deleted=True, deleted_at=now)
