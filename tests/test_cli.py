from __future__ import annotations

import datetime as dt

import pytest

from duk import cli
from duk.models import Mapping
from duk.s3 import open_object
from duk.security import password_matches

from .conftest import PNG_BYTES, add_mapping


def _get(session_factory, hash_):
    db = session_factory()
    try:
        return db.get(Mapping, hash_)
    finally:
        db.close()


def test_generate_hash():
    h = cli.generate_hash()
    assert len(h) == cli.HASH_LENGTH
    assert h.isalnum()


@pytest.mark.parametrize(
    "value, expected",
    [
        ("photo.PNG", "png"),
        ("https://img.example.com/a/b.jpeg?w=100", "jpeg"),
        ("images/abc.webp", "webp"),
        ("notes.txt", None),
        ("https://img.example.com/noext", None),
        (None, None),
    ],
)
def test_extension_from(value, expected):
    assert cli.extension_from(value) == expected


def test_add_mapping_with_url(session_factory, capsys):
    cli.main(["add-mapping", "--hash", "cli001", "--url", "https://img.example.com/cat.jpg", "--password", "1234"])
    m = _get(session_factory, "cli001")
    assert m.url == "https://img.example.com/cat.jpg"
    assert m.file_extension == "jpg"
    assert m.password == "1234"
    assert "https://duk.tw/cli001.jpg" in capsys.readouterr().out


def test_add_mapping_generates_hash(session_factory, capsys):
    m = cli.add_mapping(None, url=None, object_key="images/x.png", expires_in_days=2)
    stored = _get(session_factory, m.hash)
    assert len(stored.hash) == cli.HASH_LENGTH
    assert stored.expires_at > dt.datetime.utcnow() + dt.timedelta(days=1)


def test_add_mapping_hashed_password(session_factory):
    cli.main(["add-mapping", "--hash", "cli002", "--object-key", "images/y.png", "--password", "5678", "--hash-password"])
    stored = _get(session_factory, "cli002").password
    assert stored != "5678"
    assert password_matches("5678", stored)


def test_add_mapping_rejects_duplicate(session_factory, capsys):
    add_mapping(session_factory, hash="cli003", url="https://img.example.com/a.png")
    with pytest.raises(SystemExit):
        cli.main(["add-mapping", "--hash", "cli003", "--url", "https://img.example.com/b.png"])
    assert "already exists" in capsys.readouterr().err


def test_add_mapping_rejects_unsafe_hash(session_factory):
    with pytest.raises(SystemExit):
        cli.main(["add-mapping", "--hash", "../x", "--url", "https://img.example.com/b.png"])


def test_upload_stores_object_and_mapping(session_factory, tmp_path):
    source = tmp_path / "holiday.png"
    source.write_bytes(PNG_BYTES)
    cli.main(["upload", str(source), "--hash", "cli004"])
    m = _get(session_factory, "cli004")
    assert m.object_key == "images/cli004.png"
    assert m.storage_tier == "local"
    assert m.filename == "holiday.png"
    assert m.file_extension == "png"
    stored = open_object(m.object_key, m.storage_tier)
    assert b"".join(stored.iter_chunks()) == PNG_BYTES


def test_upload_to_taken_hash_keeps_existing_image(session_factory, tmp_path, capsys):
    original = tmp_path / "original.png"
    original.write_bytes(PNG_BYTES)
    cli.main(["upload", str(original), "--hash", "keep01"])

    replacement = tmp_path / "replacement.png"
    replacement.write_bytes(b"\x89PNG replacement")
    with pytest.raises(SystemExit):
        cli.main(["upload", str(replacement), "--hash", "keep01"])
    assert "already exists" in capsys.readouterr().err

    stored = open_object("images/keep01.png", "local")
    assert b"".join(stored.iter_chunks()) == PNG_BYTES


def test_upload_rejects_unsafe_hash_before_writing(session_factory, tmp_path, settings):
    source = tmp_path / "x.png"
    source.write_bytes(PNG_BYTES)
    with pytest.raises(SystemExit):
        cli.main(["upload", str(source), "--hash", "bad hash"])
    with pytest.raises(FileNotFoundError):
        open_object("images/bad hash.png")


def test_upload_rejects_non_images(session_factory, tmp_path):
    source = tmp_path / "notes.txt"
    source.write_text("hello")
    with pytest.raises(SystemExit):
        cli.main(["upload", str(source)])


def test_set_password_and_clear(session_factory):
    add_mapping(session_factory, hash="cli005", url="https://img.example.com/a.png")
    cli.main(["set-password", "cli005", "--password", "2468"])
    assert _get(session_factory, "cli005").password == "2468"
    cli.main(["set-password", "cli005", "--clear"])
    assert _get(session_factory, "cli005").password is None


def test_expire(session_factory):
    add_mapping(session_factory, hash="cli006", url="https://img.example.com/a.png")
    cli.main(["expire", "cli006"])
    assert _get(session_factory, "cli006").expires_at <= dt.datetime.utcnow()
    cli.main(["expire", "cli006", "--in-days", "3"])
    assert _get(session_factory, "cli006").expires_at > dt.datetime.utcnow() + dt.timedelta(days=2)
    cli.main(["expire", "cli006", "--clear"])
    assert _get(session_factory, "cli006").expires_at is None


def test_delete_is_soft(session_factory, capsys):
    add_mapping(session_factory, hash="cli007", url="https://img.example.com/a.png")
    cli.main(["delete", "cli007"])
    m = _get(session_factory, "cli007")
    assert m.is_deleted
    assert m.deleted_at is not None
    cli.main(["show", "cli007"])
    assert "deleted_at=" in capsys.readouterr().out
    with pytest.raises(SystemExit):
        cli.main(["delete", "cli007"])


def test_show_unknown(session_factory):
    with pytest.raises(SystemExit):
        cli.main(["show", "nosuch"])


def test_backfill_extensions(session_factory, capsys):
    add_mapping(session_factory, hash="bf0001", filename="a.GIF", url="https://img.example.com/a")
    add_mapping(session_factory, hash="bf0002", url="https://img.example.com/b.webp?x=1")
    add_mapping(session_factory, hash="bf0003", object_key="images/c.jpg")
    add_mapping(session_factory, hash="bf0004", url="https://img.example.com/noext")

    cli.main(["backfill-extensions", "--dry-run"])
    assert _get(session_factory, "bf0001").file_extension is None
    assert "Would update 3 mappings" in capsys.readouterr().out

    cli.main(["backfill-extensions", "--batch-size", "2"])
    assert _get(session_factory, "bf0001").file_extension == "gif"
    assert _get(session_factory, "bf0002").file_extension == "webp"
    assert _get(session_factory, "bf0003").file_extension == "jpg"
    assert _get(session_factory, "bf0004").file_extension is None


def test_help(capsys):
    cli.main(["help", "upload"])
    assert "usage: duk-cli upload" in capsys.readouterr().out
