from __future__ import annotations

import argparse
import datetime as dt
import mimetypes
import secrets
import sys
from pathlib import Path
from typing import Optional
from urllib.parse import urlsplit

from botocore.exceptions import BotoCoreError, ClientError

from .config import get_settings
from .db import ensure_tables, open_session
from .local_s3 import LocalS3Error
from .models import Mapping
from .resolver import is_url_safe, normalize_extension
from .s3 import put_object
from .security import hash_password

BASE62_CHARS = "ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz0123456789"
HASH_LENGTH = 11


def generate_hash(length: int = HASH_LENGTH) -> str:
    return "".join(secrets.choice(BASE62_CHARS) for _ in range(length))


def extension_from(value: Optional[str]) -> Optional[str]:
    """Image extension of a filename, URL or object key, if it has a known one."""
    if not value:
        return None
    path = urlsplit(value).path if "://" in value else value
    return normalize_extension(Path(path).suffix)


def detect_extension(mapping: Mapping) -> Optional[str]:
    return (
        extension_from(mapping.filename)
        or extension_from(mapping.object_key)
        or extension_from(mapping.url)
    )


def _ensure_db():
    ensure_tables()


def _open_session():
    return open_session()


def _fail(message: str, code: int = 1):
    print(f"Error: {message}", file=sys.stderr)
    sys.exit(code)


def _short_url(hash_: str, extension: Optional[str] = None) -> str:
    base = get_settings().public_base_url.rstrip("/")
    return f"{base}/{hash_}.{extension}" if extension else f"{base}/{hash_}"


def _print_mapping(m: Mapping):
    target = f"object_key={m.object_key} tier={m.storage_tier or '*'}" if m.object_key else f"url={m.url}"
    print(f"hash={m.hash} {target}")
    print(f"  filename={m.filename} extension={m.file_extension} views={m.view_count}")
    print(f"  password={'yes' if m.password else 'no'} expires_at={m.expires_at} created_at={m.created_at}")
    if m.is_deleted:
        print(f"  deleted_at={m.deleted_at}")
    print(f"  short_url={_short_url(m.hash, m.file_extension)}")


def _get_mapping(db, hash_: str, include_deleted: bool = False) -> Mapping:
    m = db.get(Mapping, hash_)
    if m is None or (m.is_deleted and not include_deleted):
        _fail(f"mapping '{hash_}' not found")
    return m


def _expiry(days: Optional[float]) -> Optional[dt.datetime]:
    if days is None:
        return None
    return dt.datetime.utcnow() + dt.timedelta(days=days)


def _stored_password(password: Optional[str], hashed: bool) -> Optional[str]:
    if not password:
        return None
    return hash_password(password) if hashed else password


def init_db():
    _ensure_db()
    print(f"Tables ready in {get_settings().database_url}")


def _claim_hash(db, hash_: Optional[str]) -> str:
    """A hash no mapping uses yet: ``hash_`` if given and free, else a generated one."""
    if hash_ is None:
        hash_ = generate_hash()
        while db.get(Mapping, hash_) is not None:
            hash_ = generate_hash()
    elif not is_url_safe(hash_):
        _fail(f"hash '{hash_}' must contain only letters, digits, '-' and '_'", code=2)
    elif db.get(Mapping, hash_) is not None:
        _fail(f"mapping '{hash_}' already exists")
    return hash_


def add_mapping(
    hash_: Optional[str],
    url: Optional[str],
    object_key: Optional[str],
    tier: Optional[str] = None,
    filename: Optional[str] = None,
    extension: Optional[str] = None,
    password: Optional[str] = None,
    hashed: bool = False,
    expires_in_days: Optional[float] = None,
) -> Mapping:
    if not url and not object_key:
        _fail("either --url or --object-key is required", code=2)
    if extension is not None and normalize_extension(extension) is None:
        _fail(f"unsupported extension '{extension}'", code=2)
    _ensure_db()
    db = _open_session()
    try:
        hash_ = _claim_hash(db, hash_)
        m = Mapping(
            hash=hash_,
            url=url,
            object_key=object_key,
            storage_tier=tier,
            filename=filename,
            password=_stored_password(password, hashed),
            expires_at=_expiry(expires_in_days),
        )
        m.file_extension = normalize_extension(extension) if extension else detect_extension(m)
        db.add(m)
        db.commit()
        db.refresh(m)
        print(f"Created {_short_url(m.hash, m.file_extension)}")
        _print_mapping(m)
        return m
    finally:
        db.close()


def upload(
    path: str,
    hash_: Optional[str] = None,
    tier: Optional[str] = None,
    password: Optional[str] = None,
    hashed: bool = False,
    expires_in_days: Optional[float] = None,
) -> Mapping:
    """Store a local image in object storage and create its mapping."""
    source = Path(path)
    if not source.is_file():
        _fail(f"file '{path}' not found")
    extension = extension_from(source.name)
    if extension is None:
        _fail(f"'{source.name}' is not a supported image type", code=2)
    # Hash is settled before any object is written
    _ensure_db()
    db = _open_session()
    try:
        hash_ = _claim_hash(db, hash_)
    finally:
        db.close()
    key = f"images/{hash_}.{extension}"
    content_type = mimetypes.guess_type(source.name)[0]
    try:
        stored_tier = put_object(key, source.read_bytes(), content_type, tier)
    except (BotoCoreError, ClientError, LocalS3Error, ValueError) as e:
        _fail(f"upload failed: {e}")
    print(f"Uploaded {source} -> {key} ({stored_tier})")
    return add_mapping(
        hash_,
        url=None,
        object_key=key,
        tier=stored_tier,
        filename=source.name,
        extension=extension,
        password=password,
        hashed=hashed,
        expires_in_days=expires_in_days,
    )


def show_mapping(hash_: str):
    _ensure_db()
    db = _open_session()
    try:
        _print_mapping(_get_mapping(db, hash_, include_deleted=True))
    finally:
        db.close()


def set_password(hash_: str, password: Optional[str], hashed: bool = False):
    _ensure_db()
    db = _open_session()
    try:
        m = _get_mapping(db, hash_)
        m.password = _stored_password(password, hashed)
        db.commit()
        print(f"Password {'set' if m.password else 'cleared'} for {hash_}")
    finally:
        db.close()


def expire_mapping(hash_: str, days: Optional[float] = None, clear: bool = False):
    """Set expiry ``days`` from now, expire immediately, or clear it."""
    _ensure_db()
    db = _open_session()
    try:
        m = _get_mapping(db, hash_)
        if clear:
            m.expires_at = None
        else:
            m.expires_at = _expiry(days) if days is not None else dt.datetime.utcnow()
        db.commit()
        print(f"expires_at for {hash_}: {m.expires_at}")
    finally:
        db.close()


def delete_mapping(hash_: str):
    _ensure_db()
    db = _open_session()
    try:
        m = _get_mapping(db, hash_)
        m.is_deleted = True
        m.deleted_at = dt.datetime.utcnow()
        db.commit()
        print(f"Deleted {hash_}")
    finally:
        db.close()


def backfill_extensions(dry_run: bool = False, batch_size: int = 100):
    _ensure_db()
    db = _open_session()
    updated = skipped = 0
    try:
        pending = (
            db.query(Mapping)
            .filter(Mapping.file_extension.is_(None))
            .order_by(Mapping.hash.asc())
            .all()
        )
        for m in pending:
            extension = detect_extension(m)
            if extension is None:
                skipped += 1
                print(f"  {m.hash}: no extension found")
                continue
            print(f"  {m.hash}: {extension}")
            if not dry_run:
                m.file_extension = extension
                updated += 1
                if updated % batch_size == 0:
                    db.commit()
        if not dry_run:
            db.commit()
        label = "Would update" if dry_run else "Updated"
        print(f"{label} {len(pending) - skipped if dry_run else updated} mappings, {skipped} without a detectable extension")
    finally:
        db.close()


def _help(parser, cmd_parsers, command=None):
    if not command:
        parser.print_help()
        return
    sp = cmd_parsers.get(command)
    if sp is None:
        print(f"Unknown command: {command}", file=sys.stderr)
        parser.print_help()
        sys.exit(1)
    sp.print_help()


def _add_access_options(p):
    p.add_argument("--password", help="Password callers must enter (usually a short numeric code)")
    p.add_argument("--hash-password", dest="hashed", action="store_true", help="Store the password as a bcrypt hash")
    p.add_argument("--expires-in-days", dest="expires_in_days", type=float)


def main(argv=None):
    parser = argparse.ArgumentParser(prog="duk-cli", description="duk.tw – short link maintenance CLI")
    sub = parser.add_subparsers(dest="cmd", required=True)
    cmd_parsers = {}

    p_init = sub.add_parser("init-db", help="Create database tables"); cmd_parsers['init-db'] = p_init
    p_init.set_defaults(func=lambda a: init_db())

    p_add = sub.add_parser("add-mapping", help="Create a short link"); cmd_parsers['add-mapping'] = p_add
    p_add.add_argument("--hash", dest="hash_", help="Explicit hash (generated when omitted)")
    target = p_add.add_mutually_exclusive_group(required=True)
    target.add_argument("--url", help="Externally hosted image URL")
    target.add_argument("--object-key", dest="object_key", help="Key in object storage")
    p_add.add_argument("--public-url", dest="public_url", help="Public URL of the stored object (with --object-key)")
    p_add.add_argument("--tier", help="Preferred storage backend")
    p_add.add_argument("--filename")
    p_add.add_argument("--extension")
    _add_access_options(p_add)
    p_add.set_defaults(func=lambda a: add_mapping(
        a.hash_, a.url or a.public_url, a.object_key, a.tier, a.filename, a.extension,
        a.password, a.hashed, a.expires_in_days,
    ))

    p_up = sub.add_parser("upload", help="Upload a local image and create its short link"); cmd_parsers['upload'] = p_up
    p_up.add_argument("path")
    p_up.add_argument("--hash", dest="hash_")
    p_up.add_argument("--tier", help="Storage backend to write to (defaults to the first configured)")
    _add_access_options(p_up)
    p_up.set_defaults(func=lambda a: upload(a.path, a.hash_, a.tier, a.password, a.hashed, a.expires_in_days))

    p_show = sub.add_parser("show", help="Show a short link"); cmd_parsers['show'] = p_show
    p_show.add_argument("hash")
    p_show.set_defaults(func=lambda a: show_mapping(a.hash))

    p_pw = sub.add_parser("set-password", help="Set or clear a short link's password"); cmd_parsers['set-password'] = p_pw
    p_pw.add_argument("hash")
    pw_grp = p_pw.add_mutually_exclusive_group(required=True)
    pw_grp.add_argument("--password")
    pw_grp.add_argument("--clear", action="store_true")
    p_pw.add_argument("--hash-password", dest="hashed", action="store_true")
    p_pw.set_defaults(func=lambda a: set_password(a.hash, None if a.clear else a.password, a.hashed))

    p_exp = sub.add_parser("expire", help="Expire a short link now, in N days, or never"); cmd_parsers['expire'] = p_exp
    p_exp.add_argument("hash")
    exp_grp = p_exp.add_mutually_exclusive_group()
    exp_grp.add_argument("--in-days", dest="days", type=float)
    exp_grp.add_argument("--clear", action="store_true")
    p_exp.set_defaults(func=lambda a: expire_mapping(a.hash, a.days, a.clear))

    p_del = sub.add_parser("delete", help="Soft-delete a short link"); cmd_parsers['delete'] = p_del
    p_del.add_argument("hash")
    p_del.set_defaults(func=lambda a: delete_mapping(a.hash))

    p_bf = sub.add_parser("backfill-extensions", help="Fill in missing file extensions"); cmd_parsers['backfill-extensions'] = p_bf
    p_bf.add_argument("--dry-run", dest="dry_run", action="store_true")
    p_bf.add_argument("--batch-size", dest="batch_size", type=int, default=100)
    p_bf.set_defaults(func=lambda a: backfill_extensions(a.dry_run, a.batch_size))

    p_help = sub.add_parser("help", help="Show help or help for a command"); cmd_parsers['help'] = p_help
    p_help.add_argument("command", nargs="?")
    p_help.set_defaults(func=lambda a: _help(parser, cmd_parsers, a.command))

    args = parser.parse_args(argv)
    args.func(args)


if __name__ == "__main__":
    main()
