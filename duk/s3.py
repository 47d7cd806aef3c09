from __future__ import annotations

import boto3
import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterator, List, Optional
from botocore.client import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError

from .config import get_settings
from .local_s3 import LocalS3Client, LocalS3Error

logger = logging.getLogger(__name__)

CHUNK_SIZE = 64 * 1024
_MISSING_CODES = ("404", "NoSuchKey", "NotFound")


@dataclass
class StoredObject:
    body: Any
    content_type: Optional[str]
    content_length: Optional[int]

    def iter_chunks(self) -> Iterator[bytes]:
        """Yield the object's bytes and close the body when done or abandoned."""
        try:
            while True:
                chunk = self.body.read(CHUNK_SIZE)
                if not chunk:
                    break
                yield chunk
        finally:
            self.close()

    def close(self) -> None:
        try:
            self.body.close()
        except (OSError, AttributeError) as e:
            logger.debug(f"Closing object body failed: {e}")


class ObjectStore:
    """Named object-storage backends (S3/R2 via boto3, or a local directory)."""

    def __init__(self):
        self.clients: Dict[str, Any] = {}
        self.buckets: Dict[str, Optional[str]] = {}
        self._init_backends()

    def _boto_client(self, cfg: Dict[str, str]):
        settings = get_settings()
        return boto3.client(
            "s3",
            aws_access_key_id=cfg.get("access_key", settings.s3_access_key),
            aws_secret_access_key=cfg.get("secret_key", settings.s3_secret_key),
            endpoint_url=cfg.get("endpoint_url", settings.s3_endpoint_url),
            region_name=cfg.get("region", settings.s3_region),
            config=BotoConfig(
                signature_version="s3v4",
                s3={"addressing_style": "path" if settings.s3_use_path_style else "virtual"},
                connect_timeout=settings.upstream_timeout_seconds,
                retries={"max_attempts": 1},
            ),
        )

    def _init_backends(self) -> None:
        settings = get_settings()
        if not settings.s3_enabled:
            return
        backends = settings.s3_backends or {}
        if backends:
            for name, cfg in backends.items():
                backend_type = (cfg.get("type") or "s3").lower()
                if backend_type == "local":
                    base_path = cfg.get("base_path")
                    if not base_path:
                        raise ValueError(f"Local backend '{name}' requires 'base_path'")
                    self.clients[name] = LocalS3Client(name=name, base_path=base_path)
                    self.buckets[name] = None
                else:
                    bucket = cfg.get("bucket", settings.s3_bucket)
                    if not bucket:
                        raise ValueError(f"No bucket configured for backend '{name}'")
                    self.clients[name] = self._boto_client(cfg)
                    self.buckets[name] = bucket
        elif settings.s3_bucket:
            self.clients["main"] = self._boto_client({})
            self.buckets["main"] = settings.s3_bucket

    def tiers(self, preferred: Optional[str] = None) -> List[str]:
        names = list(self.clients.keys())
        if preferred in self.clients:
            names.remove(preferred)
            names.insert(0, preferred)
        return names

    def open(self, key: str, tier: Optional[str] = None) -> StoredObject:
        for name in self.tiers(tier):
            client = self.clients[name]
            try:
                response = client.get_object(Bucket=self.buckets[name], Key=key)
            except (BotoCoreError, ClientError, LocalS3Error) as e:
                if isinstance(e, ClientError):
                    if e.response.get("Error", {}).get("Code") not in _MISSING_CODES:
                        logger.warning(f"Error reading object '{key}' from tier '{name}': {e}")
                else:
                    logger.warning(f"Error reading object '{key}' from tier '{name}': {e}")
                continue
            return StoredObject(
                body=response["Body"],
                content_type=response.get("ContentType"),
                content_length=response.get("ContentLength"),
            )
        raise FileNotFoundError(f"Object '{key}' not found in any configured tier")

    def put(self, key: str, body: bytes, content_type: Optional[str] = None, tier: Optional[str] = None) -> str:
        names = self.tiers(tier)
        if not names:
            raise ValueError("No object storage backend configured")
        name = names[0]
        params: Dict[str, Any] = {"Bucket": self.buckets[name], "Key": key, "Body": body}
        if content_type:
            params["ContentType"] = content_type
        self.clients[name].put_object(**params)
        logger.info(f"Stored {key} in {name} tier")
        return name


_store: Optional[ObjectStore] = None


def get_object_store() -> ObjectStore:
    global _store
    if _store is None:
        _store = ObjectStore()
    return _store


def reset_object_store() -> None:
    """Forget the cached backends so the next call rebuilds them from settings."""
    global _store
    _store = None


def open_object(key: str, tier: Optional[str] = None) -> StoredObject:
    return get_object_store().open(key, tier)


def put_object(key: str, body: bytes, content_type: Optional[str] = None, tier: Optional[str] = None) -> str:
    return get_object_store().put(key, body, content_type, tier)


def object_storage_available() -> bool:
    return get_settings().s3_enabled and bool(get_object_store().clients)
