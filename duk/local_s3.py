from __future__ import annotations

import mimetypes
import os
import tempfile
from email.utils import formatdate
from pathlib import Path
from typing import Any, BinaryIO, Dict

from botocore.exceptions import ClientError


class LocalS3Error(RuntimeError):
    """Key resolves outside the backend's directory."""


class LocalS3Client:
    """A directory that answers the boto3 S3 calls ObjectStore makes.

    Used for single-host deployments and tests; the ``Bucket`` argument is
    accepted and ignored.
    """

    def __init__(self, name: str, base_path: str) -> None:
        self.name = name
        self.root = Path(base_path).expanduser().resolve()
        self.root.mkdir(parents=True, exist_ok=True)

    def _path(self, key: str) -> Path:
        path = (self.root / key.lstrip("/")).resolve()
        if path == self.root or not path.is_relative_to(self.root):
            raise LocalS3Error(f"Key {key!r} escapes {self.root}")
        return path

    def _existing(self, key: str, operation: str) -> Path:
        path = self._path(key)
        if not path.is_file():
            raise ClientError({"Error": {"Code": "NoSuchKey", "Message": f"{key} not found"}}, operation)
        return path

    @staticmethod
    def _metadata(path: Path) -> Dict[str, Any]:
        st = path.stat()
        return {
            "ContentLength": st.st_size,
            "ContentType": mimetypes.guess_type(path.name)[0] or "application/octet-stream",
            "LastModified": formatdate(st.st_mtime, usegmt=True),
        }

    def head_object(self, *, Bucket: str | None, Key: str) -> Dict[str, Any]:
        return self._metadata(self._existing(Key, "HeadObject"))

    def get_object(self, *, Bucket: str | None, Key: str) -> Dict[str, Any]:
        path = self._existing(Key, "GetObject")
        return {**self._metadata(path), "Body": path.open("rb")}

    def put_object(
        self,
        *,
        Bucket: str | None,
        Key: str,
        Body: bytes | BinaryIO,
        ContentType: str | None = None,
    ) -> Dict[str, Any]:
        # Written to a sibling temp file and renamed, so readers never see a partial image
        path = self._path(Key)
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(dir=path.parent, prefix=".upload-")
        try:
            with os.fdopen(fd, "wb") as fh:
                if isinstance(Body, (bytes, bytearray)):
                    fh.write(Body)
                else:
                    for chunk in iter(lambda: Body.read(1024 * 1024), b""):
                        fh.write(chunk)
            os.replace(tmp, path)
        except BaseException:
            Path(tmp).unlink(missing_ok=True)
            raise
        return {"ContentLength": path.stat().st_size}
