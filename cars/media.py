"""
cars/media.py -- Image storage backends for car listings.

Uploaded images are handed to a MediaStore, which persists the bytes and
returns a stable URL. The rest of the system treats those URLs as opaque
strings: they are stored on the Car record and echoed back to clients.

Backends:
  LocalMediaStore -- writes files under a directory that the API serves as
      static files (default for development).
  S3MediaStore    -- puts objects into an S3-compatible bucket via boto3 and
      returns their public URL (hosted deployments).

Every backend failure is raised as MediaUploadError so callers can abort the
enclosing create/update without knowing which backend is configured.
"""

from __future__ import annotations

import logging
import uuid
from pathlib import Path, PurePosixPath
from typing import TYPE_CHECKING, Protocol

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

if TYPE_CHECKING:
    from core.config import Settings

logger = logging.getLogger("carlistings.cars")

_ALLOWED_SUFFIXES = {".jpg", ".jpeg", ".png", ".gif", ".webp"}


class MediaUploadError(Exception):
    """Raised when the media backend cannot store or remove an image."""


class MediaStore(Protocol):
    """Defines the operations the API needs from image storage."""

    def save(self, data: bytes, filename: str, content_type: str) -> str:
        ...

    def delete(self, url: str) -> None:
        ...


def _object_name(filename: str) -> str:
    """Return a collision-free name that keeps a known image extension."""
    suffix = PurePosixPath(filename or "").suffix.lower()
    if suffix not in _ALLOWED_SUFFIXES:
        suffix = ""
    return f"{uuid.uuid4().hex}{suffix}"


class LocalMediaStore:
    """Stores images as files in a local directory.

    URLs are url_prefix + "/" + file name; api/main.py mounts the directory
    at url_prefix so they resolve.
    """

    def __init__(self, directory: str | Path, url_prefix: str = "/uploads") -> None:
        self.directory = Path(directory)
        self.url_prefix = url_prefix.rstrip("/")
        self.directory.mkdir(parents=True, exist_ok=True)

    def save(self, data: bytes, filename: str, content_type: str) -> str:
        name = _object_name(filename)
        try:
            (self.directory / name).write_bytes(data)
        except OSError as exc:
            raise MediaUploadError(f"could not write {name}") from exc
        return f"{self.url_prefix}/{name}"

    def delete(self, url: str) -> None:
        if not url.startswith(self.url_prefix + "/"):
            return
        # Only the final path component is used, so a crafted URL cannot
        # reach outside the media directory.
        name = PurePosixPath(url).name
        try:
            (self.directory / name).unlink(missing_ok=True)
        except OSError as exc:
            raise MediaUploadError(f"could not remove {name}") from exc


class S3MediaStore:
    """Stores images in an S3-compatible bucket (AWS S3, Cloudflare R2, MinIO, COS)."""

    def __init__(
        self,
        bucket: str,
        region: str = "",
        endpoint_url: str = "",
        access_key_id: str = "",
        secret_access_key: str = "",
        public_base_url: str = "",
        key_prefix: str = "cars",
        client=None,
    ) -> None:
        self.bucket = bucket
        self.key_prefix = key_prefix.strip("/")
        if public_base_url:
            self.public_base_url = public_base_url.rstrip("/")
        elif endpoint_url:
            self.public_base_url = f"{endpoint_url.rstrip('/')}/{bucket}"
        else:
            self.public_base_url = f"https://{bucket}.s3.{region or 'us-east-1'}.amazonaws.com"
        if client is None:
            client = boto3.client(
                "s3",
                endpoint_url=endpoint_url or None,
                region_name=region or None,
                aws_access_key_id=access_key_id or None,
                aws_secret_access_key=secret_access_key or None,
                config=Config(signature_version="s3v4"),
            )
        self._client = client

    def save(self, data: bytes, filename: str, content_type: str) -> str:
        key = f"{self.key_prefix}/{_object_name(filename)}"
        try:
            self._client.put_object(
                Bucket=self.bucket,
                Key=key,
                Body=data,
                ContentType=content_type or "application/octet-stream",
            )
        except (BotoCoreError, ClientError) as exc:
            raise MediaUploadError(f"could not upload {key}") from exc
        return f"{self.public_base_url}/{key}"

    def delete(self, url: str) -> None:
        base = self.public_base_url + "/"
        if not url.startswith(base):
            return
        key = url[len(base) :]
        try:
            self._client.delete_object(Bucket=self.bucket, Key=key)
        except (BotoCoreError, ClientError) as exc:
            raise MediaUploadError(f"could not delete {key}") from exc


def build_media_store(settings: Settings) -> MediaStore:
    """Construct the media backend selected by MEDIA_BACKEND."""
    if settings.media_backend == "s3":
        logger.info("Media backend: s3 (bucket=%s)", settings.s3_bucket)
        return S3MediaStore(
            bucket=settings.s3_bucket,
            region=settings.s3_region,
            endpoint_url=settings.s3_endpoint_url,
            access_key_id=settings.s3_access_key_id,
            secret_access_key=settings.s3_secret_access_key,
            public_base_url=settings.s3_public_base_url,
        )
    logger.info("Media backend: local (%s)", settings.media_dir)
    return LocalMediaStore(settings.media_dir, settings.media_url_prefix)
