"""Object storage: Cloudflare R2 through the S3 API, with a local-disk fallback."""

from __future__ import annotations

import hashlib
import time
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Iterable

import boto3
import jwt
from botocore.config import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError
from flask import current_app
from werkzeug.utils import secure_filename

from lens.errors import AuthzError, StorageError

THUMB_SUFFIX = "thumb"
LOCAL_TOKEN_ALG = "HS256"


@dataclass
class StoredObject:
    key: str
    url: str
    etag: str | None = None


def build_key(
    category: str,
    owner_id: str,
    ext: str = "jpg",
    *,
    suffix: str | None = None,
    filename: str | None = None,
    timestamp: int | None = None,
    random_id: str | None = None,
) -> str:
    """Build `{env}/{category}/{owner}/{timestamp}_{random}[_suffix].{ext}`.

    When ``filename`` is given (client-side uploads) the sanitised name replaces
    the suffix and extension: `{env}/{category}/{owner}/{timestamp}_{random}_{filename}`.
    """
    prefix = current_app.config.get("ENV_PREFIX") or "development"
    ts = timestamp if timestamp is not None else int(time.time() * 1000)
    rid = random_id or uuid.uuid4().hex
    stem = f"{ts}_{rid}"
    if filename:
        safe = secure_filename(filename) or "upload"
        return f"{prefix}/{category}/{owner_id}/{stem}_{safe}"
    if suffix:
        stem = f"{stem}_{suffix}"
    return f"{prefix}/{category}/{owner_id}/{stem}.{ext.lstrip('.')}"


def thumbnail_key_for(key: str) -> str:
    """Derive the thumbnail key that sits next to a main image key."""
    base, _, _ext = key.rpartition(".")
    return f"{base or key}_{THUMB_SUFFIX}.jpg"


class StorageAdapter:
    """Interface shared by the R2 and local backends."""

    name = "base"

    def put(self, data: bytes, key: str, content_type: str, metadata: dict[str, str] | None = None) -> StoredObject:
        raise NotImplementedError

    def delete(self, key: str) -> bool:
        raise NotImplementedError

    def presigned_upload(self, key: str, content_type: str, ttl: int | None = None) -> str:
        raise NotImplementedError

    def presigned_download(self, key: str, ttl: int | None = None) -> str:
        raise NotImplementedError

    def public_url(self, key: str) -> str:
        raise NotImplementedError

    def _ttl(self, ttl: int | None) -> int:
        return int(ttl or current_app.config.get("PRESIGNED_URL_TTL", 3600))


class R2Storage(StorageAdapter):
    name = "r2"

    def __init__(
        self,
        *,
        access_key_id: str,
        secret_access_key: str,
        bucket: str,
        endpoint: str,
        public_url: str | None = None,
        client=None,
    ):
        self.bucket = bucket
        self.endpoint = endpoint.rstrip("/")
        self.public_base = (public_url or f"{self.endpoint}/{bucket}").rstrip("/")
        self.client = client or boto3.client(
            "s3",
            endpoint_url=self.endpoint,
            aws_access_key_id=access_key_id,
            aws_secret_access_key=secret_access_key,
            region_name="auto",
            config=BotoConfig(signature_version="s3v4"),
        )

    @classmethod
    def from_config(cls, config) -> "R2Storage":
        endpoint = config.get("R2_ENDPOINT") or f"https://{config['R2_ACCOUNT_ID']}.r2.cloudflarestorage.com"
        return cls(
            access_key_id=config["R2_ACCESS_KEY_ID"],
            secret_access_key=config["R2_SECRET_ACCESS_KEY"],
            bucket=config["R2_BUCKET_NAME"],
            endpoint=endpoint,
            public_url=config.get("R2_PUBLIC_URL"),
        )

    def put(self, data, key, content_type, metadata=None):
        try:
            response = self.client.put_object(
                Bucket=self.bucket,
                Key=key,
                Body=data,
                ContentType=content_type,
                Metadata=metadata or {},
                CacheControl="public, max-age=31536000",
            )
        except (BotoCoreError, ClientError) as e:
            current_app.logger.error(f"R2 upload failed for {key}: {e}")
            raise StorageError("Failed to upload file to storage")
        return StoredObject(key=key, url=self.public_url(key), etag=(response.get("ETag") or "").strip('"') or None)

    def delete(self, key):
        try:
            self.client.delete_object(Bucket=self.bucket, Key=key)
        except (BotoCoreError, ClientError) as e:
            current_app.logger.error(f"R2 delete failed for {key}: {e}")
            raise StorageError("Failed to delete file from storage")
        return True

    def presigned_upload(self, key, content_type, ttl=None):
        try:
            return self.client.generate_presigned_url(
                "put_object",
                Params={"Bucket": self.bucket, "Key": key, "ContentType": content_type},
                ExpiresIn=self._ttl(ttl),
            )
        except (BotoCoreError, ClientError) as e:
            current_app.logger.error(f"Failed to presign upload for {key}: {e}")
            raise StorageError("Failed to generate upload URL")

    def presigned_download(self, key, ttl=None):
        try:
            return self.client.generate_presigned_url(
                "get_object",
                Params={"Bucket": self.bucket, "Key": key},
                ExpiresIn=self._ttl(ttl),
            )
        except (BotoCoreError, ClientError) as e:
            current_app.logger.error(f"Failed to presign download for {key}: {e}")
            raise StorageError("Failed to generate download URL")

    def public_url(self, key):
        return f"{self.public_base}/{key}"


class LocalStorage(StorageAdapter):
    """Stores objects under a directory and signs URLs served by the uploads blueprint."""

    name = "local"

    def __init__(self, root: str | Path, public_url: str, secret: str):
        self.root = Path(root).resolve()
        self.public_base = public_url.rstrip("/")
        self.secret = secret

    @classmethod
    def from_config(cls, config) -> "LocalStorage":
        return cls(config.get("UPLOAD_FOLDER", "uploads"), config["LOCAL_PUBLIC_URL"], config["SECRET_KEY"])

    def path_for(self, key: str) -> Path:
        path = (self.root / key).resolve()
        if path == self.root or self.root not in path.parents:
            raise StorageError("Invalid storage key")
        return path

    def put(self, data, key, content_type, metadata=None):
        path = self.path_for(key)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(data)
        except OSError as e:
            current_app.logger.error(f"Local upload failed for {key}: {e}")
            raise StorageError("Failed to upload file to storage")
        return StoredObject(key=key, url=self.public_url(key), etag=hashlib.md5(data).hexdigest())

    def delete(self, key):
        try:
            self.path_for(key).unlink(missing_ok=True)
        except OSError as e:
            current_app.logger.error(f"Local delete failed for {key}: {e}")
            raise StorageError("Failed to delete file from storage")
        return True

    def sign(self, key: str, op: str, ttl: int | None = None, content_type: str | None = None) -> str:
        claims = {
            "key": key,
            "op": op,
            "exp": datetime.now(timezone.utc) + timedelta(seconds=self._ttl(ttl)),
        }
        if content_type:
            claims["ct"] = content_type
        return jwt.encode(claims, self.secret, algorithm=LOCAL_TOKEN_ALG)

    def verify(self, token: str, key: str, op: str) -> dict:
        try:
            claims = jwt.decode(token, self.secret, algorithms=[LOCAL_TOKEN_ALG])
        except jwt.InvalidTokenError:
            raise AuthzError("Invalid or expired signature")
        if claims.get("key") != key or claims.get("op") != op:
            raise AuthzError("Invalid or expired signature")
        return claims

    def presigned_upload(self, key, content_type, ttl=None):
        return f"{self.public_url(key)}?token={self.sign(key, 'put', ttl, content_type)}"

    def presigned_download(self, key, ttl=None):
        return f"{self.public_url(key)}?token={self.sign(key, 'get', ttl)}"

    def public_url(self, key):
        return f"{self.public_base}/{key}"


def r2_configured(config) -> bool:
    required = ("R2_ACCESS_KEY_ID", "R2_SECRET_ACCESS_KEY", "R2_BUCKET_NAME")
    return all(config.get(name) for name in required) and bool(
        config.get("R2_ENDPOINT") or config.get("R2_ACCOUNT_ID")
    )


def get_storage() -> StorageAdapter:
    """Return the storage backend for the current app, building it on first use."""
    storage = current_app.extensions.get("lens.storage")
    if storage is None:
        if r2_configured(current_app.config):
            storage = R2Storage.from_config(current_app.config)
        else:
            current_app.logger.warning("R2 credentials not configured, using local file storage")
            storage = LocalStorage.from_config(current_app.config)
        current_app.extensions["lens.storage"] = storage
    return storage


def delete_quietly(keys: Iterable[str | None]) -> int:
    """Best-effort delete used after the database change is committed.

    Failures are logged and skipped; returns how many objects were removed.
    """
    storage = get_storage()
    removed = 0
    for key in keys:
        if not key:
            continue
        try:
            storage.delete(key)
            removed += 1
        except StorageError as e:
            current_app.logger.warning(f"Orphaned storage object {key}: {e.message}")
    return removed


__all__ = [
    "StoredObject",
    "StorageAdapter",
    "R2Storage",
    "LocalStorage",
    "build_key",
    "thumbnail_key_for",
    "r2_configured",
    "get_storage",
    "delete_quietly",
]
