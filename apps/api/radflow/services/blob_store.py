"""Blob store interface + backends for report documents and study attachments.

Keys are namespaced ``<org>/studies/<study_id>/<ms>_<hex>_<file name>``.
Backend errors surface as DownstreamUnavailable; nothing is retried here.
"""

from __future__ import annotations

import json
import os
import secrets
import shutil
import time
from typing import Protocol

from botocore.exceptions import BotoCoreError, ClientError

from radflow.core.config import settings
from radflow.core.exceptions import DownstreamUnavailable, NotFound

_UNSAFE_KEY_CHARS = set('/\\:*?"<>|')


class BlobStore(Protocol):
    key: str

    def put(self, storage_key: str, data: bytes, content_type: str, metadata: dict[str, str] | None = None) -> None:
        """Store bytes under a key (overwrites)."""

    def get(self, storage_key: str) -> bytes:
        """Return stored bytes; NotFound when missing."""

    def delete(self, storage_key: str) -> None:
        """Delete a key; missing keys are not an error."""

    def copy(self, source_key: str, dest_key: str, metadata: dict[str, str] | None = None) -> None:
        """Server-side copy; metadata replaces the source metadata when given."""

    def presigned_url(self, storage_key: str, disposition: str = "download", ttl_seconds: int | None = None) -> str:
        """Time-limited URL for ``download`` (attachment) or ``inline`` viewing."""


def _safe_file_name(file_name: str) -> str:
    cleaned = "".join("_" if ch in _UNSAFE_KEY_CHARS else ch for ch in (file_name or "").strip())
    return cleaned or "file"


def build_storage_key(organization_identifier: str, study_id: object, file_name: str) -> str:
    """Build a tenant-scoped storage key for a study document."""
    return (
        f"{organization_identifier}/studies/{study_id}/"
        f"{time.time_ns() // 1_000_000}_{secrets.token_hex(4)}_{_safe_file_name(file_name)}"
    )


# =============================================================================
# S3 (and S3-compatible) backend
# =============================================================================

class S3BlobStore:
    key = "s3"

    def __init__(self, bucket: str | None = None, client=None):
        from radflow.services import storage_client

        self.bucket = bucket or settings.S3_BUCKET
        self.client = client or storage_client.get_s3_client()

    def put(self, storage_key, data, content_type, metadata=None):
        try:
            self.client.put_object(
                Bucket=self.bucket,
                Key=storage_key,
                Body=data,
                ContentType=content_type,
                Metadata=metadata or {},
            )
        except (BotoCoreError, ClientError) as exc:
            raise DownstreamUnavailable("Document storage unavailable", detail=str(exc)) from exc

    def get(self, storage_key):
        try:
            response = self.client.get_object(Bucket=self.bucket, Key=storage_key)
            return response["Body"].read()
        except ClientError as exc:
            code = exc.response.get("Error", {}).get("Code")
            if code in {"NoSuchKey", "404"}:
                raise NotFound("Document not found") from exc
            raise DownstreamUnavailable("Document storage unavailable", detail=str(exc)) from exc
        except BotoCoreError as exc:
            raise DownstreamUnavailable("Document storage unavailable", detail=str(exc)) from exc

    def delete(self, storage_key):
        try:
            self.client.delete_object(Bucket=self.bucket, Key=storage_key)
        except (BotoCoreError, ClientError) as exc:
            raise DownstreamUnavailable("Document storage unavailable", detail=str(exc)) from exc

    def copy(self, source_key, dest_key, metadata=None):
        params = {
            "Bucket": self.bucket,
            "Key": dest_key,
            "CopySource": {"Bucket": self.bucket, "Key": source_key},
        }
        if metadata is not None:
            params["Metadata"] = metadata
            params["MetadataDirective"] = "REPLACE"
        try:
            self.client.copy_object(**params)
        except (BotoCoreError, ClientError) as exc:
            raise DownstreamUnavailable("Document copy failed", detail=str(exc)) from exc

    def presigned_url(self, storage_key, disposition="download", ttl_seconds=None):
        params = {"Bucket": self.bucket, "Key": storage_key}
        if disposition == "download":
            file_name = storage_key.rsplit("/", 1)[-1]
            params["ResponseContentDisposition"] = f'attachment; filename="{file_name}"'
        else:
            params["ResponseContentDisposition"] = "inline"
        try:
            return self.client.generate_presigned_url(
                "get_object",
                Params=params,
                ExpiresIn=ttl_seconds or settings.SIGNED_URL_EXPIRY_SECONDS,
            )
        except (BotoCoreError, ClientError) as exc:
            raise DownstreamUnavailable("Could not sign document URL", detail=str(exc)) from exc


# =============================================================================
# Local filesystem backend (dev/test)
# =============================================================================

class LocalBlobStore:
    """Stores blobs under LOCAL_STORAGE_PATH; metadata kept in a sidecar JSON file."""

    key = "local"

    def __init__(self, root: str | None = None):
        self.root = root or settings.LOCAL_STORAGE_PATH

    def _path(self, storage_key: str) -> str:
        path = os.path.normpath(os.path.join(self.root, storage_key))
        if not path.startswith(os.path.normpath(self.root) + os.sep):
            raise ValueError("Storage key escapes storage root")
        return path

    def put(self, storage_key, data, content_type, metadata=None):
        path = self._path(storage_key)
        try:
            os.makedirs(os.path.dirname(path), exist_ok=True)
            with open(path, "wb") as f:
                f.write(data)
            with open(path + ".meta.json", "w") as f:
                json.dump({"content_type": content_type, "metadata": metadata or {}}, f)
        except OSError as exc:
            raise DownstreamUnavailable("Document storage unavailable", detail=str(exc)) from exc

    def get(self, storage_key):
        path = self._path(storage_key)
        if not os.path.exists(path):
            raise NotFound("Document not found")
        with open(path, "rb") as f:
            return f.read()

    def delete(self, storage_key):
        path = self._path(storage_key)
        for candidate in (path, path + ".meta.json"):
            if os.path.exists(candidate):
                os.remove(candidate)

    def copy(self, source_key, dest_key, metadata=None):
        source = self._path(source_key)
        dest = self._path(dest_key)
        if not os.path.exists(source):
            raise NotFound("Source document not found")
        try:
            os.makedirs(os.path.dirname(dest), exist_ok=True)
            shutil.copyfile(source, dest)
            source_meta = {}
            if os.path.exists(source + ".meta.json"):
                with open(source + ".meta.json") as f:
                    source_meta = json.load(f)
            if metadata is not None:
                source_meta["metadata"] = metadata
            with open(dest + ".meta.json", "w") as f:
                json.dump(source_meta, f)
        except OSError as exc:
            raise DownstreamUnavailable("Document copy failed", detail=str(exc)) from exc

    def presigned_url(self, storage_key, disposition="download", ttl_seconds=None):
        # Local: served by the dev file route
        return f"/documents/local/{storage_key}?disposition={disposition}"


def get_blob_store() -> BlobStore:
    """Return the configured blob store backend."""
    if settings.STORAGE_BACKEND == "s3":
        return S3BlobStore()
    return LocalBlobStore()
