"""
Object storage abstraction for uploaded images.

Implementations: Firebase/GCS buckets, S3-compatible buckets (Tencent COS,
AWS) through boto3, and an in-memory client for tests.
"""

from __future__ import annotations

import io
import logging
from dataclasses import dataclass
from typing import Callable, Optional, Protocol
from urllib.parse import quote

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError
from firebase_admin import storage as firebase_storage
from google.api_core import exceptions as google_exceptions

from cms.errors import StoreUnavailableError

logger = logging.getLogger(__name__)

# Called with (bytes_transferred, total_bytes) as an upload advances.
ProgressCallback = Callable[[int, int], None]


class StorageClient(Protocol):
    """Defines the operations the gallery needs from object storage."""

    def upload_bytes(
        self,
        path: str,
        data: bytes,
        content_type: str = "application/octet-stream",
        on_progress: Optional[ProgressCallback] = None,
    ) -> str:
        """Stores the object and returns its public URL."""
        ...

    def delete(self, path: str) -> None:
        """Removes the object; raises FileNotFoundError if it does not exist."""
        ...

    def public_url(self, path: str) -> str:
        ...


@dataclass
class InMemoryStorageClient:
    """Test double for storage interactions."""

    base_url: str = "https://example.test/storage"
    stored_objects: dict = None
    chunk_size: int = 64 * 1024

    def __post_init__(self):
        if self.stored_objects is None:
            self.stored_objects = {}

    def upload_bytes(
        self,
        path: str,
        data: bytes,
        content_type: str = "application/octet-stream",
        on_progress: Optional[ProgressCallback] = None,
    ) -> str:
        total = len(data)
        if on_progress:
            for sent in range(self.chunk_size, total, self.chunk_size):
                on_progress(sent, total)
        self.stored_objects[path] = bytes(data)
        if on_progress:
            on_progress(total, total)
        return self.public_url(path)

    def delete(self, path: str) -> None:
        if path not in self.stored_objects:
            raise FileNotFoundError(path)
        del self.stored_objects[path]

    def public_url(self, path: str) -> str:
        return f"{self.base_url}/{quote(path)}"

    def get_bytes(self, path: str) -> bytes:
        stored = self.stored_objects.get(path)
        if stored is None:
            raise FileNotFoundError(path)
        return stored


@dataclass
class CosStorageClient:
    """
    S3-compatible storage client for Tencent COS or AWS S3.
    """

    bucket: str
    region: str
    endpoint: str
    access_key_id: str
    secret_access_key: str
    public_base_url: str = ""

    def __post_init__(self):
        # Use virtual-hosted style addressing to satisfy COS requirements.
        config = Config(
            s3={"addressing_style": "virtual"},
            signature_version="s3v4",
        )
        self._client = boto3.client(
            "s3",
            endpoint_url=self.endpoint,
            region_name=self.region,
            aws_access_key_id=self.access_key_id,
            aws_secret_access_key=self.secret_access_key,
            config=config,
        )

    def upload_bytes(
        self,
        path: str,
        data: bytes,
        content_type: str = "application/octet-stream",
        on_progress: Optional[ProgressCallback] = None,
    ) -> str:
        total = len(data)
        sent = 0

        def _callback(chunk: int) -> None:
            nonlocal sent
            sent += chunk
            if on_progress:
                on_progress(min(sent, total), total)

        try:
            self._client.upload_fileobj(
                io.BytesIO(data),
                self.bucket,
                path,
                ExtraArgs={"ContentType": content_type},
                Callback=_callback,
            )
        except (BotoCoreError, ClientError) as e:
            raise StoreUnavailableError(f"Uploading {path}", e) from e
        return self.public_url(path)

    def delete(self, path: str) -> None:
        try:
            self._client.head_object(Bucket=self.bucket, Key=path)
        except ClientError as e:
            if e.response.get("Error", {}).get("Code") in ("404", "NoSuchKey"):
                raise FileNotFoundError(path) from e
            raise StoreUnavailableError(f"Deleting {path}", e) from e
        try:
            self._client.delete_object(Bucket=self.bucket, Key=path)
        except (BotoCoreError, ClientError) as e:
            raise StoreUnavailableError(f"Deleting {path}", e) from e

    def public_url(self, path: str) -> str:
        base = self.public_base_url or f"{self.endpoint.rstrip('/')}/{self.bucket}"
        return f"{base.rstrip('/')}/{quote(path)}"


@dataclass
class GcsStorageClient:
    """Firebase Storage (Google Cloud Storage) client via firebase_admin."""

    bucket_name: Optional[str] = None

    def _bucket(self):
        return firebase_storage.bucket(self.bucket_name)

    def upload_bytes(
        self,
        path: str,
        data: bytes,
        content_type: str = "application/octet-stream",
        on_progress: Optional[ProgressCallback] = None,
    ) -> str:
        blob = self._bucket().blob(path)
        try:
            blob.upload_from_string(data, content_type=content_type)
        except google_exceptions.GoogleAPIError as e:
            raise StoreUnavailableError(f"Uploading {path}", e) from e
        # GCS uploads are single-shot; report completion only.
        if on_progress:
            on_progress(len(data), len(data))
        return blob.public_url

    def delete(self, path: str) -> None:
        try:
            self._bucket().blob(path).delete()
        except google_exceptions.NotFound as e:
            raise FileNotFoundError(path) from e
        except google_exceptions.GoogleAPIError as e:
            raise StoreUnavailableError(f"Deleting {path}", e) from e

    def public_url(self, path: str) -> str:
        return self._bucket().blob(path).public_url
