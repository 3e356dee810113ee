"""
Storage abstraction for Tencent COS (S3-compatible) and in-memory testing.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional, Protocol

import boto3
from botocore.config import Config

PNG_CONTENT_TYPE = "image/png"
LONG_CACHE_CONTROL = "public,max-age=31536000"


class StorageClient(Protocol):
    """Defines the operations the controllers need from object storage."""

    def presign_get(self, path: str, expires_in: int = 3600) -> str:
        ...

    def upload_bytes(
        self,
        path: str,
        data: bytes,
        *,
        content_type: str = PNG_CONTENT_TYPE,
        cache_control: str = LONG_CACHE_CONTROL,
    ) -> None:
        ...

    def delete(self, path: str) -> None:
        ...


def blob_path(record_id: str, prefix: str = "templates") -> str:
    return f"{prefix}/{record_id}.png"


# Presigned URLs are re-issued this many seconds before they lapse.
URL_REFRESH_MARGIN = 60.0


@dataclass
class PresignedUrlCache:
    """
    Presigned GET URLs keyed by storage path.

    An entry is only served while it has some life left; past that point
    ``get`` drops it so the caller signs a fresh one.
    """

    entries: dict[str, tuple[str, float]] = field(default_factory=dict)

    def get(self, path: str, now: float) -> Optional[str]:
        entry = self.entries.get(path)
        if entry is None:
            return None
        url, refresh_at = entry
        if now >= refresh_at:
            del self.entries[path]
            return None
        return url

    def put(self, path: str, url: str, now: float, expires_in: float) -> None:
        margin = min(URL_REFRESH_MARGIN, expires_in / 10)
        self.entries[path] = (url, now + expires_in - margin)

    def pop(self, path: str) -> None:
        self.entries.pop(path, None)

    def clear(self) -> None:
        self.entries.clear()


@dataclass
class InMemoryStorageClient:
    """Test double for storage interactions."""

    base_url: str = "https://example.test/storage"
    stored_objects: dict = field(default_factory=dict)
    object_headers: dict = field(default_factory=dict)
    presign_calls: list = field(default_factory=list)

    def presign_get(self, path: str, expires_in: int = 3600) -> str:
        if path not in self.stored_objects:
            raise FileNotFoundError(path)
        self.presign_calls.append(path)
        return f"{self.base_url}/{path}?op=get&expires={expires_in}"

    def upload_bytes(
        self,
        path: str,
        data: bytes,
        *,
        content_type: str = PNG_CONTENT_TYPE,
        cache_control: str = LONG_CACHE_CONTROL,
    ) -> None:
        self.stored_objects[path] = bytes(data)
        self.object_headers[path] = {
            "ContentType": content_type,
            "CacheControl": cache_control,
        }

    def delete(self, path: str) -> None:
        if self.stored_objects.pop(path, None) is None:
            raise FileNotFoundError(path)
        self.object_headers.pop(path, None)


@dataclass
class CosStorageClient:
    """
    S3-compatible storage client for Tencent COS.
    """

    bucket: str
    region: str
    endpoint: str
    access_key_id: str
    secret_access_key: str

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

    def presign_get(self, path: str, expires_in: int = 3600) -> str:
        return self._client.generate_presigned_url(
            ClientMethod="get_object",
            Params={"Bucket": self.bucket, "Key": path},
            ExpiresIn=expires_in,
        )

    def upload_bytes(
        self,
        path: str,
        data: bytes,
        *,
        content_type: str = PNG_CONTENT_TYPE,
        cache_control: str = LONG_CACHE_CONTROL,
    ) -> None:
        self._client.put_object(
            Bucket=self.bucket,
            Key=path,
            Body=data,
            ContentType=content_type,
            CacheControl=cache_control,
        )

    def delete(self, path: str) -> None:
        self._client.delete_object(Bucket=self.bucket, Key=path)
