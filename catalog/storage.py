"""
Storage abstraction for S3-compatible object storage and in-memory testing.

Records reference their images by public URL, so deletion is keyed on
that URL rather than on a bucket key.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional, Protocol
from urllib.parse import unquote, urlparse

import boto3
from botocore.config import Config


class StorageClient(Protocol):
    """Defines the operations the API needs from object storage."""

    def delete(self, url: str) -> None:
        ...


@dataclass
class InMemoryStorageClient:
    """Test double for storage interactions."""

    stored_objects: dict = field(default_factory=dict)
    deleted: list[str] = field(default_factory=list)
    fail_on_delete: bool = False

    def put(self, url: str, payload: bytes = b"") -> str:
        self.stored_objects[url] = payload
        return url

    def delete(self, url: str) -> None:
        if self.fail_on_delete:
            raise RuntimeError(f"Simulated storage failure deleting {url}")
        self.stored_objects.pop(url, None)
        self.deleted.append(url)


@dataclass
class S3StorageClient:
    """
    S3-compatible storage client for record images.
    """

    bucket: str
    region: str = ""
    endpoint: str = ""
    access_key_id: str = ""
    secret_access_key: str = ""
    public_base_url: Optional[str] = None

    def __post_init__(self):
        config = Config(signature_version="s3v4")
        # Empty strings fall back to the default AWS credential/endpoint chain.
        self._client = boto3.client(
            "s3",
            endpoint_url=self.endpoint or None,
            region_name=self.region or None,
            aws_access_key_id=self.access_key_id or None,
            aws_secret_access_key=self.secret_access_key or None,
            config=config,
        )

    def key_for_url(self, url: str) -> str:
        if self.public_base_url:
            base = self.public_base_url.rstrip("/") + "/"
            if url.startswith(base):
                return unquote(url[len(base):])
        path = unquote(urlparse(url).path).lstrip("/")
        # Path-style URLs put the bucket name first.
        prefix = f"{self.bucket}/"
        if path.startswith(prefix):
            path = path[len(prefix):]
        if not path:
            raise ValueError(f"Cannot derive an object key from {url!r}")
        return path

    def delete(self, url: str) -> None:
        self._client.delete_object(Bucket=self.bucket, Key=self.key_for_url(url))
