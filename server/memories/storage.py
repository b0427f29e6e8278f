"""
Object storage abstraction for S3-compatible buckets and in-memory testing.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Protocol

import boto3
from botocore.config import Config
from botocore.exceptions import ClientError

NOT_FOUND_CODES = {"NoSuchKey", "404", "NotFound"}


class ObjectNotFoundError(KeyError):
    """Raised when a requested key does not exist in the bucket."""


class ObjectStore(Protocol):
    """Defines the operations the API needs from object storage."""

    def put_object(
        self,
        key: str,
        body: bytes,
        content_type: str,
        public: bool = False,
    ) -> str:
        ...

    def get_object(self, key: str) -> bytes:
        ...

    def public_url(self, key: str) -> str:
        ...


@dataclass
class InMemoryObjectStore:
    """Test double for storage interactions."""

    base_url: str = "https://example.test/storage"
    stored_objects: dict = None

    def __post_init__(self):
        if self.stored_objects is None:
            self.stored_objects = {}

    def put_object(
        self,
        key: str,
        body: bytes,
        content_type: str,
        public: bool = False,
    ) -> str:
        self.stored_objects[key] = {
            "body": bytes(body),
            "content_type": content_type,
            "public": public,
        }
        return self.public_url(key)

    def get_object(self, key: str) -> bytes:
        stored = self.stored_objects.get(key)
        if stored is None:
            raise ObjectNotFoundError(key)
        return stored["body"]

    def public_url(self, key: str) -> str:
        return f"{self.base_url}/{key}"


@dataclass
class S3ObjectStore:
    """
    S3-compatible storage client (Yandex Object Storage, Selectel, AWS, ...).
    """

    bucket: str
    endpoint: str
    access_key_id: str
    secret_access_key: str
    region: str = ""
    public_base_url: Optional[str] = None

    def __post_init__(self):
        config = Config(
            s3={"addressing_style": "path"},
            signature_version="s3v4",
        )
        self._client = boto3.client(
            "s3",
            endpoint_url=self.endpoint or None,
            region_name=self.region or None,
            aws_access_key_id=self.access_key_id,
            aws_secret_access_key=self.secret_access_key,
            config=config,
        )

    def put_object(
        self,
        key: str,
        body: bytes,
        content_type: str,
        public: bool = False,
    ) -> str:
        params = {
            "Bucket": self.bucket,
            "Key": key,
            "Body": body,
            "ContentType": content_type,
        }
        if public:
            params["ACL"] = "public-read"
        self._client.put_object(**params)
        return self.public_url(key)

    def get_object(self, key: str) -> bytes:
        try:
            response = self._client.get_object(Bucket=self.bucket, Key=key)
        except ClientError as exc:
            code = str(exc.response.get("Error", {}).get("Code", ""))
            if code in NOT_FOUND_CODES:
                raise ObjectNotFoundError(key) from exc
            raise
        return response["Body"].read()

    def public_url(self, key: str) -> str:
        if self.public_base_url:
            return f"{self.public_base_url.rstrip('/')}/{key}"
        endpoint = (self.endpoint or "https://s3.amazonaws.com").rstrip("/")
        return f"{endpoint}/{self.bucket}/{key}"
