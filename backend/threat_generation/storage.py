"""
Storage resolver adapters.

The pipeline only needs two things from file storage: a fetchable URL for
binary assets and the raw bytes of inline text files. Both local disk and
S3 implement that seam.
"""

from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Optional
from urllib.parse import quote

import boto3
from botocore.config import Config
from config import GenerationConfig
from constants import (
    AWS_SERVICE_S3,
    DEFAULT_FILE_URL_EXPIRY_SECONDS,
    STORAGE_PROVIDER_LOCAL,
    STORAGE_PROVIDER_S3,
)
from monitoring import logger, with_error_context


class StorageResolver(ABC):
    """Turns an opaque storage key into a URL or bytes."""

    name: str = "storage"

    @abstractmethod
    def resolve_url(
        self, key: str, expiry_seconds: int = DEFAULT_FILE_URL_EXPIRY_SECONDS
    ) -> str:
        """Return a URL the provider can fetch the object from."""

    @abstractmethod
    def read_bytes(self, key: str) -> bytes:
        """Return the full object content."""


class LocalStorage(StorageResolver):
    """Files on local disk, served under a public base URL."""

    name = STORAGE_PROVIDER_LOCAL

    def __init__(self, base_path: str, base_url: str):
        self.base_path = Path(base_path).resolve()
        self.base_url = base_url.rstrip("/")

    def _path_for(self, key: str) -> Path:
        path = (self.base_path / key).resolve()
        if self.base_path not in path.parents:
            raise ValueError(f"Storage key escapes base path: {key}")
        return path

    def resolve_url(
        self, key: str, expiry_seconds: int = DEFAULT_FILE_URL_EXPIRY_SECONDS
    ) -> str:
        # Local files are served publicly; expiry does not apply
        return f"{self.base_url}/{quote(key)}"

    def read_bytes(self, key: str) -> bytes:
        return self._path_for(key).read_bytes()


class S3Storage(StorageResolver):
    """Objects in an S3 bucket, shared through presigned GET URLs."""

    name = STORAGE_PROVIDER_S3

    def __init__(self, bucket: str, client: Any, key_prefix: str = ""):
        self.bucket = bucket
        self.client = client
        self.key_prefix = key_prefix.strip("/")

    def _full_key(self, key: str) -> str:
        return f"{self.key_prefix}/{key}" if self.key_prefix else key

    @with_error_context("generate s3 presigned url")
    def resolve_url(
        self, key: str, expiry_seconds: int = DEFAULT_FILE_URL_EXPIRY_SECONDS
    ) -> str:
        return self.client.generate_presigned_url(
            "get_object",
            Params={"Bucket": self.bucket, "Key": self._full_key(key)},
            ExpiresIn=expiry_seconds,
        )

    @with_error_context("read s3 object")
    def read_bytes(self, key: str) -> bytes:
        response = self.client.get_object(Bucket=self.bucket, Key=self._full_key(key))
        return response["Body"].read()


def create_storage(
    config: GenerationConfig, s3_client: Optional[Any] = None
) -> StorageResolver:
    """
    Create the storage resolver selected by the configuration.

    Args:
        config: Generation configuration.
        s3_client: Optional pre-configured S3 client for testing.

    Returns:
        StorageResolver: Local or S3 storage.
    """
    if config.storage_provider == STORAGE_PROVIDER_S3:
        client = s3_client or boto3.client(
            AWS_SERVICE_S3,
            region_name=config.region,
            config=Config(signature_version="s3v4", s3={"addressing_style": "virtual"}),
        )
        storage = S3Storage(config.s3_bucket, client, config.s3_key_prefix)
    else:
        storage = LocalStorage(config.upload_dir, config.upload_base_url)

    logger.info("Storage provider initialized", storage_provider=storage.name)
    return storage
