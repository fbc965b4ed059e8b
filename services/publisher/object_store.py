"""Object stores the publisher can upload artifacts to.

``S3ObjectStore`` talks to S3 or any S3-compatible service (MinIO) through
boto3; ``FilesystemObjectStore`` mirrors the same interface onto a local
directory for dry runs.
"""

import asyncio
import logging
import os
from concurrent.futures import ThreadPoolExecutor
from typing import Optional

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from shared.errors import ManifestFetchMiss, ObjectStoreError

logger = logging.getLogger(__name__)

CONTENT_TYPES = {
    ".csv": "text/plain",
    ".html": "text/html",
    ".css": "text/css",
    ".js": "application/javascript",
    ".json": "application/json",
}

_MISSING_CODES = {"NoSuchKey", "404", "NotFound"}


def content_type_for(key: str) -> str:
    return CONTENT_TYPES.get(os.path.splitext(key)[1].lower(), "application/octet-stream")


class S3ObjectStore:
    """Publishes objects to an S3 bucket with public-read ACLs.

    Attributes:
        bucket_name: Name of the bucket serving the site
        client: Boto3 S3 client
        executor: Thread pool running the blocking boto3 calls
    """

    def __init__(
        self,
        bucket_name: str,
        endpoint_url: Optional[str] = None,
        region_name: str = "us-east-1",
        access_key: Optional[str] = None,
        secret_key: Optional[str] = None,
        max_workers: int = 4
    ) -> None:
        """Initialize the store.

        Args:
            bucket_name: Target bucket
            endpoint_url: Custom endpoint for S3-compatible services; ``None``
                uses AWS
            region_name: AWS region name
            access_key: Access key; ``None`` defers to the boto3 credential chain
            secret_key: Secret key; ``None`` defers to the boto3 credential chain
            max_workers: Maximum number of concurrent boto3 calls
        """
        self.bucket_name = bucket_name
        self.executor = ThreadPoolExecutor(max_workers=max_workers)

        config = Config(
            region_name=region_name,
            retries={'max_attempts': 3, 'mode': 'adaptive'},
            max_pool_connections=max_workers
        )

        self.client = boto3.client(
            's3',
            endpoint_url=endpoint_url,
            aws_access_key_id=access_key,
            aws_secret_access_key=secret_key,
            config=config
        )

        logger.info(f"Initialized S3ObjectStore with bucket: {bucket_name}")

    async def get_object(self, key: str) -> bytes:
        """Download one object.

        Raises:
            ManifestFetchMiss: If the object does not exist
            ObjectStoreError: On any other failure
        """
        def _get() -> bytes:
            try:
                response = self.client.get_object(Bucket=self.bucket_name, Key=key)
                return response['Body'].read()
            except ClientError as e:
                if e.response['Error']['Code'] in _MISSING_CODES:
                    raise ManifestFetchMiss(key) from e
                raise ObjectStoreError(f"Failed to fetch {key}: {e}") from e
            except BotoCoreError as e:
                raise ObjectStoreError(f"Failed to fetch {key}: {e}") from e

        return await asyncio.get_event_loop().run_in_executor(self.executor, _get)

    async def put_object(self, key: str, body: bytes) -> None:
        """Upload one object, publicly readable and served inline."""
        def _put() -> None:
            try:
                self.client.put_object(
                    Bucket=self.bucket_name,
                    Key=key,
                    Body=body,
                    ACL='public-read',
                    ContentType=content_type_for(key),
                    ContentDisposition='inline'
                )
            except (ClientError, BotoCoreError) as e:
                logger.error(f"Failed to upload {key}: {e}")
                raise ObjectStoreError(f"Failed to upload {key}: {e}") from e

        await asyncio.get_event_loop().run_in_executor(self.executor, _put)

    async def close(self) -> None:
        """Clean up resources."""
        self.executor.shutdown(wait=True)


class FilesystemObjectStore:
    """Stores objects as files below a root directory (``--publish-dir``)."""

    def __init__(self, root: str) -> None:
        self.root = root
        os.makedirs(root, exist_ok=True)

    def _path(self, key: str) -> str:
        return os.path.join(self.root, *key.split("/"))

    async def get_object(self, key: str) -> bytes:
        try:
            with open(self._path(key), "rb") as f:
                return f.read()
        except FileNotFoundError as e:
            raise ManifestFetchMiss(key) from e
        except OSError as e:
            raise ObjectStoreError(f"Failed to fetch {key}: {e}") from e

    async def put_object(self, key: str, body: bytes) -> None:
        path = self._path(key)
        try:
            os.makedirs(os.path.dirname(path), exist_ok=True)
            with open(path, "wb") as f:
                f.write(body)
        except OSError as e:
            raise ObjectStoreError(f"Failed to upload {key}: {e}") from e

    async def close(self) -> None:
        pass
