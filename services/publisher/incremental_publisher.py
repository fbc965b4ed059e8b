"""
Incremental Publisher

Uploads only the artifacts whose content hash differs from the previously
published manifest, followed by both manifest files.

Hash -> Diff -> Upload. The first failed upload aborts the run before the
manifests go out, so the remote manifest only ever describes files that made
it; the next run's diff picks up whatever is left.
"""

import asyncio
import csv
from dataclasses import dataclass, field
from typing import List, Mapping, Protocol

import structlog

from shared.errors import ManifestFetchMiss, ObjectStoreError, PublishFailure
from shared.models import Artifact, Manifest

from .manifest import FILE_HASHES, MANIFEST_FILES, diff_manifests, parse_manifest

logger = structlog.get_logger(__name__)


class ObjectStore(Protocol):
    async def get_object(self, key: str) -> bytes:
        ...

    async def put_object(self, key: str, body: bytes) -> None:
        ...


@dataclass
class PublishResult:
    """Outcome of one publish."""

    uploaded: List[str] = field(default_factory=list)
    unchanged: int = 0
    first_publish: bool = False


class IncrementalPublisher:
    """
    Publishes a finished artifact set to an object store.

    Attributes:
        store: Destination object store
        key_prefix: Prefix prepended to every artifact name (e.g. ``data/``)
        concurrency: Maximum number of uploads in flight
    """

    def __init__(self, store: ObjectStore, key_prefix: str = "data/", concurrency: int = 4) -> None:
        if concurrency < 1:
            raise ValueError("Concurrency must be at least 1")
        self.store = store
        self.key_prefix = key_prefix
        self.concurrency = concurrency

    def key_for(self, filename: str) -> str:
        return f"{self.key_prefix}{filename}"

    async def fetch_remote_manifest(self) -> Manifest:
        """
        Fetch the previously published manifest.

        Any failure (most commonly a first-ever run) yields an empty
        manifest, which schedules every artifact for upload.
        """
        key = self.key_for(FILE_HASHES)
        try:
            body = await self.store.get_object(key)
        except ManifestFetchMiss:
            logger.info("No remote manifest found, treating as empty", key=key)
            return Manifest()
        except ObjectStoreError as e:
            logger.warning("Could not fetch remote manifest, treating as empty",
                           key=key, error=str(e))
            return Manifest()

        try:
            return parse_manifest(body)
        except (UnicodeDecodeError, csv.Error) as e:
            logger.warning("Remote manifest is unreadable, treating as empty",
                           key=key, error=str(e))
            return Manifest()

    async def publish(self, artifacts: Mapping[str, Artifact], manifest: Manifest) -> PublishResult:
        """
        Upload changed artifacts, then both manifest files.

        Args:
            artifacts: Every artifact of the run keyed by name, manifest
                files included
            manifest: Manifest describing the non-manifest artifacts

        Raises:
            PublishFailure: On the first failed upload
        """
        for name in MANIFEST_FILES:
            if name not in artifacts:
                raise ValueError(f"Manifest artifact {name} has not been written")

        remote = await self.fetch_remote_manifest()
        changed = diff_manifests(manifest, remote)
        logger.info("Computed publish diff",
                    local=len(manifest), remote=len(remote), changed=len(changed))

        await self._upload_all([artifacts[name] for name in changed])
        for name in MANIFEST_FILES:
            await self._upload(artifacts[name])

        result = PublishResult(
            uploaded=changed,
            unchanged=len(manifest) - len(changed),
            first_publish=len(remote) == 0,
        )
        logger.info("Publish complete", uploaded=len(result.uploaded), unchanged=result.unchanged)
        return result

    async def _upload_all(self, artifacts: List[Artifact]) -> None:
        if not artifacts:
            return
        semaphore = asyncio.Semaphore(self.concurrency)

        async def worker(artifact: Artifact) -> None:
            async with semaphore:
                await self._upload(artifact)

        tasks = [asyncio.ensure_future(worker(a)) for a in artifacts]
        try:
            await asyncio.gather(*tasks)
        except PublishFailure:
            for task in tasks:
                task.cancel()
            raise

    async def _upload(self, artifact: Artifact) -> None:
        key = self.key_for(artifact.filename)
        logger.info("Uploading artifact", key=key, size=artifact.size)
        try:
            with open(artifact.path, "rb") as f:
                body = f.read()
            await self.store.put_object(key, body)
        except (ObjectStoreError, OSError) as e:
            raise PublishFailure(artifact.filename, str(e)) from e
