#!/usr/bin/env python3
"""
Stats Builder

Builds every forum stats artifact from the post database and publishes the
changed ones to the site bucket.

Usage:
    forumstats-build                      # build and publish
    forumstats-build --skip-upload        # build only
    forumstats-build --publish-dir /tmp/site  # publish to a local directory
    forumstats-build --min-post-id 35500000 --data-dir /tmp/data

Configuration comes from ``FORUMSTATS_*`` environment variables (see
``shared.config``); AWS credentials from the usual boto3 sources.
"""

import argparse
import asyncio
import sys
from typing import List, Optional

import structlog

from shared.config import PipelineSettings
from shared.errors import StatsPipelineError
from shared.logging_config import configure_logging

from services.publisher.incremental_publisher import IncrementalPublisher
from services.publisher.object_store import FilesystemObjectStore, S3ObjectStore

from .event_source import SQLEventSource
from .pipeline import StatsRun

logger = structlog.get_logger(__name__)


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Build forum post statistics and publish changed files",
    )
    parser.add_argument(
        "--data-dir",
        help="Directory the CSV artifacts are written to (default: $FORUMSTATS_DATA_DIR or data/)",
    )
    parser.add_argument(
        "--min-post-id",
        type=int,
        help="Only read posts with a larger id (development speed-up)",
    )
    parser.add_argument(
        "--publish-dir",
        help="Publish into this local directory instead of the S3 bucket (dry run)",
    )
    parser.add_argument(
        "--skip-upload",
        action="store_true",
        help="Build artifacts without publishing them",
    )
    return parser.parse_args(argv)


def _open_store(settings: PipelineSettings, publish_dir: Optional[str]):
    if publish_dir:
        logger.info("Publishing to local directory", publish_dir=publish_dir)
        return FilesystemObjectStore(publish_dir)
    return S3ObjectStore(
        bucket_name=settings.bucket_name,
        endpoint_url=settings.s3_endpoint_url,
        region_name=settings.region_name,
        max_workers=settings.upload_concurrency,
    )


async def run(settings: PipelineSettings, publish_dir: Optional[str] = None) -> int:
    """Build, then publish unless uploads are disabled. Returns an exit code.

    With ``publish_dir`` the artifacts are published into a local directory
    through the same incremental diff instead of to S3.
    """
    if not settings.database_url:
        logger.error("Missing FORUMSTATS_DATABASE_URL")
        return 1

    source = SQLEventSource.from_url(
        settings.database_url,
        min_post_id=settings.min_post_id,
        since=settings.epoch,
    )
    stats_run = StatsRun(source, settings)

    try:
        stats_run.build()

        published = None
        if settings.upload_enabled:
            store = _open_store(settings, publish_dir)
            try:
                publisher = IncrementalPublisher(
                    store,
                    key_prefix=settings.key_prefix,
                    concurrency=settings.upload_concurrency,
                )
                published = await stats_run.publish(publisher)
            finally:
                await store.close()
        else:
            logger.info("Upload disabled, skipping publish")

    except StatsPipelineError as e:
        logger.error("Stats build failed", error=str(e), error_type=type(e).__name__)
        return 1
    finally:
        source.engine.dispose()

    summary = stats_run.summary(published)
    logger.info("Stats build successful",
                authors=summary.authors,
                daily_counts=summary.daily_counts,
                artifacts=summary.artifacts,
                uploaded=len(published.uploaded) if published else 0)
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    try:
        settings = PipelineSettings.from_env()
    except ValueError as e:
        print(f"Invalid configuration: {e}", file=sys.stderr)
        return 1

    if args.data_dir:
        settings.data_dir = args.data_dir
    if args.min_post_id is not None:
        settings.min_post_id = args.min_post_id
    if args.skip_upload:
        settings.upload_enabled = False

    configure_logging(settings.log_level)
    logger.info("Starting stats build",
                data_dir=settings.data_dir,
                epoch=settings.epoch.isoformat(),
                timezone=settings.timezone,
                min_post_id=settings.min_post_id,
                upload=settings.upload_enabled)
    return asyncio.run(run(settings, args.publish_dir))


if __name__ == "__main__":
    sys.exit(main())
