"""Runtime configuration for the forum stats pipeline.

Settings are read from environment variables so the same code runs from a
cron job, a container or a developer shell.
"""

import os
from dataclasses import dataclass
from datetime import date
from typing import Optional

from dateutil import tz


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


@dataclass
class PipelineSettings:
    """Configuration parameters for a stats build and publish run."""

    database_url: Optional[str] = None
    data_dir: str = "data"
    timezone: str = "America/Chicago"
    epoch: date = date(1999, 6, 1)
    min_post_id: int = 0

    # Object store
    bucket_name: str = "forumstats-site"
    key_prefix: str = "data/"
    s3_endpoint_url: Optional[str] = None
    region_name: str = "us-east-1"
    upload_enabled: bool = True
    upload_concurrency: int = 4

    log_level: str = "INFO"

    def __post_init__(self) -> None:
        """Validate configuration parameters."""
        if tz.gettz(self.timezone) is None:
            raise ValueError(f"Unknown time zone: {self.timezone}")
        if self.min_post_id < 0:
            raise ValueError("Minimum post id must be non-negative")
        if self.upload_concurrency < 1:
            raise ValueError("Upload concurrency must be at least 1")
        if not self.bucket_name:
            raise ValueError("Bucket name cannot be empty")
        if self.key_prefix and not self.key_prefix.endswith("/"):
            self.key_prefix += "/"

    @property
    def tzinfo(self):
        return tz.gettz(self.timezone)

    @classmethod
    def from_env(cls) -> "PipelineSettings":
        """Build settings from ``FORUMSTATS_*`` environment variables."""
        return cls(
            database_url=os.getenv("FORUMSTATS_DATABASE_URL") or None,
            data_dir=os.getenv("FORUMSTATS_DATA_DIR", "data"),
            timezone=os.getenv("FORUMSTATS_TIMEZONE", "America/Chicago"),
            epoch=date.fromisoformat(os.getenv("FORUMSTATS_EPOCH", "1999-06-01")),
            min_post_id=int(os.getenv("FORUMSTATS_MIN_POST_ID", "0")),
            bucket_name=os.getenv("FORUMSTATS_BUCKET", "forumstats-site"),
            key_prefix=os.getenv("FORUMSTATS_KEY_PREFIX", "data/"),
            s3_endpoint_url=os.getenv("FORUMSTATS_S3_ENDPOINT_URL") or None,
            region_name=os.getenv("FORUMSTATS_REGION", "us-east-1"),
            upload_enabled=_env_bool("FORUMSTATS_UPLOAD", True),
            upload_concurrency=int(os.getenv("FORUMSTATS_UPLOAD_CONCURRENCY", "4")),
            log_level=os.getenv("LOG_LEVEL", "INFO"),
        )
