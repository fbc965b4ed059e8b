"""Publisher service for the S3-hosted stats site.

This package hashes the generated artifacts, diffs them against the
previously published manifest and uploads only what changed.
"""

from .incremental_publisher import IncrementalPublisher, PublishResult
from .object_store import FilesystemObjectStore, S3ObjectStore

__all__ = ['FilesystemObjectStore', 'IncrementalPublisher', 'PublishResult', 'S3ObjectStore']
