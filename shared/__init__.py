"""Shared modules for the forum stats pipeline."""

from .models import (
    Artifact,
    AuthorIdentity,
    AuthorSummary,
    Category,
    CategoryCount,
    Event,
    Granularity,
    Manifest,
    ManifestEntry,
    Period,
    TallyRow,
)

__all__ = [
    "Artifact",
    "AuthorIdentity",
    "AuthorSummary",
    "Category",
    "CategoryCount",
    "Event",
    "Granularity",
    "Manifest",
    "ManifestEntry",
    "Period",
    "TallyRow",
]
