"""Shared data models for the forum stats pipeline.

This module contains the core data structures used throughout the pipeline
for representing posts, authors, calendar periods, category tallies and the
published artifacts.
"""

from datetime import date, datetime
from enum import Enum, IntEnum
from typing import Dict, Optional
from dataclasses import dataclass, field

from shared.errors import UnrecognizedCategory


class Category(IntEnum):
    """Topical category codes as stored by the forum."""

    ONTOPIC = 1
    NWS = 2
    STUPID = 3
    POLITICAL = 4
    TANGENT = 5
    INFORMATIVE = 6

    @classmethod
    def parse(cls, code) -> "Category":
        """Convert a raw category code, failing loudly on anything unknown.

        Only integers and integral strings are accepted; floats and booleans
        are rejected rather than truncated.
        """
        if isinstance(code, bool) or not isinstance(code, (int, str)):
            raise UnrecognizedCategory(code)
        try:
            return cls(int(code))
        except (TypeError, ValueError):
            raise UnrecognizedCategory(code) from None

    @property
    def column(self) -> str:
        return f"{self.name.lower()}_post_count"


class Granularity(str, Enum):
    """Calendar bucket sizes used for the period reports."""

    DAY = "day"
    WEEK = "week"
    MONTH = "month"
    YEAR = "year"

    @property
    def noun(self) -> str:
        return self.value

    @property
    def adjective(self) -> str:
        return "daily" if self is Granularity.DAY else f"{self.value}ly"


@dataclass(frozen=True)
class Event:
    """A single categorized forum post.

    Attributes:
        author_key: Opaque author identifier from the source (canonical name)
        timestamp: When the post was made; naive values are civil times in
            the source time zone
        category: Raw category code, validated during aggregation
        post_id: Source row id, when known
    """

    author_key: str
    timestamp: datetime
    category: int
    post_id: Optional[int] = None


@dataclass(frozen=True)
class CategoryCount:
    """Number of posts by one author, on one local day, in one category."""

    author_key: str
    day: date
    category: Category
    count: int

    def __post_init__(self) -> None:
        if self.count < 0:
            raise ValueError("Count must be non-negative")


@dataclass(frozen=True)
class AuthorSummary:
    """Per-author totals as returned by the event source.

    Attributes:
        author_key: Opaque author identifier
        display_name: Name shown on the site
        first_post_id: Id of the author's earliest post (orders authors)
        first_post_date: Civil timestamp of the earliest post
        post_count: Total number of posts by this author
    """

    author_key: str
    display_name: str
    first_post_id: int
    first_post_date: datetime
    post_count: int


@dataclass(frozen=True)
class AuthorIdentity:
    """An author together with the short id assigned for this run."""

    author_key: str
    display_name: str
    short_id: str


@dataclass(frozen=True, order=True)
class Period:
    """One concrete calendar bucket, e.g. the week starting 2024-03-04."""

    granularity: Granularity
    start: date

    @property
    def date_label(self) -> str:
        return self.start.isoformat()

    @property
    def compact_label(self) -> str:
        return self.start.strftime("%Y%m%d")


@dataclass
class TallyRow:
    """Category counts for one period, optionally for a single author.

    ``total`` is derived from the six category counts so the two can never
    disagree. All-time rows have no period.
    """

    period: Optional[Period]
    user_id: Optional[str] = None
    ontopic: int = 0
    nws: int = 0
    stupid: int = 0
    political: int = 0
    tangent: int = 0
    informative: int = 0

    def __post_init__(self) -> None:
        """Validate tally counts."""
        for category in Category:
            if getattr(self, category.name.lower()) < 0:
                raise ValueError("Category counts must be non-negative")

    @property
    def total(self) -> int:
        return (
            self.ontopic + self.nws + self.stupid
            + self.political + self.tangent + self.informative
        )

    def add(self, category: Category, count: int = 1) -> None:
        name = category.name.lower()
        setattr(self, name, getattr(self, name) + count)

    def count_for(self, category: Category) -> int:
        return getattr(self, category.name.lower())


@dataclass(frozen=True)
class Artifact:
    """A generated output file ready for publishing."""

    filename: str
    path: str
    sha256: str
    size: int


@dataclass(frozen=True)
class ManifestEntry:
    """Name, content hash and size of one published artifact."""

    filename: str
    sha256: str
    size: int


@dataclass
class Manifest:
    """Ordered listing of every current artifact."""

    entries: Dict[str, ManifestEntry] = field(default_factory=dict)

    def add(self, entry: ManifestEntry) -> None:
        self.entries[entry.filename] = entry

    def hash_of(self, filename: str) -> Optional[str]:
        entry = self.entries.get(filename)
        return entry.sha256 if entry else None

    def __len__(self) -> int:
        return len(self.entries)

    def __iter__(self):
        return iter(sorted(self.entries.values(), key=lambda e: e.filename))
