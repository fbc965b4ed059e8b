"""Event source backed by the forum's post table.

Reads authors and categorized posts through SQLAlchemy Core. Posts are
streamed in batches so the full history never has to fit in memory.
"""

from __future__ import annotations

import logging
import time
from datetime import date, datetime
from typing import Generator, List, Optional, Protocol

from sqlalchemy import Column, DateTime, Integer, MetaData, String, Table, create_engine, func, select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from shared.errors import SourceUnavailable
from shared.models import AuthorSummary, Event

logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 10000

metadata = MetaData()

# Civil timestamps in the forum's time zone, stored without offset.
post_table = Table(
    "post",
    metadata,
    Column("id", Integer, primary_key=True),
    Column("author", String, nullable=False),
    Column("author_c", String, nullable=False, index=True),
    Column("category", Integer, nullable=False),
    Column("date", DateTime, nullable=False),
)


class EventSource(Protocol):
    """What the pipeline needs from the raw event store."""

    def list_authors(self) -> List[AuthorSummary]:
        ...

    def iter_events(self) -> Generator[Event, None, None]:
        ...


def create_source_engine(database_url: str) -> Engine:
    return create_engine(database_url, pool_pre_ping=True, future=True)


class SQLEventSource:
    """
    Reads posts from a SQL database.

    Attributes:
        engine: SQLAlchemy engine for the post database
        min_post_id: Only posts with a larger id are read; ``0`` reads all
        since: Posts before this day are outside the history window
        batch_size: Rows fetched per cursor batch
    """

    def __init__(
        self,
        engine: Engine,
        min_post_id: int = 0,
        since: Optional[date] = None,
        batch_size: int = DEFAULT_BATCH_SIZE
    ) -> None:
        self.engine = engine
        self.min_post_id = min_post_id
        self.since = since
        self.batch_size = batch_size

    @classmethod
    def from_url(cls, database_url: str, **kwargs) -> "SQLEventSource":
        return cls(create_source_engine(database_url), **kwargs)

    def list_authors(self) -> List[AuthorSummary]:
        """Every distinct author, ordered by first post id then author key."""
        post = post_table
        stmt = (
            select(
                func.min(post.c.author).label("username"),
                post.c.author_c,
                func.min(post.c.id).label("first_post_id"),
                func.min(post.c.date).label("first_post_date"),
                func.count().label("post_count"),
            )
            .where(post.c.id > self.min_post_id)
            .group_by(post.c.author_c)
            .order_by(func.min(post.c.id), post.c.author_c)
        )

        started = time.monotonic()
        try:
            with self.engine.connect() as conn:
                rows = conn.execute(stmt).all()
        except SQLAlchemyError as e:
            raise SourceUnavailable(f"Author query failed: {e}") from e

        logger.info(f"{len(rows)} author row(s) returned in {_elapsed_ms(started)} msec")
        return [
            AuthorSummary(
                author_key=row.author_c,
                display_name=row.username,
                first_post_id=int(row.first_post_id),
                first_post_date=row.first_post_date,
                post_count=int(row.post_count),
            )
            for row in rows
        ]

    def iter_events(self) -> Generator[Event, None, None]:
        """Stream every post in id order, one cursor batch at a time."""
        post = post_table
        stmt = select(post.c.id, post.c.author_c, post.c.category, post.c.date).where(
            post.c.id > self.min_post_id
        )
        if self.since is not None:
            stmt = stmt.where(post.c.date >= datetime.combine(self.since, datetime.min.time()))
        stmt = stmt.order_by(post.c.id)

        started = time.monotonic()
        count = 0
        try:
            with self.engine.connect() as conn:
                result = conn.execution_options(yield_per=self.batch_size).execute(stmt)
                for batch in result.partitions():
                    logger.debug(f"Cursor batch: {len(batch)} rows")
                    for row in batch:
                        count += 1
                        yield Event(
                            author_key=row.author_c,
                            timestamp=row.date,
                            category=row.category,
                            post_id=row.id,
                        )
        except SQLAlchemyError as e:
            raise SourceUnavailable(f"Post query failed after {count} rows: {e}") from e

        logger.info(f"{count} post row(s) returned in {_elapsed_ms(started)} msec")


def _elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)
