#!/usr/bin/env python3
"""
Tally Aggregator

This module rolls per-post category counts up into period-bucketed totals,
globally and per author, and derives the distinct-poster and new-poster
series. Every series is gap-filled through the calendar model so the
dashboard always sees a continuous time axis.
"""

import logging
from collections import defaultdict
from datetime import timedelta
from typing import Dict, Iterable, Iterator, List, Mapping, NamedTuple, Optional, Set, Union

from shared.errors import SchemaViolation
from shared.models import AuthorSummary, Category, CategoryCount, Event, Granularity, Period, TallyRow

from .periods import Calendar

logger = logging.getLogger(__name__)

PARTITION_AUTHOR = "author"


class PeriodCount(NamedTuple):
    """A single integer measurement for one period."""

    period: Period
    count: int


class TallyAggregator:
    """
    Rolls category counts up to day, week, month and year periods.

    The aggregator is stateless apart from the calendar it was built with;
    the author id map is passed in explicitly for each partitioned call.
    """

    def __init__(self, calendar: Calendar) -> None:
        self.calendar = calendar

    @property
    def _history_end(self):
        return self.calendar.today + timedelta(days=1)

    def count_events(self, events: Iterable[Event]) -> List[CategoryCount]:
        """
        Compact a stream of posts into per-author, per-day category counts.

        Timestamps are converted to civil dates in the source time zone here
        and nowhere else.

        Raises:
            UnrecognizedCategory: If any post carries an unknown category code
        """
        totals: Dict[tuple, int] = defaultdict(int)
        seen = 0
        for event in events:
            category = Category.parse(event.category)
            day = self.calendar.local_date(event.timestamp)
            totals[(event.author_key, day, category)] += 1
            seen += 1

        logger.info(f"Compacted {seen} posts into {len(totals)} daily category counts")
        return [
            CategoryCount(author_key, day, category, count)
            for (author_key, day, category), count in sorted(totals.items())
        ]

    def aggregate(
        self,
        counts: Iterable[CategoryCount],
        granularity: Granularity,
        partition_by: Optional[str] = None,
        short_ids: Optional[Mapping[str, str]] = None
    ) -> Union[List[TallyRow], Iterator[TallyRow]]:
        """
        Roll counts up to ``granularity``.

        Args:
            counts: Daily category counts
            granularity: Target period size
            partition_by: ``None`` for one global series, ``"author"`` for one
                series per author
            short_ids: Author key to short id map, required when partitioning

        Returns:
            Gap-filled rows. The global series spans the epoch through today;
            each author series spans that author's first to last active
            period. Author series are ordered by short id, then period, and are
            yielded lazily one author at a time.

        Raises:
            UnrecognizedCategory: On an unknown category code
            SchemaViolation: If an author has no assigned short id
        """
        if partition_by not in (None, PARTITION_AUTHOR):
            raise ValueError(f"Unsupported partition: {partition_by}")
        if partition_by and short_ids is None:
            raise ValueError("Partitioning by author requires a short id map")

        groups: Dict[Optional[str], Dict[Period, TallyRow]] = defaultdict(dict)
        for count in counts:
            category = Category.parse(count.category)
            period = self.calendar.period_containing(granularity, count.day)
            user_id = self._user_id(short_ids, count.author_key) if partition_by else None
            series = groups[user_id]
            row = series.get(period)
            if row is None:
                row = series[period] = TallyRow(period, user_id=user_id)
            row.add(category, count.count)

        if partition_by is None:
            return self.calendar.fill_gaps(
                groups.get(None, {}),
                granularity,
                lambda period: TallyRow(period),
                start=self.calendar.epoch,
                end=self._history_end,
            )

        logger.info(f"Aggregated {granularity.adjective} counts for {len(groups)} authors")
        return self._author_series(groups, granularity)

    def _author_series(
        self,
        groups: Dict[Optional[str], Dict[Period, TallyRow]],
        granularity: Granularity
    ) -> Iterator[TallyRow]:
        # Only one author's dense series is held at a time.
        for user_id in sorted(groups):
            yield from self.calendar.fill_gaps(
                groups.pop(user_id),
                granularity,
                lambda period, user_id=user_id: TallyRow(period, user_id=user_id),
            )

    def by_period(
        self,
        counts: Iterable[CategoryCount],
        granularity: Granularity,
        short_ids: Mapping[str, str]
    ) -> Dict[Period, List[TallyRow]]:
        """
        Per-author tallies for every period instance that had posts.

        Rows within a period are ranked by total posts (descending), then by
        short id. Periods without posts are absent from the result.
        """
        periods: Dict[Period, Dict[str, TallyRow]] = defaultdict(dict)
        for count in counts:
            category = Category.parse(count.category)
            period = self.calendar.period_containing(granularity, count.day)
            user_id = self._user_id(short_ids, count.author_key)
            row = periods[period].get(user_id)
            if row is None:
                row = periods[period][user_id] = TallyRow(period, user_id=user_id)
            row.add(category, count.count)

        return {
            period: _rank(rows.values())
            for period, rows in sorted(periods.items())
        }

    def overall(
        self,
        counts: Iterable[CategoryCount],
        short_ids: Mapping[str, str]
    ) -> List[TallyRow]:
        """All-time per-author tallies; rows carry no period."""
        rows: Dict[str, TallyRow] = {}
        for count in counts:
            category = Category.parse(count.category)
            user_id = self._user_id(short_ids, count.author_key)
            row = rows.get(user_id)
            if row is None:
                row = rows[user_id] = TallyRow(None, user_id=user_id)
            row.add(category, count.count)
        return _rank(rows.values())

    def poster_counts(
        self,
        counts: Iterable[CategoryCount],
        granularity: Granularity
    ) -> List[PeriodCount]:
        """Distinct active authors per period, epoch through today."""
        posters: Dict[Period, Set[str]] = defaultdict(set)
        for count in counts:
            if count.count > 0:
                period = self.calendar.period_containing(granularity, count.day)
                posters[period].add(count.author_key)

        series = {period: PeriodCount(period, len(keys)) for period, keys in posters.items()}
        return self.calendar.fill_gaps(
            series,
            granularity,
            lambda period: PeriodCount(period, 0),
            start=self.calendar.epoch,
            end=self._history_end,
        )

    def new_poster_counts(
        self,
        authors: Iterable[AuthorSummary],
        granularity: Granularity,
        min_posts: int = 0
    ) -> List[PeriodCount]:
        """
        Authors whose first post fell in each period.

        Args:
            authors: Per-author summaries from the event source
            granularity: Target period size
            min_posts: Only count authors with at least this many posts

        Returns:
            Gap-filled counts, epoch through today
        """
        newcomers: Dict[Period, int] = defaultdict(int)
        for author in authors:
            if author.post_count < min_posts:
                continue
            first_day = self.calendar.local_date(author.first_post_date)
            newcomers[self.calendar.period_containing(granularity, first_day)] += 1

        series = {period: PeriodCount(period, n) for period, n in newcomers.items()}
        return self.calendar.fill_gaps(
            series,
            granularity,
            lambda period: PeriodCount(period, 0),
            start=self.calendar.epoch,
            end=self._history_end,
        )

    @staticmethod
    def _user_id(short_ids: Mapping[str, str], author_key: str) -> str:
        try:
            return short_ids[author_key]
        except KeyError:
            raise SchemaViolation(f"Author {author_key!r} has posts but no assigned id") from None


def _rank(rows: Iterable[TallyRow]) -> List[TallyRow]:
    return sorted(rows, key=lambda row: (-row.total, row.user_id))
