"""Tests for TallyAggregator.

Covers daily compaction, period roll-ups with gap filling, ranked
scoreboards and the poster/new-poster series.
"""

import pytest
from datetime import date, datetime
from typing import List

from dateutil import tz

from shared.errors import SchemaViolation, UnrecognizedCategory
from shared.models import AuthorSummary, Category, CategoryCount, Event, Granularity, Period
from services.stats_builder.periods import Calendar
from services.stats_builder.tally_aggregator import PARTITION_AUTHOR, TallyAggregator


class TestTallyAggregator:
    """Test suite for TallyAggregator class."""

    @pytest.fixture
    def calendar(self) -> Calendar:
        # 2024-03-01 is a Friday; 2024-03-10 a Sunday
        return Calendar(epoch=date(2024, 3, 1), today=date(2024, 3, 10))

    @pytest.fixture
    def aggregator(self, calendar) -> TallyAggregator:
        return TallyAggregator(calendar)

    @pytest.fixture
    def sample_events(self) -> List[Event]:
        return [
            Event("alice", datetime(2024, 3, 1, 10, 0), 1, post_id=1),
            Event("alice", datetime(2024, 3, 1, 11, 0), 2, post_id=2),
            Event("bob", datetime(2024, 3, 1, 12, 0), 1, post_id=3),
            Event("alice", datetime(2024, 3, 5, 9, 0), 6, post_id=4),
        ]

    @pytest.fixture
    def counts(self, aggregator, sample_events) -> List[CategoryCount]:
        return aggregator.count_events(sample_events)

    @pytest.fixture
    def short_ids(self):
        return {"alice": "alice", "bob": "bob"}

    def test_count_events_compacts_per_day(self, counts):
        """Test that posts collapse into per-author daily category counts."""
        assert counts == [
            CategoryCount("alice", date(2024, 3, 1), Category.ONTOPIC, 1),
            CategoryCount("alice", date(2024, 3, 1), Category.NWS, 1),
            CategoryCount("alice", date(2024, 3, 5), Category.INFORMATIVE, 1),
            CategoryCount("bob", date(2024, 3, 1), Category.ONTOPIC, 1),
        ]

    def test_count_events_merges_repeats(self, aggregator):
        events = [Event("carol", datetime(2024, 3, 2, h), 3) for h in range(5)]

        assert aggregator.count_events(events) == [
            CategoryCount("carol", date(2024, 3, 2), Category.STUPID, 5)
        ]

    def test_count_events_uses_source_time_zone(self, aggregator):
        # 03:30 UTC on the 5th is the evening of the 4th in Chicago
        events = [Event("alice", datetime(2024, 3, 5, 3, 30, tzinfo=tz.UTC), 1)]

        counts = aggregator.count_events(events)

        assert counts[0].day == date(2024, 3, 4)

    def test_count_events_rejects_unknown_category(self, aggregator, sample_events):
        events = sample_events + [Event("mallory", datetime(2024, 3, 2), 7)]

        with pytest.raises(UnrecognizedCategory) as exc_info:
            aggregator.count_events(events)

        assert exc_info.value.code == 7
        assert isinstance(exc_info.value, SchemaViolation)

    @pytest.mark.parametrize("code", [1.5, 6.9, True])
    def test_count_events_rejects_non_integer_category(self, aggregator, code):
        with pytest.raises(UnrecognizedCategory):
            aggregator.count_events([Event("a", datetime(2024, 3, 2), code)])

    def test_author_series_are_streamed(self, aggregator):
        counts = aggregator.count_events(
            [Event(f"user{i}", datetime(2024, 3, 1), 1) for i in range(3)]
            + [Event(f"user{i}", datetime(2024, 3, 10), 1) for i in range(3)]
        )
        short_ids = {f"user{i}": f"user{i}" for i in range(3)}

        rows = aggregator.aggregate(counts, Granularity.DAY, PARTITION_AUTHOR, short_ids)

        assert not isinstance(rows, list)
        assert iter(rows) is rows
        first_author = [next(rows) for _ in range(10)]
        assert {r.user_id for r in first_author} == {"user0"}
        assert len(list(rows)) == 20

    def test_daily_global_series_is_gap_filled(self, aggregator, counts):
        rows = aggregator.aggregate(counts, Granularity.DAY)

        assert len(rows) == 10
        assert [r.period.start for r in rows][:5] == [date(2024, 3, d) for d in range(1, 6)]

        first = rows[0]
        assert (first.total, first.ontopic, first.nws) == (3, 2, 1)
        assert rows[4].informative == 1
        assert all(rows[i].total == 0 for i in (1, 2, 3))
        assert all(r.user_id is None for r in rows)

    def test_two_active_days_four_days_apart(self, calendar, aggregator):
        """Posts on 03-01 and 03-05 give five rows with three zero rows between."""
        counts = aggregator.count_events([
            Event("alice", datetime(2024, 3, 1, 8), 1),
            Event("alice", datetime(2024, 3, 5, 8), 1),
        ])

        rows = list(aggregator.aggregate(counts, Granularity.DAY, PARTITION_AUTHOR, {"alice": "alice"}))

        assert [r.period.start for r in rows] == [date(2024, 3, d) for d in range(1, 6)]
        assert [r.total for r in rows] == [1, 0, 0, 0, 1]

    def test_total_equals_sum_of_categories(self, aggregator, counts, short_ids):
        for granularity in Granularity:
            rows = aggregator.aggregate(counts, granularity) + list(aggregator.aggregate(
                counts, granularity, PARTITION_AUTHOR, short_ids
            ))
            for row in rows:
                assert row.total == sum(row.count_for(c) for c in Category)

    def test_weekly_and_monthly_rollups(self, aggregator, counts):
        weekly = aggregator.aggregate(counts, Granularity.WEEK)
        assert [r.period.start for r in weekly] == [date(2024, 2, 26), date(2024, 3, 4)]
        assert [r.total for r in weekly] == [3, 1]

        monthly = aggregator.aggregate(counts, Granularity.MONTH)
        assert [(r.period.start, r.total) for r in monthly] == [(date(2024, 3, 1), 4)]

        yearly = aggregator.aggregate(counts, Granularity.YEAR)
        assert [(r.period.start, r.total) for r in yearly] == [(date(2024, 1, 1), 4)]

    def test_author_series_span_own_activity(self, aggregator, counts, short_ids):
        rows = list(aggregator.aggregate(counts, Granularity.DAY, PARTITION_AUTHOR, short_ids))

        alice = [r for r in rows if r.user_id == "alice"]
        bob = [r for r in rows if r.user_id == "bob"]
        assert len(alice) == 5
        assert len(bob) == 1
        # grouped by user id, then period
        assert [r.user_id for r in rows] == ["alice"] * 5 + ["bob"]
        assert sum(r.total for r in alice) == 3

    def test_author_partition_requires_ids(self, aggregator, counts):
        with pytest.raises(ValueError):
            aggregator.aggregate(counts, Granularity.DAY, PARTITION_AUTHOR)

        with pytest.raises(SchemaViolation):
            aggregator.aggregate(counts, Granularity.DAY, PARTITION_AUTHOR, {"alice": "alice"})

    def test_unsupported_partition(self, aggregator, counts):
        with pytest.raises(ValueError, match="Unsupported partition"):
            aggregator.aggregate(counts, Granularity.DAY, "category")

    def test_aggregate_rejects_unknown_category(self, aggregator):
        counts = [CategoryCount("alice", date(2024, 3, 1), 7, 1)]

        with pytest.raises(UnrecognizedCategory):
            aggregator.aggregate(counts, Granularity.DAY)

    def test_by_period_ranks_rows(self, aggregator, counts, short_ids):
        scoreboards = aggregator.by_period(counts, Granularity.DAY, short_ids)

        assert list(scoreboards) == [
            Period(Granularity.DAY, date(2024, 3, 1)),
            Period(Granularity.DAY, date(2024, 3, 5)),
        ]
        first = scoreboards[Period(Granularity.DAY, date(2024, 3, 1))]
        assert [(r.user_id, r.total) for r in first] == [("alice", 2), ("bob", 1)]

    def test_by_period_ties_sorted_by_user_id(self, aggregator):
        counts = aggregator.count_events([
            Event("zed", datetime(2024, 3, 2), 1),
            Event("amy", datetime(2024, 3, 2), 2),
        ])

        rows = aggregator.by_period(counts, Granularity.MONTH, {"zed": "zed", "amy": "amy"})

        assert [r.user_id for r in rows[Period(Granularity.MONTH, date(2024, 3, 1))]] == ["amy", "zed"]

    def test_overall(self, aggregator, counts, short_ids):
        rows = aggregator.overall(counts, short_ids)

        assert [(r.user_id, r.total, r.period) for r in rows] == [
            ("alice", 3, None),
            ("bob", 1, None),
        ]

    def test_poster_counts(self, aggregator, counts):
        series = aggregator.poster_counts(counts, Granularity.DAY)

        assert len(series) == 10
        by_day = {pc.period.start: pc.count for pc in series}
        assert by_day[date(2024, 3, 1)] == 2
        assert by_day[date(2024, 3, 5)] == 1
        assert by_day[date(2024, 3, 2)] == 0

    def test_new_poster_counts(self, aggregator):
        authors = [
            AuthorSummary("alice", "Alice", 1, datetime(2024, 3, 1, 10), 3),
            AuthorSummary("bob", "Bob", 3, datetime(2024, 3, 1, 12), 1),
            AuthorSummary("carol", "Carol", 9, datetime(2024, 3, 7, 9), 12),
        ]

        everyone = {pc.period.start: pc.count
                    for pc in aggregator.new_poster_counts(authors, Granularity.DAY)}
        assert everyone[date(2024, 3, 1)] == 2
        assert everyone[date(2024, 3, 7)] == 1
        assert sum(everyone.values()) == 3

        regulars = {pc.period.start: pc.count
                    for pc in aggregator.new_poster_counts(authors, Granularity.DAY, min_posts=10)}
        assert regulars[date(2024, 3, 1)] == 0
        assert regulars[date(2024, 3, 7)] == 1

    def test_new_posters_before_epoch_are_dropped(self, aggregator):
        authors = [AuthorSummary("old", "Old", 1, datetime(2023, 12, 31), 4)]

        series = aggregator.new_poster_counts(authors, Granularity.DAY)

        assert len(series) == 10
        assert all(pc.count == 0 for pc in series)

    def test_empty_input(self, aggregator):
        rows = aggregator.aggregate([], Granularity.WEEK)

        assert len(rows) == 2
        assert all(r.total == 0 for r in rows)
        assert list(aggregator.aggregate([], Granularity.DAY, PARTITION_AUTHOR, {})) == []
        assert aggregator.by_period([], Granularity.DAY, {}) == {}
