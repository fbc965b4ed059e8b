"""
Artifact Partitioner

Slices aggregator output into the file-per-entity layout the dashboard
reads: one file per global series, one per author series, one scoreboard per
period instance, plus poster and new-poster counts.
"""

import logging
from itertools import groupby
from typing import Dict, Iterable, List, Sequence

from dateutil import tz

from shared.models import Artifact, AuthorIdentity, AuthorSummary, Granularity, Period, TallyRow

from .csv_writer import TALLY_COLUMNS, ArtifactWriter, tally_values
from .periods import Calendar
from .tally_aggregator import PeriodCount

logger = logging.getLogger(__name__)

SERIES_COLUMNS = ["period", "date"] + TALLY_COLUMNS
USER_SERIES_COLUMNS = ["period", "date", "user_id"] + TALLY_COLUMNS
SCOREBOARD_COLUMNS = USER_SERIES_COLUMNS
POSTER_COLUMNS = ["period", "date", "poster_count"]
NEW_POSTER_COLUMNS = ["period", "date", "new_poster_count"]
USERS_COLUMNS = ["user_id", "username"]
USERS_INFO_COLUMNS = ["user_id", "username", "first_post_id", "first_post_date", "post_count"]

OVERALL_PERIOD = "overall"


def post_counts_filename(granularity: Granularity) -> str:
    return f"{granularity.adjective}_post_counts.csv"


def user_post_counts_filename(granularity: Granularity, user_id: str) -> str:
    return f"{granularity.adjective}_post_counts_for_user_{user_id}.csv"


def scoreboard_filename(period: Period) -> str:
    return f"post_counts_by_user_for_{period.granularity.noun}_{period.compact_label}.csv"


def poster_counts_filename(granularity: Granularity) -> str:
    return f"{granularity.adjective}_poster_counts.csv"


def new_poster_counts_filename(granularity: Granularity, min_posts: int) -> str:
    label = "new_poster_counts" if min_posts <= 0 else f"new_{min_posts}plus_poster_counts"
    return f"{granularity.adjective}_{label}.csv"


class ArtifactPartitioner:
    """Writes aggregator output as CSV artifacts through an ``ArtifactWriter``."""

    def __init__(self, writer: ArtifactWriter, calendar: Calendar) -> None:
        self.writer = writer
        self.calendar = calendar

    def write_users(
        self,
        identities: Sequence[AuthorIdentity],
        summaries: Iterable[AuthorSummary]
    ) -> List[Artifact]:
        """Write ``users.csv`` and ``users_info.csv`` in first-post order."""
        by_key = {s.author_key: s for s in summaries}
        users = self.writer.write_csv(
            "users.csv",
            USERS_COLUMNS,
            ([i.short_id, i.display_name] for i in identities),
        )
        info_rows = []
        for identity in identities:
            summary = by_key[identity.author_key]
            info_rows.append([
                identity.short_id,
                identity.display_name,
                summary.first_post_id,
                self._utc_timestamp(summary),
                summary.post_count,
            ])
        users_info = self.writer.write_csv("users_info.csv", USERS_INFO_COLUMNS, info_rows)
        return [users, users_info]

    def write_period_series(self, granularity: Granularity, rows: Sequence[TallyRow]) -> Artifact:
        """Write the global gap-filled series for one granularity."""
        return self.writer.write_csv(
            post_counts_filename(granularity),
            SERIES_COLUMNS,
            ([granularity.noun, row.period.date_label] + tally_values(row) for row in rows),
        )

    def write_user_series(self, granularity: Granularity, rows: Iterable[TallyRow]) -> List[Artifact]:
        """Write one file per author; ``rows`` must be grouped by user id."""
        artifacts = []
        for user_id, user_rows in groupby(rows, key=lambda row: row.user_id):
            artifacts.append(self.writer.write_csv(
                user_post_counts_filename(granularity, user_id),
                USER_SERIES_COLUMNS,
                (
                    [granularity.noun, row.period.date_label, user_id] + tally_values(row)
                    for row in user_rows
                ),
            ))
        logger.info(f"Wrote {len(artifacts)} {granularity.adjective} author series")
        return artifacts

    def write_scoreboards(
        self,
        granularity: Granularity,
        by_period: Dict[Period, List[TallyRow]]
    ) -> List[Artifact]:
        """
        Write one scoreboard per period instance.

        Period instances nobody posted in still get a header-only file, since
        the dashboard checks for the file to know the period exists.
        """
        periods = set(self.calendar.all_periods(granularity)) | set(by_period)
        artifacts = []
        empty = 0
        for period in sorted(periods):
            rows = by_period.get(period, [])
            if not rows:
                empty += 1
            artifacts.append(self.writer.write_csv(
                scoreboard_filename(period),
                SCOREBOARD_COLUMNS,
                (
                    [granularity.noun, period.date_label, row.user_id] + tally_values(row)
                    for row in rows
                ),
            ))
        logger.info(
            f"Wrote {len(artifacts)} {granularity.noun} scoreboards ({empty} without posts)"
        )
        return artifacts

    def write_overall_scoreboard(self, rows: Sequence[TallyRow]) -> Artifact:
        epoch = self.calendar.epoch.isoformat()
        return self.writer.write_csv(
            "post_counts_by_user_overall.csv",
            SCOREBOARD_COLUMNS,
            ([OVERALL_PERIOD, epoch, row.user_id] + tally_values(row) for row in rows),
        )

    def write_poster_counts(self, granularity: Granularity, counts: Sequence[PeriodCount]) -> Artifact:
        return self.writer.write_csv(
            poster_counts_filename(granularity),
            POSTER_COLUMNS,
            ([granularity.noun, c.period.date_label, c.count] for c in counts),
        )

    def write_new_poster_counts(
        self,
        granularity: Granularity,
        counts: Sequence[PeriodCount],
        min_posts: int = 0
    ) -> Artifact:
        return self.writer.write_csv(
            new_poster_counts_filename(granularity, min_posts),
            NEW_POSTER_COLUMNS,
            ([granularity.noun, c.period.date_label, c.count] for c in counts),
        )

    def _utc_timestamp(self, summary: AuthorSummary) -> str:
        first = summary.first_post_date
        if first.tzinfo is None:
            first = first.replace(tzinfo=self.calendar.tzinfo)
        return first.astimezone(tz.UTC).strftime("%Y-%m-%dT%H:%M:%SZ")
