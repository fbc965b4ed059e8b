"""
Calendar Model

Defines day/week/month/year period boundaries over the fixed history window
and fills missing periods in sparse series with zero-valued rows.
"""

import logging
from datetime import date, datetime, timedelta
from typing import Callable, List, Mapping, Optional, TypeVar

from dateutil import tz
from dateutil.relativedelta import relativedelta

from shared.models import Granularity, Period

logger = logging.getLogger(__name__)

Row = TypeVar("Row")

_STEPS = {
    Granularity.DAY: relativedelta(days=1),
    Granularity.WEEK: relativedelta(weeks=1),
    Granularity.MONTH: relativedelta(months=1),
    Granularity.YEAR: relativedelta(years=1),
}


def truncate(granularity: Granularity, day: date) -> date:
    """Return the first day of the period of ``granularity`` containing ``day``.

    Weeks start on Monday.
    """
    if granularity is Granularity.DAY:
        return day
    if granularity is Granularity.WEEK:
        return day - timedelta(days=day.weekday())
    if granularity is Granularity.MONTH:
        return day.replace(day=1)
    return day.replace(month=1, day=1)


class Calendar:
    """Period model anchored at the beginning of history.

    Attributes:
        epoch: First day of the dataset's history
        today: Last day covered; the in-progress period is included
        tzinfo: Source time zone used to turn timestamps into civil dates
    """

    def __init__(
        self,
        epoch: date,
        today: Optional[date] = None,
        timezone: str = "America/Chicago"
    ) -> None:
        self.tzinfo = tz.gettz(timezone)
        if self.tzinfo is None:
            raise ValueError(f"Unknown time zone: {timezone}")
        self.epoch = epoch
        self.today = today or datetime.now(self.tzinfo).date()
        if self.today < self.epoch:
            raise ValueError("Today must not be before the epoch")

    def local_date(self, timestamp: datetime) -> date:
        """Civil date of ``timestamp`` in the source time zone.

        Naive timestamps are already source-local; aware ones are converted
        before truncating, so posts near midnight land on the right day.
        """
        if timestamp.tzinfo is None:
            return timestamp.date()
        return timestamp.astimezone(self.tzinfo).date()

    def period_containing(self, granularity: Granularity, day: date) -> Period:
        return Period(granularity, truncate(granularity, day))

    def periods_of(
        self,
        granularity: Granularity,
        start: date,
        end: date
    ) -> List[Period]:
        """
        Enumerate the periods covering ``[start, end)``.

        The period containing ``start`` is always included; a period is
        included when it begins before ``end``.

        Returns:
            Periods ordered by start date ascending
        """
        step = _STEPS[granularity]
        current = truncate(granularity, start)
        periods = []
        while current < end:
            periods.append(Period(granularity, current))
            current = current + step
        return periods

    def all_periods(self, granularity: Granularity) -> List[Period]:
        """Every period from the epoch through today, inclusive."""
        return self.periods_of(granularity, self.epoch, self.today + timedelta(days=1))

    def fill_gaps(
        self,
        series: Mapping[Period, Row],
        granularity: Granularity,
        make_zero: Callable[[Period], Row],
        start: Optional[date] = None,
        end: Optional[date] = None
    ) -> List[Row]:
        """
        Densify a sparse period series.

        Args:
            series: Rows keyed by period; periods outside the range are dropped
            granularity: Granularity of every key in ``series``
            make_zero: Builds the zero-valued row for a missing period
            start: First day of the range (defaults to the series minimum)
            end: Exclusive end of the range (defaults to the day after the
                series maximum)

        Returns:
            One row per period of the range, ascending
        """
        if start is None or end is None:
            if series:
                starts = [period.start for period in series]
                first, last = min(starts), max(starts)
            else:
                first, last = self.epoch, self.today
            if start is None:
                start = first
            if end is None:
                end = last + timedelta(days=1)

        rows = []
        filled = 0
        for period in self.periods_of(granularity, start, end):
            row = series.get(period)
            if row is None:
                row = make_zero(period)
                filled += 1
            rows.append(row)

        if filled:
            logger.debug(f"Filled {filled} empty {granularity.noun} periods between {start} and {end}")
        return rows
