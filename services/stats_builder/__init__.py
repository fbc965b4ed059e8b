"""Stats builder service.

This package turns the forum's post history into calendar-aligned CSV
artifacts: period series, per-author series and per-period scoreboards.
"""

from .artifact_partitioner import ArtifactPartitioner
from .csv_writer import ArtifactWriter
from .identity import IdentityAssigner
from .periods import Calendar
from .tally_aggregator import TallyAggregator

__all__ = ['ArtifactPartitioner', 'ArtifactWriter', 'Calendar', 'IdentityAssigner', 'TallyAggregator']
