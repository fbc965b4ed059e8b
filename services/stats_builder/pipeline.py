"""
Stats build pipeline.

One ``StatsRun`` owns all state of a single batch run:

    authors -> short ids -> daily counts -> artifacts -> manifest -> publish

Identity assignment completes before any per-author aggregation, and every
category is validated before the first artifact is written, so a schema
problem never leaves a half-written data directory behind.
"""

from contextlib import closing
from dataclasses import dataclass
from typing import Dict, List, Optional

import structlog

from shared.config import PipelineSettings
from shared.models import Artifact, AuthorIdentity, AuthorSummary, CategoryCount, Granularity, Manifest

from services.publisher.incremental_publisher import IncrementalPublisher, PublishResult
from services.publisher.manifest import build_manifest, write_manifest

from .artifact_partitioner import ArtifactPartitioner
from .csv_writer import ArtifactWriter
from .event_source import EventSource
from .identity import IdentityAssigner
from .periods import Calendar
from .tally_aggregator import PARTITION_AUTHOR, TallyAggregator

logger = structlog.get_logger(__name__)

# 0 counts every newcomer; 10 only those who went on to post at least ten times.
NEW_POSTER_THRESHOLDS = (0, 10)


@dataclass
class RunSummary:
    """Counters reported at the end of a run."""

    authors: int
    daily_counts: int
    artifacts: int
    published: Optional[PublishResult] = None


class StatsRun:
    """
    A single build of every stats artifact.

    Attributes:
        source: Event source the run reads from
        calendar: Period model for this run
        writer: Writes and hashes the artifacts
    """

    def __init__(
        self,
        source: EventSource,
        settings: PipelineSettings,
        calendar: Optional[Calendar] = None
    ) -> None:
        self.source = source
        self.settings = settings
        self.calendar = calendar or Calendar(settings.epoch, timezone=settings.timezone)
        self.writer = ArtifactWriter(settings.data_dir)
        self.aggregator = TallyAggregator(self.calendar)
        self.partitioner = ArtifactPartitioner(self.writer, self.calendar)
        self.assigner = IdentityAssigner()

        self.authors: List[AuthorSummary] = []
        self.identities: List[AuthorIdentity] = []
        self.counts: List[CategoryCount] = []
        self.manifest: Optional[Manifest] = None

    @property
    def short_ids(self) -> Dict[str, str]:
        return self.assigner.short_ids

    def extract(self) -> None:
        """Read authors and posts; raises before anything is written."""
        log = logger.bind(component="extract")
        self.authors = self.source.list_authors()
        self.identities = self.assigner.assign_summaries(self.authors)
        log.info("Assigned author ids", authors=len(self.identities))

        with closing(self.source.iter_events()) as events:
            self.counts = self.aggregator.count_events(events)
        log.info("Compacted posts", daily_counts=len(self.counts))

    def build(self) -> List[Artifact]:
        """Extract, aggregate and write every artifact plus the manifest."""
        self.extract()

        self.partitioner.write_users(self.identities, self.authors)
        for granularity in Granularity:
            self._build_granularity(granularity)
        self.partitioner.write_overall_scoreboard(
            self.aggregator.overall(self.counts, self.short_ids)
        )

        self.manifest = build_manifest(self.writer.written())
        write_manifest(self.writer, self.manifest)
        logger.info("Build complete", artifacts=len(self.writer.artifacts),
                    data_dir=self.settings.data_dir)
        return self.writer.written()

    def _build_granularity(self, granularity: Granularity) -> None:
        log = logger.bind(granularity=granularity.noun)
        counts = self.counts

        self.partitioner.write_period_series(
            granularity, self.aggregator.aggregate(counts, granularity)
        )
        self.partitioner.write_user_series(
            granularity,
            self.aggregator.aggregate(counts, granularity, PARTITION_AUTHOR, self.short_ids),
        )
        self.partitioner.write_scoreboards(
            granularity, self.aggregator.by_period(counts, granularity, self.short_ids)
        )
        self.partitioner.write_poster_counts(
            granularity, self.aggregator.poster_counts(counts, granularity)
        )
        for min_posts in NEW_POSTER_THRESHOLDS:
            self.partitioner.write_new_poster_counts(
                granularity,
                self.aggregator.new_poster_counts(self.authors, granularity, min_posts),
                min_posts,
            )
        log.info("Wrote period artifacts")

    async def publish(self, publisher: IncrementalPublisher) -> PublishResult:
        if self.manifest is None:
            raise RuntimeError("Nothing to publish; build() has not run")
        return await publisher.publish(self.writer.artifacts, self.manifest)

    def summary(self, published: Optional[PublishResult] = None) -> RunSummary:
        return RunSummary(
            authors=len(self.authors),
            daily_counts=len(self.counts),
            artifacts=len(self.writer.artifacts),
            published=published,
        )
