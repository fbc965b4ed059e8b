"""CSV encoding for the published artifacts.

Every artifact starts with a header of double-quoted column names; integers
are written bare and every other value is quoted with ``"`` doubled.
"""

import csv
import hashlib
import io
import logging
import os
from datetime import date
from typing import Any, Dict, Iterable, List, Sequence

from shared.errors import SchemaViolation
from shared.models import Artifact, Category, Granularity, Period, TallyRow

logger = logging.getLogger(__name__)

TALLY_COLUMNS = ["total_post_count"] + [category.column for category in Category]


def encode_csv(columns: Sequence[str], rows: Iterable[Sequence[Any]]) -> bytes:
    """Render a header and rows as CSV bytes."""
    buffer = io.StringIO()
    writer = csv.writer(buffer, quoting=csv.QUOTE_NONNUMERIC, lineterminator="\n")
    writer.writerow(columns)
    for row in rows:
        writer.writerow([_csv_value(value) for value in row])
    return buffer.getvalue().encode("utf-8")


def _csv_value(value: Any) -> Any:
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    return "" if value is None else str(value)


def tally_values(row: TallyRow) -> List[int]:
    return [row.total] + [row.count_for(category) for category in Category]


class ArtifactWriter:
    """
    Writes CSV artifacts into the data directory and records their hashes.

    Attributes:
        data_dir: Directory the artifacts are written to
        artifacts: Every artifact written by this writer, keyed by file name
    """

    def __init__(self, data_dir: str) -> None:
        self.data_dir = data_dir
        self.artifacts: Dict[str, Artifact] = {}
        os.makedirs(data_dir, exist_ok=True)

    def write_csv(
        self,
        filename: str,
        columns: Sequence[str],
        rows: Iterable[Sequence[Any]]
    ) -> Artifact:
        """Encode and write one CSV artifact, replacing any previous file."""
        return self.write_bytes(filename, encode_csv(columns, rows))

    def write_bytes(self, filename: str, body: bytes) -> Artifact:
        path = os.path.join(self.data_dir, filename)
        with open(path, "wb") as f:
            f.write(body)

        artifact = Artifact(
            filename=filename,
            path=path,
            sha256=hashlib.sha256(body).hexdigest(),
            size=len(body),
        )
        self.artifacts[filename] = artifact
        logger.debug(f"Wrote {filename} ({artifact.size} bytes)")
        return artifact

    def written(self) -> List[Artifact]:
        return [self.artifacts[name] for name in sorted(self.artifacts)]


def read_tally_csv(path: str) -> List[TallyRow]:
    """
    Parse a period series artifact back into tally rows.

    Raises:
        SchemaViolation: If a row's total disagrees with its category counts
    """
    rows = []
    with open(path, "r", encoding="utf-8", newline="") as f:
        for record in csv.DictReader(f):
            period = Period(
                Granularity(record["period"]),
                date.fromisoformat(record["date"]),
            )
            row = TallyRow(period, user_id=record.get("user_id") or None)
            for category in Category:
                row.add(category, int(record[category.column]))
            if row.total != int(record["total_post_count"]):
                raise SchemaViolation(
                    f"{os.path.basename(path)}: total for {period.date_label} "
                    f"does not match its category counts"
                )
            rows.append(row)
    return rows
