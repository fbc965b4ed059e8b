"""Content-addressed manifest of the published artifacts.

The manifest is persisted twice: ``files.csv`` lists names only and
``file_hashes.csv`` adds the SHA-256 and size each future run diffs against.
"""

import csv
import io
import logging
from typing import Iterable, List, Tuple

from shared.models import Artifact, Manifest, ManifestEntry

from services.stats_builder.csv_writer import ArtifactWriter

logger = logging.getLogger(__name__)

FILES_LISTING = "files.csv"
FILE_HASHES = "file_hashes.csv"
MANIFEST_FILES = (FILES_LISTING, FILE_HASHES)


def build_manifest(artifacts: Iterable[Artifact]) -> Manifest:
    """Collect name, hash and size of every artifact except the manifests."""
    manifest = Manifest()
    for artifact in artifacts:
        if artifact.filename in MANIFEST_FILES:
            continue
        manifest.add(ManifestEntry(artifact.filename, artifact.sha256, artifact.size))
    return manifest


def write_manifest(writer: ArtifactWriter, manifest: Manifest) -> Tuple[Artifact, Artifact]:
    """Write both manifest artifacts."""
    entries = list(manifest)
    listing = writer.write_csv(FILES_LISTING, ["filename"], ([e.filename] for e in entries))
    hashes = writer.write_csv(
        FILE_HASHES,
        ["filename", "sha256", "size"],
        ([e.filename, e.sha256, e.size] for e in entries),
    )
    logger.info(f"Wrote manifest with {len(entries)} entries")
    return listing, hashes


def parse_manifest(body: bytes) -> Manifest:
    """Parse ``file_hashes.csv`` contents; rows missing a name or hash are skipped."""
    manifest = Manifest()
    reader = csv.DictReader(io.StringIO(body.decode("utf-8")))
    for record in reader:
        filename = record.get("filename")
        sha256 = record.get("sha256")
        if not filename or not sha256:
            continue
        size = record.get("size") or "0"
        manifest.add(ManifestEntry(filename, sha256, int(size) if size.isdigit() else 0))
    return manifest


def diff_manifests(local: Manifest, remote: Manifest) -> List[str]:
    """Names whose content changed or that the remote side does not have."""
    return [
        entry.filename
        for entry in local
        if remote.hash_of(entry.filename) != entry.sha256
    ]
