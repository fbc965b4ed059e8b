"""Error taxonomy for the forum stats pipeline."""

from typing import Any


class StatsPipelineError(Exception):
    """Base class for every error raised by the pipeline."""


class SchemaViolation(StatsPipelineError):
    """Source data does not match the schema the aggregation expects."""


class UnrecognizedCategory(SchemaViolation):
    def __init__(self, code: Any) -> None:
        super().__init__(f"Unrecognized category code: {code!r}")
        self.code = code


class SourceUnavailable(StatsPipelineError):
    """The event source could not be queried."""


class ObjectStoreError(StatsPipelineError):
    """An object store operation failed."""


class ManifestFetchMiss(ObjectStoreError):
    """The requested object does not exist in the store."""

    def __init__(self, key: str) -> None:
        super().__init__(f"Object not found: {key}")
        self.key = key


class PublishFailure(ObjectStoreError):
    """Uploading an artifact failed; the run must abort."""

    def __init__(self, filename: str, reason: str) -> None:
        super().__init__(f"Failed to upload {filename}: {reason}")
        self.filename = filename
        self.reason = reason
