"""Typed failures for each pipeline stage.

Extraction and indexing failures are *returned* (or recorded) rather than
raised so a run can keep going; only ``ClearError`` and
``RunInProgressError`` propagate to the caller.
"""

from __future__ import annotations

from typing import Optional


class ExtractionError(Exception):
    """Base class for failures of the content extractor."""

    def __init__(self, location: str, reason: str) -> None:
        super().__init__(f"{location}: {reason}")
        self.location = location
        self.reason = reason


class UnsupportedFormat(ExtractionError):
    """The declared format is not one the extractor can read."""

    def __init__(self, location: str, fmt: str) -> None:
        super().__init__(location, f"unsupported format {fmt!r}")
        self.fmt = fmt


class ExtractionFailed(ExtractionError):
    """The file could not be read or decoded."""

    def __init__(self, location: str, cause: BaseException | str) -> None:
        reason = cause if isinstance(cause, str) else f"{type(cause).__name__}: {cause}"
        super().__init__(location, reason)
        self.cause = cause if isinstance(cause, BaseException) else None


class BulkTransportError(Exception):
    """A whole bulk request failed before the engine answered per item."""

    def __init__(self, cause: BaseException) -> None:
        super().__init__(f"{type(cause).__name__}: {cause}")
        self.cause = cause


class PerItemIndexError(Exception):
    """The engine rejected one document of an otherwise accepted bulk call."""

    def __init__(
        self,
        doc_id: str,
        status_code: Optional[int],
        error_type: str = "",
        reason: str = "",
    ) -> None:
        super().__init__(f"{doc_id}: [{status_code}] {error_type} {reason}".strip())
        self.doc_id = doc_id
        self.status_code = status_code
        self.error_type = error_type
        self.reason = reason


class ClearError(Exception):
    """Clearing the index failed; the run must not start extracting."""

    def __init__(self, index_name: str, cause: BaseException) -> None:
        super().__init__(f"failed to clear index {index_name!r}: {cause}")
        self.index_name = index_name
        self.cause = cause


class RunInProgressError(RuntimeError):
    """Another ingestion or clear run is still in flight."""
