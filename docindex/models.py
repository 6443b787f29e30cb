"""Shared data models for the ingestion pipeline."""

from __future__ import annotations

import enum
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional


class Stage(str, enum.Enum):
    EXTRACTION = "extraction"
    INDEXING = "indexing"


class RunState(str, enum.Enum):
    IDLE = "idle"
    CLEARING = "clearing"
    EXTRACTING = "extracting"
    FLUSHING = "flushing"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass(frozen=True)
class SourceItem:
    """One ingestible file: its stable identifier, where it lives, its format."""

    item_id: str
    location: str
    fmt: str


@dataclass(frozen=True)
class ExtractedDocument:
    item_id: str
    location: str
    text: str


@dataclass
class ExtractionResult:
    """Outcome of one extraction: either ``text`` or ``error`` is set."""

    text: Optional[str] = None
    error: Optional[Exception] = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass(frozen=True)
class IndexRecord:
    """Wire-level unit sent to the search engine, keyed by ``doc_id``."""

    doc_id: str
    location: str
    content: str

    @classmethod
    def from_document(cls, document: ExtractedDocument) -> "IndexRecord":
        return cls(
            doc_id=document.item_id,
            location=document.location,
            content=document.text,
        )

    def to_source(self) -> dict[str, str]:
        return {"location": self.location, "content": self.content}


@dataclass(frozen=True)
class ItemFailure:
    item_id: str
    location: str
    stage: Stage
    error_type: str
    reason: str
    status_code: Optional[int] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "item_id": self.item_id,
            "location": self.location,
            "stage": self.stage.value,
            "error_type": self.error_type,
            "reason": self.reason,
            "status_code": self.status_code,
        }


@dataclass
class BulkResult:
    """Per-item reconciliation of one bulk submission."""

    indexed: list[str] = field(default_factory=list)
    failures: list[ItemFailure] = field(default_factory=list)

    @property
    def submitted(self) -> int:
        return len(self.indexed) + len(self.failures)


@dataclass(frozen=True)
class SearchHit:
    doc_id: str
    score: Optional[float] = None


@dataclass
class RunReport:
    """Aggregated outcome of one ingestion run."""

    index_name: str = ""
    state: RunState = RunState.IDLE
    items_seen: int = 0
    extracted: int = 0
    indexed: int = 0
    batches_submitted: int = 0
    cleared: bool = False
    failures: list[ItemFailure] = field(default_factory=list)
    fatal_error: Optional[str] = None
    started_at: str = field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat()
    )
    finished_at: Optional[str] = None

    @property
    def failed(self) -> int:
        return len(self.failures)

    @property
    def succeeded(self) -> bool:
        return self.state == RunState.COMPLETED and not self.failures

    def record_failure(self, failure: ItemFailure) -> None:
        self.failures.append(failure)

    def merge_bulk(self, result: BulkResult) -> None:
        self.batches_submitted += 1
        self.indexed += len(result.indexed)
        self.failures.extend(result.failures)

    def failures_by_type(self) -> dict[str, int]:
        return dict(Counter(f.error_type for f in self.failures))

    def finish(self, state: RunState) -> None:
        self.state = state
        self.finished_at = datetime.now(timezone.utc).isoformat()

    def to_dict(self) -> dict[str, Any]:
        return {
            "index_name": self.index_name,
            "state": self.state.value,
            "succeeded": self.succeeded,
            "items_seen": self.items_seen,
            "extracted": self.extracted,
            "indexed": self.indexed,
            "failed": self.failed,
            "batches_submitted": self.batches_submitted,
            "cleared": self.cleared,
            "failures_by_type": self.failures_by_type(),
            "failures": [f.to_dict() for f in self.failures],
            "fatal_error": self.fatal_error,
            "started_at": self.started_at,
            "finished_at": self.finished_at,
        }
