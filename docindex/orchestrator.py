"""Ingestion run: clear, extract, batch, bulk-index, report."""

from __future__ import annotations

import logging
import time
from collections import deque
from concurrent.futures import Future, ThreadPoolExecutor
from itertools import islice
from pathlib import Path
from typing import Any, Callable, Iterable, Iterator, Optional, Sequence

from elasticsearch import ApiError, TransportError

from .batching import BatchAccumulator
from .errors import ClearError, ExtractionError
from .extraction import extract_document
from .indexing import BulkIndexer, IndexLifecycleManager
from .models import (
    ExtractedDocument,
    IndexRecord,
    ItemFailure,
    RunReport,
    RunState,
    SourceItem,
    Stage,
)
from .sources import discover_documents, load_record_catalog, scan_record_store
from .utils import BATCH_SIZE, INDEX_NAME

log = logging.getLogger(__name__)

ProgressCallback = Callable[[SourceItem], None]

# submitted-but-unconsumed extractions per worker
EXTRACT_LOOKAHEAD = 2


def _extraction_failure(item: SourceItem, error: ExtractionError) -> ItemFailure:
    return ItemFailure(
        item_id=item.item_id,
        location=item.location,
        stage=Stage.EXTRACTION,
        error_type=type(error).__name__,
        reason=error.reason,
    )


class IngestionOrchestrator:
    """Drive one full sweep over a set of source items.

    The search client and Docling converter are injected; the orchestrator
    owns the accumulator, bulk indexer and lifecycle manager for the run.
    """

    def __init__(
        self,
        client: Any,
        converter: Any,
        *,
        index_name: str = INDEX_NAME,
        batch_size: int = BATCH_SIZE,
        max_workers: int = 1,
        max_file_bytes: Optional[int] = None,
        refresh: bool = False,
    ) -> None:
        self.client = client
        self.converter = converter
        self.index_name = index_name
        self.batch_size = batch_size
        self.max_workers = max(1, max_workers)
        self.max_file_bytes = max_file_bytes
        self.lifecycle = IndexLifecycleManager(client)
        self.indexer = BulkIndexer(client, index_name, refresh=refresh)
        self.state = RunState.IDLE

    def _set_state(self, report: RunReport, state: RunState) -> None:
        log.debug("run state: %s -> %s", self.state.value, state.value)
        self.state = state
        report.state = state

    def _extract(self, item: SourceItem):
        return extract_document(self.converter, item, max_file_bytes=self.max_file_bytes)

    def _extract_all(self, items: Sequence[SourceItem]) -> Iterator[tuple[SourceItem, Any]]:
        if self.max_workers == 1 or len(items) <= 1:
            for item in items:
                yield item, self._extract(item)
            return
        # at most `window` extractions are submitted ahead of the consumer;
        # results are yielded in input order
        window = self.max_workers * EXTRACT_LOOKAHEAD
        remaining = iter(items)
        with ThreadPoolExecutor(
            max_workers=self.max_workers, thread_name_prefix="extract"
        ) as executor:
            pending: deque[tuple[SourceItem, Future]] = deque(
                (item, executor.submit(self._extract, item))
                for item in islice(remaining, window)
            )
            while pending:
                item, future = pending.popleft()
                outcome = future.result()
                for nxt in islice(remaining, 1):
                    pending.append((nxt, executor.submit(self._extract, nxt)))
                yield item, outcome

    def _flush(self, batch: Optional[list[IndexRecord]], report: RunReport) -> None:
        if not batch:
            return
        self._set_state(report, RunState.FLUSHING)
        t0 = time.perf_counter()
        result = self.indexer.submit(batch)
        report.merge_bulk(result)
        log.info(
            "Flushed batch %s: %s/%s indexed in %.2fs",
            report.batches_submitted,
            len(result.indexed),
            len(batch),
            time.perf_counter() - t0,
        )
        self._set_state(report, RunState.EXTRACTING)

    def run(
        self,
        items: Iterable[SourceItem],
        *,
        clear_first: bool = False,
        on_item: Optional[ProgressCallback] = None,
    ) -> RunReport:
        """Process *items* and return the finalized run report.

        With *clear_first* the index is emptied before any extraction; a
        clear failure ends the run in ``failed`` state without touching the
        items. Per-item failures never stop the run.
        """
        items = list(items)
        report = RunReport(index_name=self.index_name)
        overall_t0 = time.perf_counter()

        if clear_first:
            self._set_state(report, RunState.CLEARING)
            try:
                self.lifecycle.clear(self.index_name)
            except ClearError as exc:
                report.fatal_error = str(exc)
                report.finish(RunState.FAILED)
                self.state = RunState.FAILED
                log.error("Run aborted before extraction: %s", exc)
                return report
            report.cleared = True

        self._set_state(report, RunState.EXTRACTING)
        try:
            self.lifecycle.ensure_index(self.index_name)
        except (ApiError, TransportError) as exc:
            # bulk submissions will surface the outage per batch
            log.warning("Could not ensure index %s: %s", self.index_name, exc)
        accumulator = BatchAccumulator(self.batch_size)

        for item, outcome in self._extract_all(items):
            report.items_seen += 1
            if isinstance(outcome, ExtractedDocument):
                report.extracted += 1
                accumulator.add(IndexRecord.from_document(outcome))
                self._flush(accumulator.flush_if_full(), report)
            else:
                failure = _extraction_failure(item, outcome)
                report.record_failure(failure)
                log.warning(
                    "Skipping %s: %s (%s)", item.item_id, failure.error_type, failure.reason
                )
            if on_item is not None:
                on_item(item)

        self._flush(accumulator.flush_remainder(), report)
        report.finish(RunState.COMPLETED)
        self.state = RunState.COMPLETED
        _log_summary(report, time.perf_counter() - overall_t0)
        return report

    def ingest_directory(
        self,
        folder: Path,
        *,
        rebuild: bool = False,
        recursive: bool = False,
        on_item: Optional[ProgressCallback] = None,
    ) -> RunReport:
        """Index every file in *folder*, keyed by file name."""
        log.info("Ingesting directory %s (rebuild=%s)", folder, rebuild)
        items = discover_documents(folder, recursive=recursive)
        return self.run(items, clear_first=rebuild, on_item=on_item)

    def ingest_records(
        self,
        catalog_path: Path,
        *,
        rebuild: bool = False,
        on_item: Optional[ProgressCallback] = None,
    ) -> RunReport:
        """Index every file referenced by a record catalog, keyed by record id."""
        log.info("Ingesting record catalog %s (rebuild=%s)", catalog_path, rebuild)
        items = load_record_catalog(catalog_path)
        return self.run(items, clear_first=rebuild, on_item=on_item)

    def ingest_record_store(
        self,
        collection: Any,
        *,
        rebuild: bool = False,
        on_item: Optional[ProgressCallback] = None,
    ) -> RunReport:
        """Index every file referenced by a record-store collection, keyed by ``_id``."""
        log.info(
            "Ingesting record store %s (rebuild=%s)",
            getattr(collection, "name", "?"),
            rebuild,
        )
        items = scan_record_store(collection)
        return self.run(items, clear_first=rebuild, on_item=on_item)


def _log_summary(report: RunReport, elapsed: float) -> None:
    log.info("=" * 60)
    log.info("INGESTION COMPLETE (%s)", report.index_name)
    log.info("  Items seen:      %s", report.items_seen)
    log.info("  Extracted:       %s", report.extracted)
    log.info("  Indexed:         %s", report.indexed)
    log.info("  Failed:          %s", report.failed)
    log.info("  Batches:         %s", report.batches_submitted)
    log.info("  Total runtime:   %.1fs", elapsed)
    if report.failures:
        log.warning("Failed items:")
        for failure in report.failures:
            log.warning(
                "  - %s [%s/%s]: %s",
                failure.item_id,
                failure.stage.value,
                failure.error_type,
                failure.reason[:200],
            )
