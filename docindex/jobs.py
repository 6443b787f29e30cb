"""Background run control: trigger-ingest, trigger-clear, search.

A single worker thread executes runs, and a new run is refused while one is
in flight, so two rebuilds never race on the same index. Searches issued
during a rebuild may see an empty or partially filled index.
"""

from __future__ import annotations

import itertools
import logging
import threading
from collections import deque
from concurrent.futures import Future, ThreadPoolExecutor
from pathlib import Path
from typing import Any, Callable, Optional

from .errors import RunInProgressError
from .indexing import IndexLifecycleManager, create_search_client
from .models import RunReport, SearchHit
from .orchestrator import IngestionOrchestrator
from .search import search_documents
from .sources import create_record_store_client
from .utils import RUN_HISTORY_LIMIT, IngestSettings

log = logging.getLogger(__name__)

_run_ids = itertools.count(1)

CATALOG_SUFFIXES = (".json", ".jsonl")


class RunHandle:
    """Queryable status of one background ingest or clear run."""

    def __init__(self, kind: str, future: Future) -> None:
        self.run_id = next(_run_ids)
        self.kind = kind
        self._future = future

    @property
    def status(self) -> str:
        if self._future.running():
            return "running"
        if not self._future.done():
            return "pending"
        return "error" if self._future.exception() is not None else "done"

    def done(self) -> bool:
        return self._future.done()

    def wait(self, timeout: Optional[float] = None) -> Any:
        """Block until the run ends and return its result (or raise its error)."""
        return self._future.result(timeout=timeout)

    @property
    def report(self) -> Optional[RunReport]:
        if not self._future.done() or self._future.exception() is not None:
            return None
        result = self._future.result()
        return result if isinstance(result, RunReport) else None

    @property
    def error(self) -> Optional[BaseException]:
        if not self._future.done():
            return None
        return self._future.exception()

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"run_id": self.run_id, "kind": self.kind, "status": self.status}
        if self.report is not None:
            data["report"] = self.report.to_dict()
        elif self.done() and self._future.exception() is None:
            data["result"] = self._future.result()
        if self.error is not None:
            data["error"] = str(self.error)
        return data


class IngestionService:
    """Entry points a request router would call.

    The search client, record-store client and converter handles are
    injected and shared by every run started through this service. Only the
    most recent ``history_limit`` run handles are kept.
    """

    def __init__(
        self,
        client: Any,
        converter: Any,
        settings: IngestSettings,
        *,
        record_store: Any = None,
        history_limit: int = RUN_HISTORY_LIMIT,
    ) -> None:
        self.client = client
        self.converter = converter
        self.settings = settings
        self.record_store = record_store
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="ingest-run")
        self._lock = threading.Lock()
        self._current: Optional[RunHandle] = None
        self.history: deque[RunHandle] = deque(maxlen=history_limit)

    @classmethod
    def from_settings(cls, settings: IngestSettings, converter: Any) -> "IngestionService":
        """Build a service that owns clients created from *settings*."""
        client = create_search_client(
            settings.es_url,
            api_key=settings.api_key,
            request_timeout=settings.request_timeout,
        )
        record_store = None
        if settings.record_store_uri:
            record_store = create_record_store_client(
                settings.record_store_uri, timeout_s=settings.request_timeout
            )
        return cls(client, converter, settings, record_store=record_store)

    @property
    def current(self) -> Optional[RunHandle]:
        return self._current

    def _start(self, kind: str, fn: Callable[[], Any]) -> RunHandle:
        with self._lock:
            if self._current is not None and not self._current.done():
                raise RunInProgressError(
                    f"run {self._current.run_id} ({self._current.kind}) is still "
                    f"{self._current.status}"
                )
            handle = RunHandle(kind, self._executor.submit(fn))
            self._current = handle
            self.history.append(handle)
        log.info("Started %s run %s", kind, handle.run_id)
        return handle

    def _orchestrator(self) -> IngestionOrchestrator:
        return IngestionOrchestrator(
            self.client,
            self.converter,
            index_name=self.settings.index_name,
            batch_size=self.settings.batch_size,
            max_workers=self.settings.max_workers,
            max_file_bytes=self.settings.max_file_bytes,
        )

    def _record_collection(self) -> Any:
        return self.record_store[self.settings.record_db][self.settings.record_collection]

    def start_ingest(self, path: Optional[Path] = None, *, rebuild: bool = True) -> RunHandle:
        """Start an ingest of *path*, or of the configured record source.

        A ``.json``/``.jsonl`` *path* is read as a record catalog, anything
        else as a directory of documents. Without a path the record store is
        scanned when one is attached, then the configured catalog, and the
        configured directory only when neither record source exists.
        """
        orchestrator = self._orchestrator()

        if path is None and self.record_store is not None:
            collection = self._record_collection()

            def _run() -> RunReport:
                return orchestrator.ingest_record_store(collection, rebuild=rebuild)

            return self._start("ingest", _run)

        source = path or self.settings.catalog_path or self.settings.source_dir
        if source is None:
            raise ValueError("no ingest source given and none configured")
        source = Path(source)

        if source.suffix.lower() in CATALOG_SUFFIXES:
            def _run() -> RunReport:
                return orchestrator.ingest_records(source, rebuild=rebuild)
        else:
            def _run() -> RunReport:
                return orchestrator.ingest_directory(
                    source, rebuild=rebuild, recursive=self.settings.recursive
                )

        return self._start("ingest", _run)

    def start_clear(self) -> RunHandle:
        index_name = self.settings.index_name
        lifecycle = IndexLifecycleManager(self.client)
        return self._start("clear", lambda: lifecycle.clear(index_name))

    def search(self, query_text: str) -> list[SearchHit]:
        return search_documents(
            self.client,
            query_text,
            index_name=self.settings.index_name,
            max_results=self.settings.max_search_results,
        )

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)
        for handle in (self.client, self.record_store):
            close = getattr(handle, "close", None)
            if close is not None:
                close()
