"""CLI entrypoint for the document -> text -> Elasticsearch pipeline.

Usage:
    python -m docindex --local-dir ./documents
    python -m docindex --local-dir ./documents --rebuild-index
    python -m docindex --catalog ./records.jsonl --rebuild-index
    python -m docindex --record-store mongodb://localhost:27017 --rebuild-index
    python -m docindex --clear-only
    python -m docindex --search "invoice"
    python -m docindex --show-report
"""

from __future__ import annotations

import argparse
import json
import logging
from logging.handlers import RotatingFileHandler
import os
import sys
import time
from pathlib import Path

from .errors import ClearError
from .utils import (
    BATCH_SIZE,
    DEFAULT_ES_URL,
    INDEX_NAME,
    MAX_SEARCH_RESULTS,
    RECORD_COLLECTION,
    RECORD_DB_NAME,
    REQUEST_TIMEOUT_S,
)

log = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_ITEM_FAILURES = 1
EXIT_RUN_FAILED = 2

LOG_DATE_FMT = "%Y-%m-%d %H:%M:%S"
CONSOLE_LOG_FMT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
DETAILED_LOG_FMT = (
    "%(asctime)s | %(levelname)-8s | %(name)s | "
    "%(threadName)s | %(filename)s:%(lineno)d | %(message)s"
)
LOG_FILE_NAME = "docindex.log"
LOG_FILE_MAX_BYTES = 20 * 1024 * 1024
LOG_FILE_BACKUPS = 5
QUIET_LOGGERS = ("elastic_transport", "urllib3", "docling", "pymongo")


def _log_file_handler(path: Path) -> logging.Handler:
    path.parent.mkdir(parents=True, exist_ok=True)
    handler = RotatingFileHandler(
        path, maxBytes=LOG_FILE_MAX_BYTES, backupCount=LOG_FILE_BACKUPS, encoding="utf-8"
    )
    handler.setLevel(logging.DEBUG)
    handler.setFormatter(logging.Formatter(DETAILED_LOG_FMT, LOG_DATE_FMT))
    return handler


def _setup_logging(args: argparse.Namespace) -> Path | None:
    """Configure console logging and, when requested, a rotating log file.

    The file always records DEBUG; the console follows ``--verbose``.
    Returns the log file path, if any.
    """
    console_level = logging.DEBUG if args.verbose else logging.INFO
    console = logging.StreamHandler()
    console.setLevel(console_level)
    console.setFormatter(
        logging.Formatter(
            DETAILED_LOG_FMT if args.detailed_logging else CONSOLE_LOG_FMT, LOG_DATE_FMT
        )
    )
    handlers: list[logging.Handler] = [console]

    log_file = args.log_file
    if log_file is None and args.detailed_logging:
        log_file = args.output_dir / LOG_FILE_NAME
    if log_file is not None:
        handlers.append(_log_file_handler(log_file))

    logging.basicConfig(
        level=logging.DEBUG if log_file is not None else console_level,
        handlers=handlers,
        force=True,
    )
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
    return log_file


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        description="Document -> text -> Elasticsearch indexing pipeline"
    )
    src = parser.add_mutually_exclusive_group(required=False)
    src.add_argument("--local-dir", type=Path, help="Directory of PDF/DOCX files")
    src.add_argument(
        "--catalog",
        type=Path,
        help="Record catalog (JSON array or JSON Lines) with id + file location",
    )
    src.add_argument(
        "--record-store",
        metavar="URI",
        help="MongoDB URI of the record store to scan (_id + fileURL per record)",
    )
    src.add_argument(
        "--clear-only",
        action="store_true",
        help="Delete every document from the index and exit",
    )
    src.add_argument("--search", metavar="QUERY", help="Search the index and exit")
    src.add_argument(
        "--show-report",
        action="store_true",
        help="Print the last run report from --output-dir and exit",
    )

    parser.add_argument(
        "--rebuild-index",
        action="store_true",
        help="Clear the index before ingesting (full rebuild)",
    )
    parser.add_argument(
        "--recursive",
        action="store_true",
        help="Walk --local-dir recursively (ids become relative paths)",
    )
    parser.add_argument(
        "--es-url",
        default=os.environ.get("ELASTICSEARCH_URL", DEFAULT_ES_URL),
        help=f"Elasticsearch URL (default: $ELASTICSEARCH_URL or {DEFAULT_ES_URL})",
    )
    parser.add_argument(
        "--api-key",
        default=os.environ.get("ELASTICSEARCH_API_KEY"),
        help="Elasticsearch API key (default: $ELASTICSEARCH_API_KEY)",
    )
    parser.add_argument(
        "--record-db",
        default=RECORD_DB_NAME,
        help=f"Record store database (default: {RECORD_DB_NAME})",
    )
    parser.add_argument(
        "--record-collection",
        default=RECORD_COLLECTION,
        help=f"Record store collection (default: {RECORD_COLLECTION})",
    )
    parser.add_argument(
        "--index",
        default=INDEX_NAME,
        help=f"Target index name (default: {INDEX_NAME})",
    )
    parser.add_argument(
        "--batch-size",
        type=int,
        default=BATCH_SIZE,
        help=f"Documents per bulk request (default: {BATCH_SIZE})",
    )
    parser.add_argument(
        "--max-workers",
        type=int,
        default=1,
        help="Parallel extraction workers sharing one converter (default: 1)",
    )
    parser.add_argument(
        "--num-threads",
        type=int,
        default=4,
        help="Docling internal thread count",
    )
    parser.add_argument(
        "--disable-ocr",
        action="store_true",
        help="Disable OCR for faster conversion on text PDFs",
    )
    parser.add_argument(
        "--document-timeout",
        type=float,
        default=None,
        help="Per-document extraction timeout in seconds",
    )
    parser.add_argument(
        "--request-timeout",
        type=float,
        default=REQUEST_TIMEOUT_S,
        help=f"Per-request Elasticsearch timeout (default: {REQUEST_TIMEOUT_S}s)",
    )
    parser.add_argument(
        "--max-results",
        type=int,
        default=MAX_SEARCH_RESULTS,
        help=f"Maximum search hits (default: {MAX_SEARCH_RESULTS})",
    )
    parser.add_argument(
        "--output-dir",
        type=Path,
        default=Path("output"),
        help="Directory for the run report and log file (default: output/)",
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable verbose logging",
    )
    parser.add_argument(
        "--detailed-logging",
        action="store_true",
        help="Enable detailed logging (thread, file/line, rotating log file)",
    )
    parser.add_argument(
        "--log-file",
        type=Path,
        default=None,
        help=(
            "Optional log file path "
            "(default: <output-dir>/docindex.log in detailed mode)"
        ),
    )
    args = parser.parse_args(argv)
    if args.batch_size < 1:
        parser.error("--batch-size must be >= 1")
    actions = (
        args.local_dir,
        args.catalog,
        args.record_store,
        args.clear_only,
        args.search,
        args.show_report,
    )
    if not any(actions):
        parser.error(
            "one of --local-dir, --catalog, --record-store, --clear-only, "
            "--search, --show-report is required"
        )
    return args


def _show_report(output_dir: Path) -> int:
    from .utils import load_run_report

    data = load_run_report(output_dir)
    if not data:
        log.error("No run report found in %s", output_dir)
        return EXIT_RUN_FAILED
    print(json.dumps(data, indent=2, ensure_ascii=False))
    return EXIT_OK


def main(argv: list[str] | None = None) -> int:
    """Run the CLI and return its exit code."""
    from .extraction import create_converter
    from .indexing import IndexLifecycleManager, search_client
    from .orchestrator import IngestionOrchestrator
    from .search import search_documents
    from .sources import create_record_store_client
    from .utils import save_run_report

    args = parse_args(argv)
    _setup_logging(args)
    if args.show_report:
        return _show_report(args.output_dir)
    overall_t0 = time.perf_counter()

    with search_client(
        args.es_url, api_key=args.api_key, request_timeout=args.request_timeout
    ) as client:
        if args.search:
            hits = search_documents(
                client, args.search, index_name=args.index, max_results=args.max_results
            )
            log.info("%s hits for %r", len(hits), args.search)
            print(json.dumps([hit.doc_id for hit in hits], ensure_ascii=False))
            return EXIT_OK

        if args.clear_only:
            try:
                deleted = IndexLifecycleManager(client).clear(args.index)
            except ClearError as exc:
                log.error("%s", exc)
                return EXIT_RUN_FAILED
            log.info("Cleared %s documents from %s", deleted, args.index)
            return EXIT_OK

        from tqdm import tqdm

        log.info("Initializing Docling converter...")
        converter = create_converter(
            num_threads=max(1, args.num_threads),
            enable_ocr=not args.disable_ocr,
            document_timeout=args.document_timeout,
        )
        orchestrator = IngestionOrchestrator(
            client,
            converter,
            index_name=args.index,
            batch_size=args.batch_size,
            max_workers=max(1, args.max_workers),
        )

        with tqdm(desc="Indexing", unit="doc") as progress:

            def on_item(_item):
                progress.update(1)

            if args.record_store:
                store = create_record_store_client(
                    args.record_store, timeout_s=args.request_timeout
                )
                try:
                    report = orchestrator.ingest_record_store(
                        store[args.record_db][args.record_collection],
                        rebuild=args.rebuild_index,
                        on_item=on_item,
                    )
                finally:
                    store.close()
            elif args.catalog:
                report = orchestrator.ingest_records(
                    args.catalog, rebuild=args.rebuild_index, on_item=on_item
                )
            else:
                report = orchestrator.ingest_directory(
                    args.local_dir,
                    rebuild=args.rebuild_index,
                    recursive=args.recursive,
                    on_item=on_item,
                )

    report_path = save_run_report(args.output_dir, report)
    log.info("Run report: %s", report_path)
    log.info("Total runtime: %.1fs", time.perf_counter() - overall_t0)

    if report.fatal_error:
        log.error("Run failed: %s", report.fatal_error)
        return EXIT_RUN_FAILED
    if report.failures:
        return EXIT_ITEM_FAILURES
    return EXIT_OK


def run() -> None:
    sys.exit(main())
