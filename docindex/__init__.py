"""PDF/DOCX -> plain text -> Elasticsearch bulk-indexing pipeline.

Public API -- all symbols that tests and external code import live here.
Internally the code is split across focused submodules; this file
re-exports the stable public surface so ``from docindex import X`` works.
"""

from .batching import BatchAccumulator
from .errors import (
    BulkTransportError,
    ClearError,
    ExtractionError,
    ExtractionFailed,
    PerItemIndexError,
    RunInProgressError,
    UnsupportedFormat,
)
from .extraction import create_converter, extract_document, extract_text
from .indexing import (
    BulkIndexer,
    IndexLifecycleManager,
    create_search_client,
    search_client,
)
from .jobs import IngestionService, RunHandle
from .models import (
    BulkResult,
    ExtractedDocument,
    ExtractionResult,
    IndexRecord,
    ItemFailure,
    RunReport,
    RunState,
    SearchHit,
    SourceItem,
    Stage,
)
from .orchestrator import IngestionOrchestrator
from .search import search_documents
from .sources import (
    create_record_store_client,
    detect_format,
    discover_documents,
    load_record_catalog,
    scan_record_store,
)
from .utils import (
    BATCH_SIZE,
    INDEX_NAME,
    MAX_SEARCH_RESULTS,
    IngestSettings,
    save_run_report,
)

__all__ = [
    # Models
    "SourceItem",
    "ExtractedDocument",
    "ExtractionResult",
    "IndexRecord",
    "ItemFailure",
    "BulkResult",
    "RunReport",
    "RunState",
    "SearchHit",
    "Stage",
    # Errors
    "ExtractionError",
    "UnsupportedFormat",
    "ExtractionFailed",
    "BulkTransportError",
    "PerItemIndexError",
    "ClearError",
    "RunInProgressError",
    # Constants / config
    "INDEX_NAME",
    "BATCH_SIZE",
    "MAX_SEARCH_RESULTS",
    "IngestSettings",
    "save_run_report",
    # Sources
    "detect_format",
    "discover_documents",
    "load_record_catalog",
    "scan_record_store",
    "create_record_store_client",
    # Extraction
    "create_converter",
    "extract_text",
    "extract_document",
    # Batching / indexing
    "BatchAccumulator",
    "BulkIndexer",
    "IndexLifecycleManager",
    "create_search_client",
    "search_client",
    # Orchestration
    "IngestionOrchestrator",
    "IngestionService",
    "RunHandle",
    # Search
    "search_documents",
]
