"""Cross-cutting helpers: constants, settings, run report I/O."""

from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from .models import RunReport

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

INDEX_NAME = "documents_index"
BATCH_SIZE = 1000
MAX_SEARCH_RESULTS = 10_000
DEFAULT_ES_URL = "http://localhost:9200"
REQUEST_TIMEOUT_S = 30.0
REPORT_FILE_NAME = "run_report.json"
RECORD_DB_NAME = "epost"
RECORD_COLLECTION = "emails"
RUN_HISTORY_LIMIT = 50

FORMAT_PDF = "pdf"
FORMAT_DOCX = "docx"
FORMAT_UNSUPPORTED = "unsupported"
SUPPORTED_FORMATS = {".pdf": FORMAT_PDF, ".docx": FORMAT_DOCX}


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class IngestSettings:
    """Run knobs shared by the CLI and the background service."""

    es_url: str = DEFAULT_ES_URL
    api_key: Optional[str] = None
    index_name: str = INDEX_NAME
    batch_size: int = BATCH_SIZE
    max_workers: int = 1
    request_timeout: float = REQUEST_TIMEOUT_S
    max_search_results: int = MAX_SEARCH_RESULTS
    max_file_bytes: Optional[int] = None
    recursive: bool = False
    source_dir: Optional[Path] = None
    catalog_path: Optional[Path] = None
    record_store_uri: Optional[str] = None
    record_db: str = RECORD_DB_NAME
    record_collection: str = RECORD_COLLECTION


# ---------------------------------------------------------------------------
# Path helpers
# ---------------------------------------------------------------------------


def ensure_output_dir(output_dir: Path) -> Path:
    output_dir.mkdir(parents=True, exist_ok=True)
    return output_dir


# ---------------------------------------------------------------------------
# Run report I/O
# ---------------------------------------------------------------------------


def save_run_report(output_dir: Path, report: RunReport) -> Path:
    """Write ``run_report.json`` under *output_dir* and return its path."""
    ensure_output_dir(output_dir)
    path = output_dir / REPORT_FILE_NAME
    with open(path, "w", encoding="utf-8") as fh:
        json.dump(report.to_dict(), fh, indent=2, ensure_ascii=False, default=str)
    return path


def load_run_report(output_dir: Path) -> dict:
    """Load a previously saved report; ``{}`` when missing or unreadable."""
    path = output_dir / REPORT_FILE_NAME
    if not path.exists():
        return {}
    try:
        with open(path, "r", encoding="utf-8") as fh:
            data = json.load(fh)
    except (json.JSONDecodeError, OSError, ValueError):
        return {}
    return data if isinstance(data, dict) else {}
