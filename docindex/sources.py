"""Input discovery: local directories, record catalogs and the record store."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Iterable, Optional
from urllib.parse import unquote, urlparse

from .models import SourceItem
from .utils import FORMAT_UNSUPPORTED, REQUEST_TIMEOUT_S, SUPPORTED_FORMATS

log = logging.getLogger(__name__)

ID_FIELDS = ("id", "_id", "key")
LOCATION_FIELDS = ("location", "fileURL", "file_url", "path")
RECORD_ID_FIELD = "_id"
RECORD_LOCATION_FIELD = "fileURL"


def detect_format(location: str) -> str:
    """Map a file location to ``pdf``, ``docx`` or ``unsupported``."""
    suffix = Path(urlparse(location).path if "://" in location else location).suffix
    return SUPPORTED_FORMATS.get(suffix.lower(), FORMAT_UNSUPPORTED)


# ---------------------------------------------------------------------------
# Local filesystem
# ---------------------------------------------------------------------------


def discover_documents(folder: Path, *, recursive: bool = False) -> list[SourceItem]:
    """List every non-hidden file under *folder*, sorted by path.

    Unsupported extensions are kept (tagged ``unsupported``) so the run can
    account for them. The identifier is the file name, or the relative POSIX
    path when *recursive* is set.
    """
    if not folder.exists():
        log.warning("Input folder not found: %s", folder)
        return []
    if not folder.is_dir():
        log.warning("Input path is not a directory: %s", folder)
        return []

    candidates = folder.rglob("*") if recursive else folder.iterdir()
    files = sorted(
        path
        for path in candidates
        if path.is_file() and not path.name.startswith(".")
    )

    items = []
    for path in files:
        item_id = path.relative_to(folder).as_posix() if recursive else path.name
        items.append(
            SourceItem(item_id=item_id, location=str(path), fmt=detect_format(path.name))
        )
    log.debug("Discovered %s files in %s", len(items), folder)
    return items


# ---------------------------------------------------------------------------
# Record catalog
# ---------------------------------------------------------------------------


def _first_field(record: dict[str, Any], names: Iterable[str]) -> Optional[str]:
    for name in names:
        value = record.get(name)
        if value not in (None, ""):
            return str(value)
    return None


def _to_local_path(location: str) -> str:
    parsed = urlparse(location)
    if parsed.scheme == "file":
        return unquote(parsed.path)
    return location


def _read_catalog(path: Path) -> list[Any]:
    text = path.read_text(encoding="utf-8")
    stripped = text.lstrip()
    if stripped.startswith("["):
        data = json.loads(stripped)
        return data if isinstance(data, list) else []

    records = []
    for line_no, line in enumerate(text.splitlines(), start=1):
        line = line.strip()
        if not line:
            continue
        try:
            records.append(json.loads(line))
        except json.JSONDecodeError as exc:
            log.warning("Skipping malformed catalog line %s in %s: %s", line_no, path, exc)
    return records


def load_record_catalog(path: Path) -> list[SourceItem]:
    """Read a JSON array or JSON Lines catalog into source items.

    Each record needs an identifier and a file location; records missing
    either one are skipped.
    """
    if not path.exists():
        raise FileNotFoundError(f"Record catalog not found: {path}")

    items, skipped = _records_to_items(_read_catalog(path), ID_FIELDS, LOCATION_FIELDS)
    if skipped:
        log.warning("Skipped %s catalog records without id/location in %s", skipped, path)
    log.info("Loaded %s records from catalog %s", len(items), path)
    return items


def _records_to_items(
    records: Iterable[Any],
    id_fields: Iterable[str],
    location_fields: Iterable[str],
) -> tuple[list[SourceItem], int]:
    items: list[SourceItem] = []
    skipped = 0
    for record in records:
        if not isinstance(record, dict):
            skipped += 1
            continue
        item_id = _first_field(record, id_fields)
        location = _first_field(record, location_fields)
        if item_id is None or location is None:
            skipped += 1
            continue
        location = _to_local_path(location)
        items.append(
            SourceItem(item_id=item_id, location=location, fmt=detect_format(location))
        )
    return items, skipped


# ---------------------------------------------------------------------------
# Record store (MongoDB)
# ---------------------------------------------------------------------------


def create_record_store_client(uri: str, *, timeout_s: float = REQUEST_TIMEOUT_S) -> Any:
    """Build a ``pymongo.MongoClient``; it connects lazily on first query."""
    from pymongo import MongoClient

    return MongoClient(uri, serverSelectionTimeoutMS=int(timeout_s * 1000))


def scan_record_store(collection: Any) -> list[SourceItem]:
    """Read every record of *collection* and map ``_id``/``fileURL`` to items.

    The scan is read-only and projects just the two fields it needs.
    Records without a file URL are skipped.
    """
    cursor = collection.find(
        {}, projection={RECORD_ID_FIELD: 1, RECORD_LOCATION_FIELD: 1}
    )
    items, skipped = _records_to_items(
        cursor, (RECORD_ID_FIELD,), (RECORD_LOCATION_FIELD,)
    )
    name = getattr(collection, "name", "collection")
    if skipped:
        log.warning("Skipped %s records without %s in %s", skipped, RECORD_LOCATION_FIELD, name)
    log.info("Loaded %s records from record store %s", len(items), name)
    return items
