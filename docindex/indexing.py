"""Elasticsearch client handles, bulk indexing and index lifecycle."""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Any, Iterator, Optional, Sequence

from elasticsearch import ApiError, Elasticsearch, TransportError

from .errors import BulkTransportError, ClearError, PerItemIndexError
from .models import BulkResult, IndexRecord, ItemFailure, Stage
from .utils import DEFAULT_ES_URL, INDEX_NAME, REQUEST_TIMEOUT_S

log = logging.getLogger(__name__)

INDEX_MAPPINGS = {
    "properties": {
        "location": {"type": "keyword"},
        "content": {"type": "text"},
    }
}


# ---------------------------------------------------------------------------
# Client handles
# ---------------------------------------------------------------------------


def create_search_client(
    url: str = DEFAULT_ES_URL,
    *,
    api_key: Optional[str] = None,
    request_timeout: float = REQUEST_TIMEOUT_S,
) -> Elasticsearch:
    """Build an Elasticsearch client with a per-request timeout."""
    kwargs: dict[str, Any] = {"request_timeout": request_timeout}
    if api_key:
        kwargs["api_key"] = api_key
    return Elasticsearch(url, **kwargs)


def response_body(response: Any) -> dict[str, Any]:
    """Return the JSON body of a client response as a plain dict."""
    return getattr(response, "body", response) or {}


@contextmanager
def search_client(
    url: str = DEFAULT_ES_URL,
    *,
    api_key: Optional[str] = None,
    request_timeout: float = REQUEST_TIMEOUT_S,
) -> Iterator[Elasticsearch]:
    """Yield a client for the duration of one run and close it afterwards."""
    client = create_search_client(url, api_key=api_key, request_timeout=request_timeout)
    try:
        yield client
    finally:
        client.close()


# ---------------------------------------------------------------------------
# Bulk indexing
# ---------------------------------------------------------------------------


def _item_failure(record: IndexRecord, error: Exception, error_type: str) -> ItemFailure:
    return ItemFailure(
        item_id=record.doc_id,
        location=record.location,
        stage=Stage.INDEXING,
        error_type=error_type,
        reason=str(error),
        status_code=getattr(error, "status_code", None),
    )


class BulkIndexer:
    """Submit batches of records as single bulk requests.

    Each record is written with an ``index`` action keyed by its identifier,
    so resubmitting the same id overwrites the stored document. Failed items
    are reported, never retried.
    """

    def __init__(self, client: Any, index_name: str = INDEX_NAME, *, refresh: bool = False):
        self.client = client
        self.index_name = index_name
        self.refresh = refresh

    def _operations(self, batch: Sequence[IndexRecord]) -> list[dict[str, Any]]:
        operations: list[dict[str, Any]] = []
        for record in batch:
            operations.append({"index": {"_index": self.index_name, "_id": record.doc_id}})
            operations.append(record.to_source())
        return operations

    def submit(self, batch: Sequence[IndexRecord]) -> BulkResult:
        result = BulkResult()
        if not batch:
            return result

        try:
            response = self.client.bulk(
                operations=self._operations(batch),
                refresh=self.refresh,
            )
        except (ApiError, TransportError) as exc:
            log.error(
                "Bulk request for %s documents failed: %s", len(batch), exc
            )
            transport_error = BulkTransportError(exc)
            result.failures.extend(
                _item_failure(record, transport_error, "BulkTransportError")
                for record in batch
            )
            return result

        items = list(response_body(response).get("items") or [])
        for position, record in enumerate(batch):
            if position >= len(items):
                error = PerItemIndexError(
                    record.doc_id, None, "missing_item", "no bulk response entry"
                )
                result.failures.append(_item_failure(record, error, "PerItemIndexError"))
                continue

            # each entry is {"<action>": {...}}
            entry = next(iter(items[position].values()), {})
            status = entry.get("status")
            if isinstance(status, int) and 200 <= status < 300:
                result.indexed.append(record.doc_id)
                continue

            detail = entry.get("error") or {}
            if isinstance(detail, str):
                detail = {"reason": detail}
            error = PerItemIndexError(
                record.doc_id,
                status,
                detail.get("type", ""),
                detail.get("reason", ""),
            )
            result.failures.append(_item_failure(record, error, "PerItemIndexError"))

        if result.failures:
            log.warning(
                "Bulk batch: %s indexed, %s rejected",
                len(result.indexed),
                len(result.failures),
            )
        else:
            log.info("Bulk batch: %s indexed", len(result.indexed))
        return result


# ---------------------------------------------------------------------------
# Index lifecycle
# ---------------------------------------------------------------------------


class IndexLifecycleManager:
    def __init__(self, client: Any) -> None:
        self.client = client

    def ensure_index(self, index_name: str = INDEX_NAME) -> bool:
        """Create *index_name* with the document mapping if missing.

        Returns True when the index was created.
        """
        if self.client.indices.exists(index=index_name):
            return False
        self.client.indices.create(index=index_name, mappings=INDEX_MAPPINGS)
        log.info("Created index %s", index_name)
        return True

    def clear(self, index_name: str = INDEX_NAME) -> int:
        """Delete every document in *index_name* and wait for completion.

        Clearing a missing index is a no-op. Returns the deleted count.
        Raises ``ClearError`` when the engine cannot complete the delete.
        """
        try:
            if not self.client.indices.exists(index=index_name):
                log.info("Index %s does not exist; nothing to clear", index_name)
                return 0
            response = self.client.delete_by_query(
                index=index_name,
                query={"match_all": {}},
                conflicts="proceed",
                refresh=True,
                wait_for_completion=True,
            )
        except (ApiError, TransportError) as exc:
            log.error("Error clearing index %s: %s", index_name, exc)
            raise ClearError(index_name, exc) from exc

        deleted = int(response_body(response).get("deleted", 0) or 0)
        log.info("Index %s cleared (%s documents deleted)", index_name, deleted)
        return deleted
