"""Keyword / substring search against the document index."""

from __future__ import annotations

import logging
from typing import Any

from elasticsearch import NotFoundError

from .indexing import response_body
from .models import SearchHit
from .utils import INDEX_NAME, MAX_SEARCH_RESULTS

log = logging.getLogger(__name__)

_WILDCARD_SPECIALS = str.maketrans({"*": r"\*", "?": r"\?", "\\": r"\\"})


def build_query(query_text: str) -> dict[str, Any]:
    """Full-text match on ``content`` or a case-insensitive substring hit."""
    pattern = f"*{query_text.strip().lower().translate(_WILDCARD_SPECIALS)}*"
    return {
        "bool": {
            "should": [
                {"match": {"content": query_text}},
                {
                    "wildcard": {
                        "content": {"value": pattern, "case_insensitive": True}
                    }
                },
            ],
            "minimum_should_match": 1,
        }
    }


def search_documents(
    client: Any,
    query_text: str,
    *,
    index_name: str = INDEX_NAME,
    max_results: int = MAX_SEARCH_RESULTS,
) -> list[SearchHit]:
    """Return matching document identifiers, best match first.

    Only identifiers come back (``_source`` is disabled). A missing index or
    no match yields an empty list.
    """
    if not query_text or not query_text.strip():
        raise ValueError("query_text must not be empty")

    try:
        response = client.search(
            index=index_name,
            query=build_query(query_text),
            size=max(1, max_results),
            source=False,
        )
    except NotFoundError:
        log.info("Search on missing index %s", index_name)
        return []

    hits = (response_body(response).get("hits") or {}).get("hits") or []
    results = [SearchHit(doc_id=hit["_id"], score=hit.get("_score")) for hit in hits]
    log.debug("search %r -> %s hits", query_text, len(results))
    return results
