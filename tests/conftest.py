"""Shared fixtures for the docindex test suite.

The search engine and the Docling converter are replaced by small in-memory
fakes so the pipeline can be exercised end to end without services.
"""

from __future__ import annotations

import io
import logging
import re
import sys
import threading
import types
import zipfile
from pathlib import Path

import pytest
from elasticsearch import ConnectionError as ESConnectionError

# ---------------------------------------------------------------------------
# Configure verbose logging for test debugging
# ---------------------------------------------------------------------------
logging.basicConfig(
    level=logging.DEBUG,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    stream=sys.stderr,
    force=True,
)

CORRUPT_MARKER = b"\x00CORRUPT"


# ---------------------------------------------------------------------------
# Fake Docling converter
# ---------------------------------------------------------------------------


class FakeDoclingDocument:
    def __init__(self, text: str) -> None:
        self._text = text

    def export_to_text(self) -> str:
        return self._text


class FakeConverter:
    """Stands in for Docling's converter.

    Blank-page PDFs and DOCX packages yield their text runs (possibly none);
    any other payload is decoded as UTF-8. Empty or corrupt input raises,
    as Docling does.
    """

    def __init__(self, gate: threading.Event | None = None) -> None:
        self.calls: list[str] = []
        self.gate = gate
        self._lock = threading.Lock()

    @staticmethod
    def _text_of(data: bytes) -> str:
        if data.startswith(b"%PDF-"):
            runs = re.findall(rb"\((.*?)\)\s*Tj", data)
            return "\n".join(run.decode("latin-1") for run in runs)
        if data.startswith(b"PK"):
            with zipfile.ZipFile(io.BytesIO(data)) as package:
                xml = package.read("word/document.xml").decode("utf-8")
            return "\n".join(re.findall(r"<w:t[^>]*>(.*?)</w:t>", xml))
        return data.decode("utf-8")

    def convert(self, source, raises_on_error=True):
        with self._lock:
            self.calls.append(source.name)
        if self.gate is not None:
            self.gate.wait(timeout=10)
        data = source.stream.read()
        if not data or data.startswith(CORRUPT_MARKER):
            raise RuntimeError(f"Input document {source.name} is not valid")
        return types.SimpleNamespace(
            status=types.SimpleNamespace(value="success"),
            errors=[],
            document=FakeDoclingDocument(self._text_of(data)),
        )


# ---------------------------------------------------------------------------
# Fake Elasticsearch client
# ---------------------------------------------------------------------------


class FakeIndices:
    def __init__(self, es: "FakeElasticsearch") -> None:
        self._es = es

    def exists(self, index):
        self._es._check_reachable()
        return index in self._es.indexes

    def create(self, index, mappings=None):
        self._es._check_reachable()
        self._es.indexes.setdefault(index, {})
        self._es.mappings[index] = mappings
        return {"acknowledged": True, "index": index}


class FakeElasticsearch:
    """Just enough of the client API: bulk, delete_by_query, search."""

    def __init__(self) -> None:
        self.indexes: dict[str, dict[str, dict]] = {}
        self.mappings: dict[str, dict | None] = {}
        self.indices = FakeIndices(self)
        self.reject_ids: set[str] = set()
        self.unreachable = False
        self.fail_bulk_calls: set[int] = set()
        self.bulk_calls: list[list[str]] = []
        self.delete_calls = 0
        self.closed = False

    def _check_reachable(self) -> None:
        if self.unreachable:
            raise ESConnectionError("Connection refused")

    def bulk(self, operations, refresh=False):
        call_no = len(self.bulk_calls)
        ids = [op["index"]["_id"] for op in operations[0::2]]
        self.bulk_calls.append(ids)
        self._check_reachable()
        if call_no in self.fail_bulk_calls:
            raise ESConnectionError("Connection reset by peer")

        items = []
        for action, body in zip(operations[0::2], operations[1::2]):
            meta = action["index"]
            doc_id = meta["_id"]
            if doc_id in self.reject_ids:
                items.append(
                    {
                        "index": {
                            "_index": meta["_index"],
                            "_id": doc_id,
                            "status": 400,
                            "error": {
                                "type": "document_parsing_exception",
                                "reason": "failed to parse field [content]",
                            },
                        }
                    }
                )
                continue
            docs = self.indexes.setdefault(meta["_index"], {})
            created = doc_id not in docs
            docs[doc_id] = dict(body)
            items.append(
                {
                    "index": {
                        "_index": meta["_index"],
                        "_id": doc_id,
                        "result": "created" if created else "updated",
                        "status": 201 if created else 200,
                    }
                }
            )
        return {"errors": any("error" in i["index"] for i in items), "items": items}

    def delete_by_query(self, index, query, **kwargs):
        self._check_reachable()
        self.delete_calls += 1
        deleted = len(self.indexes.get(index, {}))
        self.indexes[index] = {}
        return {"deleted": deleted, "failures": []}

    def search(self, index, query, size=10, source=True):
        self._check_reachable()
        pattern = query["bool"]["should"][1]["wildcard"]["content"]["value"]
        needle = pattern.strip("*").lower()
        hits = [
            {"_index": index, "_id": doc_id, "_score": 1.0}
            for doc_id, body in self.indexes.get(index, {}).items()
            if needle in body["content"].lower()
        ]
        return {"hits": {"total": {"value": len(hits)}, "hits": hits[:size]}}

    def close(self) -> None:
        self.closed = True


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def fake_es() -> FakeElasticsearch:
    return FakeElasticsearch()


@pytest.fixture
def fake_converter() -> FakeConverter:
    return FakeConverter()


@pytest.fixture
def mixed_dir(tmp_path: Path) -> Path:
    """a.pdf valid, b.docx valid, c.txt unsupported, d.pdf corrupt."""
    folder = tmp_path / "docs"
    folder.mkdir()
    (folder / "a.pdf").write_bytes(b"Monthly invoice attached")
    (folder / "b.docx").write_bytes(b"Quarterly budget review")
    (folder / "c.txt").write_text("plain notes", encoding="utf-8")
    (folder / "d.pdf").write_bytes(CORRUPT_MARKER + b"\xff\xfe")
    return folder


@pytest.fixture
def valid_dir(tmp_path: Path) -> Path:
    folder = tmp_path / "valid"
    folder.mkdir()
    for i in range(5):
        (folder / f"doc{i}.pdf").write_bytes(f"document number {i}".encode("utf-8"))
    (folder / "memo.docx").write_bytes(b"Monthly invoice attached")
    return folder


BLANK_PDF = (
    b"%PDF-1.4\n"
    b"1 0 obj << /Type /Catalog /Pages 2 0 R >> endobj\n"
    b"2 0 obj << /Type /Pages /Kids [3 0 R] /Count 1 >> endobj\n"
    b"3 0 obj << /Type /Page /Parent 2 0 R /MediaBox [0 0 612 792] >> endobj\n"
    b"trailer << /Root 1 0 R >>\n"
    b"%%EOF\n"
)

BLANK_DOCUMENT_XML = (
    '<?xml version="1.0" encoding="UTF-8" standalone="yes"?>'
    '<w:document xmlns:w="http://schemas.openxmlformats.org/wordprocessingml/2006/main">'
    "<w:body><w:p/><w:sectPr/></w:body></w:document>"
)


def _blank_docx_bytes() -> bytes:
    buf = io.BytesIO()
    with zipfile.ZipFile(buf, "w") as package:
        package.writestr(
            "[Content_Types].xml",
            '<?xml version="1.0" encoding="UTF-8"?>'
            '<Types xmlns="http://schemas.openxmlformats.org/package/2006/content-types">'
            '<Default Extension="xml" ContentType="application/xml"/>'
            '<Override PartName="/word/document.xml" ContentType="application/'
            'vnd.openxmlformats-officedocument.wordprocessingml.document.main+xml"/>'
            "</Types>",
        )
        package.writestr("word/document.xml", BLANK_DOCUMENT_XML)
    return buf.getvalue()


@pytest.fixture
def blank_docs(tmp_path: Path) -> dict[str, Path]:
    """Structurally valid PDF and DOCX files whose pages carry no text."""
    folder = tmp_path / "blank"
    folder.mkdir()
    pdf = folder / "blank.pdf"
    pdf.write_bytes(BLANK_PDF)
    docx = folder / "blank.docx"
    docx.write_bytes(_blank_docx_bytes())
    return {"pdf": pdf, "docx": docx}


# ---------------------------------------------------------------------------
# Fake record store
# ---------------------------------------------------------------------------


class FakeCollection:
    """A collection that only supports the read path used for ingestion."""

    def __init__(self, documents: list[dict]) -> None:
        self.documents = documents
        self.find_calls: list[tuple] = []

    def find(self, filter=None, projection=None):
        self.find_calls.append((filter, projection))
        for doc in self.documents:
            if projection:
                yield {k: v for k, v in doc.items() if k in projection}
            else:
                yield dict(doc)


class _FakeDatabase:
    def __init__(self, collection: FakeCollection) -> None:
        self.collection = collection

    def __getitem__(self, collection_name):
        self.collection.name = collection_name
        return self.collection


class FakeMongoClient:
    def __init__(self, collection: FakeCollection) -> None:
        self.collection = collection
        self.closed = False

    def __getitem__(self, db_name):
        self.database_name = db_name
        return _FakeDatabase(self.collection)

    def close(self) -> None:
        self.closed = True


@pytest.fixture
def record_collection(mixed_dir: Path) -> FakeCollection:
    """Records pointing at the mixed directory, one without a file URL."""
    return FakeCollection(
        [
            {"_id": "rec-1", "fileURL": (mixed_dir / "a.pdf").as_uri(), "subject": "x"},
            {"_id": "rec-2", "fileURL": str(mixed_dir / "b.docx")},
            {"_id": "rec-3", "fileURL": str(mixed_dir / "c.txt")},
            {"_id": "rec-4"},
        ]
    )
