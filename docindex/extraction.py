"""Docling converter setup and format-aware text extraction."""

from __future__ import annotations

import logging
import time
from io import BytesIO
from pathlib import Path
from typing import Any, Optional, Union

from .errors import ExtractionError, ExtractionFailed, UnsupportedFormat
from .models import ExtractedDocument, ExtractionResult, SourceItem
from .utils import FORMAT_DOCX, FORMAT_PDF

log = logging.getLogger(__name__)

EXTRACTABLE_FORMATS = (FORMAT_PDF, FORMAT_DOCX)


def create_converter(
    *,
    num_threads: int = 4,
    enable_ocr: bool = False,
    document_timeout: Optional[float] = None,
) -> Any:
    """Build a Docling ``DocumentConverter`` that accepts PDF and DOCX input.

    Args:
        num_threads: Thread count used by Docling accelerator options.
        enable_ocr: Run OCR on scanned PDF pages.
        document_timeout: Per-document conversion budget in seconds.
    """
    t0 = time.time()
    log.info("create_converter: importing docling modules ...")

    from docling.datamodel.accelerator_options import AcceleratorOptions
    from docling.datamodel.base_models import InputFormat
    from docling.datamodel.pipeline_options import PdfPipelineOptions
    from docling.document_converter import (
        DocumentConverter,
        PdfFormatOption,
        WordFormatOption,
    )

    log.info("create_converter: imports done in %.2fs", time.time() - t0)

    pipeline_options = PdfPipelineOptions(
        do_ocr=enable_ocr,
        accelerator_options=AcceleratorOptions(num_threads=max(1, num_threads)),
    )
    if document_timeout:
        pipeline_options.document_timeout = document_timeout

    converter = DocumentConverter(
        allowed_formats=[InputFormat.PDF, InputFormat.DOCX],
        format_options={
            InputFormat.PDF: PdfFormatOption(pipeline_options=pipeline_options),
            InputFormat.DOCX: WordFormatOption(),
        },
    )
    log.info(
        "Docling converter initialized (ocr=%s, threads=%s, timeout=%s) in %.2fs",
        enable_ocr,
        num_threads,
        document_timeout,
        time.time() - t0,
    )
    return converter


def _to_stream(name: str, data: bytes) -> Any:
    from docling.datamodel.base_models import DocumentStream

    return DocumentStream(name=name, stream=BytesIO(data))


def _convert_bytes(converter: Any, name: str, data: bytes) -> str:
    result = converter.convert(source=_to_stream(name, data), raises_on_error=True)
    status = getattr(result, "status", None)
    status_value = getattr(status, "value", status)
    if status_value not in (None, "success", "partial_success"):
        errors = "; ".join(
            getattr(e, "error_message", str(e)) for e in getattr(result, "errors", [])
        )
        raise RuntimeError(f"conversion status {status_value}: {errors}".rstrip(": "))
    return result.document.export_to_text() or ""


def extract_text(
    converter: Any,
    location: str,
    fmt: str,
    *,
    max_file_bytes: Optional[int] = None,
) -> ExtractionResult:
    """Extract plain text from the file at *location*.

    Never raises: unsupported formats and read/decode failures come back as
    the ``error`` of the returned result. Unsupported formats are rejected
    before the file is touched.
    """
    if fmt not in EXTRACTABLE_FORMATS:
        log.info("extract_text: unsupported format %r for %s", fmt, location)
        return ExtractionResult(error=UnsupportedFormat(location, fmt))

    path = Path(location)
    t0 = time.time()
    try:
        if max_file_bytes is not None:
            size = path.stat().st_size
            if size > max_file_bytes:
                return ExtractionResult(
                    error=ExtractionFailed(
                        location, f"file is {size} bytes, limit is {max_file_bytes}"
                    )
                )
        data = path.read_bytes()
        text = _convert_bytes(converter, path.name, data)
    except Exception as exc:
        log.error("extract_text: ERROR - %s: %s", location, exc)
        return ExtractionResult(error=ExtractionFailed(location, exc))

    log.debug(
        "extract_text: %s -> %s chars in %.2fs", path.name, len(text), time.time() - t0
    )
    return ExtractionResult(text=text)


def extract_document(
    converter: Any,
    item: SourceItem,
    *,
    max_file_bytes: Optional[int] = None,
) -> Union[ExtractedDocument, ExtractionError]:
    result = extract_text(
        converter, item.location, item.fmt, max_file_bytes=max_file_bytes
    )
    if not result.ok:
        return result.error
    return ExtractedDocument(item_id=item.item_id, location=item.location, text=result.text)
