"""
Split a loaded PDF.

Two modes share one working copy per call:
- extract_pages: pull a page selection into a single new PDF.
- split_into_chunks: cut the document into fixed-size windows.
"""

from __future__ import annotations

from dataclasses import dataclass
import math
from typing import Iterable, List, Optional, Tuple

import fitz  # PyMuPDF

from .errors import PdfError, PdfErrorCode
from .loader import LoadedDocument
from .manifest import ManifestRecorder, log_to


@dataclass(frozen=True)
class SplitChunk:
    index: int
    start_page: int
    end_page: int
    data: bytes

    @property
    def page_count(self) -> int:
        return self.end_page - self.start_page + 1


def normalize_page_numbers(page_numbers: Iterable[float], page_count: int) -> List[int]:
    """
    Turn a loose selection into sorted, unique, in-range page numbers.

    Values are truncated toward zero; NaN, infinities and anything outside
    [1, page_count] are dropped. An empty result is an error.
    """

    finite = (page for page in page_numbers if math.isfinite(page))
    selected = sorted({int(page) for page in finite if 1 <= int(page) <= page_count})
    if not selected:
        raise PdfError(
            PdfErrorCode.UNSUPPORTED, "Select at least one valid page before splitting."
        )
    return selected


def chunk_ranges(page_count: int, size: int) -> List[Tuple[int, int]]:
    """
    Create zero-based (start, end) windows, end exclusive.

    chunk_ranges(5, 2) -> [(0, 2), (2, 4), (4, 5)]
    """

    if isinstance(size, bool) or not isinstance(size, int) or size < 1:
        raise PdfError(PdfErrorCode.UNSUPPORTED, "Chunk size must be at least one page.")
    return [
        (start, min(page_count, start + size)) for start in range(0, page_count, size)
    ]


def extract_pages(
    document: LoadedDocument,
    page_numbers: Iterable[float],
    recorder: Optional[ManifestRecorder] = None,
) -> bytes:
    """Copy the selected pages (one-based) into a new PDF, in ascending order."""

    selection = normalize_page_numbers(page_numbers, document.page_count)
    log_to(
        recorder,
        f"Extracting {len(selection)} page(s) from {document.name}.",
        level="debug",
    )

    try:
        with document.open_working_copy() as source, fitz.open() as output:
            for page_number in selection:
                output.insert_pdf(source, from_page=page_number - 1, to_page=page_number - 1)
            return output.tobytes(garbage=3, deflate=True)
    except Exception as exc:
        raise PdfError(PdfErrorCode.UNKNOWN, str(exc) or None) from exc


def split_into_chunks(
    document: LoadedDocument,
    size: int,
    recorder: Optional[ManifestRecorder] = None,
) -> List[SplitChunk]:
    """Cut the document into independent PDFs of `size` pages (last may be shorter)."""

    ranges = chunk_ranges(document.page_count, size)
    chunks: List[SplitChunk] = []

    try:
        with document.open_working_copy() as source:
            for index, (start, end) in enumerate(ranges):
                with fitz.open() as chunk_doc:
                    chunk_doc.insert_pdf(source, from_page=start, to_page=end - 1)
                    data = chunk_doc.tobytes(garbage=3, deflate=True)
                chunks.append(
                    SplitChunk(index=index, start_page=start + 1, end_page=end, data=data)
                )
                log_to(
                    recorder,
                    f"Built part {index + 1}/{len(ranges)} (pages {start + 1}-{end}).",
                    level="debug",
                )
    except Exception as exc:
        raise PdfError(PdfErrorCode.UNKNOWN, str(exc) or None) from exc

    return chunks
