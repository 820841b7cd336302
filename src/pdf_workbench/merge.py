"""
Merge several loaded PDFs into one.

Pages are copied in caller order, and in page order within each input.
The operation is all-or-nothing: any failure raises and no bytes come out.
"""

from __future__ import annotations

from typing import Optional, Sequence

import fitz  # PyMuPDF

from .errors import PdfError, PdfErrorCode
from .loader import LoadedDocument
from .manifest import ManifestRecorder, log_to


def merge_documents(
    documents: Sequence[LoadedDocument],
    recorder: Optional[ManifestRecorder] = None,
) -> bytes:
    """Copy every page of every document into a new PDF and serialize it."""

    if len(documents) < 2:
        raise PdfError(PdfErrorCode.UNSUPPORTED, "Need at least two PDFs to merge.")

    try:
        with fitz.open() as output:
            for position, document in enumerate(documents, start=1):
                with document.open_working_copy() as source:
                    output.insert_pdf(source, from_page=0, to_page=source.page_count - 1)
                log_to(
                    recorder,
                    f"Merged {document.name} ({position}/{len(documents)}), "
                    f"{output.page_count} page(s) so far.",
                    level="debug",
                )
            return output.tobytes(garbage=3, deflate=True)
    except Exception as exc:
        raise PdfError(PdfErrorCode.UNKNOWN, str(exc) or None) from exc
