"""
Reorder, rotate and delete pages, then export.

Edits never touch the PDF bytes. They are pure changes to a list of
EditablePage descriptors; apply_page_edits reads that list once and builds
a fresh document from the retained bytes.
"""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass, replace
from typing import Deque, List, Optional, Sequence, Tuple

import fitz  # PyMuPDF

from .errors import PdfError, PdfErrorCode
from .loader import LoadedDocument
from .manifest import ManifestRecorder, log_to


HISTORY_LIMIT = 20


@dataclass(frozen=True)
class EditablePage:
    id: str
    original_index: int
    # Accumulated degrees, not normalized until export.
    rotation: int = 0
    is_deleted: bool = False


def normalize_rotation(value: int) -> int:
    """Clamp any rotation into [0, 360)."""

    return ((value % 360) + 360) % 360


def build_editable_page_id(document_id: str, page_index: int) -> str:
    return f"{document_id}-page-{page_index + 1}"


def build_editable_pages(document: LoadedDocument) -> List[EditablePage]:
    """One identity descriptor per page."""

    return [
        EditablePage(id=build_editable_page_id(document.id, index), original_index=index)
        for index in range(document.page_count)
    ]


def apply_page_edits(
    document: LoadedDocument,
    pages: Sequence[EditablePage],
    recorder: Optional[ManifestRecorder] = None,
) -> bytes:
    """
    Build a new PDF from the kept pages, in the order given.

    Rotation is applied as an absolute value; a normalized rotation of zero
    leaves the copied page as it was.
    """

    kept = [page for page in pages if not page.is_deleted]
    if not kept:
        raise PdfError(PdfErrorCode.UNSUPPORTED, "Select at least one page before exporting.")

    try:
        with document.open_working_copy() as source, fitz.open() as output:
            for page_state in kept:
                index = page_state.original_index
                output.insert_pdf(source, from_page=index, to_page=index)
                rotation = normalize_rotation(page_state.rotation)
                if rotation != 0:
                    output.load_page(output.page_count - 1).set_rotation(rotation)
            log_to(
                recorder,
                f"Assembled {output.page_count} page(s) from {document.name}.",
                level="debug",
            )
            return output.tobytes(garbage=3, deflate=True)
    except Exception as exc:
        raise PdfError(PdfErrorCode.UNKNOWN, str(exc) or None) from exc


class PageEditSession:
    """
    Live descriptor list for one document plus a bounded undo history.

    Each history entry is an immutable tuple of frozen descriptors, so no
    snapshot shares mutable state with the live list. A snapshot is pushed
    only when a mutation actually changes the list; once HISTORY_LIMIT
    snapshots are stored, the oldest one is dropped.
    """

    def __init__(
        self,
        document: LoadedDocument,
        history_limit: int = HISTORY_LIMIT,
    ) -> None:
        self.document = document
        self._pages: Tuple[EditablePage, ...] = tuple(build_editable_pages(document))
        self._history: Deque[Tuple[EditablePage, ...]] = deque(maxlen=history_limit)

    @property
    def pages(self) -> List[EditablePage]:
        return list(self._pages)

    @property
    def active_pages(self) -> List[EditablePage]:
        return [page for page in self._pages if not page.is_deleted]

    @property
    def can_undo(self) -> bool:
        return bool(self._history)

    @property
    def history_size(self) -> int:
        return len(self._history)

    def _index_of(self, page_id: str) -> int:
        for index, page in enumerate(self._pages):
            if page.id == page_id:
                return index
        raise PdfError(PdfErrorCode.NOT_FOUND, f"Unknown page id: {page_id}")

    def _commit(self, next_pages: Sequence[EditablePage]) -> bool:
        candidate = tuple(next_pages)
        if candidate == self._pages:
            return False
        self._history.append(self._pages)
        self._pages = candidate
        return True

    def rotate(self, page_id: str, delta: int) -> bool:
        """Add `delta` degrees to one page. Returns True if anything changed."""

        index = self._index_of(page_id)
        page = self._pages[index]
        updated = list(self._pages)
        updated[index] = replace(page, rotation=page.rotation + delta)
        return self._commit(updated)

    def toggle_delete(self, page_id: str) -> bool:
        index = self._index_of(page_id)
        page = self._pages[index]
        updated = list(self._pages)
        updated[index] = replace(page, is_deleted=not page.is_deleted)
        return self._commit(updated)

    def move(self, source_id: str, target_id: Optional[str] = None) -> bool:
        """
        Move a page to where `target_id` currently sits.

        A target of None moves the page to the end.
        """

        if source_id == target_id:
            return False
        if target_id is not None:
            self._index_of(target_id)
        updated = list(self._pages)
        moved = updated.pop(self._index_of(source_id))
        if target_id is None:
            updated.append(moved)
        else:
            target_index = next(i for i, page in enumerate(updated) if page.id == target_id)
            updated.insert(target_index, moved)
        return self._commit(updated)

    def replace(self, pages: Sequence[EditablePage]) -> bool:
        """Swap in a whole new descriptor list (e.g. a bulk reorder)."""

        return self._commit(pages)

    def undo(self) -> bool:
        """Restore the most recent snapshot. Returns False if there is none."""

        if not self._history:
            return False
        self._pages = self._history.pop()
        return True

    def display_rotation(self, page_id: str) -> int:
        """Rotation for preview; the stored value stays unnormalized."""

        return normalize_rotation(self._pages[self._index_of(page_id)].rotation)

    def summary(self) -> Tuple[int, int, int]:
        """(kept, deleted, rotated) page counts."""

        kept = len(self.active_pages)
        rotated = sum(1 for page in self._pages if normalize_rotation(page.rotation) != 0)
        return kept, len(self._pages) - kept, rotated

    def export(self, recorder: Optional[ManifestRecorder] = None) -> bytes:
        return apply_page_edits(self.document, self._pages, recorder)
