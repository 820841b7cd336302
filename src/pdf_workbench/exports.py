"""
Export results: the terminal artifact of every operation.

Each builder here times one core operation and wraps its bytes with a
download name, warnings and an activity record. Callers hand the result to
an ExportSink (the CLI uses its ManifestRecorder) and write the bytes out.
"""

from __future__ import annotations

from dataclasses import dataclass
import time
from typing import List, Optional, Protocol, Sequence, Tuple

from .compress import DEFAULT_PRESET_ID, compress_document, format_bytes, Rasterizer
from .edit import EditablePage, apply_page_edits, normalize_rotation
from .images import ImageAsset, images_to_pdf
from .layout import DEFAULT_MARGIN, FitMode
from .loader import LoadedDocument
from .manifest import ManifestRecorder
from .merge import merge_documents
from .sources import (
    build_download_name,
    build_split_slice_name,
    sanitize_file_stem,
    timestamp_token,
)
from .split import extract_pages, normalize_page_numbers, split_into_chunks


TOOL_IDS = ("viewer", "merge", "split", "editor", "images", "compression")


@dataclass(frozen=True)
class ActivityRecord:
    tool: str
    operation: str
    source_count: int
    detail: Optional[str] = None

    def __post_init__(self) -> None:
        if self.tool not in TOOL_IDS:
            raise ValueError(f"Unknown tool id: {self.tool}")


@dataclass(frozen=True)
class ExportResult:
    data: bytes
    size: int
    download_name: str
    duration_ms: int
    warnings: Tuple[str, ...]
    activity: ActivityRecord


class ExportSink(Protocol):
    def record_export(self, result: ExportResult) -> None:
        ...


def _elapsed_ms(started_at: float) -> int:
    return max(0, round((time.perf_counter() - started_at) * 1000))


def _result(
    data: bytes,
    download_name: str,
    started_at: float,
    activity: ActivityRecord,
    warnings: Sequence[str] = (),
) -> ExportResult:
    return ExportResult(
        data=data,
        size=len(data),
        download_name=download_name,
        duration_ms=_elapsed_ms(started_at),
        warnings=tuple(warnings),
        activity=activity,
    )


def merge_to_export(
    documents: Sequence[LoadedDocument], recorder: Optional[ManifestRecorder] = None
) -> ExportResult:
    started_at = time.perf_counter()
    data = merge_documents(documents, recorder)
    first_name = documents[0].name if documents else "document.pdf"
    return _result(
        data,
        build_download_name(first_name, "merge"),
        started_at,
        ActivityRecord(
            tool="merge",
            operation=f"merge-{len(documents)}-files",
            source_count=len(documents),
            detail=" + ".join(document.name for document in documents),
        ),
    )


def extract_to_export(
    document: LoadedDocument,
    page_numbers: Sequence[float],
    recorder: Optional[ManifestRecorder] = None,
) -> ExportResult:
    started_at = time.perf_counter()
    data = extract_pages(document, page_numbers, recorder)
    selected = normalize_page_numbers(page_numbers, document.page_count)
    return _result(
        data,
        build_download_name(document.name, "split-selection"),
        started_at,
        ActivityRecord(
            tool="split",
            operation=f"split-selection-{len(selected)}-pages",
            source_count=1,
            detail=f"{document.name} · pages {', '.join(str(page) for page in selected)}",
        ),
    )


def chunks_to_exports(
    document: LoadedDocument, size: int, recorder: Optional[ManifestRecorder] = None
) -> List[ExportResult]:
    """One ExportResult per chunk, named `{stem}-part-{n}-{start}to{end}.pdf`."""

    started_at = time.perf_counter()
    chunks = split_into_chunks(document, size, recorder)
    results: List[ExportResult] = []
    for chunk in chunks:
        results.append(
            _result(
                chunk.data,
                build_split_slice_name(
                    document.name, chunk.start_page, chunk.end_page, chunk.index
                ),
                started_at,
                ActivityRecord(
                    tool="split",
                    operation=f"split-chunk-{chunk.index + 1}",
                    source_count=1,
                    detail=(
                        f"{document.name} · pages {chunk.start_page}-{chunk.end_page} "
                        f"of {document.page_count}"
                    ),
                ),
            )
        )
    return results


def edits_to_export(
    document: LoadedDocument,
    pages: Sequence[EditablePage],
    recorder: Optional[ManifestRecorder] = None,
) -> ExportResult:
    started_at = time.perf_counter()
    data = apply_page_edits(document, pages, recorder)
    kept = sum(1 for page in pages if not page.is_deleted)
    deleted = len(pages) - kept
    rotated = sum(1 for page in pages if normalize_rotation(page.rotation) != 0)
    return _result(
        data,
        build_download_name(document.name, "edited"),
        started_at,
        ActivityRecord(
            tool="editor",
            operation=f"page-edit-{kept}-pages",
            source_count=1,
            detail=f"{document.name} · {deleted} deleted · {rotated} rotated",
        ),
    )


def images_to_export(
    assets: Sequence[ImageAsset],
    *,
    page_size: str = "letter",
    orientation: str = "portrait",
    fit_mode: FitMode = FitMode.FIT,
    margin: float = DEFAULT_MARGIN,
    recorder: Optional[ManifestRecorder] = None,
) -> ExportResult:
    started_at = time.perf_counter()
    data = images_to_pdf(
        assets,
        page_size=page_size,
        orientation=orientation,
        fit_mode=fit_mode,
        margin=margin,
        recorder=recorder,
    )
    stem = sanitize_file_stem(assets[0].name, "images")
    return _result(
        data,
        f"{stem}-{max(1, len(assets))}images-{timestamp_token()}.pdf",
        started_at,
        ActivityRecord(
            tool="images",
            operation=f"images-to-pdf-{len(assets)}-pages",
            source_count=len(assets),
            detail=f"{page_size} · {FitMode(fit_mode).value.upper()}",
        ),
    )


def compress_to_export(
    document: LoadedDocument,
    preset_id: Optional[str] = DEFAULT_PRESET_ID,
    *,
    rasterizer: Optional[Rasterizer] = None,
    recorder: Optional[ManifestRecorder] = None,
) -> ExportResult:
    started_at = time.perf_counter()
    result = compress_document(document, preset_id, rasterizer=rasterizer, recorder=recorder)
    preset = result.preset
    if result.savings > 0:
        savings_note = (
            f"{format_bytes(result.savings)} saved "
            f"({round(result.savings_percent)}% reduction)"
        )
    else:
        savings_note = "No size reduction achieved"
    return _result(
        result.data,
        build_download_name(document.name, f"compress-{preset.id}"),
        started_at,
        ActivityRecord(
            tool="compression",
            operation=f"compress-{preset.id}",
            source_count=1,
            detail=f"{document.name} · {preset.label} preset · {savings_note}",
        ),
        warnings=result.warnings,
    )
