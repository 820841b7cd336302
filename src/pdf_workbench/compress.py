"""
Rasterize-and-re-encode compression.

Each page is rendered at a capped resolution, encoded as JPEG with Pillow
and embedded as a same-sized page of a new PDF. Pages are handled one at a
time, in order. A page that fails becomes a warning; a run where every page
fails is an error.
"""

from __future__ import annotations

from dataclasses import dataclass
import io
import math
from typing import Callable, Dict, List, Optional, Tuple

import fitz  # PyMuPDF
from PIL import Image

from .errors import PdfError, PdfErrorCode
from .loader import LoadedDocument
from .manifest import ManifestRecorder, log_to


@dataclass(frozen=True)
class CompressionPreset:
    id: str
    label: str
    description: str
    # Only used for the size estimate shown before a run.
    target_ratio: float
    max_dimension: int
    jpeg_quality: float


COMPRESSION_PRESETS: Tuple[CompressionPreset, ...] = (
    CompressionPreset(
        id="high",
        label="High fidelity",
        description="Subtle downsizing for gentle savings when visual quality matters most.",
        target_ratio=0.85,
        max_dimension=2200,
        jpeg_quality=0.85,
    ),
    CompressionPreset(
        id="balanced",
        label="Balanced",
        description="Blend of size reduction and clarity tuned for general office PDFs.",
        target_ratio=0.7,
        max_dimension=1800,
        jpeg_quality=0.75,
    ),
    CompressionPreset(
        id="smallest",
        label="Smallest",
        description="Aggressive downscale for email-friendly handoffs; expect stronger smoothing.",
        target_ratio=0.55,
        max_dimension=1400,
        jpeg_quality=0.65,
    ),
)

PRESET_LOOKUP: Dict[str, CompressionPreset] = {
    preset.id: preset for preset in COMPRESSION_PRESETS
}
DEFAULT_PRESET_ID = "balanced"


@dataclass(frozen=True)
class ScaledDimensions:
    width: int
    height: int
    scale: float


@dataclass(frozen=True)
class RenderedPage:
    data: bytes
    width: int
    height: int


@dataclass(frozen=True)
class CompressionResult:
    data: bytes
    warnings: Tuple[str, ...]
    original_size: int
    compressed_size: int
    savings: int
    savings_percent: float
    preset: CompressionPreset
    page_count: int


Rasterizer = Callable[[LoadedDocument, int, CompressionPreset], RenderedPage]


def get_compression_preset(preset_id: Optional[str]) -> CompressionPreset:
    """Look up a preset; unknown ids fall back to balanced."""

    return PRESET_LOOKUP.get(preset_id or "", PRESET_LOOKUP[DEFAULT_PRESET_ID])


def estimate_compressed_size(original_size: float, preset_id: Optional[str]) -> int:
    """
    Rough output size shown before running compression.

    This is a display heuristic from the preset ratio, never a measurement.
    """

    preset = get_compression_preset(preset_id)
    if not math.isfinite(original_size) or original_size <= 0:
        return 1024
    return max(512, round(original_size * preset.target_ratio))


def compute_scaled_dimensions(
    source_width: float, source_height: float, max_dimension: int
) -> ScaledDimensions:
    """Shrink so the larger side fits max_dimension; never upscale."""

    largest = max(source_width, source_height)
    if largest <= max_dimension:
        return ScaledDimensions(
            width=round(source_width), height=round(source_height), scale=1.0
        )
    scale = max_dimension / largest
    return ScaledDimensions(
        width=round(source_width * scale),
        height=round(source_height * scale),
        scale=scale,
    )


def render_page_to_jpeg(
    document: LoadedDocument, page_index: int, preset: CompressionPreset
) -> RenderedPage:
    """Render one page at the preset's scale and encode it as JPEG."""

    page = document.handle.load_page(page_index)
    rect = page.rect
    scaled = compute_scaled_dimensions(rect.width, rect.height, preset.max_dimension)
    pixmap = page.get_pixmap(matrix=fitz.Matrix(scaled.scale, scaled.scale), alpha=False)
    image = Image.frombytes("RGB", (pixmap.width, pixmap.height), pixmap.samples)

    buffer = io.BytesIO()
    image.save(buffer, format="JPEG", quality=round(preset.jpeg_quality * 100))
    return RenderedPage(data=buffer.getvalue(), width=scaled.width, height=scaled.height)


def format_bytes(size: float) -> str:
    """Human readable size, e.g. 1.5 MB."""

    if not math.isfinite(size) or size <= 0:
        return "0 B"
    units = ["B", "KB", "MB", "GB", "TB"]
    power = min(int(math.log(size, 1024)), len(units) - 1)
    value = size / 1024 ** power
    return f"{round(value)} {units[power]}" if power == 0 else f"{value:.1f} {units[power]}"


def compress_document(
    document: LoadedDocument,
    preset_id: Optional[str] = DEFAULT_PRESET_ID,
    *,
    rasterizer: Optional[Rasterizer] = None,
    recorder: Optional[ManifestRecorder] = None,
) -> CompressionResult:
    """
    Rebuild `document` from rasterized pages.

    `rasterizer` is the render-and-encode step for one page; the default uses
    PyMuPDF and Pillow.
    """

    preset = get_compression_preset(preset_id)
    render = rasterizer or render_page_to_jpeg
    warnings: List[str] = []

    log_to(
        recorder,
        f"Compressing {document.name} ({document.page_count} page(s)) "
        f"with the {preset.label} preset.",
    )

    with fitz.open() as output:
        for page_index in range(document.page_count):
            page_number = page_index + 1
            pages_before = output.page_count
            try:
                rendered = render(document, page_index, preset)
                page = output.new_page(width=rendered.width, height=rendered.height)
                page.insert_image(page.rect, stream=rendered.data)
            except Exception as exc:
                # Drop a blank page left behind by a failed embed.
                if output.page_count > pages_before:
                    output.delete_page(output.page_count - 1)
                log_to(recorder, f"Failed to compress page {page_number}: {exc}", level="warning")
                warnings.append(f"Page {page_number} could not be compressed and was skipped.")
                continue
            log_to(
                recorder,
                f"Compressed page {page_number}/{document.page_count}.",
                level="debug",
            )

        if output.page_count == 0:
            raise PdfError(PdfErrorCode.UNKNOWN, "No pages were successfully compressed.")

        try:
            data = output.tobytes(garbage=3, deflate=True)
        except Exception as exc:
            raise PdfError(PdfErrorCode.UNKNOWN, str(exc) or None) from exc
        page_count = output.page_count

    original_size = document.size
    compressed_size = len(data)
    savings = max(0, original_size - compressed_size)
    savings_percent = (savings / original_size) * 100 if original_size > 0 else 0.0
    return CompressionResult(
        data=data,
        warnings=tuple(warnings),
        original_size=original_size,
        compressed_size=compressed_size,
        savings=savings,
        savings_percent=savings_percent,
        preset=preset,
        page_count=page_count,
    )
