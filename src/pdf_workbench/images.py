"""
Image ingestion and image-to-PDF assembly.

Why this module exists:
- The PDF side only embeds PNG or JPEG, so every image is turned into one of
  those before assembly.
- Truncated PNG uploads are detected with png_integrity and repaired by
  re-encoding through Pillow, falling back to JPEG when that still does not
  yield a complete PNG.
"""

from __future__ import annotations

from dataclasses import dataclass
import io
import mimetypes
from pathlib import Path
from typing import Optional, Sequence, Tuple
from uuid import uuid4

import fitz  # PyMuPDF
from PIL import Image, ImageFile, UnidentifiedImageError

from .errors import (
    PdfError,
    PdfErrorCode,
    UnsupportedImageType,
    map_parser_error,
    wrap_pdf_error,
)
from .layout import DEFAULT_MARGIN, FitMode, compute_image_placement, oriented_page_box
from .manifest import ManifestRecorder, log_to
from .png_integrity import has_png_signature, is_png_complete


EMBEDDABLE_PNG = "image/png"
EMBEDDABLE_JPEG = "image/jpeg"
JPEG_TYPES = {"image/jpeg", "image/jpg", "image/pjpeg"}
JPEG_REENCODE_QUALITY = 92
MAX_IMAGES = 24

# Modes Pillow can write straight to PNG.
_PNG_MODES = {"1", "L", "LA", "I", "I;16", "P", "RGB", "RGBA"}


@dataclass(frozen=True)
class ImageAsset:
    id: str
    name: str
    size: int
    declared_type: str
    embeddable_type: str
    data: bytes
    width: int
    height: int


def _flatten_for_jpeg(image: Image.Image) -> Image.Image:
    """JPEG has no alpha channel: composite transparent images onto white."""

    if image.mode in {"RGBA", "LA"} or (image.mode == "P" and "transparency" in image.info):
        rgba = image.convert("RGBA")
        background = Image.new("RGB", rgba.size, (255, 255, 255))
        background.paste(rgba, mask=rgba.getchannel("A"))
        return background
    if image.mode not in {"RGB", "L"}:
        return image.convert("RGB")
    return image


def _encode_image(image: Image.Image, image_format: str) -> bytes:
    """Re-encode a decoded image as PNG or JPEG bytes."""

    buffer = io.BytesIO()
    if image_format == "PNG":
        prepared = image if image.mode in _PNG_MODES else image.convert("RGBA")
        prepared.save(buffer, format="PNG")
    else:
        _flatten_for_jpeg(image).save(buffer, format="JPEG", quality=JPEG_REENCODE_QUALITY)
    return buffer.getvalue()


def ensure_embeddable_bytes(
    declared_type: Optional[str],
    data: bytes,
    image: Image.Image,
    recorder: Optional[ManifestRecorder] = None,
) -> Tuple[bytes, str]:
    """
    Return (bytes, embeddable_type) for an already decoded image.

    - PNG that is complete: kept as-is.
    - PNG that is incomplete: re-encoded as PNG, or as JPEG if that fails too.
    - JPEG: kept as-is.
    - Any other image type: re-encoded as JPEG.
    """

    normalized = (declared_type or "").strip().lower()
    treat_as_png = normalized == EMBEDDABLE_PNG or (not normalized and has_png_signature(data))

    if treat_as_png:
        if is_png_complete(data):
            return data, EMBEDDABLE_PNG
        log_to(recorder, "PNG data is incomplete; re-encoding before embedding.", level="warning")
        try:
            repaired = _encode_image(image, "PNG")
        except (OSError, ValueError) as exc:
            log_to(recorder, f"Failed to repair PNG before embedding: {exc}", level="warning")
        else:
            if is_png_complete(repaired):
                return repaired, EMBEDDABLE_PNG
        return _encode_image(image, "JPEG"), EMBEDDABLE_JPEG

    if normalized in JPEG_TYPES:
        return data, EMBEDDABLE_JPEG

    if normalized.startswith("image/") or not normalized:
        return _encode_image(image, "JPEG"), EMBEDDABLE_JPEG

    raise UnsupportedImageType(normalized)


def _decode_image(data: bytes, name: str) -> Image.Image:
    # A PNG cut off mid-IDAT still yields its decoded rows; the missing tail is
    # left blank so the repair step can re-encode a complete file.
    truncated_png = has_png_signature(data) and not is_png_complete(data)
    previous = ImageFile.LOAD_TRUNCATED_IMAGES
    if truncated_png:
        ImageFile.LOAD_TRUNCATED_IMAGES = True
    try:
        with Image.open(io.BytesIO(data)) as opened:
            opened.load()
            return opened.copy()
    except (UnidentifiedImageError, OSError, SyntaxError, ValueError) as exc:
        raise PdfError(PdfErrorCode.CORRUPT, f"Could not decode image {name}: {exc}") from exc
    finally:
        ImageFile.LOAD_TRUNCATED_IMAGES = previous


def load_image_asset(
    data: bytes,
    name: str,
    declared_type: Optional[str] = None,
    recorder: Optional[ManifestRecorder] = None,
) -> ImageAsset:
    """Decode an image and prepare it for embedding."""

    normalized = (declared_type or "").strip().lower()
    if normalized and not normalized.startswith("image/"):
        raise UnsupportedImageType(normalized)

    image = _decode_image(data, name)
    try:
        prepared, embeddable_type = ensure_embeddable_bytes(normalized, data, image, recorder)
    except (OSError, ValueError) as exc:
        raise wrap_pdf_error(exc) from exc
    width, height = image.size
    log_to(
        recorder,
        f"Prepared {name} ({width}x{height}px) as {embeddable_type}.",
        level="debug",
    )
    return ImageAsset(
        id=str(uuid4()),
        name=name,
        size=len(data),
        declared_type=normalized,
        embeddable_type=embeddable_type,
        data=bytes(prepared),
        width=width,
        height=height,
    )


def load_image_asset_from_path(
    path: Path, recorder: Optional[ManifestRecorder] = None
) -> ImageAsset:
    try:
        data = path.read_bytes()
    except OSError as exc:
        raise map_parser_error(exc) from exc
    declared_type, _ = mimetypes.guess_type(path.name)
    return load_image_asset(data, path.name, declared_type, recorder)


def images_to_pdf(
    assets: Sequence[ImageAsset],
    *,
    page_size: str = "letter",
    orientation: str = "portrait",
    fit_mode: FitMode = FitMode.FIT,
    margin: float = DEFAULT_MARGIN,
    recorder: Optional[ManifestRecorder] = None,
) -> bytes:
    """One page per image, each placed according to `fit_mode`."""

    if not assets:
        raise PdfError(PdfErrorCode.UNSUPPORTED, "Add at least one image before exporting.")
    if len(assets) > MAX_IMAGES:
        raise PdfError(
            PdfErrorCode.UNSUPPORTED, f"Use at most {MAX_IMAGES} images per document."
        )

    box = oriented_page_box(page_size, orientation, margin)
    mode = FitMode(fit_mode)

    try:
        with fitz.open() as output:
            for position, asset in enumerate(assets, start=1):
                page = output.new_page(width=box.width, height=box.height)
                placement = compute_image_placement(asset.width, asset.height, box, mode)
                if placement.is_empty:
                    log_to(recorder, f"Skipping empty image {asset.name}.", level="warning")
                    continue
                target = fitz.Rect(
                    placement.x,
                    placement.y,
                    placement.x + placement.width,
                    placement.y + placement.height,
                )
                # Fill placements overflow the page; the page box clips them.
                page.insert_image(target, stream=asset.data, keep_proportion=False)
                log_to(
                    recorder,
                    f"Placed {asset.name} ({position}/{len(assets)}).",
                    level="debug",
                )
            return output.tobytes(garbage=3, deflate=True)
    except Exception as exc:
        raise PdfError(PdfErrorCode.UNKNOWN, str(exc) or None) from exc
