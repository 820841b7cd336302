"""
Page placement geometry for image-to-PDF assembly.

All values are PDF points. Placement rectangles are always centered on the
page box; only the scale depends on the fit mode.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Dict

from .utils import UserError


class FitMode(str, Enum):
    FIT = "fit"        # whole image visible, letterboxed
    FILL = "fill"      # page fully covered, image may overflow
    CENTER = "center"  # like fit, but never upscaled past 100%


@dataclass(frozen=True)
class PageBox:
    width: float
    height: float
    margin: float = 0.0


@dataclass(frozen=True)
class ImagePlacement:
    width: float
    height: float
    x: float
    y: float

    @property
    def is_empty(self) -> bool:
        return self.width <= 0 or self.height <= 0


@dataclass(frozen=True)
class PagePreset:
    id: str
    label: str
    width: float
    height: float


PAGE_PRESETS: Dict[str, PagePreset] = {
    preset.id: preset
    for preset in (
        PagePreset("letter", "Letter 8.5 x 11 in", 612, 792),
        PagePreset("a4", "A4 210 x 297 mm", 595, 842),
        PagePreset("square", "Square 8 x 8 in", 576, 576),
    )
}

ORIENTATIONS = {"portrait", "landscape"}
DEFAULT_MARGIN = 36


def _compute_scale(
    image_width: float,
    image_height: float,
    content_width: float,
    content_height: float,
    mode: FitMode,
) -> float:
    width_ratio = content_width / image_width
    height_ratio = content_height / image_height
    if mode is FitMode.FILL:
        return max(width_ratio, height_ratio)
    if mode is FitMode.CENTER:
        return min(1.0, min(width_ratio, height_ratio))
    return min(width_ratio, height_ratio)


def compute_image_placement(
    image_width: float,
    image_height: float,
    page: PageBox,
    mode: FitMode = FitMode.FIT,
) -> ImagePlacement:
    """Where to draw an image of the given pixel size on `page`."""

    mode = FitMode(mode)
    if image_width <= 0 or image_height <= 0:
        return ImagePlacement(width=0, height=0, x=page.width / 2, y=page.height / 2)

    # Keep the content box non-negative.
    margin = max(0.0, min(page.margin, min(page.width, page.height) / 2))
    content_width = page.width - margin * 2
    content_height = page.height - margin * 2

    scale = _compute_scale(image_width, image_height, content_width, content_height, mode)
    width = image_width * scale
    height = image_height * scale
    return ImagePlacement(
        width=width,
        height=height,
        x=(page.width - width) / 2,
        y=(page.height - height) / 2,
    )


def oriented_page_box(
    preset_id: str, orientation: str = "portrait", margin: float = DEFAULT_MARGIN
) -> PageBox:
    """Page box for a named preset, turned to the requested orientation."""

    preset = PAGE_PRESETS.get(preset_id)
    if preset is None:
        known = ", ".join(sorted(PAGE_PRESETS))
        raise UserError(f"Unknown page size '{preset_id}'. Choose one of: {known}.")
    if orientation not in ORIENTATIONS:
        raise UserError("Orientation must be portrait or landscape.")

    short_side, long_side = sorted((preset.width, preset.height))
    if orientation == "landscape":
        return PageBox(width=long_side, height=short_side, margin=margin)
    return PageBox(width=short_side, height=long_side, margin=margin)
