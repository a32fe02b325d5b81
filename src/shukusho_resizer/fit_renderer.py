"""Preview geometry: letterbox/pillarbox fitting and preview buffer painting."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Tuple, Union

from PIL import Image

PREVIEW_BOX_SIZE = (500, 500)
PREVIEW_BACKGROUND = (0, 0, 0, 0)

SizeLike = Union[Image.Image, Tuple[int, int]]


@dataclass(frozen=True)
class FitPlacement:
    """Where to draw a bitmap inside the box (floats, sub-pixel exact)."""

    draw_x: float
    draw_y: float
    draw_width: float
    draw_height: float

    def rounded_size(self) -> Tuple[int, int]:
        return max(1, round(self.draw_width)), max(1, round(self.draw_height))

    def rounded_offset(self) -> Tuple[int, int]:
        return round(self.draw_x), round(self.draw_y)


def _size_of(bitmap: SizeLike) -> Tuple[int, int]:
    if isinstance(bitmap, Image.Image):
        return bitmap.size
    width, height = bitmap
    return int(width), int(height)


def fit(bitmap: SizeLike, box_width: int, box_height: int) -> FitPlacement:
    """Fit ``bitmap`` into the box keeping its aspect ratio.

    If scaling to the box width would overflow the box height, scale to the
    box height and center horizontally; otherwise scale to the box width and
    center vertically.
    """
    width, height = _size_of(bitmap)
    if width <= 0 or height <= 0:
        raise ValueError(f"bitmap size must be positive: {width}x{height}")
    if box_width <= 0 or box_height <= 0:
        raise ValueError(f"box size must be positive: {box_width}x{box_height}")

    aspect_ratio = width / height
    height_at_box_width = box_width / aspect_ratio
    if height_at_box_width > box_height:
        draw_height = float(box_height)
        draw_width = box_height * aspect_ratio
        return FitPlacement((box_width - draw_width) / 2, 0.0, draw_width, draw_height)

    draw_width = float(box_width)
    return FitPlacement(0.0, (box_height - height_at_box_width) / 2, draw_width, height_at_box_width)


def render_preview(
    bitmap: Image.Image,
    box_width: int = PREVIEW_BOX_SIZE[0],
    box_height: int = PREVIEW_BOX_SIZE[1],
    background: Tuple[int, int, int, int] = PREVIEW_BACKGROUND,
) -> Image.Image:
    """Paint ``bitmap`` fitted into a fresh box-sized RGBA preview buffer."""
    placement = fit(bitmap, box_width, box_height)
    scaled = bitmap.convert("RGBA").resize(placement.rounded_size(), Image.Resampling.BILINEAR)
    canvas = Image.new("RGBA", (box_width, box_height), background)
    canvas.alpha_composite(scaled, dest=placement.rounded_offset())
    return canvas


def render_actual(bitmap: Image.Image) -> Image.Image:
    """Committed output shown 1:1; a copy so the display never aliases the result."""
    return bitmap.copy()
