from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Optional, Tuple

from overlay_core.geometry import Point, clamp_origin, rotate_point
from overlay_core.raster import RasterImage
from overlay_core.state import TransformState


@dataclass(frozen=True)
class CropPlan:
    # Pixel box [u1, u2) x [v1, v2) in the stored overlay
    box: Tuple[int, int, int, int]
    transform: TransformState

    @property
    def width(self) -> int:
        return self.box[2] - self.box[0]

    @property
    def height(self) -> int:
        return self.box[3] - self.box[1]


def _normalized(start: Point, end: Point) -> Tuple[float, float, float, float]:
    x1, x2 = sorted((float(start[0]), float(end[0])))
    y1, y2 = sorted((float(start[1]), float(end[1])))
    return x1, y1, x2, y2


def _unflip(
    rect: Tuple[float, float, float, float],
    flip_h: bool,
    flip_v: bool,
) -> Tuple[float, float, float, float]:
    # The selection is drawn over the mirrored display; storage space is the mirror image.
    x1, y1, x2, y2 = rect
    if flip_h:
        x1, x2 = -x2, -x1
    if flip_v:
        y1, y2 = -y2, -y1
    return x1, y1, x2, y2


def plan_crop(
    start: Point,
    end: Point,
    transform: TransformState,
    width: int,
    height: int,
    bg_w: int,
    bg_h: int,
) -> Optional[CropPlan]:
    """
    `start`/`end` are in the overlay's unscaled, unrotated local space (origin at the
    overlay center). Returns None when the selection covers no whole pixel.
    """
    x1, y1, x2, y2 = _unflip(_normalized(start, end), transform.flip_h, transform.flip_v)

    u1 = max(0, int(math.floor(x1 + width / 2.0)))
    u2 = min(int(width), int(math.ceil(x2 + width / 2.0)))
    v1 = max(0, int(math.floor(y1 + height / 2.0)))
    v2 = min(int(height), int(math.ceil(y2 + height / 2.0)))
    if u2 - u1 <= 0 or v2 - v1 <= 0:
        return None

    scale = transform.scale
    crop_cx = (x1 + x2) * 0.5
    crop_cy = (y1 + y2) * 0.5
    shift_x, shift_y = rotate_point(crop_cx * scale, crop_cy * scale, transform.angle_deg)

    old_cx, old_cy = transform.center(width, height)
    new_w = (u2 - u1) * scale
    new_h = (v2 - v1) * scale
    new_x, new_y = clamp_origin(
        old_cx + shift_x - new_w * 0.5,
        old_cy + shift_y - new_h * 0.5,
        new_w,
        new_h,
        bg_w,
        bg_h,
    )
    return CropPlan(box=(u1, v1, u2, v2), transform=transform.moved_to(new_x, new_y))


def perform_crop(
    start: Point,
    end: Point,
    transform: TransformState,
    overlay: RasterImage,
    bg_w: int,
    bg_h: int,
) -> Optional[Tuple[RasterImage, TransformState]]:
    plan = plan_crop(start, end, transform, overlay.width, overlay.height, bg_w, bg_h)
    if plan is None:
        return None
    return overlay.crop(*plan.box), plan.transform


def display_selection(start: Point, end: Point, transform: TransformState) -> Tuple[float, float, float, float]:
    """Selection rectangle (x1, y1, x2, y2) in local scaled display coordinates."""
    x1, y1, x2, y2 = _normalized(start, end)
    s = transform.scale
    return (x1 * s, y1 * s, x2 * s, y2 * s)
