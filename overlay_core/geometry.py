"""
Coordinate-space math for the overlay box.

Pointer positions are in background pixels (y down). Rotations are clockwise-positive
on screen, matching how the overlay is painted. "Local scaled" coordinates are centered
on the box, axis-aligned with the unrotated box, in background pixel units.
"""
from __future__ import annotations

import math
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Tuple

from overlay_core.state import TransformState

Point = Tuple[float, float]

# Corner order shared by hit-testing and handle rendering.
TOP_LEFT, TOP_RIGHT, BOTTOM_RIGHT, BOTTOM_LEFT = 0, 1, 2, 3


class HitKind(Enum):
    NONE = "none"
    DRAG = "drag"
    RESIZE = "resize"


@dataclass(frozen=True)
class Hit:
    kind: HitKind
    corner: Optional[int] = None


def rotate_point(x: float, y: float, angle_deg: float) -> Point:
    rad = math.radians(angle_deg)
    c = math.cos(rad)
    s = math.sin(rad)
    return (x * c - y * s, x * s + y * c)


def to_local(px: float, py: float, transform: TransformState, width: int, height: int) -> Point:
    cx, cy = transform.center(width, height)
    return rotate_point(px - cx, py - cy, -transform.angle_deg)


def local_to_background(lx: float, ly: float, transform: TransformState, width: int, height: int) -> Point:
    cx, cy = transform.center(width, height)
    dx, dy = rotate_point(lx, ly, transform.angle_deg)
    return (cx + dx, cy + dy)


def corner_offsets(w: float, h: float) -> List[Point]:
    hw = w * 0.5
    hh = h * 0.5
    return [(-hw, -hh), (hw, -hh), (hw, hh), (-hw, hh)]


def classify(lx: float, ly: float, w: float, h: float, handle_half_size: float = 10.0) -> Hit:
    """
    Handles have a fixed size in background pixels regardless of scale, and take
    priority over the box body so corners stay grabbable on small overlays.
    """
    for idx, (cx, cy) in enumerate(corner_offsets(w, h)):
        if abs(lx - cx) <= handle_half_size and abs(ly - cy) <= handle_half_size:
            return Hit(HitKind.RESIZE, idx)
    if abs(lx) <= w * 0.5 and abs(ly) <= h * 0.5:
        return Hit(HitKind.DRAG)
    return Hit(HitKind.NONE)


def clamp_origin(x: float, y: float, w: float, h: float, bg_w: float, bg_h: float) -> Point:
    # A box larger than the background collapses to 0 on that axis.
    return (
        max(0.0, min(float(x), bg_w - w)),
        max(0.0, min(float(y), bg_h - h)),
    )


def drag(
    px: float,
    py: float,
    anchor: Point,
    transform: TransformState,
    width: int,
    height: int,
    bg_w: int,
    bg_h: int,
) -> TransformState:
    """
    `anchor` is the pointer's local-scaled offset from the box center captured at
    gesture start; keeping it fixed stops the box from jumping under the pointer.
    """
    w, h = transform.box_size(width, height)
    ox, oy = rotate_point(anchor[0], anchor[1], transform.angle_deg)
    new_cx = px - ox
    new_cy = py - oy
    x, y = clamp_origin(new_cx - w * 0.5, new_cy - h * 0.5, w, h, bg_w, bg_h)
    return transform.moved_to(x, y)


def max_scale(width: int, height: int, bg_w: int, bg_h: int) -> float:
    return min(bg_w / float(width), bg_h / float(height))


def resize(
    px: float,
    py: float,
    center: Point,
    transform: TransformState,
    width: int,
    height: int,
    bg_w: int,
    bg_h: int,
    min_scale: float = 0.05,
) -> TransformState:
    cx, cy = center
    lx, ly = rotate_point(px - cx, py - cy, -transform.angle_deg)
    scale_x = 2.0 * abs(lx) / width
    scale_y = 2.0 * abs(ly) / height
    # Smaller axis wins: aspect ratio is preserved and the box never outgrows the dragged rectangle.
    scale = min(scale_x, scale_y)
    scale = min(scale, max_scale(width, height, bg_w, bg_h))
    if scale < min_scale:
        scale = min_scale

    new_w = width * scale
    new_h = height * scale
    x, y = clamp_origin(cx - new_w * 0.5, cy - new_h * 0.5, new_w, new_h, bg_w, bg_h)
    return TransformState(
        x=x,
        y=y,
        scale=scale,
        angle_deg=transform.angle_deg,
        flip_h=transform.flip_h,
        flip_v=transform.flip_v,
    )


def pointer_to_crop_space(px: float, py: float, transform: TransformState, width: int, height: int) -> Point:
    lx, ly = to_local(px, py, transform, width, height)
    return (lx / transform.scale, ly / transform.scale)


def inside_unscaled_box(ux: float, uy: float, width: int, height: int) -> bool:
    return abs(ux) <= width * 0.5 and abs(uy) <= height * 0.5
