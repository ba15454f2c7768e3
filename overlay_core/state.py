from __future__ import annotations

import math
from dataclasses import dataclass, replace
from typing import Tuple


def normalize_angle(angle: float) -> float:
    a = float(angle)
    if not math.isfinite(a):
        return 0.0
    a = math.fmod(a, 360.0)
    if a > 180.0:
        a -= 360.0
    elif a < -180.0:
        a += 360.0
    return a


@dataclass(frozen=True)
class TransformState:
    # Top-left of the scaled, unrotated bounding box in background pixels
    x: float = 0.0
    y: float = 0.0
    scale: float = 1.0
    angle_deg: float = 0.0
    flip_h: bool = False
    flip_v: bool = False

    def __post_init__(self) -> None:
        if not self.scale > 0:
            raise ValueError("scale must be > 0")

    @classmethod
    def fitted(
        cls,
        width: int,
        height: int,
        bg_w: int,
        bg_h: int,
        margin: float = 20.0,
    ) -> "TransformState":
        scale = fit_scale(width, height, bg_w, bg_h)
        return cls(
            x=min(float(margin), bg_w - width * scale),
            y=min(float(margin), bg_h - height * scale),
            scale=scale,
        )

    def box_size(self, width: int, height: int) -> Tuple[float, float]:
        return (width * self.scale, height * self.scale)

    def center(self, width: int, height: int) -> Tuple[float, float]:
        w, h = self.box_size(width, height)
        return (self.x + w * 0.5, self.y + h * 0.5)

    def moved_to(self, x: float, y: float) -> "TransformState":
        return replace(self, x=float(x), y=float(y))

    def rotated_to(self, angle_deg: float) -> "TransformState":
        return replace(self, angle_deg=normalize_angle(angle_deg))

    def flipped(self, horizontal: bool = False, vertical: bool = False) -> "TransformState":
        return replace(
            self,
            flip_h=self.flip_h != bool(horizontal),
            flip_v=self.flip_v != bool(vertical),
        )


def fit_scale(width: int, height: int, bg_w: int, bg_h: int) -> float:
    return min(bg_w / float(width), bg_h / float(height), 1.0)
