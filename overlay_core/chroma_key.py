from __future__ import annotations

import math
from typing import Tuple

import numpy as np

from overlay_core.raster import RasterImage

DEFAULT_KEY_COLOR: Tuple[int, int, int] = (128, 128, 128)
DEFAULT_TOLERANCE = 22
DEFAULT_RAMP_WIDTH = 2


def build_alpha_lut(tolerance: int, ramp_width: int) -> np.ndarray:
    """
    Alpha for every possible channel distance d in [0, 255]:
    0 up to `tolerance`, 255 from `tolerance + ramp_width`, linear in between.
    """
    tol = int(tolerance)
    ramp = int(ramp_width)
    if tol < 0 or tol > 255:
        raise ValueError("tolerance must be in [0, 255]")
    if ramp < 1:
        raise ValueError("ramp_width must be >= 1")
    # A tolerance of 254 or more only has d=255 left to be opaque.
    if tol >= 254:
        ramp = 1

    lut = np.empty(256, dtype=np.uint8)
    for d in range(256):
        if d <= tol:
            a = 0
        elif d >= tol + ramp:
            a = 255
        else:
            a = int(math.floor(255.0 * (d - tol) / ramp + 0.5))
        lut[d] = a
    return lut


def channel_distance(rgba: np.ndarray, key_color: Tuple[int, int, int]) -> np.ndarray:
    if rgba.dtype != np.uint8 or rgba.ndim != 3 or rgba.shape[2] != 4:
        raise ValueError("rgba must be HxWx4 uint8")
    key = np.array([int(c) for c in key_color], dtype=np.int16)
    if key.shape != (3,) or np.any(key < 0) or np.any(key > 255):
        raise ValueError("key_color must be three channel values in [0, 255]")
    diff = np.abs(rgba[..., :3].astype(np.int16) - key)
    return diff.max(axis=2).astype(np.uint8)


def extract_chroma_key(
    raster: RasterImage,
    key_color: Tuple[int, int, int] = DEFAULT_KEY_COLOR,
    tolerance: int = DEFAULT_TOLERANCE,
    ramp_width: int = DEFAULT_RAMP_WIDTH,
) -> RasterImage:
    """
    Returns a new raster whose alpha is derived from the Chebyshev distance of each
    pixel to `key_color`. RGB is passed through; the source alpha is replaced.
    """
    lut = build_alpha_lut(tolerance, ramp_width)
    src = raster.pixels
    d = channel_distance(src, key_color)
    out = src.copy()
    out[..., 3] = lut[d]
    return RasterImage(out)
