from __future__ import annotations

from typing import Optional, Tuple

import numpy as np
from PIL import Image

from overlay_core.raster import RasterImage, pil_to_np_rgba
from overlay_core.state import TransformState


def render_overlay(
    overlay: RasterImage,
    transform: TransformState,
    high_quality: bool = True,
) -> Tuple[Image.Image, Tuple[int, int]]:
    """
    Returns the overlay flipped, scaled and rotated as it appears on the background,
    and the integer top-left position at which to paste it.
    """
    img = overlay.to_pil()
    if transform.flip_h:
        img = img.transpose(Image.Transpose.FLIP_LEFT_RIGHT)
    if transform.flip_v:
        img = img.transpose(Image.Transpose.FLIP_TOP_BOTTOM)

    resample = Image.Resampling.LANCZOS if high_quality else Image.Resampling.BILINEAR
    w, h = transform.box_size(overlay.width, overlay.height)
    new_w = max(1, int(round(w)))
    new_h = max(1, int(round(h)))
    if (new_w, new_h) != img.size:
        img = img.resize((new_w, new_h), resample=resample)

    # PIL rotates counter-clockwise; screen angles are clockwise-positive.
    if transform.angle_deg % 360.0 != 0.0:
        img = img.rotate(-transform.angle_deg, expand=True, resample=Image.Resampling.BICUBIC)

    cx, cy = transform.center(overlay.width, overlay.height)
    x = int(round(cx - img.width * 0.5))
    y = int(round(cy - img.height * 0.5))
    return img, (x, y)


def _blend_over(base: np.ndarray, top: np.ndarray) -> np.ndarray:
    base_rgb = base[..., :3].astype(np.float32) / 255.0
    top_rgb = top[..., :3].astype(np.float32) / 255.0
    base_a = base[..., 3:4].astype(np.float32) / 255.0
    top_a = top[..., 3:4].astype(np.float32) / 255.0

    out_a = top_a + base_a * (1.0 - top_a)
    premul_top = top_rgb * top_a
    premul_base = base_rgb * base_a
    out_premul = premul_top + premul_base * (1.0 - top_a)
    out_rgb = np.where(out_a > 0, out_premul / np.maximum(out_a, 1e-6), 0.0)

    out = np.empty_like(base)
    out[..., :3] = np.clip(np.round(out_rgb * 255.0), 0, 255).astype(np.uint8)
    out[..., 3] = np.clip(np.round(out_a[..., 0] * 255.0), 0, 255).astype(np.uint8)
    return out


def composite_overlay(
    background: RasterImage,
    overlay: Optional[RasterImage],
    transform: Optional[TransformState],
    high_quality: bool = True,
) -> RasterImage:
    base = background.pixels.copy()
    if overlay is None or transform is None:
        return RasterImage(base)

    out_h, out_w = base.shape[:2]
    layer_img, (x, y) = render_overlay(overlay, transform, high_quality=high_quality)
    arr = pil_to_np_rgba(layer_img)

    x0 = max(0, x)
    y0 = max(0, y)
    x1 = min(out_w, x + layer_img.width)
    y1 = min(out_h, y + layer_img.height)
    if x1 <= x0 or y1 <= y0:
        return RasterImage(base)

    sx0 = x0 - x
    sy0 = y0 - y
    sx1 = sx0 + (x1 - x0)
    sy1 = sy0 + (y1 - y0)
    base[y0:y1, x0:x1] = _blend_over(base[y0:y1, x0:x1], arr[sy0:sy1, sx0:sx1])
    return RasterImage(base)
