from __future__ import annotations

from dataclasses import dataclass
from typing import Tuple

import numpy as np
from PIL import Image


def pil_to_np_rgba(img: Image.Image) -> np.ndarray:
    arr = np.array(img.convert("RGBA"), dtype=np.uint8)
    if arr.ndim != 3 or arr.shape[2] != 4:
        raise ValueError("Expected RGBA image")
    return arr


def np_rgba_to_pil(arr: np.ndarray) -> Image.Image:
    return Image.fromarray(np.ascontiguousarray(arr))


@dataclass(frozen=True, eq=False)
class RasterImage:
    """
    Immutable HxWx4 uint8 RGBA buffer.
    The array is copied on construction and write-protected, so a raster can be
    shared between the live editor state and history snapshots.
    """

    pixels: np.ndarray

    def __post_init__(self) -> None:
        arr = self.pixels
        if not isinstance(arr, np.ndarray) or arr.dtype != np.uint8 or arr.ndim != 3 or arr.shape[2] != 4:
            raise ValueError("pixels must be HxWx4 uint8")
        if arr.shape[0] <= 0 or arr.shape[1] <= 0:
            raise ValueError("raster must not be empty")
        owned = arr.copy()
        owned.setflags(write=False)
        object.__setattr__(self, "pixels", owned)

    @classmethod
    def from_pil(cls, img: Image.Image) -> "RasterImage":
        return cls(pil_to_np_rgba(img))

    @classmethod
    def blank(cls, width: int, height: int, rgba: Tuple[int, int, int, int] = (0, 0, 0, 0)) -> "RasterImage":
        arr = np.empty((int(height), int(width), 4), dtype=np.uint8)
        arr[...] = np.array(rgba, dtype=np.uint8)
        return cls(arr)

    @property
    def width(self) -> int:
        return int(self.pixels.shape[1])

    @property
    def height(self) -> int:
        return int(self.pixels.shape[0])

    @property
    def size(self) -> Tuple[int, int]:
        return (self.width, self.height)

    def to_pil(self) -> Image.Image:
        return np_rgba_to_pil(self.pixels)

    def crop(self, u1: int, v1: int, u2: int, v2: int) -> "RasterImage":
        if not (0 <= u1 < u2 <= self.width and 0 <= v1 < v2 <= self.height):
            raise ValueError(f"crop box out of range: {(u1, v1, u2, v2)} for {self.size}")
        return RasterImage(self.pixels[v1:v2, u1:u2])

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, RasterImage):
            return NotImplemented
        return self.pixels.shape == other.pixels.shape and np.array_equal(self.pixels, other.pixels)

    def __hash__(self) -> int:
        return hash((self.pixels.shape, self.pixels.tobytes()))

    def __repr__(self) -> str:
        return f"RasterImage({self.width}x{self.height})"
