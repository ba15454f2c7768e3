from __future__ import annotations

from io import BytesIO
from pathlib import Path
from typing import Union

from PIL import Image

from overlay_core.raster import RasterImage


def decode_raster(data: bytes) -> RasterImage:
    with Image.open(BytesIO(data)) as img:
        # Convert to RGBA for consistent alpha work
        return RasterImage.from_pil(img.convert("RGBA"))


def load_raster(path: Union[str, Path]) -> RasterImage:
    return decode_raster(Path(path).read_bytes())


def encode_png(raster: RasterImage) -> bytes:
    buf = BytesIO()
    # PNG preserves alpha
    raster.to_pil().save(buf, format="PNG")
    return buf.getvalue()


def save_raster(path: Union[str, Path], raster: RasterImage) -> None:
    Path(path).write_bytes(encode_png(raster))
