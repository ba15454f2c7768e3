from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from overlay_core.errors import ExportError
from overlay_core.io import save_raster
from overlay_core.raster import RasterImage

logger = logging.getLogger(__name__)

COMPOSITE_DIR = "Canvas"
OVERLAY_DIR = "objects"
DEFAULT_PREFIX = "output"


@dataclass(frozen=True)
class ExportResult:
    composite_path: Path
    overlay_path: Path
    used_fallback: bool = False


def default_prefix(background_path: Optional[str]) -> str:
    if background_path:
        stem = Path(background_path).stem
        if stem:
            return stem
    return DEFAULT_PREFIX


class ExportWriter:
    """
    Writes the composite to `<output_dir>/Canvas/<base>.png` and the keyed overlay to
    `<output_dir>/objects/<base>.png`. Without an output directory, or when writing there
    fails, flat `Canvas_<base>.png` / `objects_<base>.png` files go to `fallback_dir`.
    """

    def __init__(self, output_dir: Optional[str] = None, fallback_dir: Optional[str] = None):
        self.output_dir: Optional[Path] = Path(output_dir) if output_dir else None
        self.fallback_dir = Path(fallback_dir) if fallback_dir else Path.cwd()
        self._counter = 0

    @property
    def counter(self) -> int:
        return self._counter

    def reset_counter(self) -> None:
        self._counter = 0

    def next_base_name(self, prefix: str) -> str:
        prefix = prefix.strip() or DEFAULT_PREFIX
        base = prefix if self._counter == 0 else f"{prefix}_{self._counter}"
        self._counter += 1
        return base

    def write(self, composite: RasterImage, overlay: RasterImage, prefix: str) -> ExportResult:
        base = self.next_base_name(prefix)
        file_name = f"{base}.png"
        attempted = []

        if self.output_dir is not None:
            canvas_path = self.output_dir / COMPOSITE_DIR / file_name
            objects_path = self.output_dir / OVERLAY_DIR / file_name
            attempted.append(self.output_dir)
            try:
                canvas_path.parent.mkdir(parents=True, exist_ok=True)
                objects_path.parent.mkdir(parents=True, exist_ok=True)
                save_raster(canvas_path, composite)
                save_raster(objects_path, overlay)
                logger.info("saved %s and %s", canvas_path, objects_path)
                return ExportResult(canvas_path, objects_path)
            except OSError:
                logger.warning("writing to %s failed, using fallback %s", self.output_dir, self.fallback_dir, exc_info=True)

        canvas_path = self.fallback_dir / f"{COMPOSITE_DIR}_{file_name}"
        objects_path = self.fallback_dir / f"{OVERLAY_DIR}_{file_name}"
        attempted.append(self.fallback_dir)
        try:
            self.fallback_dir.mkdir(parents=True, exist_ok=True)
            save_raster(canvas_path, composite)
            save_raster(objects_path, overlay)
        except OSError as exc:
            raise ExportError(f"could not write {file_name}: {exc}", attempted) from exc
        logger.info("saved %s and %s", canvas_path, objects_path)
        return ExportResult(canvas_path, objects_path, used_fallback=True)
