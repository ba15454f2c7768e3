from __future__ import annotations

import json
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Tuple


@dataclass(frozen=True)
class EditorConfig:
    # Chroma key
    key_color: Tuple[int, int, int] = (128, 128, 128)
    tolerance: int = 22
    ramp_width: int = 2

    # Handles are sized in background pixels, independent of overlay scale
    handle_half_size: float = 10.0
    handle_draw_size: float = 8.0

    # Placement / stepping
    min_scale: float = 0.05
    placement_margin: float = 20.0
    scale_step: float = 1.10
    rotate_step: float = 5.0

    history_limit: int = 100

    def validated(self) -> "EditorConfig":
        if len(self.key_color) != 3 or any(c < 0 or c > 255 for c in self.key_color):
            raise ValueError("key_color must be three values in [0, 255]")
        if self.tolerance < 0 or self.tolerance > 255:
            raise ValueError("tolerance must be in [0, 255]")
        if self.ramp_width < 1:
            raise ValueError("ramp_width must be >= 1")
        if self.handle_half_size <= 0 or self.handle_draw_size <= 0:
            raise ValueError("handle sizes must be > 0")
        if self.min_scale <= 0:
            raise ValueError("min_scale must be > 0")
        if self.scale_step <= 1.0:
            raise ValueError("scale_step must be > 1")
        if self.history_limit < 1:
            raise ValueError("history_limit must be >= 1")
        return self


def _config_from_raw(raw: dict) -> EditorConfig:
    d = EditorConfig()
    key = raw.get("key_color", list(d.key_color))
    if not isinstance(key, (list, tuple)) or len(key) != 3:
        key = list(d.key_color)
    return EditorConfig(
        key_color=(int(key[0]), int(key[1]), int(key[2])),
        tolerance=int(raw.get("tolerance", d.tolerance)),
        ramp_width=int(raw.get("ramp_width", d.ramp_width)),
        handle_half_size=float(raw.get("handle_half_size", d.handle_half_size)),
        handle_draw_size=float(raw.get("handle_draw_size", d.handle_draw_size)),
        min_scale=float(raw.get("min_scale", d.min_scale)),
        placement_margin=float(raw.get("placement_margin", d.placement_margin)),
        scale_step=float(raw.get("scale_step", d.scale_step)),
        rotate_step=float(raw.get("rotate_step", d.rotate_step)),
        history_limit=int(raw.get("history_limit", d.history_limit)),
    )


def load_config(path: str) -> EditorConfig:
    p = Path(path)
    if not p.exists():
        return EditorConfig()
    raw = json.loads(p.read_text(encoding="utf-8"))
    if not isinstance(raw, dict):
        raise ValueError(f"config root must be an object: {path}")
    return _config_from_raw(raw).validated()


def save_config(path: str, config: EditorConfig) -> None:
    payload = asdict(config)
    payload["key_color"] = list(config.key_color)
    Path(path).write_text(json.dumps(payload, indent=2), encoding="utf-8")
