from __future__ import annotations

import asyncio
import logging
import math
from contextlib import asynccontextmanager
from dataclasses import dataclass
from enum import Enum
from typing import AsyncIterator, Awaitable, Callable, List, Optional

from overlay_core.chroma_key import extract_chroma_key
from overlay_core.compositor import composite_overlay
from overlay_core.config import EditorConfig
from overlay_core.crop import display_selection, plan_crop
from overlay_core.geometry import (
    HitKind,
    Point,
    clamp_origin,
    classify,
    corner_offsets,
    drag,
    inside_unscaled_box,
    local_to_background,
    pointer_to_crop_space,
    resize,
    to_local,
)
from overlay_core.history import EMPTY_SNAPSHOT, HistoryManager, HistorySnapshot
from overlay_core.raster import RasterImage
from overlay_core.state import TransformState, fit_scale

logger = logging.getLogger(__name__)

Materializer = Callable[[RasterImage], Awaitable[RasterImage]]

POINTER_KINDS = ("down", "move", "up", "cancel")


class EditMode(Enum):
    IDLE = "idle"
    CROP_ARMED = "crop_armed"
    CROP_DRAGGING = "crop_dragging"
    DRAGGING = "dragging"
    RESIZING = "resizing"


@dataclass(frozen=True)
class PointerEvent:
    kind: str
    x: float
    y: float
    pointer_id: int = 0

    def __post_init__(self) -> None:
        if self.kind not in POINTER_KINDS:
            raise ValueError(f"unknown pointer event kind: {self.kind!r}")


@dataclass
class _Gesture:
    pointer_id: int
    start_transform: TransformState
    anchor: Point = (0.0, 0.0)
    center: Point = (0.0, 0.0)
    handle: Optional[int] = None
    crop_start: Optional[Point] = None
    crop_end: Optional[Point] = None


async def immediate_materialize(raster: RasterImage) -> RasterImage:
    # Yield once so callers always see a real suspension point.
    await asyncio.sleep(0)
    return raster


class OverlayEditor:
    """
    Owns the background, the overlay lineage, its transform and the edit history.

    Pointer input goes through an explicit gesture state machine; every user mutation
    records the pre-mutation snapshot first. Loads, crops and undo/redo await the
    materializer, and while one is pending new gestures and edits are refused.
    """

    def __init__(self, config: Optional[EditorConfig] = None, materialize: Optional[Materializer] = None):
        self.config = (config or EditorConfig()).validated()
        self.history = HistoryManager(limit=self.config.history_limit)
        self._materialize: Materializer = materialize or immediate_materialize

        self._background: Optional[RasterImage] = None
        self._overlay: Optional[RasterImage] = None
        self._transform: Optional[TransformState] = None

        self._mode = EditMode.IDLE
        self._gesture: Optional[_Gesture] = None
        self._pending = 0

    # ---------------------------
    # Read-only views
    # ---------------------------
    @property
    def background(self) -> Optional[RasterImage]:
        return self._background

    @property
    def current_overlay(self) -> Optional[RasterImage]:
        return self._overlay

    @property
    def original_overlay(self) -> Optional[RasterImage]:
        # Crop replaces the canonical overlay too: there is a single raster lineage.
        return self._overlay

    @property
    def transform(self) -> Optional[TransformState]:
        return self._transform

    @property
    def mode(self) -> EditMode:
        return self._mode

    @property
    def resize_handle(self) -> Optional[int]:
        if self._mode is EditMode.RESIZING and self._gesture is not None:
            return self._gesture.handle
        return None

    @property
    def has_background(self) -> bool:
        return self._background is not None

    @property
    def has_overlay(self) -> bool:
        return self._overlay is not None

    @property
    def can_undo(self) -> bool:
        return self.history.can_undo

    @property
    def can_redo(self) -> bool:
        return self.history.can_redo

    @property
    def is_crop_mode_active(self) -> bool:
        return self._mode in (EditMode.CROP_ARMED, EditMode.CROP_DRAGGING)

    @property
    def is_busy(self) -> bool:
        return self._pending > 0

    @property
    def is_gesture_active(self) -> bool:
        return self._gesture is not None

    def current_snapshot(self) -> HistorySnapshot:
        if self._overlay is None:
            return EMPTY_SNAPSHOT
        return HistorySnapshot(overlay=self._overlay, transform=self._transform)

    # ---------------------------
    # Loading
    # ---------------------------
    @asynccontextmanager
    async def _decoding(self) -> AsyncIterator[None]:
        self._pending += 1
        try:
            yield
        finally:
            self._pending -= 1

    async def load_background(self, raster: RasterImage) -> bool:
        if self.is_busy:
            logger.debug("load_background refused: materialization pending")
            return False
        self.cancel_gesture()
        async with self._decoding():
            bg = await self._materialize(raster)

        transform = self._transform
        if self._overlay is not None and transform is not None:
            ov = self._overlay
            scale = fit_scale(ov.width, ov.height, bg.width, bg.height)
            w = ov.width * scale
            h = ov.height * scale
            x, y = clamp_origin(transform.x, transform.y, w, h, bg.width, bg.height)
            transform = TransformState(
                x=x,
                y=y,
                scale=scale,
                angle_deg=transform.angle_deg,
                flip_h=transform.flip_h,
                flip_v=transform.flip_v,
            )
            # Older snapshots were placed against another frame.
            self.history.clear()

        self._background, self._transform = bg, transform
        logger.info("background loaded (%dx%d)", bg.width, bg.height)
        return True

    async def load_overlay(self, raw: RasterImage) -> bool:
        if self.is_busy:
            logger.debug("load_overlay refused: materialization pending")
            return False
        bg = self._background
        if bg is None:
            logger.debug("load_overlay ignored: no background")
            return False
        self.cancel_gesture()
        cfg = self.config
        keyed = extract_chroma_key(raw, cfg.key_color, cfg.tolerance, cfg.ramp_width)
        async with self._decoding():
            keyed = await self._materialize(keyed)

        transform = TransformState.fitted(keyed.width, keyed.height, bg.width, bg.height, cfg.placement_margin)
        self._overlay, self._transform = keyed, transform
        self._mode = EditMode.IDLE
        self.history.clear()
        logger.info("overlay loaded (%dx%d, scale %.3f)", keyed.width, keyed.height, transform.scale)
        return True

    def remove_overlay(self) -> bool:
        if self._overlay is None or self.is_busy:
            return False
        self.cancel_gesture()
        self.record_before_action()
        self._overlay, self._transform = None, None
        self._mode = EditMode.IDLE
        logger.info("overlay removed")
        return True

    def new_session(self) -> bool:
        if self.is_busy:
            return False
        self._background = None
        self._overlay, self._transform = None, None
        self._gesture = None
        self._mode = EditMode.IDLE
        self.history.clear()
        logger.info("new session")
        return True

    # ---------------------------
    # History
    # ---------------------------
    def record_before_action(self) -> bool:
        if self._overlay is None:
            return False
        self.history.push(self.current_snapshot())
        return True

    async def undo(self) -> bool:
        if self.is_busy or not self.history.can_undo:
            return False
        self.cancel_gesture()
        target = self.history.undo(self.current_snapshot())
        try:
            await self._restore(target)
        except BaseException:
            # Cancellation included: put the stacks back, the live state was never touched.
            self.history.redo(target)
            raise
        logger.info("undo (undo=%d, redo=%d)", self.history.undo_depth, self.history.redo_depth)
        return True

    async def redo(self) -> bool:
        if self.is_busy or not self.history.can_redo:
            return False
        self.cancel_gesture()
        target = self.history.redo(self.current_snapshot())
        try:
            await self._restore(target)
        except BaseException:
            self.history.undo(target)
            raise
        logger.info("redo (undo=%d, redo=%d)", self.history.undo_depth, self.history.redo_depth)
        return True

    async def _restore(self, snapshot: HistorySnapshot) -> None:
        if snapshot.overlay is None:
            self._overlay, self._transform = None, None
            return
        async with self._decoding():
            raster = await self._materialize(snapshot.overlay)
        self._overlay, self._transform = raster, snapshot.transform

    # ---------------------------
    # Pointer gestures
    # ---------------------------
    async def handle_pointer(self, event: PointerEvent) -> bool:
        if event.kind == "down":
            return self.pointer_down(event.x, event.y, event.pointer_id)
        if event.kind == "move":
            return self.pointer_move(event.x, event.y, event.pointer_id)
        if event.kind == "up":
            return await self.pointer_up(event.x, event.y, event.pointer_id)
        g = self._gesture
        if g is not None and g.pointer_id != event.pointer_id:
            return False
        return self.cancel_gesture()

    def pointer_down(self, x: float, y: float, pointer_id: int = 0) -> bool:
        if self.is_busy:
            logger.debug("gesture refused: materialization pending")
            return False
        if self._gesture is not None:
            return False
        ov, bg, t = self._overlay, self._background, self._transform
        if ov is None or bg is None or t is None:
            return False

        if self._mode is EditMode.CROP_ARMED:
            ux, uy = pointer_to_crop_space(x, y, t, ov.width, ov.height)
            if not inside_unscaled_box(ux, uy, ov.width, ov.height):
                self._mode = EditMode.IDLE
                logger.debug("crop mode left: press outside overlay")
                return False
            self.record_before_action()
            self._gesture = _Gesture(pointer_id, t, crop_start=(ux, uy), crop_end=(ux, uy))
            self._mode = EditMode.CROP_DRAGGING
            return True

        lx, ly = to_local(x, y, t, ov.width, ov.height)
        w, h = t.box_size(ov.width, ov.height)
        hit = classify(lx, ly, w, h, self.config.handle_half_size)
        if hit.kind is HitKind.RESIZE:
            self.record_before_action()
            self._gesture = _Gesture(pointer_id, t, center=t.center(ov.width, ov.height), handle=hit.corner)
            self._mode = EditMode.RESIZING
            logger.debug("resize start (handle %s)", hit.corner)
            return True
        if hit.kind is HitKind.DRAG:
            self.record_before_action()
            self._gesture = _Gesture(pointer_id, t, anchor=(lx, ly))
            self._mode = EditMode.DRAGGING
            logger.debug("drag start")
            return True
        return False

    def pointer_move(self, x: float, y: float, pointer_id: int = 0) -> bool:
        g = self._gesture
        if g is None or g.pointer_id != pointer_id:
            return False
        ov, bg, t = self._overlay, self._background, self._transform
        if ov is None or bg is None or t is None:
            return False

        if self._mode is EditMode.DRAGGING:
            self._transform = drag(x, y, g.anchor, t, ov.width, ov.height, bg.width, bg.height)
        elif self._mode is EditMode.RESIZING:
            self._transform = resize(
                x, y, g.center, t, ov.width, ov.height, bg.width, bg.height, self.config.min_scale
            )
        elif self._mode is EditMode.CROP_DRAGGING:
            g.crop_end = pointer_to_crop_space(x, y, t, ov.width, ov.height)
        return True

    async def pointer_up(self, x: float, y: float, pointer_id: int = 0) -> bool:
        g = self._gesture
        if g is None or g.pointer_id != pointer_id:
            return False
        ov, bg, t = self._overlay, self._background, self._transform
        if ov is None or bg is None or t is None:
            self._gesture = None
            self._mode = EditMode.IDLE
            return False

        if self._mode is EditMode.CROP_DRAGGING:
            end = pointer_to_crop_space(x, y, t, ov.width, ov.height)
            self._gesture = None
            self._mode = EditMode.IDLE
            return await self._commit_crop(g.crop_start or end, end)

        w, h = t.box_size(ov.width, ov.height)
        nx, ny = clamp_origin(t.x, t.y, w, h, bg.width, bg.height)
        self._transform = t.moved_to(nx, ny)
        logger.debug("%s committed", self._mode.value)
        self._gesture = None
        self._mode = EditMode.IDLE
        return True

    def cancel_gesture(self) -> bool:
        g = self._gesture
        if g is None:
            if self._mode is EditMode.CROP_ARMED:
                self._mode = EditMode.IDLE
                return True
            return False
        self._transform = g.start_transform
        self._gesture = None
        self._mode = EditMode.IDLE
        logger.debug("gesture cancelled")
        return True

    async def _commit_crop(self, start: Point, end: Point) -> bool:
        ov, bg, t = self._overlay, self._background, self._transform
        if ov is None or bg is None or t is None:
            return False
        plan = plan_crop(start, end, t, ov.width, ov.height, bg.width, bg.height)
        if plan is None:
            logger.debug("crop aborted: empty selection")
            return False
        async with self._decoding():
            cropped = await self._materialize(ov.crop(*plan.box))
        self._overlay, self._transform = cropped, plan.transform
        logger.info("overlay cropped to %dx%d", cropped.width, cropped.height)
        return True

    # ---------------------------
    # Mode toggles
    # ---------------------------
    def _can_edit(self) -> bool:
        if self.is_busy:
            logger.debug("edit refused: materialization pending")
            return False
        return (
            self._overlay is not None
            and self._background is not None
            and self._transform is not None
            and self._gesture is None
        )

    def _commit_transform(self, transform: TransformState) -> bool:
        self.record_before_action()
        self._transform = transform
        return True

    def enter_crop_mode(self) -> bool:
        if not self._can_edit():
            return False
        self._mode = EditMode.CROP_ARMED
        return True

    def exit_crop_mode(self) -> bool:
        if not self.is_crop_mode_active:
            return False
        return self.cancel_gesture()

    def toggle_crop_mode(self) -> bool:
        if self.is_crop_mode_active:
            return self.exit_crop_mode()
        return self.enter_crop_mode()

    def flip_horizontal(self) -> bool:
        if not self._can_edit():
            return False
        return self._commit_transform(self._transform.flipped(horizontal=True))

    def flip_vertical(self) -> bool:
        if not self._can_edit():
            return False
        return self._commit_transform(self._transform.flipped(vertical=True))

    def rotate_by(self, delta_deg: float) -> bool:
        if not self._can_edit():
            return False
        return self._commit_transform(self._transform.rotated_to(self._transform.angle_deg + float(delta_deg)))

    def set_angle(self, angle_deg: float) -> bool:
        if not self._can_edit():
            return False
        return self._commit_transform(self._transform.rotated_to(angle_deg))

    def reset_rotation(self) -> bool:
        return self.set_angle(0.0)

    def scale_by(self, factor: float) -> bool:
        factor = float(factor)
        if not math.isfinite(factor) or factor <= 0:
            return False
        if not self._can_edit():
            return False
        ov, bg, t = self._overlay, self._background, self._transform
        new_scale = t.scale * factor
        if new_scale < self.config.min_scale:
            return False
        w = ov.width * new_scale
        h = ov.height * new_scale
        if factor > 1.0 and (w > bg.width or h > bg.height):
            return False
        x, y = clamp_origin(t.x, t.y, w, h, bg.width, bg.height)
        return self._commit_transform(
            TransformState(
                x=x,
                y=y,
                scale=new_scale,
                angle_deg=t.angle_deg,
                flip_h=t.flip_h,
                flip_v=t.flip_v,
            )
        )

    def scale_up(self) -> bool:
        return self.scale_by(self.config.scale_step)

    def scale_down(self) -> bool:
        return self.scale_by(1.0 / self.config.scale_step)

    # ---------------------------
    # Rendering / export views
    # ---------------------------
    def overlay_outline(self) -> Optional[List[Point]]:
        ov, t = self._overlay, self._transform
        if ov is None or t is None:
            return None
        w, h = t.box_size(ov.width, ov.height)
        return [local_to_background(cx, cy, t, ov.width, ov.height) for cx, cy in corner_offsets(w, h)]

    def crop_selection_outline(self) -> Optional[List[Point]]:
        g, ov, t = self._gesture, self._overlay, self._transform
        if self._mode is not EditMode.CROP_DRAGGING or g is None or ov is None or t is None:
            return None
        if g.crop_start is None or g.crop_end is None:
            return None
        x1, y1, x2, y2 = display_selection(g.crop_start, g.crop_end, t)
        corners = [(x1, y1), (x2, y1), (x2, y2), (x1, y2)]
        return [local_to_background(cx, cy, t, ov.width, ov.height) for cx, cy in corners]

    def preview(self, high_quality: bool = False) -> Optional[RasterImage]:
        if self._background is None:
            return None
        return composite_overlay(self._background, self._overlay, self._transform, high_quality=high_quality)

    def export_composite(self, high_quality: bool = True) -> Optional[RasterImage]:
        if self._background is None or self._overlay is None:
            return None
        return composite_overlay(self._background, self._overlay, self._transform, high_quality=high_quality)

    def export_overlay_only(self) -> Optional[RasterImage]:
        return self._overlay
