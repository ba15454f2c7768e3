from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Optional

from overlay_core.raster import RasterImage
from overlay_core.state import TransformState

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class HistorySnapshot:
    # overlay=None is the "nothing loaded" state, not a missing value
    overlay: Optional[RasterImage] = None
    transform: Optional[TransformState] = None

    @property
    def is_empty(self) -> bool:
        return self.overlay is None


EMPTY_SNAPSHOT = HistorySnapshot()


class HistoryManager:
    def __init__(self, limit: int = 100):
        if limit < 1:
            raise ValueError("history limit must be >= 1")
        self._limit = int(limit)
        self._undo_stack: List[HistorySnapshot] = []
        self._redo_stack: List[HistorySnapshot] = []

    @property
    def limit(self) -> int:
        return self._limit

    @property
    def can_undo(self) -> bool:
        return bool(self._undo_stack)

    @property
    def can_redo(self) -> bool:
        return bool(self._redo_stack)

    @property
    def undo_depth(self) -> int:
        return len(self._undo_stack)

    @property
    def redo_depth(self) -> int:
        return len(self._redo_stack)

    def push(self, snapshot: HistorySnapshot) -> None:
        self._undo_stack.append(snapshot)
        if len(self._undo_stack) > self._limit:
            self._undo_stack.pop(0)
        self._redo_stack.clear()
        logger.debug("history push (undo=%d)", len(self._undo_stack))

    def undo(self, current: HistorySnapshot) -> Optional[HistorySnapshot]:
        if not self._undo_stack:
            return None
        self._redo_stack.append(current)
        return self._undo_stack.pop()

    def redo(self, current: HistorySnapshot) -> Optional[HistorySnapshot]:
        if not self._redo_stack:
            return None
        self._undo_stack.append(current)
        return self._redo_stack.pop()

    def clear(self) -> None:
        self._undo_stack.clear()
        self._redo_stack.clear()
