from __future__ import annotations
from typing import Callable, List, Optional, Tuple

from PySide6.QtCore import Qt, QPoint, QPointF, QRectF
from PySide6.QtGui import QBrush, QColor, QImage, QPainter, QPen, QPixmap, QPolygonF
from PySide6.QtWidgets import QWidget

Point = Tuple[float, float]


class CanvasWidget(QWidget):
    """
    Shows the composite preview (QImage, background pixel size) with view zoom/pan.
    Supports:
      - left button: forwarded as down/move/up pointer events in background px
      - wheel: view zoom
      - middle-drag: pan view
    The overlay outline, handles and crop selection are painted from points supplied
    by the editor; this widget never changes editor state itself.
    """
    def __init__(
        self,
        on_pointer: Callable[[str, float, float], None],
        parent: Optional[QWidget] = None,
    ):
        super().__init__(parent)
        self.setMouseTracking(True)
        self.setFocusPolicy(Qt.StrongFocus)

        self._preview: Optional[QImage] = None
        self._out_size: Tuple[int, int] = (0, 0)

        # View transform
        self._view_zoom = 1.0
        self._view_pan_x = 0.0
        self._view_pan_y = 0.0

        # Interaction
        self._dragging_left = False
        self._dragging_mid = False
        self._last_pos = QPoint()

        self._outline: Optional[List[Point]] = None
        self._crop_outline: Optional[List[Point]] = None
        self._handle_size = 8.0
        self.crop_mode = False

        self._on_pointer = on_pointer

    def set_preview(self, qimg: Optional[QImage], out_size: Tuple[int, int]) -> None:
        self._preview = qimg
        self._out_size = out_size
        self.update()

    def set_guides(
        self,
        outline: Optional[List[Point]],
        crop_outline: Optional[List[Point]],
        handle_size: float,
    ) -> None:
        self._outline = outline
        self._crop_outline = crop_outline
        self._handle_size = float(handle_size)
        self.update()

    def reset_view(self) -> None:
        self._view_zoom = 1.0
        self._view_pan_x = 0.0
        self._view_pan_y = 0.0
        self.update()

    def _canvas_origin(self) -> Tuple[float, float]:
        out_w, out_h = self._out_size
        cx = self.width() * 0.5 + self._view_pan_x
        cy = self.height() * 0.5 + self._view_pan_y
        return (cx - out_w * self._view_zoom * 0.5, cy - out_h * self._view_zoom * 0.5)

    def _canvas_to_widget(self, x: float, y: float) -> QPointF:
        x0, y0 = self._canvas_origin()
        return QPointF(x0 + x * self._view_zoom, y0 + y * self._view_zoom)

    def _widget_to_canvas(self, pos: QPoint) -> Point:
        # Not clamped: a captured gesture keeps receiving positions outside the canvas.
        x0, y0 = self._canvas_origin()
        return ((pos.x() - x0) / self._view_zoom, (pos.y() - y0) / self._view_zoom)

    def paintEvent(self, _) -> None:
        p = QPainter(self)
        p.setRenderHint(QPainter.Antialiasing, True)

        p.fillRect(self.rect(), QColor(30, 30, 30))

        if self._preview is None:
            p.setPen(QPen(QColor(220, 220, 220)))
            p.drawText(self.rect(), Qt.AlignCenter, "Load a background, then an overlay")
            return

        out_w, out_h = self._out_size
        x0, y0 = self._canvas_origin()
        draw_w = out_w * self._view_zoom
        draw_h = out_h * self._view_zoom

        self._draw_checkerboard(p, QRectF(x0, y0, draw_w, draw_h), int(16 * self._view_zoom))
        p.drawPixmap(int(x0), int(y0), int(draw_w), int(draw_h), QPixmap.fromImage(self._preview))

        p.setPen(QPen(QColor(240, 240, 240), 1))
        p.drawRect(QRectF(x0, y0, draw_w, draw_h))

        if self._outline:
            self._draw_outline(p)
        if self._crop_outline:
            self._draw_crop_selection(p)

        p.setPen(QPen(QColor(220, 220, 220)))
        msg = "Drag: move | Corners: resize | Wheel: view zoom | Middle-drag: pan view"
        if self.crop_mode:
            msg = "Crop: drag a rectangle on the overlay | " + msg
        p.drawText(10, self.height() - 10, msg)

    def _draw_checkerboard(self, p: QPainter, r: QRectF, cell: int) -> None:
        if cell < 4:
            cell = 4
        c1 = QColor(60, 60, 60)
        c2 = QColor(90, 90, 90)
        for y in range(int(r.top()), int(r.bottom()), cell):
            for x in range(int(r.left()), int(r.right()), cell):
                use_c1 = ((x // cell) + (y // cell)) % 2 == 0
                p.fillRect(x, y, cell, cell, c1 if use_c1 else c2)

    def _draw_outline(self, p: QPainter) -> None:
        pts = [self._canvas_to_widget(x, y) for x, y in self._outline]
        p.setPen(QPen(QColor(0, 0, 0, 128), 1))
        p.setBrush(Qt.NoBrush)
        p.drawPolygon(QPolygonF(pts))

        # Handles stay the same size on screen whatever the overlay scale.
        half = self._handle_size * 0.5
        p.setPen(QPen(QColor(0, 0, 0, 180), 1))
        p.setBrush(QBrush(QColor(255, 255, 255, 204)))
        for pt in pts:
            p.drawRect(QRectF(pt.x() - half, pt.y() - half, self._handle_size, self._handle_size))
        p.setBrush(Qt.NoBrush)

    def _draw_crop_selection(self, p: QPainter) -> None:
        poly = QPolygonF([self._canvas_to_widget(x, y) for x, y in self._crop_outline])
        p.setPen(Qt.NoPen)
        p.setBrush(QBrush(QColor(255, 255, 255, 64)))
        p.drawPolygon(poly)
        pen = QPen(QColor(255, 0, 0, 204), 1)
        pen.setDashPattern([6, 4])
        p.setPen(pen)
        p.setBrush(Qt.NoBrush)
        p.drawPolygon(poly)

    def wheelEvent(self, e) -> None:
        delta = e.angleDelta().y()
        if delta == 0:
            return
        factor = 1.1 if delta > 0 else (1.0 / 1.1)
        self._view_zoom = max(0.05, min(20.0, self._view_zoom * factor))
        self.update()
        e.accept()

    def mousePressEvent(self, e) -> None:
        self._last_pos = e.position().toPoint()
        if e.button() == Qt.LeftButton:
            if self._preview is None:
                return
            self._dragging_left = True
            x, y = self._widget_to_canvas(self._last_pos)
            self._on_pointer("down", x, y)
        elif e.button() == Qt.MiddleButton:
            self._dragging_mid = True

    def mouseMoveEvent(self, e) -> None:
        pos = e.position().toPoint()
        dx = pos.x() - self._last_pos.x()
        dy = pos.y() - self._last_pos.y()
        self._last_pos = pos

        if self._dragging_left:
            x, y = self._widget_to_canvas(pos)
            self._on_pointer("move", x, y)
        elif self._dragging_mid:
            self._view_pan_x += dx
            self._view_pan_y += dy
            self.update()

    def mouseReleaseEvent(self, e) -> None:
        if e.button() == Qt.LeftButton:
            if self._dragging_left:
                self._dragging_left = False
                x, y = self._widget_to_canvas(e.position().toPoint())
                self._on_pointer("up", x, y)
        elif e.button() == Qt.MiddleButton:
            self._dragging_mid = False

    def contextMenuEvent(self, e) -> None:
        e.accept()
