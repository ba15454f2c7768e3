from __future__ import annotations
import asyncio
import logging
from pathlib import Path
from typing import Optional

from PIL import Image

from PySide6.QtCore import Qt
from PySide6.QtGui import QAction, QIcon, QImage, QKeySequence
from PySide6.QtWidgets import (
    QMainWindow, QWidget, QFileDialog, QVBoxLayout, QHBoxLayout, QLabel,
    QPushButton, QMessageBox, QDockWidget, QDoubleSpinBox, QLineEdit,
    QGroupBox, QScrollArea
)

from overlay_core.config import EditorConfig
from overlay_core.engine import OverlayEditor, PointerEvent
from overlay_core.errors import ExportError
from overlay_core.export import ExportWriter, default_prefix
from overlay_core.io import load_raster
from overlay_ui.canvas_widget import CanvasWidget

logger = logging.getLogger(__name__)

IMAGE_FILTER = "Images (*.png *.jpg *.jpeg *.bmp *.webp *.tif *.tiff)"


def pil_rgba_to_qimage(img: Image.Image) -> QImage:
    img = img.convert("RGBA")
    w, h = img.size
    data = img.tobytes("raw", "RGBA")
    qimg = QImage(data, w, h, QImage.Format_RGBA8888)
    # Important: keep a copy because Python-owned bytes may be freed
    return qimg.copy()


class MainWindow(QMainWindow):
    def __init__(self, config: Optional[EditorConfig] = None, logo_path: Optional[Path] = None):
        super().__init__()
        if logo_path is not None and logo_path.exists():
            self.setWindowIcon(QIcon(str(logo_path)))
        self.setWindowTitle("Overlay Keyer")

        self.config = config or EditorConfig()
        self.editor = OverlayEditor(self.config)
        self.writer = ExportWriter()
        self._background_path: Optional[str] = None
        # Engine coroutines are driven to completion from Qt slots.
        self._loop = asyncio.new_event_loop()

        self._act_undo: Optional[QAction] = None
        self._act_redo: Optional[QAction] = None

        # Central
        self.canvas = CanvasWidget(on_pointer=self._on_canvas_pointer)

        central = QWidget()
        lay = QVBoxLayout()
        lay.addWidget(self.canvas)
        central.setLayout(lay)
        self.setCentralWidget(central)

        # Menu
        self._build_menu()

        # Right-side controls dock
        self._build_controls_dock()

        self.resize(1200, 800)
        self._rerender()

    def _run(self, coro):
        return self._loop.run_until_complete(coro)

    def closeEvent(self, e) -> None:
        self._loop.close()
        super().closeEvent(e)

    # ---------------------------
    # Menu / Actions
    # ---------------------------
    def _build_menu(self) -> None:
        open_bg_act = QAction("Open Background...", self)
        open_bg_act.setShortcut(QKeySequence.StandardKey.Open)
        open_bg_act.triggered.connect(self.open_background)

        open_ov_act = QAction("Open Overlay...", self)
        open_ov_act.triggered.connect(self.open_overlay)

        save_act = QAction("Save", self)
        save_act.setShortcut(QKeySequence.StandardKey.Save)
        save_act.triggered.connect(self.save_outputs)

        new_act = QAction("New Session", self)
        new_act.setShortcut(QKeySequence.StandardKey.New)
        new_act.triggered.connect(self.new_session)

        reset_view = QAction("Reset View", self)
        reset_view.triggered.connect(self.canvas.reset_view)

        self._act_undo = QAction("Undo", self)
        self._act_undo.setShortcut(QKeySequence.StandardKey.Undo)
        self._act_undo.triggered.connect(self._undo)

        # Ctrl+Y and Ctrl+Shift+Z both redo regardless of platform defaults.
        self._act_redo = QAction("Redo", self)
        self._act_redo.setShortcuts([QKeySequence("Ctrl+Y"), QKeySequence("Ctrl+Shift+Z")])
        self._act_redo.triggered.connect(self._redo)

        quit_act = QAction("Quit", self)
        quit_act.setShortcut(QKeySequence.StandardKey.Quit)
        quit_act.triggered.connect(self.close)

        mfile = self.menuBar().addMenu("File")
        mfile.addAction(new_act)
        mfile.addAction(open_bg_act)
        mfile.addAction(open_ov_act)
        mfile.addAction(save_act)
        mfile.addSeparator()
        mfile.addAction(quit_act)

        medit = self.menuBar().addMenu("Edit")
        medit.addAction(self._act_undo)
        medit.addAction(self._act_redo)

        mview = self.menuBar().addMenu("View")
        mview.addAction(reset_view)

    def keyPressEvent(self, e) -> None:
        if e.key() == Qt.Key_Escape and self.editor.is_crop_mode_active:
            self.editor.cancel_gesture()
            self.editor.exit_crop_mode()
            self._rerender()
            e.accept()
            return
        super().keyPressEvent(e)

    # ---------------------------
    # Controls dock
    # ---------------------------
    def _build_controls_dock(self) -> None:
        dock = QDockWidget("Controls", self)
        dock.setAllowedAreas(Qt.LeftDockWidgetArea | Qt.RightDockWidgetArea)

        scroll = QScrollArea()
        scroll.setWidgetResizable(True)
        panel = QWidget()
        v = QVBoxLayout(panel)

        g_files, gl_files = self._make_group("Images")
        self.open_bg_btn = QPushButton("Load Background")
        self.open_bg_btn.clicked.connect(self.open_background)
        gl_files.addWidget(self.open_bg_btn)
        self.open_ov_btn = QPushButton("Load Overlay")
        self.open_ov_btn.clicked.connect(self.open_overlay)
        gl_files.addWidget(self.open_ov_btn)
        self.remove_btn = QPushButton("Remove Overlay")
        self.remove_btn.clicked.connect(self._remove_overlay)
        gl_files.addWidget(self.remove_btn)
        v.addWidget(g_files)

        g_tx, gl_tx = self._make_group("Transform")
        scale_row = QHBoxLayout()
        self.smaller_btn = QPushButton("Smaller")
        self.smaller_btn.clicked.connect(lambda: self._apply(self.editor.scale_down))
        scale_row.addWidget(self.smaller_btn)
        self.bigger_btn = QPushButton("Bigger")
        self.bigger_btn.clicked.connect(lambda: self._apply(self.editor.scale_up))
        scale_row.addWidget(self.bigger_btn)
        gl_tx.addLayout(scale_row)

        self.angle_spin = QDoubleSpinBox()
        self.angle_spin.setRange(-180.0, 180.0)
        self.angle_spin.setDecimals(1)
        self.angle_spin.setSingleStep(1.0)
        self.angle_spin.setSuffix(" deg")
        self.angle_spin.setKeyboardTracking(False)
        self.angle_spin.valueChanged.connect(self._on_angle_spin_changed)
        self._add_labeled_row(gl_tx, "Angle", self.angle_spin)

        step = self.config.rotate_step
        rot_row = QHBoxLayout()
        self.rot_l_btn = QPushButton(f"Rotate -{step:g}")
        self.rot_l_btn.clicked.connect(lambda: self._apply(lambda: self.editor.rotate_by(-step)))
        rot_row.addWidget(self.rot_l_btn)
        self.rot_r_btn = QPushButton(f"Rotate +{step:g}")
        self.rot_r_btn.clicked.connect(lambda: self._apply(lambda: self.editor.rotate_by(step)))
        rot_row.addWidget(self.rot_r_btn)
        self.rot_reset_btn = QPushButton("Reset")
        self.rot_reset_btn.clicked.connect(lambda: self._apply(self.editor.reset_rotation))
        rot_row.addWidget(self.rot_reset_btn)
        gl_tx.addLayout(rot_row)

        flip_row = QHBoxLayout()
        self.flip_h_btn = QPushButton("Flip H")
        self.flip_h_btn.clicked.connect(lambda: self._apply(self.editor.flip_horizontal))
        flip_row.addWidget(self.flip_h_btn)
        self.flip_v_btn = QPushButton("Flip V")
        self.flip_v_btn.clicked.connect(lambda: self._apply(self.editor.flip_vertical))
        flip_row.addWidget(self.flip_v_btn)
        gl_tx.addLayout(flip_row)

        self.crop_btn = QPushButton("Crop")
        self.crop_btn.setCheckable(True)
        self.crop_btn.clicked.connect(lambda: self._apply(self.editor.toggle_crop_mode))
        gl_tx.addWidget(self.crop_btn)
        v.addWidget(g_tx)

        g_hist, gl_hist = self._make_group("History")
        hist_row = QHBoxLayout()
        self.undo_btn = QPushButton("Undo")
        self.undo_btn.clicked.connect(self._undo)
        hist_row.addWidget(self.undo_btn)
        self.redo_btn = QPushButton("Redo")
        self.redo_btn.clicked.connect(self._redo)
        hist_row.addWidget(self.redo_btn)
        gl_hist.addLayout(hist_row)
        v.addWidget(g_hist)

        g_out, gl_out = self._make_group("Output")
        self.out_dir_label = QLabel("(fallback folder)")
        self.out_dir_label.setWordWrap(True)
        gl_out.addWidget(self.out_dir_label)
        self.out_dir_btn = QPushButton("Choose Output Folder")
        self.out_dir_btn.clicked.connect(self.choose_output_dir)
        gl_out.addWidget(self.out_dir_btn)
        self.prefix_edit = QLineEdit()
        self.prefix_edit.setPlaceholderText(default_prefix(None))
        self._add_labeled_row(gl_out, "Prefix", self.prefix_edit)
        self.save_btn = QPushButton("Save")
        self.save_btn.clicked.connect(self.save_outputs)
        gl_out.addWidget(self.save_btn)
        self.new_btn = QPushButton("New Session")
        self.new_btn.clicked.connect(self.new_session)
        gl_out.addWidget(self.new_btn)
        v.addWidget(g_out)

        v.addStretch(1)
        scroll.setWidget(panel)
        dock.setWidget(scroll)
        self.addDockWidget(Qt.RightDockWidgetArea, dock)

    # ---------------------------
    # File IO
    # ---------------------------
    def open_background(self) -> None:
        path, _ = QFileDialog.getOpenFileName(self, "Open Background", "", IMAGE_FILTER)
        if not path:
            return
        try:
            raster = load_raster(path)
        except (OSError, ValueError) as e:
            QMessageBox.critical(self, "Open failed", str(e))
            return
        if not self._run(self.editor.load_background(raster)):
            return
        self._background_path = path
        self.writer.reset_counter()
        self.prefix_edit.setPlaceholderText(default_prefix(path))
        self.canvas.reset_view()
        self._rerender()

    def open_overlay(self) -> None:
        if not self.editor.has_background:
            QMessageBox.information(self, "No background", "Load a background first.")
            return
        path, _ = QFileDialog.getOpenFileName(self, "Open Overlay", "", IMAGE_FILTER)
        if not path:
            return
        try:
            raster = load_raster(path)
        except (OSError, ValueError) as e:
            QMessageBox.critical(self, "Open failed", str(e))
            return
        self._run(self.editor.load_overlay(raster))
        self._rerender()

    def choose_output_dir(self) -> None:
        out_dir = QFileDialog.getExistingDirectory(self, "Output Folder")
        if not out_dir:
            return
        self.writer.output_dir = Path(out_dir)
        self.out_dir_label.setText(out_dir)

    def save_outputs(self) -> None:
        composite = self.editor.export_composite()
        overlay = self.editor.export_overlay_only()
        if composite is None or overlay is None:
            QMessageBox.information(self, "Nothing to save", "Load a background and an overlay first.")
            return
        prefix = self.prefix_edit.text() or default_prefix(self._background_path)
        try:
            result = self.writer.write(composite, overlay, prefix)
        except ExportError as e:
            QMessageBox.critical(self, "Save failed", str(e))
            return
        if result.used_fallback:
            self.statusBar().showMessage(f"Saved to fallback: {result.composite_path}", 4000)
        else:
            self.statusBar().showMessage(f"Saved {result.composite_path.name}", 4000)

    def new_session(self) -> None:
        if not self.editor.new_session():
            return
        self._background_path = None
        self.writer.reset_counter()
        self.prefix_edit.clear()
        self.prefix_edit.setPlaceholderText(default_prefix(None))
        self.canvas.reset_view()
        self._rerender()

    # ---------------------------
    # Editing
    # ---------------------------
    def _apply(self, action) -> None:
        if action():
            self._rerender()
        else:
            # Keep checkable buttons in step with a refused toggle.
            self._sync_ui_from_editor()

    def _remove_overlay(self) -> None:
        self._apply(self.editor.remove_overlay)

    def _on_angle_spin_changed(self, value: float) -> None:
        t = self.editor.transform
        if t is None or abs(t.angle_deg - value) < 1e-9:
            return
        self._apply(lambda: self.editor.set_angle(value))

    def _on_canvas_pointer(self, kind: str, x: float, y: float) -> None:
        handled = self._run(self.editor.handle_pointer(PointerEvent(kind, x, y)))
        # A refused press can still leave crop mode.
        if handled or kind != "move":
            self._rerender(high_quality=kind == "up")

    def _undo(self) -> None:
        try:
            self._run(self.editor.undo())
        except (OSError, ValueError) as e:
            QMessageBox.critical(self, "Undo failed", str(e))
        self._rerender()

    def _redo(self) -> None:
        try:
            self._run(self.editor.redo())
        except (OSError, ValueError) as e:
            QMessageBox.critical(self, "Redo failed", str(e))
        self._rerender()

    def _update_undo_redo_actions(self) -> None:
        if self._act_undo is not None:
            self._act_undo.setEnabled(self.editor.can_undo)
        if self._act_redo is not None:
            self._act_redo.setEnabled(self.editor.can_redo)
        self.undo_btn.setEnabled(self.editor.can_undo)
        self.redo_btn.setEnabled(self.editor.can_redo)

    def _sync_ui_from_editor(self) -> None:
        has_overlay = self.editor.has_overlay
        t = self.editor.transform
        self.angle_spin.blockSignals(True)
        self.angle_spin.setValue(t.angle_deg if t is not None else 0.0)
        self.angle_spin.blockSignals(False)
        for w in (
            self.remove_btn, self.smaller_btn, self.bigger_btn, self.angle_spin, self.rot_l_btn,
            self.rot_r_btn, self.rot_reset_btn, self.flip_h_btn, self.flip_v_btn, self.crop_btn,
        ):
            w.setEnabled(has_overlay)
        self.open_ov_btn.setEnabled(self.editor.has_background)
        self.save_btn.setEnabled(has_overlay and self.editor.has_background)
        self.crop_btn.setChecked(self.editor.is_crop_mode_active)
        self.canvas.crop_mode = self.editor.is_crop_mode_active
        self._update_undo_redo_actions()

    def _update_status(self) -> None:
        bg = self.editor.background
        ov = self.editor.current_overlay
        t = self.editor.transform
        bg_size = f"{bg.width}x{bg.height}" if bg is not None else "none"
        ov_size = f"{ov.width}x{ov.height}" if ov is not None else "none"
        msg = f"Background: {bg_size} | Overlay: {ov_size}"
        if t is not None:
            flips = "".join(s for s, on in (("H", t.flip_h), ("V", t.flip_v)) if on) or "-"
            msg += (
                f" | Pos: ({t.x:.1f}, {t.y:.1f}) | Scale: {t.scale * 100:.1f}%"
                f" | Rot: {t.angle_deg:.1f} | Flip: {flips}"
            )
        if self.editor.is_crop_mode_active:
            msg += " | CROP"
        self.statusBar().showMessage(msg)

    def _make_group(self, title: str) -> tuple[QGroupBox, QVBoxLayout]:
        g = QGroupBox(title)
        gl = QVBoxLayout()
        g.setLayout(gl)
        return g, gl

    def _add_labeled_row(self, layout: QVBoxLayout, label: str, widget: Optional[QWidget]) -> None:
        row = QHBoxLayout()
        row.addWidget(QLabel(label))
        if widget is not None:
            row.addWidget(widget, 1)
        layout.addLayout(row)

    def _rerender(self, high_quality: bool = False) -> None:
        preview = self.editor.preview(high_quality=high_quality)
        if preview is None:
            self.canvas.set_preview(None, (0, 0))
        else:
            self.canvas.set_preview(pil_rgba_to_qimage(preview.to_pil()), preview.size)
        self.canvas.set_guides(
            self.editor.overlay_outline(),
            self.editor.crop_selection_outline(),
            self.config.handle_draw_size,
        )
        self._sync_ui_from_editor()
        self._update_status()
