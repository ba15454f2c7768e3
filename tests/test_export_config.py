from __future__ import annotations

from pathlib import Path
from tempfile import TemporaryDirectory
import unittest
from unittest import mock

from overlay_core.config import EditorConfig, load_config, save_config
from overlay_core.errors import ExportError
from overlay_core.export import ExportWriter, default_prefix
from overlay_core.io import decode_raster, encode_png, load_raster
from overlay_core.raster import RasterImage


class ExportWriterTests(unittest.TestCase):
    def setUp(self) -> None:
        self.composite = RasterImage.blank(6, 4, (1, 2, 3, 255))
        self.overlay = RasterImage.blank(3, 2, (9, 9, 9, 128))

    def test_base_names_count_up(self) -> None:
        writer = ExportWriter()
        self.assertEqual(writer.next_base_name("scene"), "scene")
        self.assertEqual(writer.next_base_name("scene"), "scene_1")
        self.assertEqual(writer.next_base_name("  "), "output_2")
        writer.reset_counter()
        self.assertEqual(writer.next_base_name("scene"), "scene")

    def test_default_prefix(self) -> None:
        self.assertEqual(default_prefix("/tmp/beach.jpg"), "beach")
        self.assertEqual(default_prefix(None), "output")

    def test_writes_canvas_and_objects_dirs(self) -> None:
        with TemporaryDirectory() as td:
            writer = ExportWriter(output_dir=td, fallback_dir=str(Path(td) / "fallback"))
            result = writer.write(self.composite, self.overlay, "scene")
            self.assertFalse(result.used_fallback)
            self.assertEqual(result.composite_path, Path(td) / "Canvas" / "scene.png")
            self.assertEqual(result.overlay_path, Path(td) / "objects" / "scene.png")
            self.assertEqual(load_raster(result.composite_path), self.composite)
            self.assertEqual(load_raster(result.overlay_path), self.overlay)

            second = writer.write(self.composite, self.overlay, "scene")
            self.assertEqual(second.composite_path.name, "scene_1.png")

    def test_without_output_dir_uses_flat_fallback(self) -> None:
        with TemporaryDirectory() as td:
            writer = ExportWriter(fallback_dir=td)
            result = writer.write(self.composite, self.overlay, "scene")
            self.assertTrue(result.used_fallback)
            self.assertEqual(result.composite_path, Path(td) / "Canvas_scene.png")
            self.assertEqual(result.overlay_path, Path(td) / "objects_scene.png")
            self.assertTrue(result.composite_path.exists())

    def test_failed_primary_falls_back(self) -> None:
        with TemporaryDirectory() as td:
            blocker = Path(td) / "not_a_dir"
            blocker.write_text("x", encoding="utf-8")
            writer = ExportWriter(output_dir=str(blocker), fallback_dir=str(Path(td) / "fb"))
            result = writer.write(self.composite, self.overlay, "scene")
            self.assertTrue(result.used_fallback)
            self.assertTrue(result.overlay_path.exists())

    def test_both_destinations_failing_raises(self) -> None:
        writer = ExportWriter(output_dir="/nonexistent/out", fallback_dir="/nonexistent/fb")
        with mock.patch("overlay_core.export.save_raster", side_effect=OSError("read-only")):
            with mock.patch("pathlib.Path.mkdir"):
                with self.assertRaises(ExportError) as ctx:
                    writer.write(self.composite, self.overlay, "scene")
        self.assertEqual(len(ctx.exception.attempted), 2)


class RasterIOTests(unittest.TestCase):
    def test_png_keeps_alpha(self) -> None:
        src = RasterImage.blank(5, 3, (10, 20, 30, 40))
        self.assertEqual(decode_raster(encode_png(src)), src)

    def test_raster_is_read_only(self) -> None:
        src = RasterImage.blank(2, 2)
        with self.assertRaises(ValueError):
            src.pixels[0, 0, 0] = 1


class ConfigTests(unittest.TestCase):
    def test_round_trip(self) -> None:
        cfg = EditorConfig(key_color=(0, 255, 0), tolerance=40, history_limit=10)
        with TemporaryDirectory() as td:
            path = Path(td) / "editor.json"
            save_config(str(path), cfg)
            self.assertEqual(load_config(str(path)), cfg)

    def test_missing_file_and_partial_file(self) -> None:
        with TemporaryDirectory() as td:
            self.assertEqual(load_config(str(Path(td) / "missing.json")), EditorConfig())
            path = Path(td) / "partial.json"
            path.write_text('{"tolerance": 30, "unknown": 1}', encoding="utf-8")
            loaded = load_config(str(path))
        self.assertEqual(loaded.tolerance, 30)
        self.assertEqual(loaded.key_color, (128, 128, 128))

    def test_invalid_values_rejected(self) -> None:
        with TemporaryDirectory() as td:
            path = Path(td) / "bad.json"
            path.write_text('{"tolerance": 300}', encoding="utf-8")
            with self.assertRaises(ValueError):
                load_config(str(path))
        with self.assertRaises(ValueError):
            EditorConfig(scale_step=1.0).validated()


if __name__ == "__main__":
    unittest.main()
