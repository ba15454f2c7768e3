from __future__ import annotations

import unittest

import numpy as np

from overlay_core.chroma_key import build_alpha_lut, extract_chroma_key
from overlay_core.raster import RasterImage


def _strip(values: list[tuple[int, int, int]]) -> RasterImage:
    arr = np.zeros((1, len(values), 4), dtype=np.uint8)
    for i, rgb in enumerate(values):
        arr[0, i, :3] = rgb
        arr[0, i, 3] = 77
    return RasterImage(arr)


class AlphaLutTests(unittest.TestCase):
    def test_default_ramp_boundaries(self) -> None:
        lut = build_alpha_lut(22, 2)
        self.assertEqual(int(lut[0]), 0)
        self.assertEqual(int(lut[22]), 0)
        self.assertEqual(int(lut[23]), 128)
        self.assertEqual(int(lut[24]), 255)
        self.assertEqual(int(lut[255]), 255)

    def test_alpha_is_non_decreasing(self) -> None:
        for tol, ramp in ((0, 1), (22, 2), (100, 30), (200, 80)):
            lut = build_alpha_lut(tol, ramp).astype(np.int32)
            self.assertTrue(np.all(np.diff(lut) >= 0), (tol, ramp))

    def test_high_tolerance_still_reaches_opaque(self) -> None:
        lut = build_alpha_lut(254, 2)
        self.assertEqual(int(lut[254]), 0)
        self.assertEqual(int(lut[255]), 255)

    def test_wide_ramp_keeps_slope_past_255(self) -> None:
        lut = build_alpha_lut(200, 80)
        # round(255 * 30 / 80) and round(255 * 55 / 80)
        self.assertEqual(int(lut[230]), 96)
        self.assertEqual(int(lut[255]), 175)

    def test_invalid_parameters(self) -> None:
        with self.assertRaises(ValueError):
            build_alpha_lut(-1, 2)
        with self.assertRaises(ValueError):
            build_alpha_lut(256, 2)
        with self.assertRaises(ValueError):
            build_alpha_lut(22, 0)


class ExtractChromaKeyTests(unittest.TestCase):
    def test_key_color_becomes_transparent(self) -> None:
        out = extract_chroma_key(_strip([(128, 128, 128), (140, 128, 128), (128, 151, 128)]))
        alpha = out.pixels[0, :, 3].tolist()
        # d = 0, 12 (inside tolerance), 23 (mid ramp)
        self.assertEqual(alpha, [0, 0, 128])

    def test_distance_uses_largest_channel_difference(self) -> None:
        out = extract_chroma_key(_strip([(129, 100, 127), (0, 0, 0), (255, 255, 255)]))
        self.assertEqual(out.pixels[0, :, 3].tolist(), [255, 255, 255])

    def test_rgb_passes_through_and_source_untouched(self) -> None:
        src = _strip([(10, 20, 30), (128, 128, 128)])
        out = extract_chroma_key(src)
        self.assertTrue(np.array_equal(out.pixels[..., :3], src.pixels[..., :3]))
        self.assertEqual(src.pixels[0, 0, 3], 77)
        self.assertEqual(out.size, src.size)

    def test_custom_key_color(self) -> None:
        out = extract_chroma_key(_strip([(0, 255, 0), (128, 128, 128)]), key_color=(0, 255, 0), tolerance=10)
        self.assertEqual(out.pixels[0, :, 3].tolist(), [0, 255])

    def test_deterministic(self) -> None:
        rng = np.random.default_rng(3)
        arr = rng.integers(0, 256, size=(8, 9, 4), dtype=np.uint8)
        src = RasterImage(arr)
        self.assertEqual(extract_chroma_key(src), extract_chroma_key(src))


if __name__ == "__main__":
    unittest.main()
