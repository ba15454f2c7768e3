from __future__ import annotations

import unittest

import numpy as np

from overlay_core.crop import display_selection, perform_crop, plan_crop
from overlay_core.raster import RasterImage
from overlay_core.state import TransformState


def _gradient(width: int, height: int) -> RasterImage:
    arr = np.zeros((height, width, 4), dtype=np.uint8)
    arr[..., 0] = np.arange(width, dtype=np.uint8)[None, :]
    arr[..., 1] = np.arange(height, dtype=np.uint8)[:, None]
    arr[..., 3] = 255
    return RasterImage(arr)


class PlanCropTests(unittest.TestCase):
    def test_full_box_is_identity(self) -> None:
        overlay = _gradient(100, 50)
        t = TransformState(x=30, y=40, scale=1.5, angle_deg=20.0)
        result = perform_crop((-50, -25), (50, 25), t, overlay, 1000, 1000)
        self.assertIsNotNone(result)
        cropped, new_t = result
        self.assertEqual(cropped, overlay)
        self.assertAlmostEqual(new_t.x, t.x)
        self.assertAlmostEqual(new_t.y, t.y)

    def test_corner_order_does_not_matter(self) -> None:
        t = TransformState(x=100, y=100)
        a = plan_crop((-10, -5), (20, 15), t, 100, 50, 1000, 1000)
        b = plan_crop((20, 15), (-10, -5), t, 100, 50, 1000, 1000)
        self.assertEqual(a, b)
        self.assertEqual(a.box, (40, 20, 70, 40))

    def test_fractional_edges_round_outwards(self) -> None:
        t = TransformState()
        plan = plan_crop((-10.4, -5.6), (9.2, 4.1), t, 100, 50, 1000, 1000)
        self.assertEqual(plan.box, (39, 19, 60, 30))

    def test_selection_clipped_to_overlay(self) -> None:
        t = TransformState()
        plan = plan_crop((-80, -40), (10, 5), t, 100, 50, 1000, 1000)
        self.assertEqual(plan.box, (0, 0, 60, 30))

    def test_zero_area_aborts(self) -> None:
        t = TransformState()
        self.assertIsNone(plan_crop((3, 3), (3, 10), t, 100, 50, 1000, 1000))
        self.assertIsNone(plan_crop((60, 0), (80, 10), t, 100, 50, 1000, 1000))

    def test_flip_h_mirrors_selection_into_storage(self) -> None:
        t = TransformState(flip_h=True)
        # Right half on screen is the left half of the stored pixels
        plan = plan_crop((0, -25), (50, 25), t, 100, 50, 1000, 1000)
        self.assertEqual(plan.box, (0, 0, 50, 50))

    def test_flip_v_mirrors_selection_into_storage(self) -> None:
        t = TransformState(flip_v=True)
        plan = plan_crop((-50, -25), (50, -5), t, 100, 50, 1000, 1000)
        self.assertEqual(plan.box, (0, 30, 100, 50))

    def test_crop_stays_visually_anchored(self) -> None:
        t = TransformState(x=100, y=100, scale=2.0)
        # Old center (200, 150); selection center (20, 10) in unscaled space
        plan = plan_crop((10, 5), (30, 15), t, 100, 50, 1000, 1000)
        self.assertEqual(plan.box, (60, 30, 80, 40))
        cx, cy = plan.transform.center(plan.width, plan.height)
        self.assertAlmostEqual(cx, 240.0)
        self.assertAlmostEqual(cy, 170.0)

    def test_anchor_shift_follows_rotation(self) -> None:
        t = TransformState(x=100, y=100, angle_deg=90.0)
        plan = plan_crop((10, -5), (30, 5), t, 100, 50, 1000, 1000)
        cx, cy = plan.transform.center(plan.width, plan.height)
        # Crop center (20, 0) rotated clockwise by 90 -> (0, 20)
        self.assertAlmostEqual(cx, 150.0)
        self.assertAlmostEqual(cy, 145.0)

    def test_result_clamped_into_background(self) -> None:
        t = TransformState(x=0, y=0)
        plan = plan_crop((-50, -25), (-40, -15), t, 100, 50, 200, 200)
        self.assertGreaterEqual(plan.transform.x, 0.0)
        self.assertGreaterEqual(plan.transform.y, 0.0)

    def test_pixels_extracted(self) -> None:
        overlay = _gradient(100, 50)
        cropped, _ = perform_crop((-10, -5), (20, 15), TransformState(), overlay, 1000, 1000)
        self.assertEqual(cropped.size, (30, 20))
        self.assertEqual(int(cropped.pixels[0, 0, 0]), 40)
        self.assertEqual(int(cropped.pixels[0, 0, 1]), 20)


class DisplaySelectionTests(unittest.TestCase):
    def test_scaled_and_normalized(self) -> None:
        t = TransformState(scale=2.0, flip_h=True)
        self.assertEqual(display_selection((5, 4), (-3, -1), t), (-6.0, -2.0, 10.0, 8.0))


if __name__ == "__main__":
    unittest.main()
