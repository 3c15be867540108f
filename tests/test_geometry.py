import unittest

from extractor.geometry import (
    SNAP_HORIZONTAL_MIDDLE,
    SNAP_TO_CORNERS,
    SNAP_TO_MIDDLE,
    SNAP_VERTICAL_MIDDLE,
    determine_crop,
    format_percent,
    is_empty,
    layer_geometry,
    snap_location,
)


class TestLayerGeometry(unittest.TestCase):

    def test_full_canvas_layer(self):
        geometry = layer_geometry((0, 0, 640, 480), (640, 480))
        self.assertEqual(geometry.width, 640)
        self.assertEqual(geometry.height, 480)
        self.assertEqual(
            (geometry.from_left, geometry.from_top, geometry.from_right, geometry.from_bottom),
            (0, 0, 0, 0),
        )
        self.assertEqual(geometry.snap, SNAP_TO_MIDDLE)

    def test_offsets_measure_room_to_each_edge(self):
        geometry = layer_geometry((10, 20, 110, 70), (200, 100))
        self.assertEqual((geometry.width, geometry.height), (100, 50))
        self.assertEqual(geometry.from_left, 10)
        self.assertEqual(geometry.from_top, 20)
        self.assertEqual(geometry.from_right, 90)
        self.assertEqual(geometry.from_bottom, 30)

    def test_outside_canvas_gives_negative_offsets(self):
        geometry = layer_geometry((-5, 0, 105, 50), (100, 100))
        self.assertEqual(geometry.from_left, -5)
        self.assertEqual(geometry.from_right, -5)

    def test_is_empty(self):
        self.assertTrue(is_empty((0, 0, 0, 0)))
        self.assertFalse(is_empty((0, 0, 1, 1)))
        self.assertFalse(is_empty((5, 5, 5, 5)))


class TestSnapLocation(unittest.TestCase):

    def test_vertical_middle_tie_break(self):
        # leftRight = 80 > 50, topBottom = 20 <= 50
        self.assertEqual(snap_location(100, 100, 10, 40, 90, 60), SNAP_VERTICAL_MIDDLE)

    def test_horizontal_middle(self):
        self.assertEqual(snap_location(100, 100, 40, 10, 60, 90), SNAP_HORIZONTAL_MIDDLE)

    def test_corners(self):
        self.assertEqual(snap_location(10, 10, 0, 0, 90, 90), SNAP_TO_CORNERS)

    def test_boundary_is_inclusive(self):
        # leftRight == width / 2 and topBottom == height / 2
        self.assertEqual(snap_location(20, 10, 0, 0, 10, 5), SNAP_TO_MIDDLE)

    def test_odd_extent_uses_true_division(self):
        # 5 <= 11 / 2 holds, 6 <= 11 / 2 does not
        self.assertEqual(snap_location(11, 11, 0, 0, 5, 6), SNAP_HORIZONTAL_MIDDLE)


class TestDetermineCrop(unittest.TestCase):

    def test_centered_layer(self):
        self.assertEqual(
            determine_crop((25, 25, 75, 75), (100, 100)),
            {"horizontal": "50%", "vertical": "50%"},
        )

    def test_off_center_layer(self):
        crop = determine_crop((0, 0, 50, 20), (200, 100))
        self.assertEqual(crop, {"horizontal": "12.5%", "vertical": "10%"})

    def test_fractional_percent(self):
        crop = determine_crop((0, 0, 100, 100), (300, 300))
        self.assertTrue(crop["horizontal"].startswith("16.66"))
        self.assertTrue(crop["horizontal"].endswith("%"))
        self.assertEqual(crop["horizontal"], crop["vertical"])

    def test_format_percent(self):
        self.assertEqual(format_percent(100.0), "100%")
        self.assertEqual(format_percent(0.5), "0.5%")


if __name__ == '__main__':
    unittest.main()
