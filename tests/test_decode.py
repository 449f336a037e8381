import unittest

import numpy as np

from detkit.catalog import ClassCatalog
from detkit.decode import BoxEncoding, decode_boxes, select_encoding
from detkit.layout import resolve_layout
from detkit.types import CoordinateSpace, RawOutputTensor, TensorLayout


def _decode(arr: np.ndarray, threshold: float, **kwargs):
    output = RawOutputTensor.from_array(arr)
    layout = resolve_layout(output.shape)
    return decode_boxes(output, layout, threshold, catalog=ClassCatalog.coco(), **kwargs)


class TestSelectEncoding(unittest.TestCase):
    def test_six_attributes_is_pre_suppressed_for_both_layouts(self) -> None:
        for boxes_first in (True, False):
            layout = TensorLayout(num_boxes=300, elem_per_box=6, boxes_first=boxes_first)
            self.assertIs(select_encoding(layout), BoxEncoding.PRE_SUPPRESSED)

    def test_per_layout_default(self) -> None:
        self.assertIs(select_encoding(TensorLayout(8400, 85, True)), BoxEncoding.OBJECTNESS)
        self.assertIs(select_encoding(TensorLayout(8400, 84, False)), BoxEncoding.CLASS_SCORES)

    def test_objectness_override(self) -> None:
        self.assertIs(select_encoding(TensorLayout(8400, 84, False), objectness=True), BoxEncoding.OBJECTNESS)
        self.assertIs(select_encoding(TensorLayout(8400, 85, True), objectness=False), BoxEncoding.CLASS_SCORES)
        # six attributes stay pre-suppressed whatever the override says
        self.assertIs(select_encoding(TensorLayout(300, 6, True), objectness=True), BoxEncoding.PRE_SUPPRESSED)

    def test_too_few_attributes(self) -> None:
        for elem in (1, 3, 4, 5):
            self.assertIsNone(select_encoding(TensorLayout(100, elem, True)))
            self.assertIsNone(select_encoding(TensorLayout(100, elem, False)))


class TestPreSuppressedDecode(unittest.TestCase):
    def _output(self) -> np.ndarray:
        p = np.zeros((1, 300, 6), dtype=np.float32)
        p[0, 0] = [10, 10, 50, 60, 0.9, 3]
        return p

    def test_decodes_corner_box(self) -> None:
        result = _decode(self._output(), 0.5)
        self.assertIs(result.encoding, BoxEncoding.PRE_SUPPRESSED)
        self.assertFalse(result.needs_suppression)
        self.assertEqual(len(result.detections), 1)

        det = result.detections[0]
        self.assertEqual((det.x, det.y, det.width, det.height), (10.0, 10.0, 40.0, 50.0))
        self.assertAlmostEqual(det.confidence, 0.9, places=5)
        self.assertEqual(det.class_id, 3)
        self.assertEqual(det.label, "motorcycle")
        self.assertIs(det.space, CoordinateSpace.MODEL)

    def test_below_threshold_is_dropped(self) -> None:
        self.assertEqual(_decode(self._output(), 0.95).detections, [])

    def test_channel_first_rows(self) -> None:
        p = np.zeros((1, 6, 20), dtype=np.float32)
        p[0, :, 4] = [10, 10, 50, 60, 0.9, 3]
        result = _decode(p, 0.5)
        self.assertEqual(len(result.detections), 1)
        self.assertEqual(result.detections[0].as_xyxy(), (10.0, 10.0, 50.0, 60.0))

    def test_unknown_class_gets_synthetic_label(self) -> None:
        p = self._output()
        p[0, 0, 5] = 85
        self.assertEqual(_decode(p, 0.5).detections[0].label, "cls_85")


class TestClassScoreDecode(unittest.TestCase):
    def test_center_box_best_class(self) -> None:
        # (1, 4 + 3, N): [cx, cy, w, h, c0, c1, c2]
        p = np.zeros((1, 7, 16), dtype=np.float32)
        p[0, :, 0] = [100, 100, 40, 40, 0.1, 0.8, 0.05]
        result = _decode(p, 0.5)

        self.assertIs(result.encoding, BoxEncoding.CLASS_SCORES)
        self.assertTrue(result.needs_suppression)
        self.assertEqual(len(result.detections), 1)
        det = result.detections[0]
        self.assertEqual((det.x, det.y, det.width, det.height), (80.0, 80.0, 40.0, 40.0))
        self.assertEqual(det.class_id, 1)
        self.assertEqual(det.label, "bicycle")
        self.assertAlmostEqual(det.confidence, 0.8, places=5)

    def test_threshold_is_inclusive(self) -> None:
        p = np.zeros((1, 7, 16), dtype=np.float32)
        p[0, :, 0] = [100, 100, 40, 40, 0.0, 0.5, 0.0]
        self.assertEqual(len(_decode(p, 0.5).detections), 1)

    def test_ties_keep_lowest_class_index(self) -> None:
        p = np.zeros((1, 7, 16), dtype=np.float32)
        p[0, :, 0] = [100, 100, 40, 40, 0.6, 0.6, 0.2]
        self.assertEqual(_decode(p, 0.5).detections[0].class_id, 0)

    def test_no_positive_score_yields_class_minus_one(self) -> None:
        p = np.zeros((1, 7, 16), dtype=np.float32)
        p[0, :4, :] = 10
        result = _decode(p, 0.0)
        self.assertEqual(len(result.detections), 16)
        det = result.detections[0]
        self.assertEqual(det.class_id, -1)
        self.assertEqual(det.label, "cls_-1")
        self.assertEqual(det.confidence, 0.0)

    def test_non_finite_rows_are_dropped(self) -> None:
        p = np.zeros((1, 7, 16), dtype=np.float32)
        p[0, :, 0] = [100, 100, 40, 40, 0.1, 0.8, 0.05]
        p[0, :, 1] = [np.nan, 100, 40, 40, 0.1, 0.9, 0.05]
        p[0, :, 2] = [100, 100, np.inf, 40, 0.1, 0.9, 0.05]
        result = _decode(p, 0.5)
        self.assertEqual(len(result.detections), 1)
        self.assertTrue(result.detections[0].is_finite())


class TestObjectnessDecode(unittest.TestCase):
    def _output(self, objectness: float) -> np.ndarray:
        # (1, N, 5 + 3): [cx, cy, w, h, obj, c0, c1, c2]
        p = np.zeros((1, 20, 8), dtype=np.float32)
        p[0, 0] = [100, 100, 40, 40, objectness, 0.1, 0.8, 0.05]
        return p

    def test_center_box_best_class(self) -> None:
        result = _decode(self._output(1.0), 0.5)
        self.assertIs(result.encoding, BoxEncoding.OBJECTNESS)
        self.assertEqual(len(result.detections), 1)
        det = result.detections[0]
        self.assertEqual((det.x, det.y, det.width, det.height), (80.0, 80.0, 40.0, 40.0))
        self.assertEqual(det.class_id, 1)
        self.assertAlmostEqual(det.confidence, 0.8, places=5)

    def test_overflowing_score_row_is_dropped(self) -> None:
        p = self._output(1.0)
        p[0, 1] = [200, 200, 40, 40, 1e30, 1e30, 0, 0]
        result = _decode(p, 0.5)
        self.assertEqual(len(result.detections), 1)
        self.assertEqual(result.detections[0].class_id, 1)
        self.assertTrue(all(np.isfinite(d.confidence) for d in result.detections))

    def test_score_is_objectness_times_class(self) -> None:
        result = _decode(self._output(0.75), 0.5)
        self.assertAlmostEqual(result.detections[0].confidence, 0.6, places=5)
        self.assertEqual(_decode(self._output(0.5), 0.5).detections, [])

    def test_same_values_decode_differently_per_layout(self) -> None:
        box = np.array([100, 100, 40, 40, 0.5, 0.1, 0.8, 0.05], dtype=np.float32)

        box_first = np.zeros((1, 20, 8), dtype=np.float32)
        box_first[0, 0] = box
        channel_first = np.zeros((1, 8, 20), dtype=np.float32)
        channel_first[0, :, 0] = box

        # box-first reads column 4 as objectness: 0.5 * 0.8
        det_bf = _decode(box_first, 0.3).detections[0]
        self.assertEqual(det_bf.class_id, 1)
        self.assertAlmostEqual(det_bf.confidence, 0.4, places=5)

        # channel-first reads column 4 as class 0, so 0.8 is class 2
        det_cf = _decode(channel_first, 0.3).detections[0]
        self.assertEqual(det_cf.class_id, 2)
        self.assertAlmostEqual(det_cf.confidence, 0.8, places=5)

        forced = _decode(channel_first, 0.3, objectness=True).detections[0]
        self.assertEqual(forced.class_id, 1)
        self.assertAlmostEqual(forced.confidence, 0.4, places=5)


class TestMalformedOutputs(unittest.TestCase):
    def test_three_attributes_box_first(self) -> None:
        p = np.ones((1, 10, 3), dtype=np.float32)
        result = _decode(p, 0.0)
        self.assertEqual(result.detections, [])
        self.assertIsNone(result.encoding)

    def test_five_attributes(self) -> None:
        p = np.ones((1, 10, 5), dtype=np.float32)
        self.assertEqual(_decode(p, 0.0).detections, [])

    def test_buffer_shorter_than_shape(self) -> None:
        output = RawOutputTensor(data=np.ones(10, dtype=np.float32), shape=(1, 84, 8400))
        layout = resolve_layout(output.shape)
        result = decode_boxes(output, layout, 0.25)
        self.assertEqual(result.detections, [])
        self.assertFalse(result.needs_suppression)


if __name__ == "__main__":
    unittest.main()
