import unittest

from detkit.letterbox import compute_letterbox
from detkit.mapping import LetterboxTransform, ResizeTransform, map_to_image
from detkit.types import CoordinateSpace, Detection, LetterboxParams


def _det(x: float, y: float, w: float, h: float, conf: float = 0.9, label: str = "person") -> Detection:
    return Detection(x=x, y=y, width=w, height=h, label=label, confidence=conf, class_id=0)


class TestResizeTransform(unittest.TestCase):
    def test_independent_axis_scale(self) -> None:
        transform = ResizeTransform(orig_width=1280, orig_height=960, model_width=640, model_height=640)
        out = map_to_image([_det(10, 20, 30, 40)], transform)
        self.assertEqual(len(out), 1)
        det = out[0]
        self.assertEqual((det.x, det.y, det.width, det.height), (20.0, 30.0, 60.0, 60.0))
        self.assertIs(det.space, CoordinateSpace.IMAGE)
        self.assertEqual(det.label, "person")
        self.assertEqual(det.confidence, 0.9)
        self.assertEqual(det.class_id, 0)

    def test_invalid_extents_yield_nothing(self) -> None:
        self.assertEqual(map_to_image([_det(1, 1, 1, 1)], ResizeTransform(0, 960, 640, 640)), [])
        self.assertEqual(map_to_image([_det(1, 1, 1, 1)], ResizeTransform(1280, 960, 640, 0)), [])


class TestLetterboxTransform(unittest.TestCase):
    def test_removes_padding_then_scales(self) -> None:
        transform = LetterboxTransform.fit(1280, 720, 640, 640)
        det = map_to_image([_det(100, 240, 50, 60)], transform)[0]
        self.assertEqual((det.x, det.y, det.width, det.height), (200.0, 200.0, 100.0, 120.0))
        self.assertIs(det.space, CoordinateSpace.IMAGE)

    def test_fit_rejects_empty_frames(self) -> None:
        self.assertIsNone(LetterboxTransform.fit(0, 720, 640, 640))

    def test_zero_or_negative_scale_yields_nothing(self) -> None:
        for scale in (0.0, -0.5, float("nan")):
            transform = LetterboxTransform(1280, 720, LetterboxParams(scale=scale, pad_x=0, pad_y=140))
            self.assertEqual(map_to_image([_det(1, 1, 1, 1)], transform), [])

    def test_full_letterboxed_content_maps_to_full_image(self) -> None:
        params = compute_letterbox(1280, 720, 640, 640)
        transform = LetterboxTransform(1280, 720, params)
        det = map_to_image(
            [_det(params.pad_x, params.pad_y, params.resized_width, params.resized_height)], transform
        )[0]
        self.assertEqual((det.x, det.y, det.width, det.height), (0.0, 0.0, 1280.0, 720.0))


class TestMapToImage(unittest.TestCase):
    def test_inverses_are_not_interchangeable(self) -> None:
        det = _det(100, 240, 50, 60)
        letterboxed = map_to_image([det], LetterboxTransform.fit(1280, 720, 640, 640))[0]
        resized = map_to_image([det], ResizeTransform(1280, 720, 640, 640))[0]
        self.assertNotEqual(letterboxed.as_xyxy(), resized.as_xyxy())

    def test_image_space_input_is_rejected(self) -> None:
        transform = ResizeTransform(1280, 720, 640, 640)
        once = map_to_image([_det(1, 2, 3, 4)], transform)
        with self.assertRaises(ValueError):
            map_to_image(once, transform)

    def test_order_is_preserved(self) -> None:
        dets = [_det(0, 0, 1, 1, conf=0.9, label="a"), _det(5, 5, 1, 1, conf=0.8, label="b")]
        out = map_to_image(dets, ResizeTransform(640, 640, 640, 640))
        self.assertEqual([d.label for d in out], ["a", "b"])

    def test_clip_to_image_bounds(self) -> None:
        transform = ResizeTransform(1280, 720, 640, 640)
        det = map_to_image([_det(-10, 600, 100, 100)], transform, clip=True)[0]
        self.assertEqual((det.x, det.y), (0.0, 675.0))
        self.assertEqual((det.width, det.height), (180.0, 45.0))

    def test_empty(self) -> None:
        self.assertEqual(map_to_image([], ResizeTransform(1, 1, 1, 1)), [])


if __name__ == "__main__":
    unittest.main()
