import cv2
import numpy as np
import pytest

from alignment.frame_transformer import FrameTransformer
from alignment.star import Star
from alignment.star_map import Bounds, OffsetConfig, StarMap


def weighted_centroid(img):
    ys, xs = np.mgrid[0:img.shape[0], 0:img.shape[1]]
    total = img.sum()
    return float((xs * img).sum() / total), float((ys * img).sum() / total)


class TestFrameTransformer:

    def setup_method(self):
        self.transformer = FrameTransformer()

    def test_translation_moves_pixels(self):
        img = np.zeros((50, 60), dtype=np.float32)
        img[20, 10] = 1.0
        out = self.transformer.transform(img, OffsetConfig(3, -2, 0.0))
        assert out.shape == img.shape
        assert out.dtype == np.float32
        assert out[18, 13] == pytest.approx(1.0)
        assert out.sum() == pytest.approx(1.0)

    def test_uncovered_area_is_zero(self):
        img = np.ones((20, 20), dtype=np.float32)
        out = self.transformer.transform(img, OffsetConfig(5, 0, 0.0))
        assert (out[:, :5] == 0).all()
        assert np.allclose(out[:, 5:], 1.0)

    def test_pure_translation_matrix(self):
        matrix = FrameTransformer.affine_matrix(OffsetConfig(7, -4, 0.0), 100, 80)
        assert matrix.tolist() == [[1, 0, 7], [0, 1, -4]]

    def test_rotation_follows_star_map(self):
        img = np.zeros((101, 121), dtype=np.float32)
        img[50, 80] = 1.0
        img = cv2.GaussianBlur(img, (0, 0), 2.0)
        config = OffsetConfig(4, -3, 10.0)

        expected = StarMap(Bounds.from_shape(img.shape), (Star(80, 50, 1),)).offset(4, -3).rotate(10).stars[0]
        x, y = weighted_centroid(self.transformer.transform(img, config))
        assert x == pytest.approx(expected.x, abs=0.5)
        assert y == pytest.approx(expected.y, abs=0.5)

    def test_matrix_maps_points_like_star_map(self):
        config = OffsetConfig(-6, 2, -7.0)
        matrix = FrameTransformer.affine_matrix(config, 640, 480)
        bounds = Bounds(0, 0, 640, 480)
        for x, y in [(0, 0), (320, 240), (600, 17)]:
            star = StarMap(bounds, (Star(x, y),)).offset(config.x, config.y).rotate(config.rotation_degrees).stars[0]
            mapped = matrix @ np.float64([x, y, 1])
            assert mapped[0] == pytest.approx(star.x, abs=1e-6)
            assert mapped[1] == pytest.approx(star.y, abs=1e-6)

    @pytest.mark.parametrize("shape", [(30, 40, 3), (30, 40, 1), (30, 40, 6)])
    def test_keeps_channel_layout(self, shape):
        img = np.random.default_rng(1).random(shape).astype(np.float32)
        out = self.transformer.transform(img, OffsetConfig(1, 1, 2.0))
        assert out.shape == shape

    def test_integer_frames_become_float(self):
        img = np.full((10, 10), 255, dtype=np.uint8)
        out = self.transformer.transform(img, OffsetConfig(0, 0, 0.0))
        assert out.dtype == np.float32
        assert np.allclose(out, 1.0)
