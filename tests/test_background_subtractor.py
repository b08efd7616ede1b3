import numpy as np
import pytest

from background.background_subtractor import BackgroundSubtractor
from conftest import make_star_field


class TestBackgroundSubtractor:

    def test_flat_glow_is_the_mask(self):
        img = np.full((30, 40, 3), 0.25, dtype=np.float32)
        mask = BackgroundSubtractor.estimate_light_pollution_mask(img)
        assert mask.shape == img.shape
        assert np.allclose(mask, 0.25, atol=1e-5)

    def test_glow_removed_stars_kept(self):
        img = 0.3 + 0.7 * make_star_field()
        mask = BackgroundSubtractor.estimate_light_pollution_mask(img)
        corrected = BackgroundSubtractor.subtract_background(img, mask)

        assert corrected[0:5, 0:5].max() < 0.02
        assert corrected[14, 12] > 0.6

    def test_gradient_mostly_removed(self):
        img = np.tile(np.linspace(0.1, 0.5, 60, dtype=np.float32), (60, 1))
        mask = BackgroundSubtractor.estimate_light_pollution_mask(img)
        corrected = BackgroundSubtractor.subtract_background(img, mask)
        assert corrected.min() >= 0.0
        assert corrected.mean() < 0.05

    def test_batch_uses_reference_mask(self):
        frames = [np.full((12, 12), 0.2, dtype=np.float32), np.full((12, 12), 0.5, dtype=np.float32)]
        corrected = BackgroundSubtractor.subtract_background_batch(frames)
        assert np.allclose(corrected[0], 0.0, atol=1e-5)
        assert np.allclose(corrected[1], 0.3, atol=1e-5)

    def test_batch_of_nothing(self):
        assert BackgroundSubtractor.subtract_background_batch([]) == []

    def test_mask_shape_mismatch(self):
        with pytest.raises(ValueError):
            BackgroundSubtractor.subtract_background(np.zeros((8, 8)), np.zeros((8, 8, 3), dtype=np.float32))

    def test_invalid_grid(self):
        with pytest.raises(ValueError):
            BackgroundSubtractor.estimate_light_pollution_mask(np.zeros((8, 8), dtype=np.float32), grid=0)
