import numpy as np
import pytest

from calibration.hot_pixel_removal import HotPixelRemoval


def flat(value, shape=(10, 10)):
    return np.full(shape, value, dtype=np.float32)


class TestHotPixelRemoval:

    def test_neighbour_average_ignores_out_of_bounds(self):
        img = flat(0.5)
        img[4, 4] = 0.9
        average = HotPixelRemoval.neighbour_average(img)
        assert np.isclose(average[0, 0], 0.5)
        assert np.isclose(average[4, 4], 0.5)
        assert np.isclose(average[4, 5], (7 * 0.5 + 0.9) / 8)

    def test_hot_pixel_replaced_by_neighbours(self):
        img = flat(0.2)
        img[5, 5] = 0.8
        corrected = HotPixelRemoval.remove_hot_pixels(img)
        assert np.allclose(corrected, 0.2)

    def test_cold_pixel_replaced_by_neighbours(self):
        img = flat(0.6)
        img[3, 7] = 0.0
        corrected = HotPixelRemoval.remove_hot_pixels(img)
        assert np.allclose(corrected, 0.6)

    def test_corner_pixel_uses_existing_neighbours_only(self):
        img = flat(0.5)
        img[0, 0] = 0.0
        corrected = HotPixelRemoval.remove_hot_pixels(img)
        assert np.isclose(corrected[0, 0], 0.5)

    def test_smooth_gradient_untouched(self):
        img = np.tile(np.linspace(0.0, 1.0, 20, dtype=np.float32), (20, 1))
        corrected = HotPixelRemoval.remove_hot_pixels(img)
        assert np.array_equal(corrected, img)

    def test_single_channel_outlier_replaces_whole_pixel(self):
        img = flat(0.2, (10, 10, 3))
        img[5, 5] = (0.2, 0.8, 0.2)
        corrected = HotPixelRemoval.remove_hot_pixels(img)
        assert corrected.shape == (10, 10, 3)
        assert np.allclose(corrected, 0.2)

    def test_input_left_unmodified(self):
        img = flat(0.2)
        img[5, 5] = 0.8
        HotPixelRemoval.remove_hot_pixels(img)
        assert img[5, 5] == pytest.approx(0.8)

    def test_larger_delta_keeps_pixel(self):
        img = flat(0.2)
        img[5, 5] = 0.8
        corrected = HotPixelRemoval.remove_hot_pixels(img, delta=0.7)
        assert corrected[5, 5] == pytest.approx(0.8)

    def test_single_channel_axis_is_kept(self):
        img = flat(0.2, (10, 10, 1))
        img[5, 5, 0] = 0.8
        corrected = HotPixelRemoval.remove_hot_pixels(img)
        assert corrected.shape == (10, 10, 1)
        assert np.allclose(corrected, 0.2)
