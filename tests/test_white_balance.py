import numpy as np

from merging.white_balance import WhiteBalancer


def tinted(r, g, b, shape=(6, 6)):
    img = np.zeros(shape + (3,), dtype=np.float32)
    img[..., 0], img[..., 1], img[..., 2] = r, g, b
    return img


class TestWhiteBalancer:

    def test_channel_means_meet_in_the_middle(self):
        balanced = WhiteBalancer.gray_world(tinted(0.2, 0.3, 0.4))
        assert np.allclose(balanced, 0.3)

    def test_shift_keeps_contrast(self):
        img = tinted(0.2, 0.3, 0.4)
        img[2, 2] += 0.3
        balanced = WhiteBalancer.gray_world(img)
        # Additive correction: differences inside a channel survive unchanged
        assert np.allclose(balanced[2, 2] - balanced[0, 0], 0.3)

    def test_result_clamped(self):
        img = tinted(0.0, 0.0, 0.9)
        img[0, 0] = (1.0, 0.0, 0.9)
        balanced = WhiteBalancer.gray_world(img)
        assert balanced.min() >= 0.0
        assert balanced.max() <= 1.0
        assert balanced[0, 0, 0] == 1.0

    def test_grayscale_unchanged(self):
        img = np.full((4, 4), 0.4, dtype=np.float32)
        assert np.array_equal(WhiteBalancer.gray_world(img), img)
