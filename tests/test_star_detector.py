import numpy as np
import pytest

from alignment.errors import NoStarsDetectedError
from alignment.star_detector import StarDetector, auto_thresholds
from conftest import FIELD_STARS, make_star_field


class TestAutoThresholds:

    def test_ladder_runs_from_start_to_floor_in_hundredths(self):
        ladder = auto_thresholds()
        assert ladder[0] == 0.9
        assert ladder[-1] == 0.2
        assert len(ladder) == 71
        assert ladder[1] == 0.89
        assert all(a > b for a, b in zip(ladder, ladder[1:]))


class TestStarDetector:

    def setup_method(self):
        self.detector = StarDetector()

    def test_auto_threshold_stops_at_first_step_with_enough_pixels(self, star_field):
        star_map, threshold = self.detector.extract(star_field)
        assert threshold == 0.9
        assert len(star_map) == len(FIELD_STARS)
        assert {(s.x, s.y) for s in star_map.stars} == {(float(x), float(y)) for x, y in FIELD_STARS}
        assert all(s.size == pytest.approx(3.0) for s in star_map.stars)
        assert (star_map.bounds.width, star_map.bounds.height) == (80, 80)

    def test_auto_threshold_walks_down_for_dim_frames(self):
        _, threshold = self.detector.extract(make_star_field(value=0.5))
        assert threshold == 0.49

    def test_auto_threshold_reaches_floor_when_too_few_pixels(self):
        img = np.zeros((32, 32), dtype=np.float32)
        img[10, 12] = 1.0
        star_map, threshold = self.detector.extract(img)
        assert threshold == 0.2
        assert star_map.stars[0].x == 12.0
        assert star_map.stars[0].y == 10.0

    def test_black_frame_raises_with_threshold(self):
        with pytest.raises(NoStarsDetectedError) as excinfo:
            self.detector.extract(np.zeros((32, 32), dtype=np.float32))
        assert excinfo.value.threshold == 0.2

    def test_fixed_threshold_is_used_as_given(self):
        img = make_star_field(value=0.6)
        star_map, threshold = self.detector.extract(img, 0.5)
        assert threshold == 0.5
        assert len(star_map) == len(FIELD_STARS)
        with pytest.raises(NoStarsDetectedError):
            self.detector.extract(img, 0.95)

    def test_keeps_only_the_biggest_stars(self):
        img = np.zeros((64, 120), dtype=np.float32)
        for i in range(12):
            img[5, 5 + 9 * i] = 1.0
        img[40:43, 40:43] = 1.0
        star_map, _ = self.detector.extract(img, 0.5)
        assert len(star_map) == 10
        biggest = star_map.stars[0]
        assert (biggest.x, biggest.y) == (41.0, 41.0)
        assert biggest.size == pytest.approx(3.0)
        # equally sized stars stay in detection order
        assert [s.x for s in star_map.stars[1:]] == [5.0 + 9 * i for i in range(9)]

    def test_colour_frames_use_the_brightest_channel(self):
        img = np.zeros((40, 40, 3), dtype=np.float32)
        img[19:22, 9:12, 2] = 1.0
        img[5:8, 30:33, 0] = 1.0
        star_map, threshold = self.detector.extract(img)
        assert threshold == 0.9
        assert {(s.x, s.y) for s in star_map.stars} == {(10.0, 20.0), (31.0, 6.0)}

    def test_integer_frames_are_scaled(self):
        img = (make_star_field() * 255).astype(np.uint8)
        star_map, threshold = self.detector.extract(img)
        assert threshold == 0.9
        assert len(star_map) == len(FIELD_STARS)
