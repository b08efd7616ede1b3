import numpy as np
from typing import List, Optional, Tuple

from config import (
    AUTO_THRESHOLD_START,
    AUTO_THRESHOLD_STEP,
    AUTO_THRESHOLD_FLOOR,
    MIN_RAW_STAR_POINTS,
    MAX_STARS_PER_MAP,
)
from logger.backend_logger import backend_logger
from utils import ImageUtils
from alignment.errors import NoStarsDetectedError
from alignment.star import Star
from alignment.star_clusterer import StarClusterer
from alignment.star_map import Bounds, StarMap


def auto_thresholds(
    start: float = AUTO_THRESHOLD_START,
    step: float = AUTO_THRESHOLD_STEP,
    floor: float = AUTO_THRESHOLD_FLOOR,
) -> List[float]:
    """Descending threshold ladder from start to floor (inclusive), free of float drift."""
    start_i = int(round(start / step))
    floor_i = int(round(floor / step))
    return [round(i * step, 6) for i in range(start_i, floor_i - 1, -1)]


class StarDetector:
    """
    Extracts a star map from a frame by brightness thresholding.

    Every pixel whose HSV value (brightest colour channel) exceeds the threshold
    becomes a size-1 raw star; raw stars are clustered and only the biggest
    clusters are kept. A threshold of 0 picks one automatically: the threshold is
    lowered step by step until enough bright pixels are found. The threshold that
    was used is returned so the remaining frames of a session can be scanned
    with exactly the same one.
    """

    def __init__(
        self,
        min_raw_points: int = MIN_RAW_STAR_POINTS,
        max_stars: int = MAX_STARS_PER_MAP,
        clusterer: Optional[StarClusterer] = None,
    ):
        self.min_raw_points = min_raw_points
        self.max_stars = max_stars
        self.clusterer = clusterer or StarClusterer()

    def extract(self, image: np.ndarray, threshold: float = 0.0) -> Tuple[StarMap, float]:
        """
        Args:
            image (np.ndarray): Frame as grayscale (H, W) or colour (H, W, C), any dtype.
                                Floats are expected in the 0-1 range.
            threshold (float): Brightness threshold in 0-1, or 0 for auto detection.

        Returns:
            Tuple[StarMap, float]: The pruned star map and the threshold used.

        Raises:
            NoStarsDetectedError: If no pixel is brighter than the (final) threshold.
        """
        value = ImageUtils.value_channel(image)
        bounds = Bounds.from_shape(value.shape)

        if threshold == 0:
            ys, xs, threshold = self._scan_auto(value)
        else:
            ys, xs = self._scan(value, threshold)

        if len(xs) == 0:
            backend_logger.warning(f"No pixel brighter than threshold {threshold:.2f}.")
            raise NoStarsDetectedError(
                f"No stars detected at brightness threshold {threshold:.2f}.", threshold=threshold
            )

        raw = StarMap(bounds, tuple(Star(float(x), float(y), 1.0) for x, y in zip(xs, ys)))
        compressed = self.clusterer.compress(raw)

        # Stable sort keeps cluster order between equally sized stars
        biggest = sorted(compressed.stars, key=lambda s: s.size, reverse=True)[:self.max_stars]
        backend_logger.info(
            f"Found {len(xs)} bright pixels in {len(compressed)} stars at threshold {threshold:.2f}, "
            f"keeping {len(biggest)}."
        )
        return compressed.with_stars(biggest), threshold

    @staticmethod
    def _scan(value: np.ndarray, threshold: float) -> Tuple[np.ndarray, np.ndarray]:
        # np.nonzero walks row-major, i.e. y outer and x inner
        return np.nonzero(value > threshold)

    def _scan_auto(self, value: np.ndarray) -> Tuple[np.ndarray, np.ndarray, float]:
        ys = xs = np.empty(0, dtype=np.intp)
        used = AUTO_THRESHOLD_START
        for used in auto_thresholds():
            ys, xs = self._scan(value, used)
            backend_logger.debug(f"Threshold {used:.2f}: {len(xs)} bright pixels.")
            if len(xs) >= self.min_raw_points:
                break
        return ys, xs, used
