import math
from dataclasses import dataclass, replace

import numpy as np


def overlap_from_distance(distance, size_sum) -> np.ndarray:
    """
    Vectorised star overlap given centre distances and summed star sizes.

    A distance of zero is a full overlap (1.0), a distance larger than the summed
    sizes is no overlap (0.0) and anything in between scores size_sum / distance.
    The score is not a normalised fraction: it exceeds 1.0 for stars that nearly,
    but not exactly, coincide.
    """
    distance = np.asarray(distance, dtype=np.float64)
    size_sum = np.asarray(size_sum, dtype=np.float64)
    with np.errstate(divide='ignore', invalid='ignore'):
        ratio = size_sum / distance
    return np.where(distance == 0, 1.0, np.where(distance > size_sum, 0.0, ratio))


@dataclass(frozen=True)
class Star:
    """A clustered bright blob: centroid in image pixels plus a radius-like size."""

    x: float
    y: float
    size: float = 1.0

    def __post_init__(self):
        if not all(math.isfinite(v) for v in (self.x, self.y, self.size)):
            raise ValueError(f"Star position and size must be finite, got ({self.x}, {self.y}, {self.size}).")
        if self.size < 0:
            raise ValueError(f"Star size must be non-negative, got {self.size}.")

    def distance_to(self, x: float, y: float) -> float:
        dx = self.x - x
        dy = self.y - y
        return math.sqrt(dx * dx + dy * dy)

    def overlap(self, other: "Star") -> float:
        d = self.distance_to(other.x, other.y)
        if d == 0:
            return 1.0
        size_sum = self.size + other.size
        if d > size_sum:
            return 0.0
        return size_sum / d

    def inflate(self, amount: float) -> "Star":
        return replace(self, size=self.size + amount)

    def is_neighbor(self, other: "Star", inflation: float = 1.0) -> bool:
        """True if this star, grown by `inflation`, touches `other`."""
        return self.inflate(inflation).overlap(other) > 0

    def intersects(self, x: float, y: float) -> bool:
        return self.distance_to(x, y) - self.size < 0

    def translated(self, dx: float, dy: float) -> "Star":
        return replace(self, x=self.x + dx, y=self.y + dy)
