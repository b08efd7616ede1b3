from dataclasses import dataclass
from typing import Iterable, Tuple

import numpy as np
from astropy.table import Table
from scipy.spatial.distance import cdist

from alignment.errors import BoundsMismatchError, NoStarsDetectedError
from alignment.star import Star, overlap_from_distance

BACKGROUND_COLOR = (255, 255, 255)
STAR_COLOR = (0, 0, 0)
AGREE_COLOR = (0, 255, 0)
DISAGREE_COLOR = (255, 0, 0)


def rotation_terms(degrees):
    """Returns (cos, sin) for rotation angles in degrees; scalar or array input."""
    angle = np.asarray(degrees, dtype=np.float64) * np.pi / 180.0
    return np.cos(angle), np.sin(angle)


@dataclass(frozen=True)
class Bounds:
    """Frame rectangle in pixel coordinates; max values are exclusive."""

    min_x: int
    min_y: int
    max_x: int
    max_y: int

    @classmethod
    def from_shape(cls, shape: Tuple[int, ...]) -> "Bounds":
        height, width = shape[:2]
        return cls(0, 0, int(width), int(height))

    @property
    def width(self) -> int:
        return self.max_x - self.min_x

    @property
    def height(self) -> int:
        return self.max_y - self.min_y

    @property
    def center(self) -> Tuple[float, float]:
        # Rotation pivot; frames always start at the origin
        return self.max_x / 2.0, self.max_y / 2.0


@dataclass(frozen=True)
class OffsetConfig:
    """Rigid correction found by the offset search: translate by (x, y), then rotate."""

    x: int
    y: int
    rotation_degrees: float = 0.0

    def to_dict(self) -> dict:
        return {"x": self.x, "y": self.y, "rotation_degrees": self.rotation_degrees}


@dataclass(frozen=True)
class StarMap:
    """
    The star-pattern fingerprint of one frame.

    Instances are immutable: `offset` and `rotate` return new maps and never touch
    the stars of the map they were called on.
    """

    bounds: Bounds
    stars: Tuple[Star, ...] = ()

    def __post_init__(self):
        # Accept any iterable of stars but always store a tuple
        object.__setattr__(self, "stars", tuple(self.stars))

    def __len__(self) -> int:
        return len(self.stars)

    def with_stars(self, stars: Iterable[Star]) -> "StarMap":
        return StarMap(self.bounds, tuple(stars))

    def points(self) -> np.ndarray:
        """(N, 2) float64 array of star centroids."""
        if not self.stars:
            return np.empty((0, 2), dtype=np.float64)
        return np.array([(s.x, s.y) for s in self.stars], dtype=np.float64)

    def sizes(self) -> np.ndarray:
        return np.array([s.size for s in self.stars], dtype=np.float64)

    def check_comparable(self, other: "StarMap") -> None:
        if self.bounds != other.bounds:
            raise BoundsMismatchError(
                f"Cannot compare star maps with different bounds: {self.bounds} vs {other.bounds}."
            )

    def offset(self, dx: float, dy: float) -> "StarMap":
        return self.with_stars(s.translated(dx, dy) for s in self.stars)

    def rotate(self, degrees: float) -> "StarMap":
        """Rotates every star about the frame centre (clockwise on screen for positive degrees)."""
        cos_a, sin_a = (float(v) for v in rotation_terms(degrees))
        cx, cy = self.bounds.center

        rotated = []
        for s in self.stars:
            x, y = s.x, s.y
            rotated.append(Star(
                x=cos_a * (x - cx) - sin_a * (y - cy) + cx,
                y=sin_a * (x - cx) + cos_a * (y - cy) + cy,
                size=s.size,
            ))
        return self.with_stars(rotated)

    def intersects(self, x: float, y: float) -> bool:
        return any(s.intersects(x, y) for s in self.stars)

    def intersection_mask(self) -> np.ndarray:
        """Boolean (height, width) mask of pixels lying inside any star."""
        ys, xs = np.mgrid[self.bounds.min_y:self.bounds.max_y, self.bounds.min_x:self.bounds.max_x]
        xs = xs.astype(np.float64)
        ys = ys.astype(np.float64)
        mask = np.zeros(xs.shape, dtype=bool)
        for s in self.stars:
            dx = s.x - xs
            dy = s.y - ys
            mask |= np.sqrt(dx * dx + dy * dy) - s.size < 0
        return mask

    def map_overlap(self, other: "StarMap") -> float:
        """Sum of all pairwise star overlaps divided by the number of stars in this map."""
        self.check_comparable(other)
        if not self.stars:
            raise NoStarsDetectedError("Cannot compute the overlap of an empty star map.")
        if not other.stars:
            return 0.0
        overlaps = _pairwise_overlap(self, other)
        return float(overlaps.sum() / len(self.stars))

    def to_table(self) -> Table:
        return Table(
            {
                'xcentroid': [s.x for s in self.stars],
                'ycentroid': [s.y for s in self.stars],
                'size': [s.size for s in self.stars],
            }
        )

    def to_image(self) -> np.ndarray:
        """Renders the map as an RGB uint8 raster: black stars on a white background."""
        mask = self.intersection_mask()
        img = np.empty(mask.shape + (3,), dtype=np.uint8)
        img[:] = BACKGROUND_COLOR
        img[mask] = STAR_COLOR
        return img


def _pairwise_overlap(a: StarMap, b: StarMap) -> np.ndarray:
    distances = cdist(a.points(), b.points())
    size_sum = a.sizes()[:, None] + b.sizes()[None, :]
    return overlap_from_distance(distances, size_sum)


@dataclass(frozen=True)
class StarMapPair:
    """A (reference, candidate) pair of star maps borrowed for scoring and diagnostics."""

    reference: StarMap
    candidate: StarMap

    def __post_init__(self):
        self.reference.check_comparable(self.candidate)

    def best_pair_overlap(self) -> float:
        """
        The highest overlap of any single (reference star, candidate star) pair.

        This is the objective the offset search maximises. It rewards one good
        star match rather than overall pattern congruence, so a single bright
        star can win over the true global alignment.
        """
        if not self.reference.stars or not self.candidate.stars:
            raise NoStarsDetectedError("Cannot score a star map pair with an empty member.")
        return float(_pairwise_overlap(self.reference, self.candidate).max())

    # Name kept for readers coming from the pixel-scoring terminology
    correct_pixels = best_pair_overlap

    def is_overlap(self, x: float, y: float) -> bool:
        return self.reference.intersects(x, y) == self.candidate.intersects(x, y)

    def visualize_difference(self) -> np.ndarray:
        """
        RGB uint8 raster classifying every pixel of the frame: green where both maps
        agree (star in both, or background in both), red where they disagree.
        """
        agree = self.reference.intersection_mask() == self.candidate.intersection_mask()
        img = np.empty(agree.shape + (3,), dtype=np.uint8)
        img[agree] = AGREE_COLOR
        img[~agree] = DISAGREE_COLOR
        return img

    def difference_ratio(self) -> float:
        """Fraction of frame pixels on which the two maps disagree."""
        agree = self.reference.intersection_mask() == self.candidate.intersection_mask()
        return float(1.0 - agree.mean()) if agree.size else 0.0
