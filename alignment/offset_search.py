from functools import lru_cache
from typing import Iterator, Tuple

import numpy as np
from scipy.spatial.distance import cdist

from config import SEARCH_HALF_WINDOW, SEARCH_MAX_ROTATION, SEARCH_CHUNK_ELEMENTS
from logger.backend_logger import backend_logger
from alignment.errors import AlignmentFailedError, NoStarsDetectedError
from alignment.star import overlap_from_distance
from alignment.star_map import OffsetConfig, StarMap, rotation_terms


def spiral_offsets(steps: int) -> Iterator[Tuple[int, int]]:
    """
    Walks integer (x, y) positions in a square spiral starting at the origin.

    The walk starts heading "up" (0, -1) and turns whenever it reaches a corner
    of the current ring, so the positions cover the plane ring by ring.
    """
    x = y = 0
    dx, dy = 0, -1
    for _ in range(steps):
        yield x, y
        if x == y or (x < 0 and x == -y) or (x > 0 and x == 1 - y):
            dx, dy = -dy, dx
        x, y = x + dx, y + dy


@lru_cache(maxsize=8)
def window_offsets(half_window: int) -> np.ndarray:
    """
    In-window translations in spiral order as an (N, 2) int array.

    The spiral runs for (2 * half_window) ** 2 steps; positions outside
    (-half_window, half_window] on either axis are dropped but still advance it.
    """
    side = 2 * half_window
    offsets = [
        (x, y) for x, y in spiral_offsets(side * side)
        if -half_window < x <= half_window and -half_window < y <= half_window
    ]
    arr = np.array(offsets, dtype=np.int64).reshape(-1, 2)
    arr.setflags(write=False)
    return arr


class OffsetSearch:
    """
    Brute-force search for the translation + rotation that best lays a candidate
    star map over a reference star map.

    Every in-window translation is visited in spiral order and, for each one,
    every integer rotation from -max_rotation to +max_rotation. The candidate is
    offset first and then rotated about the frame centre, and the configuration
    is scored with the best single star-pair overlap. The first configuration
    reaching the highest score wins, so ties favour small translations and
    negative rotations.

    Scores are computed in vectorised batches of translations, which gives the
    same result as scoring one configuration at a time.
    """

    def __init__(
        self,
        half_window: int = SEARCH_HALF_WINDOW,
        max_rotation: int = SEARCH_MAX_ROTATION,
        chunk_elements: int = SEARCH_CHUNK_ELEMENTS,
    ):
        if max_rotation < 0:
            raise ValueError(f"max_rotation must be non-negative, got {max_rotation}.")
        self.half_window = int(half_window)
        self.max_rotation = int(max_rotation)
        self.chunk_elements = chunk_elements

    @property
    def rotations(self) -> np.ndarray:
        return np.arange(-self.max_rotation, self.max_rotation + 1, dtype=np.int64)

    def find_offset(self, reference: StarMap, candidate: StarMap) -> Tuple[OffsetConfig, float]:
        """
        Args:
            reference (StarMap): The map everything is aligned to.
            candidate (StarMap): The map to be moved onto the reference.

        Returns:
            Tuple[OffsetConfig, float]: The best configuration and its score.

        Raises:
            NoStarsDetectedError: If either map is empty.
            BoundsMismatchError: If the maps describe differently sized frames.
            AlignmentFailedError: If no configuration could be scored.
        """
        reference.check_comparable(candidate)
        if not reference.stars or not candidate.stars:
            raise NoStarsDetectedError("Cannot search offsets for an empty star map.")

        offsets = window_offsets(self.half_window) if self.half_window > 0 else np.empty((0, 2), dtype=np.int64)
        if len(offsets) == 0:
            raise AlignmentFailedError(f"Search window of half size {self.half_window} contains no translation.")

        rotations = self.rotations
        # Per-angle evaluation so the terms match StarMap.rotate bit for bit
        terms = np.array([[float(v) for v in rotation_terms(float(r))] for r in rotations], dtype=np.float64)
        cos_r = terms[None, :, 0, None]
        sin_r = terms[None, :, 1, None]
        cx, cy = reference.bounds.center

        ref_points = reference.points()
        cand_points = candidate.points()
        n_cand, n_ref = len(cand_points), len(ref_points)
        size_sum = candidate.sizes()[:, None] + reference.sizes()[None, :]

        per_offset = len(rotations) * n_cand * n_ref
        chunk = max(1, self.chunk_elements // per_offset)
        backend_logger.debug(
            f"Searching {len(offsets)} translations x {len(rotations)} rotations "
            f"({n_cand} vs {n_ref} stars, {chunk} translations per batch)."
        )

        best_score = -np.inf
        best_config = None
        for start in range(0, len(offsets), chunk):
            block = offsets[start:start + chunk].astype(np.float64)

            # (translations, stars)
            x = cand_points[None, :, 0] + block[:, 0:1]
            y = cand_points[None, :, 1] + block[:, 1:2]
            x = x[:, None, :]
            y = y[:, None, :]
            # (translations, rotations, stars), same arithmetic as StarMap.rotate
            xr = cos_r * (x - cx) - sin_r * (y - cy) + cx
            yr = sin_r * (x - cx) + cos_r * (y - cy) + cy

            moved = np.column_stack((xr.ravel(), yr.ravel()))
            distances = cdist(moved, ref_points).reshape(len(block), len(rotations), n_cand, n_ref)
            scores = overlap_from_distance(distances, size_sum).max(axis=(2, 3))

            # argmax returns the first maximum: spiral order, then ascending rotation
            flat_index = int(np.argmax(scores))
            score = float(scores.flat[flat_index])
            if score > best_score:
                t_index, r_index = divmod(flat_index, len(rotations))
                dx, dy = offsets[start + t_index]
                best_score = score
                best_config = OffsetConfig(int(dx), int(dy), float(rotations[r_index]))

        if best_config is None or not np.isfinite(best_score):
            raise AlignmentFailedError("Offset search did not produce a finite score.")

        backend_logger.info(
            f"Best offset x={best_config.x}, y={best_config.y}, "
            f"rotation={best_config.rotation_degrees:.0f} deg (score {best_score:.4f})."
        )
        return best_config, best_score


def find_offset(reference: StarMap, candidate: StarMap, **search_options) -> Tuple[OffsetConfig, float]:
    """Shortcut for OffsetSearch(**search_options).find_offset(reference, candidate)."""
    return OffsetSearch(**search_options).find_offset(reference, candidate)
