"""Shared fixtures: synthetic star fields and small star maps."""

import sys
from pathlib import Path

import numpy as np
import pytest

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from alignment.star import Star  # noqa: E402
from alignment.star_map import Bounds, StarMap  # noqa: E402

# (x, y) centres of the 3x3 blobs painted by make_star_field
FIELD_STARS = [(12, 14), (40, 9), (63, 30), (21, 52), (50, 61), (70, 70)]


def make_star_field(shape=(80, 80), stars=FIELD_STARS, shift=(0, 0), value=1.0):
    """Black float32 frame with a bright 3x3 block per star, moved by `shift` (dx, dy)."""
    img = np.zeros(shape, dtype=np.float32)
    dx, dy = shift
    for x, y in stars:
        cx, cy = x + dx, y + dy
        img[cy - 1:cy + 2, cx - 1:cx + 2] = value
    return img


@pytest.fixture
def star_field():
    return make_star_field()


@pytest.fixture
def two_star_maps():
    """Reference and candidate maps whose best unrotated pair overlap is 1.2."""
    bounds = Bounds(0, 0, 20, 20)
    reference = StarMap(bounds, (Star(10, 10, 3), Star(10, 5, 3)))
    candidate = StarMap(bounds, (Star(10, 10, 3), Star(5, 5, 3)))
    return reference, candidate


@pytest.fixture
def random_star_maps():
    """A few seeded (reference, candidate) pairs with integer-ish and fractional centres."""
    rng = np.random.default_rng(7)
    bounds = Bounds(0, 0, 64, 48)
    pairs = []
    for _ in range(3):
        ref = StarMap(bounds, tuple(
            Star(float(x), float(y), float(s))
            for x, y, s in zip(rng.uniform(5, 59, 4), rng.uniform(5, 43, 4), rng.uniform(1, 3, 4))
        ))
        cand = StarMap(bounds, tuple(
            Star(float(x), float(y), float(s))
            for x, y, s in zip(rng.uniform(5, 59, 3), rng.uniform(5, 43, 3), rng.uniform(1, 3, 3))
        ))
        pairs.append((ref, cand))
    return pairs
