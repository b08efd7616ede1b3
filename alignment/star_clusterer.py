import math
from typing import List

import numpy as np

from config import NEIGHBOR_INFLATION
from logger.backend_logger import backend_logger
from alignment.errors import NoStarsDetectedError
from alignment.star import Star, overlap_from_distance
from alignment.star_map import StarMap


class StarClusterer:
    """
    Merges adjacent raw detections into one star per physical star.

    Clustering is first-fit on insertion order: every star joins the first
    cluster (in creation order) that holds one of its neighbours, and never more
    than one cluster. A star bridging two existing clusters therefore does not
    merge them, and the result depends on input order. Running `compress` again
    on its own output can still merge such leftovers.
    """

    def __init__(self, inflation: float = NEIGHBOR_INFLATION):
        self.inflation = inflation

    def compress(self, star_map: StarMap) -> StarMap:
        """
        Args:
            star_map (StarMap): Raw detections (usually one size-1 star per bright pixel).

        Returns:
            StarMap: One centroid star per cluster, same bounds, in cluster creation order.

        Raises:
            NoStarsDetectedError: If the map holds no stars.
        """
        stars = star_map.stars
        if not stars:
            raise NoStarsDetectedError("No stars provided for clustering.")

        xs = np.array([s.x for s in stars], dtype=np.float64)
        ys = np.array([s.y for s in stars], dtype=np.float64)
        sizes = np.array([s.size for s in stars], dtype=np.float64)

        # cluster_of[i] is the index of the cluster star i was assigned to
        cluster_of = np.empty(len(stars), dtype=np.intp)
        clusters: List[List[int]] = []

        for i in range(len(stars)):
            target = None
            if i:
                dx = xs[:i] - xs[i]
                dy = ys[:i] - ys[i]
                distances = np.sqrt(dx * dx + dy * dy)
                # Same test as Star.is_neighbor, with the earlier star inflated
                touching = overlap_from_distance(distances, (sizes[:i] + self.inflation) + sizes[i]) > 0
                if touching.any():
                    # First-fit: the earliest created cluster among those holding a neighbour
                    target = int(cluster_of[:i][touching].min())

            if target is None:
                target = len(clusters)
                clusters.append([])
            clusters[target].append(i)
            cluster_of[i] = target

        centroids = [self._centroid(xs[members], ys[members], sizes[members]) for members in clusters]
        backend_logger.debug(f"Compressed {len(stars)} detections into {len(centroids)} stars.")
        return star_map.with_stars(centroids)

    @staticmethod
    def _centroid(xs: np.ndarray, ys: np.ndarray, sizes: np.ndarray) -> Star:
        count = len(xs)
        # size**2 is the pixel population; raw size-1 points give sqrt(count)
        return Star(x=float(xs.sum() / count), y=float(ys.sum() / count), size=math.sqrt(float((sizes * sizes).sum())))
