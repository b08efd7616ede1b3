import numpy as np
from concurrent.futures import ProcessPoolExecutor
from dataclasses import dataclass
from typing import List, Optional, Tuple

from config import MAX_WORKERS, SEARCH_HALF_WINDOW, SEARCH_MAX_ROTATION
from logger.backend_logger import backend_logger
from alignment.errors import AlignmentError
from alignment.frame_transformer import FrameTransformer
from alignment.offset_search import OffsetSearch
from alignment.star_detector import StarDetector
from alignment.star_map import OffsetConfig, StarMap


@dataclass(frozen=True)
class FrameAlignment:
    """Outcome of aligning one frame of a batch to the reference frame."""

    index: int
    config: Optional[OffsetConfig] = None
    score: Optional[float] = None
    error: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.config is not None

    def to_dict(self) -> dict:
        return {
            "index": self.index,
            "offset": self.config.to_dict() if self.config else None,
            "score": self.score,
            "error": self.error,
        }


def _align_single_frame(task: Tuple[int, np.ndarray, StarMap, float, int, int, StarDetector]) -> FrameAlignment:
    """
    Worker entry point: extracts the frame's star map with the reference threshold
    and the aligner's own detector (pickled into the task), then searches its
    offset. Engine errors fail only this frame.
    """
    index, image, reference_map, threshold, half_window, max_rotation, detector = task
    try:
        star_map, _ = detector.extract(image, threshold)
        config, score = OffsetSearch(half_window, max_rotation).find_offset(reference_map, star_map)
        return FrameAlignment(index=index, config=config, score=score)
    except AlignmentError as e:
        backend_logger.warning(f"Frame {index + 1} could not be aligned: {e}")
        return FrameAlignment(index=index, error=str(e))


class StarAligner:
    """
    Aligns a batch of frames to the first one:
    1. Star map of the reference frame (auto threshold unless one is given).
    2. Star maps of the other frames, using the reference threshold.
    3. Spiral offset search per frame, frames searched in parallel processes.
    4. Translation + rotation of each frame by its offset.
    """

    def __init__(
        self,
        threshold: float = 0.0,
        half_window: int = SEARCH_HALF_WINDOW,
        max_rotation: int = SEARCH_MAX_ROTATION,
        max_workers: int = MAX_WORKERS,
        star_detector: Optional[StarDetector] = None,
    ):
        self.threshold = threshold
        self.half_window = half_window
        self.max_rotation = max_rotation
        self.max_workers = max(1, max_workers)
        self.star_detector = star_detector or StarDetector()
        self.frame_transformer = FrameTransformer()

    def build_star_map(self, image: np.ndarray, threshold: Optional[float] = None) -> Tuple[StarMap, float]:
        return self.star_detector.extract(image, self.threshold if threshold is None else threshold)

    def find_offsets(self, images: List[np.ndarray]) -> Tuple[float, List[FrameAlignment]]:
        """
        Finds the offset of every frame relative to images[0].

        Args:
            images (List[np.ndarray]): Frames of identical size; the first is the reference.

        Returns:
            Tuple[float, List[FrameAlignment]]: The threshold used for all frames and one
                                                result per input frame, in input order.

        Raises:
            ValueError: If no images are given.
            AlignmentError: If the reference frame itself yields no stars.
        """
        if not images:
            raise ValueError("No images provided for alignment.")

        reference_map, threshold = self.build_star_map(images[0])
        backend_logger.info(
            f"Reference frame: {len(reference_map)} stars at threshold {threshold:.2f}."
        )
        results = [FrameAlignment(index=0, config=OffsetConfig(0, 0, 0.0), score=None)]
        if len(images) == 1:
            return threshold, results

        tasks = [
            (i, images[i], reference_map, threshold, self.half_window, self.max_rotation, self.star_detector)
            for i in range(1, len(images))
        ]
        workers = min(self.max_workers, len(tasks))
        backend_logger.info(f"Searching offsets for {len(tasks)} frames with {workers} workers.")

        with ProcessPoolExecutor(max_workers=workers) as executor:
            # list() joins every task before any result is used
            results.extend(list(executor.map(_align_single_frame, tasks)))

        failed = sum(1 for r in results if not r.succeeded)
        backend_logger.info(f"Offset search finished: {len(results) - failed} aligned, {failed} failed.")
        return threshold, results

    def align_frames(self, images: List[np.ndarray]) -> Tuple[List[np.ndarray], List[FrameAlignment]]:
        """
        Aligns every frame to images[0].

        Frames whose alignment failed are left out of the returned image list; their
        FrameAlignment entry carries the reason.
        """
        _, alignments = self.find_offsets(images)

        aligned_images = []
        for alignment in alignments:
            if not alignment.succeeded:
                backend_logger.warning(f"Skipping frame {alignment.index + 1}: {alignment.error}")
                continue
            image = images[alignment.index]
            if alignment.index == 0:
                aligned_images.append(np.copy(image))
            else:
                aligned_images.append(self.frame_transformer.transform(image, alignment.config))

        backend_logger.info(f"Aligned {len(aligned_images)}/{len(images)} frames.")
        return aligned_images, alignments
