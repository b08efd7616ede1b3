import cv2
import numpy as np
from typing import List, Optional

from config import MERGE_METHODS
from logger.backend_logger import backend_logger
from utils import ImageUtils


class ColorMerger:
    """
    Merges aligned frames pixel by pixel into the final stack.

    Colour frames are merged in CIE Lab so averaging and median selection follow
    perceived colour rather than raw RGB; grayscale frames are merged directly.
    """

    def merge(self, frames: List[np.ndarray], method: str = 'median') -> np.ndarray:
        """
        Args:
            frames (List[np.ndarray]): Aligned frames of identical shape (float32, 0-1 range).
            method (str): 'average', 'median' or 'brightest'.

        Returns:
            np.ndarray: The merged float32 image (0-1 range).
        """
        if method not in MERGE_METHODS:
            raise ValueError(f"Unsupported merge method: {method}. Supported: {', '.join(MERGE_METHODS)}")
        if not frames:
            raise ValueError("No frames provided for merging.")

        shape = frames[0].shape
        for i, frame in enumerate(frames[1:], start=2):
            if frame.shape != shape:
                raise ValueError(f"Frame {i} has shape {frame.shape}, expected {shape}.")

        frames = [ImageUtils.convert_to_float32(f) for f in frames]
        is_color = frames[0].ndim == 3 and frames[0].shape[2] == 3
        backend_logger.info(f"Merging {len(frames)} frames ({method}, {'Lab' if is_color else 'grayscale'}).")

        if not is_color:
            lightness = [ImageUtils.value_channel(f) for f in frames] if method == 'brightest' else None
            return ImageUtils.clamp_image(self._merge_channels(frames, method, lightness)).astype(np.float32)

        lab_frames = [cv2.cvtColor(ImageUtils.clamp_image(f), cv2.COLOR_RGB2Lab) for f in frames]
        lightness = [f[:, :, 0] for f in lab_frames] if method == 'brightest' else None
        merged_lab = self._merge_channels(lab_frames, method, lightness).astype(np.float32)
        merged_rgb = cv2.cvtColor(merged_lab, cv2.COLOR_Lab2RGB)
        return ImageUtils.clamp_image(merged_rgb).astype(np.float32)

    @staticmethod
    def _merge_channels(frames: List[np.ndarray], method: str, lightness: Optional[List[np.ndarray]]) -> np.ndarray:
        if method == 'average':
            return ImageUtils.calculate_mean(frames)
        if method == 'median':
            return ImageUtils.calculate_median(frames)

        # brightest: whole pixel of the frame with the highest lightness, first frame on ties
        stacked = np.stack(frames, axis=0)
        winner = np.argmax(np.stack(lightness, axis=0), axis=0)
        if stacked.ndim == 4:
            return np.take_along_axis(stacked, winner[None, :, :, None], axis=0)[0]
        return np.take_along_axis(stacked, winner[None, :, :], axis=0)[0]
