import cv2
import numpy as np

from logger.backend_logger import backend_logger
from utils import ImageUtils
from alignment.star_map import OffsetConfig

FILL_VALUE = 0.0


class FrameTransformer:
    """
    Applies an OffsetConfig to a full raster frame.

    The raster moves exactly like StarMap.offset(x, y).rotate(rotation_degrees)
    moves stars: translate first, then rotate about the frame centre. Output has
    the input's size; uncovered pixels are filled with zero.
    """

    @staticmethod
    def affine_matrix(config: OffsetConfig, width: int, height: int) -> np.ndarray:
        """2x3 float64 matrix mapping source pixel coordinates to corrected ones."""
        if config.rotation_degrees == 0:
            return np.float64([[1, 0, config.x], [0, 1, config.y]])

        # StarMap.rotate turns by +theta with y pointing down, which is OpenCV's -theta
        matrix = cv2.getRotationMatrix2D((width / 2.0, height / 2.0), -config.rotation_degrees, 1.0)
        # p' = R (p + t - c) + c: fold the translation in ahead of the rotation
        matrix[:, 2] += matrix[:, :2] @ np.float64([config.x, config.y])
        return matrix

    def transform(self, image: np.ndarray, config: OffsetConfig) -> np.ndarray:
        """
        Args:
            image (np.ndarray): Frame (H, W) or (H, W, C), any dtype; returned as float32.
            config (OffsetConfig): Correction found by the offset search.

        Returns:
            np.ndarray: The corrected float32 frame, same shape as the input.
        """
        frame = ImageUtils.convert_to_float32(image)
        h, w = frame.shape[:2]
        matrix = self.affine_matrix(config, w, h)

        if frame.ndim == 3 and frame.shape[2] > 4:
            # warpAffine handles at most 4 channels
            channels = [self._warp(frame[:, :, c], matrix, w, h) for c in range(frame.shape[2])]
            warped = np.stack(channels, axis=2)
        else:
            warped = self._warp(frame, matrix, w, h)
            if frame.ndim == 3 and warped.ndim == 2:
                warped = warped[:, :, None]

        backend_logger.debug(
            f"Transformed frame by x={config.x}, y={config.y}, rotation={config.rotation_degrees:.1f} deg."
        )
        return warped

    @staticmethod
    def _warp(frame: np.ndarray, matrix: np.ndarray, w: int, h: int) -> np.ndarray:
        return cv2.warpAffine(
            frame,
            matrix,
            (w, h),
            flags=cv2.INTER_LINEAR,
            borderMode=cv2.BORDER_CONSTANT,
            borderValue=FILL_VALUE,
        )
