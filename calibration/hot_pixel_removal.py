import numpy as np
import cv2
from logger.backend_logger import backend_logger
from utils import ImageUtils
from config import DENOISE_DELTA

# 3x3 window without its centre: sums the 8 neighbours of every pixel
NEIGHBOUR_KERNEL = np.array([[1, 1, 1], [1, 0, 1], [1, 1, 1]], dtype=np.float32)


class HotPixelRemoval:
    """
    Detects and corrects isolated hot and cold pixels.
    A pixel is compared with the average of its 8 neighbours and replaced by that
    average when the two are further apart than a fixed delta.
    """

    @staticmethod
    def neighbour_average(image: np.ndarray) -> np.ndarray:
        """
        Average of the in-bounds neighbours of every pixel, per channel.
        Border pixels only average the neighbours that exist (5 on an edge, 3 in a corner).
        """
        image = ImageUtils.convert_to_float32(image)
        sums = cv2.filter2D(image, -1, NEIGHBOUR_KERNEL, borderType=cv2.BORDER_CONSTANT)
        counts = cv2.filter2D(np.ones(image.shape[:2], dtype=np.float32), -1, NEIGHBOUR_KERNEL,
                              borderType=cv2.BORDER_CONSTANT)
        if image.ndim == 3:
            counts = counts[:, :, np.newaxis]
            if sums.ndim == 2:
                # OpenCV drops a single channel axis
                sums = sums[:, :, np.newaxis]
        return sums / np.maximum(counts, 1.0)

    @staticmethod
    def remove_hot_pixels(image: np.ndarray, delta: float = DENOISE_DELTA) -> np.ndarray:
        """
        Replaces every pixel that deviates from its neighbour average by more than
        delta in any channel. Detection uses the unmodified input throughout, so the
        result does not depend on scan order.

        Args:
            image (np.ndarray): The input image (float32, 0-1 range). Can be grayscale or RGB.
            delta (float): Largest tolerated deviation from the neighbour average.

        Returns:
            np.ndarray: A corrected copy of the image.
        """
        image = ImageUtils.convert_to_float32(image)
        if min(image.shape[:2]) < 2:
            backend_logger.warning(f"Image of shape {image.shape} has no neighbourhood to compare with. Skipping denoise.")
            return image.copy()

        average = HotPixelRemoval.neighbour_average(image)
        deviation = np.abs(image - average)
        if deviation.ndim == 3:
            # One mask for all channels so a corrected pixel keeps a consistent colour
            deviation = deviation.max(axis=2)
        mask = deviation > delta

        corrected_image = image.copy()
        corrected_image[mask] = average[mask]
        backend_logger.info(f"Denoise replaced {int(mask.sum())} pixels (delta {delta}).")
        return ImageUtils.clamp_image(corrected_image)
