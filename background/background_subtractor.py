import numpy as np
import cv2
from typing import List
from logger.backend_logger import backend_logger
from utils import ImageUtils
from config import LIGHT_POLLUTION_GRID, LIGHT_POLLUTION_BLUR_SIGMA


class BackgroundSubtractor:
    """
    Removes the smooth sky glow (light pollution, moonlight gradients) from light frames.

    The glow is modelled by shrinking a frame to a tiny grid, which averages the stars
    away, and scaling that grid back up to full size. The resulting mask is subtracted
    channel by channel.
    """

    @staticmethod
    def estimate_light_pollution_mask(
        image: np.ndarray,
        grid: int = LIGHT_POLLUTION_GRID,
        blur_sigma: float = LIGHT_POLLUTION_BLUR_SIGMA
    ) -> np.ndarray:
        """
        Args:
            image (np.ndarray): Frame to model (float32, 0-1 range), grayscale or RGB.
            grid (int): Side of the low resolution raster the glow is sampled on.
            blur_sigma (float): Gaussian sigma smoothing the upscaled mask.

        Returns:
            np.ndarray: Mask with the frame's shape, 0-1 range.
        """
        if grid < 1:
            raise ValueError(f"Light pollution grid must be at least 1, got {grid}.")
        image = ImageUtils.convert_to_float32(image)
        height, width = image.shape[:2]

        # Area interpolation averages every source pixel of a cell
        coarse = cv2.resize(image, (grid, grid), interpolation=cv2.INTER_AREA)
        mask = cv2.resize(coarse, (width, height), interpolation=cv2.INTER_CUBIC)
        mask = cv2.GaussianBlur(mask, (0, 0), blur_sigma)
        if image.ndim == 3 and mask.ndim == 2:
            mask = mask[:, :, np.newaxis]

        backend_logger.debug(f"Estimated light pollution mask on a {grid}x{grid} grid, mean level {float(mask.mean()):.4f}.")
        return ImageUtils.clamp_image(mask)

    @staticmethod
    def subtract_background(image: np.ndarray, mask: np.ndarray) -> np.ndarray:
        """Subtracts a mask of the same shape from the frame, clamping at 0."""
        image = ImageUtils.convert_to_float32(image)
        if mask.shape != image.shape:
            raise ValueError(f"Light pollution mask is {mask.shape}, frame is {image.shape}.")
        return ImageUtils.clamp_image(image - mask)

    @staticmethod
    def subtract_background_batch(images: List[np.ndarray]) -> List[np.ndarray]:
        """
        Models the glow once, on the first (reference) frame, and removes that same mask
        from every frame. The frames are still unaligned, so one mask keeps their
        backgrounds comparable.
        """
        if not images:
            return []

        mask = BackgroundSubtractor.estimate_light_pollution_mask(images[0])
        corrected_images = [BackgroundSubtractor.subtract_background(img, mask) for img in images]
        backend_logger.info(f"Light pollution removed from {len(corrected_images)} frames.")
        return corrected_images
