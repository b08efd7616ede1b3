from typing import List

import cv2
import numpy as np


class ImageUtils:
    """
    Static helpers shared by the loader, the star detector, the aligner and the merger.
    Frames are NumPy arrays, (H, W) for grayscale or (H, W, C) for colour.
    """

    @staticmethod
    def normalize_image(img: np.ndarray, min_val: float = 0.0, max_val: float = 1.0) -> np.ndarray:
        """
        Rescales a frame linearly into [min_val, max_val] as float32.

        Float frames are stretched between their own extremes. Integer frames are
        scaled by their dtype's range instead, so a dark 8-bit frame stays dark.
        A completely flat float frame maps to the middle of the target range.
        """
        if np.issubdtype(img.dtype, np.floating):
            low, high = float(img.min()), float(img.max())
        else:
            info = np.iinfo(img.dtype)
            low = 0 if np.issubdtype(img.dtype, np.unsignedinteger) else info.min
            high = info.max

        if high == low:
            return np.full(img.shape, (min_val + max_val) / 2.0, dtype=np.float32)

        scaled = (img.astype(np.float32) - low) / (high - low)
        return (scaled * (max_val - min_val) + min_val).astype(np.float32)

    @staticmethod
    def convert_to_float32(img: np.ndarray) -> np.ndarray:
        """Integer frames are scaled to 0-1; float frames are only cast (float32 input is returned as is)."""
        if img.dtype == np.float32:
            return img
        if np.issubdtype(img.dtype, np.integer):
            return ImageUtils.normalize_image(img)
        return img.astype(np.float32)

    @staticmethod
    def clamp_image(img: np.ndarray, min_val: float = 0.0, max_val: float = 1.0) -> np.ndarray:
        return np.clip(img, min_val, max_val)

    @staticmethod
    def value_channel(img: np.ndarray) -> np.ndarray:
        """
        Per-pixel brightness as the V of HSV: the largest of R, G and B.

        Alpha and any further channels are ignored, single-channel frames are
        their own value. The result is a (H, W) float32 array clamped to 0-1.
        """
        img = ImageUtils.convert_to_float32(img)
        if img.ndim == 2:
            value = img
        elif img.ndim == 3:
            value = img[:, :, :3].max(axis=2) if img.shape[2] >= 3 else img[:, :, 0]
        else:
            raise ValueError(f"Expected a 2D or 3D image array, got shape {img.shape}.")
        return ImageUtils.clamp_image(value)

    @staticmethod
    def upscale(img: np.ndarray, factor: int = 2) -> np.ndarray:
        """
        Enlarges a frame by an integer factor with bicubic interpolation, keeping the
        channel layout. Overshoot around sharp stars is clamped back into 0-1.
        """
        if factor < 1:
            raise ValueError(f"Upscale factor must be a positive integer, got {factor}.")
        img = ImageUtils.convert_to_float32(img)
        if factor == 1:
            return img.copy()
        height, width = img.shape[:2]
        enlarged = cv2.resize(img, (width * factor, height * factor), interpolation=cv2.INTER_CUBIC)
        if img.ndim == 3 and enlarged.ndim == 2:
            enlarged = enlarged[:, :, np.newaxis]
        return ImageUtils.clamp_image(enlarged)

    @staticmethod
    def to_uint8(img: np.ndarray) -> np.ndarray:
        """0-1 float frame to 8-bit, values outside the range are clipped."""
        return (ImageUtils.clamp_image(img) * 255).astype(np.uint8)

    @staticmethod
    def calculate_median(images: List[np.ndarray]) -> np.ndarray:
        if not images:
            raise ValueError("Input list of images cannot be empty.")
        return np.median(np.stack(images, axis=0), axis=0)

    @staticmethod
    def calculate_mean(images: List[np.ndarray]) -> np.ndarray:
        if not images:
            raise ValueError("Input list of images cannot be empty.")
        return np.mean(np.stack(images, axis=0), axis=0)
