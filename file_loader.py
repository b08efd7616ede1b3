import rawpy
import numpy as np
import cv2
from pathlib import Path
from typing import Iterable, List
from astropy.io import fits
from logger.backend_logger import backend_logger
from config import SUPPORTED_INPUT_FORMATS, RAW_INPUT_FORMATS
from utils import ImageUtils

FITS_FORMATS = {'.fits', '.fit'}


class FileLoader:
    """
    Reads light frames (JPEG, PNG, TIFF, FITS, camera RAW) as float32 arrays in
    the 0-1 range with RGB channel order, and writes diagnostic images back out.
    """

    def load_image(self, file_path: Path) -> np.ndarray:
        """
        Args:
            file_path (Path): Frame to read; the extension selects the decoder.

        Returns:
            np.ndarray: (H, W) or (H, W, 3) float32 frame, 0-1 range.

        Raises:
            ValueError: For unsupported extensions and files that fail to decode.
        """
        file_path = Path(file_path)
        suffix = file_path.suffix.lower()

        if suffix not in SUPPORTED_INPUT_FORMATS:
            backend_logger.error(f"Rejected {file_path.name}: unsupported format {suffix or '(none)'}")
            raise ValueError(f"Unsupported file format: {file_path.name}")

        if suffix in RAW_INPUT_FORMATS:
            reader = self._read_raw
        elif suffix in FITS_FORMATS:
            reader = self._read_fits
        else:
            reader = self._read_standard

        try:
            frame = reader(file_path)
        except ValueError:
            raise
        except Exception as e:
            backend_logger.error(f"Decoding {file_path.name} failed: {e}", exc_info=True)
            raise ValueError(f"Failed to load image {file_path.name}: {e}")

        backend_logger.info(f"Loaded {file_path.name}: shape {frame.shape}")
        return frame

    def load_images(self, file_paths: Iterable[Path]) -> List[np.ndarray]:
        """Loads a batch of frames; they must all share the first frame's width and height."""
        file_paths = [Path(p) for p in file_paths]
        frames = [self.load_image(p) for p in file_paths]
        for path, frame in zip(file_paths[1:], frames[1:]):
            if frame.shape[:2] != frames[0].shape[:2]:
                raise ValueError(
                    f"Frame {path.name} is {frame.shape[:2]}, expected {frames[0].shape[:2]}. "
                    f"All frames must share one size."
                )
        return frames

    @staticmethod
    def collect_files(paths: Iterable[Path]) -> List[Path]:
        """
        Expands directories (recursively) into the supported image files they contain.
        Plain file paths are kept as given.
        """
        files = []
        for path in map(Path, paths):
            if path.is_dir():
                found = sorted(p for p in path.rglob("*") if p.is_file() and p.suffix.lower() in SUPPORTED_INPUT_FORMATS)
                backend_logger.debug(f"Collected {len(found)} images from {path}")
                files.extend(found)
            else:
                files.append(path)
        return files

    @staticmethod
    def _unit_range(data: np.ndarray, name: str) -> np.ndarray:
        # 8 and 16 bit data keep their absolute level; anything else is stretched to its own range
        if data.dtype == np.uint8:
            return data.astype(np.float32) / 255.0
        if data.dtype == np.uint16:
            return data.astype(np.float32) / 65535.0
        backend_logger.debug(f"{name}: {data.dtype} data stretched to 0-1")
        return ImageUtils.normalize_image(data.astype(np.float32))

    def _read_raw(self, file_path: Path) -> np.ndarray:
        """Debayers with LibRaw, linear and without white balance or auto brightening."""
        try:
            with rawpy.imread(str(file_path)) as raw:
                rgb = raw.postprocess(
                    gamma=(1, 1),
                    no_auto_bright=True,
                    output_bps=16,
                    use_camera_wb=False,
                    user_wb=[1, 1, 1, 1],
                    output_color=rawpy.ColorSpace.raw
                )
        except rawpy.LibRawError as e:
            raise ValueError(f"LibRaw could not decode {file_path.name}: {e}")
        return self._unit_range(rgb, file_path.name)

    def _read_fits(self, file_path: Path) -> np.ndarray:
        with fits.open(file_path) as hdul:
            if hdul[0].data is None:
                raise ValueError(f"FITS file {file_path.name} has no image data in its primary HDU.")
            data = np.array(hdul[0].data)

        # Colour cubes are stored channel-first
        if data.ndim == 3 and data.shape[0] in (3, 4):
            data = np.moveaxis(data, 0, -1)
        return self._unit_range(data, file_path.name)

    def _read_standard(self, file_path: Path) -> np.ndarray:
        img = cv2.imread(str(file_path), cv2.IMREAD_UNCHANGED | cv2.IMREAD_ANYDEPTH)
        if img is None:
            raise ValueError(f"Could not read image file: {file_path.name}")

        frame = self._unit_range(img, file_path.name)
        if frame.ndim == 3 and frame.shape[2] == 4:
            frame = cv2.cvtColor(frame, cv2.COLOR_BGRA2RGB)
        elif frame.ndim == 3 and frame.shape[2] == 3:
            frame = cv2.cvtColor(frame, cv2.COLOR_BGR2RGB)
        return frame

    @staticmethod
    def save_image(file_path: Path, image: np.ndarray) -> None:
        """
        Writes an RGB or grayscale image with OpenCV (8-bit for uint8 input, 16-bit otherwise).
        """
        file_path = Path(file_path)
        if image.dtype == np.uint8:
            img_to_save = image
        else:
            img_to_save = (ImageUtils.clamp_image(image) * 65535).astype(np.uint16)
        if img_to_save.ndim == 3 and img_to_save.shape[2] == 3:
            img_to_save = cv2.cvtColor(img_to_save, cv2.COLOR_RGB2BGR)
        if not cv2.imwrite(str(file_path), img_to_save):
            raise ValueError(f"Could not write image file: {file_path.name}")
        backend_logger.debug(f"Saved image to {file_path}")
