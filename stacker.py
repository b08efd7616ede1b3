import cv2
import numpy as np
from pathlib import Path
from typing import Dict, List, Optional, Tuple
from datetime import datetime
from astropy.io import fits

from file_loader import FileLoader
from logger.backend_logger import backend_logger
from logger.frontend_logger import FrontendLogBuffer
from config import (
    OUTPUT_DIR, SUPPORTED_OUTPUT_FORMATS, MERGE_METHODS, DEFAULT_MERGE_METHOD, MAX_FILES, SUPERSAMPLE_FACTOR,
    DEFAULT_DENOISE, DEFAULT_REMOVE_LIGHT_POLLUTION, DEFAULT_SUPERSAMPLE, DEFAULT_WHITE_BALANCE
)

from utils import ImageUtils
from alignment.star_aligner import StarAligner
from alignment.star_map import StarMapPair
from calibration.hot_pixel_removal import HotPixelRemoval
from background.background_subtractor import BackgroundSubtractor
from merging.color_merger import ColorMerger
from merging.white_balance import WhiteBalancer


class AstroStacker:
    """
    Core engine for stacking astrophotography images.
    Orchestrates file loading, star alignment, pixel merging and saving for one session.
    """

    def __init__(self, session_id: str, star_aligner: Optional[StarAligner] = None):
        self.session_id = session_id
        self.log_buffer = FrontendLogBuffer(session_id)
        self.file_loader = FileLoader()
        self.star_aligner = star_aligner or StarAligner()
        self.color_merger = ColorMerger()
        self.hot_pixel_removal = HotPixelRemoval()
        self.background_subtractor = BackgroundSubtractor()
        self.white_balancer = WhiteBalancer()
        self.session_output_dir = OUTPUT_DIR / f"session_{session_id}"

    def _load_frames(self, light_file_paths: List[Path]) -> List[np.ndarray]:
        # Directories stand for every supported image below them
        light_file_paths = self.file_loader.collect_files(light_file_paths or [])
        if not light_file_paths:
            self.log_buffer.add_log("No light frames provided. Aborted.", "error")
            raise ValueError("No light frames provided.")
        if len(light_file_paths) > MAX_FILES:
            raise ValueError(f"Too many light frames ({len(light_file_paths)}), maximum is {MAX_FILES}.")

        self.log_buffer.add_log(f"Loading {len(light_file_paths)} light frames...")
        frames = self.file_loader.load_images(light_file_paths)
        backend_logger.info(f"Loaded {len(frames)} light frames, shape: {frames[0].shape}.")
        return frames

    def stack_images(
        self,
        light_file_paths: List[Path],
        merge_method: str = DEFAULT_MERGE_METHOD,
        threshold: float = 0.0,
        output_format: str = 'png',
        denoise: bool = DEFAULT_DENOISE,
        remove_light_pollution: bool = DEFAULT_REMOVE_LIGHT_POLLUTION,
        supersample: bool = DEFAULT_SUPERSAMPLE,
        white_balance: bool = DEFAULT_WHITE_BALANCE
    ) -> Tuple[str, str]:
        """
        Orchestrates the entire image stacking process.

        Args:
            light_file_paths (List[Path]): Frames (or directories of frames) to stack; the first frame is the alignment reference.
            merge_method (str): Pixel merge method ('average', 'median', 'brightest').
            threshold (float): Star brightness threshold, 0 for auto detection on the reference.
            output_format (str): One of SUPPORTED_OUTPUT_FORMATS.
            denoise (bool): Replace isolated hot and cold pixels before alignment.
            remove_light_pollution (bool): Subtract the sky glow modelled on the reference frame.
            supersample (bool): Enlarge every frame by SUPERSAMPLE_FACTOR before alignment.
            white_balance (bool): Gray world colour balance of the merged result.

        Returns:
            Tuple[str, str]: File names of the stacked result and of its PNG preview.
        """
        self.log_buffer.add_log("Starting image stacking process...")
        backend_logger.info(f"Stacking session {self.session_id} initiated.")

        if output_format.lower() not in SUPPORTED_OUTPUT_FORMATS:
            self.log_buffer.add_log(f"Unsupported output format: {output_format}. Supported: {', '.join(SUPPORTED_OUTPUT_FORMATS)}", "error")
            raise ValueError(f"Unsupported output format: {output_format}")
        if merge_method not in MERGE_METHODS:
            self.log_buffer.add_log(f"Unsupported merge method: {merge_method}. Supported: {', '.join(MERGE_METHODS)}", "error")
            raise ValueError(f"Unsupported merge method: {merge_method}")

        # --- 1. Load Images ---
        light_frames = self._load_frames(light_file_paths)

        # --- 2. Pre-process ---
        light_frames = self._preprocess_frames(light_frames, denoise, remove_light_pollution, supersample)

        # --- 3. Align Light Frames ---
        self.log_buffer.add_log("Aligning light frames...")
        self.star_aligner.threshold = threshold
        aligned_frames, alignments = self.star_aligner.align_frames(light_frames)
        for alignment in alignments:
            if alignment.succeeded:
                cfg = alignment.config
                self.log_buffer.add_log(
                    f"Frame {alignment.index + 1}: offset x={cfg.x}, y={cfg.y}, rotation={cfg.rotation_degrees:.0f} deg."
                )
            else:
                self.log_buffer.add_log(f"Frame {alignment.index + 1} skipped: {alignment.error}", "warning")
        self.log_buffer.add_log(f"Alignment completed: {len(aligned_frames)}/{len(light_frames)} frames usable.")

        # --- 4. Merge ---
        self.log_buffer.add_log(f"Merging aligned frames ({merge_method})...")
        stacked_image = self.color_merger.merge(aligned_frames, merge_method)
        backend_logger.info(f"Stacked image shape: {stacked_image.shape}, dtype: {stacked_image.dtype}")

        if white_balance:
            self.log_buffer.add_log("Applying gray world white balance...")
            stacked_image = self.white_balancer.gray_world(stacked_image)

        # --- 5. Saving ---
        self.log_buffer.add_log("Saving final result and preview...")
        output_filename, preview_filename = self._save_result(stacked_image, output_format)
        self.log_buffer.add_log("Stacking process finished successfully! ✨", "success")
        return output_filename, preview_filename

    def _preprocess_frames(
        self,
        frames: List[np.ndarray],
        denoise: bool,
        remove_light_pollution: bool,
        supersample: bool
    ) -> List[np.ndarray]:
        """Per-frame corrections applied before the star search, in a fixed order."""
        if denoise:
            self.log_buffer.add_log("Removing hot pixels...")
            frames = [self.hot_pixel_removal.remove_hot_pixels(frame) for frame in frames]
        if remove_light_pollution:
            self.log_buffer.add_log("Removing light pollution (mask from the reference frame)...")
            frames = self.background_subtractor.subtract_background_batch(frames)
        if supersample:
            self.log_buffer.add_log(f"Supersampling frames {SUPERSAMPLE_FACTOR}x...")
            frames = [ImageUtils.upscale(frame, SUPERSAMPLE_FACTOR) for frame in frames]
            backend_logger.info(f"Supersampled frames to shape {frames[0].shape}.")
        return frames

    def align_images(self, light_file_paths: List[Path], threshold: float = 0.0) -> List[Dict]:
        """
        Finds per-frame offsets without stacking, for diagnostics.

        For every successfully aligned frame a difference visualisation of the
        reference star map against the corrected candidate star map is written to
        the session output directory.

        Returns:
            List[Dict]: One entry per frame with its offset, score, error and difference image name.
        """
        light_frames = self._load_frames(light_file_paths)
        self.star_aligner.threshold = threshold
        used_threshold, alignments = self.star_aligner.find_offsets(light_frames)
        self.log_buffer.add_log(f"Star threshold used for all frames: {used_threshold:.2f}")

        self.session_output_dir.mkdir(parents=True, exist_ok=True)
        reference_map, _ = self.star_aligner.build_star_map(light_frames[0], used_threshold)

        report = []
        for alignment in alignments:
            entry = alignment.to_dict()
            entry["difference_image"] = None
            if alignment.succeeded and alignment.index > 0:
                candidate_map, _ = self.star_aligner.build_star_map(light_frames[alignment.index], used_threshold)
                cfg = alignment.config
                corrected = candidate_map.offset(cfg.x, cfg.y).rotate(cfg.rotation_degrees)
                pair = StarMapPair(reference_map, corrected)
                diff_path = self.session_output_dir / f"difference_frame_{alignment.index + 1}.png"
                self.file_loader.save_image(diff_path, pair.visualize_difference())
                entry["difference_image"] = diff_path.name
                entry["difference_ratio"] = pair.difference_ratio()
            report.append(entry)

        self.log_buffer.add_log(f"Offsets computed for {len(report)} frames.")
        return report

    def _auto_levels_and_color_balance(self, image: np.ndarray) -> np.ndarray:
        """
        Applies CLAHE per channel and a final stretch. Only used for 8-bit outputs,
        never for the linear result.
        """
        img_8bit = ImageUtils.to_uint8(image)
        clahe = cv2.createCLAHE(clipLimit=2.0, tileGridSize=(8, 8))

        if img_8bit.ndim == 3:
            balanced_img_8bit = cv2.merge([clahe.apply(c) for c in cv2.split(img_8bit)])
        else:
            balanced_img_8bit = clahe.apply(img_8bit)

        final_image_float = balanced_img_8bit.astype(np.float32) / 255.0
        return ImageUtils.normalize_image(final_image_float)

    def _save_result(self, stacked_image_float: np.ndarray, output_format: str) -> Tuple[str, str]:
        """
        Saves the final stacked image in the desired format and creates a web preview.
        """
        self.session_output_dir.mkdir(parents=True, exist_ok=True)

        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        output_format = output_format.lower()
        output_path = self.session_output_dir / f"stacked_image_{timestamp}.{output_format}"
        preview_path = self.session_output_dir / f"stacked_image_preview_{timestamp}.png"

        try:
            self._create_web_preview(stacked_image_float, preview_path)

            img_to_save_linear = ImageUtils.clamp_image(stacked_image_float)
            if output_format in ('png', 'tiff', 'tif'):
                # 16-bit linear data
                self.file_loader.save_image(output_path, img_to_save_linear)
            elif output_format in ('jpg', 'jpeg'):
                # 8-bit, stretched to be viewable
                img_to_save = ImageUtils.to_uint8(self._auto_levels_and_color_balance(stacked_image_float))
                if img_to_save.ndim == 3:
                    img_to_save = cv2.cvtColor(img_to_save, cv2.COLOR_RGB2BGR)
                cv2.imwrite(str(output_path), img_to_save, [cv2.IMWRITE_JPEG_QUALITY, 95])
            elif output_format == 'fits':
                data = img_to_save_linear
                if data.ndim == 3:
                    # FITS cubes are channel-first
                    data = np.moveaxis(data, -1, 0)
                fits.PrimaryHDU(data.astype(np.float32)).writeto(output_path, overwrite=True)
            else:
                raise ValueError(f"Unsupported output format: {output_format}.")

            self.log_buffer.add_log(f"Result saved as {output_path.name} ({output_format.upper()}).")
            backend_logger.info(f"Saved result to {output_path}")
            return output_path.name, preview_path.name

        except Exception as e:
            self.log_buffer.add_log(f"Error saving result to {output_format.upper()}: {str(e)}", "error")
            backend_logger.error(f"Error saving result for session {self.session_id}: {e}", exc_info=True)
            raise

    def _create_web_preview(self, stacked_image_float: np.ndarray, preview_path: Path) -> None:
        """
        Creates an 8-bit PNG preview with a simple min-max stretch.
        """
        min_val = np.min(stacked_image_float)
        max_val = np.max(stacked_image_float)

        if max_val - min_val < np.finfo(float).eps:
            stretched_image = np.zeros_like(stacked_image_float)
        else:
            stretched_image = (stacked_image_float - min_val) / (max_val - min_val)

        self.file_loader.save_image(preview_path, ImageUtils.to_uint8(stretched_image))
        backend_logger.info(f"Saved web preview to {preview_path}")
