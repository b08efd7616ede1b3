import numpy as np
from logger.backend_logger import backend_logger
from utils import ImageUtils


class WhiteBalancer:
    """Colour balance of the stacked result."""

    @staticmethod
    def gray_world(image: np.ndarray) -> np.ndarray:
        """
        Modified gray world: each colour channel is shifted (not scaled) so that its
        mean lands on the mean of all channel means, then clamped to 0-1.
        Additive shifts leave the black sky black where plain gray world would tint it.

        Grayscale images have nothing to balance and are returned unchanged.
        """
        image = ImageUtils.convert_to_float32(image)
        if image.ndim != 3 or image.shape[2] < 3:
            backend_logger.debug("White balance skipped for a single channel image.")
            return image

        channels = image[:, :, :3]
        channel_means = channels.reshape(-1, 3).mean(axis=0)
        target = channel_means.mean()

        balanced = image.copy()
        balanced[:, :, :3] = ImageUtils.clamp_image(channels + (target - channel_means))
        backend_logger.info(
            "Gray world white balance: channel means "
            f"{', '.join(f'{m:.4f}' for m in channel_means)} -> {target:.4f}"
        )
        return balanced
