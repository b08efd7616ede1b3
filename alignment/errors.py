from typing import Optional


class AlignmentError(ValueError):
    """Base class for failures of the star alignment engine on a single frame."""


class NoStarsDetectedError(AlignmentError):
    """Raised when a frame or star map has no stars to work with."""

    def __init__(self, message: str = "No stars detected.", threshold: Optional[float] = None):
        super().__init__(message)
        self.threshold = threshold


class BoundsMismatchError(AlignmentError):
    """Raised when two star maps with different frame bounds are compared."""


class AlignmentFailedError(AlignmentError):
    """Raised when the offset search never scores a usable configuration."""
