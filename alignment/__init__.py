# Star-field alignment engine: star extraction, clustering, star maps,
# the spiral offset search and the frame transformer.

from .errors import AlignmentError, NoStarsDetectedError, BoundsMismatchError, AlignmentFailedError
from .star import Star, overlap_from_distance
from .star_map import Bounds, OffsetConfig, StarMap, StarMapPair
from .star_clusterer import StarClusterer
from .star_detector import StarDetector
from .offset_search import OffsetSearch, find_offset, spiral_offsets
from .frame_transformer import FrameTransformer

# The orchestrator
from .star_aligner import StarAligner, FrameAlignment
