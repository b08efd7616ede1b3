import os
from pathlib import Path

# Base paths
BASE_DIR = Path(__file__).parent
DATA_DIR = BASE_DIR / "data"
TEMP_DIR = DATA_DIR / "temp"
OUTPUT_DIR = DATA_DIR / "output"
LOGS_DIR = BASE_DIR / "logs"

# Supported file formats for input
SUPPORTED_INPUT_FORMATS = {
    '.jpg', '.jpeg', '.png', '.tiff', '.tif',
    '.fits', '.fit', '.cr2', '.nef', '.dng', '.arw'
}
RAW_INPUT_FORMATS = {'.cr2', '.nef', '.dng', '.arw', '.orf', '.rw2', '.pef', '.srw'}

# Supported file formats for output
SUPPORTED_OUTPUT_FORMATS = {
    'fits', 'tiff', 'png', 'jpg'
}

# Limits
MAX_FILE_SIZE = 1024 * 1024 * 100  # 100MB per file
MAX_FILES = 50                     # Maximum number of light frames per upload

# Star extraction.
# Auto mode walks the threshold down from START to FLOOR until enough bright pixels show up.
AUTO_THRESHOLD_START = 0.90
AUTO_THRESHOLD_STEP = 0.01
AUTO_THRESHOLD_FLOOR = 0.20
MIN_RAW_STAR_POINTS = 10   # Raw bright pixels needed before auto mode stops lowering the threshold
MAX_STARS_PER_MAP = 10     # Only the biggest clusters take part in the alignment search

# Clustering: a raw point joins a cluster if it touches a member inflated by this much
NEIGHBOR_INFLATION = 1.0

# Alignment search
SEARCH_HALF_WINDOW = 500   # Translations in (-500, 500] on both axes
SEARCH_MAX_ROTATION = 10   # Integer degrees in [-10, 10]
SEARCH_CHUNK_ELEMENTS = 2_000_000  # Upper bound on pairwise distances evaluated per vectorised batch

# Frame level parallelism (one search per non-reference frame)
MAX_WORKERS = os.cpu_count() or 4

# Pixel merge methods for the final stack
MERGE_METHODS = ['average', 'median', 'brightest']
DEFAULT_MERGE_METHOD = 'median'

# Pre-processing, applied to every frame before alignment
DENOISE_DELTA = 0.1                # A pixel further than this from its neighbour average is replaced by it
LIGHT_POLLUTION_GRID = 3           # The sky glow mask is sampled on a GRID x GRID raster of the reference frame
LIGHT_POLLUTION_BLUR_SIGMA = 1.5
SUPERSAMPLE_FACTOR = 2

# Stacking defaults for the optional steps
DEFAULT_DENOISE = False
DEFAULT_REMOVE_LIGHT_POLLUTION = True
DEFAULT_SUPERSAMPLE = False
DEFAULT_WHITE_BALANCE = False

# Create directories if they don't exist
for directory in [DATA_DIR, TEMP_DIR, OUTPUT_DIR, LOGS_DIR]:
    directory.mkdir(parents=True, exist_ok=True)
