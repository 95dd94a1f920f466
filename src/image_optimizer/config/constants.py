"""
System constants that should never change.

These are technical/system limits, not user preferences.
User-configurable values should go in .imagerc instead.
"""

# State file format tag; state written with any other tag is ignored on load
STATE_FORMAT_VERSION = "1.0"

DEFAULT_STATE_FILE = ".image-optimization-state.json"
DEFAULT_ERROR_LOG = "image-optimization-errors.log"
CONFIG_FILE_NAMES = (".imagerc", ".imagerc.json", ".imagerc.yaml", ".imagerc.yml")

# Formats and quality bounds
VALID_FORMATS = ("webp", "avif", "original", "jpeg", "png")
QUALITY_FORMATS = ("webp", "avif", "jpeg")
MIN_QUALITY = 1
MAX_QUALITY = 100
MIN_THUMBNAIL_WIDTH = 10
MAX_THUMBNAIL_WIDTH = 1000

# Git LFS pointer files start with this line
LFS_POINTER_PREFIX = b"version https://git-lfs.github.com/spec/v1"
LFS_POINTER_MAX_SIZE = 1024
LFS_PULL_TIMEOUT = 300

# Display limits
VERBOSE_LOGGING_THRESHOLD = 2
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")
MAX_FILENAME_LENGTH = 37
FILENAME_TRUNCATE_LENGTH = 34
MAX_ERROR_MSG_LENGTH = 32
ERROR_MSG_TRUNCATE_LENGTH = 29
