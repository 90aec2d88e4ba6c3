"""
System constants that should never change.

These are technical/format limits, not user preferences.
User-configurable values should go in config.yaml instead.
"""

# Sample rate limits
DEFAULT_SAMPLE_RATE = 48000
MIN_SAMPLE_RATE = 8000
MAX_SAMPLE_RATE = 192000
AAC_MAX_SAMPLE_RATE = 48000  # mp4/m4a containers
MP3_SAMPLE_RATES = (8000, 11025, 12000, 16000, 22050, 24000, 32000, 44100, 48000)

# Speed-change filter accepts factors in this range only
TEMPO_STAGE_MIN = 0.5
TEMPO_STAGE_MAX = 2.0
TEMPO_STAGE_DECIMALS = 6

# Progress reporting
PROGRESS_CAP = 99  # 100 is reserved for post-exit confirmation
PROGRESS_DONE = 100
DIAGNOSTIC_TAIL_LINES = 10

# Process termination
TERMINATE_GRACE_SECONDS = 5.0

# Legacy tag trailer layout
LEGACY_TAG_SIZE = 128
LEGACY_TAG_MAGIC = b"TAG"
LEGACY_TAG_GENRE_UNSET = 255

# Filenames
MAX_FILENAME_LENGTH = 200
