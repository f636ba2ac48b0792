"""
App Constants - Central location for all hardcoded values
All hardcoded values should be defined here for maintainability and configurability
"""

# Chain configuration constants
SUPPORTED_SECONDS_PER_SEGMENT = (4, 8, 12)
SUPPORTED_MODELS = ("sora-2", "sora-2-pro")
DEFAULT_MODEL = "sora-2-pro"
DEFAULT_SIZE = "1280x720"
MIN_BASE_PROMPT_LENGTH = 20
MAX_BASE_PROMPT_LENGTH = 4000
MIN_SEGMENTS = 2
MIN_SEGMENT_PROMPT_LENGTH = 40  # shorter directives are treated as degenerate plans

# Progress milestones
PROGRESS_CONCATENATING = 95
PROGRESS_COMPLETED = 100

# FFmpeg constants
LAST_FRAME_OFFSET_SECONDS = 0.1  # seek this far before end-of-stream
LAST_FRAME_JPEG_QUALITY = 2  # ffmpeg -q:v, 2 is near-lossless
REENCODE_FRAME_RATE = 24
REENCODE_VIDEO_CODEC = "libx264"
REENCODE_PRESET = "medium"
REENCODE_CRF = 18
REENCODE_PIXEL_FORMAT = "yuv420p"
REENCODE_AUDIO_CODEC = "aac"
REENCODE_AUDIO_BITRATE = "192k"
CONCAT_LIST_FILENAME = "concat_list.txt"

# ffmpeg stderr fragments that mean the inputs cannot be stream-copied together
CODEC_MISMATCH_MARKERS = (
    "different codec",
    "Filtergraph",
)

# Working directory file names
SEGMENT_VIDEO_TEMPLATE = "segment_{index:02d}.mp4"
SEGMENT_THUMB_TEMPLATE = "segment_{index:02d}_thumb.jpg"
SEGMENT_LAST_FRAME_TEMPLATE = "segment_{index:02d}_last.jpg"
SEGMENT_REFERENCE_TEMPLATE = "segment_{index:02d}_reference.jpg"
FINAL_VIDEO_FILENAME = "combined.mp4"
FINAL_THUMB_FILENAME = "final_thumb.jpg"

# Content types
CONTENT_TYPE_MP4 = "video/mp4"
CONTENT_TYPE_JPEG = "image/jpeg"

# Webhook constants
WEBHOOK_MAX_ATTEMPTS = 3
WEBHOOK_RETRY_DELAYS_SECONDS = (1, 3, 5)
WEBHOOK_USER_AGENT = "Chain-Video-Generator/1.0"

# Error Messages
ERROR_CHAIN_NOT_FOUND = "Chain job not found"
ERROR_UNKNOWN = "Unknown error"

# Database Query Constants
DEFAULT_QUERY_LIMIT = 50
MAX_QUERY_LIMIT = 1000
