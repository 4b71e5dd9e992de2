"""Default endpoints, model names and numeric constants."""

from pathlib import Path

# Google Cloud defaults (must match the proxy dispatcher deployment)
DEFAULT_BUCKET = "story-graph-proxies"
DEFAULT_GCP_PROJECT = "media-sync-registry"
DEFAULT_GCP_LOCATION = "europe-west1"
DEFAULT_INFERENCE_MODEL = "gemini-2.0-flash-001"
DEFAULT_LANGUAGE_CODE = "en-US"

GCS_API_BASE = "https://storage.googleapis.com"
VIDEO_INTELLIGENCE_API_BASE = "https://videointelligence.googleapis.com/v1"

# Paths
DEFAULT_CONFIG_DIR = Path.home() / ".config" / "storygraph"
DEFAULT_DB_PATH = DEFAULT_CONFIG_DIR / "storygraph.db"
CONFIG_FILE_PATH = DEFAULT_CONFIG_DIR / "config.json"

# Polling
DEFAULT_POLL_INTERVAL_SEC = 10.0
HTTP_TIMEOUT_SEC = 60
UPLOAD_TIMEOUT_SEC = 1800

# Operation markers persisted for terminal states
OP_LIGHT_COMPLETE = "light_complete"
OP_COMPLETED = "completed"
OP_ERROR = "error"

# Waveform correlation (coarse, unnormalized search)
DEFAULT_CORRELATION_WINDOW = 2000  # samples of the slave's leading edge
DEFAULT_CORRELATION_STRIDE = 20  # ~0.4ms at 48kHz, well under one frame
DEFAULT_SCAN_SECONDS = 1800  # 30 minutes
AUDIO_PROXY_DIR = "proxies"
AUDIO_PROXY_SUFFIX = "_audioproxy.mp4"

# Timeline
DEFAULT_TIMEBASE = 25
DEFAULT_WIDTH = 1920
DEFAULT_HEIGHT = 1080
DEFAULT_SEQUENCE_NAME = "StoryGraph_Sync"
TIMELINE_ANCHOR_HOURS = 1
# 44.1kHz 16-bit stereo PCM, used to estimate duration from file size
PCM_BYTES_PER_SECOND = 176400

# Hash
HASH_PREFIX_BYTES = 64 * 1024  # First 64KB for fast hashing

# Prompts for category discovery
VIDEO_CATEGORY_PROMPT = (
    "Categorize this video. Respond ONLY with the word 'interview' or 'b-roll'."
)
AUDIO_CATEGORY_PROMPT = (
    "Categorize this audio recording. Respond ONLY with the word 'interview' if it is "
    "a dialogue recording of a sit-down interview, or 'location' if it is ambient "
    "location sound."
)

# Long-running annotation presets
TRANSCRIPTION_FEATURES = ["SPEECH_TRANSCRIPTION"]
CONTENT_MAPPING_FEATURES = ["LABEL_DETECTION", "SHOT_CHANGE_DETECTION"]

# Media extensions
VIDEO_EXTENSIONS = {
    ".mp4", ".mkv", ".avi", ".mov", ".webm", ".mxf",
    ".m4v", ".mpg", ".mpeg", ".mts", ".m2ts", ".3gp",
}
AUDIO_EXTENSIONS = {".wav", ".flac", ".mp3", ".m4a", ".aac", ".ogg", ".aif", ".aiff"}
