"""
Shared constants for vidscript.
Single source of truth — imported by every other module.
"""

import pathlib

# ── Application identity ──────────────────────────────────────────────
APP_NAME = "vidscript"
APP_VERSION = "1.0.0"

# ── Filesystem paths ─────────────────────────────────────────────────
HOME = pathlib.Path.home()

APP_SUPPORT_DIR = HOME / ".vidscript"
LOG_DIR = APP_SUPPORT_DIR / "logs"
DB_PATH = APP_SUPPORT_DIR / "transcripts.db"
CONFIG_PATH = APP_SUPPORT_DIR / "config.json"
DEFAULT_OUTPUT_ROOT = HOME / "Downloads" / "Video Transcripts"

# ── Environment variables for injected credentials ────────────────────
ENV_ANALYSIS_KEY = "VIDSCRIPT_ANALYSIS_KEY"
ENV_BLOB_SAS = "VIDSCRIPT_BLOB_SAS"

# ── Video status values ───────────────────────────────────────────────
class VideoStatus:
    UPLOADING = "uploading"
    PROCESSING = "processing"
    COMPLETED = "completed"
    ERROR = "error"

# ── Failure handling policy ───────────────────────────────────────────
class ErrorPolicy:
    STRICT = "strict"      # failures end in the ERROR state
    LENIENT = "lenient"    # failures end COMPLETED with a placeholder transcript

    ALL = (STRICT, LENIENT)

# ── Notification severity ─────────────────────────────────────────────
class Severity:
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"

# ── Export formats ────────────────────────────────────────────────────
class TranscriptFormat:
    TEXT = "text"
    SUBTITLE = "subtitle"

FORMAT_ALIASES = {
    "text": TranscriptFormat.TEXT,
    "txt": TranscriptFormat.TEXT,
    "subtitle": TranscriptFormat.SUBTITLE,
    "srt": TranscriptFormat.SUBTITLE,
}
FORMAT_EXTENSIONS = {
    TranscriptFormat.TEXT: "txt",
    TranscriptFormat.SUBTITLE: "srt",
}
FORMAT_MEDIA_TYPES = {
    TranscriptFormat.TEXT: "text/plain",
    TranscriptFormat.SUBTITLE: "application/x-subrip",
}

# ── Error codes ───────────────────────────────────────────────────────
class ErrorCode:
    # Non-retryable
    INVALID_INPUT = "ERR_INVALID_INPUT"
    JOB_START = "ERR_JOB_START"
    JOB_FAILED = "ERR_JOB_FAILED"
    TRANSCRIPT_NOT_FOUND = "ERR_TRANSCRIPT_NOT_FOUND"
    PROCESSING_CANCELLED = "ERR_PROCESSING_CANCELLED"
    PROCESSING_TIMEOUT = "ERR_PROCESSING_TIMEOUT"
    PERSISTENCE = "ERR_PERSISTENCE"

    # Retryable
    UPLOAD_FAILED = "ERR_UPLOAD_FAILED"
    REMOTE_SERVICE = "ERR_REMOTE_SERVICE"
    NETWORK_TRANSIENT = "ERR_NETWORK_TRANSIENT"

    UNEXPECTED = "ERR_UNEXPECTED"

RETRYABLE_ERRORS = {
    ErrorCode.UPLOAD_FAILED,
    ErrorCode.REMOTE_SERVICE,
    ErrorCode.NETWORK_TRANSIENT,
}

# HTTP statuses the analysis client retries before giving up
RETRYABLE_HTTP_STATUSES = {429, 500, 502, 503, 504}

# ── Analysis service ──────────────────────────────────────────────────
DEFAULT_ANALYZER_ID = "TranscriptAnalyzer"
DEFAULT_API_VERSION = "2024-12-01-preview"
SUBSCRIPTION_KEY_HEADER = "Ocp-Apim-Subscription-Key"

class AnalysisState:
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"

# Raw status strings reported by the service
SERVICE_STATUS_SUCCEEDED = "succeeded"
SERVICE_STATUS_FAILED = "failed"

# ── Polling defaults ─────────────────────────────────────────────────
POLL_INTERVAL_SEC = 5.0
POLL_BACKOFF_FACTOR = 1.0
MAX_POLL_INTERVAL_SEC = 60.0
MAX_POLL_ATTEMPTS = 720
MAX_PROCESSING_SEC = 3600.0
REQUEST_TIMEOUT_SEC = 30.0
MAX_REQUEST_RETRIES = 4
RETRY_BASE_DELAY_SEC = 2.0      # doubles each retry with jitter

# ── Progress mapping ─────────────────────────────────────────────────
PROGRESS_COMPLETE = 100
PROCESSING_PROGRESS_STEP = 5
PROCESSING_PROGRESS_CAP = 95     # held until the job is confirmed succeeded

# ── Transcript text ──────────────────────────────────────────────────
VTT_HEADER = "WEBVTT"
DEFAULT_LANGUAGE = "en"
PLACEHOLDER_CUE_END_MS = 5000

# ── Uploads ──────────────────────────────────────────────────────────
UPLOAD_CHUNK_BYTES = 4 * 1024 * 1024
VIDEO_MIME_PREFIX = "video/"

# Characters forbidden in file names
UNSAFE_FILENAME_CHARS = r'[<>:"/\\|?*\x00-\x1f]'
MAX_FILENAME_LEN = 200
