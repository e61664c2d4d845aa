import logging
import os
from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger(__name__)


def _get_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() == "true"


# Browser Configuration
BROWSER_HEADLESS = _get_bool("BROWSER_HEADLESS", "true")
VIEWPORT_WIDTH = int(os.getenv("BROWSER_VIEWPORT_WIDTH", "1920"))
VIEWPORT_HEIGHT = int(os.getenv("BROWSER_VIEWPORT_HEIGHT", "1080"))
_max_browsers_raw = int(os.getenv("MAX_CONCURRENT_BROWSERS", "3"))
MAX_CONCURRENT_BROWSERS = max(1, min(20, _max_browsers_raw))  # Clamp to 1-20 range

# Per-action and per-navigation timeout handed to Playwright
DEFAULT_TIMEOUT_MS = int(os.getenv("DEFAULT_TIMEOUT_MS", "30000"))
# Pause after the last step before the final screenshot
POST_RUN_SETTLE_MS = int(os.getenv("POST_RUN_SETTLE_MS", "3000"))

# Artifacts (screenshots, videos, downloads) and the file-backed execution store
UPLOAD_DIR = os.getenv("UPLOAD_DIR", "./uploads")
UPLOAD_URL_PREFIX = os.getenv("UPLOAD_URL_PREFIX", "/uploads")
DATA_DIR = os.getenv("DATA_DIR", "./data")

# Queue Configuration
REDIS_HOST = os.getenv("REDIS_HOST", "localhost")
REDIS_PORT = int(os.getenv("REDIS_PORT", "6379"))
REDIS_PASSWORD = os.getenv("REDIS_PASSWORD") or None
REDIS_URL = os.getenv(
    "REDIS_URL",
    f"redis://{':' + REDIS_PASSWORD + '@' if REDIS_PASSWORD else ''}{REDIS_HOST}:{REDIS_PORT}/0",
)
QUEUE_NAME = os.getenv("QUEUE_NAME", "automation")

JOB_ATTEMPTS = int(os.getenv("JOB_ATTEMPTS", "3"))
JOB_BACKOFF_DELAY_MS = int(os.getenv("JOB_BACKOFF_DELAY_MS", "2000"))  # exponential base
REMOVE_ON_COMPLETE = int(os.getenv("REMOVE_ON_COMPLETE", "100"))  # Keep last 100 completed jobs
REMOVE_ON_FAIL = int(os.getenv("REMOVE_ON_FAIL", "200"))  # Keep last 200 failed jobs
LOCK_DURATION_MS = int(os.getenv("LOCK_DURATION_MS", "30000"))
STALLED_INTERVAL_SECONDS = float(os.getenv("STALLED_INTERVAL_SECONDS", "30"))
WORKER_POLL_INTERVAL_SECONDS = float(os.getenv("WORKER_POLL_INTERVAL_SECONDS", "1"))
_worker_concurrency_raw = int(os.getenv("WORKER_CONCURRENCY", str(MAX_CONCURRENT_BROWSERS)))
if _worker_concurrency_raw > MAX_CONCURRENT_BROWSERS:
    logger.warning(
        f"WORKER_CONCURRENCY={_worker_concurrency_raw} exceeds MAX_CONCURRENT_BROWSERS="
        f"{MAX_CONCURRENT_BROWSERS}; clamping to {MAX_CONCURRENT_BROWSERS}"
    )
WORKER_CONCURRENCY = max(1, min(MAX_CONCURRENT_BROWSERS, _worker_concurrency_raw))  # Clamp to 1-MAX_CONCURRENT_BROWSERS

# Script planner (prompt -> action list)
SCRIPT_PROVIDER = os.getenv("SCRIPT_PROVIDER", "ollama").lower()  # "ollama", "claude", "none"
ANTHROPIC_API_KEY = os.getenv("ANTHROPIC_API_KEY")
MODEL_HAIKU = "claude-haiku-4-5"
DEFAULT_MODEL = MODEL_HAIKU
AI_MODEL = os.getenv("AI_MODEL", DEFAULT_MODEL)
OLLAMA_URL = os.getenv("OLLAMA_URL", "http://localhost:11434")
OLLAMA_MODEL = os.getenv("OLLAMA_MODEL", "llama3.2-vision")
PLANNER_TIMEOUT_SECONDS = float(os.getenv("PLANNER_TIMEOUT_SECONDS", "120"))

# Logging Configuration
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()  # DEBUG, INFO, WARNING, ERROR
LOG_DIR = os.getenv("LOG_DIR", "./logs")
LOG_TO_FILE = _get_bool("LOG_TO_FILE", "true")
LOG_MAX_FILES = int(os.getenv("LOG_MAX_FILES", "14"))  # Days of rotated logs to keep
