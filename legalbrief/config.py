"""
Configuration settings for Legal Brief.
"""
import os
from pathlib import Path
from dotenv import load_dotenv

# Load environment variables from the project .env file
load_dotenv(Path(__file__).parent.parent / ".env")

BASE_DIR = Path(__file__).parent.resolve()

# Gemini API configuration
# Prefer explicit GEMINI_API_KEY, fallback to GOOGLE_API_KEY if that is what the host exports.
GEMINI_API_KEY = os.getenv("GEMINI_API_KEY") or os.getenv("GOOGLE_API_KEY") or ""
GEMINI_API_BASE_URL = os.getenv(
    "GEMINI_API_BASE_URL",
    "https://generativelanguage.googleapis.com/v1beta/models",
)

# Model catalogue with page-limit hints
MODELS = {
    "gemini-2.0-flash": {
        "name": "Gemini 2.0 Flash Lite (Recommended)",
        "max_pages": 10,
        "daily_limit": 1500,
        "description": "Fastest, best for short documents",
        "endpoint": "gemini-2.0-flash:generateContent",
    },
    "gemini-1.5-flash": {
        "name": "Gemini 2.5 Flash",
        "max_pages": 40,
        "daily_limit": 1000,
        "description": "Balanced speed and capability for medium documents",
        "endpoint": "gemini-1.5-flash:generateContent",
    },
    "gemini-1.5-pro": {
        "name": "Gemini 2.5 Pro",
        "max_pages": 75,
        "daily_limit": 50,
        "description": "Most capable for complex legal documents",
        "endpoint": "gemini-1.5-pro:generateContent",
    },
}
DEFAULT_MODEL = os.getenv("DEFAULT_MODEL", "gemini-2.0-flash")

# Retry settings (delay before attempt n+1 is BASE_DELAY_MS * 2^(n-1))
MAX_RETRIES = int(os.getenv("MAX_RETRIES", "3"))
BASE_DELAY_MS = int(os.getenv("BASE_DELAY_MS", "3000"))
MODEL_REQUEST_TIMEOUT = float(os.getenv("MODEL_REQUEST_TIMEOUT", "120"))

# Generation settings
SUMMARY_TEMPERATURE = 0.3
SUMMARY_MAX_OUTPUT_TOKENS = 2048
ANSWER_TEMPERATURE = 0.4
ANSWER_MAX_OUTPUT_TOKENS = 1024

# Document processing
OCR_RENDER_SCALE = 2.0  # Page raster scale against the native viewport
MAX_UPLOAD_BYTES = int(os.getenv("MAX_UPLOAD_BYTES", str(25 * 1024 * 1024)))

# Conversation
MAX_HISTORY_TURNS = int(os.getenv("MAX_HISTORY_TURNS", "20"))  # 0 disables the window

# Session registry (0 disables either limit)
MAX_SESSIONS = int(os.getenv("MAX_SESSIONS", "100"))
SESSION_IDLE_TTL_SECONDS = float(os.getenv("SESSION_IDLE_TTL_SECONDS", "3600"))

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")


def is_configured() -> bool:
    """Check whether an API key is available."""
    return bool(GEMINI_API_KEY and GEMINI_API_KEY.strip())
