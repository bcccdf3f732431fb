# settings.py
import os

from dotenv import load_dotenv

# if config.env exists, load it
if os.path.exists("config.env"):
    load_dotenv("config.env")


def env_int(name: str, default: int) -> int:
    raw = os.environ.get(name, "")
    try:
        return int(raw) if raw.strip() else default
    except ValueError:
        return default


def env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name, "").strip().lower()
    if not raw:
        return default
    return raw in ("1", "true", "yes", "on")


DB_PATH = os.environ.get("DB_PATH", "data/survey.db")
QUESTIONS_PATH = os.environ.get("QUESTIONS_PATH", "data/questions.json")
ADMIN_KEY = os.environ.get("ADMIN_KEY", "")
ADMIN_TOKEN_TTL_SECONDS = env_int("ADMIN_TOKEN_TTL_SECONDS", 3600)
LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

# Attention gating
MIN_VIEW_TIME_MS = env_int("MIN_VIEW_TIME_MS", 3000)

# External window tracking
WINDOW_PROBE_INTERVAL_MS = env_int("WINDOW_PROBE_INTERVAL_MS", 1000)
FOCUS_DEBOUNCE_MS = env_int("FOCUS_DEBOUNCE_MS", 100)
LOAD_SETTLE_MS = env_int("LOAD_SETTLE_MS", 200)
WINDOW_HEARTBEAT_TIMEOUT_MS = env_int("WINDOW_HEARTBEAT_TIMEOUT_MS", 5000)
REFRESH_INTERVAL_MS = env_int("REFRESH_INTERVAL_MS", 1000)

# Question sessions with no window and no request for this long are saved and dropped
SESSION_IDLE_TIMEOUT_MS = env_int("SESSION_IDLE_TIMEOUT_MS", 30 * 60 * 1000)

# Submission
CAPTCHA_REQUIRED = env_bool("CAPTCHA_REQUIRED", True)
CAPTCHA_MAX_AGE_SECONDS = env_int("CAPTCHA_MAX_AGE_SECONDS", 300)
DRAFT_MAX_AGE_DAYS = env_int("DRAFT_MAX_AGE_DAYS", 7)
