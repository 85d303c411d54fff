import os
import logging

from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger(__name__)

BASE_DIR = os.path.abspath(os.path.dirname(__file__))


def _get_int_env(var_name: str, default: int) -> int:
    """Safely parse integer environment variables with defaults."""
    value = os.getenv(var_name)
    if not value:
        return default
    try:
        return int(value)
    except ValueError:
        logger.warning("%s=%r is not an integer; using %s", var_name, value, default)
        return default


def _get_float_env(var_name: str, default: float) -> float:
    value = os.getenv(var_name)
    if not value:
        return default
    try:
        return float(value)
    except ValueError:
        logger.warning("%s=%r is not a number; using %s", var_name, value, default)
        return default


class Config:
    """Application configuration."""
    SUPABASE_URL = os.getenv("SUPABASE_URL")
    SUPABASE_ANON_KEY = os.getenv("SUPABASE_ANON_KEY")
    SUPABASE_STORAGE_BUCKET = os.getenv("SUPABASE_STORAGE_BUCKET", "user-uploads")
    SUPABASE_TIMEOUT = _get_int_env("SUPABASE_TIMEOUT", 15)
    SUPABASE_ENABLED = bool(SUPABASE_URL and SUPABASE_ANON_KEY)

    DATABASE_URL = os.getenv(
        "DATABASE_URL",
        f"sqlite:///{os.path.join(BASE_DIR, 'instance', 'bizdesk.db')}",
    )
    LOCAL_UPLOAD_DIR = os.getenv("LOCAL_UPLOAD_DIR", os.path.join(BASE_DIR, "instance", "uploads"))

    APP_TIMEZONE = os.getenv("APP_TIMEZONE", "Africa/Maputo")
    DEADLINE_CHECK_INTERVAL_SECONDS = _get_int_env("DEADLINE_CHECK_INTERVAL_SECONDS", 3600)
    PROFILE_LOAD_TIMEOUT_SECONDS = _get_float_env("PROFILE_LOAD_TIMEOUT_SECONDS", 5.0)
    LOADING_SAFETY_TIMEOUT_SECONDS = _get_float_env("LOADING_SAFETY_TIMEOUT_SECONDS", 20.0)
    ONBOARDING_AUTH_RETRIES = _get_int_env("ONBOARDING_AUTH_RETRIES", 3)
    ONBOARDING_RETRY_DELAY_SECONDS = _get_float_env("ONBOARDING_RETRY_DELAY_SECONDS", 1.0)
    WORKSPACE_IDLE_TIMEOUT_SECONDS = _get_int_env("WORKSPACE_IDLE_TIMEOUT_SECONDS", 2 * 3600)
    WORKSPACE_SWEEP_INTERVAL_SECONDS = _get_int_env("WORKSPACE_SWEEP_INTERVAL_SECONDS", 300)
    # Full re-fetch for writes made outside this process (0 disables).
    SYNC_RECONCILE_INTERVAL_SECONDS = _get_int_env("SYNC_RECONCILE_INTERVAL_SECONDS", 60)

    SECRET_KEY = os.getenv("SECRET_KEY")
    APP_LOG_DIR = os.getenv("APP_LOG_DIR")
    MAX_CONTENT_LENGTH = _get_int_env("MAX_CONTENT_LENGTH", 4 * 1024 * 1024)

    GEMINI_API_KEY = os.getenv("GEMINI_API_KEY")
    GEMINI_MODEL = os.getenv("GEMINI_MODEL", "gemini-2.0-flash")

    REALTIME_HEARTBEAT_INTERVAL = _get_int_env("REALTIME_HEARTBEAT_INTERVAL", 15)
    SLOW_REQUEST_THRESHOLD_MS = _get_float_env("SLOW_REQUEST_THRESHOLD_MS", 750.0)

    @classmethod
    def validate(cls) -> None:
        if not cls.SUPABASE_ENABLED:
            logger.warning(
                "SUPABASE_URL/SUPABASE_ANON_KEY not set - using local SQLite store in fallback mode (%s)",
                cls.DATABASE_URL,
            )
        if not cls.GEMINI_API_KEY:
            logger.warning("GEMINI_API_KEY not set - insight generation disabled")

    @classmethod
    def as_dict(cls) -> dict:
        return {
            key: getattr(cls, key)
            for key in dir(cls)
            if key.isupper() and not key.startswith("_")
        }
