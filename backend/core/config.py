"""
Centralized configuration for the label-analysis backend.
All values are read lazily from the environment so tests can patch them.
"""
import os
import logging
from pathlib import Path

logger = logging.getLogger(__name__)

# backend/core/config.py -> parent=core, parent.parent=backend
_BACKEND_DIR = Path(__file__).resolve().parent.parent


def get_tasks_schema_path() -> Path:
    """DDL for the durable task table (backend/sql/tasks.sql)."""
    return _BACKEND_DIR / "sql" / "tasks.sql"


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning("CONFIG invalid integer %s=%r, using %s", name, raw, default)
        return default


def _env_flag(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in ("1", "true", "yes")


# --- Durable task backend (Supabase) ---
def get_supabase_url() -> str:
    return os.environ.get("SUPABASE_URL", "").strip()


def get_supabase_key() -> str:
    return os.environ.get("SUPABASE_SERVICE_ROLE_KEY", "").strip()


def get_tasks_table() -> str:
    return os.environ.get("SUPABASE_TASKS_TABLE", "tasks").strip() or "tasks"


def durable_store_configured() -> bool:
    return bool(get_supabase_url() and get_supabase_key())


# --- OCR provider (Baidu) ---
def get_baidu_ocr_api_key() -> str:
    return os.environ.get("BAIDU_OCR_API_KEY", "").strip()


def get_baidu_ocr_secret_key() -> str:
    return os.environ.get("BAIDU_OCR_SECRET_KEY", "").strip()


def ocr_configured() -> bool:
    return bool(get_baidu_ocr_api_key() and get_baidu_ocr_secret_key())


def get_ocr_fallback_enabled() -> bool:
    return _env_flag("OCR_FALLBACK_ENABLED", True)


# --- AI provider (DeepSeek) ---
def get_deepseek_api_key() -> str:
    return os.environ.get("DEEPSEEK_API_KEY", "").strip()


def get_deepseek_url() -> str:
    return os.environ.get("DEEPSEEK_API_URL", "https://api.deepseek.com/v1/chat/completions")


def get_deepseek_model() -> str:
    return os.environ.get("DEEPSEEK_MODEL", "deepseek-chat")


def ai_configured() -> bool:
    return bool(get_deepseek_api_key())


# Timeouts (seconds)
STORAGE_TIMEOUT = _env_int("STORAGE_TIMEOUT", 10)
OCR_TIMEOUT = _env_int("OCR_TIMEOUT", 15)
AI_TIMEOUT = _env_int("AI_TIMEOUT", 30)
PROVIDER_MAX_RETRIES = _env_int("PROVIDER_MAX_RETRIES", 2)
PIPELINE_TIMEOUT = _env_int("PIPELINE_TIMEOUT", 180)


def provider_time_budget(timeout: float, max_retries: int, requests_per_call: int = 1,
                         initial_backoff: float = 1.0) -> float:
    """Worst-case seconds an adapter spends (all retries and backoff) before it falls back."""
    attempts = max(1, max_retries)
    backoff = sum(initial_backoff * (2 ** a) for a in range(attempts - 1))
    return requests_per_call * (timeout * attempts + backoff)


def pipeline_provider_budget() -> float:
    # OCR: token request + recognition request
    ocr = provider_time_budget(OCR_TIMEOUT, PROVIDER_MAX_RETRIES, requests_per_call=2)
    ai = provider_time_budget(AI_TIMEOUT, PROVIDER_MAX_RETRIES)
    return ocr + ai


# --- Upload policy ---
ALLOWED_IMAGE_TYPES = ("image/jpeg", "image/png", "image/gif", "image/webp")


def get_max_upload_bytes() -> int:
    return _env_int("MAX_UPLOAD_BYTES", 8 * 1024 * 1024)


# --- Task lifecycle ---
GC_INTERVAL = _env_int("GC_INTERVAL", 30 * 60)
MEMORY_TASK_TTL = _env_int("MEMORY_TASK_TTL", 60 * 60)
DURABLE_TASK_TTL = _env_int("DURABLE_TASK_TTL", 24 * 60 * 60)


# --- Startup logging ---
def log_config() -> None:
    logger.info(
        "CONFIG: durable_store=%s tasks_table=%s ocr=%s ocr_fallback=%s ai=%s ai_model=%s "
        "max_upload_bytes=%d pipeline_timeout=%ds gc_interval=%ds memory_ttl=%ds durable_ttl=%ds",
        durable_store_configured(), get_tasks_table(),
        ocr_configured(), get_ocr_fallback_enabled(),
        ai_configured(), get_deepseek_model(),
        get_max_upload_bytes(), PIPELINE_TIMEOUT, GC_INTERVAL,
        MEMORY_TASK_TTL, DURABLE_TASK_TTL,
    )
    if not ai_configured():
        logger.warning("CONFIG: DEEPSEEK_API_KEY not set, rule-based scoring will be used")
    budget = pipeline_provider_budget()
    if PIPELINE_TIMEOUT and PIPELINE_TIMEOUT < budget:
        logger.warning(
            "CONFIG: PIPELINE_TIMEOUT=%ds is below the provider retry budget %.0fs; "
            "slow OCR will fail tasks and slow AI scoring will fall back to rules",
            PIPELINE_TIMEOUT, budget,
        )
