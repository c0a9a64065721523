"""
Runtime configuration, read from the environment (and a local .env file).
"""
import logging
import os
from dataclasses import dataclass, field
from typing import Optional

DEFAULT_BASE_URL = "https://generativelanguage.googleapis.com"
DEFAULT_TIMEOUT_SECONDS = 30.0
DEFAULT_MAX_IMAGE_BYTES = 10 * 1024 * 1024


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    return float(value)


@dataclass
class Settings:
    # --- Completion service ---
    api_key: Optional[str] = None
    model: str = "gemini-2.0-flash"
    vision_model: str = "gemini-2.0-flash"
    base_url: str = DEFAULT_BASE_URL
    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS

    # --- Server ---
    host: str = "0.0.0.0"
    port: int = 3000
    cors_origins: list[str] = field(default_factory=lambda: ["*"])

    # --- Records ---
    record_store_url: str = "memory://"
    max_memory_records: int = 1000

    # --- Limits ---
    max_image_bytes: int = DEFAULT_MAX_IMAGE_BYTES

    # --- Logging ---
    log_json: bool = True
    log_level: int = logging.INFO

    @classmethod
    def from_env(cls) -> "Settings":
        origins = os.getenv("CORS_ORIGINS", "*")
        level_name = os.getenv("LOG_LEVEL", "INFO").upper()
        return cls(
            api_key=os.getenv("GEMINI_API_KEY") or os.getenv("GOOGLE_API_KEY") or None,
            model=os.getenv("GEMINI_MODEL", cls.model),
            vision_model=os.getenv("GEMINI_VISION_MODEL", cls.vision_model),
            base_url=os.getenv("GEMINI_BASE_URL", DEFAULT_BASE_URL),
            timeout_seconds=_env_float("COMPLETION_TIMEOUT_SECONDS", DEFAULT_TIMEOUT_SECONDS),
            host=os.getenv("HOST", cls.host),
            port=int(os.getenv("PORT", "3000")),
            cors_origins=[o.strip() for o in origins.split(",") if o.strip()],
            record_store_url=os.getenv("RECORD_STORE_URL", "memory://"),
            max_memory_records=int(os.getenv("RECORD_STORE_MAX_RECORDS", "1000")),
            max_image_bytes=int(os.getenv("MAX_IMAGE_BYTES", str(DEFAULT_MAX_IMAGE_BYTES))),
            log_json=_env_bool("LOG_JSON", True),
            log_level=getattr(logging, level_name, logging.INFO),
        )
