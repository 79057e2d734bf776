"""Environment-driven settings."""

import os
from dataclasses import dataclass

from dotenv import load_dotenv

from scene_rehearsal.constants import DATA_DIR, GEMINI_MODEL, FREE_DAILY_LIMIT


@dataclass
class Settings:
    gemini_api_key: str | None
    model: str
    data_dir: str
    free_daily_limit: int


def load_settings(env_file: str | None = None) -> Settings:
    """Read settings from the environment, after loading a .env file if present."""
    load_dotenv(env_file)
    limit = os.getenv("REHEARSE_FREE_DAILY_LIMIT")
    return Settings(
        gemini_api_key=os.getenv("GEMINI_API_KEY") or os.getenv("GOOGLE_API_KEY"),
        model=os.getenv("REHEARSE_MODEL", GEMINI_MODEL),
        data_dir=os.getenv("REHEARSE_DATA_DIR", DATA_DIR),
        free_daily_limit=int(limit) if limit and limit.isdigit() else FREE_DAILY_LIMIT,
    )


def validate_settings(settings: Settings) -> list[str]:
    """Return warnings for settings that disable features."""
    warnings = []
    if not settings.gemini_api_key:
        warnings.append("GEMINI_API_KEY or GOOGLE_API_KEY not set — script generation and dictation are disabled")
    return warnings
