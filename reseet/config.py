"""
Runtime configuration loaded from the environment (and an optional .env file).
"""

import os
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field

DEFAULT_EXTRACTION_BASE_URL = "https://openrouter.ai/api/v1"
DEFAULT_EXTRACTION_MODEL = "google/gemini-2.0-flash-001"


class Settings(BaseModel):
    """Tunable knobs for the receipt core."""
    openrouter_api_key: Optional[str] = None
    extraction_base_url: str = DEFAULT_EXTRACTION_BASE_URL
    extraction_model: str = DEFAULT_EXTRACTION_MODEL
    extraction_timeout: float = Field(default=60.0, gt=0)
    db_path: str = "reseet.db"
    undo_window_seconds: float = Field(default=5.0, gt=0)
    activation_radius: float = Field(default=100.0, gt=0)
    log_level: str = "INFO"


def load_settings() -> Settings:
    """Reads settings from the process environment after loading .env."""
    load_dotenv()
    values = {
        'openrouter_api_key': os.getenv('OPENROUTER_API_KEY'),
        'extraction_base_url': os.getenv('RESEET_EXTRACTION_BASE_URL'),
        'extraction_model': os.getenv('RESEET_EXTRACTION_MODEL'),
        'extraction_timeout': os.getenv('RESEET_EXTRACTION_TIMEOUT'),
        'db_path': os.getenv('RESEET_DB_PATH'),
        'undo_window_seconds': os.getenv('RESEET_UNDO_WINDOW_SECONDS'),
        'activation_radius': os.getenv('RESEET_ACTIVATION_RADIUS'),
        'log_level': os.getenv('RESEET_LOG_LEVEL'),
    }
    # Unset variables fall back to the model defaults
    return Settings(**{k: v for k, v in values.items() if v not in (None, "")})
