"""Centralized configuration loader for Mira."""
from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

from MIRA_ANALYST.runtime.errors import MissingCredentials


BASE_DIR = Path(__file__).resolve().parent.parent
ENV_PATH = BASE_DIR.parent / ".env"

load_dotenv(ENV_PATH)

DEFAULT_GEMINI_MODEL = "gemini-2.0-flash"


@dataclass
class Settings:
    google_api_key: str
    e2b_api_key: str
    exa_api_key: Optional[str] = None
    e2b_template_id: Optional[str] = None
    gemini_model: str = DEFAULT_GEMINI_MODEL

    min_charts: int = 3
    max_rounds: int = 10
    tool_output_cap: int = 2000
    min_summary_length: int = 50

    dataset_path: str = "/home/user/data.csv"
    sandbox_timeout: int = 300  # sandbox lifetime, seconds
    sandbox_request_timeout: float = 45.0
    sandbox_setup_timeout: float = 30.0  # must stay below sandbox_request_timeout

    context_timeout: float = 600.0
    context_share: float = 0.5  # context fetch gets at most this fraction of the run ceiling
    run_timeout: float = 300.0


def _optional(name: str) -> Optional[str]:
    value = os.getenv(name)
    if value is None:
        return None
    value = value.strip()
    return value or None


def get_settings() -> Settings:
    google_api_key = _optional("GOOGLE_API_KEY")
    e2b_api_key = _optional("E2B_API_KEY")

    missing = [
        key
        for key, value in (
            ("GOOGLE_API_KEY", google_api_key),
            ("E2B_API_KEY", e2b_api_key),
        )
        if not value
    ]
    if missing:
        raise MissingCredentials(
            "Missing required environment variables for Mira: " + ", ".join(missing)
        )

    return Settings(
        google_api_key=google_api_key,
        e2b_api_key=e2b_api_key,
        exa_api_key=_optional("EXA_API_KEY"),
        e2b_template_id=_optional("E2B_TEMPLATE_ID"),
        gemini_model=_optional("GEMINI_MODEL") or DEFAULT_GEMINI_MODEL,
    )
