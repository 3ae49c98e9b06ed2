"""
Planner Agent — Centralized configuration.

Loads all settings from .env and validates required keys.
This module is the foundation for every other module in the project.
"""

from __future__ import annotations

import os
import sys
from pathlib import Path

from dotenv import load_dotenv
from pydantic import BaseModel, field_validator

# Load .env from project root (two levels up from src/config.py)
_ENV_PATH = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(_ENV_PATH)


class Settings(BaseModel):
    """Application settings loaded from environment variables."""

    # LLM, provider-agnostic (openai, anthropic)
    LLM_PROVIDER: str = "openai"
    LLM_MODEL: str = ""          # empty → smart default per provider
    LLM_API_KEY: str
    LLM_TEMPERATURE: float = 0.7
    LLM_TIMEOUT_SECONDS: float = 60.0

    # Orchestration loop
    AGENT_MAX_ITERATIONS: int = 7
    REQUEST_TIMEOUT_SECONDS: float = 120.0

    # SQLite row store
    DATABASE_PATH: str = "data/planner.db"

    # Wall-clock strings from the model are interpreted in this zone
    TIMEZONE: str = "UTC"

    # "development" exposes the reasoning transcript in responses
    ENVIRONMENT: str = "production"

    # Security: empty disables the bearer check
    API_TOKEN: str = ""

    # Google Programmable Search (optional, used by search_web_resources)
    GOOGLE_SEARCH_API_KEY: str = ""
    GOOGLE_SEARCH_ENGINE_ID: str = ""

    # Legacy habits are migrated into goals due this many days out
    HABIT_MIGRATION_HORIZON_DAYS: int = 90

    @field_validator("AGENT_MAX_ITERATIONS", mode="before")
    @classmethod
    def parse_max_iterations(cls, v: str | int) -> int:
        value = int(v)
        if not 1 <= value <= 20:
            raise ValueError(f"AGENT_MAX_ITERATIONS must be between 1 and 20, got {value}")
        return value

    @field_validator("LLM_PROVIDER", mode="before")
    @classmethod
    def normalize_provider(cls, v: str) -> str:
        return (v or "openai").strip().lower()

    @property
    def is_development(self) -> bool:
        return self.ENVIRONMENT.strip().lower() == "development"


def _load_settings() -> Settings:
    """Load settings from environment, validating required keys."""
    llm_api_key = os.getenv("LLM_API_KEY", "")

    if not llm_api_key or llm_api_key.startswith("your-"):
        print("ERROR: LLM_API_KEY is missing or not set in .env", file=sys.stderr)
        sys.exit(1)

    return Settings(
        LLM_PROVIDER=os.getenv("LLM_PROVIDER", "openai"),
        LLM_MODEL=os.getenv("LLM_MODEL", ""),
        LLM_API_KEY=llm_api_key,
        LLM_TEMPERATURE=os.getenv("LLM_TEMPERATURE", "0.7"),
        LLM_TIMEOUT_SECONDS=os.getenv("LLM_TIMEOUT_SECONDS", "60"),
        AGENT_MAX_ITERATIONS=os.getenv("AGENT_MAX_ITERATIONS", "7"),
        REQUEST_TIMEOUT_SECONDS=os.getenv("REQUEST_TIMEOUT_SECONDS", "120"),
        DATABASE_PATH=os.getenv("DATABASE_PATH", "data/planner.db"),
        TIMEZONE=os.getenv("TIMEZONE", "UTC"),
        ENVIRONMENT=os.getenv("ENVIRONMENT", "production"),
        API_TOKEN=os.getenv("API_TOKEN", ""),
        GOOGLE_SEARCH_API_KEY=os.getenv("GOOGLE_SEARCH_API_KEY", ""),
        GOOGLE_SEARCH_ENGINE_ID=os.getenv("GOOGLE_SEARCH_ENGINE_ID", ""),
        HABIT_MIGRATION_HORIZON_DAYS=os.getenv("HABIT_MIGRATION_HORIZON_DAYS", "90"),
    )


# Singleton, imported by all other modules as:
#   from src.config import settings
settings = _load_settings()
