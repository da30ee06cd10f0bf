"""
Luhive Events: Centralized configuration.

Loads all settings from .env and validates required keys.
This module is the foundation for every other module in the project.
"""

from __future__ import annotations

import os
import sys
from pathlib import Path

from dotenv import load_dotenv
from pydantic import BaseModel, field_validator

# Load .env from project root (two levels up from luhive/config.py)
_ENV_PATH = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(_ENV_PATH)


class Settings(BaseModel):
    """Application settings loaded from environment variables."""

    # Supabase (auth + Postgres via PostgREST)
    SUPABASE_URL: str
    SUPABASE_ANON_KEY: str
    SUPABASE_SERVICE_ROLE_KEY: str = ""

    # Google Forms OAuth client
    GOOGLE_FORMS_CLIENT_ID: str = ""
    GOOGLE_FORMS_CLIENT_SECRET: str = ""
    GOOGLE_FORMS_REDIRECT_URI: str = ""

    # Transactional email (Resend)
    RESEND_API_KEY: str = ""
    EMAIL_FROM: str = "Luhive <events@updates.luhive.com>"

    # Web
    PUBLIC_BASE_URL: str = "http://localhost:5173"
    CORS_ORIGINS: list[str] = []
    DEFAULT_RETURN_TO: str = "/dashboard"

    # Registration workflow
    COUNTDOWN_INTERVAL_SECONDS: int = 60
    VERIFICATION_TOKEN_TTL_HOURS: int = 24

    LOG_LEVEL: str = "INFO"

    @field_validator("CORS_ORIGINS", mode="before")
    @classmethod
    def parse_origins(cls, v: str | list[str]) -> list[str]:
        if isinstance(v, list):
            return v
        if isinstance(v, str) and v.strip():
            return [origin.strip() for origin in v.split(",") if origin.strip()]
        return []

    @field_validator("COUNTDOWN_INTERVAL_SECONDS", "VERIFICATION_TOKEN_TTL_HOURS", mode="before")
    @classmethod
    def parse_int(cls, v: str | int) -> int:
        return int(v)


def _load_settings() -> Settings:
    """Load settings from environment, validating required keys."""
    supabase_url = os.getenv("SUPABASE_URL", "")
    anon_key = os.getenv("SUPABASE_ANON_KEY", "")

    if not supabase_url or supabase_url.startswith("your-"):
        print("ERROR: SUPABASE_URL is missing or not set in .env", file=sys.stderr)
        sys.exit(1)

    if not anon_key or anon_key.startswith("your-"):
        print("ERROR: SUPABASE_ANON_KEY is missing or not set in .env", file=sys.stderr)
        sys.exit(1)

    return Settings(
        SUPABASE_URL=supabase_url.rstrip("/"),
        SUPABASE_ANON_KEY=anon_key,
        SUPABASE_SERVICE_ROLE_KEY=os.getenv("SUPABASE_SERVICE_ROLE_KEY", ""),
        GOOGLE_FORMS_CLIENT_ID=os.getenv("GOOGLE_FORMS_CLIENT_ID", ""),
        GOOGLE_FORMS_CLIENT_SECRET=os.getenv("GOOGLE_FORMS_CLIENT_SECRET", ""),
        GOOGLE_FORMS_REDIRECT_URI=os.getenv("GOOGLE_FORMS_REDIRECT_URI", ""),
        RESEND_API_KEY=os.getenv("RESEND_API_KEY", ""),
        EMAIL_FROM=os.getenv("EMAIL_FROM", "Luhive <events@updates.luhive.com>"),
        PUBLIC_BASE_URL=os.getenv("PUBLIC_BASE_URL", "http://localhost:5173"),
        CORS_ORIGINS=os.getenv("CORS_ORIGINS", ""),
        DEFAULT_RETURN_TO=os.getenv("DEFAULT_RETURN_TO", "/dashboard"),
        COUNTDOWN_INTERVAL_SECONDS=os.getenv("COUNTDOWN_INTERVAL_SECONDS", "60"),
        VERIFICATION_TOKEN_TTL_HOURS=os.getenv("VERIFICATION_TOKEN_TTL_HOURS", "24"),
        LOG_LEVEL=os.getenv("LOG_LEVEL", "INFO"),
    )


# Singleton, imported by all other modules as:
#   from luhive.config import settings
settings = _load_settings()
