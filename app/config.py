"""Application configuration settings."""
from __future__ import annotations

import os
from decimal import Decimal
from functools import lru_cache

from pydantic import BaseModel, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# --- Runtime toggles -----------------------------------------------------
# Execution environment: "dev" | "staging" | "prod"
ENV = os.getenv("GDH_ENV", "dev").lower()


class Settings(BaseSettings):
    """Environment configuration for the Good Deed Hub backend."""

    app_env: str = ENV
    database_url: str = "sqlite:///gooddeedhub.db"
    SECRET_KEY: str = "change-me"
    CORS_ALLOW_ORIGINS: list[str] = [
        "http://localhost:5173",
        "http://localhost:3000",
    ]
    SENTRY_DSN: str | None = None
    PROMETHEUS_ENABLED: bool = True
    ALLOW_DB_CREATE_ALL: bool = False

    # --- Stripe ------------------------------------------------------------
    STRIPE_ENABLED: bool = False
    STRIPE_SECRET_KEY: str | None = None
    STRIPE_WEBHOOK_SECRET: str | None = None

    # --- Donations ---------------------------------------------------------
    PAYMENT_CURRENCY: str = "inr"
    MIN_DONATION_AMOUNT: int = 100
    PLATFORM_FEE_RATE: Decimal = Decimal("0.05")
    FRONTEND_URL: str = "http://localhost:5173"

    # --- Pending donation sweeper -----------------------------------------
    SCHEDULER_ENABLED: bool = False
    PENDING_SWEEP_INTERVAL_MINUTES: int = 15
    PENDING_SWEEP_MIN_AGE_MINUTES: int = 30

    model_config = SettingsConfigDict(
        env_file=".env", env_prefix="", env_file_encoding="utf-8"
    )

    @field_validator("STRIPE_SECRET_KEY", "STRIPE_WEBHOOK_SECRET")
    @classmethod
    def _strip_empty_secret(cls, value: str | None) -> str | None:
        """Normalise empty Stripe secrets to ``None`` for easier validation."""

        if value is None:
            return None
        cleaned = value.strip()
        return cleaned or None

    @field_validator("PAYMENT_CURRENCY")
    @classmethod
    def _lower_currency(cls, value: str) -> str:
        return value.strip().lower()


class AppInfo(BaseModel):
    name: str = "good-deed-hub-backend"
    version: str = "0.1.0"


settings = Settings()


@lru_cache
def get_settings() -> Settings:
    """Return cached application settings."""

    return settings


__all__ = [
    "ENV",
    "Settings",
    "AppInfo",
    "settings",
    "get_settings",
]
