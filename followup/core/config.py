from __future__ import annotations

import os
from decimal import Decimal
from functools import lru_cache

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class BaseAppSettings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    APP_NAME: str = "FollowUp"
    ENV: str = "dev"
    DATABASE_URL: str | None = None

    # Email delivery (SMTP relay, e.g. Brevo or Resend SMTP)
    FROM_EMAIL: str = "FollowUp <hello@followup.local>"
    SMTP_HOST: str | None = None
    SMTP_PORT: int = 587
    SMTP_USER: str | None = None
    SMTP_PASSWORD: str | None = None
    SMTP_TIMEOUT: float = 15.0

    # Follow-up generation (Anthropic Messages API)
    ANTHROPIC_API_KEY: str | None = None
    ANTHROPIC_API_URL: str = "https://api.anthropic.com/v1/messages"
    ANTHROPIC_MODEL: str = "claude-sonnet-4-20250514"
    ANTHROPIC_MAX_TOKENS: int = 1024
    GENERATOR_TIMEOUT: float = 60.0

    # Stripe webhook verification
    STRIPE_WEBHOOK_SECRET: str = "whsec_change_me"
    STRIPE_SIGNATURE_TOLERANCE: int = 300

    # Credits
    CREDIT_UNIT_PRICE: Decimal = Decimal("3")
    # debit_before_attempt | refund_on_failure
    GENERATION_FAILURE_POLICY: str = "debit_before_attempt"

    # Ledger transactions
    TX_MAX_ATTEMPTS: int = 5
    TX_BACKOFF_BASE: float = 0.05
    TX_BACKOFF_MAX: float = 1.0

    RATE_LIMIT_STORAGE_URI: str = "memory://"
    RATE_LIMIT_SUBMIT: str = "20/minute"
    RATE_LIMIT_WEBHOOK: str = "120/minute"

    FRONTEND_URL: str = "https://followup.local"
    CORS_ALLOW_ORIGINS: list[str] = ["*"]
    CORS_ALLOW_METHODS: list[str] = ["POST", "GET", "OPTIONS"]
    CORS_ALLOW_HEADERS: list[str] = ["Content-Type"]
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "plain"
    SENTRY_DSN: str | None = None

    @field_validator("GENERATION_FAILURE_POLICY", mode="before")
    @classmethod
    def normalise_failure_policy(cls, v):
        """Accept any casing; reject unknown policies early."""
        value = str(v).strip().lower()
        if value not in ("debit_before_attempt", "refund_on_failure"):
            raise ValueError(f"Unknown GENERATION_FAILURE_POLICY: {v}")
        return value

    @model_validator(mode="after")
    def _validate_required_fields(self) -> BaseAppSettings:
        # Convert Heroku's postgres:// URL to postgresql://
        if self.DATABASE_URL and self.DATABASE_URL.startswith("postgres://"):
            self.DATABASE_URL = self.DATABASE_URL.replace("postgres://", "postgresql://", 1)

        required_in_prod = (
            "DATABASE_URL",
            "ANTHROPIC_API_KEY",
            "STRIPE_WEBHOOK_SECRET",
            "SMTP_HOST",
        )
        if self.ENV.lower() == "prod":
            missing = [name for name in required_in_prod if not getattr(self, name)]
            if missing:
                raise ValueError(f"Missing required production settings: {', '.join(missing)}")
            if self.STRIPE_WEBHOOK_SECRET == "whsec_change_me":
                raise ValueError("Insecure default secrets in production: STRIPE_WEBHOOK_SECRET uses default placeholder")
        return self


class DevSettings(BaseAppSettings):
    ENV: str = "dev"
    DATABASE_URL: str = "sqlite:///./storage/dev.db"


class TestSettings(BaseAppSettings):
    ENV: str = "test"
    DATABASE_URL: str = "sqlite:///:memory:"
    STRIPE_WEBHOOK_SECRET: str = "whsec_test_secret"
    TX_BACKOFF_BASE: float = 0.01


class ProdSettings(BaseAppSettings):
    ENV: str = "prod"
    CORS_ALLOW_ORIGINS: list[str] = [
        "https://followupmate.io",
        "https://www.followupmate.io",
    ]
    LOG_FORMAT: str = "json"


_ENV_TO_SETTINGS: dict[str, type[BaseAppSettings]] = {
    "dev": DevSettings,
    "development": DevSettings,
    "test": TestSettings,
    "testing": TestSettings,
    "prod": ProdSettings,
    "production": ProdSettings,
}


@lru_cache
def get_settings() -> BaseAppSettings:
    env_name = os.getenv("APP_ENV") or os.getenv("ENV") or "dev"
    env = env_name.lower()
    settings_cls = _ENV_TO_SETTINGS.get(env, DevSettings)
    return settings_cls()


settings = get_settings()
