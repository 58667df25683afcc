import logging

from pydantic_settings import BaseSettings
from pydantic import ConfigDict
from typing import Optional

class Settings(BaseSettings):
    # Environment
    ENV: str = "development"
    CONFIG_STRICT: bool = False

    # Database
    DATABASE_URL: Optional[str] = None
    TEST_DATABASE_URL: Optional[str] = None

    # Credentials
    API_KEY_PREFIX: str = "ltgv_"
    ACCESS_TOKEN_SECRET: Optional[str] = None
    ACCESS_TOKEN_TTL_HOURS: int = 24

    # Short-window throttle shared by all metered tools
    RATE_LIMIT_PER_MINUTE: int = 10

    # LLM provider
    GROQ_API_KEY: Optional[str] = None
    LLM_MODEL: str = "llama-3.1-8b-instant"
    LLM_TIMEOUT_SECONDS: float = 30.0

    # Stripe
    STRIPE_SECRET_KEY: Optional[str] = None
    STRIPE_WEBHOOK_SECRET: Optional[str] = None
    STRIPE_PRICE_POSTUP: Optional[str] = None
    STRIPE_PRICE_THREADGEN: Optional[str] = None
    STRIPE_PRICE_CHAPTERGEN: Optional[str] = None
    STRIPE_PRICE_RESUMEBUILDER: Optional[str] = None

    # Transactional email (Resend)
    RESEND_API_KEY: Optional[str] = None
    EMAIL_FROM: str = "LTG Vault <noreply@ltgvault.com>"

    # Plan changes outside Stripe (x-admin-secret header)
    ADMIN_SECRET: Optional[str] = None

    # App URLs
    SITE_URL: str = "https://ltgvault.com"

    model_config = ConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )
settings = Settings()


def access_token_secret(settings_obj: Optional[Settings] = None) -> str:
    """Secret used to sign magic-link access tokens.

    Falls back to the Stripe webhook secret, then to a development constant.
    """
    cfg = settings_obj or settings
    return cfg.ACCESS_TOKEN_SECRET or cfg.STRIPE_WEBHOOK_SECRET or "ltgv-access-token-secret"


def validate_config(strict: Optional[bool] = None, settings_obj: Optional[Settings] = None, logger: Optional[logging.Logger] = None) -> bool:
    """Validate required configuration.

    In strict mode raise RuntimeError; otherwise emit warnings only.
    Secrets are not logged, only missing keys.
    """
    cfg = settings_obj or settings
    log = logger or logging.getLogger("ltgvault")
    strict_mode = strict if strict is not None else getattr(cfg, "CONFIG_STRICT", False)

    required_keys = [
        "DATABASE_URL",
        "ACCESS_TOKEN_SECRET",
        "GROQ_API_KEY",
        "STRIPE_SECRET_KEY",
        "STRIPE_WEBHOOK_SECRET",
    ]

    missing = [key for key in required_keys if not getattr(cfg, key, None)]
    if missing:
        message = f"Missing required configuration: {', '.join(missing)}"
        if strict_mode:
            raise RuntimeError(message)
        log.warning(message)

    return True
