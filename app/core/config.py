"""
Application configuration.
All settings are loaded from environment variables.
Use env.example as a reference for required variables.
"""
from pydantic import field_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    IMPORTANT: Credentials have no defaults - they MUST be set in .env file.
    """

    # ===========================================
    # APPLICATION
    # ===========================================
    app_env: str = "local"
    # Публичный URL приложения (success/cancel redirect для Stripe, IPN callback для NOWPayments)
    app_public_url: str = "http://localhost:8000"
    # CORS: через запятую. Пусто = дефолтный список в коде.
    cors_origins: str = ""
    # Header with the caller id, set by the auth gateway after it validated the session.
    caller_id_header: str = "X-User-Id"

    # ===========================================
    # DATABASE (PostgreSQL)
    # ===========================================
    database_url: str  # Required, no default

    # ===========================================
    # REDIS & CELERY
    # ===========================================
    redis_url: str  # Required, no default
    celery_broker_url: str = ""  # empty = redis_url
    celery_result_backend: str = ""  # empty = redis_url

    # ===========================================
    # CREATOR
    # ===========================================
    # Фиксированный id создателя контента: видит любой контент, получатель чаевых.
    creator_user_id: str = ""
    creator_display_name: str = "Creator"

    # ===========================================
    # CARD RAIL (Stripe Checkout)
    # ===========================================
    stripe_secret_key: str = ""  # empty = card rail disabled
    stripe_webhook_secret: str = ""  # empty = every card webhook is rejected

    # ===========================================
    # CRYPTO RAIL (NOWPayments)
    # ===========================================
    nowpayments_api_key: str = ""  # empty = crypto rail disabled
    nowpayments_ipn_secret: str = ""  # empty = every crypto webhook is rejected
    nowpayments_api_url: str = "https://api.nowpayments.io/v1"
    nowpayments_timeout: float = 30.0
    # Поддерживаемые монеты (id NOWPayments), через запятую
    crypto_currencies: str = "btc,eth,usdttrc20"
    crypto_payment_ttl_minutes: int = 60

    # ===========================================
    # MONETIZATION
    # ===========================================
    payment_currency: str = "USD"
    tip_min_amount: float = 1.00
    purchase_rate_limit: int = 5  # max intents per window per user
    purchase_rate_window_seconds: int = 60
    # Provider status cache for GET /payments/{id}/status
    payment_status_cache_ttl: int = 15

    # ===========================================
    # ACCOUNTING EXPORT (best-effort)
    # ===========================================
    accounting_webhook_url: str = ""  # empty = export disabled
    accounting_api_key: str = ""
    accounting_timeout: float = 10.0

    # ===========================================
    # CIRCUIT BREAKER
    # ===========================================
    cb_failure_threshold: int = 5
    cb_open_seconds: int = 30

    # ===========================================
    # LOGGING
    # ===========================================
    request_id_header: str = "X-Request-Id"
    log_level: str = "INFO"
    log_service: str = "creator-payments"
    log_file: str | None = None
    log_max_bytes: int = 10_000_000
    log_backup_count: int = 5

    @field_validator("crypto_currencies")
    @classmethod
    def parse_currencies(cls, v: str) -> str:
        """Validate currencies format."""
        return v.lower().strip()

    @property
    def crypto_currencies_set(self) -> set[str]:
        """Get supported crypto currencies as a set."""
        return {c.strip() for c in self.crypto_currencies.split(",") if c.strip()}

    @property
    def broker_url(self) -> str:
        return self.celery_broker_url or self.redis_url

    @property
    def result_backend(self) -> str:
        return self.celery_result_backend or self.redis_url

    @field_validator("tip_min_amount")
    @classmethod
    def validate_tip_min(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("tip_min_amount must be positive")
        return v

    class Config:
        env_file = ".env"
        case_sensitive = False
        extra = "ignore"  # Игнорировать неизвестные поля из .env


settings = Settings()
