"""
Application configuration management
"""

from typing import List
from pydantic_settings import BaseSettings
from pydantic import field_validator


class Settings(BaseSettings):
    # Application
    APP_NAME: str = "Fairway"
    APP_VERSION: str = "1.0.0"
    APP_ENV: str = "development"
    DEBUG: bool = False  # Default to production-safe
    API_PREFIX: str = "/api/v1"

    # Server
    HOST: str = "0.0.0.0"
    PORT: int = 8000

    # Database
    DATABASE_URL: str  # Must be provided via environment

    @field_validator('DATABASE_URL')
    @classmethod
    def validate_database_url(cls, v: str) -> str:
        if v.startswith('postgresql://'):
            v = v.replace('postgresql://', 'postgresql+asyncpg://', 1)
        return v
    DB_POOL_SIZE: int = 20
    DB_MAX_OVERFLOW: int = 40
    DB_POOL_TIMEOUT: int = 30
    DB_POOL_RECYCLE: int = 3600
    DB_ECHO: bool = False

    # Email
    SENDGRID_API_KEY: str = ""
    FROM_EMAIL: str = "noreply@fairway.club"
    FRONTEND_URL: str = "http://localhost:3000"

    # Push
    EXPO_PUSH_URL: str = "https://exp.host/--/api/v2/push/send"
    PUSH_TIMEOUT_SECONDS: float = 10.0

    # Payment
    STRIPE_SECRET_KEY: str = ""
    STRIPE_WEBHOOK_SECRET: str = ""
    STRIPE_CURRENCY: str = "usd"
    PAYMENT_TIMEOUT_SECONDS: float = 15.0
    MEETUP_RETURN_URL: str = "myapp://meetup/{meetup_id}"
    WIDGET_BASE_URL: str = "http://localhost:3000"

    # Waitlist policy
    WAITLIST_OFFER_TTL_HOURS: int = 24
    WAITLIST_PROMOTION_MAX_ATTEMPTS: int = 3
    WAITLIST_AUTO_CHARGE_ENABLED: bool = False
    WAITLIST_REQUEUE_EXPIRED: bool = False
    WAITLIST_MAX_REQUEUES: int = 1
    WAITLIST_SWEEP_ENABLED: bool = True
    WAITLIST_SWEEP_INTERVAL_SECONDS: int = 60

    # Booking
    BOOKING_EXPIRATION_MINUTES: int = 30

    # CORS
    CORS_ORIGINS: List[str] = ["*"]
    CORS_ALLOW_METHODS: List[str] = ["GET", "POST", "PUT", "DELETE", "OPTIONS"]
    CORS_ALLOW_HEADERS: List[str] = ["authorization", "x-client-info", "apikey", "content-type"]

    # Monitoring
    PROMETHEUS_ENABLED: bool = True
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "json"

    @field_validator("CORS_ORIGINS", mode="before")
    def parse_cors_origins(cls, v):
        if isinstance(v, str):
            return [origin.strip() for origin in v.split(",")]
        return v

    @field_validator("WAITLIST_PROMOTION_MAX_ATTEMPTS", "WAITLIST_OFFER_TTL_HOURS")
    @classmethod
    def validate_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("must be at least 1")
        return v

    @property
    def is_production(self) -> bool:
        return self.APP_ENV == "production"

    @property
    def is_development(self) -> bool:
        return self.APP_ENV == "development"

    @property
    def is_testing(self) -> bool:
        return self.APP_ENV == "testing"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = True


# Create global settings instance
settings = Settings()
