from typing import List

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # App settings
    PROJECT_NAME: str = "ExpenseTracker"
    API_PREFIX: str = "/api"
    DEBUG: bool = Field(default=False)
    LOG_LEVEL: str = Field(default="INFO")
    PUBLIC_BASE_URL: str = Field(default="http://localhost:3000")
    ALLOWED_ORIGINS: List[str] = Field(default_factory=lambda: ["http://localhost:3000", "http://localhost:5173"])

    # MongoDB
    MONGODB_URI: str = Field(default="mongodb://localhost:27017")
    DB_NAME: str = Field(default="expense_tracker")

    # JWT Authentication
    JWT_SECRET_KEY: str = Field(default="change-me-in-production-3c1f0e7a9d5b4e2f8a6c", alias="JWT_SECRET")
    JWT_ALGORITHM: str = "HS256"
    JWT_ISSUER: str = Field(default="expense-tracker-api")
    JWT_ACCESS_TOKEN_EXPIRE_MINUTES: int = 15
    REFRESH_TOKEN_EXPIRE_DAYS: int = 30
    BCRYPT_ROUNDS: int = 12

    # Sign in with Apple / Google
    APPLE_CLIENT_IDS: List[str] = Field(default_factory=list)
    GOOGLE_CLIENT_IDS: List[str] = Field(default_factory=list)

    # AWS S3 (receipts, avatars, monthly reports)
    S3_BUCKET_NAME: str = Field(default="expense-tracker-uploads")
    S3_REGION: str = Field(default="us-east-1")

    # SMTP (email change verification)
    SMTP_HOST: str = Field(default="localhost")
    SMTP_PORT: int = Field(default=587)
    SMTP_USERNAME: str = Field(default="")
    SMTP_PASSWORD: str = Field(default="")
    SMTP_FROM: str = Field(default="no-reply@expense-tracker.local")
    SMTP_STARTTLS: bool = Field(default=True)

    # Recurring-expense detection job
    SCHEDULER_ENABLED: bool = Field(default=False)
    RECURRING_DETECTION_HOUR: int = Field(default=3)
    RECURRING_DETECTION_MINUTE: int = Field(default=0)

    # Rate limiting (per client address, in memory)
    RATE_LIMIT_ENABLED: bool = Field(default=True)
    RATE_LIMIT_WINDOW_SECONDS: int = Field(default=15 * 60)
    API_RATE_LIMIT: int = Field(default=1000)
    AUTH_RATE_LIMIT: int = Field(default=5)

    # Prometheus metrics
    METRICS_ENABLED: bool = Field(default=True)

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
        populate_by_name=True,
        extra="ignore",
    )


settings = Settings()
