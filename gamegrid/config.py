"""Configuration management and validation using Pydantic."""

import os
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import field_validator


class Settings(BaseSettings):
    """Application configuration settings loaded from environment variables or .env files."""

    @staticmethod
    def get_env_file() -> str | None:
        """Determine which .env file to load based on environment variables.

        Returns:
            None if SKIP_ENV_FILE is set (Docker/direct env vars)
            .env.{APP_ENV} file path otherwise (defaults to .env.dev)
        """
        if os.getenv("SKIP_ENV_FILE"):
            return None
        env = os.getenv("APP_ENV", "dev")
        env_file = f".env.{env}"
        if not os.path.exists(env_file):
            raise FileNotFoundError(
                f"Environment file '{env_file}' not found. "
                f"Create it or set SKIP_ENV_FILE to read the process environment only."
            )
        return env_file

    model_config = SettingsConfigDict(
        env_file=get_env_file.__func__(),
        env_file_encoding="utf-8",
        extra="ignore"
    )

    # ==================== Application Settings ====================
    APP_NAME: str = "Game Grid API"
    APP_ENV: str = "dev"  # "development" exposes error details in 500 responses

    # ==================== MongoDB ====================
    DB_URL: str  # Required, defined in .env files
    DB_NAME: str = "ariseData"
    DB_CONNECT_TIMEOUT_MS: int = 10000
    DB_SERVER_SELECTION_TIMEOUT_MS: int = 10000
    DB_INIT_RETRIES: int = 5  # index creation attempts at startup before giving up
    DB_INIT_RETRY_DELAY: float = 0.5  # seconds, doubles after each failed attempt

    # ==================== CORS Settings ====================
    CORS_ORIGINS: str = (
        "http://localhost:3000,http://127.0.0.1:5500,"
        "https://games-grid.netlify.app"
    )

    # ==================== Pagination ====================
    DEFAULT_PAGE: int = 1
    DEFAULT_LIMIT: int = 20
    MAX_LIMIT: int = 100
    MAX_PAGE: int = 100_000  # keeps skip = (page - 1) * limit far inside int64

    # ==================== Field Validation ====================
    USER_NAME_MAX_LENGTH: int = 100
    USER_EMAIL_MAX_LENGTH: int = 255
    PASSWORD_MIN_LENGTH: int = 6
    PASSWORD_MAX_LENGTH: int = 72  # UTF-8 bytes, the bcrypt input limit

    # ==================== Password Hashing ====================
    BCRYPT_ROUNDS: int = 10

    # ==================== JWT Authentication ====================
    JWT_SECRET_KEY: str | None = None  # Login and token checks fail with 500 when unset
    JWT_ALGORITHM: str = "HS256"
    JWT_EXPIRATION_HOURS: int = 24

    # ==================== Games ====================
    GAME_DEFAULT_MAX_PARTICIPANTS: int = 20
    GAME_JOIN_MAX_ATTEMPTS: int = 3

    # ==================== Rate Limiting ====================
    RATE_LIMIT_AUTH: str = "10/minute"
    RATE_LIMIT_WRITE: str = "60/minute"
    RATE_LIMIT_READ: str = "100/minute"

    # ==================== Graceful Shutdown ====================
    GRACEFUL_SHUTDOWN_TIMEOUT: int = 30  # Max wait time for active requests (seconds)

    # ==================== Logging ====================
    LOG_LEVEL: str = "INFO"  # DEBUG, INFO, WARNING, ERROR, CRITICAL
    LOG_FILE: str | None = "app.log"  # None to disable file logging
    LOG_FORMAT: str = "console"  # "console" for dev, "json" for production

    @field_validator('DB_URL')
    @classmethod
    def validate_db_url(cls, v: str) -> str:
        """Validate that DB_URL is provided and is a MongoDB connection string."""
        if not v:
            raise ValueError("DB_URL is required but not provided in environment variables")
        if not v.startswith(("mongodb://", "mongodb+srv://")):
            raise ValueError("DB_URL must be a valid MongoDB connection string")
        return v

    @field_validator('JWT_SECRET_KEY')
    @classmethod
    def validate_jwt_secret(cls, v: str | None) -> str | None:
        """Validate JWT_SECRET_KEY length when provided. An empty value counts as unset."""
        if not v:
            return None
        if len(v) < 32:
            raise ValueError("JWT_SECRET_KEY must be at least 32 characters long for security")
        return v

    @property
    def is_development(self) -> bool:
        return self.APP_ENV == "development"

    def get_cors_origins(self) -> list[str]:
        """Parse CORS_ORIGINS into a list of allowed origins."""
        return [origin.strip() for origin in self.CORS_ORIGINS.split(",") if origin.strip()]

settings = Settings()
