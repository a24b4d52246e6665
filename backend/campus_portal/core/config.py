from pydantic_settings import BaseSettings
from pydantic import field_validator
from typing import List, Any
import json
from pathlib import Path


def parse_cors_origins(v: Any) -> List[str]:
    """Parse CORS origins from string or list"""
    if isinstance(v, list):
        return v
    if isinstance(v, str):
        # Try JSON parsing first
        if v.startswith('['):
            try:
                return json.loads(v)
            except json.JSONDecodeError:
                pass
        # Fall back to comma-separated
        return [origin.strip() for origin in v.split(',') if origin.strip()]
    return []


class Settings(BaseSettings):
    """Application settings - all configurable via environment variables"""

    # ==========================================
    # Application
    # ==========================================
    APP_NAME: str = "Campus Portal"
    ENVIRONMENT: str = "development"
    DEBUG: bool = True
    SECRET_KEY: str = "CHANGE_ME"
    API_PREFIX: str = "/api"
    VERSION: str = "1.0.0"

    # Server Configuration
    SERVER_HOST: str = "0.0.0.0"
    SERVER_PORT: int = 8000

    # ==========================================
    # Database
    # ==========================================
    DATABASE_URL: str = "sqlite+aiosqlite:///./campus_portal.db"
    DB_ECHO: bool = False

    # ==========================================
    # Authentication
    # ==========================================
    JWT_SECRET_KEY: str = "CHANGE_ME"
    JWT_ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 1440  # 24 hours
    REFRESH_TOKEN_EXPIRE_DAYS: int = 30
    BCRYPT_ROUNDS: int = 12  # 4 for dev (fast), 12 for prod (secure)
    AUTH_COOKIE_NAME: str = "access_token"

    # ==========================================
    # CORS (stored as comma-separated string, parsed to list)
    # ==========================================
    CORS_ORIGINS_STR: str = "http://localhost:3000,http://127.0.0.1:3000"

    @property
    def CORS_ORIGINS(self) -> List[str]:
        return parse_cors_origins(self.CORS_ORIGINS_STR)

    # ==========================================
    # Logging
    # ==========================================
    LOG_LEVEL: str = "INFO"
    LOG_FILE: str = ""

    # ==========================================
    # Rate Limiting
    # ==========================================
    RATE_LIMIT_ENABLED: bool = True
    RATE_LIMIT_PER_MINUTE: int = 100
    RATE_LIMIT_STORAGE_URI: str = "memory://"

    # ==========================================
    # Request limits
    # ==========================================
    MAX_REQUEST_SIZE_MB: int = 10
    MAX_PAGE_SIZE: int = 100

    # ==========================================
    # Library
    # ==========================================
    LIBRARY_LOAN_DAYS: int = 14
    LIBRARY_RENEWAL_DAYS: int = 14
    LIBRARY_MAX_RENEWALS: int = 2
    LIBRARY_FINE_PER_DAY: float = 5.0  # INR per overdue day
    LIBRARY_RETURN_POINTS: int = 10  # Awarded for an on-time return

    # ==========================================
    # Fees
    # ==========================================
    FEE_CURRENCY: str = "INR"
    FEE_PAYMENT_POINTS: int = 20  # Awarded for settling a fee before its due date
    FEE_UPCOMING_WINDOW_DAYS: int = 7

    # ==========================================
    # Gamification
    # ==========================================
    POINTS_PER_LEVEL: int = 100

    # ==========================================
    # Background reconciliation
    # ==========================================
    RECONCILE_ENABLED: bool = True
    RECONCILE_INTERVAL_SECONDS: int = 900  # 15 minutes

    @field_validator("LIBRARY_FINE_PER_DAY")
    @classmethod
    def validate_fine_rate(cls, v: float) -> float:
        if v < 0:
            raise ValueError("LIBRARY_FINE_PER_DAY cannot be negative")
        return v

    @field_validator("POINTS_PER_LEVEL", "LIBRARY_LOAN_DAYS", "LIBRARY_RENEWAL_DAYS")
    @classmethod
    def validate_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("must be a positive integer")
        return v

    class Config:
        env_file = ".env"
        case_sensitive = True
        extra = "ignore"

    @property
    def BASE_DIR(self) -> Path:
        return Path(__file__).resolve().parent.parent.parent

    def is_production(self) -> bool:
        return self.ENVIRONMENT == "production"


# Create settings instance
settings = Settings()
