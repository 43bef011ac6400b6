# voucher_gateway/core/config.py
from __future__ import annotations

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # --- Core ---
    DATABASE_URL: str = "sqlite:///./vouchers.db"
    LOG_LEVEL: str = "INFO"

    # --- Shareable link ---
    PUBLIC_BASE_URL: str = "http://localhost:8000"
    REDEEM_PATH: str = "/redeem"

    # --- Vouchers ---
    VOUCHER_TTL_DAYS: int = 90
    SECRET_BYTES: int = 20  # 160 bits

    @field_validator("DATABASE_URL")
    @classmethod
    def _normalize_db_url(cls, v: str) -> str:
        # Railway/Heroku hand out postgres://; SQLAlchemy expects postgresql://
        if v.startswith("postgres://"):
            return v.replace("postgres://", "postgresql://", 1)
        return v

    @field_validator("SECRET_BYTES")
    @classmethod
    def _min_entropy(cls, v: int) -> int:
        if v < 16:
            raise ValueError("SECRET_BYTES must be >= 16 (128 bits)")
        return v

    @field_validator("VOUCHER_TTL_DAYS")
    @classmethod
    def _positive_ttl(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("VOUCHER_TTL_DAYS must be > 0")
        return v


settings = Settings()
