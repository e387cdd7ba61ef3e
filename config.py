"""
Application Settings

Everything the service needs from the environment, read once at start-up.
Values come from the process environment or a local .env file.
"""

import os
from typing import List, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field


def _flag(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in ("1", "true", "yes")


class Settings(BaseModel):
    database_url: Optional[str] = None
    database_name: Optional[str] = None
    mongo_timeout_ms: int = 5000
    mongo_transactions: bool = False
    full_text_search: bool = True

    jwt_secret: str = "dev_secret_change_me"
    jwt_algorithm: str = "HS256"
    jwt_expire_minutes: int = Field(60 * 24, ge=0, description="0 disables expiry")

    otp_ttl_minutes: int = Field(10, ge=1)
    bcrypt_rounds: int = Field(10, ge=4, le=31)

    smtp_host: Optional[str] = None
    smtp_port: int = 587
    smtp_username: Optional[str] = None
    smtp_password: Optional[str] = None
    smtp_from_email: Optional[str] = None
    smtp_timeout: float = 10.0

    cors_origins: List[str] = ["*"]
    log_level: str = "INFO"
    port: int = 8000

    @classmethod
    def from_env(cls) -> "Settings":
        load_dotenv()
        return cls(
            database_url=os.getenv("DATABASE_URL"),
            database_name=os.getenv("DATABASE_NAME"),
            mongo_timeout_ms=int(os.getenv("MONGO_TIMEOUT_MS", 5000)),
            mongo_transactions=_flag("MONGO_TRANSACTIONS", "false"),
            full_text_search=_flag("FULL_TEXT_SEARCH", "true"),
            jwt_secret=os.getenv("JWT_SECRET", "dev_secret_change_me"),
            jwt_algorithm=os.getenv("JWT_ALGORITHM", "HS256"),
            jwt_expire_minutes=int(os.getenv("JWT_EXPIRE_MINUTES", 60 * 24)),
            otp_ttl_minutes=int(os.getenv("OTP_TTL_MINUTES", 10)),
            bcrypt_rounds=int(os.getenv("BCRYPT_ROUNDS", 10)),
            smtp_host=os.getenv("SMTP_HOST"),
            smtp_port=int(os.getenv("SMTP_PORT", 587)),
            smtp_username=os.getenv("SMTP_USERNAME"),
            smtp_password=os.getenv("SMTP_PASSWORD"),
            smtp_from_email=os.getenv("SMTP_FROM_EMAIL") or os.getenv("SMTP_USERNAME"),
            smtp_timeout=float(os.getenv("SMTP_TIMEOUT", 10)),
            cors_origins=[o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()],
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
            port=int(os.getenv("PORT", 8000)),
        )
