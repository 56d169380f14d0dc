"""
Runtime configuration for PumpDispatch
Values come from environment variables (optionally loaded from a .env file)
"""

import os
from dotenv import load_dotenv

load_dotenv()


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


class Settings:
    """Application settings read once at import time"""

    def __init__(self):
        self.DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./pumpdispatch.db")

        # Security configuration
        self.SECRET_KEY = os.getenv("SECRET_KEY", "change-this-secret-in-production")
        self.ALGORITHM = "HS256"
        self.ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", "720"))
        self.ADMIN_PIN = os.getenv("ADMIN_PIN", "1844")

        self.RATE_LIMIT_ENABLED = _env_bool("RATE_LIMIT_ENABLED", True)

        # Object storage for signatures and delivery PDFs: "local" or "s3"
        self.STORAGE_BACKEND = os.getenv("STORAGE_BACKEND", "local").strip().lower()
        self.STORAGE_DIR = os.getenv("STORAGE_DIR", "./storage")
        self.STORAGE_BASE_URL = os.getenv("STORAGE_BASE_URL", "/files").rstrip("/")

        # S3 backend; credentials come from the usual AWS environment or instance role
        self.S3_BUCKET = os.getenv("S3_BUCKET")
        self.S3_REGION = os.getenv("S3_REGION") or os.getenv("AWS_REGION")
        self.S3_PUBLIC_BASE_URL = os.getenv("S3_PUBLIC_BASE_URL")
        self.S3_PRESIGN_SECONDS = int(os.getenv("S3_PRESIGN_SECONDS", "3600"))

        # Transactional email (Resend)
        self.RESEND_API_KEY = os.getenv("RESEND_API_KEY")
        self.RESEND_FROM = os.getenv("RESEND_FROM")
        self.EMAIL_API_URL = os.getenv("EMAIL_API_URL", "https://api.resend.com/emails")
        self.EMAIL_TIMEOUT_SECONDS = float(os.getenv("EMAIL_TIMEOUT_SECONDS", "10"))


settings = Settings()
