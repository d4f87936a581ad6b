"""Application configuration settings."""
import os
from typing import List
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()


class Settings:
    """Application settings loaded from environment variables."""

    # Supabase Configuration
    SUPABASE_URL: str = os.getenv("SUPABASE_URL", "http://127.0.0.1:54321")
    SUPABASE_ANON_KEY: str = os.getenv("SUPABASE_ANON_KEY", "")

    # Storage / metadata targets
    STORAGE_BUCKET: str = os.getenv("STORAGE_BUCKET", "site-photos")
    PHOTOS_TABLE: str = os.getenv("PHOTOS_TABLE", "photos")
    PHOTO_CATEGORIES: List[str] = [
        c.strip() for c in os.getenv("PHOTO_CATEGORIES", "before,during,after,special").split(",") if c.strip()
    ]

    # Upload pipeline
    UPLOAD_CONCURRENCY: int = int(os.getenv("UPLOAD_CONCURRENCY", "2"))  # per batch
    UPLOAD_MAX_ATTEMPTS: int = int(os.getenv("UPLOAD_MAX_ATTEMPTS", "3"))
    UPLOAD_RETRY_BASE_DELAY: float = float(os.getenv("UPLOAD_RETRY_BASE_DELAY", "1.0"))
    UPLOAD_RETRY_MAX_DELAY: float = float(os.getenv("UPLOAD_RETRY_MAX_DELAY", "30.0"))
    BATCH_GRACE_SECONDS: float = float(os.getenv("BATCH_GRACE_SECONDS", "10"))

    # Image compression
    IMAGE_MAX_DIMENSION: int = int(os.getenv("IMAGE_MAX_DIMENSION", "1280"))
    IMAGE_MAX_BYTES: int = int(os.getenv("IMAGE_MAX_BYTES", str(500 * 1024)))  # 500KB
    IMAGE_INITIAL_QUALITY: int = int(os.getenv("IMAGE_INITIAL_QUALITY", "70"))
    IMAGE_MIN_QUALITY: int = int(os.getenv("IMAGE_MIN_QUALITY", "40"))
    COMPRESSION_TIMEOUT: float = float(os.getenv("COMPRESSION_TIMEOUT", "15"))  # seconds

    # Request limits
    MAX_FILE_SIZE: int = int(os.getenv("MAX_FILE_SIZE", str(20 * 1024 * 1024)))  # 20MB default

    # Logging
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    # Frontend Configuration
    ALLOWED_ORIGINS: List[str] = [
        o.strip() for o in os.getenv("ALLOWED_ORIGINS", "http://localhost:3000").split(",") if o.strip()
    ]


# Global settings instance
settings = Settings()
