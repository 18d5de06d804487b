"""
Application configuration and settings
"""
from pydantic_settings import BaseSettings
from typing import List
import os


class Settings(BaseSettings):
    """Application settings"""

    # API Settings
    PROJECT_NAME: str = "HealthTrack"
    VERSION: str = "1.0.0"
    API_V1_STR: str = "/api"
    DEBUG: bool = os.getenv("DEBUG", "false").lower() == "true"

    # Security (tokens are issued by the OAuth provider and share this secret)
    SECRET_KEY: str = os.getenv("SECRET_KEY", "your-secret-key-change-in-production")
    ALGORITHM: str = "HS256"

    # Database
    DATABASE_URL: str = os.getenv("DATABASE_URL", "postgresql://localhost/healthtrack")

    # Anthropic API (extraction service)
    ANTHROPIC_API_KEY: str = os.getenv("ANTHROPIC_API_KEY", "")
    EXTRACTION_MODEL: str = "claude-sonnet-4-20250514"
    EXTRACTION_MAX_TOKENS: int = 4000
    EXTRACTION_TEMPERATURE: float = 0.1
    EXTRACTION_BATCH_SIZE: int = 3

    # PDF rasterization service
    PDF_TO_IMAGE_API_URL: str = os.getenv(
        "PDF_TO_IMAGE_API_URL",
        "https://pdftobase64image-jzfcn33k5q-uc.a.run.app/pdf-to-base64/"
    )

    # Object storage (Supabase storage REST API)
    SUPABASE_URL: str = os.getenv("SUPABASE_URL", "")
    SUPABASE_SERVICE_ROLE_KEY: str = os.getenv("SUPABASE_SERVICE_ROLE_KEY", "")
    STORAGE_BUCKET: str = "all_file"

    # WhatsApp Cloud API
    WHATSAPP_API_URL: str = "https://graph.facebook.com"
    WHATSAPP_API_VERSION: str = "v20.0"
    WHATSAPP_TOKEN: str = os.getenv("WHATSAPP_TOKEN", "")
    PHONE_NUMBER_ID: str = os.getenv("PHONE_NUMBER_ID", "")
    WHATSAPP_VERIFY_TOKEN: str = os.getenv("WHATSAPP_VERIFY_TOKEN", "")
    MESSAGING_TIMEOUT_SECONDS: float = 8.0
    WEBHOOK_DEDUP_CAPACITY: int = 1000

    # Reminders run on patient wall-clock time (GMT+5:30)
    TIMEZONE_OFFSET_MINUTES: int = 330

    # Uploads
    MAX_UPLOAD_BYTES: int = 10 * 1024 * 1024  # 10MB
    ALLOWED_UPLOAD_TYPES: List[str] = [
        "image/jpeg",
        "image/png",
        "image/webp",
        "image/gif",
        "application/pdf",
    ]

    # CORS - Allow these origins
    CORS_ORIGINS: str = os.getenv(
        "CORS_ORIGINS",
        "http://localhost:3000,http://localhost:5173"
    )

    @property
    def allowed_origins_list(self) -> List[str]:
        """Parse CORS origins from comma-separated string"""
        origins = [origin.strip() for origin in self.CORS_ORIGINS.split(",") if origin.strip()]

        # Expand origins to include both http:// and https:// if not present
        expanded = []
        for origin in origins:
            expanded.append(origin)
            if origin.startswith("https://"):
                http_version = origin.replace("https://", "http://")
                if http_version not in expanded:
                    expanded.append(http_version)
            elif origin.startswith("http://"):
                https_version = origin.replace("http://", "https://")
                if https_version not in expanded:
                    expanded.append(https_version)
            elif not origin.startswith("http"):
                if f"https://{origin}" not in expanded:
                    expanded.append(f"https://{origin}")
                if f"http://{origin}" not in expanded:
                    expanded.append(f"http://{origin}")

        return list(set(expanded))  # Remove duplicates

    @property
    def whatsapp_base_url(self) -> str:
        """Versioned Graph API root"""
        return f"{self.WHATSAPP_API_URL.rstrip('/')}/{self.WHATSAPP_API_VERSION}"

    class Config:
        case_sensitive = True


# Create settings instance
settings = Settings()


# Time-of-day windows on patient wall-clock time, as half-open
# [start_minute, end_minute) ranges of minutes since local midnight.
# Night wraps around midnight; 04:59 belongs to no window.
TIME_OF_DAY_WINDOWS = {
    "morning": [(5 * 60, 11 * 60)],
    "afternoon": [(11 * 60, 16 * 60)],
    "evening": [(16 * 60, 21 * 60)],
    "night": [(21 * 60, 24 * 60), (0, 4 * 60 + 59)],
}

TIMINGS = ["morning", "afternoon", "evening", "night"]
