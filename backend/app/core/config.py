from pydantic_settings import BaseSettings
from typing import List, Dict, Any
import json
from pathlib import Path


# Upload allow-list, grouped by the category the admin console shows it under
DEFAULT_ALLOWED_MIME_TYPES: Dict[str, List[str]] = {
    "image": ["image/jpeg", "image/jpg", "image/png", "image/gif", "image/webp"],
    "document": [
        "application/pdf",
        "application/msword",
        "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
        "text/plain",
    ],
    "video": ["video/mp4", "video/mpeg", "video/quicktime", "video/x-msvideo"],
    "audio": ["audio/mpeg", "audio/wav", "audio/ogg", "audio/mp4"],
}


def parse_csv_list(v: Any) -> List[str]:
    """Parse a list setting from a JSON list or a comma-separated string"""
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
        return [item.strip() for item in v.split(',') if item.strip()]
    return []


class Settings(BaseSettings):
    """Application settings - all configurable via environment variables"""

    # ==========================================
    # Application
    # ==========================================
    APP_NAME: str = "Garud Classes API"
    ENVIRONMENT: str = "development"
    DEBUG: bool = True
    API_VERSION: str = "v1"

    # Server Configuration
    SERVER_HOST: str = "0.0.0.0"
    SERVER_PORT: int = 5000

    # ==========================================
    # Email (SMTP relay)
    # ==========================================
    SMTP_HOST: str = "smtp.gmail.com"
    SMTP_PORT: int = 587
    SMTP_SECURE: bool = False  # True = implicit TLS (465), False = STARTTLS when offered
    SMTP_USER: str = ""
    SMTP_PASSWORD: str = ""
    SMTP_FROM_NAME: str = "Garud Classes"
    SMTP_MAX_CONNECTIONS: int = 5
    SMTP_TIMEOUT: float = 30.0  # seconds, per transport operation
    SMTP_SEND_TIMEOUT: float = 60.0  # seconds, pool wait + delivery
    SMTP_VALIDATE_CERTS: bool = True
    EMAIL_TEMPLATES_DIR: str = str(Path(__file__).resolve().parent.parent / "templates" / "email")

    # Contact and enrollment notifications go here
    ADMIN_EMAIL: str = ""

    # ==========================================
    # File Upload
    # ==========================================
    UPLOAD_PATH: str = "./uploads"
    MAX_FILE_SIZE: int = 10 * 1024 * 1024  # 10MB
    MAX_FILE_COUNT: int = 10
    ALLOWED_MIME_TYPES_STR: str = ""  # empty = DEFAULT_ALLOWED_MIME_TYPES
    PUBLIC_BASE_URL: str = ""  # empty = derive from the request origin
    UPLOAD_URL_PREFIX: str = "/uploads"
    MULTIPART_OVERHEAD: int = 64 * 1024  # part headers and boundaries per request

    # ==========================================
    # CORS (stored as comma-separated string, parsed to list)
    # ==========================================
    CORS_ORIGINS_STR: str = "http://localhost:3000,http://localhost:5173,http://127.0.0.1:5173"

    @property
    def CORS_ORIGINS(self) -> List[str]:
        """Parse CORS origins from comma-separated string"""
        return parse_csv_list(self.CORS_ORIGINS_STR)

    @property
    def ALLOWED_MIME_TYPES(self) -> List[str]:
        """Flat MIME allow-list, either from the environment or the built-in groups"""
        configured = parse_csv_list(self.ALLOWED_MIME_TYPES_STR)
        if configured:
            return [mime.lower() for mime in configured]
        return [mime for group in DEFAULT_ALLOWED_MIME_TYPES.values() for mime in group]

    # ==========================================
    # Logging
    # ==========================================
    LOG_LEVEL: str = "INFO"
    LOG_FILE: str = "logs/app.log"

    class Config:
        env_file = ".env"
        case_sensitive = True
        extra = "ignore"  # Ignore extra fields in .env that aren't defined in Settings

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        if self.LOG_FILE:
            Path(self.LOG_FILE).parent.mkdir(exist_ok=True, parents=True)

    @property
    def UPLOAD_DIR(self) -> Path:
        return Path(self.UPLOAD_PATH).resolve()

    @property
    def MAX_REQUEST_SIZE(self) -> int:
        """Largest body a full multi-file upload can need"""
        return self.MAX_FILE_SIZE * self.MAX_FILE_COUNT + self.MULTIPART_OVERHEAD

    @property
    def smtp_configured(self) -> bool:
        """Check if SMTP credentials are present"""
        return bool(self.SMTP_USER and self.SMTP_PASSWORD)

    def is_dev_mode(self) -> bool:
        return self.ENVIRONMENT != "production"


# Create settings instance
settings = Settings()
