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
    APP_NAME: str = "VB100 Results"
    ENVIRONMENT: str = "development"
    DEBUG: bool = True
    API_VERSION: str = "v1"

    # Server Configuration
    SERVER_HOST: str = "0.0.0.0"
    SERVER_PORT: int = 4000

    # ==========================================
    # Database
    # ==========================================
    DATABASE_URL: str = "sqlite+aiosqlite:///./vb100.db"
    DB_POOL_SIZE: int = 10
    DB_MAX_OVERFLOW: int = 20
    DB_ECHO: bool = False

    # ==========================================
    # CORS (stored as comma-separated string, parsed to list)
    # ==========================================
    CORS_ORIGINS_STR: str = "http://localhost:5173,http://localhost:3000,http://127.0.0.1:5173"

    @property
    def CORS_ORIGINS(self) -> List[str]:
        """Parse CORS origins from comma-separated string"""
        return parse_cors_origins(self.CORS_ORIGINS_STR)

    # Request bodies are small JSON documents
    MAX_REQUEST_SIZE: int = 1048576  # 1MB

    # ==========================================
    # Logging
    # ==========================================
    LOG_LEVEL: str = "INFO"
    LOG_FILE: str = "logs/vb100.log"

    # ==========================================
    # Results defaults
    # ==========================================
    DEFAULT_TEST_SET_NAME: str = "VB100 Certification"
    DEFAULT_CLEAN_SAMPLE_SIZE: int = 100000

    # ==========================================
    # Results client / autosave
    # ==========================================
    API_BASE_URL: str = "http://localhost:4000/api/v1"
    API_REQUEST_TIMEOUT: float = 10.0  # seconds
    AUTOSAVE_QUIET_WINDOW_MS: int = 375

    @field_validator("DEFAULT_CLEAN_SAMPLE_SIZE")
    @classmethod
    def _non_negative_sample_size(cls, v: int) -> int:
        if v < 0:
            raise ValueError("DEFAULT_CLEAN_SAMPLE_SIZE must be >= 0")
        return v

    @field_validator("AUTOSAVE_QUIET_WINDOW_MS")
    @classmethod
    def _positive_quiet_window(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("AUTOSAVE_QUIET_WINDOW_MS must be > 0")
        return v

    class Config:
        env_file = ".env"
        case_sensitive = True
        extra = "ignore"  # Ignore extra fields in .env that aren't defined in Settings

    @property
    def BASE_DIR(self) -> Path:
        return Path(__file__).resolve().parent.parent.parent

    @property
    def autosave_quiet_window(self) -> float:
        """Autosave quiet window in seconds"""
        return self.AUTOSAVE_QUIET_WINDOW_MS / 1000.0

    def is_dev_mode(self) -> bool:
        """Check if running in development mode"""
        return self.ENVIRONMENT == "development" or self.DEBUG


# Create settings instance
settings = Settings()
