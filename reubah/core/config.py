"""
Application Configuration

Centralized settings management using Pydantic Settings.
Supports environment variables and .env files.
"""

from pydantic_settings import BaseSettings
from typing import Optional


class Settings(BaseSettings):
    """Application settings with environment variable support."""
    
    # ==========================================================================
    # App Settings
    # ==========================================================================
    APP_NAME: str = "Reubah Image Processing Service"
    APP_VERSION: str = "1.0.0"
    ENVIRONMENT: str = "development"  # development, staging, PROD
    DEBUG: bool = True
    
    # ==========================================================================
    # Limits
    # ==========================================================================
    MAX_FILE_SIZE_BYTES: int = 32 * 1024 * 1024  # 32MB
    MAX_IMAGE_WIDTH: int = 8192
    MAX_IMAGE_HEIGHT: int = 8192
    
    # ==========================================================================
    # Processing Defaults
    # ==========================================================================
    DEFAULT_QUALITY: int = 85
    DEFAULT_FORMAT: str = "jpeg"
    DEFAULT_RESIZE_MODE: str = "fit"
    
    # Flattening color for formats without an alpha channel
    BACKGROUND_COLOR: str = "#FFFFFF"
    
    # ==========================================================================
    # External Collaborators
    # ==========================================================================
    # rembg reads PNG on stdin and writes PNG with alpha on stdout
    REMBG_COMMAND: str = "rembg"
    REMBG_TIMEOUT_SECONDS: float = 60.0
    
    # libheif command line tools
    HEIF_CONVERT_COMMAND: str = "heif-convert"
    HEIF_TIMEOUT_SECONDS: float = 30.0
    
    # LibreOffice
    SOFFICE_COMMAND: str = "soffice"
    DOCUMENT_TIMEOUT_SECONDS: float = 120.0
    
    # ==========================================================================
    # Logging Settings
    # ==========================================================================
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT_JSON: bool = True  # JSON for production, console for development
    LOG_FILE: Optional[str] = None
    
    # ==========================================================================
    # CORS Settings
    # ==========================================================================
    CORS_ORIGINS: str = "http://localhost:3000,http://localhost:5173,http://localhost:8080"
    
    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = True


# Global settings instance
settings = Settings()
