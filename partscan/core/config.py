"""
Configuration settings for the PartScan identification service.
Loads settings from environment variables and an optional .env file.
"""
from typing import List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings.
    """
    # API Settings
    PROJECT_NAME: str = "PartScan Identification Service"
    PROJECT_DESCRIPTION: str = "Multi-angle capture and catalog-backed identification of automotive parts"
    VERSION: str = "1.0.0"
    API_V1_STR: str = "/api/v1"
    HOST: str = "0.0.0.0"
    PORT: int = 8000
    DEBUG_MODE: bool = Field(default=False)
    CORS_ORIGINS: List[str] = ["*"]

    @field_validator("CORS_ORIGINS", mode="before")
    def assemble_cors_origins(cls, v):
        if isinstance(v, str) and not v.startswith("["):
            return [i.strip() for i in v.split(",") if i.strip()]
        return v

    # Logging
    LOG_LEVEL: str = Field(default="INFO")
    LOG_DIR: str = Field(default="logs")

    # Database Settings
    DATABASE_URL: str = Field(default="sqlite:///./partscan.db")

    # Identification engine
    GEMINI_API_KEY: Optional[str] = Field(default=None)
    GEMINI_MODEL: str = Field(default="gemini-3-flash-preview")

    # AWS / S3 Settings
    AWS_REGION: str = Field(default="us-east-1")
    AWS_ACCESS_KEY_ID: Optional[str] = Field(default=None)
    AWS_SECRET_ACCESS_KEY: Optional[str] = Field(default=None)
    S3_BUCKET_NAME: str = Field(default="part-images")
    S3_ENDPOINT_URL: Optional[str] = Field(default=None)
    S3_PUBLIC_BASE_URL: Optional[str] = Field(default=None)
    S3_CACHE_CONTROL: str = Field(default="max-age=3600")

    # Scan workflow
    MIN_CAPTURE_ANGLES: int = Field(default=3)
    MATCH_THRESHOLD: float = Field(default=70.0)
    HISTORY_LIMIT: int = Field(default=15)
    MAX_OPEN_SCANS: int = Field(default=100)
    SCAN_TTL_SECONDS: float = Field(default=3600.0)

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
        extra="ignore"
    )


# Create settings instance
settings = Settings()
