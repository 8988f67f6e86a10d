"""
Application settings loaded from the environment (and an optional .env file).
"""
from typing import Optional

from dotenv import load_dotenv
from pydantic_settings import BaseSettings

load_dotenv()


class Settings(BaseSettings):
    """
    Runtime settings for the import backend.

    Upload limits bound the latency and memory of the asynchronous file/PDF
    stage that runs before detection.
    """
    database_url: str = "sqlite:///./subtrack.db"

    # File upload
    max_upload_size_mb: int = 10
    pdf_extraction_timeout_seconds: float = 30.0

    # Optional JSON file with provider catalog entries (replaces the defaults)
    provider_catalog_path: Optional[str] = None

    # Used when the caller does not pass a user id (auth is handled upstream)
    default_user_id: str = "local-user"

    log_level: str = "INFO"

    class Config:
        env_file = ".env"
        extra = "ignore"  # Allow extra fields in .env file


settings = Settings()
