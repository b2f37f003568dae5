from functools import lru_cache
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # Shared secret for X-API-Key; empty disables the check.
    api_key: str = ""

    openai_api_key: str = ""
    openai_base_url: str | None = None
    openai_api_key_pattern: str = r"^sk-"
    openai_timeout_seconds: int = 30
    extraction_model: str = "gpt-4o"
    analysis_model: str = "gpt-3.5-turbo"

    upload_dir: Path = Path("uploads/invoices")
    max_file_size_mb: int = 10
    min_text_chars_per_page: int = 50
    ocr_lang: str = "en"
    log_level: str = "INFO"


@lru_cache
def get_settings() -> Settings:
    return Settings()
