"""
Configuration management for the expense application.
"""

from functools import lru_cache
from typing import Optional

from dotenv import load_dotenv
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .models import DEFAULT_DEPARTURE_LOCATION


class AppSettings(BaseSettings):
    """Settings read from the environment or a local .env file."""

    # Access gate
    app_password: str = Field(default="", alias="APP_PASSWORD")

    # Generative AI
    openai_api_key: Optional[str] = Field(default=None, alias="OPENAI_API_KEY")
    openai_model: str = Field(default="gpt-4o-mini", alias="OPENAI_MODEL")
    ai_max_tokens: int = Field(default=2000, alias="AI_MAX_TOKENS")

    # Reimbursement email
    report_recipient: str = Field(default="Sandrine", alias="REPORT_RECIPIENT")
    report_recipient_email: str = Field(default="", alias="REPORT_RECIPIENT_EMAIL")
    report_signature: str = Field(default="Yohan Bouyssiere", alias="REPORT_SIGNATURE")

    # Local storage
    db_path: str = Field(default="expenses.db", alias="DB_PATH")

    # Remote mirror (hosted PostgREST + auth provider)
    remote_url: Optional[str] = Field(default=None, alias="REMOTE_URL")
    remote_anon_key: Optional[str] = Field(default=None, alias="REMOTE_ANON_KEY")
    remote_table: str = Field(default="expense_snapshots", alias="REMOTE_TABLE")
    sync_debounce_seconds: float = Field(default=2.0, ge=0, alias="SYNC_DEBOUNCE_SECONDS")
    http_timeout_seconds: float = Field(default=20.0, gt=0, alias="HTTP_TIMEOUT_SECONDS")

    # Application
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    log_file: str = Field(default="expense_flow.log", alias="LOG_FILE")
    default_departure_location: str = Field(
        default=DEFAULT_DEPARTURE_LOCATION, alias="DEFAULT_DEPARTURE_LOCATION"
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        populate_by_name=True,
        extra="ignore",
    )

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v):
        """Ensure log level is valid."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"Log level must be one of: {valid_levels}")
        return v.upper()

    @field_validator("remote_url")
    @classmethod
    def strip_trailing_slash(cls, v):
        return v.rstrip("/") if v else v

    @property
    def remote_enabled(self) -> bool:
        return bool(self.remote_url and self.remote_anon_key)

    @property
    def ai_enabled(self) -> bool:
        return bool(self.openai_api_key)


@lru_cache()
def get_settings() -> AppSettings:
    """Load settings once per process."""
    load_dotenv()
    return AppSettings()
