"""
Configuration management using Pydantic Settings
"""
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEVELOPMENT_ENVS = {"development", "dev", "local"}


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_ignore_empty=True,
        populate_by_name=True,
        extra="ignore",
    )

    # OpenAI
    openai_api_key: str | None = Field(default=None, alias="OPENAI_API_KEY")
    grading_model: str = Field(default="gpt-3.5-turbo-0125", alias="OPENAI_MODEL")
    outline_model: str = Field(default="gpt-3.5-turbo", alias="OPENAI_OUTLINE_MODEL")
    openai_timeout_seconds: int = Field(default=60, ge=1, alias="OPENAI_TIMEOUT_SECONDS")
    openai_max_retries: int = Field(default=2, ge=0, alias="OPENAI_MAX_RETRIES")

    # Storage
    database_url: str | None = Field(default=None, alias="DATABASE_URL")

    # Application
    app_env: str = Field(default="production", alias="APP_ENV")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    host: str = Field(default="0.0.0.0", alias="HOST")
    port: int = Field(default=8000, ge=1, le=65535, alias="PORT")

    @field_validator("log_level")
    @classmethod
    def _upper_log_level(cls, value: str) -> str:
        return value.strip().upper()

    @property
    def is_development(self) -> bool:
        return self.app_env.strip().lower() in DEVELOPMENT_ENVS


def get_settings() -> Settings:
    return Settings()
