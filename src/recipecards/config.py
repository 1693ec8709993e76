"""Pipeline configuration using pydantic-settings."""

from functools import lru_cache
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

from recipecards.errors import ConfigurationError
from recipecards.quality.gate import QualityFlags


class Settings(BaseSettings):
    """Pipeline settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Extraction provider (OpenAI-compatible chat completions)
    openai_api_key: str = ""
    openai_model: str = "gpt-4o"
    openai_base_url: str = "https://api.openai.com/v1"
    max_tokens: int = 4000
    correction_max_tokens: int = 2048
    request_timeout: float = 120.0  # seconds

    # Paths
    input_dir: Path = Path("./recipes")
    output_dir: Path = Path("./output")
    consolidated_filename: str = "all_recipes.json"

    # Processing
    retry_attempts: int = 3
    delay_between_requests: float = 2.0  # seconds between provider calls
    max_concurrent: int = 1

    # Data quality
    data_quality_enabled: bool = True
    validate_ingredients: bool = True
    auto_correction: bool = False

    # Application
    environment: str = "development"
    log_level: str = "INFO"

    @property
    def consolidated_path(self) -> Path:
        """Get the path of the consolidated recipe store."""
        return self.output_dir / self.consolidated_filename

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.environment.lower() == "development"

    def quality_flags(self) -> QualityFlags:
        """Snapshot the data quality switches for injection into the quality gate."""
        return QualityFlags(
            enabled=self.data_quality_enabled,
            validate_ingredients=self.validate_ingredients,
            auto_correction=self.auto_correction,
        )

    def require_api_key(self) -> str:
        """Return the provider API key, failing fast when it is not configured."""
        if not self.openai_api_key:
            raise ConfigurationError("OPENAI_API_KEY is required")
        return self.openai_api_key


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
