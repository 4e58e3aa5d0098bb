"""Application configuration using Pydantic Settings.

Environment Variable Strategy:
- Every field has a development default so the engine runs without a .env file
- Matching tolerances live in config/transfer_matching.yaml (see services.transfer_scoring)
- Settings here only cover process-level concerns (logging, formatting, file locations)
"""

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


def parse_comma_list(value: str | list[str] | None, default: list[str]) -> list[str]:
    """Parse comma-separated string into list."""
    if value is None:
        return default
    if isinstance(value, list):
        return value
    return [item.strip() for item in value.split(",") if item.strip()]


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    environment: str = Field(
        default="development", validation_alias=AliasChoices("ENVIRONMENT", "ENV")
    )
    debug: bool = False

    # Symbol used in human-readable match reasoning ("Amounts differ by $0.54 ...")
    currency_symbol: str = Field(default="$", validation_alias="CURRENCY_SYMBOL")

    # Override location of the matching tolerances file
    transfer_config_path: str | None = Field(
        default=None,
        validation_alias="TRANSFER_CONFIG_PATH",
    )

    # Env format: CORS_ORIGINS="http://localhost:3000,http://localhost:3001"
    cors_origins_str: str | None = Field(default=None, validation_alias="CORS_ORIGINS")

    @property
    def cors_origins(self) -> list[str]:
        """Parse CORS origins from env string or use defaults."""
        return parse_comma_list(
            self.cors_origins_str,
            [
                "http://localhost:3000",
                "http://127.0.0.1:3000",
            ],
        )


settings = Settings()
