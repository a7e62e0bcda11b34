"""Runtime settings loaded from ``GRIDFILL_*`` environment variables."""

from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_PAGE_SIZE = 10
DEFAULT_PER_PAGE_VALUES: list[int] = [10, 25, 50, 100, 0]


class Settings(BaseSettings):
    """Process-wide gridfill configuration."""

    model_config = SettingsConfigDict(env_prefix="GRIDFILL_", extra="ignore")

    # Global gate for caching materialised in-memory collections.
    cache_enabled: bool = True
    default_page_size: int = Field(default=DEFAULT_PAGE_SIZE, ge=0)
    per_page_values: list[int] = Field(default_factory=lambda: list(DEFAULT_PER_PAGE_VALUES))
    primary_key: str = "id"
    default_table_name: str = "df"
    relation_separator: str = "."
    log_level: str = "INFO"

    @field_validator("per_page_values")
    @classmethod
    def _non_negative_page_sizes(cls, value: list[int]) -> list[int]:
        if any(size < 0 for size in value):
            raise ValueError("per_page_values must not contain negative sizes")
        return value

    @field_validator("log_level")
    @classmethod
    def _normalize_log_level(cls, value: str) -> str:
        return value.strip().upper() or "INFO"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return the memoised settings instance."""
    return Settings()


def reload_settings() -> Settings:
    """Drop the memoised settings and read the environment again."""
    get_settings.cache_clear()
    return get_settings()
