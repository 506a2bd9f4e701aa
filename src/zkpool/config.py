"""Runtime configuration loaded from the environment and ``.env``."""

from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class PoolSettings(BaseSettings):
    """
    Pool settings.

    Every field can be overridden with a ``ZKPOOL_``-prefixed environment
    variable, e.g. ``ZKPOOL_TREE_DEPTH=16``.
    """

    model_config = SettingsConfigDict(
        env_prefix="ZKPOOL_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    tree_depth: int = Field(default=20, ge=1, le=31, description="Merkle tree depth")
    root_history_size: int = Field(default=30, ge=1, description="Recent roots accepted for withdrawal")
    denomination: int = Field(default=10**17, gt=0, description="Fixed deposit value")
    database_url: str = Field(default="sqlite:///zk_pool.db", description="SQLAlchemy database URL")
    log_level: str = Field(default="INFO", description="Root log level")

    @field_validator("log_level")
    @classmethod
    def _check_log_level(cls, value: str) -> str:
        level = value.upper()
        if level not in {"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"}:
            raise ValueError(f"Unknown log level: {value}")
        return level


@lru_cache(maxsize=1)
def get_settings() -> PoolSettings:
    """Get or create the cached settings instance."""
    return PoolSettings()


def reset_settings() -> None:
    """Drop the cached settings (for testing)."""
    get_settings.cache_clear()
