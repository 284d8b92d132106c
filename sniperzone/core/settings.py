"""Application settings and configuration."""

from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings."""

    # Environment
    env: str = Field(default="dev", alias="ENV")
    timezone: str = Field(default="America/Toronto", alias="TZ")

    # Database
    postgres_host: str = Field(default="localhost", alias="POSTGRES_HOST")
    postgres_port: int = Field(default=5432, alias="POSTGRES_PORT")
    postgres_db: str = Field(default="sniperzone", alias="POSTGRES_DB")
    postgres_user: str = Field(default="sniperzone", alias="POSTGRES_USER")
    postgres_password: str = Field(default="", alias="POSTGRES_PASSWORD")
    # Full async URL; wins over the POSTGRES_* parts when set
    database_url_override: Optional[str] = Field(default=None, alias="DATABASE_URL")

    # Comma-separated Firebase uids allowed on admin endpoints
    admin_uids: str = Field(default="", alias="ADMIN_UIDS")

    # Cron endpoints
    cron_secret: Optional[str] = Field(default=None, alias="CRON_SECRET")
    recurring_cron_hour: int = Field(default=6, alias="RECURRING_CRON_HOUR")
    sunday_slot_weeks_ahead: int = Field(default=4, alias="SUNDAY_SLOT_WEEKS_AHEAD")

    # Business rules
    group_capacity: int = Field(default=6, alias="GROUP_CAPACITY")
    cancellation_window_hours: int = Field(default=24, alias="CANCELLATION_WINDOW_HOURS")
    # When a one-time swap is requested on the original training day itself,
    # True maps the exception onto today, False onto next week's occurrence.
    swap_includes_today: bool = Field(default=True, alias="SWAP_INCLUDES_TODAY")

    @property
    def admin_uid_set(self) -> set:
        return {uid.strip() for uid in self.admin_uids.split(",") if uid.strip()}

    @property
    def database_url(self) -> str:
        """Get async database URL."""
        if self.database_url_override:
            return self.database_url_override
        return (
            f"postgresql+asyncpg://{self.postgres_user}:{self.postgres_password}"
            f"@{self.postgres_host}:{self.postgres_port}/{self.postgres_db}"
        )

    class Config:
        env_file = ".env"
        case_sensitive = False


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


# Global settings instance
settings = get_settings()
