"""Application settings and configuration."""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application configuration."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = "teamsync"
    env: str = "development"
    log_level: str = "INFO"
    log_format: str = "console"  # console or json

    # Database
    database_url: str = "sqlite:///./teamsync.db"

    # Membership limits
    max_teams_per_user: int = 50
    max_members_per_team: int = 100

    # Expiry windows
    invitation_ttl_days: int = 7
    activity_log_retention_days: int = 90

    # Admin views
    recent_items_limit: int = 5

    # Profile fan-out outbox
    profile_sync_max_attempts: int = 5


# Global settings instance
settings = Settings()
