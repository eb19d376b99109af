from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Database
    database_url: str = "sqlite+aiosqlite:///./data/fintrack.db"

    # Auth
    secret_key: str = "dev-secret-change-in-production"
    algorithm: str = "HS256"
    access_token_expire_minutes: int = 60

    # Server
    cors_origins: list[str] = ["http://localhost:5173"]
    log_level: str = "INFO"

    # Recurrence processing
    scheduler_enabled: bool = True
    recurrence_interval_minutes: int = 30
    storage_timeout_seconds: float = 10.0
    upcoming_per_rule: int = 5
    # IANA zone that decides which calendar day "today" is.
    timezone: str = "UTC"

    @property
    def is_sqlite(self) -> bool:
        return "sqlite" in self.database_url
