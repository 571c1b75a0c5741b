# signup_service/core/config.py

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # Values come from the environment provided by Docker Compose; the
    # defaults below are only meant for local development and tests.
    model_config = SettingsConfigDict(extra="ignore")

    # The environment mode: 'local' or 'prod'
    ENV: str = "local"

    # --- Production URLs (for inside Docker) ---
    DATABASE_URL_PROD: str = ""
    KAFKA_BOOTSTRAP_SERVERS_PROD: str = ""

    # --- Local Development URLs (for running locally) ---
    DATABASE_URL_LOCAL: str = "sqlite:///./signups.db"
    KAFKA_BOOTSTRAP_SERVERS_LOCAL: str = "localhost:9092"

    # Other secrets
    JWT_SECRET: str = "change-me"

    # --- Feature switches ---
    KAFKA_ENABLED: bool = False
    SCHEDULER_ENABLED: bool = True
    LOG_LEVEL: str = "INFO"

    # --- Signup timing contract ---
    OFFER_WINDOW_HOURS: int = 12
    RESIGNUP_DEBOUNCE_SECONDS: int = 5
    SWEEPER_INTERVAL_SECONDS: int = 60
    SIGNUP_MAX_ATTEMPTS: int = 3
    SIGNUP_RETRY_BACKOFF_SECONDS: float = 0.1
    REMINDER_LEAD_HOURS: int = 24

    # --- Dynamic Properties ---
    @property
    def DATABASE_URL(self) -> str:
        return (
            self.DATABASE_URL_LOCAL if self.ENV == "local" else self.DATABASE_URL_PROD
        )

    @property
    def KAFKA_BOOTSTRAP_SERVERS(self) -> str:
        return (
            self.KAFKA_BOOTSTRAP_SERVERS_LOCAL
            if self.ENV == "local"
            else self.KAFKA_BOOTSTRAP_SERVERS_PROD
        )


# Create a single instance of the settings
settings = Settings()
