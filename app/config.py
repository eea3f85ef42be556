from datetime import date
from pathlib import Path

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

ENV_PATH = Path(__file__).resolve().parent.parent / ".env.local"


class Settings(BaseSettings):
    # Environment settings
    environment: str = "development"
    debug: bool = False
    LOG_LEVEL: str = "INFO"

    # =================================================================
    # STORE SETTINGS - routes/users live in PostgreSQL
    # =================================================================
    STORE_URL: str = "postgresql://localhost:5432/"
    STORE_DB_NAME: str = "getStatus"
    STORE_CONNECT_TIMEOUT_SECONDS: int = 10

    # =================================================================
    # SCAN SETTINGS
    # =================================================================
    PAGE_SIZE: int = 50
    RECHECK_INTERVAL_SECONDS: float = 3600.0  # 1 hour
    TARGET_DATE: date | None = None  # manual run for a specific day
    ROLLBACK_ON_CONNECTION_FAILURE: bool = False

    # SMS gateway settings (simulated delivery when URL is not set)
    SMS_GATEWAY_URL: str | None = None
    SMS_GATEWAY_TOKEN: str | None = None
    SMS_TIMEOUT_SECONDS: float = 10.0
    SMS_SIMULATED_DELAY_SECONDS: float = 0.3
    SMS_SIMULATED_SUCCESS_RATE: float = 0.6

    # Report email settings
    SMTP_HOST: str | None = None
    SMTP_PORT: int = 587
    SMTP_USER: str | None = None
    SMTP_PASSWORD: str | None = None
    SMTP_FROM: str | None = None
    SMTP_USE_TLS: bool = True
    REPORT_RECIPIENTS: str = ""

    # HTTP trigger
    SERVICE_HOST: str = "0.0.0.0"
    SERVICE_PORT: int = 3000

    model_config = SettingsConfigDict(
        env_file=str(ENV_PATH),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    @field_validator("PAGE_SIZE")
    @classmethod
    def _validate_page_size(cls, value: int) -> int:
        if value < 1:
            raise ValueError("PAGE_SIZE must be at least 1")
        return value

    @field_validator("RECHECK_INTERVAL_SECONDS")
    @classmethod
    def _validate_interval(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("RECHECK_INTERVAL_SECONDS must be positive")
        return value

    @field_validator("SMS_SIMULATED_SUCCESS_RATE")
    @classmethod
    def _validate_success_rate(cls, value: float) -> float:
        if not 0.0 <= value <= 1.0:
            raise ValueError("SMS_SIMULATED_SUCCESS_RATE must be between 0 and 1")
        return value

    def report_recipients(self) -> list[str]:
        """Split REPORT_RECIPIENTS into a clean address list."""
        return [item.strip() for item in self.REPORT_RECIPIENTS.split(",") if item.strip()]

    def get_store_connect_config(self) -> dict:
        """
        Keyword arguments for psycopg.AsyncConnection.connect.
        STORE_DB_NAME overrides any database named in STORE_URL.
        """
        config = {
            "conninfo": self.STORE_URL,
            "connect_timeout": self.STORE_CONNECT_TIMEOUT_SECONDS,
        }
        if self.STORE_DB_NAME:
            config["dbname"] = self.STORE_DB_NAME

        if self.environment == "development":
            # Fail fast locally
            config["connect_timeout"] = min(self.STORE_CONNECT_TIMEOUT_SECONDS, 5)

        return config


settings = Settings()
