"""Application configuration using pydantic-settings."""

from functools import lru_cache
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env file."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # App Info
    app_name: str = "Field Telemetry API"
    app_version: str = "0.1.0"
    debug: bool = False

    # Server
    host: str = "0.0.0.0"
    port: int = 8500
    workers: int = 1

    # Database
    data_save_folder: str = "./data"
    db_file: str = "telemetry.db"

    @property
    def database_url(self) -> str:
        """SQLite database URL."""
        db_path = Path(self.data_save_folder) / self.db_file
        return f"sqlite+aiosqlite:///{db_path}"

    # NATS
    nats_uri: str = Field(default="nats://localhost:4222", alias="NATS_URI")
    telemetry_subject_prefix: str = Field(
        default="sensors.modbus",
        alias="TELEMETRY_SUBJECT_PREFIX",
        description="Frames arrive on <prefix>.<device_id>",
    )

    # Bus services (NATS subscriber, notification worker, offline sweep)
    # Set to False to run the HTTP API alone
    enable_bus_services: bool = Field(
        default=False,
        alias="ENABLE_BUS_SERVICES",
    )
    auto_register_devices: bool = False

    # Liveness (minutes)
    online_threshold_minutes: int = 5
    offline_threshold_minutes: int = 15
    offline_sweep_minutes: int = 3

    # Alerts
    hysteresis_margin: float = 0.5

    # Ingest
    persist_timeout_seconds: float = 5.0

    # Notifications (Kakao Alimtalk gateway)
    notification_enabled: bool = Field(default=True, alias="NOTIFICATION_ENABLED")
    notification_api_url: str = Field(
        default="https://alimtalk-api.bizmsg.kr/v2/sender/send",
        alias="NOTIFICATION_API_URL",
    )
    notification_user_id: str = Field(default="", alias="NOTIFICATION_USER_ID")
    notification_profile: str = Field(default="", alias="NOTIFICATION_PROFILE")
    notification_sms_sender: str = Field(default="", alias="NOTIFICATION_SMS_SENDER")
    notification_queue_size: int = 1000
    notification_timeout_seconds: float = 10.0

    # Message templates registered with the gateway
    template_online: str = "seriallog1"
    template_offline: str = "seriallog2"
    template_alert: str = "seriallog3"
    template_recovery: str = "seriallog4"

    # Used in notification texts and buttons
    system_label: str = "Field Telemetry"
    app_url: str = "http://localhost:8500"

    # CORS
    cors_origins: list[str] = ["*"]
    cors_allow_methods: list[str] = ["*"]
    cors_allow_headers: list[str] = ["*"]

    @field_validator("telemetry_subject_prefix", mode="before")
    @classmethod
    def strip_subject_separator(cls, v: str) -> str:
        """Remove trailing subject separator or wildcard if present."""
        for suffix in (".>", ".*", "."):
            if v.endswith(suffix):
                return v[: -len(suffix)]
        return v


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
