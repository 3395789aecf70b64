from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

ENV_PATH = Path(__file__).resolve().parent.parent / ".env.local"


class Settings(BaseSettings):
    # Environment settings
    environment: str = "development"
    debug: bool = False
    LOG_LEVEL: str = "INFO"

    # Google Calendar settings (single configured calendar)
    GOOGLE_CALENDAR_ID: str = "primary"
    GOOGLE_CALENDAR_ACCESS_TOKEN: str | None = None
    GOOGLE_SERVICE_ACCOUNT_EMAIL: str | None = None
    GOOGLE_PRIVATE_KEY: str | None = None
    GOOGLE_TOKEN_URI: str = "https://oauth2.googleapis.com/token"

    # =================================================================
    # SCHEDULING SETTINGS
    # =================================================================
    BUSINESS_TIMEZONE: str = "America/Los_Angeles"
    BUSINESS_OPEN_HOUR: int = 9
    BUSINESS_CLOSE_HOUR: int = 17
    SLOT_DURATION_MINUTES: int = 30
    SLOT_GRANULARITY_MINUTES: int = 30
    RESERVATION_TTL_SECONDS: int = 300
    MEETING_SUMMARY: str = "Consultation"
    SCHEDULING_LINK: str = "https://calendly.com/"

    # Maintenance sweep
    MAINTENANCE_INTERVAL_SECONDS: float = 60.0
    CALL_RETENTION_HOURS: int = 24

    # Downstream automation webhook
    NOTIFICATION_WEBHOOK_URL: str | None = None
    NOTIFICATION_TIMEOUT_SECONDS: float = 15.0
    NOTIFICATION_RETRY_DELAY_SECONDS: float = 3.0

    # Retell (outbound call service) settings
    RETELL_API_KEY: str | None = None
    RETELL_FROM_NUMBER: str | None = None
    RETELL_AGENT_ID: str | None = None
    RETELL_API_BASE_URL: str = "https://api.retellai.com"
    SERVER_URL: str = "http://localhost:8000"

    model_config = SettingsConfigDict(
        env_file=str(ENV_PATH),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    def private_key(self) -> str | None:
        """
        Service-account private key with escaped newlines restored.
        Keys pasted into env files usually carry literal "\\n" sequences.
        """
        if not self.GOOGLE_PRIVATE_KEY:
            return None
        return self.GOOGLE_PRIVATE_KEY.replace("\\n", "\n")

    def has_calendar_credentials(self) -> bool:
        """Check whether any calendar credential source is configured."""
        if self.GOOGLE_CALENDAR_ACCESS_TOKEN:
            return True
        return bool(self.GOOGLE_SERVICE_ACCOUNT_EMAIL and self.GOOGLE_PRIVATE_KEY)

    def call_webhook_url(self) -> str:
        """Public URL the call service posts lifecycle events to."""
        return f"{self.SERVER_URL.rstrip('/')}/calls/webhook"

    def get_business_hours_config(self) -> dict:
        """
        Get business-hours configuration for slot generation.
        Adjust environment-specific settings based on self.environment.
        """
        config = {
            "timezone": self.BUSINESS_TIMEZONE,
            "open_hour": self.BUSINESS_OPEN_HOUR,
            "close_hour": self.BUSINESS_CLOSE_HOUR,
        }

        if self.environment == "development" and self.BUSINESS_CLOSE_HOUR <= self.BUSINESS_OPEN_HOUR:
            # Misordered hours would yield no slots at all; fall back to defaults locally
            config.update({"open_hour": 9, "close_hour": 17})

        return config


settings = Settings()
