from pathlib import Path
from urllib.parse import urlparse

from pydantic_settings import BaseSettings, SettingsConfigDict

ENV_PATH = Path(__file__).resolve().parent.parent / ".env.local"


class Settings(BaseSettings):
    # Environment settings
    environment: str = "development"
    debug: bool = False

    # Supabase settings (credentials are validated when a cycle starts)
    SUPABASE_URL: str | None = None
    SUPABASE_SERVICE_ROLE_KEY: str | None = None
    SUPABASE_DB_URL: str | None = None

    # Resend email settings
    RESEND_API_KEY: str | None = None
    RESEND_FROM_EMAIL: str = "noreply@civicmatch.app"
    EMAIL_ENABLED: bool = True
    EMAIL_TEST_MODE: bool = False

    # Google Calendar service account settings
    GOOGLE_SERVICE_ACCOUNT_JSON: str | None = None
    GOOGLE_SERVICE_ACCOUNT_EMAIL: str | None = None
    GOOGLE_SERVICE_ACCOUNT_PRIVATE_KEY: str | None = None
    GOOGLE_CALENDAR_ID: str = "primary"

    # Triggers and public links
    CRON_SECRET: str | None = None
    SITE_URL: str = "https://civicmatch.app"

    # =================================================================
    # WEEKLY MATCHING SETTINGS - operational tuning
    # =================================================================
    MATCHING_CADENCE_WEEKS: int = 2  # 2 = biweekly
    MATCHING_RUN_WEEKDAY: int = 0  # Monday; the gate opens once per cadence week
    MATCHING_MIN_DAYS_SINCE_LAST_MATCH: int = 14
    MATCHING_MAX_MATCHES_PER_CYCLE: int = 50
    MATCHING_EXCLUDE_RECENT_MATCHES: bool = True
    MATCHING_CREATE_MEETINGS: bool = True
    MATCHING_JOB_INTERVAL_HOURS: float = 24.0
    EMAIL_SEND_INTERVAL_SECONDS: float = 0.6  # ~1.67 requests/second
    CALENDAR_CALL_INTERVAL_SECONDS: float = 0.2
    MEETING_TIMEZONE: str = "Europe/Berlin"
    MEETING_DURATION_MINUTES: int = 30
    MEETING_WEEKDAY: int = 4  # Friday
    MEETING_HOUR: int = 17

    # =================================================================
    # DATABASE POOL SETTINGS
    # =================================================================
    DB_POOL_MIN_SIZE: int = 1
    DB_POOL_MAX_SIZE: int = 5
    DB_POOL_TIMEOUT: float = 30.0
    DB_POOL_MAX_IDLE: float = 600.0  # 10 minutes
    DB_POOL_MAX_LIFETIME: float = 3600.0  # 1 hour

    model_config = SettingsConfigDict(
        env_file=str(ENV_PATH),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    @property
    def is_production(self) -> bool:
        return self.environment.lower() == "production"

    def project_ref(self) -> str | None:
        """
        Extract the Supabase project ref from SUPABASE_URL host, e.g.
        https://abcd1234.supabase.co -> abcd1234
        """
        if not self.SUPABASE_URL:
            return None
        host = urlparse(self.SUPABASE_URL).hostname or ""
        return host.split(".")[0] or None

    def site_url(self) -> str:
        return self.SITE_URL.rstrip("/")

    def google_credentials_configured(self) -> bool:
        """True when either service account form is present."""
        if self.GOOGLE_SERVICE_ACCOUNT_JSON:
            return True
        return bool(self.GOOGLE_SERVICE_ACCOUNT_EMAIL and self.GOOGLE_SERVICE_ACCOUNT_PRIVATE_KEY)

    def configuration_issues(self) -> list[str]:
        """List missing settings that make a matching cycle impossible."""
        issues = []
        if not self.SUPABASE_DB_URL:
            issues.append("SUPABASE_DB_URL not set")
        if self.EMAIL_ENABLED and not self.EMAIL_TEST_MODE and not self.RESEND_API_KEY:
            issues.append("RESEND_API_KEY not set")
        return issues

    def get_db_pool_config(self) -> dict:
        """
        Get database pool configuration.
        The matching job is a sequential batch, so development stays small.
        """
        config = {
            "min_size": self.DB_POOL_MIN_SIZE,
            "max_size": self.DB_POOL_MAX_SIZE,
            "timeout": self.DB_POOL_TIMEOUT,
            "max_idle": self.DB_POOL_MAX_IDLE,
            "max_lifetime": self.DB_POOL_MAX_LIFETIME,
        }

        if self.environment == "development":
            config.update({"min_size": 1, "max_size": 3, "timeout": 15.0})

        return config


settings = Settings()
