"""Application configuration from environment variables."""

from dataclasses import dataclass
from datetime import timedelta

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """
    All settings via environment variables.
    Same image for dev/prod, just change env vars.
    """

    # Logging
    LOG_LEVEL: str = "INFO"  # DEBUG, INFO, WARNING, ERROR

    # Database
    DATABASE_URL: str = "sqlite:///config/accounts.db"

    # Restoration / scheduling rules
    MAX_RESTORATIONS: int = 3
    MAX_SCHEDULE_HORIZON_DAYS: int = 30
    REMINDER_LEAD_TIME_HOURS: int = 24

    # Deletion scheduler (sweep loop)
    ENABLE_DELETION_SCHEDULER: bool = True
    SWEEP_INTERVAL_SECONDS: int = 60
    SWEEP_MAX_RETRIES: int = 3
    SWEEP_RETRY_BACKOFF_SECONDS: float = 1.0

    # Upper bound for a single lifecycle operation (store round-trips)
    OPERATION_TIMEOUT_SECONDS: float = 5.0

    # Max delete/schedule/restore operations per admin per rolling hour (0 = unlimited)
    ADMIN_RATE_LIMIT_PER_HOUR: int = 50

    # Outbound email (Resend-compatible HTTP API)
    ENABLE_EMAIL_NOTIFICATIONS: bool = True
    EMAIL_API_URL: str = "https://api.resend.com"
    EMAIL_API_KEY: str = ""
    EMAIL_FROM: str = "noreply@example.com"
    SUPPORT_EMAIL: str = "support@example.com"
    # Timezone used when rendering dates inside emails
    NOTIFICATION_TIMEZONE: str = "UTC"

    # Roles allowed to call the admin endpoints (comma-separated)
    ADMIN_ROLES: str = "admin,super_admin"

    class Config:
        env_file = ".env"
        extra = "ignore"

    @property
    def admin_roles_list(self) -> list[str]:
        """Parse comma-separated admin roles into list."""
        if not self.ADMIN_ROLES:
            return []
        return [x.strip() for x in self.ADMIN_ROLES.split(",") if x.strip()]


@dataclass(frozen=True)
class LifecycleConfig:
    """
    Business rules handed to the lifecycle engine and the sweep loop.

    Built once at startup from Settings so the engine never reads globals.
    """

    max_restorations: int = 3
    max_schedule_horizon: timedelta = timedelta(days=30)
    reminder_lead_time: timedelta = timedelta(hours=24)
    sweep_interval: float = 60.0
    sweep_max_retries: int = 3
    sweep_retry_backoff: float = 1.0
    operation_timeout: float = 5.0
    admin_rate_limit_per_hour: int = 50

    @classmethod
    def from_settings(cls, settings: Settings) -> "LifecycleConfig":
        return cls(
            max_restorations=settings.MAX_RESTORATIONS,
            max_schedule_horizon=timedelta(days=settings.MAX_SCHEDULE_HORIZON_DAYS),
            reminder_lead_time=timedelta(hours=settings.REMINDER_LEAD_TIME_HOURS),
            sweep_interval=float(settings.SWEEP_INTERVAL_SECONDS),
            sweep_max_retries=settings.SWEEP_MAX_RETRIES,
            sweep_retry_backoff=settings.SWEEP_RETRY_BACKOFF_SECONDS,
            operation_timeout=settings.OPERATION_TIMEOUT_SECONDS,
            admin_rate_limit_per_hour=settings.ADMIN_RATE_LIMIT_PER_HOUR,
        )


settings = Settings()
