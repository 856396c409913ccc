# backend/classcredits/core/config.py
import logging
import os
from pathlib import Path
from typing import Literal

from dotenv import load_dotenv
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def is_running_tests() -> bool:
    """
    Detect if code is running under pytest.

    PYTEST_CURRENT_TEST is set automatically by pytest during test runs, and is
    not expected to be present in production environments.
    """
    return os.getenv("PYTEST_CURRENT_TEST") is not None


logger = logging.getLogger(__name__)

# Load .env file only if not in CI
if not os.getenv("CI"):
    env_path = Path(__file__).parent.parent.parent / ".env"  # Goes up to backend/.env
    logger.debug("[CONFIG] Looking for .env at: %s (exists=%s)", env_path, env_path.exists())
    load_dotenv(env_path)


ReminderType = Literal["class_reminder_1h", "class_reminder_3h", "class_reminder_30m"]


class Settings(BaseSettings):
    environment: str = Field(default="development", description="Deployment tier")
    is_testing: bool = Field(default=False, description="Set by the test harness")

    database_url: str = Field(
        default="sqlite:///./classcredits.db",
        description="SQLAlchemy database URL",
    )
    redis_url: str = Field(
        default="redis://localhost:6379",
        description="Celery broker and result backend",
    )

    # Credits
    credit_value_cents: int = Field(default=50, description="Cents represented by one credit")
    reconcile_batch_size: int = Field(default=500, description="Users per reconcile sweep")

    # Booking policy
    max_active_bookings_per_user: int = Field(
        default=5, description="Upper bound on pending/awaiting bookings with a future start"
    )
    default_reminder_type: ReminderType = Field(default="class_reminder_1h")
    late_cancellation_refund_percent: int = Field(
        default=50, description="Refund after the cancellation window boundary"
    )
    post_start_refund_percent: int = Field(
        default=0, description="Refund for cancellations made after class start"
    )
    check_in_opens_minutes: int = Field(default=30)
    check_in_closes_hours: int = Field(default=3)

    # Background sweeps
    no_show_grace_hours: int = Field(default=3)
    class_completion_grace_hours: int = Field(default=2)
    discount_summary_horizon_hours: int = Field(default=48)

    # Earnings
    platform_fee_rate: float = Field(default=0.20, description="Platform share of gross revenue")

    model_config = SettingsConfigDict(
        env_file=".env" if not os.getenv("CI") else None,
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator("credit_value_cents", "max_active_bookings_per_user")
    @classmethod
    def _require_positive(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("must be a positive integer")
        return value

    @field_validator("late_cancellation_refund_percent", "post_start_refund_percent")
    @classmethod
    def _require_percentage(cls, value: int) -> int:
        if not 0 <= value <= 100:
            raise ValueError("must be between 0 and 100")
        return value

    @field_validator("platform_fee_rate")
    @classmethod
    def _require_rate(cls, value: float) -> float:
        if not 0 <= value < 1:
            raise ValueError("platform_fee_rate must be in [0, 1)")
        return value


settings = Settings()
