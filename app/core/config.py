import os
import logging
from pydantic import BaseModel, Field
from typing import List, Optional, Set
from dotenv import load_dotenv

load_dotenv()

_WEEKDAY_NAMES = {
    "monday": 0, "tuesday": 1, "wednesday": 2, "thursday": 3,
    "friday": 4, "saturday": 5, "sunday": 6,
}


def parse_weekend_days(raw: str) -> Set[int]:
    """
    Parse a comma-separated weekend policy into Python weekday numbers (Mon=0).
    Accepts day names ("friday,saturday") or numbers ("4,5").
    """
    days = set()
    for token in raw.split(","):
        token = token.strip().lower()
        if not token:
            continue
        if token.isdigit():
            value = int(token)
            if value not in range(7):
                raise ValueError(f"Invalid weekday number: {token}")
            days.add(value)
        elif token in _WEEKDAY_NAMES:
            days.add(_WEEKDAY_NAMES[token])
        else:
            raise ValueError(f"Invalid weekday name: {token}")
    return days


class LeavePolicySettings(BaseModel):
    annual_vacation_days: int = Field(default=int(os.getenv("ANNUAL_VACATION_DAYS", "21")))
    reward_days_per_month: int = Field(default=int(os.getenv("REWARD_DAYS_PER_MONTH", "1")))
    weekend_days: Set[int] = Field(
        default_factory=lambda: parse_weekend_days(os.getenv("WEEKEND_DAYS", "friday,saturday"))
    )
    # Reward pool has no ceiling unless configured
    reward_ceiling: Optional[int] = Field(
        default=int(os.getenv("REWARD_CEILING")) if os.getenv("REWARD_CEILING") else None
    )


class Config(BaseModel):
    app_name: str = "Institute Vacation Service"
    environment: str = os.getenv("APP_ENV", "development")
    api_prefix: str = "/api"

    # Database
    database_url: str = os.getenv("DATABASE_URL", "sqlite:///./database.db")

    # Leave policy
    leave: LeavePolicySettings = LeavePolicySettings()

    version: str = "1.0.0"
    request_id_header: str = "X-Request-ID"
    # Authentication happens upstream; the gateway forwards the caller's id here
    user_id_header: str = "X-User-ID"

    cors_origins: List[str] = Field(
        default_factory=lambda: [
            o.strip()
            for o in os.getenv(
                "CORS_ORIGINS",
                "http://localhost:3000,http://localhost:3001,"
                "http://127.0.0.1:3000,http://127.0.0.1:3001",
            ).split(",")
            if o.strip()
        ]
    )

    # Rate limiting
    rate_limit_enabled: bool = os.getenv("RATE_LIMIT_ENABLED", "true").lower() == "true"
    submission_rate_limit: str = os.getenv("SUBMISSION_RATE_LIMIT", "20/minute")

settings = Config()

# --- Startup Validation ---
_logger = logging.getLogger(__name__)
if len(settings.leave.weekend_days) != 2:
    if settings.environment != "development":
        raise RuntimeError(
            f"FATAL: WEEKEND_DAYS must name exactly two distinct rest days, "
            f"got {sorted(settings.leave.weekend_days)}."
        )
    _logger.warning(
        f"Weekend policy has {len(settings.leave.weekend_days)} day(s); "
        "only acceptable in development."
    )
