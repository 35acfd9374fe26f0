from pydantic_settings import BaseSettings
from pathlib import Path

DATA_DIR = Path(__file__).resolve().parent.parent / "data"

class Settings(BaseSettings):
    REDIS_URL: str = "redis://localhost:6379/0"

    IDEMPOTENCY_TTL: int = 300  # 5 minutes
    PRICE_CACHE_TTL: int = 60   # 60 seconds

    RATE_TABLE_FILE: str = str(DATA_DIR / "rate_table.json")
    HOLIDAY_CALENDAR_FILE: str = str(DATA_DIR / "holidays.json")
    LOCAL_TIMEZONE: str = "America/New_York"

    SESSION_PREFERENCE_TTL: int = 1800  # 30 minutes
    PERSISTENT_PREFERENCE_TTL: int = 30 * 24 * 3600  # 30 days
    PREFERENCE_STORE_MAX_ITEMS: int = 50_000
    VISITOR_COOKIE: str = "tnt_visitor"
    PLATFORM_OVERRIDE_ENABLED: bool = True

    DRIVER_PORTAL_URL: str = "https://tnt-driver-portal.vercel.app"
    DRIVER_PORTAL_TIMEOUT: int = 10
    DRIVER_PORTAL_RETRIES: int = 3
    DEFAULT_VEHICLE_CLASS: str = "sedan"

    MAX_CHARTER_HOURS: float = 24

    SHOW_PARTNER_COMMISSION: bool = False
    SHOW_FULL_BREAKDOWN: bool = False

    API_TITLE: str = "TNT Transportation Pricing Service"
    API_DESCRIPTION: str = "Platform detection and rate quoting for retail, partner and corporate bookings"
    API_VERSION: str = "1.0.0"

    LOG_LEVEL: str = "INFO"
    DEBUG: bool = False

    class Config:
        env_file = ".env"
        case_sensitive = True

settings = Settings()
