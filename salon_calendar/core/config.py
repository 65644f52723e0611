# salon_calendar/core/config.py

from datetime import timedelta

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # Read env from .env; ignore unknown keys so extra lines don't crash startup
    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    # --- Business calendar ---
    BUSINESS_TIMEZONE: str = "America/Denver"
    LOCKOUT_WINDOW_MINUTES: int = 120

    # --- Day grid (minutes since midnight, pixels) ---
    GRID_START_MINUTE: int = 8 * 60
    GRID_END_MINUTE: int = 20 * 60  # exclusive
    PIXELS_PER_SLOT: float = 60.0  # one 30-minute row
    GRID_TOP_PADDING: float = 8.0
    GRID_BOTTOM_PADDING: float = 16.0
    MIN_EVENT_HEIGHT_PX: float = 30.0
    EVENT_GAP_PX: float = 4.0

    # --- Upstream APIs ---
    BOOKING_API_BASE_URL: str = "https://restyle-api.netlify.app/.netlify/functions"
    DATA_API_BASE_URL: str = "http://localhost:3000/api"
    HTTP_TIMEOUT_SECONDS: float = 15.0
    BOOKINGS_PAGE_SIZE: int = 5000

    # --- Appointment cache ---
    REDIS_URL: str | None = None
    APPOINTMENT_CACHE_TTL_SECONDS: int = 600

    # --- Monitoring & Logging ---
    APP_ENV: str = "production"
    LOG_LEVEL: str = "INFO"
    LOG_REQUESTS: bool = False
    LOG_RESPONSES: bool = False
    MAX_LOG_LENGTH: int = 200
    SLOW_REQUEST_THRESHOLD: float = 2.0

    @property
    def lockout_window(self) -> timedelta:
        return timedelta(minutes=self.LOCKOUT_WINDOW_MINUTES)

    @property
    def appointment_cache_ttl(self) -> timedelta:
        return timedelta(seconds=self.APPOINTMENT_CACHE_TTL_SECONDS)

    # Monitoring helpers
    @property
    def is_development(self) -> bool:
        return self.APP_ENV.lower() in ("development", "dev", "local")

    @property
    def is_production(self) -> bool:
        return self.APP_ENV.lower() in ("production", "prod")


# Singleton
settings = Settings()
