# salon_calendar/main.py
from __future__ import annotations

# Load .env early so settings and os.getenv agree
from dotenv import load_dotenv
load_dotenv()

from fastapi import FastAPI

from salon_calendar.core.config import settings
from salon_calendar.core.logging import LoggingMiddleware, get_logger, setup_logging
from salon_calendar.api.routes.calendar import router as calendar_router

setup_logging(debug=settings.is_development, max_log_length=settings.MAX_LOG_LENGTH, level=settings.LOG_LEVEL)
logger = get_logger(__name__)

app = FastAPI(title="Salon Calendar", description="Appointment time-grid and slot availability engine")

app.middleware("http")(LoggingMiddleware(
    log_requests=settings.LOG_REQUESTS or settings.is_development,
    log_responses=settings.LOG_RESPONSES or settings.is_development,
    slow_threshold=settings.SLOW_REQUEST_THRESHOLD,
))


# -------- Health (public) --------
@app.get("/healthz", include_in_schema=False)
async def healthz():
    return {"ok": True, "timezone": settings.BUSINESS_TIMEZONE}


app.include_router(calendar_router)

logger.info("app_started", env=settings.APP_ENV, timezone=settings.BUSINESS_TIMEZONE)
