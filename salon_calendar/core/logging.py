"""
structlog setup for the calendar service.

Every log line emitted while a request is handled carries the request's
correlation id and whatever calendar identifiers are bound for it
(calendar, staff member, appointment, viewed day). The middleware binds what
it can read from the query string; routes add path identifiers.
"""
import logging
import time
import uuid
from contextvars import ContextVar
from typing import Any, Dict, Iterable, Optional

import structlog
from fastapi import Request

# Query parameters copied into the log context, renamed where the log key differs
CONTEXT_QUERY_PARAMS = {"staff_id": "staff_id", "date": "day", "anchor": "anchor"}

correlation_id: ContextVar[str] = ContextVar("correlation_id", default="")
calendar_context: ContextVar[Dict[str, Any]] = ContextVar("calendar_context", default={})


class TruncatingProcessor:
    """Clip long free-text fields (upstream error bodies mostly)."""

    def __init__(self, max_length: int = 200, fields: Iterable[str] = ("error", "detail", "message")):
        self.max_length = max_length
        self.fields = tuple(fields)

    def __call__(self, logger, method_name, event_dict):
        for field in self.fields:
            if field in event_dict:
                event_dict[field] = str(event_dict[field])[:self.max_length]
        return event_dict


class CalendarContextProcessor:
    """Attach the correlation id and bound calendar identifiers."""

    def __call__(self, logger, method_name, event_dict):
        current = correlation_id.get()
        if current:
            event_dict["correlation_id"] = current
        for key, value in calendar_context.get().items():
            # explicit event fields win over request context
            event_dict.setdefault(key, value)
        return event_dict


def setup_logging(debug: bool = False, max_log_length: int = 200, level: str = "INFO"):
    log_level = logging.DEBUG if debug else getattr(logging, level.upper(), logging.INFO)

    processors = [
        structlog.stdlib.filter_by_level,
        CalendarContextProcessor(),
        TruncatingProcessor(max_length=max_log_length),
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
    ]
    if debug:
        processors.append(structlog.dev.ConsoleRenderer())
    else:
        processors.append(structlog.processors.format_exc_info)
        processors.append(structlog.processors.JSONRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        context_class=dict,
        cache_logger_on_first_use=True,
    )
    logging.basicConfig(level=log_level, format="%(message)s")


def get_logger(name: str = __name__):
    return structlog.get_logger(name)


def bind_calendar_context(**fields: Optional[str]) -> Dict[str, Any]:
    """Merge identifiers into the current request's log context. None values are ignored."""
    context = dict(calendar_context.get())
    context.update({k: v for k, v in fields.items() if v is not None})
    calendar_context.set(context)
    return context


def clear_context():
    correlation_id.set("")
    calendar_context.set({})


def context_from_query(query_params) -> Dict[str, str]:
    """Calendar identifiers present in a request's query string."""
    return {
        log_key: query_params[param]
        for param, log_key in CONTEXT_QUERY_PARAMS.items()
        if query_params.get(param)
    }


class LoggingMiddleware:
    """Per-request correlation id, calendar context and slow/failed request logging."""

    def __init__(self, log_requests: bool = False, log_responses: bool = False,
                 slow_threshold: float = 2.0):
        self.log_requests = log_requests
        self.log_responses = log_responses
        self.slow_threshold = slow_threshold
        self.logger = get_logger("middleware")

    async def __call__(self, request: Request, call_next):
        current = uuid.uuid4().hex[:8]
        correlation_id.set(current)
        calendar_context.set({})
        bind_calendar_context(path=request.url.path, method=request.method,
                              **context_from_query(request.query_params))
        request.state.correlation_id = current
        started = time.perf_counter()

        if self.log_requests:
            self.logger.info("request_start")

        try:
            response = await call_next(request)
        except Exception as e:
            self.logger.error("request_error", error=str(e), error_type=type(e).__name__,
                              duration=round(time.perf_counter() - started, 3))
            raise
        else:
            duration = time.perf_counter() - started
            slow = duration > self.slow_threshold
            if self.log_responses or slow or response.status_code >= 400:
                self.logger.info("request_complete", status_code=response.status_code,
                                 duration=round(duration, 3), slow=slow)
            response.headers["X-Correlation-ID"] = current
            return response
        finally:
            clear_context()
