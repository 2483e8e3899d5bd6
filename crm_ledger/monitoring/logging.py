"""
Structured logging configuration.

Every event is a JSON object carrying the service name, environment and
version. The API middleware binds ``request_id``/``method``/``path`` and the
actor dependency binds ``actor_id``/``actor_role`` through structlog
contextvars, so ledger and approval logs can be traced back to a request and
a user without passing them around.
"""
import logging
import sys
from typing import Any, Callable, Optional

import structlog
from pythonjsonlogger import jsonlogger

from crm_ledger import __version__
from crm_ledger.config import Settings, get_settings

Processor = Callable[[Any, str, dict[str, Any]], dict[str, Any]]

# Third-party loggers that are too chatty at INFO
_QUIET_LOGGERS = ("redis", "asyncio", "uvicorn.access")


def service_context(settings: Settings) -> Processor:
    """Build a processor stamping each event with the service identity."""
    context = {
        "service": settings.app_name,
        "app_env": settings.app_env,
        "version": __version__,
    }

    def add_service_context(
        logger: Any, method_name: str, event_dict: dict[str, Any]
    ) -> dict[str, Any]:
        for key, value in context.items():
            event_dict.setdefault(key, value)
        return event_dict

    return add_service_context


def bind_actor(actor_id: Optional[int], actor_role: Optional[str]) -> None:
    """Attach the calling user to every log line of the current request."""
    if actor_id is None:
        return
    structlog.contextvars.bind_contextvars(actor_id=actor_id, actor_role=actor_role)


def setup_logging(settings: Optional[Settings] = None) -> None:
    """Configure structlog and route the standard library root logger to JSON on stdout."""
    settings = settings or get_settings()

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            service_context(settings),
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, settings.log_level))
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    # structlog events arrive already rendered; this formatter covers plain stdlib records
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        jsonlogger.JsonFormatter(
            "%(asctime)s %(levelname)s %(name)s %(message)s",
            rename_fields={"asctime": "timestamp", "levelname": "level", "name": "logger"},
            static_fields={"service": settings.app_name, "app_env": settings.app_env},
        )
    )
    root_logger.addHandler(handler)

    logging.getLogger("sqlalchemy.engine").setLevel(
        logging.INFO if settings.database_echo else logging.WARNING
    )
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    structlog.get_logger(__name__).info(
        "logging_configured",
        log_level=settings.log_level,
        sql_echo=settings.database_echo,
    )
