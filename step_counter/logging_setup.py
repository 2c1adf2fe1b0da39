"""structlog setup for the step counter service."""

import logging
import sys
from typing import Optional

import structlog
from structlog.types import EventDict, Processor

from .config import Settings


def setup_logging(
    service_name: str,
    settings: Optional[Settings] = None,
) -> structlog.BoundLogger:
    """Route structlog through stdlib logging, tagging every event with the
    service and environment; ``log_format`` picks JSON or console output."""
    if settings is None:
        settings = Settings(service_name=service_name)

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, settings.log_level.upper()),
    )

    processors: list[Processor] = [
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]

    def add_service_fields(logger, method_name, event_dict: EventDict) -> EventDict:
        event_dict["service"] = service_name
        event_dict["environment"] = settings.environment
        return event_dict

    processors.append(add_service_fields)

    if settings.log_format == "json":
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    return structlog.get_logger(service_name)
