# checkcx/core/logging.py
import logging
import structlog
from typing import Optional
from checkcx.core.config import settings


def setup_logging() -> None:
    """Configure structured logging for the application"""

    # Configure standard library logging
    logging.basicConfig(
        format="%(message)s",
        level=getattr(logging, settings.log_level.upper()),
    )

    # Configure structlog
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.processors.JSONRenderer()
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Get a structured logger instance"""
    return structlog.get_logger(name)


class CheckLogger:
    """Specialized logger for probe and history operations"""

    def __init__(self, name: str = "checks"):
        self.logger = get_logger(name)

    def check_completed(self, provider_id: str, status: str, latency_ms: Optional[int],
                        ping_latency_ms: Optional[int]) -> None:
        self.logger.info(
            "Provider check completed",
            provider_id=provider_id,
            status=status,
            latency_ms=latency_ms,
            ping_latency_ms=ping_latency_ms
        )

    def check_failed(self, provider_id: str, error: str) -> None:
        self.logger.warning(
            "Provider check failed",
            provider_id=provider_id,
            error=error
        )

    def cycle_completed(self, provider_count: int, operational: int, duration_ms: int) -> None:
        self.logger.info(
            "Check cycle completed",
            provider_count=provider_count,
            operational=operational,
            duration_ms=duration_ms
        )

    def store_failure(self, operation: str, error: object) -> None:
        self.logger.error(
            "Telemetry store operation failed",
            operation=operation,
            error=str(error)
        )

    def fallback_used(self, operation: str, function_name: str) -> None:
        self.logger.warning(
            "Server-side function missing, using fallback query",
            operation=operation,
            function_name=function_name
        )

    def error(self, message: str, **kwargs) -> None:
        self.logger.error(message, **kwargs)
