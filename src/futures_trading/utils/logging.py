"""Structured logging configuration.

structlog drives all logging; output is JSON or a colored console rendering
depending on ``Settings.log_format``.
"""

from __future__ import annotations

import logging
import sys
from typing import Any

import structlog
from structlog.types import Processor

from futures_trading.config import LogFormat, Settings, get_settings


def setup_logging(settings: Settings | None = None) -> None:
    """Configure structlog and the stdlib root logger."""
    settings = settings or get_settings()

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, settings.log_level),
    )

    shared_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    if settings.log_format == LogFormat.JSON:
        processors: list[Processor] = [
            *shared_processors,
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    else:
        processors = [
            *shared_processors,
            structlog.dev.ConsoleRenderer(colors=True),
        ]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Return a structured logger.

    Args:
        name: Logger name, usually the dotted module path.
    """
    return structlog.get_logger(name)


def log_trade_decision(
    logger: structlog.stdlib.BoundLogger,
    *,
    instrument: str,
    direction: str,
    approved: bool,
    contracts: int,
    reasons: list[str] | tuple[str, ...],
    **kwargs: Any,
) -> None:
    """Log a risk gate verdict."""
    level = "info" if approved else "warning"
    getattr(logger, level)(
        "trade_decision",
        instrument=instrument,
        direction=direction,
        approved=approved,
        contracts=contracts,
        reasons=list(reasons),
        **kwargs,
    )


def log_order_execution(
    logger: structlog.stdlib.BoundLogger,
    *,
    instrument: str,
    action: str,
    quantity: int,
    order_type: str,
    price: float | None = None,
    order_id: int | None = None,
    status: str = "submitted",
    **kwargs: Any,
) -> None:
    """Log an order submission or fill."""
    logger.info(
        "order_execution",
        instrument=instrument,
        action=action,
        quantity=quantity,
        order_type=order_type,
        price=price,
        order_id=order_id,
        status=status,
        **kwargs,
    )


def log_risk_event(
    logger: structlog.stdlib.BoundLogger,
    *,
    event_type: str,
    action: str,
    **kwargs: Any,
) -> None:
    """Log a circuit breaker or limit event."""
    logger.warning(
        "risk_event",
        event_type=event_type,
        action=action,
        **kwargs,
    )


def log_reconciliation(
    logger: structlog.stdlib.BoundLogger,
    *,
    instrument: str,
    correction: str,
    local_state: str,
    venue_quantity: int,
    **kwargs: Any,
) -> None:
    """Log a state divergence between local belief and the venue."""
    logger.error(
        "position_reconciled",
        instrument=instrument,
        correction=correction,
        local_state=local_state,
        venue_quantity=venue_quantity,
        **kwargs,
    )
