"""
Structured logging configuration for the CEX/DEX Arbitrage Bot.
Uses structlog for rich, structured logging output.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

import structlog
from rich.console import Console
from rich.logging import RichHandler

from cexdex.config import BotConfig, get_config
from cexdex.decimal_utils import decimal_to_str, quantize_percentage


# Rich console for pretty output
console = Console()


def add_timestamp(
    logger: Any, method_name: str, event_dict: Dict[str, Any]
) -> Dict[str, Any]:
    """Add ISO timestamp to log events."""
    event_dict["timestamp"] = datetime.now(timezone.utc).isoformat()
    return event_dict


def add_component(
    logger: Any, method_name: str, event_dict: Dict[str, Any]
) -> Dict[str, Any]:
    """Ensure component is present in log events."""
    if "component" not in event_dict:
        event_dict["component"] = "main"
    return event_dict


def setup_logging(config: Optional[BotConfig] = None) -> None:
    """Configure structured logging for the application."""
    config = config or get_config()
    log_level = getattr(logging, config.monitoring.log_level.upper(), logging.INFO)

    # Configure standard library logging
    logging.basicConfig(
        level=log_level,
        format="%(message)s",
        handlers=[
            RichHandler(
                console=console,
                rich_tracebacks=True,
                show_time=True,
                show_path=False,
            )
        ],
        force=True,
    )

    # Reduce noise from third-party libraries
    logging.getLogger("aiohttp.access").setLevel(logging.WARNING)
    logging.getLogger("web3").setLevel(logging.WARNING)
    logging.getLogger("websockets").setLevel(logging.WARNING)
    logging.getLogger("urllib3").setLevel(logging.WARNING)
    logging.getLogger("asyncio").setLevel(logging.WARNING)

    # Configure structlog
    processors = [
        structlog.stdlib.filter_by_level,
        add_timestamp,
        add_component,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]

    if config.development.debug_mode:
        # Pretty console output for development
        processors.append(structlog.dev.ConsoleRenderer(colors=True))
    else:
        # JSON output for production
        processors.append(structlog.processors.JSONRenderer(default=str))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(component: str) -> structlog.stdlib.BoundLogger:
    """Get a logger instance bound to a specific component."""
    return structlog.get_logger().bind(component=component)


class TradeLogger:
    """
    Specialized logger for opportunity and execution activity.

    Execution outcomes are not retained by the engine; this log is the audit
    trail for them.
    """

    def __init__(self):
        self.logger = get_logger("trades")

    def log_scan_completed(
        self,
        pairs: int,
        venues: int,
        combinations_priced: int,
        opportunities: int,
        duration_ms: float,
    ) -> None:
        """Log a finished scan cycle."""
        self.logger.debug(
            "scan_completed",
            pairs=pairs,
            venues=venues,
            combinations_priced=combinations_priced,
            opportunities=opportunities,
            duration_ms=f"{duration_ms:.1f}",
        )

    def log_opportunity_detected(self, opportunity) -> None:
        """Log detection of an opportunity above threshold."""
        self.logger.info(
            "🎯 opportunity_detected",
            opportunity_id=opportunity.opportunity_id,
            direction=opportunity.direction.value,
            venue=opportunity.venue_id,
            pair=str(opportunity.pair),
            buy_price=decimal_to_str(opportunity.buy_price),
            sell_price=decimal_to_str(opportunity.sell_price),
            profit_after_gas=decimal_to_str(opportunity.profit_after_gas),
            profit_pct=f"{quantize_percentage(opportunity.profit_percentage)}%",
        )

    def log_leg_submitted(
        self,
        opportunity_id: str,
        leg: int,
        venue: str,
        side: str,
        quantity: str,
    ) -> None:
        """Log submission of one leg."""
        self.logger.info(
            "leg_submitted",
            opportunity_id=opportunity_id,
            leg=leg,
            venue=venue,
            side=side,
            quantity=quantity,
        )

    def log_leg_failed(
        self,
        opportunity_id: str,
        leg: int,
        venue: str,
        error: str,
    ) -> None:
        """Log a leg rejected or unconfirmed by its venue."""
        self.logger.error(
            "leg_failed",
            opportunity_id=opportunity_id,
            leg=leg,
            venue=venue,
            error=error,
        )

    def log_execution_outcome(self, outcome) -> None:
        """Log the final outcome of an execution attempt."""
        opportunity = outcome.opportunity
        fields = dict(
            opportunity_id=opportunity.opportunity_id,
            direction=opportunity.direction.value,
            venue=opportunity.venue_id,
            pair=str(opportunity.pair),
            failure_stage=outcome.failure_stage.value,
            leg1_ref=outcome.leg1_result.reference if outcome.leg1_result else None,
            leg2_ref=outcome.leg2_result.reference if outcome.leg2_result else None,
            error=outcome.error,
        )
        if outcome.succeeded:
            self.logger.info("🟢 execution_succeeded", **fields)
        elif outcome.is_one_sided:
            self.logger.error("🔴 execution_one_sided_position", **fields)
        else:
            self.logger.warning("🔴 execution_failed", **fields)


# Global logger instance
trade_logger = TradeLogger()
