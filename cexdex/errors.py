"""
Exception hierarchy for the arbitrage engine.

Each class maps onto one failure category: missing data is recovered by
skipping, bad numeric input kills a single computation, leg failures are
captured in execution outcomes, and adapter initialization failures are fatal.
"""

from typing import Optional


class ArbitrageError(Exception):
    """Base class for all engine errors."""


class ConfigurationError(ArbitrageError):
    """Invalid or incomplete configuration."""


class DataUnavailableError(ArbitrageError):
    """A price or quote could not be obtained this cycle."""

    def __init__(self, venue_id: str, symbol: str, reason: str = "no price available"):
        self.venue_id = venue_id
        self.symbol = symbol
        super().__init__(f"{venue_id}:{symbol}: {reason}")


class ComputationError(ArbitrageError):
    """Malformed numeric input, e.g. a zero-cost division."""


class ExecutionLegError(ArbitrageError):
    """A venue rejected or failed to confirm an order or transaction."""

    def __init__(self, message: str, venue_id: Optional[str] = None):
        self.venue_id = venue_id
        super().__init__(message)


class AdapterInitializationError(ArbitrageError):
    """A venue adapter failed to initialize; the service cannot run."""


class OpportunityNotFound(ArbitrageError):
    """No opportunity with the given identifier in the current snapshot."""

    def __init__(self, opportunity_id: str):
        self.opportunity_id = opportunity_id
        super().__init__(f"Opportunity with ID {opportunity_id} not found")


class ServiceNotInitializedError(ArbitrageError):
    """The service was used before initialize() succeeded."""
