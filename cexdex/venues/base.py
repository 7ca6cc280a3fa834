"""
Base classes for venue adapters.
"""

from abc import ABC, abstractmethod
from decimal import Decimal
from typing import Dict, Optional

from cexdex.models import LegResult, Side, TradingPair


class CexAdapter(ABC):
    """Abstract base class for centralized exchange adapters."""

    venue_id: str = "cex"

    @abstractmethod
    async def connect(self) -> None:
        """Load exchange metadata and start price delivery."""
        pass

    @abstractmethod
    async def disconnect(self) -> None:
        """Close connections."""
        pass

    def symbol_for(self, pair: TradingPair) -> str:
        """Exchange symbol for a pair, e.g. ETHUSDT."""
        return f"{pair.base}{pair.quote}".upper()

    @abstractmethod
    def best_bid(self, symbol: str) -> Optional[Decimal]:
        """Best bid, or None when unavailable."""
        pass

    @abstractmethod
    def best_ask(self, symbol: str) -> Optional[Decimal]:
        """Best ask, or None when unavailable."""
        pass

    def quote_observed_at(self, symbol: str) -> Optional[int]:
        """Epoch millis of the current bid/ask, or None when not tracked."""
        return None

    @abstractmethod
    def normalize_quantity(self, symbol: str, quantity: Decimal) -> Decimal:
        """Round a quantity down to the exchange step size."""
        pass

    @abstractmethod
    async def market_buy(self, symbol: str, quantity: Decimal) -> LegResult:
        """
        Place a market buy order.

        Raises:
            ExecutionLegError: If the order is rejected or unconfirmed
        """
        pass

    @abstractmethod
    async def market_sell(self, symbol: str, quantity: Decimal) -> LegResult:
        """
        Place a market sell order.

        Raises:
            ExecutionLegError: If the order is rejected or unconfirmed
        """
        pass

    async def get_balance(self, asset: str) -> Dict[str, Decimal]:
        """Free and locked balance of an asset."""
        return {"free": Decimal("0"), "locked": Decimal("0")}


class DexAdapter(ABC):
    """Abstract base class for decentralized exchange adapters."""

    @property
    @abstractmethod
    def venues(self) -> list:
        """Venue identifiers (networks) this adapter can trade on."""
        pass

    @abstractmethod
    async def connect(self) -> None:
        pass

    @abstractmethod
    async def disconnect(self) -> None:
        pass

    @abstractmethod
    async def quote(
        self,
        venue_id: str,
        base_token: str,
        quote_token: str,
        amount: Decimal = Decimal("1"),
    ) -> Optional[Decimal]:
        """
        Quote the price of one base token in quote tokens.

        Args:
            venue_id: Network to quote on
            base_token: Token being priced
            quote_token: Token the price is expressed in
            amount: Base amount the quote is sized for

        Returns:
            Price per base token, or None when no pool can quote it
        """
        pass

    @abstractmethod
    async def swap(
        self,
        venue_id: str,
        side: Side,
        base_token: str,
        quote_token: str,
        amount: Decimal,
        max_slippage_pct: Decimal,
    ) -> LegResult:
        """
        Swap on a network.

        BUY swaps quote tokens into ``amount`` base tokens, SELL swaps
        ``amount`` base tokens into quote tokens.

        Raises:
            ExecutionLegError: If the transaction fails or is not confirmed
        """
        pass

    async def gas_price(self, venue_id: str) -> Optional[int]:
        """Gas price in wei to submit with, or None when unknown."""
        return None
