"""
Binance spot adapter.

Best bid/ask arrive over the bookTicker WebSocket stream (seeded via REST);
market orders go through the signed REST API. In paper trading mode orders
fill immediately at the current best price.
"""

import asyncio
import hashlib
import hmac
import json
import time
from decimal import Decimal
from typing import Any, Dict, List, Optional
from urllib.parse import urlencode

import aiohttp
import websockets
from aiolimiter import AsyncLimiter

from cexdex.config import BotConfig
from cexdex.decimal_utils import ZERO, decimal_to_str, round_down_to_step, to_decimal
from cexdex.errors import ComputationError, ConfigurationError, ExecutionLegError
from cexdex.logger import get_logger
from cexdex.models import LegResult, Side, VenuePriceQuote
from cexdex.venues.base import CexAdapter


logger = get_logger("binance")


class BinanceAdapter(CexAdapter):
    """
    Binance spot market adapter.

    Provides:
    - Real-time best bid/ask (bookTicker stream)
    - LOT_SIZE step sizes for quantity normalization
    - MARKET buy/sell orders
    - Account balances
    """

    venue_id = "binance"

    # Primary endpoints (global)
    REST_BASE_URL = "https://api.binance.com/api/v3"
    WS_BASE_URL = "wss://stream.binance.com:9443/stream"

    # Fallback endpoints (public market data only)
    REST_FALLBACK_URL = "https://data-api.binance.vision/api/v3"
    WS_FALLBACK_URL = "wss://data-stream.binance.vision/stream"

    DEFAULT_STEP_SIZE = Decimal("0.00000001")
    RECV_WINDOW_MS = 5000

    # Spot order limit is 10 orders per second per account
    ORDER_RATE_LIMIT = AsyncLimiter(10, 1)

    def __init__(self, config: BotConfig, symbols: Optional[List[str]] = None):
        self.config = config
        if symbols is None:
            symbols = [self.symbol_for(pair) for pair in config.trading.pairs]
        self._api_key = config.binance.api_key
        self._api_secret = config.binance.api_secret
        self._paper_trading = config.is_paper_trading
        self._symbols = [s.upper() for s in symbols]

        if not self._paper_trading and not config.binance.is_configured():
            raise ConfigurationError("BINANCE_API_KEY and BINANCE_API_SECRET are required for live trading!")

        # State
        self._prices: Dict[str, VenuePriceQuote] = {}
        self._step_sizes: Dict[str, Decimal] = {}
        self._http_session: Optional[aiohttp.ClientSession] = None
        self._stream_task: Optional[asyncio.Task] = None
        self._running = False

        logger.info("BinanceAdapter initialized", symbols=self._symbols, paper=self._paper_trading)

    async def connect(self) -> None:
        """Load symbol filters, seed prices and start the price stream."""
        if self._http_session is None:
            self._http_session = aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=10))

        await self._load_exchange_info()
        await self._fetch_initial_prices()

        self._running = True
        self._stream_task = asyncio.create_task(self._stream_book_tickers(), name="binance-book-ticker")

        logger.info("✅ BinanceAdapter connected")

    async def disconnect(self) -> None:
        """Close all connections."""
        self._running = False

        if self._stream_task:
            self._stream_task.cancel()
            try:
                await self._stream_task
            except asyncio.CancelledError:
                pass
            self._stream_task = None

        if self._http_session:
            await self._http_session.close()
            self._http_session = None

        logger.info("BinanceAdapter disconnected")

    # ------------------------------------------------------------------
    # Market data
    # ------------------------------------------------------------------

    async def _public_get(self, path: str, params: Optional[dict] = None) -> Any:
        """GET a public endpoint, trying the primary then the fallback host."""
        last_error: Optional[Exception] = None
        for base_url in (self.REST_BASE_URL, self.REST_FALLBACK_URL):
            try:
                async with self._http_session.get(f"{base_url}{path}", params=params) as response:
                    if response.status == 200:
                        return await response.json()
                    if response.status == 451:
                        logger.warning("Binance REST blocked (451), trying fallback...", url=base_url)
                        last_error = ConnectionError(f"HTTP 451 from {base_url}")
                        continue
                    last_error = ConnectionError(f"HTTP {response.status} from {base_url}{path}")
            except aiohttp.ClientError as e:
                logger.warning("Error fetching from Binance", url=base_url, error=str(e))
                last_error = e
        raise ConnectionError(f"All Binance endpoints failed for {path}: {last_error}")

    async def _load_exchange_info(self) -> None:
        data = await self._public_get("/exchangeInfo", {"symbols": json.dumps(self._symbols, separators=(",", ":"))})

        for info in data.get("symbols", []):
            symbol = info.get("symbol", "")
            step = self.DEFAULT_STEP_SIZE
            for f in info.get("filters", []):
                if f.get("filterType") == "LOT_SIZE":
                    step = Decimal(f.get("stepSize", str(self.DEFAULT_STEP_SIZE)))
            self._step_sizes[symbol] = step

        missing = [s for s in self._symbols if s not in self._step_sizes]
        if missing:
            logger.warning("Symbols not listed on Binance", symbols=missing)

    async def _fetch_initial_prices(self) -> None:
        """Seed best bid/ask via REST before the stream takes over."""
        try:
            tickers = await self._public_get("/ticker/bookTicker")
        except ConnectionError as e:
            logger.error("Failed to fetch initial prices", error=str(e))
            return

        for ticker in tickers:
            symbol = ticker.get("symbol", "")
            if symbol in self._symbols:
                self._update_price(symbol, ticker.get("bidPrice"), ticker.get("askPrice"))
                logger.info(f"📊 {symbol}: bid={ticker.get('bidPrice')} ask={ticker.get('askPrice')}")

    async def _stream_book_tickers(self) -> None:
        """Keep best bid/ask current from the bookTicker stream."""
        streams = "/".join(f"{s.lower()}@bookTicker" for s in self._symbols)
        ws_endpoints = [
            f"{self.WS_BASE_URL}?streams={streams}",
            f"{self.WS_FALLBACK_URL}?streams={streams}",
        ]

        while self._running:
            connected = False
            for ws_url in ws_endpoints:
                if not self._running:
                    break
                try:
                    async with websockets.connect(ws_url) as ws:
                        logger.info("✅ Binance WebSocket connected")
                        connected = True

                        async for message in ws:
                            if not self._running:
                                break
                            self._handle_ws_message(message)
                        break

                except websockets.exceptions.ConnectionClosed:
                    logger.warning("WebSocket connection closed, trying next endpoint...")
                    continue
                except (websockets.exceptions.WebSocketException, OSError) as e:
                    logger.warning("WebSocket error, trying next endpoint...", error=str(e))
                    continue

            if self._running and not connected:
                logger.warning("All Binance WebSocket endpoints failed, retrying in 5s...")
                await asyncio.sleep(5)

    def _handle_ws_message(self, message: str) -> None:
        try:
            data = json.loads(message)
        except json.JSONDecodeError:
            logger.debug("Discarding non-JSON WS message")
            return

        # Combined stream format: {"stream": "ethusdt@bookTicker", "data": {...}}
        payload = data.get("data", data)
        symbol = payload.get("s", "")
        if symbol in self._symbols:
            self._update_price(symbol, payload.get("b"), payload.get("a"))

    def _update_price(self, symbol: str, bid: Any, ask: Any) -> None:
        try:
            bid_value = to_decimal(bid) if bid is not None else None
            ask_value = to_decimal(ask) if ask is not None else None
        except ComputationError:
            logger.debug("Ignoring malformed ticker", symbol=symbol)
            return

        # Binance reports 0 for an empty book side
        self._prices[symbol] = VenuePriceQuote(
            venue_id=self.venue_id,
            bid=bid_value if bid_value and bid_value > ZERO else None,
            ask=ask_value if ask_value and ask_value > ZERO else None,
        )

    def best_bid(self, symbol: str) -> Optional[Decimal]:
        quote = self._prices.get(symbol)
        return quote.bid if quote else None

    def best_ask(self, symbol: str) -> Optional[Decimal]:
        quote = self._prices.get(symbol)
        return quote.ask if quote else None

    def quote_observed_at(self, symbol: str) -> Optional[int]:
        quote = self._prices.get(symbol)
        return quote.observed_at_millis if quote else None

    def normalize_quantity(self, symbol: str, quantity: Decimal) -> Decimal:
        step = self._step_sizes.get(symbol)
        if step is None:
            raise ComputationError(f"Symbol info not found for {symbol}")
        return round_down_to_step(quantity, step)

    # ------------------------------------------------------------------
    # Trading
    # ------------------------------------------------------------------

    def _sign(self, params: Dict[str, Any]) -> str:
        """Query string with HMAC-SHA256 signature appended."""
        query = urlencode(params)
        signature = hmac.new(
            self._api_secret.encode("utf-8"),
            query.encode("utf-8"),
            hashlib.sha256,
        ).hexdigest()
        return f"{query}&signature={signature}"

    async def _signed_request(self, method: str, path: str, params: Dict[str, Any]) -> Dict[str, Any]:
        params = dict(params, timestamp=int(time.time() * 1000), recvWindow=self.RECV_WINDOW_MS)
        url = f"{self.REST_BASE_URL}{path}?{self._sign(params)}"
        headers = {"X-MBX-APIKEY": self._api_key}

        async with self.ORDER_RATE_LIMIT:
            async with self._http_session.request(method, url, headers=headers) as response:
                data = await response.json(content_type=None)
                if response.status != 200:
                    raise ExecutionLegError(
                        f"Binance {method} {path} failed ({response.status}): {data.get('msg', data)}",
                        venue_id=self.venue_id,
                    )
                return data

    async def market_buy(self, symbol: str, quantity: Decimal) -> LegResult:
        return await self._market_order(symbol, Side.BUY, quantity)

    async def market_sell(self, symbol: str, quantity: Decimal) -> LegResult:
        return await self._market_order(symbol, Side.SELL, quantity)

    async def _market_order(self, symbol: str, side: Side, quantity: Decimal) -> LegResult:
        if self._paper_trading:
            return await self._paper_market_order(symbol, side, quantity)

        try:
            data = await self._signed_request(
                "POST",
                "/order",
                {
                    "symbol": symbol,
                    "side": side.value.upper(),
                    "type": "MARKET",
                    "quantity": decimal_to_str(quantity),
                    "newOrderRespType": "FULL",
                },
            )
        except aiohttp.ClientError as e:
            raise ExecutionLegError(f"Binance order request failed: {e}", venue_id=self.venue_id) from e

        status = data.get("status")
        filled = Decimal(str(data.get("executedQty", "0")))
        # An EXPIRED or partially filled market order still leaves a real position
        if filled <= ZERO:
            raise ExecutionLegError(
                f"Binance order {data.get('orderId')} not filled (status={status})",
                venue_id=self.venue_id,
            )

        quote_qty = Decimal(str(data.get("cummulativeQuoteQty", "0")))
        result = LegResult(
            venue_id=self.venue_id,
            side=side,
            reference=str(data.get("orderId")),
            requested_quantity=quantity,
            filled_quantity=filled,
            average_price=quote_qty / filled,
            raw=data,
        )

        logger.info(
            f"{side.value.capitalize()} order executed on Binance",
            order_id=result.reference,
            symbol=symbol,
            quantity=decimal_to_str(quantity),
            filled=decimal_to_str(filled),
            status=status,
        )
        return result

    async def _paper_market_order(self, symbol: str, side: Side, quantity: Decimal) -> LegResult:
        """Simulate a market order filled at the current best price."""
        price = self.best_ask(symbol) if side == Side.BUY else self.best_bid(symbol)
        if price is None:
            raise ExecutionLegError(f"No {symbol} price to fill paper order", venue_id=self.venue_id)

        # Simulate small delay
        await asyncio.sleep(0.05)

        result = LegResult(
            venue_id=self.venue_id,
            side=side,
            reference=f"paper_{int(time.time() * 1000)}",
            requested_quantity=quantity,
            filled_quantity=quantity,
            average_price=price,
            paper=True,
        )

        logger.info(
            "📝 Paper order filled",
            order_id=result.reference,
            symbol=symbol,
            side=side.value,
            quantity=decimal_to_str(quantity),
            price=decimal_to_str(price),
        )
        return result

    async def get_balance(self, asset: str) -> Dict[str, Decimal]:
        """Get free and locked balance of an asset."""
        if self._paper_trading:
            return {"free": Decimal("0"), "locked": Decimal("0")}

        data = await self._signed_request("GET", "/account", {})
        for balance in data.get("balances", []):
            if balance.get("asset") == asset.upper():
                return {
                    "free": Decimal(str(balance.get("free", "0"))),
                    "locked": Decimal(str(balance.get("locked", "0"))),
                }
        return {"free": Decimal("0"), "locked": Decimal("0")}
