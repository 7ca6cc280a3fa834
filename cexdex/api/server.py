"""
HTTP inspection and control surface.

A thin aiohttp application over the ArbitrageService public API. Handlers
never touch engine internals; every payload is JSON and every error is an
``{"error": message}`` object.
"""

import json
from datetime import datetime, timezone
from typing import Optional

from aiohttp import web

from cexdex.config import ServerConfig
from cexdex.decimal_utils import decimal_to_str
from cexdex.engine.service import ArbitrageService
from cexdex.errors import DataUnavailableError, OpportunityNotFound
from cexdex.logger import get_logger


logger = get_logger("api")

SERVICE_KEY = web.AppKey("service", ArbitrageService)


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


def _error(message: str, status: int) -> web.Response:
    return web.json_response({"error": message}, status=status)


@web.middleware
async def request_logging_middleware(request: web.Request, handler):
    logger.info("API request", path=request.path, method=request.method, ip=request.remote)
    return await handler(request)


@web.middleware
async def error_middleware(request: web.Request, handler):
    """Map exceptions to structured JSON errors."""
    try:
        return await handler(request)
    except web.HTTPNotFound:
        return _error("Endpoint not found", 404)
    except web.HTTPMethodNotAllowed:
        return _error("Method not allowed", 405)
    except web.HTTPException:
        raise
    except Exception as e:
        logger.error("API error", path=request.path, error=str(e), exc_info=True)
        return _error(str(e), 500)


# ---------------------------------------------------------------------------
# Handlers
# ---------------------------------------------------------------------------

async def health(request: web.Request) -> web.Response:
    return web.json_response({"status": "ok", "timestamp": _timestamp()})


async def list_opportunities(request: web.Request) -> web.Response:
    service = request.app[SERVICE_KEY]
    opportunities = [o.to_dict() for o in service.get_current_opportunities()]
    return web.json_response({"opportunities": opportunities})


async def list_pairs(request: web.Request) -> web.Response:
    service = request.app[SERVICE_KEY]
    return web.json_response({"pairs": [str(pair) for pair in service.pairs]})


async def cex_price(request: web.Request) -> web.Response:
    service = request.app[SERVICE_KEY]
    symbol = request.match_info["symbol"]

    try:
        prices = service.get_cex_prices(symbol)
    except DataUnavailableError:
        return _error(f"No price found for symbol {symbol}", 404)

    return web.json_response({
        "symbol": symbol.upper(),
        "price": {
            "bid": decimal_to_str(prices["bid"]),
            "ask": decimal_to_str(prices["ask"]),
            "timestamp": _timestamp(),
        },
    })


async def dex_price(request: web.Request) -> web.Response:
    service = request.app[SERVICE_KEY]
    network = request.match_info["network"]
    base_token = request.match_info["base"]
    quote_token = request.match_info["quote"]

    try:
        price = await service.get_dex_price(network, base_token, quote_token)
    except DataUnavailableError:
        return _error(f"No price found for {base_token}/{quote_token} on {network}", 404)

    return web.json_response({
        "network": network,
        "pair": f"{base_token.upper()}-{quote_token.upper()}",
        "price": decimal_to_str(price),
        "timestamp": _timestamp(),
    })


async def status(request: web.Request) -> web.Response:
    service = request.app[SERVICE_KEY]
    payload = service.status().to_dict()
    payload["timestamp"] = _timestamp()
    return web.json_response(payload)


async def find_opportunities(request: web.Request) -> web.Response:
    service = request.app[SERVICE_KEY]
    opportunities = await service.trigger_scan()
    return web.json_response({
        "success": True,
        "opportunities": [o.to_dict() for o in opportunities],
    })


async def execute_opportunity(request: web.Request) -> web.Response:
    service = request.app[SERVICE_KEY]

    try:
        body = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        return _error("Request body must be valid JSON", 400)

    opportunity_id = body.get("opportunityId") if isinstance(body, dict) else None
    if not opportunity_id or not isinstance(opportunity_id, str):
        return _error("opportunityId is required", 400)

    try:
        outcome = await service.execute_by_id(opportunity_id)
    except OpportunityNotFound as e:
        return _error(str(e), 404)

    return web.json_response({"success": outcome.succeeded, "outcome": outcome.to_dict()})


def create_app(service: ArbitrageService) -> web.Application:
    """Build the aiohttp application bound to a service."""
    app = web.Application(middlewares=[request_logging_middleware, error_middleware])
    app[SERVICE_KEY] = service

    app.router.add_get("/health", health)
    app.router.add_get("/api/opportunities", list_opportunities)
    app.router.add_get("/api/pairs", list_pairs)
    app.router.add_get("/api/prices/cex/{symbol}", cex_price)
    app.router.add_get("/api/prices/dex/{network}/{base}/{quote}", dex_price)
    app.router.add_get("/api/status", status)
    app.router.add_post("/api/opportunities/find", find_opportunities)
    app.router.add_post("/api/opportunities/execute", execute_opportunity)
    return app


class ApiServer:
    """Runs the HTTP surface on an aiohttp AppRunner."""

    def __init__(self, service: ArbitrageService, config: ServerConfig):
        self.service = service
        self.config = config
        self._runner: Optional[web.AppRunner] = None
        self._site: Optional[web.TCPSite] = None

    async def start(self) -> None:
        self._runner = web.AppRunner(create_app(self.service), access_log=None)
        await self._runner.setup()
        self._site = web.TCPSite(self._runner, self.config.host, self.config.port)
        await self._site.start()
        logger.info("🌐 API Service started", host=self.config.host, port=self.config.port)

    async def stop(self) -> None:
        if self._site:
            await self._site.stop()
            self._site = None
        if self._runner:
            await self._runner.cleanup()
            self._runner = None
        logger.info("API Service stopped")
