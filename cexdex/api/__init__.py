"""HTTP surface for inspecting and driving the arbitrage service."""

from cexdex.api.server import ApiServer, create_app

__all__ = ["ApiServer", "create_app"]
