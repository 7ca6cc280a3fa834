"""
CEX/DEX Arbitrage Bot.

Compares prices between a centralized exchange (Binance) and decentralized
exchanges (Uniswap V3 on several networks) and executes round-trip trades
when the spread beats fees, gas and the configured profit threshold.
"""

__version__ = "1.0.0"
