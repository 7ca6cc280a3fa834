"""
Configuration management for the CEX/DEX Arbitrage Bot.
Uses Pydantic for validation and type safety.
"""

import json
from decimal import Decimal
from typing import Dict, List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from cexdex.models import TradingPair


NETWORKS = ("ethereum", "arbitrum", "optimism", "polygon")


class TradingConfig(BaseSettings):
    """Trading parameters configuration."""

    minimum_profit_percentage: Decimal = Field(Decimal("0.5"), alias="MINIMUM_PROFIT_PERCENTAGE")
    max_slippage_percentage: Decimal = Field(Decimal("0.5"), alias="MAX_SLIPPAGE_PERCENTAGE")
    trade_size: Decimal = Field(Decimal("1"), alias="TRADE_SIZE")
    trading_pairs: str = Field("ETH-USDT,WBTC-USDT,LINK-USDT", alias="TRADING_PAIRS")

    # Profit must be at least this multiple of the gas cost (0 disables the check)
    min_profit_to_gas_ratio: Decimal = Field(Decimal("0"), alias="MIN_PROFIT_TO_GAS_RATIO")

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    @field_validator("minimum_profit_percentage", "max_slippage_percentage")
    @classmethod
    def validate_percentage(cls, v: Decimal) -> Decimal:
        if not Decimal("0") <= v <= Decimal("100"):
            raise ValueError("Percentage must be between 0 and 100")
        return v

    @field_validator("trade_size")
    @classmethod
    def validate_trade_size(cls, v: Decimal) -> Decimal:
        if v <= 0:
            raise ValueError("Trade size must be positive")
        return v

    @field_validator("trading_pairs")
    @classmethod
    def validate_pairs(cls, v: str) -> str:
        for item in v.split(","):
            if item.strip():
                TradingPair.from_string(item)
        return v

    @property
    def pairs(self) -> List[TradingPair]:
        """Configured pairs in declaration order, duplicates dropped."""
        pairs: List[TradingPair] = []
        for item in self.trading_pairs.split(","):
            if not item.strip():
                continue
            pair = TradingPair.from_string(item)
            if pair not in pairs:
                pairs.append(pair)
        return pairs


class FeeConfig(BaseSettings):
    """Venue fee and gas cost configuration."""

    cex_taker_fee: Decimal = Field(Decimal("0.001"), alias="CEX_TAKER_FEE")  # 0.1%
    dex_fee: Decimal = Field(Decimal("0.003"), alias="DEX_FEE")  # 0.3% pool tier

    # Estimated gas cost per swap in quote units, keyed by network
    gas_costs: Dict[str, Decimal] = Field(
        default_factory=lambda: {
            "ethereum": Decimal("20"),
            "arbitrum": Decimal("0.3"),
            "optimism": Decimal("0.1"),
            "polygon": Decimal("0.05"),
        },
        alias="GAS_COSTS",
    )
    default_gas_cost: Decimal = Field(Decimal("0.1"), alias="DEFAULT_GAS_COST")

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    @field_validator("gas_costs", mode="before")
    @classmethod
    def parse_gas_costs(cls, v):
        if isinstance(v, str):
            v = json.loads(v)
        return {str(k).lower(): Decimal(str(cost)) for k, cost in v.items()}

    @field_validator("cex_taker_fee", "dex_fee")
    @classmethod
    def validate_fee_rate(cls, v: Decimal) -> Decimal:
        if not Decimal("0") <= v < Decimal("1"):
            raise ValueError("Fee rate must be between 0 and 1")
        return v

    def gas_cost_for(self, venue_id: str) -> Decimal:
        return self.gas_costs.get(venue_id, self.default_gas_cost)


class ScannerConfig(BaseSettings):
    """Scan loop cadence configuration."""

    scan_interval_ms: int = Field(1000, alias="SCAN_INTERVAL_MS")
    error_backoff_ms: int = Field(5000, alias="ERROR_BACKOFF_MS")
    price_cache_ttl_seconds: float = Field(1.0, alias="PRICE_CACHE_TTL_SECONDS")
    # CEX quotes older than this are not priced; 0 disables the check
    max_quote_age_ms: int = Field(10000, alias="MAX_QUOTE_AGE_MS")

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    @field_validator("scan_interval_ms", "error_backoff_ms", "max_quote_age_ms")
    @classmethod
    def validate_interval(cls, v: int) -> int:
        if v < 0:
            raise ValueError("Interval must not be negative")
        return v


class BinanceConfig(BaseSettings):
    """Binance API configuration."""

    api_key: str = Field("", alias="BINANCE_API_KEY")
    api_secret: str = Field("", alias="BINANCE_API_SECRET")

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    def is_configured(self) -> bool:
        """Check if Binance credentials are configured for live trading."""
        return bool(self.api_key and self.api_secret)


class NetworkConfig(BaseSettings):
    """EVM networks and Uniswap V3 configuration."""

    ethereum_rpc_url: str = Field("", alias="ETH_MAINNET_RPC_URL")
    arbitrum_rpc_url: str = Field("", alias="ARBITRUM_RPC_URL")
    optimism_rpc_url: str = Field("", alias="OPTIMISM_RPC_URL")
    polygon_rpc_url: str = Field("", alias="POLYGON_RPC_URL")

    # Private key is optional for paper trading mode
    wallet_private_key: str = Field("", alias="WALLET_PRIVATE_KEY")

    uniswap_v3_router: str = Field("0xE592427A0AEce92De3Edee1F18E0157C05861564", alias="UNISWAP_V3_ROUTER")
    uniswap_v3_quoter: str = Field("0xb27308f9F90D607463bb33eA1BeBb41C27CE5AB6", alias="UNISWAP_V3_QUOTER")

    gas_limit: int = Field(500000, alias="GAS_LIMIT")
    gas_price_multiplier: Decimal = Field(Decimal("1.1"), alias="GAS_PRICE_MULTIPLIER")

    # Quoter calls are eth_calls; public RPC endpoints throttle aggressively
    rpc_requests_per_second: int = Field(25, alias="RPC_REQUESTS_PER_SECOND")

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    def rpc_url(self, network: str) -> str:
        return getattr(self, f"{network}_rpc_url", "")

    def enabled_networks(self) -> List[str]:
        """Networks with an RPC URL, in fixed priority order."""
        return [network for network in NETWORKS if self.rpc_url(network)]


class ServerConfig(BaseSettings):
    """HTTP inspection surface configuration."""

    host: str = Field("0.0.0.0", alias="HOST")
    port: int = Field(3000, alias="PORT")

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")


class MonitoringConfig(BaseSettings):
    """Logging configuration."""

    log_level: str = Field("INFO", alias="LOG_LEVEL")

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")


class DevelopmentConfig(BaseSettings):
    """Development and testing configuration."""

    paper_trading: bool = Field(True, alias="PAPER_TRADING")
    debug_mode: bool = Field(False, alias="DEBUG_MODE")

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")


class BotConfig:
    """Master configuration class that aggregates all config sections."""

    def __init__(self):
        self.trading = TradingConfig()
        self.fees = FeeConfig()
        self.scanner = ScannerConfig()
        self.binance = BinanceConfig()
        self.networks = NetworkConfig()
        self.server = ServerConfig()
        self.monitoring = MonitoringConfig()
        self.development = DevelopmentConfig()

    @property
    def is_paper_trading(self) -> bool:
        return self.development.paper_trading

    @property
    def is_debug(self) -> bool:
        return self.development.debug_mode


# Global config instance
_config: Optional[BotConfig] = None


def get_config() -> BotConfig:
    """Get or create the global configuration instance."""
    global _config
    if _config is None:
        _config = BotConfig()
    return _config
