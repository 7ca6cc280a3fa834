"""
Uniswap V3 adapter.

Quotes come from the V3 Quoter across the standard fee tiers (best output
wins). Live swaps go through the SwapRouter, signed with the configured
wallet key; in paper trading mode swaps fill at the current quote.
"""

import asyncio
import time
from decimal import Decimal, ROUND_DOWN, ROUND_UP
from typing import Dict, List, Optional, Tuple

from aiolimiter import AsyncLimiter
from eth_account import Account
from web3 import AsyncWeb3

from cexdex.config import BotConfig
from cexdex.decimal_utils import HUNDRED, ONE, decimal_to_str
from cexdex.errors import ConfigurationError, ExecutionLegError
from cexdex.logger import get_logger
from cexdex.models import LegResult, Side
from cexdex.venues.base import DexAdapter
from cexdex.venues.tokens import get_token_address, get_token_decimals


logger = get_logger("uniswap")


QUOTER_ABI = [
    {
        "name": "quoteExactInputSingle",
        "type": "function",
        "stateMutability": "nonpayable",
        "inputs": [
            {"name": "tokenIn", "type": "address"},
            {"name": "tokenOut", "type": "address"},
            {"name": "fee", "type": "uint24"},
            {"name": "amountIn", "type": "uint256"},
            {"name": "sqrtPriceLimitX96", "type": "uint160"},
        ],
        "outputs": [{"name": "amountOut", "type": "uint256"}],
    },
    {
        "name": "quoteExactOutputSingle",
        "type": "function",
        "stateMutability": "nonpayable",
        "inputs": [
            {"name": "tokenIn", "type": "address"},
            {"name": "tokenOut", "type": "address"},
            {"name": "fee", "type": "uint24"},
            {"name": "amountOut", "type": "uint256"},
            {"name": "sqrtPriceLimitX96", "type": "uint160"},
        ],
        "outputs": [{"name": "amountIn", "type": "uint256"}],
    },
]

_SWAP_PARAM_COMPONENTS = {
    "exactInputSingle": [
        {"name": "tokenIn", "type": "address"},
        {"name": "tokenOut", "type": "address"},
        {"name": "fee", "type": "uint24"},
        {"name": "recipient", "type": "address"},
        {"name": "deadline", "type": "uint256"},
        {"name": "amountIn", "type": "uint256"},
        {"name": "amountOutMinimum", "type": "uint256"},
        {"name": "sqrtPriceLimitX96", "type": "uint160"},
    ],
    "exactOutputSingle": [
        {"name": "tokenIn", "type": "address"},
        {"name": "tokenOut", "type": "address"},
        {"name": "fee", "type": "uint24"},
        {"name": "recipient", "type": "address"},
        {"name": "deadline", "type": "uint256"},
        {"name": "amountOut", "type": "uint256"},
        {"name": "amountInMaximum", "type": "uint256"},
        {"name": "sqrtPriceLimitX96", "type": "uint160"},
    ],
}

ROUTER_ABI = [
    {
        "name": name,
        "type": "function",
        "stateMutability": "payable",
        "inputs": [{"name": "params", "type": "tuple", "components": components}],
        "outputs": [{"name": "amount", "type": "uint256"}],
    }
    for name, components in _SWAP_PARAM_COMPONENTS.items()
]

ERC20_ABI = [
    {
        "name": "approve",
        "type": "function",
        "stateMutability": "nonpayable",
        "inputs": [{"name": "spender", "type": "address"}, {"name": "amount", "type": "uint256"}],
        "outputs": [{"name": "", "type": "bool"}],
    },
    {
        "name": "allowance",
        "type": "function",
        "stateMutability": "view",
        "inputs": [{"name": "owner", "type": "address"}, {"name": "spender", "type": "address"}],
        "outputs": [{"name": "", "type": "uint256"}],
    },
]

# Uniswap V3 pool fee tiers (0.05%, 0.3%, 1%)
POOL_FEES = (500, 3000, 10000)

SWAP_DEADLINE_SECONDS = 300
RECEIPT_TIMEOUT_SECONDS = 180


def to_base_units(amount: Decimal, decimals: int) -> int:
    return int(amount.scaleb(decimals).to_integral_value(rounding=ROUND_DOWN))


def from_base_units(amount: int, decimals: int) -> Decimal:
    return Decimal(amount).scaleb(-decimals)


class UniswapAdapter(DexAdapter):
    """
    Uniswap V3 adapter for every network with a configured RPC URL.

    Each network is one venue; its id is the network name.
    """

    def __init__(self, config: BotConfig):
        self.config = config
        net = config.networks
        self._paper_trading = config.is_paper_trading
        self._networks = net.enabled_networks()

        # For paper trading, a dummy address is used when no private key is provided
        if net.wallet_private_key:
            self._account = Account.from_key(net.wallet_private_key)
            self._address = self._account.address
        elif self._paper_trading:
            self._account = None
            self._address = "0x0000000000000000000000000000000000000000"
            logger.warning("No wallet key provided - DEX swaps run in paper trading mode only")
        else:
            raise ConfigurationError("WALLET_PRIVATE_KEY is required for live trading!")

        self._web3: Dict[str, AsyncWeb3] = {}
        self._quoters = {}
        self._routers = {}

        # Nonces are assigned locally; executions are serialized upstream
        self._nonce_lock = asyncio.Lock()
        self._rpc_limiter = AsyncLimiter(net.rpc_requests_per_second, 1)

    @property
    def venues(self) -> List[str]:
        return list(self._networks)

    @property
    def address(self) -> str:
        return self._address

    async def connect(self) -> None:
        """Create a provider, quoter and router per network."""
        net = self.config.networks
        for network in self._networks:
            w3 = AsyncWeb3(AsyncWeb3.AsyncHTTPProvider(net.rpc_url(network)))
            if not await w3.is_connected():
                raise ConnectionError(f"RPC for {network} is not reachable")

            self._web3[network] = w3
            self._quoters[network] = w3.eth.contract(
                address=AsyncWeb3.to_checksum_address(net.uniswap_v3_quoter),
                abi=QUOTER_ABI,
            )
            self._routers[network] = w3.eth.contract(
                address=AsyncWeb3.to_checksum_address(net.uniswap_v3_router),
                abi=ROUTER_ABI,
            )
            logger.info("Connected to network", network=network)

        if self._paper_trading:
            logger.info("Uniswap adapter ready (PAPER TRADING MODE)", networks=self._networks)
        else:
            logger.info("Uniswap adapter ready (LIVE)", networks=self._networks, address=self._address)

    async def disconnect(self) -> None:
        for network, w3 in self._web3.items():
            provider = w3.provider
            if hasattr(provider, "disconnect"):
                await provider.disconnect()
        self._web3.clear()
        self._quoters.clear()
        self._routers.clear()
        logger.info("Uniswap adapter disconnected")

    def _tokens(self, network: str, base_token: str, quote_token: str) -> Optional[Tuple[str, str]]:
        base_address = get_token_address(network, base_token)
        quote_address = get_token_address(network, quote_token)
        if not base_address or not quote_address:
            return None
        return (
            AsyncWeb3.to_checksum_address(base_address),
            AsyncWeb3.to_checksum_address(quote_address),
        )

    async def _best_exact_input(self, network: str, token_in: str, token_out: str, amount_in: int) -> Tuple[int, int]:
        """Best (amount_out, fee) across fee tiers; (0, 0) when no pool quotes."""
        best_out, best_fee = 0, 0
        for fee in POOL_FEES:
            try:
                async with self._rpc_limiter:
                    amount_out = await self._quoters[network].functions.quoteExactInputSingle(
                        token_in, token_out, fee, amount_in, 0
                    ).call()
            except Exception as e:
                # Pool might not exist for this fee tier
                logger.debug("No quote for fee tier", network=network, fee=fee, error=str(e))
                continue
            if amount_out > best_out:
                best_out, best_fee = amount_out, fee
        return best_out, best_fee

    async def _best_exact_output(self, network: str, token_in: str, token_out: str, amount_out: int) -> Tuple[int, int]:
        """Cheapest (amount_in, fee) across fee tiers; (0, 0) when no pool quotes."""
        best_in, best_fee = 0, 0
        for fee in POOL_FEES:
            try:
                async with self._rpc_limiter:
                    amount_in = await self._quoters[network].functions.quoteExactOutputSingle(
                        token_in, token_out, fee, amount_out, 0
                    ).call()
            except Exception as e:
                logger.debug("No quote for fee tier", network=network, fee=fee, error=str(e))
                continue
            if amount_in > 0 and (best_in == 0 or amount_in < best_in):
                best_in, best_fee = amount_in, fee
        return best_in, best_fee

    async def quote(
        self,
        venue_id: str,
        base_token: str,
        quote_token: str,
        amount: Decimal = Decimal("1"),
    ) -> Optional[Decimal]:
        if venue_id not in self._quoters:
            return None

        tokens = self._tokens(venue_id, base_token, quote_token)
        if tokens is None:
            logger.debug("Token not listed on network", network=venue_id, base=base_token, quote=quote_token)
            return None
        base_address, quote_address = tokens

        base_decimals = get_token_decimals(base_token)
        quote_decimals = get_token_decimals(quote_token)
        amount_in = to_base_units(amount, base_decimals)
        if amount_in <= 0:
            return None

        amount_out, _ = await self._best_exact_input(venue_id, base_address, quote_address, amount_in)
        if amount_out == 0:
            logger.debug("No valid pool found", network=venue_id, base=base_token, quote=quote_token)
            return None

        return from_base_units(amount_out, quote_decimals) / from_base_units(amount_in, base_decimals)

    async def gas_price(self, venue_id: str) -> Optional[int]:
        w3 = self._web3.get(venue_id)
        if w3 is None:
            return None
        gas_price = await w3.eth.gas_price
        return int(Decimal(gas_price) * self.config.networks.gas_price_multiplier)

    async def swap(
        self,
        venue_id: str,
        side: Side,
        base_token: str,
        quote_token: str,
        amount: Decimal,
        max_slippage_pct: Decimal,
    ) -> LegResult:
        if venue_id not in self._routers:
            raise ExecutionLegError(f"Network {venue_id} not connected", venue_id=venue_id)

        tokens = self._tokens(venue_id, base_token, quote_token)
        if tokens is None:
            raise ExecutionLegError(
                f"Token {base_token}/{quote_token} not found for network {venue_id}",
                venue_id=venue_id,
            )
        base_address, quote_address = tokens
        base_decimals = get_token_decimals(base_token)
        quote_decimals = get_token_decimals(quote_token)
        slippage = max_slippage_pct / HUNDRED
        base_units = to_base_units(amount, base_decimals)

        if side == Side.SELL:
            # Sell exactly `amount` base tokens for quote tokens
            expected_out, fee = await self._best_exact_input(venue_id, base_address, quote_address, base_units)
            if expected_out == 0:
                raise ExecutionLegError(f"No valid pool found for {base_token}/{quote_token} on {venue_id}", venue_id=venue_id)
            min_out = int((Decimal(expected_out) * (ONE - slippage)).to_integral_value(rounding=ROUND_DOWN))
            price = from_base_units(expected_out, quote_decimals) / amount
            method = "exactInputSingle"
            token_in, spend = base_address, base_units
            params = (base_address, quote_address, fee, self._address, 0, base_units, min_out, 0)
        else:
            # Buy exactly `amount` base tokens with quote tokens
            expected_in, fee = await self._best_exact_output(venue_id, quote_address, base_address, base_units)
            if expected_in == 0:
                raise ExecutionLegError(f"No valid pool found for {base_token}/{quote_token} on {venue_id}", venue_id=venue_id)
            max_in = int((Decimal(expected_in) * (ONE + slippage)).to_integral_value(rounding=ROUND_UP))
            price = from_base_units(expected_in, quote_decimals) / amount
            method = "exactOutputSingle"
            token_in, spend = quote_address, max_in
            params = (quote_address, base_address, fee, self._address, 0, base_units, max_in, 0)

        if self._paper_trading:
            return await self._paper_swap(venue_id, side, base_token, quote_token, amount, price)

        deadline = int(time.time()) + SWAP_DEADLINE_SECONDS
        params = params[:4] + (deadline,) + params[5:]

        await self._ensure_allowance(venue_id, token_in, spend)
        tx_hash = await self._send(venue_id, self._routers[venue_id].functions[method](params))

        logger.info(
            f"{side.value.capitalize()} trade executed on Uniswap",
            tx_hash=tx_hash,
            network=venue_id,
            base=base_token,
            quote=quote_token,
            amount=decimal_to_str(amount),
            fee_tier=fee,
        )
        return LegResult(
            venue_id=venue_id,
            side=side,
            reference=tx_hash,
            requested_quantity=amount,
            filled_quantity=amount,
            average_price=price,
            raw={"method": method, "fee": fee},
        )

    async def _paper_swap(
        self,
        venue_id: str,
        side: Side,
        base_token: str,
        quote_token: str,
        amount: Decimal,
        price: Decimal,
    ) -> LegResult:
        """Simulate a swap filled at the quoted price."""
        await asyncio.sleep(0.05)

        result = LegResult(
            venue_id=venue_id,
            side=side,
            reference=f"paper_0x{int(time.time() * 1000):x}",
            requested_quantity=amount,
            filled_quantity=amount,
            average_price=price,
            paper=True,
        )
        logger.info(
            "📝 Paper swap filled",
            tx_hash=result.reference,
            network=venue_id,
            side=side.value,
            pair=f"{base_token}-{quote_token}",
            amount=decimal_to_str(amount),
            price=decimal_to_str(price),
        )
        return result

    async def _ensure_allowance(self, network: str, token: str, amount: int) -> None:
        w3 = self._web3[network]
        erc20 = w3.eth.contract(address=token, abi=ERC20_ABI)
        router = self._routers[network].address

        allowance = await erc20.functions.allowance(self._address, router).call()
        if allowance >= amount:
            return

        logger.info("Approving router", network=network, token=token, amount=amount)
        await self._send(network, erc20.functions.approve(router, amount))

    async def _send(self, network: str, call) -> str:
        """Sign, submit and wait for a contract call; returns the tx hash."""
        w3 = self._web3[network]
        async with self._nonce_lock:
            nonce = await w3.eth.get_transaction_count(self._address, "pending")
            tx = await call.build_transaction({
                "from": self._address,
                "nonce": nonce,
                "gas": self.config.networks.gas_limit,
                "gasPrice": await self.gas_price(network),
                "chainId": await w3.eth.chain_id,
            })
            signed = self._account.sign_transaction(tx)
            tx_hash = await w3.eth.send_raw_transaction(signed.raw_transaction)

        tx_ref = AsyncWeb3.to_hex(tx_hash)
        receipt = await w3.eth.wait_for_transaction_receipt(tx_hash, timeout=RECEIPT_TIMEOUT_SECONDS)
        if receipt["status"] != 1:
            raise ExecutionLegError(f"Transaction {tx_ref} reverted on {network}", venue_id=network)
        return tx_ref
