#!/usr/bin/env python3
"""
CEX/DEX Arbitrage Bot

Watches Binance best bid/ask against Uniswap V3 quotes on several EVM
networks and trades the spread when it beats fees, gas and the configured
minimum profit.

Usage:
    python main.py run          # Start the bot (scan loop + HTTP API)
    python main.py scan         # One-shot scan, printed as a table
    python main.py config       # Show current configuration
"""

import asyncio
import signal
import sys

import typer
from rich.console import Console
from rich.table import Table
from rich.panel import Panel
from rich import box

from cexdex.config import BotConfig, get_config
from cexdex.decimal_utils import decimal_to_str, quantize_percentage
from cexdex.engine import ArbitrageService
from cexdex.errors import ArbitrageError
from cexdex.logger import setup_logging, get_logger
from cexdex.venues import BinanceAdapter, UniswapAdapter

# Initialize
app = typer.Typer(
    name="cexdex-arbitrage-bot",
    help="CEX/DEX Arbitrage Trading Bot",
    add_completion=False,
)
console = Console()
logger = None


def setup(config: BotConfig):
    """Initialize logging."""
    global logger
    setup_logging(config)
    logger = get_logger("main")


def build_service(config: BotConfig) -> ArbitrageService:
    """Wire the venue adapters into a service."""
    return ArbitrageService(
        config=config,
        cex=BinanceAdapter(config),
        dex=UniswapAdapter(config),
    )


async def _run_bot(service: ArbitrageService, with_api: bool) -> None:
    from cexdex.api import ApiServer

    api = ApiServer(service, service.config.server) if with_api else None
    stop_event = asyncio.Event()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop_event.set)
        except NotImplementedError:
            # Windows event loops do not support add_signal_handler
            signal.signal(sig, lambda s, f: loop.call_soon_threadsafe(stop_event.set))

    try:
        await service.initialize()
        await service.start()
        if api:
            await api.start()

        await stop_event.wait()
        console.print("\n[yellow]Shutting down gracefully...[/yellow]")
    finally:
        if api:
            await api.stop()
        await service.shutdown()


@app.command()
def run(
    paper: bool = typer.Option(True, "--paper/--live", help="Paper trading mode"),
    debug: bool = typer.Option(False, "--debug", help="Enable debug logging"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation prompt (for automated deployments)"),
    no_api: bool = typer.Option(False, "--no-api", help="Do not start the HTTP API"),
):
    """
    Start the arbitrage bot.

    By default runs in paper trading mode. Use --live for real trading.
    Use --yes to skip the confirmation prompt for automated deployments.
    """
    # Override config if needed
    config = get_config()
    if not paper:
        config.development.paper_trading = False
    if debug:
        config.development.debug_mode = True
        config.monitoring.log_level = "DEBUG"

    setup(config)

    networks = config.networks.enabled_networks()
    console.print(Panel.fit(
        "[bold green]⚖️  CEX/DEX Arbitrage Bot[/bold green]\n\n"
        f"Mode: [yellow]{'Paper Trading' if paper else '🔴 LIVE TRADING'}[/yellow]\n"
        f"Pairs: [cyan]{', '.join(str(p) for p in config.trading.pairs)}[/cyan]\n"
        f"Networks: [cyan]{', '.join(networks) or 'none'}[/cyan]\n"
        f"Min Profit: [cyan]{config.trading.minimum_profit_percentage}%[/cyan]\n"
        f"Trade Size: [cyan]{config.trading.trade_size}[/cyan]",
        title="Configuration",
        border_style="green",
    ))

    if not paper and not yes:
        confirm = typer.confirm(
            "⚠️  You are about to start LIVE trading with real money. Continue?",
            default=False,
        )
        if not confirm:
            console.print("[yellow]Aborted.[/yellow]")
            raise typer.Exit()

    # Run the bot
    try:
        service = build_service(config)
        asyncio.run(_run_bot(service, with_api=not no_api))
    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted by user[/yellow]")
    except (ArbitrageError, ValueError) as e:
        console.print(f"[red]Error: {e}[/red]")
        if debug:
            raise
        raise typer.Exit(1)


@app.command()
def scan(
    debug: bool = typer.Option(False, "--debug", help="Enable debug logging"),
):
    """Run a single scan and print every opportunity found."""
    config = get_config()
    if debug:
        config.development.debug_mode = True
        config.monitoring.log_level = "DEBUG"
    else:
        config.monitoring.log_level = "WARNING"
    setup(config)

    async def scan_once():
        service = build_service(config)
        try:
            await service.initialize()
            return await service.trigger_scan()
        finally:
            await service.shutdown()

    console.print("[dim]Scanning...[/dim]")

    try:
        opportunities = asyncio.run(scan_once())
    except (ArbitrageError, ValueError) as e:
        console.print(f"[red]Error scanning: {e}[/red]")
        raise typer.Exit(1)

    if not opportunities:
        console.print(
            f"[yellow]No opportunities above {config.trading.minimum_profit_percentage}%[/yellow]"
        )
        return

    table = Table(title="💹 Arbitrage Opportunities", box=box.ROUNDED)
    table.add_column("ID", style="dim")
    table.add_column("Pair", style="cyan")
    table.add_column("Network")
    table.add_column("Direction")
    table.add_column("Buy", justify="right")
    table.add_column("Sell", justify="right")
    table.add_column("Gas", justify="right")
    table.add_column("Profit", justify="right", style="green")
    table.add_column("Profit %", justify="right", style="green")

    for opp in opportunities:
        table.add_row(
            opp.opportunity_id,
            str(opp.pair),
            opp.venue_id,
            opp.direction.value,
            decimal_to_str(opp.buy_price),
            decimal_to_str(opp.sell_price),
            decimal_to_str(opp.gas_cost),
            decimal_to_str(opp.profit_after_gas),
            f"{quantize_percentage(opp.profit_percentage)}%",
        )

    console.print(table)
    console.print(f"\n[dim]Found {len(opportunities)} opportunities[/dim]")


@app.command()
def config():
    """Show current configuration."""
    cfg = get_config()
    setup(cfg)

    gas_costs = ", ".join(f"{k}={v}" for k, v in cfg.fees.gas_costs.items())

    console.print(Panel.fit(
        f"[bold]Trading Parameters[/bold]\n"
        f"  Pairs: {', '.join(str(p) for p in cfg.trading.pairs)}\n"
        f"  Trade Size: {cfg.trading.trade_size}\n"
        f"  Min Profit: {cfg.trading.minimum_profit_percentage}%\n"
        f"  Max Slippage: {cfg.trading.max_slippage_percentage}%\n"
        f"  Min Profit/Gas Ratio: {cfg.trading.min_profit_to_gas_ratio or 'disabled'}\n\n"
        f"[bold]Fees[/bold]\n"
        f"  CEX Taker Fee: {cfg.fees.cex_taker_fee}\n"
        f"  DEX Fee: {cfg.fees.dex_fee}\n"
        f"  Gas Costs: {gas_costs} (default {cfg.fees.default_gas_cost})\n\n"
        f"[bold]Scanner[/bold]\n"
        f"  Scan Interval: {cfg.scanner.scan_interval_ms}ms\n"
        f"  Error Backoff: {cfg.scanner.error_backoff_ms}ms\n"
        f"  Price Cache TTL: {cfg.scanner.price_cache_ttl_seconds}s\n\n"
        f"[bold]Venues[/bold]\n"
        f"  Binance Keys: {'Configured' if cfg.binance.is_configured() else 'Not set'}\n"
        f"  Networks: {', '.join(cfg.networks.enabled_networks()) or 'none'}\n"
        f"  Wallet: {'Configured' if cfg.networks.wallet_private_key else 'Not set'}\n\n"
        f"[bold]Mode[/bold]\n"
        f"  Paper Trading: {'Yes' if cfg.development.paper_trading else 'No'}\n"
        f"  Debug Mode: {'Yes' if cfg.development.debug_mode else 'No'}\n"
        f"  API: http://{cfg.server.host}:{cfg.server.port}",
        title="⚙️ Configuration",
        border_style="blue",
    ))


@app.command()
def version():
    """Show version information."""
    from cexdex import __version__

    console.print(Panel.fit(
        f"[bold]CEX/DEX Arbitrage Bot[/bold]\n"
        f"Version: {__version__}\n"
        f"Python: {sys.version.split()[0]}",
        border_style="blue",
    ))


if __name__ == "__main__":
    app()
