"""
Core opportunity detection and execution engine.
"""

from cexdex.engine.ledger import OpportunityLedger
from cexdex.engine.orchestrator import ExecutionOrchestrator
from cexdex.engine.scanner import OpportunityScanner
from cexdex.engine.scheduler import BackoffPolicy, ScanLoopScheduler
from cexdex.engine.service import ArbitrageService
from cexdex.engine.spread_calculator import compute_spread, passes_gas_ratio

__all__ = [
    "ArbitrageService",
    "BackoffPolicy",
    "ExecutionOrchestrator",
    "OpportunityLedger",
    "OpportunityScanner",
    "ScanLoopScheduler",
    "compute_spread",
    "passes_gas_ratio",
]
