"""
Stela Settlement Bot

Periodically settles matched off-chain orders on-chain and liquidates
filled inscriptions whose loan duration has elapsed. A store-backed lock
keeps concurrent runs from submitting twice.

Usage:
    # Continuous mode
    stela-bot run

    # Single pass
    stela-bot run --once
"""

__version__ = "0.1.0"

from .bot import BotRunResult, SettlementBot
from .settle import build_liquidate_calldata, build_settle_calldata
from .submitter import SubmitResult, TransactionSubmitter

__all__ = [
    "__version__",
    "BotRunResult",
    "SettlementBot",
    "SubmitResult",
    "TransactionSubmitter",
    "build_liquidate_calldata",
    "build_settle_calldata",
]
