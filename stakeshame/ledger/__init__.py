"""
Ledgers: daily outcomes and value transfers.
"""

from stakeshame.ledger.daily_log import DailyLogLedger
from stakeshame.ledger.transactions import LedgerTotals, TransactionLedger, replay_totals

__all__ = ["DailyLogLedger", "TransactionLedger", "LedgerTotals", "replay_totals"]
