"""
Settlement module for StakeShame.

Turns daily logs into policy decisions and value transfers, and keeps
the transaction ledger in step with the settlement network.
"""

from stakeshame.settlement.engine import SettlementEngine, SettlementOutcome
from stakeshame.settlement.reconcile import ReconciliationJob, ReconciliationReport
from stakeshame.settlement.watcher import ConfirmationWatcher, SweepReport
from stakeshame.settlement.scheduler import Scheduler

__all__ = [
    "SettlementEngine",
    "SettlementOutcome",
    "ReconciliationJob",
    "ReconciliationReport",
    "ConfirmationWatcher",
    "SweepReport",
    "Scheduler",
]
