"""
Settlement network integration.

The Solana adapter and wallet manager are imported from their own modules.
"""

from stakeshame.network.base import ConfirmationResult, SettlementNetwork, SubmissionPayload

__all__ = ["ConfirmationResult", "SettlementNetwork", "SubmissionPayload"]
