"""
Settlement network interface.

The settlement engine only ever sees these three calls. Adapters raise
ExternalServiceError on any network failure and never retry internally.
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Optional, Protocol

from stakeshame.core.models import Transaction, TransactionStatus
from stakeshame.core.utils import to_lamports


@dataclass
class ConfirmationResult:
    """Confirmation state of a submitted transfer."""
    status: TransactionStatus
    block_ref: Optional[str] = None
    error: Optional[str] = None


@dataclass
class SubmissionPayload:
    """
    What was (or should be) submitted for a transaction.

    Returned to callers that drive a client-side submission flow.
    """
    transaction_id: int
    from_address: str
    to_address: str
    amount: Decimal
    currency: str
    lamports: int
    external_hash: Optional[str] = None

    @classmethod
    def for_transaction(cls, tx: Transaction) -> "SubmissionPayload":
        return cls(
            transaction_id=tx.id,
            from_address=tx.from_address,
            to_address=tx.to_address,
            amount=tx.amount,
            currency=tx.currency,
            lamports=to_lamports(tx.amount),
            external_hash=tx.external_hash,
        )

    def to_dict(self) -> dict:
        return {
            "transaction_id": self.transaction_id,
            "from": self.from_address,
            "to": self.to_address,
            "amount": str(self.amount),
            "currency": self.currency,
            "lamports": self.lamports,
            "external_hash": self.external_hash,
        }


class SettlementNetwork(Protocol):
    """External value-transfer capability."""

    def submit_transfer(self, from_address: str, to_address: str, amount: Decimal) -> str:
        """Submit a transfer, return its external hash."""
        ...

    def query_confirmation(self, external_hash: str) -> ConfirmationResult:
        """Current confirmation state of a submitted transfer."""
        ...

    def get_balance(self, address: str) -> Decimal:
        """Balance of an address in the stake currency."""
        ...
