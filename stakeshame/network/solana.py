"""
Solana settlement network adapter.

Submits native SOL transfers and reads their confirmation status.
"""

import logging
from decimal import Decimal

from solana.rpc.api import Client
from solana.rpc.commitment import Confirmed
from solana.rpc.types import TxOpts
from solders.message import Message
from solders.pubkey import Pubkey
from solders.signature import Signature
from solders.system_program import TransferParams, transfer
from solders.transaction import Transaction as SolanaTransaction
from solders.transaction_status import TransactionConfirmationStatus

from stakeshame.core.errors import ExternalServiceError
from stakeshame.core.models import TransactionStatus
from stakeshame.core.utils import LAMPORTS_PER_SOL, short_hash, to_lamports
from stakeshame.network.base import ConfirmationResult
from stakeshame.network.wallet import SignerLookup

logger = logging.getLogger(__name__)

CONFIRMED_LEVELS = (TransactionConfirmationStatus.Confirmed, TransactionConfirmationStatus.Finalized)


class SolanaNetwork:
    """
    Settlement network backed by a Solana RPC endpoint.

    Only addresses the signer lookup can resolve (the treasury and
    custodial owner wallets) can be submitted from. Anything else is an
    ExternalServiceError, and the owner has to submit client-side.
    """

    def __init__(self, rpc_url: str, signer_lookup: SignerLookup, skip_preflight: bool = False):
        """
        Initialize the adapter.

        Args:
            rpc_url: Solana RPC endpoint
            signer_lookup: address -> Keypair (or None)
            skip_preflight: Skip preflight simulation
        """
        if not rpc_url:
            raise ExternalServiceError("SOLANA_RPC_URL is not configured")

        self.rpc_client = Client(rpc_url)
        self.signer_lookup = signer_lookup
        self.skip_preflight = skip_preflight

    def submit_transfer(self, from_address: str, to_address: str, amount: Decimal) -> str:
        """
        Sign and send a SOL transfer.

        Returns:
            Transaction signature (base58)
        """
        keypair = self.signer_lookup(from_address)
        if keypair is None:
            raise ExternalServiceError(f"No signing key for {short_hash(from_address)}")

        lamports = to_lamports(amount)
        if lamports <= 0:
            raise ExternalServiceError(f"Amount {amount} is below one lamport")

        try:
            instruction = transfer(
                TransferParams(
                    from_pubkey=keypair.pubkey(),
                    to_pubkey=Pubkey.from_string(to_address),
                    lamports=lamports,
                )
            )
            blockhash = self.rpc_client.get_latest_blockhash(commitment=Confirmed).value.blockhash
            message = Message.new_with_blockhash([instruction], keypair.pubkey(), blockhash)
            tx = SolanaTransaction([keypair], message, blockhash)

            result = self.rpc_client.send_transaction(
                tx, opts=TxOpts(skip_preflight=self.skip_preflight, preflight_commitment=Confirmed)
            )
        except Exception as e:
            logger.error(f"Transfer submission error: {e}")
            raise ExternalServiceError(f"Transfer submission failed: {e}") from e

        if not result.value:
            raise ExternalServiceError("Transfer submission returned no signature")

        signature = str(result.value)
        logger.info(f"Transfer sent: {short_hash(signature)} ({amount} SOL -> {short_hash(to_address)})")
        return signature

    def query_confirmation(self, external_hash: str) -> ConfirmationResult:
        """
        Read the confirmation state of a signature.

        Unknown signatures are still pending; the watcher decides when to
        give up on them.
        """
        try:
            result = self.rpc_client.get_signature_statuses(
                [Signature.from_string(external_hash)], search_transaction_history=True
            )
        except Exception as e:
            logger.error(f"Confirmation query error: {e}")
            raise ExternalServiceError(f"Confirmation query failed: {e}") from e

        status = result.value[0] if result.value else None
        if status is None:
            return ConfirmationResult(TransactionStatus.PENDING)

        if status.err:
            logger.error(f"Transaction failed on chain: {short_hash(external_hash)} {status.err}")
            return ConfirmationResult(TransactionStatus.FAILED, block_ref=str(status.slot), error=str(status.err))

        if status.confirmation_status in CONFIRMED_LEVELS:
            return ConfirmationResult(TransactionStatus.CONFIRMED, block_ref=str(status.slot))

        return ConfirmationResult(TransactionStatus.PENDING)

    def get_balance(self, address: str) -> Decimal:
        """Get SOL balance for a wallet."""
        try:
            response = self.rpc_client.get_balance(Pubkey.from_string(address))
        except Exception as e:
            logger.error(f"Failed to get balance: {e}")
            raise ExternalServiceError(f"Balance query failed: {e}") from e

        if response.value is None:
            raise ExternalServiceError(f"No balance returned for {short_hash(address)}")

        return Decimal(response.value) / LAMPORTS_PER_SOL
