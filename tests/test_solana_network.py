"""
Unit tests for the Solana settlement adapter and wallet handling.

The RPC client is mocked; keys and messages are real.
"""

import sys
from decimal import Decimal
from pathlib import Path
from unittest.mock import MagicMock, patch

import base58
import pytest
from solders.hash import Hash
from solders.keypair import Keypair
from solders.signature import Signature
from solders.transaction_status import TransactionConfirmationStatus

# Add parent to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from stakeshame.core.errors import ExternalServiceError, ValidationError
from stakeshame.core.models import TransactionStatus
from stakeshame.network.solana import SolanaNetwork
from stakeshame.network.wallet import (
    WalletManager,
    build_signer_lookup,
    is_valid_address,
    keypair_from_base58,
)

from conftest import TREASURY

SIGNATURE = str(Signature.default())


@pytest.fixture
def keypair():
    return Keypair()


@pytest.fixture
def rpc():
    with patch("stakeshame.network.solana.Client") as client_cls:
        client = client_cls.return_value
        client.get_latest_blockhash.return_value = MagicMock(value=MagicMock(blockhash=Hash.default()))
        client.send_transaction.return_value = MagicMock(value=Signature.default())
        yield client


def _network(keypair):
    return SolanaNetwork("http://localhost:8899", lambda address: keypair if address == str(keypair.pubkey()) else None)


class TestSubmitTransfer:
    """Test signing and sending transfers."""

    def test_submit(self, rpc, keypair):
        signature = _network(keypair).submit_transfer(str(keypair.pubkey()), TREASURY, Decimal("0.5"))

        assert signature == SIGNATURE
        rpc.send_transaction.assert_called_once()

    def test_unknown_signer(self, rpc, keypair):
        with pytest.raises(ExternalServiceError):
            _network(keypair).submit_transfer(TREASURY, str(keypair.pubkey()), Decimal("1"))
        rpc.send_transaction.assert_not_called()

    def test_dust_rejected(self, rpc, keypair):
        with pytest.raises(ExternalServiceError):
            _network(keypair).submit_transfer(str(keypair.pubkey()), TREASURY, Decimal("0.0000000001"))

    def test_rpc_error_wrapped(self, rpc, keypair):
        rpc.send_transaction.side_effect = RuntimeError("blockhash not found")
        with pytest.raises(ExternalServiceError):
            _network(keypair).submit_transfer(str(keypair.pubkey()), TREASURY, Decimal("1"))

    def test_missing_rpc_url(self, keypair):
        with pytest.raises(ExternalServiceError):
            SolanaNetwork("", lambda address: None)


class TestQueryConfirmation:
    """Test reading signature status."""

    def _status(self, rpc, status):
        rpc.get_signature_statuses.return_value = MagicMock(value=[status])

    def test_unknown_signature_pending(self, rpc, keypair):
        self._status(rpc, None)
        assert _network(keypair).query_confirmation(SIGNATURE).status == TransactionStatus.PENDING

    def test_finalized(self, rpc, keypair):
        self._status(rpc, MagicMock(err=None, confirmation_status=TransactionConfirmationStatus.Finalized, slot=42))
        result = _network(keypair).query_confirmation(SIGNATURE)
        assert result.status == TransactionStatus.CONFIRMED
        assert result.block_ref == "42"

    def test_processed_still_pending(self, rpc, keypair):
        self._status(rpc, MagicMock(err=None, confirmation_status=TransactionConfirmationStatus.Processed, slot=42))
        assert _network(keypair).query_confirmation(SIGNATURE).status == TransactionStatus.PENDING

    def test_on_chain_error(self, rpc, keypair):
        self._status(rpc, MagicMock(err="InsufficientFundsForRent", slot=43))
        result = _network(keypair).query_confirmation(SIGNATURE)
        assert result.status == TransactionStatus.FAILED
        assert "InsufficientFunds" in result.error

    def test_balance(self, rpc, keypair):
        rpc.get_balance.return_value = MagicMock(value=1_500_000_000)
        assert _network(keypair).get_balance(TREASURY) == Decimal("1.5")


class TestWallets:
    """Test key parsing and custodial storage."""

    def test_keypair_from_64_bytes(self, keypair):
        encoded = base58.b58encode(bytes(keypair)).decode()
        assert keypair_from_base58(encoded).pubkey() == keypair.pubkey()

    def test_invalid_key_length(self):
        with pytest.raises(ValidationError):
            keypair_from_base58(base58.b58encode(b"short").decode())

    def test_address_validation(self):
        assert is_valid_address(TREASURY) is True
        assert is_valid_address("nope") is False

    def test_encrypt_roundtrip(self, keypair):
        manager = WalletManager("11" * 32)
        encoded = base58.b58encode(bytes(keypair)).decode()

        encrypted, salt = manager.encrypt_wallet(encoded)
        assert manager.get_keypair(encrypted, salt).pubkey() == keypair.pubkey()

    def test_wrong_key_cannot_decrypt(self, keypair):
        encrypted, salt = WalletManager("11" * 32).encrypt_wallet(base58.b58encode(bytes(keypair)).decode())
        assert WalletManager("22" * 32).decrypt_wallet(encrypted, salt) is None

    def test_encryption_key_length(self):
        with pytest.raises(ValidationError):
            WalletManager("abcd")

    def test_signer_lookup(self, keypair):
        treasury = Keypair()
        manager = WalletManager("11" * 32)
        stored = manager.encrypt_wallet(base58.b58encode(bytes(keypair)).decode())

        lookup = build_signer_lookup(
            base58.b58encode(bytes(treasury)).decode(),
            manager,
            lambda address: stored if address == str(keypair.pubkey()) else None,
        )

        assert lookup(str(treasury.pubkey())).pubkey() == treasury.pubkey()
        assert lookup(str(keypair.pubkey())).pubkey() == keypair.pubkey()
        assert lookup(TREASURY) is None
