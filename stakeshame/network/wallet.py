"""
Wallet management for StakeShame settlement.

Handles encrypted custodial key storage and signer lookup.
"""

import logging
import os
from typing import Callable, Optional, Tuple

import base58
from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from solders.keypair import Keypair
from solders.pubkey import Pubkey

from stakeshame.core.errors import ValidationError

logger = logging.getLogger(__name__)


def keypair_from_base58(private_key_base58: str) -> Keypair:
    """
    Build a Keypair from a base58 private key.

    Solana private keys are 64 bytes (32 private + 32 public)
    or 32 bytes (seed only, public derived).
    """
    key_bytes = base58.b58decode(private_key_base58)

    if len(key_bytes) == 64:
        return Keypair.from_bytes(key_bytes)
    if len(key_bytes) == 32:
        return Keypair.from_seed(key_bytes)

    raise ValidationError(f"Invalid key length: {len(key_bytes)} bytes")


def is_valid_address(address: str) -> bool:
    """Check a base58 public key."""
    try:
        Pubkey.from_string(address)
        return True
    except ValueError:
        return False


class WalletManager:
    """
    Manages encrypted wallet storage and signing keys.

    Uses AES-256-GCM encryption with a random per-wallet nonce.
    """

    def __init__(self, encryption_key: str):
        """
        Initialize wallet manager.

        Args:
            encryption_key: 32-byte hex-encoded encryption key
        """
        if not encryption_key:
            raise ValidationError("WALLET_ENCRYPTION_KEY is required")

        self.encryption_key = bytes.fromhex(encryption_key)
        if len(self.encryption_key) != 32:
            raise ValidationError("WALLET_ENCRYPTION_KEY must be 32 bytes (64 hex chars)")

        self.aesgcm = AESGCM(self.encryption_key)

    def validate_private_key(self, private_key_base58: str) -> Tuple[bool, Optional[str], Optional[str]]:
        """
        Validate a base58 private key.

        Returns:
            Tuple of (is_valid, pubkey_str, error_message)
        """
        try:
            keypair = keypair_from_base58(private_key_base58)
            return True, str(keypair.pubkey()), None
        except (ValidationError, ValueError) as e:
            return False, None, str(e)

    def encrypt_wallet(self, private_key_base58: str) -> Tuple[bytes, bytes]:
        """
        Encrypt a private key for storage.

        Returns:
            Tuple of (encrypted_wallet, salt)
        """
        # 12-byte nonce for GCM
        salt = os.urandom(12)
        ciphertext = self.aesgcm.encrypt(salt, private_key_base58.encode("utf-8"), None)
        return ciphertext, salt

    def decrypt_wallet(self, encrypted_wallet: bytes, salt: bytes) -> Optional[str]:
        """Decrypt a stored wallet, None if the key or data is wrong."""
        try:
            return self.aesgcm.decrypt(salt, encrypted_wallet, None).decode("utf-8")
        except InvalidTag:
            logger.error("Failed to decrypt wallet: authentication tag mismatch")
            return None

    def get_keypair(self, encrypted_wallet: bytes, salt: bytes) -> Optional[Keypair]:
        """Get a Keypair from encrypted storage."""
        private_key_base58 = self.decrypt_wallet(encrypted_wallet, salt)
        if not private_key_base58:
            return None

        try:
            return keypair_from_base58(private_key_base58)
        except (ValidationError, ValueError) as e:
            logger.error(f"Failed to create keypair: {e}")
            return None
        finally:
            private_key_base58 = None


SignerLookup = Callable[[str], Optional[Keypair]]


def build_signer_lookup(
    treasury_private_key: Optional[str],
    wallet_manager: Optional[WalletManager],
    load_custodial: Callable[[str], Optional[Tuple[bytes, bytes]]],
) -> SignerLookup:
    """
    Resolve the signing keypair for a from-address.

    The treasury key signs rewards. Owner keys are only available for
    custodial wallets, loaded via `load_custodial(address)` which returns
    (encrypted_wallet, salt) or None.
    """
    treasury = keypair_from_base58(treasury_private_key) if treasury_private_key else None

    def lookup(address: str) -> Optional[Keypair]:
        if treasury is not None and str(treasury.pubkey()) == address:
            return treasury

        if wallet_manager is None:
            return None

        stored = load_custodial(address)
        if stored is None:
            return None

        return wallet_manager.get_keypair(*stored)

    return lookup
