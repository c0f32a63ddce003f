"""
Configuration management for StakeShame.

Loads settings from a JSON policy template and environment variables.
"""

import json
import os
from dataclasses import dataclass
from decimal import Decimal
from pathlib import Path
from typing import Optional, Dict, Any


@dataclass
class Config:
    """Application configuration."""

    # Database
    database_path: str = "data/stakeshame.db"

    # Owner-local day boundary (fallback when an owner has no timezone)
    timezone: str = "UTC"

    # Settlement network
    currency: str = "SOL"
    solana_rpc_url: Optional[str] = None
    treasury_address: Optional[str] = None  # charity / holding wallet
    treasury_private_key: Optional[str] = None  # base58, signs reward payouts
    wallet_encryption_key: Optional[str] = None  # 64 hex chars

    # Reward policy (from policy JSON)
    reward_streak_days: int = 7
    reward_bonus_amount: Decimal = Decimal("0.1")

    # Reconciliation
    reconciliation_cutoff: str = "21:00"  # HH:MM, owner-local

    # Confirmation watcher
    confirm_timeout_seconds: int = 600
    confirm_poll_seconds: float = 2.0

    # Telegram
    telegram_bot_token: Optional[str] = None
    telegram_chat_id: Optional[str] = None

    # Encouragement coach (OpenAI-compatible chat API)
    coach_api_url: Optional[str] = None
    coach_api_key: Optional[str] = None
    coach_model: str = "gpt-4o-mini"

    # Policy template name
    policy_template: str = "default"

    @classmethod
    def _load_json(cls, json_path: Path) -> Dict[str, Any]:
        """Load JSON configuration file."""
        if not json_path.exists():
            raise FileNotFoundError(f"Config file not found: {json_path}")

        with open(json_path, 'r') as f:
            return json.load(f)

    @classmethod
    def from_env(cls) -> "Config":
        """Load configuration from the policy template + environment variables."""
        policy_name = os.getenv("POLICY_TEMPLATE", "default")
        policy_dir = Path(os.getenv("POLICY_DIR", "config/policies"))
        policy_path = policy_dir / f"{policy_name}.json"

        # The default template is optional, a named one is not
        if policy_path.exists() or policy_name != "default":
            policy_data = cls._load_json(policy_path)
        else:
            policy_data = {}

        reward = policy_data.get("reward", {})
        watcher = policy_data.get("confirmation", {})

        config = cls(
            database_path=os.getenv("STAKESHAME_DB_PATH", "data/stakeshame.db"),
            timezone=os.getenv("TIMEZONE", "UTC"),

            currency=os.getenv("STAKE_CURRENCY", "SOL"),
            solana_rpc_url=os.getenv("SOLANA_RPC_URL"),
            treasury_address=os.getenv("TREASURY_ADDRESS"),
            treasury_private_key=os.getenv("TREASURY_PRIVATE_KEY"),
            wallet_encryption_key=os.getenv("WALLET_ENCRYPTION_KEY"),

            # From policy JSON
            reward_streak_days=int(reward.get("streak_days", 7)),
            reward_bonus_amount=Decimal(str(reward.get("bonus_amount", "0.1"))),

            reconciliation_cutoff=os.getenv(
                "RECONCILIATION_CUTOFF",
                policy_data.get("reconciliation_cutoff", "21:00"),
            ),

            confirm_timeout_seconds=int(watcher.get("timeout_seconds", 600)),
            confirm_poll_seconds=float(watcher.get("poll_seconds", 2.0)),

            telegram_bot_token=os.getenv("TELEGRAM_BOT_TOKEN"),
            telegram_chat_id=os.getenv("TELEGRAM_CHAT_ID"),

            coach_api_url=os.getenv("COACH_API_URL"),
            coach_api_key=os.getenv("COACH_API_KEY"),
            coach_model=os.getenv("COACH_MODEL", "gpt-4o-mini"),

            policy_template=policy_name,
        )

        return config

    def get_policy_summary(self) -> str:
        """Get a summary of current policy settings."""
        return f"""Policy: {self.policy_template}
Currency: {self.currency}
Timezone: {self.timezone}

Escalation:
  1st strike: stake the habit's stake amount
  2nd strike: forfeit everything staked to {self.treasury_address or 'UNSET'}

Reward:
  Streak: {self.reward_streak_days} scheduled days
  Bonus: {self.reward_bonus_amount} {self.currency} + staked balance returned

Reconciliation cutoff: {self.reconciliation_cutoff}
Confirmation timeout: {self.confirm_timeout_seconds}s (poll every {self.confirm_poll_seconds}s)
"""
