"""
Telegram notification module.

Sends settlement results and weekly summaries to a Telegram chat.
"""

import html
import logging
from typing import Optional

import requests

from stakeshame.core.config import Config
from stakeshame.core.models import TransactionStatus
from stakeshame.core.utils import short_hash

logger = logging.getLogger(__name__)


def format_outcome(outcome) -> str:
    """
    Format a SettlementOutcome for Telegram (HTML).
    """
    habit = outcome.habit
    log = outcome.log
    name = html.escape(habit.name)

    if log.completed:
        lines = [f"✅ <b>{name}</b> done for {log.date.isoformat()}", f"Streak: {log.streak_at_log} days"]
    else:
        lines = [f"❌ <b>{name}</b> missed on {log.date.isoformat()}"]

    if outcome.reward is not None:
        lines.append(f"🎁 {html.escape(outcome.reward.describe(habit))}")
    if outcome.punishment is not None:
        lines.append(f"💸 {html.escape(outcome.punishment.describe(habit))}")

    tx = outcome.transaction
    if tx is not None:
        ref = short_hash(tx.external_hash) if tx.external_hash else "not submitted"
        lines.append(f"Tx #{tx.id}: {tx.amount} {tx.currency} ({tx.status.value}, {ref})")
        if tx.status == TransactionStatus.FAILED:
            lines.append("Retry with: transactions retry " + str(tx.id))

    if outcome.error:
        lines.append(f"⚠️ {html.escape(outcome.error)}")
    if outcome.message:
        lines.extend(["", html.escape(outcome.message)])

    return "\n".join(lines)


class TelegramNotifier:
    """
    Sends messages to a Telegram bot chat.

    Delivery failures are logged and reported as False, never raised.
    """

    def __init__(self, config: Config, chat_id: Optional[str] = None):
        self.config = config
        self.bot_token = config.telegram_bot_token
        self.chat_id = chat_id or config.telegram_chat_id

    @property
    def configured(self) -> bool:
        return bool(self.bot_token and self.chat_id)

    def send_message(self, text: str) -> bool:
        """
        Send arbitrary message to Telegram. Supports HTML formatting.
        """
        if not self.configured:
            logger.warning("Telegram not configured, skipping notification")
            return False

        url = f"https://api.telegram.org/bot{self.bot_token}/sendMessage"

        try:
            response = requests.post(
                url,
                json={
                    "chat_id": self.chat_id,
                    "text": text,
                    "parse_mode": "HTML",
                    "disable_web_page_preview": True,
                },
                timeout=10,
            )
            response.raise_for_status()

            logger.info("Telegram message sent")
            return True

        except requests.RequestException as e:
            logger.error(f"Telegram message failed: {e}")
            return False

    def send_outcome(self, outcome) -> bool:
        return self.send_message(format_outcome(outcome))
