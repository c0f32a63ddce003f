"""
Encouragement coach.

Produces a short motivational message for a settlement result through an
OpenAI-compatible chat completions API. The text is cosmetic: any failure
returns a fixed fallback and never affects settlement.
"""

import json
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional

import requests

from stakeshame.core.config import Config

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = (
    "You are the accountability coach of StakeShame, a habit tracker where users "
    "stake crypto on their habits. Be encouraging but firm about consequences. "
    "Answer in at most three sentences."
)

FALLBACK_SUCCESS = "Logged. Keep the streak going."
FALLBACK_FAILURE = "Missed today. Tomorrow is a fresh start, show up for it."

MAX_HISTORY = 10


@dataclass
class CoachingSession:
    """Conversation state for one owner. Created per request, never shared."""
    owner: Optional[str] = None
    history: List[Dict[str, str]] = field(default_factory=list)

    def remember(self, role: str, content: str) -> None:
        self.history.append({"role": role, "content": content})
        del self.history[:-MAX_HISTORY]


class EncouragementCoach:
    """Chat-completions client for encouragement text."""

    def __init__(self, config: Config, timeout: float = 15.0):
        self.api_url = (config.coach_api_url or "").rstrip("/")
        self.api_key = config.coach_api_key
        self.model = config.coach_model
        self.timeout = timeout

    @property
    def configured(self) -> bool:
        return bool(self.api_url and self.api_key)

    def _fallback(self, context: dict) -> str:
        return FALLBACK_SUCCESS if context.get("completed") else FALLBACK_FAILURE

    def generate(self, context: dict, session: Optional[CoachingSession] = None) -> str:
        """
        Encouragement for a settlement context.

        Args:
            context: habit, completed, streak, and punishment/reward details
            session: prior exchange with the same owner, updated in place
        """
        if not self.configured:
            return self._fallback(context)

        prompt = f"Settlement result: {json.dumps(context, default=str)}"
        messages = [{"role": "system", "content": SYSTEM_PROMPT}]
        if session is not None:
            if session.owner:
                messages[0]["content"] += f" The user is {session.owner}."
            messages.extend(session.history)
        messages.append({"role": "user", "content": prompt})

        try:
            response = requests.post(
                f"{self.api_url}/chat/completions",
                json={
                    "model": self.model,
                    "messages": messages,
                    "max_tokens": 150,
                    "temperature": 0.7,
                },
                headers={"Authorization": f"Bearer {self.api_key}"},
                timeout=self.timeout,
            )
            response.raise_for_status()
            text = response.json()["choices"][0]["message"]["content"].strip()
        except (requests.RequestException, KeyError, IndexError, ValueError) as e:
            logger.error(f"Coach request failed: {e}")
            return self._fallback(context)

        if session is not None:
            session.remember("user", prompt)
            session.remember("assistant", text)

        return text or self._fallback(context)
