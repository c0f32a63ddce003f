"""
Settlement policies: punishment escalation and streak rewards.
"""

from stakeshame.policy.punishment import PunishmentAction, PunishmentDecision, PunishmentEscalationPolicy
from stakeshame.policy.reward import RewardDecision, RewardPolicy

__all__ = [
    "PunishmentAction",
    "PunishmentDecision",
    "PunishmentEscalationPolicy",
    "RewardDecision",
    "RewardPolicy",
]
