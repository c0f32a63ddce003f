"""
StakeShame - Habit Accountability and Settlement Engine

Pledge a stake on a recurring habit. Missed days escalate from a
stake to a forfeit, sustained streaks earn the stake back.

Accountability is authoritative. Settlement follows it.
"""

__version__ = "0.1.0"
