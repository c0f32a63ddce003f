"""
Unit tests for configuration loading and input parsing helpers.
"""

import json
import sys
from datetime import time
from decimal import Decimal
from pathlib import Path

import pytest

# Add parent to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from stakeshame.core.config import Config
from stakeshame.core.errors import ValidationError
from stakeshame.core.utils import format_weekdays, parse_cutoff, parse_weekdays, short_hash, to_decimal


class TestConfigFromEnv:
    """Test policy template + environment loading."""

    def test_defaults_without_template(self, tmp_path, monkeypatch):
        monkeypatch.setenv("POLICY_DIR", str(tmp_path))
        monkeypatch.delenv("POLICY_TEMPLATE", raising=False)
        monkeypatch.delenv("RECONCILIATION_CUTOFF", raising=False)

        config = Config.from_env()

        assert config.reward_streak_days == 7
        assert config.reward_bonus_amount == Decimal("0.1")
        assert config.reconciliation_cutoff == "21:00"

    def test_named_template(self, tmp_path, monkeypatch):
        (tmp_path / "strict.json").write_text(json.dumps({
            "reward": {"streak_days": 5, "bonus_amount": "0"},
            "reconciliation_cutoff": "18:00",
            "confirmation": {"timeout_seconds": 300},
        }))
        monkeypatch.setenv("POLICY_DIR", str(tmp_path))
        monkeypatch.setenv("POLICY_TEMPLATE", "strict")
        monkeypatch.setenv("TREASURY_ADDRESS", "11111111111111111111111111111111")
        monkeypatch.delenv("RECONCILIATION_CUTOFF", raising=False)

        config = Config.from_env()

        assert config.reward_streak_days == 5
        assert config.reward_bonus_amount == Decimal("0")
        assert config.reconciliation_cutoff == "18:00"
        assert config.confirm_timeout_seconds == 300
        assert config.treasury_address == "11111111111111111111111111111111"
        assert "Policy: strict" in config.get_policy_summary()

    def test_missing_named_template(self, tmp_path, monkeypatch):
        monkeypatch.setenv("POLICY_DIR", str(tmp_path))
        monkeypatch.setenv("POLICY_TEMPLATE", "nope")
        with pytest.raises(FileNotFoundError):
            Config.from_env()

    def test_env_cutoff_wins(self, tmp_path, monkeypatch):
        monkeypatch.setenv("POLICY_DIR", str(tmp_path))
        monkeypatch.delenv("POLICY_TEMPLATE", raising=False)
        monkeypatch.setenv("RECONCILIATION_CUTOFF", "23:30")
        assert Config.from_env().reconciliation_cutoff == "23:30"


class TestParsing:
    """Test user input helpers."""

    def test_weekdays_by_name(self):
        assert parse_weekdays("Mon, wed,FRI") == {0, 2, 4}
        assert parse_weekdays(["Monday", "Sunday"]) == {0, 6}

    def test_weekdays_by_number(self):
        assert parse_weekdays([1, 3]) == {1, 3}

    def test_weekdays_invalid(self):
        with pytest.raises(ValidationError):
            parse_weekdays("funday")
        with pytest.raises(ValidationError):
            parse_weekdays([7])
        with pytest.raises(ValidationError):
            parse_weekdays("")

    def test_format_weekdays_calendar_order(self):
        assert format_weekdays({4, 0, 2}) == "mon,wed,fri"

    def test_cutoff(self):
        assert parse_cutoff("21:00") == time(21, 0)
        assert parse_cutoff(None) is None
        with pytest.raises(ValidationError):
            parse_cutoff("9pm")

    def test_to_decimal(self):
        assert to_decimal(0.1) == Decimal("0.1")
        with pytest.raises(ValidationError):
            to_decimal("ten")
        with pytest.raises(ValidationError):
            to_decimal("NaN")

    def test_short_hash(self):
        assert short_hash("a" * 40) == "aaaaaaaa...aaaaaaaa"
        assert short_hash(None) == "?"
