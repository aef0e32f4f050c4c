"""
Tests for configuration persistence.
"""

import json

from trading_robot.config import RobotConfig, TradingMode, RiskPolicy, parse_hhmm


class TestRobotConfig:

    def test_defaults(self):
        config = RobotConfig()
        assert config.mode == TradingMode.PAPER
        assert config.risk.max_loss_pct == 5.0
        assert config.scoring.default_threshold == 80.0
        assert config.market.market_open == "09:15"
        assert "NIFTY50" in config.data.index_symbols

    def test_round_trip(self, tmp_path):
        config = RobotConfig()
        config.mode = TradingMode.LIVE
        config.initial_capital = 500_000
        config.risk.trailing_activation_pct = 1.5
        config.options.holdings = {"NIFTY50_19800_call": 50}
        config.market.event_days = ["2024-02-01"]

        path = tmp_path / "nested" / "robot.json"
        config.save(str(path))
        loaded = RobotConfig.load(str(path))

        assert loaded == config

    def test_unknown_keys_ignored(self, tmp_path):
        path = tmp_path / "robot.json"
        path.write_text(json.dumps({
            "initial_capital": 250000,
            "obsolete": True,
            "risk": {"max_loss_pct": 3.0, "removed_field": 1},
        }))

        loaded = RobotConfig.load(str(path))

        assert loaded.initial_capital == 250000
        assert loaded.risk == RiskPolicy(max_loss_pct=3.0)
        assert loaded.mode == TradingMode.PAPER

    def test_parse_hhmm(self):
        t = parse_hhmm("15:15")
        assert (t.hour, t.minute) == (15, 15)
