"""
Tests for the position manager.
"""

from datetime import timedelta

import pytest

from trading_robot.positions import PositionManager, sector_for, market_cap_for, underlying_of
from trading_robot.signals import SignalAction


@pytest.fixture
def manager():
    return PositionManager()


class TestSymbolMetadata:

    def test_underlying(self):
        assert underlying_of("NIFTY50_CE") == "NIFTY50"
        assert underlying_of("NIFTY50_19800_call") == "NIFTY50"
        assert underlying_of("TCS") == "TCS"

    def test_sector_and_cap(self):
        assert sector_for("INFY") == "IT"
        assert sector_for("BANKNIFTY_STRADDLE") == "Index"
        assert sector_for("XYZ") == "Others"
        assert market_cap_for("RELIANCE") == "large"
        assert market_cap_for("ZOMATO") == "mid"
        assert market_cap_for("XYZ") == "small"


class TestCreate:
    """Tests for opening positions."""

    def test_create_from_signal(self, manager, buy_signal, wednesday_morning):
        position = manager.create(buy_signal, now=wednesday_morning)

        assert position.symbol == "RELIANCE"
        assert position.quantity == 10
        assert position.entry_price == 100.0
        assert position.stop_loss == position.original_stop_loss == 97.0
        assert position.sector == "Energy"
        assert position.liquidity_score == 0.9
        assert position.profit_booking_level == 0
        assert not position.trailing_active
        assert manager.get_position(position.id) is position

    def test_hold_never_becomes_position(self, manager, buy_signal):
        assert manager.create(buy_signal.with_updates(action=SignalAction.HOLD)) is None
        assert manager.count == 0

    def test_missing_price(self, manager, buy_signal):
        assert manager.create(buy_signal.with_updates(price=None)) is None

    def test_entry_price_override(self, manager, buy_signal):
        assert manager.create(buy_signal, entry_price=100.5).entry_price == 100.5

    def test_unique_ids(self, manager, buy_signal):
        ids = {manager.create(buy_signal).id for _ in range(20)}
        assert len(ids) == 20

    def test_entries_since(self, manager, buy_signal, wednesday_morning):
        manager.create(buy_signal, now=wednesday_morning - timedelta(minutes=10))
        manager.create(buy_signal, now=wednesday_morning)
        assert manager.entries_since(wednesday_morning - timedelta(minutes=5)) == 1

    def test_entries_outside_window_pruned(self, manager, buy_signal, wednesday_morning):
        for minutes in (30, 20, 10, 0):
            manager.create(buy_signal, now=wednesday_morning - timedelta(minutes=minutes))

        assert manager.entries_since(wednesday_morning - timedelta(minutes=5)) == 1
        assert manager.entry_times == [wednesday_morning]


class TestMarkToMarket:
    """Tests for price updates and P&L."""

    def test_long_pnl(self, manager, buy_signal):
        position = manager.create(buy_signal)
        manager.update_prices({"RELIANCE": 101.0})

        assert position.current_price == 101.0
        assert position.pnl == pytest.approx(10.0)
        assert position.pnl_percent == pytest.approx(1.0)

    def test_short_pnl(self, manager, buy_signal):
        short = buy_signal.with_updates(action=SignalAction.SELL, stop_loss=103.0, target=94.0)
        position = manager.create(short)
        manager.update_prices({"RELIANCE": 98.0})

        assert position.pnl == pytest.approx(20.0)
        assert position.pnl_percent == pytest.approx(2.0)

    def test_missing_price_keeps_last(self, manager, buy_signal):
        position = manager.create(buy_signal)
        manager.update_prices({"RELIANCE": 102.0})
        manager.update_prices({})
        assert position.current_price == 102.0

    def test_reduce(self, manager, buy_signal):
        position = manager.create(buy_signal)
        manager.update_prices({"RELIANCE": 105.0})

        realized = position.reduce(4)

        assert realized == pytest.approx(20.0)
        assert position.quantity == 6
        assert position.realized_pnl == pytest.approx(20.0)
        assert position.pnl == pytest.approx(30.0)

    def test_correlation_risk(self, manager, buy_signal):
        first = manager.create(buy_signal)
        assert first.correlation_risk == pytest.approx(0.4)

        manager.create(buy_signal)
        assert first.correlation_risk == pytest.approx(0.8)

        manager.create(buy_signal.with_updates(symbol="TCS"))
        assert first.correlation_risk == pytest.approx(0.8)


class TestClose:
    """Tests for closing positions."""

    def test_close(self, manager, buy_signal):
        position = manager.create(buy_signal)
        closed = manager.close(position.id, "Stop Loss")

        assert closed is position
        assert closed.exit_reason == "Stop Loss"
        assert manager.count == 0
        assert not manager.has_open_position("RELIANCE")

    def test_close_unknown(self, manager):
        assert manager.close("missing") is None

    def test_close_only_once(self, manager, buy_signal):
        position = manager.create(buy_signal)
        assert manager.close(position.id) is not None
        assert manager.close(position.id) is None

    def test_close_intraday_positions(self, manager, buy_signal):
        manager.create(buy_signal)
        manager.create(buy_signal.with_updates(symbol="TCS", strategy="Scalping"))
        manager.create(buy_signal.with_updates(symbol="INFY", strategy="Swing Trading"))

        closed = manager.close_intraday_positions()

        assert {p.symbol for p in closed} == {"RELIANCE", "TCS"}
        assert all(p.exit_reason == "Market closing - Intraday exit" for p in closed)
        assert [p.symbol for p in manager.get_positions()] == ["INFY"]
