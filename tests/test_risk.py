"""
Tests for the risk manager exit policy.
"""

from datetime import datetime, timedelta
from zoneinfo import ZoneInfo

import pytest

from trading_robot.config import RiskPolicy
from trading_robot.positions import PositionManager
from trading_robot.risk import (
    RiskManager, RiskActionType, MAX_LOSS_EXIT, SCALPING_TIME_EXIT, INTRADAY_CLOSE_EXIT,
    TARGET_EXIT, STOP_LOSS_EXIT
)
from trading_robot.signals import SignalAction


IST = ZoneInfo("Asia/Kolkata")
MIDDAY = datetime(2024, 1, 3, 11, 0, tzinfo=IST)


@pytest.fixture
def manager():
    return PositionManager()


@pytest.fixture
def risk():
    return RiskManager()


@pytest.fixture
def open_long(manager, buy_signal):
    """Long 10 @ 100, stop 97, target 106, opened at 11:00."""
    def _open(**changes):
        return manager.create(buy_signal.with_updates(**changes), now=MIDDAY)
    return _open


def _mark(manager, position, price):
    manager.update_prices({position.symbol: price})


class TestMaxLoss:

    def test_six_percent_loss_closes(self, risk, manager, open_long):
        position = open_long()
        _mark(manager, position, 94.0)

        actions = risk.evaluate(position, MIDDAY)

        assert len(actions) == 1
        assert actions[0].type == RiskActionType.CLOSE
        assert actions[0].reason == MAX_LOSS_EXIT

    def test_max_loss_beats_stop_loss(self, risk, manager, open_long):
        """Below both the stop and the loss limit, the loss limit wins."""
        position = open_long(stop_loss=99.0)
        _mark(manager, position, 94.5)
        assert risk.evaluate(position, MIDDAY)[-1].reason == MAX_LOSS_EXIT


class TestTrailingStop:

    def test_one_percent_moves_stop_to_breakeven(self, risk, manager, open_long):
        position = open_long()
        _mark(manager, position, 101.0)

        action = risk.manage_trailing_stop(position)

        assert position.pnl == pytest.approx(10.0)
        assert position.trailing_active
        assert position.stop_loss == 100.0
        assert action.type == RiskActionType.TRAIL

    def test_below_activation(self, risk, manager, open_long):
        position = open_long()
        _mark(manager, position, 100.5)
        assert risk.manage_trailing_stop(position) is None
        assert not position.trailing_active

    def test_stop_never_regresses(self, risk, manager, open_long):
        position = open_long(target=200.0)
        stops = []
        for price in (101.0, 102.5, 104.0, 103.0, 106.0, 104.5, 101.5):
            _mark(manager, position, price)
            risk.manage_trailing_stop(position)
            stops.append(position.stop_loss)

        assert stops == sorted(stops)
        assert position.trailing_active

    def test_trail_width_widens_with_profit(self, risk):
        assert risk.trail_percent(2.0) == 1.5
        assert risk.trail_percent(4.0) == 2.0
        assert risk.trail_percent(6.0) == 2.5

    def test_short_trailing(self, risk, manager, buy_signal):
        short = buy_signal.with_updates(action=SignalAction.SELL, stop_loss=103.0, target=90.0)
        position = manager.create(short, now=MIDDAY)
        _mark(manager, position, 98.0)

        risk.manage_trailing_stop(position)

        assert position.trailing_active
        assert position.stop_loss == pytest.approx(98.0 * 1.015)

    def test_disabled(self, manager, open_long):
        risk = RiskManager(RiskPolicy(trailing_enabled=False))
        position = open_long()
        _mark(manager, position, 103.0)
        assert risk.manage_trailing_stop(position) is None
        assert position.stop_loss == 97.0


class TestPartialBooking:

    def test_two_levels(self, risk, manager, open_long):
        position = open_long(target=200.0)

        _mark(manager, position, 104.0)
        first = risk.handle_partial_booking(position)
        assert [a.quantity for a in first] == [4]
        assert position.quantity == 6
        assert position.profit_booking_level == 1
        assert position.realized_pnl == pytest.approx(16.0)

        # Level 1 is not repeated
        assert risk.handle_partial_booking(position) == []

        _mark(manager, position, 107.0)
        second = risk.handle_partial_booking(position)
        assert [a.quantity for a in second] == [3]
        assert position.quantity == 3
        assert position.profit_booking_level == 2

        _mark(manager, position, 120.0)
        assert risk.handle_partial_booking(position) == []

    def test_levels_monotone_quantity_non_increasing(self, risk, manager, open_long):
        position = open_long(target=200.0)
        levels, quantities = [], []
        for price in (101.0, 104.0, 102.0, 107.0, 103.0, 110.0):
            _mark(manager, position, price)
            risk.evaluate(position, MIDDAY)
            levels.append(position.profit_booking_level)
            quantities.append(position.quantity)

        assert levels == sorted(levels)
        assert quantities == sorted(quantities, reverse=True)

    def test_small_quantity_not_booked(self, risk, manager, open_long):
        position = open_long(quantity=2, target=200.0)
        _mark(manager, position, 104.0)
        assert risk.handle_partial_booking(position) == []
        assert position.profit_booking_level == 0


class TestTimeExits:

    def test_scalping_time_limit(self, risk, manager, open_long):
        position = open_long(strategy="Scalping")
        _mark(manager, position, 100.2)

        assert risk.evaluate(position, MIDDAY + timedelta(minutes=29)) == []
        actions = risk.evaluate(position, MIDDAY + timedelta(minutes=31))
        assert actions[-1].reason == SCALPING_TIME_EXIT

    def test_intraday_exit_time(self, risk, manager, open_long):
        position = open_long()
        _mark(manager, position, 100.2)

        assert risk.evaluate(position, datetime(2024, 1, 3, 15, 14, tzinfo=IST)) == []
        actions = risk.evaluate(position, datetime(2024, 1, 3, 15, 15, tzinfo=IST))
        assert actions[-1].reason == INTRADAY_CLOSE_EXIT

    def test_time_exit_beats_stop(self, risk, manager, open_long):
        position = open_long()
        _mark(manager, position, 96.5)
        actions = risk.evaluate(position, datetime(2024, 1, 3, 15, 20, tzinfo=IST))
        assert [a.reason for a in actions if a.type == RiskActionType.CLOSE] == [INTRADAY_CLOSE_EXIT]


class TestPriceExits:

    @pytest.fixture
    def plain(self):
        return RiskManager(RiskPolicy(trailing_enabled=False, partial_booking_enabled=False))

    def test_stop_loss(self, plain, manager, open_long):
        position = open_long()
        _mark(manager, position, 96.9)
        assert plain.evaluate(position, MIDDAY)[-1].reason == STOP_LOSS_EXIT

    def test_target(self, plain, manager, open_long):
        position = open_long()
        _mark(manager, position, 106.0)
        assert plain.evaluate(position, MIDDAY)[-1].reason == TARGET_EXIT

    def test_trailing_stop_hit_in_profit(self, risk, manager, open_long):
        position = open_long(target=200.0)
        _mark(manager, position, 102.0)
        risk.evaluate(position, MIDDAY)
        _mark(manager, position, 100.4)

        actions = risk.evaluate(position, MIDDAY)

        assert actions[-1].reason == TARGET_EXIT

    def test_inside_band(self, plain, manager, open_long):
        position = open_long()
        _mark(manager, position, 100.5)
        assert plain.evaluate(position, MIDDAY) == []


class TestManagePositions:

    @pytest.mark.asyncio
    async def test_dispatches_closes_and_bookings(self, risk, manager, open_long):
        loser = open_long()
        winner = open_long(symbol="TCS", target=200.0)
        manager.update_prices({"RELIANCE": 94.0, "TCS": 104.0})

        closed, booked = [], []

        async def close_fn(position, reason):
            closed.append((position.symbol, reason))
            manager.close(position.id, reason)

        async def book_fn(position, action):
            booked.append((position.symbol, action.quantity))

        await risk.manage_positions(manager.get_positions(), close_fn, book_fn, MIDDAY)

        assert closed == [("RELIANCE", MAX_LOSS_EXIT)]
        assert booked == [("TCS", 4)]
        assert manager.get_positions() == [winner]
        assert loser.exit_reason == MAX_LOSS_EXIT
