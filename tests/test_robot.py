"""
Tests for the trading robot orchestrator.

A flat-price source makes the benchmark sideways with low volatility, so
the only strategy that fires is the index iron condor.
"""

import asyncio
from datetime import datetime
from zoneinfo import ZoneInfo

import numpy as np
import pandas as pd
import pytest

from trading_robot import TradingRobot, RobotConfig, RobotState, RobotStartError
from trading_robot.data import MarketDataSource, PriceQuote
from trading_robot.execution import PaperOrderGateway
from trading_robot.monitoring import AlertSeverity
from trading_robot.risk import MAX_LOSS_EXIT, INTRADAY_CLOSE_EXIT
from trading_robot.signals import SignalAction, IRON_CONDOR


IST = ZoneInfo("Asia/Kolkata")
MIDDAY = datetime(2024, 1, 3, 11, 0, tzinfo=IST)


class FlatSource(MarketDataSource):
    """Every symbol trades at its base price on constant volume."""

    def __init__(self, prices, sentiment=0.3):
        super().__init__()
        self.prices = prices
        self.sentiment = sentiment

    def _price(self, symbol):
        return self.prices.get(symbol, 1000.0)

    async def get_realtime_price(self, symbol):
        price = self._price(symbol)
        return PriceQuote(symbol=symbol, price=price, volume=100_000, high=price, low=price,
                          open=price, change=0.0, timestamp=datetime.now(IST))

    async def get_history(self, symbol, bars):
        price = self._price(symbol)
        index = pd.date_range(end=pd.Timestamp(MIDDAY), periods=bars, freq='5min')
        return pd.DataFrame({
            'open': np.full(bars, price),
            'high': np.full(bars, price),
            'low': np.full(bars, price),
            'close': np.full(bars, price),
            'volume': np.full(bars, 100_000),
        }, index=index)

    async def get_market_sentiment(self, query):
        return self.sentiment


class GatedSource(FlatSource):
    """Holds every quote until `release` is set."""

    def __init__(self, prices):
        super().__init__(prices)
        self.entered = asyncio.Event()
        self.release = asyncio.Event()

    async def get_realtime_price(self, symbol):
        self.entered.set()
        await self.release.wait()
        return await super().get_realtime_price(symbol)


@pytest.fixture
def robot_config():
    config = RobotConfig()
    # Flat markets score low; accept anything that scores at all
    config.scoring.default_threshold = 10.0
    config.scoring.strategy_thresholds = {}
    config.tick_interval_seconds = 0.01
    config.regime_interval_seconds = 0.01
    config.options_interval_seconds = 0.01
    config.intraday_close_check_seconds = 0.01
    return config


@pytest.fixture
def flat_source(robot_config):
    return FlatSource(dict(robot_config.data.base_prices))


def make_robot(config, source, gateway=None, clock=MIDDAY):
    return TradingRobot(config, data_source=source, gateway=gateway, clock=lambda: clock)


class TestLifecycle:
    """Tests for start/stop."""

    @pytest.mark.asyncio
    async def test_start_outside_hours_is_fatal(self, robot_config, flat_source, saturday):
        robot = make_robot(robot_config, flat_source, clock=saturday)

        with pytest.raises(RobotStartError):
            await robot.start()
        assert robot.state == RobotState.STOPPED

    @pytest.mark.asyncio
    async def test_start_and_stop(self, robot_config, flat_source):
        robot = make_robot(robot_config, flat_source)

        await robot.start()
        assert robot.state == RobotState.RUNNING
        await asyncio.sleep(0.05)
        await robot.stop()

        assert robot.state == RobotState.STOPPED
        assert robot.iteration >= 1
        assert not robot.gateway.connected
        assert robot.monitoring.error_count == 0
        assert robot.options_engine.get_options_data()

    @pytest.mark.asyncio
    async def test_hours_not_enforced(self, robot_config, flat_source, saturday):
        robot_config.enforce_trading_hours = False
        robot = make_robot(robot_config, flat_source, clock=saturday)

        await robot.start()
        await robot.stop()
        assert robot.state == RobotState.STOPPED


class TestTick:
    """Tests for a single control-loop iteration."""

    @pytest.mark.asyncio
    async def test_opens_iron_condors(self, robot_config, flat_source):
        robot = make_robot(robot_config, flat_source)
        await robot.initialize()

        opened = await robot.tick()

        assert {p.symbol for p in opened} == {"NIFTY50_CE", "BANKNIFTY_CE"}
        assert all(p.action == SignalAction.SELL for p in opened)
        assert all(p.strategy == IRON_CONDOR for p in opened)
        assert robot.positions.count == 2
        assert robot.condition.volatility.value == "low"
        assert robot.iteration == 1

    @pytest.mark.asyncio
    async def test_entry_rate_limited(self, robot_config, flat_source):
        robot = make_robot(robot_config, flat_source)
        await robot.initialize()

        await robot.tick()
        assert await robot.tick() == []
        assert robot.positions.count == 2

    @pytest.mark.asyncio
    async def test_position_limit(self, robot_config, flat_source):
        robot_config.strategy.max_positions = 1
        robot = make_robot(robot_config, flat_source)
        await robot.initialize()

        opened = await robot.tick()

        assert len(opened) == 1
        assert robot.max_positions == 1

    @pytest.mark.asyncio
    async def test_gateway_rejection(self, robot_config, flat_source):
        gateway = PaperOrderGateway(reject_symbols=["NIFTY50_CE"])
        robot = make_robot(robot_config, flat_source, gateway=gateway)
        await robot.initialize()

        opened = await robot.tick()

        assert [p.symbol for p in opened] == ["BANKNIFTY_CE"]
        warnings = robot.monitoring.alert_manager.get_recent_alerts(severity=AlertSeverity.WARNING)
        assert any(a.title == "Order Rejected" for a in warnings)

    @pytest.mark.asyncio
    async def test_pre_open_opens_nothing(self, robot_config, flat_source):
        robot = make_robot(robot_config, flat_source, clock=datetime(2024, 1, 3, 9, 0, tzinfo=IST))
        await robot.initialize()
        assert await robot.tick() == []

    @pytest.mark.asyncio
    async def test_max_loss_exit(self, robot_config, flat_source, buy_signal):
        robot_config.strategy.options_enabled = False
        robot = make_robot(robot_config, flat_source)
        await robot.initialize()

        # RELIANCE trades flat at 2450, about 9% under this entry
        losing = buy_signal.with_updates(price=2700.0, stop_loss=2600.0, target=2900.0)
        position = robot.positions.create(losing, now=MIDDAY)

        await robot.tick()

        assert robot.positions.get_position(position.id) is None
        assert position.exit_reason == MAX_LOSS_EXIT
        stats = robot.monitoring.stats
        assert stats.total_trades == 1
        assert stats.losing_trades == 1
        critical = robot.monitoring.alert_manager.get_recent_alerts(severity=AlertSeverity.CRITICAL)
        assert [a.title for a in critical] == ["Max Loss Exit"]

    @pytest.mark.asyncio
    async def test_data_failure_does_not_stop_tick(self, robot_config, flat_source):
        robot = make_robot(robot_config, flat_source)
        await robot.initialize()

        async def broken(symbol):
            raise ConnectionError("feed down")

        flat_source.get_realtime_price = broken
        await robot.tick()

        assert robot.iteration == 1
        assert robot.data_manager.failed_lookups == len(robot.symbols)


class TestSessionGating:
    """Tests for entry gating around the intraday exit and the close."""

    @pytest.fixture
    def late_robot(self, robot_config, buy_signal):
        # Bullish sentiment lets a flat-market buy clear even the closing threshold
        robot_config.strategy.options_enabled = False
        robot_config.scoring.default_threshold = 0.0
        robot = make_robot(robot_config, FlatSource(dict(robot_config.data.base_prices), sentiment=0.7))

        signal = buy_signal.with_updates(price=2450.0, stop_loss=2400.0, target=2550.0)

        def generate(symbol, price, condition, technicals, capital, risk_pct=None):
            return signal if symbol == signal.symbol else None

        robot.intraday.generate = generate
        return robot

    @pytest.mark.asyncio
    async def test_intraday_entry_before_exit_time(self, late_robot):
        await late_robot.initialize()

        opened = await late_robot.tick(datetime(2024, 1, 3, 14, 0, tzinfo=IST))

        assert [p.symbol for p in opened] == ["RELIANCE"]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("hour,minute", [(15, 20), (16, 30)])
    async def test_no_intraday_entry_after_exit_time(self, late_robot, hour, minute):
        await late_robot.initialize()

        opened = await late_robot.tick(datetime(2024, 1, 3, hour, minute, tzinfo=IST))

        assert opened == []
        assert late_robot.positions.count == 0
        assert late_robot.gateway.orders == {}
        assert late_robot.monitoring.stats.total_trades == 0


class TestConcurrency:
    """Tests for tick serialization and shutdown."""

    @pytest.mark.asyncio
    async def test_stop_waits_for_inflight_tick(self, robot_config, buy_signal):
        robot_config.strategy.options_enabled = False
        source = GatedSource(dict(robot_config.data.base_prices))
        robot = make_robot(robot_config, source)
        position = robot.positions.create(
            buy_signal.with_updates(price=2400.0, stop_loss=2350.0, target=2600.0), now=MIDDAY
        )

        await robot.start()
        await asyncio.wait_for(source.entered.wait(), timeout=1)

        stopping = asyncio.create_task(robot.stop())
        await asyncio.sleep(0.01)
        assert not stopping.done()
        assert robot.iteration == 0

        source.release.set()
        await asyncio.wait_for(stopping, timeout=1)

        assert robot.state == RobotState.STOPPED
        assert robot.iteration == 1
        assert position.current_price == 2450.0
        assert position.pnl == pytest.approx(500.0)
        assert position.trailing_active
        assert not robot.gateway.connected

    @pytest.mark.asyncio
    async def test_tick_and_intraday_close_close_each_position_once(self, robot_config, flat_source, buy_signal):
        robot_config.strategy.options_enabled = False
        robot = make_robot(robot_config, flat_source)
        await robot.initialize()
        robot.positions.create(buy_signal.with_updates(price=2450.0, stop_loss=2400.0, target=2550.0), now=MIDDAY)
        robot.positions.create(
            buy_signal.with_updates(symbol="TCS", price=3550.0, stop_loss=3500.0, target=3650.0), now=MIDDAY
        )
        late = datetime(2024, 1, 3, 15, 16, tzinfo=IST)

        opened, _ = await asyncio.gather(robot.tick(late), robot.check_intraday_close(late))

        assert opened == []
        assert robot.positions.count == 0
        trades = robot.monitoring.tracker.closed_trades
        assert sorted(t['symbol'] for t in trades) == ["RELIANCE", "TCS"]
        assert all(t['reason'] == INTRADAY_CLOSE_EXIT for t in trades)
        assert robot.monitoring.stats.total_trades == 2
        exits = [r.request.symbol for r in robot.gateway.orders.values() if r.request.tag == INTRADAY_CLOSE_EXIT]
        assert sorted(exits) == ["RELIANCE", "TCS"]


class TestIntradayClose:

    @pytest.mark.asyncio
    async def test_closes_intraday_positions_at_exit_time(self, robot_config, flat_source, buy_signal):
        robot = make_robot(robot_config, flat_source)
        await robot.initialize()
        robot.positions.create(buy_signal.with_updates(price=2450.0, stop_loss=2400.0, target=2550.0))
        robot.positions.create(buy_signal.with_updates(symbol="TCS", strategy="Swing Trading"))

        assert await robot.check_intraday_close(datetime(2024, 1, 3, 15, 0, tzinfo=IST)) == []

        closed = await robot.check_intraday_close(datetime(2024, 1, 3, 15, 16, tzinfo=IST))

        assert [p.symbol for p in closed] == ["RELIANCE"]
        assert closed[0].exit_reason == INTRADAY_CLOSE_EXIT
        assert [p.symbol for p in robot.positions.get_positions()] == ["TCS"]
        assert robot.monitoring.stats.total_trades == 1


class TestStatus:

    @pytest.mark.asyncio
    async def test_status(self, robot_config, flat_source):
        robot = make_robot(robot_config, flat_source)
        await robot.initialize()
        await robot.tick()

        status = robot.get_status()

        assert status['state'] == "stopped"
        assert status['mode'] == "paper"
        assert status['positions']['open_positions'] == 2
        assert status['signals']['accepted'] == 2
        assert status['regime'] == "volatile_uncertain"
        assert status['market_condition']['trend'] == "sideways"
        assert "SESSION REPORT" in robot.generate_report()
