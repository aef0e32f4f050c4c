"""
Trading Robot Orchestrator
==========================
Main control loop tying the components together:

    DATA -> MARKET CONDITION / REGIME -> SIGNALS -> SCORER
         -> ORDER GATEWAY -> POSITIONS <-> RISK MANAGER -> MONITORING

One asyncio loop owns the session. The tick and the intraday-close timer
take the same lock, so positions are never mutated by two ticks at once.
The regime classifier and the options engine run on their own slower
timers and only publish state the tick reads.
"""

import asyncio
from datetime import datetime, timedelta
from enum import Enum
from typing import Awaitable, Callable, Dict, List, Optional, Tuple
import logging

from .config import RobotConfig, TradingMode
from .data import DataManager, MarketDataSource
from .features import TechnicalSnapshot
from .market import MarketSession, MarketAnalyzer, MarketCondition, RegimeClassifier
from .signals import (
    TradingSignal, SignalAction, OrderType, IntradaySignalGenerator,
    OptionsSignalGenerator, SignalScorer, validate_signal
)
from .options import OptionsRiskEngine
from .positions import PositionManager, Position, underlying_of
from .positions.position_manager import INTRADAY_TAGS
from .risk import RiskManager, RiskAction, MAX_LOSS_EXIT, INTRADAY_CLOSE_EXIT
from .execution import OrderGateway, PaperOrderGateway, OrderRequest
from .monitoring import MonitoringSystem, AlertSeverity, setup_logging

logger = logging.getLogger(__name__)


class RobotState(Enum):
    STOPPED = "stopped"
    RUNNING = "running"


class RobotStartError(RuntimeError):
    """Fatal configuration error raised by start()."""


class TradingRobot:
    """
    Intraday trading robot.

    Owns every engine instance; nothing is shared through module globals,
    so several robots can live in one process (and in one test).
    """

    def __init__(self, config: RobotConfig = None, data_source: MarketDataSource = None,
                 gateway: OrderGateway = None, clock: Callable[[], datetime] = None):
        self.config = config or RobotConfig()
        cfg = self.config

        self.session = MarketSession(cfg.market)
        self.clock = clock or self.session.now

        self.data_manager = DataManager(cfg.data, source=data_source, market_config=cfg.market)
        self.analyzer = MarketAnalyzer(cfg.market, self.session)
        self.regime = RegimeClassifier()

        self.intraday = IntradaySignalGenerator(cfg.strategy)
        self.options_strategy = OptionsSignalGenerator(
            cfg.strategy, cfg.options, self.session, cfg.data.index_symbols
        )
        self.scorer = SignalScorer(cfg.scoring)
        self.options_engine = OptionsRiskEngine(cfg.options, cfg.strategy, self.session)

        self.positions = PositionManager(product=cfg.execution.product)
        self.risk_manager = RiskManager(cfg.risk, self.session)
        self.gateway = gateway or PaperOrderGateway()
        self.monitoring = MonitoringSystem(cfg.monitoring, cfg.initial_capital)

        # Runtime state
        self.state = RobotState.STOPPED
        self.condition: Optional[MarketCondition] = None
        self.iteration = 0
        self._lock = asyncio.Lock()
        self._stop_event: Optional[asyncio.Event] = None
        self._tasks: List[asyncio.Task] = []
        self._initialized = False

    @property
    def symbols(self) -> List[str]:
        symbols = list(self.config.data.symbols)
        for extra in (self.config.data.benchmark_symbol, self.config.options.underlying):
            if extra not in symbols:
                symbols.append(extra)
        return symbols

    @property
    def max_positions(self) -> int:
        return min(self.config.strategy.max_positions, self.regime.allocation.max_positions)

    # Lifecycle

    async def initialize(self):
        """Connect the gateway, load history and compute the first regime."""
        if self._initialized:
            return
        logger.info("Initializing trading robot...")
        self.gateway.connect()
        await self.data_manager.initialize(self.symbols)
        await self.update_regime()
        self._initialized = True
        logger.info("Trading robot initialized")

    async def start(self):
        """
        Start the control loops.

        Raises:
            RobotStartError: outside exchange trading hours while enforced
        """
        if self.state == RobotState.RUNNING:
            logger.warning("Robot already running")
            return

        now = self.clock()
        if self.config.enforce_trading_hours and not self.session.is_market_open(now):
            raise RobotStartError(
                f"Market closed at {self.session.localize(now):%a %H:%M} IST; "
                f"trading hours are {self.config.market.market_open}-{self.config.market.market_close}"
            )

        await self.initialize()
        self.monitoring.start_session(self.config.initial_capital, self.session.localize(now).date())

        self.state = RobotState.RUNNING
        self._stop_event = asyncio.Event()
        cfg = self.config
        self._tasks = [
            asyncio.create_task(self._run_loop("tick", cfg.tick_interval_seconds, self.tick)),
            asyncio.create_task(self._run_loop("regime", cfg.regime_interval_seconds, self.update_regime)),
            asyncio.create_task(self._run_loop("options", cfg.options_interval_seconds, self.update_options)),
            asyncio.create_task(self._run_loop(
                "intraday-close", cfg.intraday_close_check_seconds, self.check_intraday_close
            )),
        ]

        logger.info(f"Trading robot started in {cfg.mode.value} mode with capital {cfg.initial_capital:,.0f}")
        self.monitoring.alert(AlertSeverity.INFO, "Robot Started", f"{cfg.mode.value} mode, {len(self.symbols)} symbols")

    async def stop(self):
        """Stop the loops, letting any in-flight tick finish first."""
        if self.state == RobotState.STOPPED:
            return

        logger.info("Stopping trading robot...")
        self.state = RobotState.STOPPED
        if self._stop_event is not None:
            self._stop_event.set()

        results = await asyncio.gather(*self._tasks, return_exceptions=True)
        for result in results:
            if isinstance(result, Exception):
                self.monitoring.record_error("loop shutdown", result)
        self._tasks = []

        self.gateway.disconnect()
        self._initialized = False
        logger.info(f"Trading robot stopped with {self.positions.count} open positions")
        self.monitoring.alert(AlertSeverity.INFO, "Robot Stopped", f"{self.iteration} ticks processed")

    async def _run_loop(self, name: str, interval: float, step: Callable[[], Awaitable]):
        while self.state == RobotState.RUNNING:
            try:
                await step()
            except Exception as e:
                self.monitoring.record_error(f"{name} loop", e)

            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=interval)
            except asyncio.TimeoutError:
                pass

    # Periodic jobs

    async def tick(self, now: datetime = None) -> List[Position]:
        """
        One control-loop iteration.

        Returns:
            Positions opened during this tick
        """
        async with self._lock:
            now = self.session.localize(now or self.clock())

            prices = await self.data_manager.refresh_all(self.symbols)
            benchmark = self.config.data.benchmark_symbol
            sentiment = await self.data_manager.get_market_sentiment(benchmark)
            self.condition = self.analyzer.analyze(
                self.data_manager.get_window(benchmark), sentiment, now
            )

            self._mark_positions(prices, now)
            await self.risk_manager.manage_positions(
                self.positions.get_positions(), self._close_position, self._book_partial, now
            )
            self._update_stats()

            opened = []
            if self.session.is_market_open(now) and self._has_capacity(now):
                opened = await self._scan_for_entries(self.condition, prices, now)
                self._update_stats()

            self.iteration += 1
            logger.debug(
                f"Tick {self.iteration}: {self.condition.trend.value}/{self.condition.volatility.value}, "
                f"{self.positions.count} open, {len(opened)} opened"
            )
            return opened

    async def update_regime(self):
        window = self.data_manager.get_window(self.config.data.benchmark_symbol)
        if window.empty:
            logger.debug("No benchmark history yet, regime unchanged")
            return
        self.regime.update(window['close'].astype(float).tolist(), window['volume'].astype(float).tolist())

    async def update_options(self, now: datetime = None):
        await self.options_engine.refresh(self.data_manager, now or self.clock())

    async def check_intraday_close(self, now: datetime = None) -> List[Position]:
        """Flatten every intraday-tagged position at the pre-close time."""
        now = self.session.localize(now or self.clock())
        if not self.session.at_or_after(self.config.risk.intraday_exit_time, now):
            return []

        async with self._lock:
            intraday = [p for p in self.positions.get_positions() if p.is_intraday]
            if not intraday:
                return []

            for position in intraday:
                await self._send_exit_order(position, position.quantity, INTRADAY_CLOSE_EXIT)
            closed = self.positions.close_intraday_positions(INTRADAY_CLOSE_EXIT)
            for position in closed:
                self.monitoring.tracker.record_close(position)
            self._update_stats()

            logger.info(f"Auto-closed {len(closed)} intraday positions")
            return closed

    # Tick helpers

    def _mark_positions(self, prices: Dict[str, float], now: datetime):
        marks = dict(prices)
        for position in self.positions.get_positions():
            if position.symbol in marks:
                continue
            price = self.options_engine.get_contract_price(position.symbol)
            if price is None:
                underlying = underlying_of(position.symbol)
                price = self.options_strategy.mark(
                    position.symbol, prices.get(underlying),
                    self.data_manager.get_technical_indicators(underlying), now,
                )
            if price:
                marks[position.symbol] = price
        self.positions.update_prices(marks)

    def _update_stats(self):
        unrealized = sum(p.pnl for p in self.positions.get_positions())
        self.monitoring.update(unrealized)

    def _has_capacity(self, now: datetime) -> bool:
        if self.positions.count >= self.max_positions:
            logger.debug(f"At position limit ({self.max_positions})")
            return False
        window_start = now - timedelta(minutes=self.config.strategy.entry_window_minutes)
        if self.positions.entries_since(window_start) >= self.config.strategy.max_entries_per_window:
            logger.debug("Entry rate limit reached")
            return False
        return True

    def _candidate_signals(self, condition: MarketCondition, prices: Dict[str, float],
                           now: datetime) -> List[Tuple[TradingSignal, TechnicalSnapshot, float]]:
        strategy = self.config.strategy
        capital = self.monitoring.tracker.available_capital()
        risk_pct = self.regime.allocation.risk_per_trade
        candidates = []

        for symbol in self.config.data.symbols:
            price = prices.get(symbol)
            if not price:
                continue
            technicals = self.data_manager.get_technical_indicators(symbol)

            if strategy.intraday_enabled:
                signal = self.intraday.generate(symbol, price, condition, technicals, capital, risk_pct=risk_pct)
                if signal is not None:
                    candidates.append((signal, technicals, price))

            if strategy.options_enabled:
                signal = self.options_strategy.generate(symbol, price, condition, technicals, capital, moment=now)
                if signal is not None:
                    candidates.append((signal, technicals, price))

        if strategy.options_enabled and strategy.use_options_engine_signals:
            underlying = self.config.options.underlying
            technicals = self.data_manager.get_technical_indicators(underlying)
            for signal in self.options_engine.signals:
                candidates.append((signal, technicals, prices.get(underlying)))

        return candidates

    async def _scan_for_entries(self, condition: MarketCondition, prices: Dict[str, float],
                                now: datetime) -> List[Position]:
        try:
            broker_positions = await self.gateway.get_positions()
        except Exception as e:
            logger.warning(f"Broker positions unavailable, skipping damping: {e}")
            broker_positions = []

        intraday_closed = self.session.at_or_after(self.config.risk.intraday_exit_time, now)

        opened = []
        for signal, technicals, price in self._candidate_signals(condition, prices, now):
            if not self._has_capacity(now):
                break
            # Intraday exposure opened after the forced exit would be flattened at once
            if intraday_closed and any(tag in signal.strategy for tag in INTRADAY_TAGS):
                logger.debug(f"Skipping {signal.strategy} {signal.symbol}: past intraday exit time")
                continue
            if self.positions.has_open_position(signal.symbol):
                logger.debug(f"Skipping {signal.symbol}: position already open")
                continue

            scored, _ = self.scorer.evaluate(signal, technicals, condition, price)
            if scored is None:
                continue
            scored = self.scorer.apply_position_damping(scored, broker_positions)
            if scored is None:
                continue

            valid, message = validate_signal(scored, price)
            if not valid:
                logger.warning(f"Inconsistent signal for {scored.symbol} rejected: {message}")
                continue

            position = await self._execute_entry(scored, price, now)
            if position is not None:
                opened.append(position)
        return opened

    async def _execute_entry(self, signal: TradingSignal, price: float, now: datetime) -> Optional[Position]:
        request = OrderRequest.from_signal(
            signal, self.config.execution.product, self.config.execution.validity
        )
        try:
            response = await self.gateway.place_order(request)
        except Exception as e:
            self.monitoring.record_error(f"Order placement for {signal.symbol}", e)
            return None

        if not response.accepted:
            self.monitoring.alert(
                AlertSeverity.WARNING, "Order Rejected",
                f"{signal.action.value} {signal.quantity} {signal.symbol}: {response.message}",
            )
            return None

        return self.positions.create(signal, entry_price=signal.price or price, now=now)

    async def _send_exit_order(self, position: Position, quantity: int, reason: str):
        action = SignalAction.SELL if position.is_long else SignalAction.BUY
        request = OrderRequest(
            symbol=position.symbol,
            action=action,
            order_type=OrderType.MARKET,
            quantity=quantity,
            price=round(position.current_price, 2),
            product=self.config.execution.product,
            validity=self.config.execution.validity,
            tag=reason,
        )
        try:
            response = await self.gateway.place_order(request)
        except Exception as e:
            self.monitoring.record_error(f"Exit order for {position.symbol}", e)
            return
        if not response.accepted:
            logger.warning(f"Exit order for {position.symbol} rejected: {response.message}")
            self.monitoring.alert(
                AlertSeverity.WARNING, "Exit Order Rejected",
                f"{position.symbol} ({reason}): {response.message}",
            )

    async def _close_position(self, position: Position, reason: str):
        if position.quantity > 0:
            await self._send_exit_order(position, position.quantity, reason)
        closed = self.positions.close(position.id, reason)
        if closed is None:
            return
        self.monitoring.tracker.record_close(closed)
        if reason == MAX_LOSS_EXIT:
            self.monitoring.alert(
                AlertSeverity.CRITICAL, "Max Loss Exit",
                f"{closed.symbol} closed at {closed.pnl_percent:.2f}% ({closed.pnl:+,.2f})",
            )

    async def _book_partial(self, position: Position, action: RiskAction):
        await self._send_exit_order(position, action.quantity, action.reason)
        self.monitoring.tracker.record_booking(position.unit_pnl(action.price) * action.quantity)

    # Status

    def get_status(self) -> Dict:
        """Get current robot status."""
        regime = self.regime.current
        return {
            'state': self.state.value,
            'mode': self.config.mode.value,
            'iteration': self.iteration,
            'market_open': self.session.is_market_open(self.clock()),
            'market_condition': self.condition.to_dict() if self.condition else None,
            'regime': regime.type.value if regime else None,
            'allocation': self.regime.allocation.to_dict(),
            'positions': self.positions.summary(),
            'stats': self.monitoring.get_status(),
            'options': self.options_engine.summary(),
            'signals': {
                'accepted': self.scorer.accepted_count,
                'rejected': self.scorer.rejected_count,
            },
        }

    def generate_report(self) -> str:
        return self.monitoring.generate_report(self.state.value, self.positions.count)


async def run_robot(robot: TradingRobot, duration: float = None):
    """Run until `duration` seconds pass (forever when None), then stop."""
    await robot.start()
    try:
        if duration:
            await asyncio.sleep(duration)
        else:
            await asyncio.Event().wait()
    finally:
        await robot.stop()


def main():
    """Main entry point for the trading robot."""
    import argparse

    parser = argparse.ArgumentParser(description='NSE Trading Robot')
    parser.add_argument('--mode', choices=['live', 'paper'], default='paper',
                        help='Trading mode')
    parser.add_argument('--capital', type=float, default=None,
                        help='Initial capital')
    parser.add_argument('--config', type=str, help='Path to config file')
    parser.add_argument('--duration', type=float, default=None,
                        help='Seconds to run before stopping')

    args = parser.parse_args()

    config = RobotConfig.load(args.config) if args.config else RobotConfig()
    config.mode = TradingMode(args.mode)
    if args.capital is not None:
        config.initial_capital = args.capital
    if config.mode == TradingMode.LIVE:
        config.data.use_simulated = False

    setup_logging(config.monitoring)

    robot = TradingRobot(config)
    try:
        asyncio.run(run_robot(robot, args.duration))
    except RobotStartError as e:
        logger.error(f"Cannot start: {e}")
        return 1
    except KeyboardInterrupt:
        print("\nShutting down...")

    print(robot.generate_report())
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
