"""
NSE Trading Robot
=================

An intraday decision engine for NSE cash and index-options trading:

- Market condition analysis (trend, volatility, volume, sentiment, session)
- Regime classification (Hurst exponent, ATR slope) with dynamic allocation
- Intraday confluence and index options strategies
- Multi-factor signal scoring with time-of-day thresholds
- Position lifecycle with trailing stops, partial booking and time exits
- Black-Scholes Greeks and portfolio option risk

PIPELINE:
    ┌─────────┐
    │  DATA   │  ← prices, volume, sentiment, option quotes
    └────┬────┘
         ↓
    ┌──────────────┐
    │ MARKET/REGIME│  ← condition snapshot, Hurst, ATR slope
    └────┬─────────┘
         ↓
    ┌──────────────┐
    │   SIGNALS    │  ← intraday + options generators, scorer
    └────┬─────────┘
         ↓
    ┌──────────────┐
    │  EXECUTION   │  ← order gateway (paper by default)
    └────┬─────────┘
         ↓
    ┌──────────────┐
    │ POSITIONS +  │  ← trailing, booking, max loss, time exits
    │ RISK MANAGER │
    └────┬─────────┘
         ↓
    ┌──────────────┐
    │ MONITORING   │  ← daily stats, drawdown, alerts
    └──────────────┘

USAGE:
    # Paper trading for one hour
    python -m trading_robot.robot --mode paper --capital 1000000 --duration 3600

    # Programmatic usage
    from trading_robot import TradingRobot, RobotConfig

    config = RobotConfig()
    config.initial_capital = 1000000

    robot = TradingRobot(config)
    await robot.start()
    ...
    await robot.stop()
"""

from .config import RobotConfig, TradingMode
from .robot import TradingRobot, RobotState, RobotStartError, main
from .data import DataManager, SimulatedDataSource, YFinanceDataSource, PriceQuote
from .features import FeatureEngine, TechnicalSnapshot
from .market import MarketSession, MarketAnalyzer, MarketCondition, RegimeClassifier, MarketRegime
from .signals import TradingSignal, SignalAction, OrderType, SignalScorer
from .options import OptionsRiskEngine, calculate_greeks, GreeksInput, GreeksInputError
from .positions import PositionManager, Position
from .risk import RiskManager
from .execution import OrderGateway, PaperOrderGateway, OrderRequest, OrderResponse, OrderStatus
from .monitoring import MonitoringSystem, AlertSeverity, setup_logging

__version__ = "1.0.0"
__all__ = [
    # Main
    'TradingRobot',
    'RobotState',
    'RobotStartError',
    'RobotConfig',
    'TradingMode',
    'main',

    # Data
    'DataManager',
    'SimulatedDataSource',
    'YFinanceDataSource',
    'PriceQuote',

    # Features
    'FeatureEngine',
    'TechnicalSnapshot',

    # Market
    'MarketSession',
    'MarketAnalyzer',
    'MarketCondition',
    'RegimeClassifier',
    'MarketRegime',

    # Signals
    'TradingSignal',
    'SignalAction',
    'OrderType',
    'SignalScorer',

    # Options
    'OptionsRiskEngine',
    'calculate_greeks',
    'GreeksInput',
    'GreeksInputError',

    # Positions & risk
    'PositionManager',
    'Position',
    'RiskManager',

    # Execution
    'OrderGateway',
    'PaperOrderGateway',
    'OrderRequest',
    'OrderResponse',
    'OrderStatus',

    # Monitoring
    'MonitoringSystem',
    'AlertSeverity',
    'setup_logging',
]
