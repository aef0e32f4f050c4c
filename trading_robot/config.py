"""
Configuration Management
========================
Central configuration for the trading robot.

Every threshold the decision engine uses lives here so that tests can
exercise boundary values without touching module internals.
"""

from dataclasses import dataclass, field, asdict, fields, is_dataclass
from typing import List, Dict, Optional
from enum import Enum
import json
import os


class TradingMode(Enum):
    """Trading operation modes."""
    PAPER = "paper"
    LIVE = "live"


@dataclass
class DataConfig:
    """Data module configuration."""
    # Universe scanned by the signal generators
    symbols: List[str] = field(default_factory=lambda: [
        "NIFTY50", "BANKNIFTY", "RELIANCE", "TCS", "HDFC", "INFY"
    ])
    index_symbols: List[str] = field(default_factory=lambda: ["NIFTY50", "BANKNIFTY"])

    # Reference symbol used for the market-wide condition and regime
    benchmark_symbol: str = "NIFTY50"

    # History window loaded at start-up and kept rolling in memory
    lookback_days: int = 60
    window_size: int = 200

    # Simulated source parameters
    use_simulated: bool = True
    random_seed: Optional[int] = None
    max_tick_move_pct: float = 0.005  # bounded random walk, +/-0.5% per tick
    base_prices: Dict[str, float] = field(default_factory=lambda: {
        "NIFTY50": 19800.0,
        "BANKNIFTY": 44500.0,
        "RELIANCE": 2450.0,
        "TCS": 3550.0,
        "HDFC": 1650.0,
        "INFY": 1450.0,
        "ICICI": 950.0,
        "SBI": 590.0,
    })


@dataclass
class MarketConfig:
    """Exchange session and market-condition thresholds."""
    timezone: str = "Asia/Kolkata"
    market_open: str = "09:15"
    market_close: str = "15:30"

    # Time-of-day sub-windows (upper bounds, inclusive)
    opening_end: str = "10:30"
    morning_end: str = "13:00"
    afternoon_end: str = "15:24"

    # Weekly index expiry (Monday=0 ... Thursday=3)
    expiry_weekday: int = 3
    result_days: List[str] = field(default_factory=list)  # ISO dates
    event_days: List[str] = field(default_factory=list)   # ISO dates

    # Bucketing thresholds
    trend_lookback: int = 5
    trend_threshold_pct: float = 0.5
    volatility_window: int = 20
    volatility_medium: float = 0.20
    volatility_high: float = 0.40
    volatility_extreme: float = 0.60
    volume_ma_period: int = 20
    volume_normal: float = 0.8
    volume_high: float = 1.5
    volume_exceptional: float = 2.0
    sentiment_positive: float = 0.6
    sentiment_negative: float = 0.4


@dataclass
class StrategyConfig:
    """Signal generator configuration."""
    intraday_enabled: bool = True
    options_enabled: bool = True
    use_options_engine_signals: bool = False

    max_positions: int = 5
    risk_per_trade: float = 1.0  # percent of current capital

    # Intraday confluence
    rsi_overbought: float = 65.0
    rsi_oversold: float = 35.0
    atr_stop_multiplier: float = 1.5
    reward_risk_ratio: float = 2.0
    min_reward_risk_ratio: float = 1.5

    # Options strategies
    options_lot_quantity: int = 1
    options_default_volatility: float = 0.18
    long_premium_stop_pct: float = 0.30
    long_premium_target_pct: float = 0.60
    short_premium_stop_pct: float = 0.50
    short_premium_target_pct: float = 0.50

    # Entry throttling
    max_entries_per_window: int = 2
    entry_window_minutes: int = 5


@dataclass
class ScoringConfig:
    """Signal scorer configuration."""
    default_threshold: float = 80.0
    strategy_thresholds: Dict[str, float] = field(default_factory=lambda: {
        "Scalping": 85.0,
        "Intraday Confluence": 80.0,
        "Options Iron Condor": 75.0,
        "Options Long Straddle": 85.0,
        "Swing Trading": 90.0,
    })
    opening_adjustment: float = -5.0
    closing_adjustment: float = 10.0

    max_confidence: float = 0.95
    min_confidence: float = 0.60

    # Broker-position damping
    oversized_position_quantity: int = 100
    oversized_damping: float = 0.8
    opposing_damping: float = 0.6


@dataclass
class RiskPolicy:
    """Per-position exit policy enforced by the risk manager."""
    max_loss_pct: float = 5.0

    trailing_enabled: bool = True
    trailing_activation_pct: float = 1.0
    trail_default_pct: float = 1.5
    trail_wide_profit_pct: float = 3.0
    trail_wide_pct: float = 2.0
    trail_widest_profit_pct: float = 5.0
    trail_widest_pct: float = 2.5

    partial_booking_enabled: bool = True
    first_booking_pct: float = 3.0
    first_booking_fraction: float = 0.4
    second_booking_pct: float = 6.0
    second_booking_fraction: float = 0.5

    scalping_max_hold_minutes: int = 30
    intraday_exit_time: str = "15:15"


@dataclass
class OptionsConfig:
    """Options risk engine configuration."""
    underlying: str = "NIFTY50"
    risk_free_rate: float = 0.06
    strike_step: int = 50
    ladder_width: int = 2  # strikes either side of ATM
    min_days_to_expiry: float = 1.0

    # Declared option holdings: contract symbol -> signed quantity
    holdings: Dict[str, int] = field(default_factory=dict)

    # Portfolio stress move for the drawdown estimate
    stress_move_pct: float = 0.05

    # Published signal thresholds
    iv_high: float = 0.35
    iv_low: float = 0.15
    iv_signal_min_volume: int = 2000
    iv_expansion_min_volume: int = 1500
    gamma_scalp_threshold: float = 0.03
    gamma_scalp_max_expiry: float = 0.05


@dataclass
class ExecutionConfig:
    """Order gateway configuration."""
    product: str = "mis"
    validity: str = "day"
    default_order_type: str = "limit"


@dataclass
class MonitoringConfig:
    """Monitoring, alerting and logging configuration."""
    enable_alerts: bool = True
    alert_channels: List[str] = field(default_factory=lambda: ["log"])

    log_level: str = "INFO"
    log_file: Optional[str] = None


@dataclass
class RobotConfig:
    """Master robot configuration."""
    mode: TradingMode = TradingMode.PAPER
    initial_capital: float = 1000000  # 10 Lakhs

    # Loop cadence
    tick_interval_seconds: float = 30.0
    regime_interval_seconds: float = 300.0
    options_interval_seconds: float = 10.0
    intraday_close_check_seconds: float = 60.0

    # Refuse to start outside exchange hours
    enforce_trading_hours: bool = True

    data: DataConfig = field(default_factory=DataConfig)
    market: MarketConfig = field(default_factory=MarketConfig)
    strategy: StrategyConfig = field(default_factory=StrategyConfig)
    scoring: ScoringConfig = field(default_factory=ScoringConfig)
    risk: RiskPolicy = field(default_factory=RiskPolicy)
    options: OptionsConfig = field(default_factory=OptionsConfig)
    execution: ExecutionConfig = field(default_factory=ExecutionConfig)
    monitoring: MonitoringConfig = field(default_factory=MonitoringConfig)

    def save(self, filepath: str):
        """Save configuration to JSON file."""
        directory = os.path.dirname(filepath)
        if directory:
            os.makedirs(directory, exist_ok=True)
        with open(filepath, 'w') as f:
            json.dump(self._to_dict(), f, indent=2)

    @classmethod
    def load(cls, filepath: str) -> 'RobotConfig':
        """Load configuration from JSON file."""
        with open(filepath, 'r') as f:
            data = json.load(f)
        return cls._from_dict(data)

    def _to_dict(self) -> dict:
        """Convert to dictionary."""
        data = asdict(self)
        data['mode'] = self.mode.value
        return data

    @classmethod
    def _from_dict(cls, data: dict) -> 'RobotConfig':
        """Create from dictionary, ignoring unknown keys."""
        config = cls()
        for f in fields(cls):
            if f.name not in data:
                continue
            value = data[f.name]
            current = getattr(config, f.name)
            if f.name == 'mode':
                config.mode = TradingMode(value)
            elif is_dataclass(current):
                setattr(config, f.name, _section_from_dict(type(current), value))
            else:
                setattr(config, f.name, value)
        return config


def _section_from_dict(section_cls, data: dict):
    known = {f.name for f in fields(section_cls)}
    return section_cls(**{k: v for k, v in data.items() if k in known})


def parse_hhmm(value: str):
    """Parse an 'HH:MM' string into a datetime.time."""
    from datetime import time
    hour, minute = map(int, value.split(':'))
    return time(hour, minute)
