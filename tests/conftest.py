"""
Test configuration and shared fixtures for the trading robot tests.
"""

import pytest
import numpy as np
import pandas as pd
from datetime import datetime
from zoneinfo import ZoneInfo

from trading_robot.config import RobotConfig
from trading_robot.data import SimulatedDataSource
from trading_robot.execution import PaperOrderGateway
from trading_robot.features import TechnicalSnapshot, MacdValues, BollingerBands
from trading_robot.market import MarketCondition, Trend, VolatilityLevel, VolumeLevel, Sentiment
from trading_robot.market import TimeOfDay, DayType
from trading_robot.signals import TradingSignal, SignalAction, OrderType


IST = ZoneInfo("Asia/Kolkata")


# =============================================================================
# Configuration
# =============================================================================

@pytest.fixture
def config():
    """Robot config with a seeded simulated source."""
    config = RobotConfig()
    config.data.random_seed = 42
    return config


# =============================================================================
# Time Fixtures
# =============================================================================

@pytest.fixture
def ist_timezone():
    return IST


@pytest.fixture
def wednesday_morning():
    """Regular Wednesday session, 11:00 IST."""
    return datetime(2024, 1, 3, 11, 0, tzinfo=IST)


@pytest.fixture
def thursday_afternoon():
    """Weekly expiry day, 14:00 IST."""
    return datetime(2024, 1, 4, 14, 0, tzinfo=IST)


@pytest.fixture
def saturday():
    return datetime(2024, 1, 6, 11, 0, tzinfo=IST)


# =============================================================================
# Data & Broker
# =============================================================================

@pytest.fixture
def simulated_source(config):
    return SimulatedDataSource(config.data)


@pytest.fixture
def paper_gateway():
    gateway = PaperOrderGateway()
    gateway.connect()
    return gateway


# =============================================================================
# Sample Data Fixtures
# =============================================================================

def make_window(closes, volumes=None, end="2024-01-03 11:00"):
    """OHLCV frame on 5-minute bars ending at `end`."""
    closes = np.asarray(closes, dtype=float)
    volumes = np.full(len(closes), 100_000) if volumes is None else np.asarray(volumes)
    index = pd.date_range(end=pd.Timestamp(end, tz=IST), periods=len(closes), freq='5min')
    return pd.DataFrame({
        'open': closes,
        'high': closes * 1.001,
        'low': closes * 0.999,
        'close': closes,
        'volume': volumes,
    }, index=index)


@pytest.fixture
def window_factory():
    return make_window


def make_condition(trend=Trend.SIDEWAYS, volatility=VolatilityLevel.MEDIUM,
                   sentiment=Sentiment.NEUTRAL, time_of_day=TimeOfDay.MORNING,
                   sentiment_score=0.5):
    return MarketCondition(
        trend=trend,
        volatility=volatility,
        volume=VolumeLevel.NORMAL,
        sentiment=sentiment,
        time_of_day=time_of_day,
        day_type=DayType.NORMAL,
        sentiment_score=sentiment_score,
    )


@pytest.fixture
def condition_factory():
    return make_condition


@pytest.fixture
def bullish_technicals():
    """Snapshot that maxes out every buy-side scoring component."""
    return TechnicalSnapshot(
        rsi=25.0,
        macd=MacdValues(value=5.0, signal=2.0, histogram=3.0),
        moving_averages={'sma_20': 102.0, 'sma_50': 101.0, 'ema_9': 101.5, 'ema_20': 99.0},
        bollinger_bands=BollingerBands(upper=106.0, middle=102.0, lower=98.0),
        atr=2.0,
        volume=250_000,
        average_volume=100_000,
        volatility=0.25,
        price_change_pct=0.8,
    )


@pytest.fixture
def buy_signal():
    return TradingSignal(
        symbol="RELIANCE",
        action=SignalAction.BUY,
        order_type=OrderType.LIMIT,
        quantity=10,
        price=100.0,
        stop_loss=97.0,
        target=106.0,
        confidence=0.8,
        reason="test",
        strategy="Intraday Confluence",
    )
