"""
Market Condition Module
=======================
Discrete classification of the current market from a rolling OHLCV window,
a sentiment score and the wall clock. The result is an immutable snapshot
that every generator sees for the duration of one tick.
"""

import pandas as pd
import numpy as np
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional
import logging

from ..config import MarketConfig
from .session import MarketSession, TimeOfDay, DayType

logger = logging.getLogger(__name__)


class Trend(Enum):
    BULLISH = "bullish"
    BEARISH = "bearish"
    SIDEWAYS = "sideways"


class VolatilityLevel(Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    EXTREME = "extreme"


class VolumeLevel(Enum):
    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"
    EXCEPTIONAL = "exceptional"


class Sentiment(Enum):
    POSITIVE = "positive"
    NEGATIVE = "negative"
    NEUTRAL = "neutral"


@dataclass(frozen=True)
class MarketCondition:
    trend: Trend
    volatility: VolatilityLevel
    volume: VolumeLevel
    sentiment: Sentiment
    time_of_day: TimeOfDay
    day_type: DayType

    # Raw measurements behind the buckets
    change_pct: float = 0.0
    realized_volatility: float = 0.0
    volume_ratio: float = 1.0
    sentiment_score: float = 0.5

    def to_dict(self) -> dict:
        return {
            'trend': self.trend.value,
            'volatility': self.volatility.value,
            'volume': self.volume.value,
            'sentiment': self.sentiment.value,
            'time_of_day': self.time_of_day.value,
            'day_type': self.day_type.value,
            'change_pct': round(self.change_pct, 3),
            'realized_volatility': round(self.realized_volatility, 4),
            'volume_ratio': round(self.volume_ratio, 3),
            'sentiment_score': round(self.sentiment_score, 3),
        }


class MarketAnalyzer:
    """Buckets trend, volatility, volume and sentiment against fixed thresholds."""

    def __init__(self, config: MarketConfig = None, session: MarketSession = None):
        self.config = config or MarketConfig()
        self.session = session or MarketSession(self.config)

    def classify_trend(self, change_pct: float) -> Trend:
        if change_pct > self.config.trend_threshold_pct:
            return Trend.BULLISH
        if change_pct < -self.config.trend_threshold_pct:
            return Trend.BEARISH
        return Trend.SIDEWAYS

    def classify_volatility(self, volatility: float) -> VolatilityLevel:
        if volatility > self.config.volatility_extreme:
            return VolatilityLevel.EXTREME
        if volatility > self.config.volatility_high:
            return VolatilityLevel.HIGH
        if volatility > self.config.volatility_medium:
            return VolatilityLevel.MEDIUM
        return VolatilityLevel.LOW

    def classify_volume(self, ratio: float) -> VolumeLevel:
        if ratio > self.config.volume_exceptional:
            return VolumeLevel.EXCEPTIONAL
        if ratio > self.config.volume_high:
            return VolumeLevel.HIGH
        if ratio > self.config.volume_normal:
            return VolumeLevel.NORMAL
        return VolumeLevel.LOW

    def classify_sentiment(self, score: float) -> Sentiment:
        if score > self.config.sentiment_positive:
            return Sentiment.POSITIVE
        if score < self.config.sentiment_negative:
            return Sentiment.NEGATIVE
        return Sentiment.NEUTRAL

    def measure(self, window: Optional[pd.DataFrame]):
        """Short-horizon change %, annualized realized volatility and volume ratio."""
        if window is None or window.empty or len(window) < 2:
            return 0.0, 0.0, 1.0

        close = window['close'].astype(float)
        lookback = min(self.config.trend_lookback, len(close) - 1)
        reference = close.iloc[-1 - lookback]
        change_pct = (close.iloc[-1] / reference - 1) * 100 if reference > 0 else 0.0

        returns = np.log(close / close.shift(1)).dropna().tail(self.config.volatility_window)
        volatility = float(returns.std() * np.sqrt(252)) if len(returns) > 1 else 0.0

        volume = window['volume'].astype(float)
        average = volume.tail(self.config.volume_ma_period).mean()
        ratio = float(volume.iloc[-1] / average) if average > 0 else 1.0

        return float(change_pct), volatility, ratio

    def analyze(self, window: Optional[pd.DataFrame], sentiment_score: float = 0.5,
                moment: datetime = None) -> MarketCondition:
        """
        Classify the market.

        Args:
            window: OHLCV frame for the benchmark symbol, oldest first
            sentiment_score: Score in [0, 1] from the sentiment provider
            moment: Clock override, defaults to now in IST

        Returns:
            Frozen MarketCondition snapshot
        """
        change_pct, volatility, ratio = self.measure(window)
        moment = self.session.localize(moment)

        condition = MarketCondition(
            trend=self.classify_trend(change_pct),
            volatility=self.classify_volatility(volatility),
            volume=self.classify_volume(ratio),
            sentiment=self.classify_sentiment(sentiment_score),
            time_of_day=self.session.time_of_day(moment),
            day_type=self.session.day_type(moment),
            change_pct=change_pct,
            realized_volatility=volatility,
            volume_ratio=ratio,
            sentiment_score=sentiment_score,
        )
        logger.debug(f"Market condition: {condition.to_dict()}")
        return condition
