"""
Feature Engineering Module
==========================
Technical indicators computed from a rolling OHLCV window.

The output is a flat TechnicalSnapshot of the latest values, which is what
the signal generators and the scorer consume.
"""

import pandas as pd
import numpy as np
from typing import Dict, Optional
from dataclasses import dataclass, field
import logging

logger = logging.getLogger(__name__)


@dataclass
class MacdValues:
    value: float = 0.0
    signal: float = 0.0
    histogram: float = 0.0


@dataclass
class BollingerBands:
    upper: float = 0.0
    middle: float = 0.0
    lower: float = 0.0


@dataclass
class TechnicalSnapshot:
    """Latest indicator values for one symbol."""
    rsi: float = 50.0
    macd: MacdValues = field(default_factory=MacdValues)
    moving_averages: Dict[str, float] = field(default_factory=dict)
    bollinger_bands: BollingerBands = field(default_factory=BollingerBands)
    atr: float = 0.0

    # Volume and volatility context for the scorer
    volume: float = 0.0
    average_volume: float = 0.0
    volatility: float = 0.0  # annualized
    price_change_pct: float = 0.0

    @property
    def volume_ratio(self) -> float:
        if self.average_volume <= 0:
            return 1.0
        return self.volume / self.average_volume

    @property
    def ema_20(self) -> float:
        return self.moving_averages.get('ema_20', 0.0)

    @classmethod
    def neutral(cls) -> 'TechnicalSnapshot':
        """Default used when the indicator provider is unavailable."""
        return cls()

    def to_dict(self) -> dict:
        return {
            'rsi': self.rsi,
            'macd': {
                'value': self.macd.value,
                'signal': self.macd.signal,
                'histogram': self.macd.histogram,
            },
            'moving_averages': dict(self.moving_averages),
            'bollinger_bands': {
                'upper': self.bollinger_bands.upper,
                'middle': self.bollinger_bands.middle,
                'lower': self.bollinger_bands.lower,
            },
            'atr': self.atr,
            'volume_ratio': self.volume_ratio,
            'volatility': self.volatility,
        }


class TechnicalIndicators:
    """Technical analysis indicators."""

    @staticmethod
    def sma(prices: pd.Series, period: int) -> pd.Series:
        """Simple Moving Average."""
        return prices.rolling(window=period, min_periods=1).mean()

    @staticmethod
    def ema(prices: pd.Series, period: int) -> pd.Series:
        """Exponential Moving Average."""
        return prices.ewm(span=period, adjust=False).mean()

    @staticmethod
    def rsi(prices: pd.Series, period: int = 14) -> pd.Series:
        """Relative Strength Index."""
        delta = prices.diff()
        gain = (delta.where(delta > 0, 0)).rolling(window=period).mean()
        loss = (-delta.where(delta < 0, 0)).rolling(window=period).mean()

        # A loss-free window gives rs=inf (RSI 100); a flat one gives NaN (neutral)
        rs = gain / loss
        rsi = 100 - (100 / (1 + rs))
        return rsi.fillna(50)

    @staticmethod
    def macd(prices: pd.Series, fast: int = 12, slow: int = 26, signal: int = 9) -> Dict[str, pd.Series]:
        """Moving Average Convergence Divergence."""
        ema_fast = prices.ewm(span=fast, adjust=False).mean()
        ema_slow = prices.ewm(span=slow, adjust=False).mean()
        macd_line = ema_fast - ema_slow
        signal_line = macd_line.ewm(span=signal, adjust=False).mean()

        return {
            'macd': macd_line,
            'macd_signal': signal_line,
            'macd_hist': macd_line - signal_line
        }

    @staticmethod
    def bollinger_bands(prices: pd.Series, period: int = 20, std_dev: float = 2.0) -> Dict[str, pd.Series]:
        """Bollinger Bands."""
        sma = prices.rolling(window=period, min_periods=1).mean()
        std = prices.rolling(window=period, min_periods=1).std().fillna(0)

        return {
            'bb_upper': sma + (std * std_dev),
            'bb_middle': sma,
            'bb_lower': sma - (std * std_dev)
        }

    @staticmethod
    def atr(high: pd.Series, low: pd.Series, close: pd.Series, period: int = 14) -> pd.Series:
        """Average True Range."""
        prev_close = close.shift(1)

        tr1 = high - low
        tr2 = abs(high - prev_close)
        tr3 = abs(low - prev_close)

        true_range = pd.concat([tr1, tr2, tr3], axis=1).max(axis=1)
        return true_range.rolling(window=period, min_periods=1).mean()

    @staticmethod
    def realized_volatility(close: pd.Series, window: int = 20) -> float:
        """Annualized standard deviation of log returns over the window."""
        returns = np.log(close / close.shift(1)).dropna().tail(window)
        if len(returns) < 2:
            return 0.0
        return float(returns.std() * np.sqrt(252))


class FeatureEngine:
    """Reduces an OHLCV frame to the latest TechnicalSnapshot."""

    def __init__(self, rsi_period: int = 14, atr_period: int = 14,
                 volume_ma_period: int = 20, volatility_window: int = 20):
        self.rsi_period = rsi_period
        self.atr_period = atr_period
        self.volume_ma_period = volume_ma_period
        self.volatility_window = volatility_window
        self.indicators = TechnicalIndicators()

    def snapshot(self, df: pd.DataFrame) -> Optional[TechnicalSnapshot]:
        """
        Compute the latest indicator values.

        Args:
            df: Frame with open/high/low/close/volume columns, oldest first

        Returns:
            TechnicalSnapshot, or None when the frame is empty
        """
        if df is None or df.empty:
            return None

        close = df['close'].astype(float)
        high = df['high'].astype(float) if 'high' in df else close
        low = df['low'].astype(float) if 'low' in df else close
        volume = df['volume'].astype(float) if 'volume' in df else pd.Series(0.0, index=df.index)

        ind = self.indicators
        macd = ind.macd(close)
        bands = ind.bollinger_bands(close)

        moving_averages = {
            'sma_20': float(ind.sma(close, 20).iloc[-1]),
            'sma_50': float(ind.sma(close, 50).iloc[-1]),
            'ema_9': float(ind.ema(close, 9).iloc[-1]),
            'ema_20': float(ind.ema(close, 20).iloc[-1]),
        }

        average_volume = float(volume.tail(self.volume_ma_period).mean()) if len(volume) else 0.0

        lookback = min(5, len(close) - 1)
        if lookback > 0 and close.iloc[-1 - lookback] > 0:
            change_pct = (close.iloc[-1] / close.iloc[-1 - lookback] - 1) * 100
        else:
            change_pct = 0.0

        return TechnicalSnapshot(
            rsi=float(ind.rsi(close, self.rsi_period).iloc[-1]),
            macd=MacdValues(
                value=float(macd['macd'].iloc[-1]),
                signal=float(macd['macd_signal'].iloc[-1]),
                histogram=float(macd['macd_hist'].iloc[-1]),
            ),
            moving_averages=moving_averages,
            bollinger_bands=BollingerBands(
                upper=float(bands['bb_upper'].iloc[-1]),
                middle=float(bands['bb_middle'].iloc[-1]),
                lower=float(bands['bb_lower'].iloc[-1]),
            ),
            atr=float(ind.atr(high, low, close, self.atr_period).iloc[-1]),
            volume=float(volume.iloc[-1]),
            average_volume=average_volume,
            volatility=ind.realized_volatility(close, self.volatility_window),
            price_change_pct=float(change_pct),
        )
