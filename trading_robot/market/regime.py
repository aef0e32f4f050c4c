"""
Market Regime Module
====================
Trend persistence (Hurst exponent by rescaled range) and volatility trend
(ATR slope) classify the market into one of five regimes. Each regime maps
to a fixed capital allocation preset that the robot consults when deciding
how many positions it may hold and how much it risks per trade.
"""

import numpy as np
from dataclasses import dataclass, asdict
from enum import Enum
from typing import Optional, Sequence, Tuple
import logging

logger = logging.getLogger(__name__)


class RegimeType(Enum):
    TRENDING_BULL = "trending_bull"
    TRENDING_BEAR = "trending_bear"
    SIDEWAYS_LOW_VOL = "sideways_low_vol"
    SIDEWAYS_HIGH_VOL = "sideways_high_vol"
    VOLATILE_UNCERTAIN = "volatile_uncertain"


class VolatilityRegime(Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


@dataclass(frozen=True)
class MarketRegime:
    type: RegimeType
    strength: float
    hurst_exponent: float
    atr_slope: float
    volatility_regime: VolatilityRegime


@dataclass(frozen=True)
class DynamicAllocation:
    """Capital split across strategy buckets (percent) and position limits."""
    conservative: float
    moderate: float
    aggressive: float
    max_positions: int
    risk_per_trade: float  # percent of capital

    def to_dict(self) -> dict:
        return asdict(self)


ALLOCATION_PRESETS = {
    RegimeType.TRENDING_BULL: DynamicAllocation(30, 40, 30, max_positions=7, risk_per_trade=1.2),
    RegimeType.TRENDING_BEAR: DynamicAllocation(40, 40, 20, max_positions=6, risk_per_trade=1.0),
    RegimeType.SIDEWAYS_LOW_VOL: DynamicAllocation(50, 35, 15, max_positions=5, risk_per_trade=1.0),
    RegimeType.SIDEWAYS_HIGH_VOL: DynamicAllocation(60, 30, 10, max_positions=4, risk_per_trade=0.8),
    RegimeType.VOLATILE_UNCERTAIN: DynamicAllocation(70, 25, 5, max_positions=4, risk_per_trade=0.8),
}

MIN_HURST_POINTS = 20
ATR_WINDOW = 14
SLOPE_BARS = 5


def calculate_hurst_exponent(prices: Sequence[float]) -> float:
    """
    Hurst exponent of the log-return series by rescaled-range analysis.

    Returns 0.5 (random walk) when there are fewer than 20 prices or the
    returns have no dispersion.
    """
    prices = np.asarray(prices, dtype=float)
    if len(prices) < MIN_HURST_POINTS:
        return 0.5

    returns = np.diff(np.log(prices))
    n = len(returns)
    deviations = np.cumsum(returns - returns.mean())
    value_range = deviations.max() - deviations.min()
    std = returns.std()

    if std == 0 or value_range == 0:
        return 0.5

    return float(np.log(value_range / std) / np.log(n))


def calculate_atr_slope(prices: Sequence[float], window: int = ATR_WINDOW) -> float:
    """
    Relative change between the mean ATR of the last 5 windows and the 5
    before them. ATR here is the mean absolute close-to-close move over a
    14-price window.
    """
    prices = np.asarray(prices, dtype=float)
    if len(prices) < window:
        return 0.0

    moves = np.abs(np.diff(prices))
    atr_values = np.convolve(moves, np.ones(window - 1) / (window - 1), mode='valid')
    if len(atr_values) < 2 * SLOPE_BARS:
        return 0.0

    recent = atr_values[-SLOPE_BARS:].mean()
    older = atr_values[-2 * SLOPE_BARS:-SLOPE_BARS].mean()
    if older == 0:
        return 0.0
    return float((recent - older) / older)


def annualized_volatility(prices: Sequence[float]) -> float:
    prices = np.asarray(prices, dtype=float)
    if len(prices) < 2:
        return 0.0
    returns = np.diff(np.log(prices))
    return float(np.sqrt(np.mean(returns ** 2)) * np.sqrt(252))


def classify_volatility_regime(prices: Sequence[float]) -> VolatilityRegime:
    if len(prices) < MIN_HURST_POINTS:
        return VolatilityRegime.MEDIUM

    volatility = annualized_volatility(prices)
    if volatility < 0.15:
        return VolatilityRegime.LOW
    if volatility > 0.30:
        return VolatilityRegime.HIGH
    return VolatilityRegime.MEDIUM


def classify_regime(hurst: float, atr_slope: float) -> Tuple[RegimeType, float]:
    """Map (Hurst, ATR slope) to a regime type and a strength in [0, 1]."""
    if hurst > 0.6 and atr_slope > 0.1:
        regime, strength = RegimeType.TRENDING_BULL, (hurst - 0.6) * 2.5
    elif hurst > 0.6 and atr_slope < -0.1:
        regime, strength = RegimeType.TRENDING_BEAR, (hurst - 0.6) * 2.5
    elif hurst < 0.4 and abs(atr_slope) < 0.05:
        regime, strength = RegimeType.SIDEWAYS_LOW_VOL, (0.4 - hurst) * 2.5
    elif hurst < 0.4 and abs(atr_slope) > 0.1:
        regime, strength = RegimeType.SIDEWAYS_HIGH_VOL, (0.4 - hurst) * 2.5
    else:
        regime, strength = RegimeType.VOLATILE_UNCERTAIN, abs(hurst - 0.5) * 2.5

    return regime, min(1.0, max(0.0, strength))


class RegimeClassifier:
    """
    Holds the current regime and its allocation.

    Runs on its own timer; the robot only reads `current` and `allocation`.
    """

    def __init__(self):
        self.current: Optional[MarketRegime] = None
        self.allocation: DynamicAllocation = ALLOCATION_PRESETS[RegimeType.VOLATILE_UNCERTAIN]

    @staticmethod
    def analyze(prices: Sequence[float], volumes: Sequence[float] = None) -> MarketRegime:
        hurst = calculate_hurst_exponent(prices)
        atr_slope = calculate_atr_slope(prices)
        regime_type, strength = classify_regime(hurst, atr_slope)

        return MarketRegime(
            type=regime_type,
            strength=strength,
            hurst_exponent=hurst,
            atr_slope=atr_slope,
            volatility_regime=classify_volatility_regime(prices),
        )

    def update(self, prices: Sequence[float], volumes: Sequence[float] = None) -> MarketRegime:
        """Recompute the regime; the allocation follows on a type change."""
        regime = self.analyze(prices, volumes)
        previous = self.current.type if self.current else None
        self.current = regime

        if regime.type != previous:
            self.allocation = ALLOCATION_PRESETS[regime.type]
            logger.info(
                f"Market regime: {regime.type.value} (strength {regime.strength:.0%}, "
                f"H={regime.hurst_exponent:.3f}, ATR slope {regime.atr_slope:+.3f}) "
                f"-> max {self.allocation.max_positions} positions, "
                f"{self.allocation.risk_per_trade}% risk per trade"
            )
        else:
            logger.debug(f"Market regime unchanged: {regime.type.value}")

        return regime
