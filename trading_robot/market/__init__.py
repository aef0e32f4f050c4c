"""
Market Analysis Module
======================
"""
from .session import MarketSession, TimeOfDay, DayType
from .market_analyzer import (
    MarketAnalyzer,
    MarketCondition,
    Trend,
    VolatilityLevel,
    VolumeLevel,
    Sentiment
)
from .regime import (
    RegimeClassifier,
    MarketRegime,
    RegimeType,
    VolatilityRegime,
    DynamicAllocation,
    ALLOCATION_PRESETS,
    calculate_hurst_exponent,
    calculate_atr_slope
)

__all__ = [
    'MarketSession',
    'TimeOfDay',
    'DayType',
    'MarketAnalyzer',
    'MarketCondition',
    'Trend',
    'VolatilityLevel',
    'VolumeLevel',
    'Sentiment',
    'RegimeClassifier',
    'MarketRegime',
    'RegimeType',
    'VolatilityRegime',
    'DynamicAllocation',
    'ALLOCATION_PRESETS',
    'calculate_hurst_exponent',
    'calculate_atr_slope'
]
