"""
Signal Generation Module
========================
"""
from .base import (
    TradingSignal,
    SignalAction,
    OrderType,
    SignalGenerator,
    validate_signal
)
from .intraday import IntradaySignalGenerator, position_size
from .options import OptionsSignalGenerator, IRON_CONDOR, LONG_STRADDLE
from .scorer import SignalScorer, SignalScore

__all__ = [
    'TradingSignal',
    'SignalAction',
    'OrderType',
    'SignalGenerator',
    'validate_signal',
    'IntradaySignalGenerator',
    'position_size',
    'OptionsSignalGenerator',
    'IRON_CONDOR',
    'LONG_STRADDLE',
    'SignalScorer',
    'SignalScore'
]
