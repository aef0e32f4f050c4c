"""
Feature Engineering Module
==========================
"""
from .feature_engine import (
    FeatureEngine,
    TechnicalIndicators,
    TechnicalSnapshot,
    MacdValues,
    BollingerBands
)

__all__ = [
    'FeatureEngine',
    'TechnicalIndicators',
    'TechnicalSnapshot',
    'MacdValues',
    'BollingerBands'
]
