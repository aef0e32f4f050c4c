"""
Position Management Module
==========================
"""
from .position_manager import (
    PositionManager,
    Position,
    sector_for,
    market_cap_for,
    underlying_of
)

__all__ = [
    'PositionManager',
    'Position',
    'sector_for',
    'market_cap_for',
    'underlying_of'
]
