"""
Data Module
===========
"""
from .data_manager import (
    DataManager,
    MarketDataSource,
    SimulatedDataSource,
    YFinanceDataSource,
    PriceQuote,
    OptionQuote
)

__all__ = [
    'DataManager',
    'MarketDataSource',
    'SimulatedDataSource',
    'YFinanceDataSource',
    'PriceQuote',
    'OptionQuote'
]
