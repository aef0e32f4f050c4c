"""
Risk Engine Module
==================
"""
from .risk_manager import (
    RiskManager,
    RiskAction,
    RiskActionType,
    MAX_LOSS_EXIT,
    SCALPING_TIME_EXIT,
    INTRADAY_CLOSE_EXIT,
    TARGET_EXIT,
    STOP_LOSS_EXIT
)

__all__ = [
    'RiskManager',
    'RiskAction',
    'RiskActionType',
    'MAX_LOSS_EXIT',
    'SCALPING_TIME_EXIT',
    'INTRADAY_CLOSE_EXIT',
    'TARGET_EXIT',
    'STOP_LOSS_EXIT'
]
