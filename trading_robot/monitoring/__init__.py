"""
Monitoring Module
=================
"""
from .monitoring_system import (
    MonitoringSystem,
    AlertManager,
    AlertSeverity,
    Alert,
    DailyTradingStats,
    StatsTracker,
    setup_logging
)

__all__ = [
    'MonitoringSystem',
    'AlertManager',
    'AlertSeverity',
    'Alert',
    'DailyTradingStats',
    'StatsTracker',
    'setup_logging'
]
