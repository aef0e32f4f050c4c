"""
Monitoring Module
=================
Alerts, daily trading statistics and the session report.

Statistics are process-lifetime only: they are reset when the robot starts
a session and updated on every close and every mark-to-market.
"""

import pandas as pd
from dataclasses import dataclass, field
from datetime import datetime, date, timedelta
from typing import Callable, Dict, List, Optional
from enum import Enum
from zoneinfo import ZoneInfo
import logging

logger = logging.getLogger(__name__)

IST = ZoneInfo("Asia/Kolkata")


class AlertSeverity(Enum):
    """Alert severity levels."""
    INFO = "info"
    WARNING = "warning"
    CRITICAL = "critical"


@dataclass
class Alert:
    """Alert notification."""
    severity: AlertSeverity
    title: str
    message: str
    timestamp: datetime = field(default_factory=lambda: datetime.now(IST))
    source: str = ""

    def to_dict(self) -> dict:
        return {
            'severity': self.severity.value,
            'title': self.title,
            'message': self.message,
            'timestamp': self.timestamp,
            'source': self.source
        }


class AlertManager:
    """Manages alerts and notifications."""

    def __init__(self, config=None):
        from ..config import MonitoringConfig
        self.config = config or MonitoringConfig()

        self.alerts: List[Alert] = []
        self.alert_handlers: List[Callable[[Alert], None]] = []

    def add_handler(self, handler: Callable[[Alert], None]):
        """Add custom alert handler."""
        self.alert_handlers.append(handler)

    def send_alert(self, severity: AlertSeverity, title: str, message: str, source: str = ""):
        """Create and dispatch an alert."""
        if not self.config.enable_alerts:
            return

        alert = Alert(severity=severity, title=title, message=message, source=source)
        self.alerts.append(alert)

        for channel in self.config.alert_channels:
            try:
                if channel == 'log':
                    getattr(logger, severity.value)(f"[ALERT] {title}: {message}")
                elif channel == 'console':
                    self._console_alert(alert)
                else:
                    logger.debug(f"Unknown alert channel {channel}")
            except Exception as e:
                logger.error(f"Alert dispatch to {channel} failed: {e}")

        for handler in self.alert_handlers:
            try:
                handler(alert)
            except Exception as e:
                logger.error(f"Alert handler error: {e}")

    def _console_alert(self, alert: Alert):
        """Print alert to console with formatting."""
        colors = {
            AlertSeverity.INFO: '\033[94m',      # Blue
            AlertSeverity.WARNING: '\033[93m',   # Yellow
            AlertSeverity.CRITICAL: '\033[91m',  # Red
        }
        reset = '\033[0m'

        color = colors.get(alert.severity, '')
        print(f"{color}[{alert.severity.value.upper()}] {alert.title}{reset}")
        print(f"  {alert.message}")
        print(f"  Time: {alert.timestamp:%H:%M:%S}")

    def get_recent_alerts(self, hours: int = 24, severity: AlertSeverity = None) -> List[Alert]:
        """Get recent alerts filtered by time and severity."""
        cutoff = datetime.now(IST) - timedelta(hours=hours)
        alerts = [a for a in self.alerts if a.timestamp >= cutoff]
        if severity:
            alerts = [a for a in alerts if a.severity == severity]
        return alerts


@dataclass
class DailyTradingStats:
    """Session statistics. Drawdowns are cumulative-return percentages (<= 0)."""
    session_date: Optional[date] = None
    total_trades: int = 0
    winning_trades: int = 0
    losing_trades: int = 0
    realized_pnl: float = 0.0
    unrealized_pnl: float = 0.0
    max_drawdown: float = 0.0
    current_drawdown: float = 0.0
    starting_capital: float = 0.0
    current_capital: float = 0.0

    @property
    def win_rate(self) -> float:
        return self.winning_trades / self.total_trades if self.total_trades else 0.0

    @property
    def total_pnl(self) -> float:
        return self.realized_pnl + self.unrealized_pnl

    @property
    def cumulative_return_pct(self) -> float:
        if not self.starting_capital:
            return 0.0
        return (self.current_capital / self.starting_capital - 1) * 100

    def to_dict(self) -> dict:
        return {
            'session_date': self.session_date.isoformat() if self.session_date else None,
            'total_trades': self.total_trades,
            'winning_trades': self.winning_trades,
            'losing_trades': self.losing_trades,
            'win_rate': round(self.win_rate, 4),
            'realized_pnl': round(self.realized_pnl, 2),
            'unrealized_pnl': round(self.unrealized_pnl, 2),
            'total_pnl': round(self.total_pnl, 2),
            'max_drawdown': round(self.max_drawdown, 4),
            'current_drawdown': round(self.current_drawdown, 4),
            'starting_capital': self.starting_capital,
            'current_capital': round(self.current_capital, 2),
        }


class StatsTracker:
    """Aggregates closes, bookings and marks into DailyTradingStats."""

    def __init__(self, initial_capital: float = 1000000):
        self.initial_capital = initial_capital
        self.stats = DailyTradingStats(starting_capital=initial_capital, current_capital=initial_capital)
        self.closed_trades: List[Dict] = []

    def reset(self, capital: float = None, session_date: date = None):
        capital = self.initial_capital if capital is None else capital
        self.stats = DailyTradingStats(
            session_date=session_date or datetime.now(IST).date(),
            starting_capital=capital,
            current_capital=capital,
        )
        self.closed_trades = []
        logger.info(f"Daily stats reset, starting capital {capital:,.2f}")

    def record_booking(self, realized: float):
        """Partial exit: realized P&L moves out of the open position."""
        self.stats.realized_pnl += realized
        self._refresh_capital()

    def record_close(self, position):
        """Report a closed position exactly once."""
        trade_pnl = position.pnl + position.realized_pnl
        self.stats.total_trades += 1
        if trade_pnl > 0:
            self.stats.winning_trades += 1
        elif trade_pnl < 0:
            self.stats.losing_trades += 1

        # Booked portions were already realized
        self.stats.realized_pnl += position.pnl
        self.closed_trades.append({
            'symbol': position.symbol,
            'action': position.action.value,
            'entry_price': position.entry_price,
            'exit_price': position.current_price,
            'pnl': round(trade_pnl, 2),
            'strategy': position.strategy,
            'reason': position.exit_reason,
        })
        self._refresh_capital()

    def mark(self, unrealized_pnl: float):
        self.stats.unrealized_pnl = unrealized_pnl
        self._refresh_capital()

    def _refresh_capital(self):
        s = self.stats
        s.current_capital = s.starting_capital + s.realized_pnl + s.unrealized_pnl
        cumulative = s.cumulative_return_pct
        s.current_drawdown = min(0.0, cumulative)
        s.max_drawdown = min(s.max_drawdown, cumulative)

    def available_capital(self) -> float:
        return self.stats.starting_capital + self.stats.realized_pnl


class MonitoringSystem:
    """
    Main monitoring facade used by the robot.

    Features:
    - Alerting through log/console channels and custom handlers
    - Daily trading statistics
    - Error counting at loop boundaries
    - Text session report
    """

    def __init__(self, config=None, initial_capital: float = 1000000):
        from ..config import MonitoringConfig
        self.config = config or MonitoringConfig()

        self.alert_manager = AlertManager(self.config)
        self.tracker = StatsTracker(initial_capital)
        self.error_count = 0
        self.last_update: Optional[datetime] = None

    @property
    def stats(self) -> DailyTradingStats:
        return self.tracker.stats

    def start_session(self, capital: float = None, session_date: date = None):
        self.error_count = 0
        self.tracker.reset(capital, session_date)

    def record_error(self, context: str, error: Exception):
        self.error_count += 1
        logger.error(f"{context}: {error}", exc_info=True)

    def alert(self, severity: AlertSeverity, title: str, message: str, source: str = "robot"):
        self.alert_manager.send_alert(severity, title, message, source)

    def update(self, unrealized_pnl: float):
        self.tracker.mark(unrealized_pnl)
        self.last_update = datetime.now(IST)

    def get_status(self) -> Dict:
        """Get current monitoring status."""
        status = self.stats.to_dict()
        status.update({
            'error_count': self.error_count,
            'last_update': self.last_update,
            'recent_alerts': len(self.alert_manager.get_recent_alerts(hours=1)),
        })
        return status

    def generate_report(self, state: str = "stopped", open_positions: int = 0) -> str:
        """Generate a text session report."""
        s = self.stats

        report = f"""
╔══════════════════════════════════════════════════════════════╗
║                 NSE TRADING ROBOT SESSION REPORT             ║
╠══════════════════════════════════════════════════════════════╣
║ Status: {state.upper():53s}║
║ Time: {pd.Timestamp.now(tz=IST).strftime('%Y-%m-%d %H:%M:%S'):55s}║
╠══════════════════════════════════════════════════════════════╣
║ CAPITAL                                                      ║
╟──────────────────────────────────────────────────────────────╢
║ Starting Capital:   {s.starting_capital:>22,.2f}                   ║
║ Current Capital:    {s.current_capital:>22,.2f}                   ║
║ Realized P&L:       {s.realized_pnl:>22,.2f}                   ║
║ Unrealized P&L:     {s.unrealized_pnl:>22,.2f}                   ║
║ Current Drawdown:   {s.current_drawdown:>21.2f}%                   ║
║ Max Drawdown:       {s.max_drawdown:>21.2f}%                   ║
╠══════════════════════════════════════════════════════════════╣
║ TRADING STATISTICS                                           ║
╟──────────────────────────────────────────────────────────────╢
║ Total Trades:       {s.total_trades:>22d}                   ║
║ Winning Trades:     {s.winning_trades:>22d}                   ║
║ Win Rate:           {s.win_rate:>22.2%}                   ║
║ Open Positions:     {open_positions:>22d}                   ║
║ Errors:             {self.error_count:>22d}                   ║
╚══════════════════════════════════════════════════════════════╝
"""
        return report


def setup_logging(config=None):
    """Configure root logging from MonitoringConfig."""
    from ..config import MonitoringConfig
    config = config or MonitoringConfig()

    handlers = [logging.StreamHandler()]
    if config.log_file:
        handlers.append(logging.FileHandler(config.log_file))

    logging.basicConfig(
        level=getattr(logging, config.log_level.upper(), logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=handlers,
        force=True,
    )
