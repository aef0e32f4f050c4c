"""
Position Management Module
==========================
Owns the set of open positions: creation from accepted signals,
mark-to-market, partial reductions and closure.

A closed position is handed back exactly once so that the caller can report
it to the statistics tracker; nothing is kept after that.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Mapping, Optional
from uuid import uuid4
from zoneinfo import ZoneInfo
import logging

from ..signals.base import TradingSignal, SignalAction

logger = logging.getLogger(__name__)

IST = ZoneInfo("Asia/Kolkata")

SECTOR_MAP = {
    'RELIANCE': 'Energy',
    'TCS': 'IT', 'INFY': 'IT', 'WIPRO': 'IT',
    'HDFC': 'Banking', 'ICICI': 'Banking', 'SBI': 'Banking',
    'ITC': 'FMCG', 'HUL': 'FMCG',
    'NIFTY': 'Index', 'NIFTY50': 'Index', 'BANKNIFTY': 'Index',
}

LARGE_CAP = {'RELIANCE', 'TCS', 'HDFC', 'INFY', 'ICICI', 'SBI', 'ITC', 'NIFTY', 'NIFTY50', 'BANKNIFTY'}
MID_CAP = {'ZOMATO', 'PAYTM', 'NAUKRI', 'MINDTREE'}

LIQUIDITY_SCORES = {'large': 0.9, 'mid': 0.6, 'small': 0.3}

# Exit-time tags: strategies whose name contains one of these are flat by the close
INTRADAY_TAGS = ('Intraday', 'Scalping')


def underlying_of(symbol: str) -> str:
    """NIFTY50_CE -> NIFTY50."""
    return symbol.split('_', 1)[0]


def sector_for(symbol: str) -> str:
    return SECTOR_MAP.get(underlying_of(symbol), 'Others')


def market_cap_for(symbol: str) -> str:
    base = underlying_of(symbol)
    if base in LARGE_CAP:
        return 'large'
    if base in MID_CAP:
        return 'mid'
    return 'small'


@dataclass
class Position:
    """An open trade."""
    id: str
    symbol: str
    action: SignalAction
    quantity: int
    entry_price: float
    current_price: float
    stop_loss: float
    original_stop_loss: float
    target: float
    strategy: str
    entry_time: datetime
    pnl: float = 0.0
    pnl_percent: float = 0.0
    trailing_active: bool = False
    profit_booking_level: int = 0
    realized_pnl: float = 0.0
    sector: str = 'Others'
    liquidity_score: float = 0.0
    correlation_risk: float = 0.0
    product: str = 'mis'
    exit_reason: Optional[str] = None

    @property
    def is_long(self) -> bool:
        return self.action == SignalAction.BUY

    @property
    def is_intraday(self) -> bool:
        return any(tag in self.strategy for tag in INTRADAY_TAGS)

    def unit_pnl(self, price: float) -> float:
        if self.is_long:
            return price - self.entry_price
        return self.entry_price - price

    def mark(self, price: float):
        """Refresh current price and derived P&L."""
        self.current_price = price
        self.pnl = self.unit_pnl(price) * self.quantity
        self.pnl_percent = (self.unit_pnl(price) / self.entry_price) * 100 if self.entry_price else 0.0

    def reduce(self, quantity: int) -> float:
        """Take `quantity` off at the current price; returns realized P&L."""
        quantity = min(quantity, self.quantity)
        realized = self.unit_pnl(self.current_price) * quantity
        self.quantity -= quantity
        self.realized_pnl += realized
        self.mark(self.current_price)
        return realized

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'symbol': self.symbol,
            'action': self.action.value,
            'quantity': self.quantity,
            'entry_price': self.entry_price,
            'current_price': round(self.current_price, 2),
            'stop_loss': round(self.stop_loss, 2),
            'original_stop_loss': self.original_stop_loss,
            'target': self.target,
            'pnl': round(self.pnl, 2),
            'pnl_percent': round(self.pnl_percent, 2),
            'strategy': self.strategy,
            'entry_time': self.entry_time.isoformat(),
            'trailing_active': self.trailing_active,
            'profit_booking_level': self.profit_booking_level,
            'realized_pnl': round(self.realized_pnl, 2),
            'sector': self.sector,
            'liquidity_score': self.liquidity_score,
            'correlation_risk': round(self.correlation_risk, 2),
        }


class PositionManager:
    """
    The mutable set of open positions.

    Only the robot mutates it, always under its lock, so a position is
    never updated by a tick and the intraday close at once.
    """

    def __init__(self, product: str = 'mis'):
        self.product = product
        self.positions: Dict[str, Position] = {}
        self.entry_times: List[datetime] = []

    def get_positions(self) -> List[Position]:
        return list(self.positions.values())

    def get_position(self, position_id: str) -> Optional[Position]:
        return self.positions.get(position_id)

    @property
    def count(self) -> int:
        return len(self.positions)

    def has_open_position(self, symbol: str) -> bool:
        return any(p.symbol == symbol for p in self.positions.values())

    def entries_since(self, moment: datetime) -> int:
        """Entries at or after `moment`; older entry times are dropped."""
        self.entry_times = [t for t in self.entry_times if t >= moment]
        return len(self.entry_times)

    def create(self, signal: TradingSignal, entry_price: float = None,
               now: datetime = None) -> Optional[Position]:
        """
        Open a position from an accepted signal.

        Args:
            signal: Accepted signal
            entry_price: Fill or quote price; defaults to the signal price
            now: Entry timestamp override

        Returns:
            The new Position, or None for a hold signal or a missing price
        """
        if signal.action == SignalAction.HOLD:
            logger.debug(f"Hold signal for {signal.symbol}: {signal.reason}")
            return None

        price = entry_price or signal.price
        if not price:
            logger.warning(f"No entry price for {signal.symbol}, position not created")
            return None

        now = now or datetime.now(IST)
        position = Position(
            id=f"{signal.symbol}_{uuid4().hex[:8]}",
            symbol=signal.symbol,
            action=signal.action,
            quantity=signal.quantity,
            entry_price=price,
            current_price=price,
            stop_loss=signal.stop_loss,
            original_stop_loss=signal.stop_loss,
            target=signal.target,
            strategy=signal.strategy,
            entry_time=now,
            sector=sector_for(signal.symbol),
            liquidity_score=LIQUIDITY_SCORES[market_cap_for(signal.symbol)],
            product=self.product,
        )

        self.positions[position.id] = position
        self.entry_times.append(now)
        self._update_correlation_risk()

        logger.info(
            f"Position opened: {position.symbol} {position.action.value} {position.quantity} "
            f"@ {position.entry_price:.2f} (SL {position.stop_loss:.2f}, TGT {position.target:.2f}, "
            f"{position.strategy})"
        )
        return position

    def update_prices(self, prices: Mapping[str, float]):
        """Mark every position; symbols missing from `prices` keep their last price."""
        for position in self.positions.values():
            price = prices.get(position.symbol)
            position.mark(price if price else position.current_price)
        self._update_correlation_risk()

    def close(self, position_id: str, reason: str = None) -> Optional[Position]:
        """Remove a position; returns it once, or None if it is not open."""
        position = self.positions.pop(position_id, None)
        if position is None:
            logger.debug(f"Close requested for unknown position {position_id}")
            return None

        position.exit_reason = reason
        self._update_correlation_risk()
        logger.info(
            f"Position closed: {position.symbol} @ {position.current_price:.2f} "
            f"P&L {position.pnl:+.2f} ({position.pnl_percent:+.2f}%) - {reason or 'manual'}"
        )
        return position

    def close_intraday_positions(self, reason: str = "Market closing - Intraday exit") -> List[Position]:
        closed = []
        for position in [p for p in self.positions.values() if p.is_intraday]:
            result = self.close(position.id, reason)
            if result is not None:
                closed.append(result)
        return closed

    def _update_correlation_risk(self):
        positions = list(self.positions.values())
        for position in positions:
            same_symbol = sum(1 for p in positions if p.symbol == position.symbol)
            same_sector = sum(1 for p in positions if p.sector == position.sector)
            position.correlation_risk = min(1.0, same_symbol * 0.3 + same_sector * 0.1)

    def summary(self) -> dict:
        return {
            'open_positions': self.count,
            'unrealized_pnl': round(sum(p.pnl for p in self.positions.values()), 2),
            'positions': [p.to_dict() for p in self.positions.values()],
        }
