"""
Risk Engine Module
==================
Per-position exit policy, enforced on every tick without manual override.

Each open position moves through:

    open ──(gain >= 1%)──> trailing ──(gain >= 3%)──> booked 40%
                                    ──(gain >= 6%)──> booked 50% of rest
    any state ──> closed

Checks run in a fixed priority so a position gets exactly one close reason
per tick: max loss, then trailing and booking updates, then time exits,
then stop/target.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Awaitable, Callable, Iterable, List, Optional
import math
import logging

from ..config import RiskPolicy
from ..market.session import MarketSession
from ..positions.position_manager import Position

logger = logging.getLogger(__name__)

MAX_LOSS_EXIT = "Risk management - Max loss exceeded"
SCALPING_TIME_EXIT = "Scalping time limit reached"
INTRADAY_CLOSE_EXIT = "Market closing - Intraday exit"
TARGET_EXIT = "Target/Trailing Stop"
STOP_LOSS_EXIT = "Stop Loss"
FULLY_BOOKED_EXIT = "Profit booked in full"


class RiskActionType(Enum):
    TRAIL = "trail"
    BOOK = "book"
    CLOSE = "close"


@dataclass
class RiskAction:
    """Something the risk manager did (or wants done) to a position."""
    type: RiskActionType
    position_id: str
    symbol: str
    price: float
    quantity: int = 0
    reason: str = ""
    level: int = 0


CloseFn = Callable[[Position, str], Awaitable[None]]
BookFn = Callable[[Position, RiskAction], Awaitable[None]]


class RiskManager:
    """Applies RiskPolicy to open positions."""

    def __init__(self, policy: RiskPolicy = None, session: MarketSession = None):
        self.policy = policy or RiskPolicy()
        self.session = session or MarketSession()

    def trail_percent(self, profit_pct: float) -> float:
        p = self.policy
        if profit_pct > p.trail_widest_profit_pct:
            return p.trail_widest_pct
        if profit_pct > p.trail_wide_profit_pct:
            return p.trail_wide_pct
        return p.trail_default_pct

    def manage_trailing_stop(self, position: Position) -> Optional[RiskAction]:
        """Activate or ratchet the trailing stop. Never loosens it."""
        if not self.policy.trailing_enabled:
            return None

        profit_pct = position.pnl_percent
        old_stop = position.stop_loss

        if not position.trailing_active and profit_pct >= self.policy.trailing_activation_pct:
            position.trailing_active = True
            if (position.is_long and position.entry_price > position.stop_loss) or \
                    (not position.is_long and position.entry_price < position.stop_loss):
                position.stop_loss = position.entry_price
            logger.info(f"Trailing activated for {position.symbol}, stop to breakeven {position.stop_loss:.2f}")

        if position.trailing_active:
            trail = self.trail_percent(profit_pct) / 100
            if position.is_long:
                candidate = position.current_price * (1 - trail)
                if candidate > position.stop_loss:
                    position.stop_loss = candidate
            else:
                candidate = position.current_price * (1 + trail)
                if candidate < position.stop_loss:
                    position.stop_loss = candidate

        if position.stop_loss != old_stop:
            logger.debug(
                f"Trailing stop {position.symbol}: {old_stop:.2f} -> {position.stop_loss:.2f} "
                f"({profit_pct:.1f}% profit)"
            )
            return RiskAction(RiskActionType.TRAIL, position.id, position.symbol, position.stop_loss)
        return None

    def handle_partial_booking(self, position: Position) -> List[RiskAction]:
        """Book 40% at the first level and half the remainder at the second."""
        if not self.policy.partial_booking_enabled:
            return []

        p = self.policy
        levels = (
            (0, p.first_booking_pct, p.first_booking_fraction),
            (1, p.second_booking_pct, p.second_booking_fraction),
        )
        actions = []
        for level, threshold, fraction in levels:
            if position.profit_booking_level != level or position.pnl_percent < threshold:
                continue
            quantity = math.floor(position.quantity * fraction)
            if quantity <= 0:
                continue

            price = position.current_price
            realized = position.reduce(quantity)
            position.profit_booking_level = level + 1
            actions.append(RiskAction(
                RiskActionType.BOOK, position.id, position.symbol, price,
                quantity=quantity, level=level + 1,
                reason=f"Partial profit booking at {threshold:.0f}%",
            ))
            logger.info(
                f"Booked {quantity} of {position.symbol} at {price:.2f} "
                f"(level {level + 1}, realized {realized:+.2f})"
            )
        return actions

    def time_exit_reason(self, position: Position, now: datetime = None) -> Optional[str]:
        now = self.session.localize(now)
        if 'Scalping' in position.strategy:
            held = now - self.session.localize(position.entry_time)
            if held > timedelta(minutes=self.policy.scalping_max_hold_minutes):
                return SCALPING_TIME_EXIT
        if 'Intraday' in position.strategy and self.session.at_or_after(self.policy.intraday_exit_time, now):
            return INTRADAY_CLOSE_EXIT
        return None

    @staticmethod
    def price_exit_reason(position: Position) -> Optional[str]:
        price = position.current_price
        if position.is_long:
            hit = price <= position.stop_loss or price >= position.target
        else:
            hit = price >= position.stop_loss or price <= position.target
        if hit:
            return TARGET_EXIT if position.pnl_percent > 0 else STOP_LOSS_EXIT
        return None

    def evaluate(self, position: Position, now: datetime = None) -> List[RiskAction]:
        """
        Run the policy against one position.

        Trailing and booking state on the position is updated in place. A
        CLOSE action, if present, is always the last element.
        """
        if position.pnl_percent <= -self.policy.max_loss_pct:
            logger.critical(
                f"Max loss hit for {position.symbol}: {position.pnl_percent:.2f}%, closing"
            )
            return [self._close(position, MAX_LOSS_EXIT)]

        actions = []
        trail = self.manage_trailing_stop(position)
        if trail is not None:
            actions.append(trail)
        actions.extend(self.handle_partial_booking(position))

        if position.quantity <= 0:
            actions.append(self._close(position, FULLY_BOOKED_EXIT))
            return actions

        reason = self.time_exit_reason(position, now) or self.price_exit_reason(position)
        if reason:
            actions.append(self._close(position, reason))
        return actions

    async def manage_positions(self, positions: Iterable[Position], close_fn: CloseFn,
                               book_fn: BookFn = None, now: datetime = None) -> List[RiskAction]:
        """Evaluate every position and dispatch bookings and closes."""
        performed = []
        for position in list(positions):
            for action in self.evaluate(position, now):
                performed.append(action)
                if action.type == RiskActionType.BOOK and book_fn is not None:
                    await book_fn(position, action)
                elif action.type == RiskActionType.CLOSE:
                    await close_fn(position, action.reason)
        return performed

    @staticmethod
    def _close(position: Position, reason: str) -> RiskAction:
        return RiskAction(
            RiskActionType.CLOSE, position.id, position.symbol, position.current_price,
            quantity=position.quantity, reason=reason,
        )
