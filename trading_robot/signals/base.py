"""
Trading signal types shared by the generators, the scorer and the robot.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, replace
from enum import Enum
from typing import Optional, Tuple


class SignalAction(Enum):
    BUY = "buy"
    SELL = "sell"
    HOLD = "hold"


class OrderType(Enum):
    MARKET = "market"
    LIMIT = "limit"
    STOP = "stop"


@dataclass(frozen=True)
class TradingSignal:
    """
    A trade proposal.

    Signals have no lifecycle of their own: within the tick that produced
    them they either become a Position or are discarded.
    """
    symbol: str
    action: SignalAction
    order_type: OrderType
    quantity: int
    stop_loss: float
    target: float
    confidence: float
    reason: str
    strategy: str
    price: Optional[float] = None
    risk_level: Optional[str] = None
    signal_score: Optional[float] = None

    def with_updates(self, **changes) -> 'TradingSignal':
        return replace(self, **changes)

    def to_dict(self) -> dict:
        return {
            'symbol': self.symbol,
            'action': self.action.value,
            'order_type': self.order_type.value,
            'quantity': self.quantity,
            'price': self.price,
            'stop_loss': self.stop_loss,
            'target': self.target,
            'confidence': round(self.confidence, 3),
            'reason': self.reason,
            'strategy': self.strategy,
            'risk_level': self.risk_level,
            'signal_score': self.signal_score,
        }


def validate_signal(signal: TradingSignal, reference_price: float = None) -> Tuple[bool, str]:
    """
    Check that a signal is internally consistent.

    Args:
        signal: Candidate signal
        reference_price: Live price used when the signal carries none

    Returns:
        (is_valid, message)
    """
    if signal.action == SignalAction.HOLD:
        return False, "Hold signals are not executable"

    if signal.quantity <= 0:
        return False, f"Non-positive quantity {signal.quantity}"

    if not 0.0 <= signal.confidence <= 1.0:
        return False, f"Confidence {signal.confidence} outside [0, 1]"

    if signal.order_type in (OrderType.LIMIT, OrderType.STOP) and not signal.price:
        return False, f"{signal.order_type.value} order without a price"

    price = signal.price or reference_price
    if price is None or price <= 0:
        return False, "No reference price"

    if signal.action == SignalAction.BUY:
        if not signal.stop_loss < price:
            return False, f"Buy stop {signal.stop_loss} not below price {price}"
        if not signal.target > price:
            return False, f"Buy target {signal.target} not above price {price}"
    else:
        if not signal.stop_loss > price:
            return False, f"Sell stop {signal.stop_loss} not above price {price}"
        if not signal.target < price:
            return False, f"Sell target {signal.target} not below price {price}"

    return True, "Signal valid"


class SignalGenerator(ABC):
    """Maps (symbol, price, condition, technicals) to zero or one signal."""

    name: str = "base"

    @abstractmethod
    def generate(self, symbol: str, price: float, condition, technicals,
                 capital: float) -> Optional[TradingSignal]:
        pass
