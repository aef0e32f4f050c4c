"""
Execution Module
================
Order gateway contract and a paper implementation.

The gateway only acknowledges orders (pending/complete/rejected/cancelled);
fills and execution quality are the broker's business. Live broker adapters
implement OrderGateway outside this package.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, Iterable, List, Optional, Tuple
from zoneinfo import ZoneInfo
import logging
import uuid

from ..signals.base import TradingSignal, SignalAction, OrderType

logger = logging.getLogger(__name__)

IST = ZoneInfo("Asia/Kolkata")


class OrderStatus(Enum):
    """Order acknowledgement status."""
    PENDING = "pending"
    COMPLETE = "complete"
    REJECTED = "rejected"
    CANCELLED = "cancelled"


@dataclass
class OrderRequest:
    symbol: str
    action: SignalAction
    order_type: OrderType
    quantity: int
    price: Optional[float] = None
    stop_loss: Optional[float] = None
    target: Optional[float] = None
    product: str = "mis"
    validity: str = "day"
    tag: str = ""

    @classmethod
    def from_signal(cls, signal: TradingSignal, product: str = "mis",
                    validity: str = "day") -> 'OrderRequest':
        return cls(
            symbol=signal.symbol,
            action=signal.action,
            order_type=signal.order_type,
            quantity=signal.quantity,
            price=signal.price,
            stop_loss=signal.stop_loss,
            target=signal.target,
            product=product,
            validity=validity,
            tag=signal.strategy,
        )

    def to_dict(self) -> dict:
        return {
            'symbol': self.symbol,
            'action': self.action.value,
            'order_type': self.order_type.value,
            'quantity': self.quantity,
            'price': self.price,
            'stop_loss': self.stop_loss,
            'target': self.target,
            'product': self.product,
            'validity': self.validity,
            'tag': self.tag,
        }


@dataclass
class OrderResponse:
    order_id: str
    status: OrderStatus
    message: str = ""

    @property
    def accepted(self) -> bool:
        return self.status in (OrderStatus.PENDING, OrderStatus.COMPLETE)


@dataclass
class BrokerPosition:
    """Net holding reported by the broker; quantity is signed (short < 0)."""
    symbol: str
    quantity: int
    average_price: float = 0.0


@dataclass
class OrderRecord:
    request: OrderRequest
    response: OrderResponse
    created_at: datetime = field(default_factory=lambda: datetime.now(IST))


def validate_order(request: OrderRequest) -> Tuple[bool, str]:
    """Returns (is_valid, message)."""
    if request.action == SignalAction.HOLD:
        return False, "Cannot place a hold order"
    if request.quantity <= 0:
        return False, "Invalid quantity"
    if request.order_type in (OrderType.LIMIT, OrderType.STOP) and not request.price:
        return False, f"{request.order_type.value} order requires a price"
    if request.price is not None and request.price <= 0:
        return False, "Invalid price"
    return True, "Order valid"


class OrderGateway(ABC):
    """Abstract order-placement gateway."""

    @abstractmethod
    def connect(self) -> bool:
        """Establish connection to broker."""
        pass

    @abstractmethod
    def disconnect(self):
        """Disconnect from broker."""
        pass

    @abstractmethod
    async def place_order(self, request: OrderRequest) -> OrderResponse:
        pass

    @abstractmethod
    async def cancel_order(self, order_id: str) -> Tuple[bool, str]:
        """Cancel an order. Returns (success, message)."""
        pass

    @abstractmethod
    async def get_positions(self) -> List[BrokerPosition]:
        pass


class PaperOrderGateway(OrderGateway):
    """
    Paper gateway: validates, acknowledges as complete and keeps net
    positions so that confidence damping has something to look at.
    """

    def __init__(self, reject_symbols: Iterable[str] = None, ack_status: OrderStatus = OrderStatus.COMPLETE):
        self.connected = False
        self.ack_status = ack_status
        self.reject_symbols = set(reject_symbols or [])
        self.orders: Dict[str, OrderRecord] = {}
        self.positions: Dict[str, BrokerPosition] = {}

    def connect(self) -> bool:
        """Simulate connection."""
        self.connected = True
        logger.info("PaperOrderGateway connected")
        return True

    def disconnect(self):
        """Simulate disconnection."""
        self.connected = False
        logger.info("PaperOrderGateway disconnected")

    async def place_order(self, request: OrderRequest) -> OrderResponse:
        order_id = f"PAPER-{uuid.uuid4().hex[:10].upper()}"

        if not self.connected:
            response = OrderResponse(order_id, OrderStatus.REJECTED, "Not connected to broker")
        elif request.symbol in self.reject_symbols:
            response = OrderResponse(order_id, OrderStatus.REJECTED, f"{request.symbol} blocked by broker")
        else:
            valid, message = validate_order(request)
            if valid:
                response = OrderResponse(order_id, self.ack_status, "Order accepted")
            else:
                response = OrderResponse(order_id, OrderStatus.REJECTED, message)

        self.orders[order_id] = OrderRecord(request, response)

        if response.accepted:
            self._apply(request)
            logger.info(
                f"Order {order_id} {response.status.value}: {request.action.value} "
                f"{request.quantity} {request.symbol} @ {request.price or 'MKT'}"
            )
        else:
            logger.warning(f"Order {order_id} rejected: {response.message}")
        return response

    async def cancel_order(self, order_id: str) -> Tuple[bool, str]:
        record = self.orders.get(order_id)
        if record is None:
            return False, "Order not found"
        if record.response.status != OrderStatus.PENDING:
            return False, f"Order is {record.response.status.value}"
        record.response.status = OrderStatus.CANCELLED
        return True, "Order cancelled"

    async def get_positions(self) -> List[BrokerPosition]:
        return [p for p in self.positions.values() if p.quantity != 0]

    def _apply(self, request: OrderRequest):
        signed = request.quantity if request.action == SignalAction.BUY else -request.quantity
        price = request.price or 0.0
        current = self.positions.get(request.symbol)

        if current is None or current.quantity == 0:
            self.positions[request.symbol] = BrokerPosition(request.symbol, signed, price)
            return

        new_quantity = current.quantity + signed
        if current.quantity * signed > 0:
            # Adding to the position, blend the average
            total = abs(current.quantity) + abs(signed)
            current.average_price = (
                current.average_price * abs(current.quantity) + price * abs(signed)
            ) / total
        elif new_quantity * current.quantity < 0:
            current.average_price = price
        current.quantity = new_quantity
