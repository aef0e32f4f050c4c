"""
Tests for the paper order gateway.
"""

import pytest

from trading_robot.execution import (
    PaperOrderGateway, OrderRequest, OrderStatus, validate_order
)
from trading_robot.signals import SignalAction, OrderType


def _request(**changes):
    fields = dict(
        symbol="RELIANCE",
        action=SignalAction.BUY,
        order_type=OrderType.LIMIT,
        quantity=10,
        price=2450.0,
        stop_loss=2400.0,
        target=2550.0,
    )
    fields.update(changes)
    return OrderRequest(**fields)


class TestValidateOrder:

    def test_valid(self):
        assert validate_order(_request()) == (True, "Order valid")

    @pytest.mark.parametrize("changes", [
        {'quantity': 0},
        {'action': SignalAction.HOLD},
        {'price': None},
        {'price': -1.0},
    ])
    def test_invalid(self, changes):
        valid, _ = validate_order(_request(**changes))
        assert not valid

    def test_market_order_without_price(self):
        assert validate_order(_request(order_type=OrderType.MARKET, price=None))[0]


class TestOrderRequest:

    def test_from_signal(self, buy_signal):
        request = OrderRequest.from_signal(buy_signal, product="mis", validity="day")

        assert request.symbol == "RELIANCE"
        assert request.quantity == 10
        assert request.price == 100.0
        assert request.tag == "Intraday Confluence"
        assert request.to_dict()['action'] == "buy"


class TestPaperOrderGateway:

    @pytest.mark.asyncio
    async def test_accepts_valid_order(self, paper_gateway):
        response = await paper_gateway.place_order(_request())

        assert response.status == OrderStatus.COMPLETE
        assert response.accepted
        assert response.order_id.startswith("PAPER-")

    @pytest.mark.asyncio
    async def test_rejects_when_disconnected(self):
        gateway = PaperOrderGateway()
        response = await gateway.place_order(_request())
        assert response.status == OrderStatus.REJECTED
        assert not response.accepted

    @pytest.mark.asyncio
    async def test_rejects_blocked_symbol(self):
        gateway = PaperOrderGateway(reject_symbols=["RELIANCE"])
        gateway.connect()
        response = await gateway.place_order(_request())
        assert response.status == OrderStatus.REJECTED
        assert "blocked" in response.message

    @pytest.mark.asyncio
    async def test_rejects_invalid_order(self, paper_gateway):
        response = await paper_gateway.place_order(_request(quantity=0))
        assert response.status == OrderStatus.REJECTED
        assert await paper_gateway.get_positions() == []

    @pytest.mark.asyncio
    async def test_net_positions(self, paper_gateway):
        await paper_gateway.place_order(_request(quantity=10, price=100.0))
        await paper_gateway.place_order(_request(quantity=10, price=110.0))
        positions = await paper_gateway.get_positions()
        assert positions[0].quantity == 20
        assert positions[0].average_price == pytest.approx(105.0)

        await paper_gateway.place_order(_request(action=SignalAction.SELL, quantity=20, price=120.0))
        assert await paper_gateway.get_positions() == []

    @pytest.mark.asyncio
    async def test_short_position_is_negative(self, paper_gateway):
        await paper_gateway.place_order(_request(action=SignalAction.SELL, quantity=5))
        positions = await paper_gateway.get_positions()
        assert positions[0].quantity == -5

    @pytest.mark.asyncio
    async def test_cancel(self):
        gateway = PaperOrderGateway(ack_status=OrderStatus.PENDING)
        gateway.connect()
        response = await gateway.place_order(_request())
        assert response.accepted

        assert await gateway.cancel_order(response.order_id) == (True, "Order cancelled")
        success, _ = await gateway.cancel_order(response.order_id)
        assert not success
        assert await gateway.cancel_order("missing") == (False, "Order not found")
