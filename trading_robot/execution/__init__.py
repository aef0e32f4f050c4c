"""
Execution Module
================
"""
from .execution_engine import (
    OrderGateway,
    PaperOrderGateway,
    OrderRequest,
    OrderResponse,
    OrderStatus,
    BrokerPosition,
    validate_order
)

__all__ = [
    'OrderGateway',
    'PaperOrderGateway',
    'OrderRequest',
    'OrderResponse',
    'OrderStatus',
    'BrokerPosition',
    'validate_order'
]
