"""
Intraday confluence strategy: trend, price versus the 20 EMA and RSI must
all agree before a directional signal is emitted.
"""

from typing import Optional
import math
import logging

from ..config import StrategyConfig
from ..market.market_analyzer import MarketCondition, Trend
from ..features.feature_engine import TechnicalSnapshot
from .base import SignalGenerator, TradingSignal, SignalAction, OrderType

logger = logging.getLogger(__name__)

STRATEGY_NAME = "Intraday Confluence"


def position_size(price: float, stop_loss: float, capital: float, risk_pct: float) -> int:
    """Quantity whose stop-out loses `risk_pct` percent of capital."""
    risk_per_share = abs(price - stop_loss)
    if risk_per_share == 0:
        return 0
    return max(0, math.floor(capital * (risk_pct / 100) / risk_per_share))


class IntradaySignalGenerator(SignalGenerator):

    name = STRATEGY_NAME

    def __init__(self, config: StrategyConfig = None):
        self.config = config or StrategyConfig()

    @property
    def reward_risk_ratio(self) -> float:
        return max(self.config.reward_risk_ratio, self.config.min_reward_risk_ratio)

    def stop_and_target(self, price: float, atr: float, action: SignalAction):
        distance = atr * self.config.atr_stop_multiplier
        reward = distance * self.reward_risk_ratio
        if action == SignalAction.BUY:
            return price - distance, price + reward
        return price + distance, price - reward

    def generate(self, symbol: str, price: float, condition: MarketCondition,
                 technicals: TechnicalSnapshot, capital: float,
                 risk_pct: float = None) -> Optional[TradingSignal]:
        if not price or technicals is None:
            logger.warning(f"Incomplete market data for {symbol}, skipping intraday strategy")
            return None

        ema = technicals.ema_20
        rsi = technicals.rsi

        if condition.trend == Trend.BULLISH and price > ema and rsi < self.config.rsi_overbought:
            action, confidence = SignalAction.BUY, 0.80
            reason = f"Bullish trend, price above 20 EMA, RSI {rsi:.1f} < {self.config.rsi_overbought:.0f}"
        elif condition.trend == Trend.BEARISH and price < ema and rsi > self.config.rsi_oversold:
            action, confidence = SignalAction.SELL, 0.78
            reason = f"Bearish trend, price below 20 EMA, RSI {rsi:.1f} > {self.config.rsi_oversold:.0f}"
        else:
            return None

        stop_loss, target = self.stop_and_target(price, technicals.atr, action)
        quantity = position_size(price, stop_loss, capital,
                                 risk_pct if risk_pct is not None else self.config.risk_per_trade)
        if quantity <= 0:
            logger.debug(f"{symbol}: computed size is zero, no intraday signal")
            return None

        return TradingSignal(
            symbol=symbol,
            action=action,
            order_type=OrderType.LIMIT,
            quantity=quantity,
            price=round(price, 2),
            stop_loss=round(stop_loss, 2),
            target=round(target, 2),
            confidence=confidence,
            reason=reason,
            strategy=STRATEGY_NAME,
        )
