"""
Signal Quality Module
=====================
Scores candidate signals on four capped components and accepts them only
above a strategy-specific threshold.

    technical  0-40   RSI extremes, MACD, Bollinger position, MA alignment
    volume     0-25   volume ratio and price/volume agreement
    sentiment  0-20   alignment of the sentiment score with the direction
    volatility 0-15   a moderate 15-35% annualized band scores best

Confidence is total/100 capped at 0.95.
"""

from dataclasses import dataclass
from typing import Iterable, Optional, Tuple
import logging

from ..config import ScoringConfig
from ..features.feature_engine import TechnicalSnapshot
from ..market.market_analyzer import MarketCondition
from ..market.session import TimeOfDay
from .base import TradingSignal, SignalAction

logger = logging.getLogger(__name__)

TECHNICAL_CAP = 40
VOLUME_CAP = 25
SENTIMENT_CAP = 20
VOLATILITY_CAP = 15


@dataclass
class SignalScore:
    technical: float = 0.0
    volume: float = 0.0
    sentiment: float = 0.0
    volatility: float = 0.0
    threshold: float = 0.0
    accepted: bool = False

    @property
    def total(self) -> float:
        return self.technical + self.volume + self.sentiment + self.volatility

    def to_dict(self) -> dict:
        return {
            'technical': self.technical,
            'volume': self.volume,
            'sentiment': self.sentiment,
            'volatility': self.volatility,
            'total': self.total,
            'threshold': self.threshold,
            'accepted': self.accepted,
        }


class SignalScorer:
    """Confidence scoring and acceptance for candidate signals."""

    def __init__(self, config: ScoringConfig = None):
        self.config = config or ScoringConfig()
        self.accepted_count = 0
        self.rejected_count = 0

    # Component scores

    @staticmethod
    def technical_score(action: SignalAction, technicals: TechnicalSnapshot, price: float) -> float:
        score = 0.0
        buy = action == SignalAction.BUY
        rsi = technicals.rsi

        if buy and rsi < 30:
            score += 15
        elif buy and rsi < 40:
            score += 10
        elif not buy and rsi > 70:
            score += 15
        elif not buy and rsi > 60:
            score += 10

        macd = technicals.macd
        if (buy and macd.value > macd.signal) or (not buy and macd.value < macd.signal):
            score += 10
        if (buy and macd.histogram > 0) or (not buy and macd.histogram < 0):
            score += 5

        # Entering from the favourable half of the band
        middle = technicals.bollinger_bands.middle
        if price and middle:
            if (buy and price <= middle) or (not buy and price >= middle):
                score += 5

        fast = technicals.moving_averages.get('ema_9')
        slow = technicals.moving_averages.get('ema_20')
        if fast is not None and slow is not None:
            if (buy and fast > slow) or (not buy and fast < slow):
                score += 5

        return min(score, TECHNICAL_CAP)

    @staticmethod
    def volume_score(action: SignalAction, technicals: TechnicalSnapshot) -> float:
        ratio = technicals.volume_ratio
        score = 0.0
        if ratio > 2.0:
            score += 20
        elif ratio > 1.5:
            score += 15
        elif ratio > 1.2:
            score += 10

        change = technicals.price_change_pct
        if ratio > 1.0 and ((action == SignalAction.BUY and change > 0) or
                            (action == SignalAction.SELL and change < 0)):
            score += 5

        return min(score, VOLUME_CAP)

    @staticmethod
    def sentiment_score(action: SignalAction, sentiment: float) -> float:
        buy = action == SignalAction.BUY
        if (buy and sentiment > 0.65) or (not buy and sentiment < 0.35):
            return SENTIMENT_CAP
        if (buy and sentiment > 0.55) or (not buy and sentiment < 0.45):
            return 12.0
        if 0.45 <= sentiment <= 0.55:
            return 8.0
        return 0.0

    @staticmethod
    def volatility_score(volatility: float) -> float:
        if 0.15 <= volatility <= 0.35:
            return VOLATILITY_CAP
        if 0.10 <= volatility <= 0.45:
            return 8.0
        return 0.0

    # Acceptance

    def threshold_for(self, strategy: str, time_of_day: TimeOfDay) -> float:
        threshold = self.config.strategy_thresholds.get(strategy, self.config.default_threshold)
        if time_of_day == TimeOfDay.OPENING:
            threshold += self.config.opening_adjustment
        elif time_of_day == TimeOfDay.CLOSING:
            threshold += self.config.closing_adjustment
        return threshold

    def score(self, signal: TradingSignal, technicals: TechnicalSnapshot,
              sentiment: float, price: float = None) -> SignalScore:
        if signal.action == SignalAction.HOLD:
            return SignalScore()

        technicals = technicals or TechnicalSnapshot.neutral()
        # Band position is judged on the underlying when the caller supplies its price
        price = price or signal.price
        return SignalScore(
            technical=self.technical_score(signal.action, technicals, price),
            volume=self.volume_score(signal.action, technicals),
            sentiment=self.sentiment_score(signal.action, sentiment),
            volatility=self.volatility_score(technicals.volatility),
        )

    def confidence(self, total: float) -> float:
        return min(max(total, 0.0) / 100, self.config.max_confidence)

    def evaluate(self, signal: TradingSignal, technicals: TechnicalSnapshot,
                 condition: MarketCondition, price: float = None
                 ) -> Tuple[Optional[TradingSignal], SignalScore]:
        """
        Score a signal and decide whether to accept it.

        Returns:
            (scored signal or None when rejected, score breakdown)
        """
        result = self.score(signal, technicals, condition.sentiment_score, price)

        if condition.time_of_day == TimeOfDay.PRE_OPEN:
            self.rejected_count += 1
            logger.info(f"Signal rejected: {signal.strategy} {signal.symbol} (pre-open)")
            return None, result

        result.threshold = self.threshold_for(signal.strategy, condition.time_of_day)
        result.accepted = result.total > result.threshold

        if not result.accepted:
            self.rejected_count += 1
            logger.info(
                f"Signal rejected: {signal.strategy} {signal.symbol} "
                f"(score {result.total:.0f}/{result.threshold:.0f})"
            )
            return None, result

        self.accepted_count += 1
        scored = signal.with_updates(
            confidence=self.confidence(result.total),
            signal_score=result.total,
        )
        logger.info(
            f"Signal accepted: {signal.strategy} {signal.action.value} {signal.symbol} "
            f"(score {result.total:.0f}, confidence {scored.confidence:.0%})"
        )
        return scored, result

    def apply_position_damping(self, signal: TradingSignal,
                               broker_positions: Iterable) -> Optional[TradingSignal]:
        """
        Reduce confidence when the broker already holds the symbol.

        An oversized holding multiplies confidence by 0.8 and an opposing
        one by 0.6. Signals that end up below the minimum confidence are
        dropped.
        """
        existing = next((p for p in broker_positions if p.symbol == signal.symbol), None)
        if existing is None:
            return signal

        confidence = signal.confidence
        if abs(existing.quantity) > self.config.oversized_position_quantity:
            confidence *= self.config.oversized_damping

        opposing = ((existing.quantity > 0 and signal.action == SignalAction.SELL) or
                    (existing.quantity < 0 and signal.action == SignalAction.BUY))
        if opposing:
            confidence *= self.config.opposing_damping

        if confidence < self.config.min_confidence:
            logger.info(
                f"Signal dropped: {signal.symbol} confidence {confidence:.2f} after "
                f"broker position damping"
            )
            return None

        return signal.with_updates(confidence=confidence)
