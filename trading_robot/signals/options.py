"""
Index options strategies: premium selling in quiet sideways markets and a
long straddle when volatility is high and sentiment has no direction.

Legs are priced with the Black-Scholes calculator at the ATM strike, so the
resulting signals carry a premium, a stop and a target like any other.
"""

from datetime import datetime
from typing import Dict, List, Optional, Tuple
import logging

from ..config import StrategyConfig, OptionsConfig
from ..market.market_analyzer import MarketCondition, Trend, VolatilityLevel, Sentiment
from ..market.session import MarketSession
from ..features.feature_engine import TechnicalSnapshot
from ..options.greeks import GreeksInput, OptionType, calculate_greeks
from .base import SignalGenerator, TradingSignal, SignalAction, OrderType

logger = logging.getLogger(__name__)

IRON_CONDOR = "Options Iron Condor"
LONG_STRADDLE = "Options Long Straddle"


def atm_strike(spot: float, step: int) -> float:
    return round(spot / step) * step


class OptionsSignalGenerator(SignalGenerator):

    name = "Options"

    def __init__(self, config: StrategyConfig = None, options_config: OptionsConfig = None,
                 session: MarketSession = None, index_symbols: List[str] = None):
        self.config = config or StrategyConfig()
        self.options_config = options_config or OptionsConfig()
        self.session = session or MarketSession()
        self.index_symbols = index_symbols or ["NIFTY50", "BANKNIFTY"]

        # Contract symbol -> strike, for repricing open positions
        self.strikes: Dict[str, float] = {}

    def time_to_expiry(self, moment: datetime = None) -> float:
        days = max(self.session.days_to_expiry(moment), self.options_config.min_days_to_expiry)
        return days / 365

    def _volatility(self, technicals: Optional[TechnicalSnapshot]) -> float:
        # Realized volatility from intraday bars understates implied; use it as an upside only
        realized = technicals.volatility if technicals is not None else 0.0
        return max(realized, self.config.options_default_volatility)

    def price_legs(self, spot: float, strike: float, volatility: float,
                   moment: datetime = None) -> Tuple[float, float]:
        """(call premium, put premium) for one strike."""
        tte = self.time_to_expiry(moment)
        premiums = []
        for option_type in (OptionType.CALL, OptionType.PUT):
            greeks = calculate_greeks(GreeksInput(
                spot_price=spot,
                strike_price=strike,
                time_to_expiry=tte,
                risk_free_rate=self.options_config.risk_free_rate,
                volatility=volatility,
                option_type=option_type,
            ))
            premiums.append(greeks.price)
        return premiums[0], premiums[1]

    def mark(self, contract: str, spot: float, technicals: TechnicalSnapshot = None,
             moment: datetime = None) -> Optional[float]:
        """Current premium of a contract this generator opened."""
        strike = self.strikes.get(contract)
        if strike is None or not spot:
            return None
        call, put = self.price_legs(spot, strike, self._volatility(technicals), moment)
        if contract.endswith("_STRADDLE"):
            return round(call + put, 2)
        return call

    def generate(self, symbol: str, price: float, condition: MarketCondition,
                 technicals: TechnicalSnapshot, capital: float,
                 moment: datetime = None) -> Optional[TradingSignal]:
        if symbol not in self.index_symbols or not price:
            return None

        strike = atm_strike(price, self.options_config.strike_step)
        volatility = self._volatility(technicals)
        quantity = self.config.options_lot_quantity

        if condition.trend == Trend.SIDEWAYS and condition.volatility == VolatilityLevel.LOW:
            call, _ = self.price_legs(price, strike, volatility, moment)
            if call <= 0:
                return None
            contract = f"{symbol}_CE"
            self.strikes[contract] = strike
            return TradingSignal(
                symbol=contract,
                action=SignalAction.SELL,
                order_type=OrderType.LIMIT,
                quantity=quantity,
                price=call,
                stop_loss=round(call * (1 + self.config.short_premium_stop_pct), 2),
                target=round(call * (1 - self.config.short_premium_target_pct), 2),
                confidence=0.80,
                reason=f"Sideways low-volatility market, sell {strike:.0f} CE premium (iron condor)",
                strategy=IRON_CONDOR,
            )

        if condition.volatility == VolatilityLevel.HIGH and condition.sentiment == Sentiment.NEUTRAL:
            call, put = self.price_legs(price, strike, volatility, moment)
            debit = round(call + put, 2)
            if debit <= 0:
                return None
            contract = f"{symbol}_STRADDLE"
            self.strikes[contract] = strike
            return TradingSignal(
                symbol=contract,
                action=SignalAction.BUY,
                order_type=OrderType.MARKET,
                quantity=quantity,
                price=debit,
                stop_loss=round(debit * (1 - self.config.long_premium_stop_pct), 2),
                target=round(debit * (1 + self.config.long_premium_target_pct), 2),
                confidence=0.85,
                reason=f"High volatility with neutral sentiment, long {strike:.0f} straddle",
                strategy=LONG_STRADDLE,
            )

        return None
