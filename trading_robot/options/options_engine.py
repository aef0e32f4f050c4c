"""
Options Risk Module
===================
Greeks across a strike ladder, per-contract risk classification, portfolio
aggregation and hedging guidance.

The chain is rebuilt from scratch every cycle from a fresh spot price and
fresh implied-volatility samples; nothing is updated incrementally. The
engine runs on its own timer and never touches positions. It only publishes
its chain, its portfolio risk and its candidate signals for the robot.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, List, Mapping, Optional, Tuple
import logging

from ..config import OptionsConfig, StrategyConfig
from ..market.session import MarketSession
from ..signals.base import TradingSignal, SignalAction, OrderType
from ..data.data_manager import OptionQuote
from .greeks import Greeks, GreeksInput, OptionType, calculate_greeks, portfolio_greeks

logger = logging.getLogger(__name__)


class RiskLevel(Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    EXTREME = "extreme"


class Recommendation(Enum):
    STRONG_BUY = "strong_buy"
    BUY = "buy"
    HOLD = "hold"
    SELL = "sell"
    STRONG_SELL = "strong_sell"


RISK_ORDER = {RiskLevel.EXTREME: 4, RiskLevel.HIGH: 3, RiskLevel.MEDIUM: 2, RiskLevel.LOW: 1}
RECOMMENDATION_ORDER = {
    Recommendation.STRONG_BUY: 5,
    Recommendation.BUY: 4,
    Recommendation.HOLD: 3,
    Recommendation.SELL: 2,
    Recommendation.STRONG_SELL: 1,
}

IV_MEAN_REVERSION = "Options IV Mean Reversion"
IV_EXPANSION = "Options IV Expansion"
GAMMA_SCALPING = "Options Gamma Scalping"


@dataclass
class OptionsGreeksData:
    symbol: str
    strike_price: float
    option_type: OptionType
    greeks: Greeks
    implied_volatility: float
    volume: int
    open_interest: int
    last_price: float
    spot_price: float
    time_to_expiry: float  # years
    risk_level: RiskLevel
    trading_recommendation: Recommendation

    def to_dict(self) -> dict:
        return {
            'symbol': self.symbol,
            'strike_price': self.strike_price,
            'option_type': self.option_type.value,
            'greeks': self.greeks.to_dict(),
            'implied_volatility': round(self.implied_volatility, 4),
            'volume': self.volume,
            'open_interest': self.open_interest,
            'last_price': self.last_price,
            'spot_price': round(self.spot_price, 2),
            'time_to_expiry': round(self.time_to_expiry, 4),
            'risk_level': self.risk_level.value,
            'trading_recommendation': self.trading_recommendation.value,
        }


@dataclass
class PortfolioGreeksRisk:
    total_delta: float
    total_gamma: float
    total_theta: float
    total_vega: float
    total_rho: float
    portfolio_value: float
    risk_score: float
    gamma_exposure: RiskLevel
    max_drawdown_risk: float
    hedging_recommendations: List[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            'total_delta': self.total_delta,
            'total_gamma': self.total_gamma,
            'total_theta': self.total_theta,
            'total_vega': self.total_vega,
            'total_rho': self.total_rho,
            'portfolio_value': self.portfolio_value,
            'risk_score': self.risk_score,
            'gamma_exposure': self.gamma_exposure.value,
            'max_drawdown_risk': round(self.max_drawdown_risk, 2),
            'hedging_recommendations': list(self.hedging_recommendations),
        }


def classify_risk_level(greeks: Greeks, iv: float) -> RiskLevel:
    """Weighted count of gamma, theta, vega and IV extremity flags."""
    points = 0

    if abs(greeks.gamma) > 0.05:
        points += 2
    elif abs(greeks.gamma) > 0.02:
        points += 1

    if greeks.theta < -15:
        points += 2
    elif greeks.theta < -8:
        points += 1

    if abs(greeks.vega) > 25:
        points += 2
    elif abs(greeks.vega) > 15:
        points += 1

    if iv > 0.4 or iv < 0.1:
        points += 2
    elif iv > 0.3 or iv < 0.15:
        points += 1

    if points >= 6:
        return RiskLevel.EXTREME
    if points >= 4:
        return RiskLevel.HIGH
    if points >= 2:
        return RiskLevel.MEDIUM
    return RiskLevel.LOW


def trading_recommendation(option_type: OptionType, greeks: Greeks, iv: float,
                           spot: float, strike: float) -> Recommendation:
    """Moneyness x implied volatility rules; ITM and cheap favours buying."""
    moneyness = spot / strike

    if option_type == OptionType.CALL:
        if moneyness > 1.02 and iv < 0.2 and greeks.theta > -5:
            return Recommendation.STRONG_BUY
        if moneyness > 1.01 and iv < 0.25:
            return Recommendation.BUY
        if moneyness < 0.95 and iv > 0.3:
            return Recommendation.STRONG_SELL
        if moneyness < 0.98 and iv > 0.35:
            return Recommendation.SELL
    else:
        if moneyness < 0.98 and iv < 0.2 and greeks.theta > -5:
            return Recommendation.STRONG_BUY
        if moneyness < 0.99 and iv < 0.25:
            return Recommendation.BUY
        if moneyness > 1.05 and iv > 0.3:
            return Recommendation.STRONG_SELL
        if moneyness > 1.02 and iv > 0.35:
            return Recommendation.SELL

    return Recommendation.HOLD


def portfolio_risk_score(delta: float, gamma: float, theta: float, vega: float) -> float:
    score = 50

    if abs(delta) > 100:
        score += 20
    elif abs(delta) > 50:
        score += 10

    if abs(gamma) > 5:
        score += 25
    elif abs(gamma) > 2:
        score += 15

    if theta < -100:
        score += 15
    elif theta < -50:
        score += 8

    if abs(vega) > 200:
        score += 20
    elif abs(vega) > 100:
        score += 10

    return min(100, max(0, score))


def hedging_recommendations(delta: float, gamma: float, vega: float) -> List[str]:
    recommendations = []
    if abs(delta) > 50:
        recommendations.append(f"High delta exposure ({delta:.2f}). Consider delta hedging with underlying.")
    if abs(gamma) > 3:
        recommendations.append(f"High gamma risk ({gamma:.4f}). Consider reducing gamma exposure.")
    if abs(vega) > 150:
        recommendations.append(f"High vega exposure ({vega:.2f}). Consider volatility hedging.")
    if not recommendations:
        recommendations.append("Portfolio Greeks are within acceptable risk limits.")
    return recommendations


def gamma_exposure(gamma: float) -> RiskLevel:
    level = abs(gamma)
    if level > 10:
        return RiskLevel.EXTREME
    if level > 5:
        return RiskLevel.HIGH
    if level > 2:
        return RiskLevel.MEDIUM
    return RiskLevel.LOW


def max_drawdown_risk(delta: float, gamma: float, spot: float, move_pct: float = 0.05) -> float:
    """Loss estimate for an adverse underlying move: |delta term| + |gamma term|."""
    move = spot * move_pct
    return abs(delta * move) + abs(0.5 * gamma * move ** 2)


class OptionsRiskEngine:
    """
    Options chain analytics for one underlying.

    Usage:
        engine = OptionsRiskEngine(config)
        signals = await engine.refresh(data_manager)
        risk = engine.get_portfolio_risk()
    """

    def __init__(self, config: OptionsConfig = None, strategy_config: StrategyConfig = None,
                 session: MarketSession = None):
        self.config = config or OptionsConfig()
        self.strategy_config = strategy_config or StrategyConfig()
        self.session = session or MarketSession()

        self.chain: Dict[str, OptionsGreeksData] = {}
        self.portfolio_risk: Optional[PortfolioGreeksRisk] = None
        self.signals: List[TradingSignal] = []
        self.last_update: Optional[datetime] = None

    def contract_symbol(self, strike: float, option_type: OptionType) -> str:
        return f"{self.config.underlying}_{int(strike)}_{option_type.value}"

    def strike_ladder(self, spot: float) -> List[float]:
        step = self.config.strike_step
        atm = round(spot / step) * step
        width = self.config.ladder_width
        return [atm + i * step for i in range(-width, width + 1)]

    def time_to_expiry(self, moment: datetime = None) -> float:
        days = max(self.session.days_to_expiry(moment), self.config.min_days_to_expiry)
        return days / 365

    def build_contract(self, spot: float, strike: float, option_type: OptionType,
                       quote: OptionQuote, time_to_expiry: float) -> OptionsGreeksData:
        greeks = calculate_greeks(GreeksInput(
            spot_price=spot,
            strike_price=strike,
            time_to_expiry=time_to_expiry,
            risk_free_rate=self.config.risk_free_rate,
            volatility=quote.implied_volatility,
            option_type=option_type,
        ))
        iv = quote.implied_volatility
        return OptionsGreeksData(
            symbol=self.contract_symbol(strike, option_type),
            strike_price=strike,
            option_type=option_type,
            greeks=greeks,
            implied_volatility=iv,
            volume=quote.volume,
            open_interest=quote.open_interest,
            last_price=greeks.price,
            spot_price=spot,
            time_to_expiry=time_to_expiry,
            risk_level=classify_risk_level(greeks, iv),
            trading_recommendation=trading_recommendation(option_type, greeks, iv, spot, strike),
        )

    def rebuild_chain(self, spot: float, quotes: Mapping[Tuple[float, OptionType], OptionQuote],
                      time_to_expiry: float) -> Dict[str, OptionsGreeksData]:
        """Replace the chain with contracts priced from `quotes`."""
        chain = {}
        for (strike, option_type), quote in quotes.items():
            if quote.implied_volatility <= 0:
                logger.warning(f"Skipping {strike} {option_type.value}: non-positive IV")
                continue
            contract = self.build_contract(spot, strike, option_type, quote, time_to_expiry)
            chain[contract.symbol] = contract
        self.chain = chain
        return chain

    async def refresh(self, data_manager, moment: datetime = None) -> List[TradingSignal]:
        """One engine cycle: chain, portfolio risk, published signals."""
        spot = data_manager.get_last_price(self.config.underlying)
        if not spot:
            logger.warning(f"No spot price for {self.config.underlying}, options cycle skipped")
            return self.signals

        quotes = {}
        for strike in self.strike_ladder(spot):
            for option_type in (OptionType.CALL, OptionType.PUT):
                quotes[(strike, option_type)] = await data_manager.get_option_quote(
                    self.config.underlying, strike, option_type.value,
                    default_volatility=self.strategy_config.options_default_volatility,
                )

        self.rebuild_chain(spot, quotes, self.time_to_expiry(moment))
        self.calculate_portfolio_risk()
        self.signals = self.generate_signals()
        self.last_update = self.session.localize(moment)
        return self.signals

    def calculate_portfolio_risk(self, holdings: Mapping[str, int] = None) -> Optional[PortfolioGreeksRisk]:
        if not self.chain:
            self.portfolio_risk = None
            return None

        holdings = self.config.holdings if holdings is None else holdings
        pairs = []
        value = 0.0
        for symbol, quantity in holdings.items():
            contract = self.chain.get(symbol)
            if contract is None:
                logger.debug(f"Held contract {symbol} not in current chain")
                continue
            pairs.append((quantity, contract.greeks))
            value += quantity * contract.greeks.price

        totals = portfolio_greeks(pairs)
        spot = next(iter(self.chain.values())).spot_price

        self.portfolio_risk = PortfolioGreeksRisk(
            total_delta=totals.delta,
            total_gamma=totals.gamma,
            total_theta=totals.theta,
            total_vega=totals.vega,
            total_rho=totals.rho,
            portfolio_value=round(value, 2),
            risk_score=portfolio_risk_score(totals.delta, totals.gamma, totals.theta, totals.vega),
            gamma_exposure=gamma_exposure(totals.gamma),
            max_drawdown_risk=max_drawdown_risk(totals.delta, totals.gamma, spot, self.config.stress_move_pct),
            hedging_recommendations=hedging_recommendations(totals.delta, totals.gamma, totals.vega),
        )
        return self.portfolio_risk

    def generate_signals(self) -> List[TradingSignal]:
        """Greeks-driven candidates: IV mean reversion, IV expansion, gamma scalping."""
        c = self.config
        s = self.strategy_config
        signals = []

        for option in self.chain.values():
            price = option.last_price
            if price <= 0:
                continue
            iv = option.implied_volatility
            greeks = option.greeks

            if iv > c.iv_high and option.volume > c.iv_signal_min_volume:
                signals.append(TradingSignal(
                    symbol=option.symbol,
                    action=SignalAction.SELL,
                    order_type=OrderType.LIMIT,
                    quantity=s.options_lot_quantity,
                    price=price,
                    stop_loss=round(price * (1 + s.short_premium_stop_pct), 2),
                    target=round(price * (1 - s.short_premium_target_pct), 2),
                    confidence=0.8,
                    reason=f"High IV ({iv * 100:.1f}%) sell opportunity - mean reversion play",
                    strategy=IV_MEAN_REVERSION,
                ))

            if iv < c.iv_low and option.volume > c.iv_expansion_min_volume and abs(greeks.delta) > 0.3:
                signals.append(self._long_premium_signal(
                    option, OrderType.LIMIT, 0.75,
                    f"Low IV ({iv * 100:.1f}%) expansion opportunity", IV_EXPANSION,
                ))

            if (abs(greeks.gamma) > c.gamma_scalp_threshold
                    and option.time_to_expiry < c.gamma_scalp_max_expiry
                    and abs(greeks.delta) > 0.4):
                signals.append(self._long_premium_signal(
                    option, OrderType.MARKET, 0.85,
                    f"High gamma ({greeks.gamma:.4f}) scalping opportunity", GAMMA_SCALPING,
                ))

        if signals:
            logger.info(f"Options engine generated {len(signals)} signals")
        return signals

    def _long_premium_signal(self, option: OptionsGreeksData, order_type: OrderType,
                             confidence: float, reason: str, strategy: str) -> TradingSignal:
        s = self.strategy_config
        price = option.last_price
        return TradingSignal(
            symbol=option.symbol,
            action=SignalAction.BUY,
            order_type=order_type,
            quantity=s.options_lot_quantity,
            price=price,
            stop_loss=round(price * (1 - s.long_premium_stop_pct), 2),
            target=round(price * (1 + s.long_premium_target_pct), 2),
            confidence=confidence,
            reason=reason,
            strategy=strategy,
        )

    # Queries

    def get_options_data(self) -> List[OptionsGreeksData]:
        return list(self.chain.values())

    def get_portfolio_risk(self) -> Optional[PortfolioGreeksRisk]:
        return self.portfolio_risk

    def get_contract_price(self, symbol: str) -> Optional[float]:
        contract = self.chain.get(symbol)
        return contract.last_price if contract else None

    def get_high_risk_options(self) -> List[OptionsGreeksData]:
        risky = [o for o in self.chain.values() if o.risk_level in (RiskLevel.HIGH, RiskLevel.EXTREME)]
        return sorted(risky, key=lambda o: RISK_ORDER[o.risk_level], reverse=True)

    def get_trading_opportunities(self) -> List[OptionsGreeksData]:
        wanted = (Recommendation.STRONG_BUY, Recommendation.BUY, Recommendation.STRONG_SELL)
        options = [o for o in self.chain.values() if o.trading_recommendation in wanted]
        return sorted(options, key=lambda o: RECOMMENDATION_ORDER[o.trading_recommendation], reverse=True)

    def get_greeks_analysis(self, symbol: str) -> Optional[dict]:
        option = self.chain.get(symbol)
        if option is None:
            return None
        return {
            'risk_assessment': self._risk_assessment(option),
            'strategic_insights': self._strategic_insights(option),
            'hedging_options': self._hedging_options(option),
        }

    @staticmethod
    def _risk_assessment(option: OptionsGreeksData) -> str:
        greeks = option.greeks
        parts = [f"Risk Level: {option.risk_level.value.upper()}."]
        if abs(greeks.gamma) > 0.03:
            parts.append("High gamma indicates significant acceleration risk.")
        if greeks.theta < -10:
            parts.append("High time decay - position losing significant value daily.")
        if option.implied_volatility > 0.3:
            parts.append("High IV suggests elevated volatility risk.")
        return " ".join(parts)

    @staticmethod
    def _strategic_insights(option: OptionsGreeksData) -> List[str]:
        greeks = option.greeks
        iv = option.implied_volatility
        insights = []
        if option.time_to_expiry < 0.027 and abs(greeks.gamma) > 0.02:
            insights.append("Near expiry with high gamma - ideal for scalping strategies")
        if iv > 0.35 and greeks.vega > 15:
            insights.append("High IV with significant vega - consider volatility selling strategies")
        if abs(greeks.delta) > 0.7 and iv < 0.2:
            insights.append("Deep ITM with low IV - consider directional strategies")
        return insights

    @staticmethod
    def _hedging_options(option: OptionsGreeksData) -> List[str]:
        greeks = option.greeks
        hedging = []
        if abs(greeks.delta) > 0.5:
            hedging.append(f"Delta hedge: {abs(greeks.delta * 100):.0f} shares of underlying")
        if abs(greeks.gamma) > 0.03:
            hedging.append("Consider gamma hedging with opposing gamma positions")
        if abs(greeks.vega) > 20:
            hedging.append("Vega hedge: Use options with opposite vega exposure")
        return hedging

    def summary(self) -> dict:
        risk = self.portfolio_risk
        return {
            'underlying': self.config.underlying,
            'contracts': len(self.chain),
            'high_risk_contracts': len(self.get_high_risk_options()),
            'opportunities': len(self.get_trading_opportunities()),
            'published_signals': len(self.signals),
            'portfolio_risk': risk.to_dict() if risk else None,
        }
