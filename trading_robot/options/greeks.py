"""
Options Greeks Module
=====================
Black-Scholes pricing and sensitivities for European index options.

The normal CDF is built from the Abramowitz-Stegun erf approximation so the
numbers are identical on every platform and need no scipy.
"""

from dataclasses import dataclass, asdict
from enum import Enum
from typing import Iterable, Tuple
import math


class OptionType(Enum):
    CALL = "call"
    PUT = "put"


class GreeksInputError(ValueError):
    """Raised when the pricing formula is undefined for the inputs."""


@dataclass(frozen=True)
class GreeksInput:
    spot_price: float
    strike_price: float
    time_to_expiry: float  # years
    risk_free_rate: float
    volatility: float
    option_type: OptionType = OptionType.CALL


@dataclass(frozen=True)
class Greeks:
    """Price and sensitivities of one contract."""
    delta: float = 0.0
    gamma: float = 0.0
    theta: float = 0.0  # per calendar day
    vega: float = 0.0   # per 1 vol point
    rho: float = 0.0    # per 1 rate point
    price: float = 0.0

    def to_dict(self) -> dict:
        return asdict(self)


# Abramowitz and Stegun 7.1.26
_A1 = 0.254829592
_A2 = -0.284496736
_A3 = 1.421413741
_A4 = -1.453152027
_A5 = 1.061405429
_P = 0.3275911


def erf(x: float) -> float:
    sign = 1.0 if x >= 0 else -1.0
    x = abs(x)
    t = 1.0 / (1.0 + _P * x)
    y = 1.0 - (((((_A5 * t + _A4) * t) + _A3) * t + _A2) * t + _A1) * t * math.exp(-x * x)
    return sign * y


def normal_cdf(x: float) -> float:
    return 0.5 * (1.0 + erf(x / math.sqrt(2.0)))


def normal_pdf(x: float) -> float:
    return math.exp(-0.5 * x * x) / math.sqrt(2.0 * math.pi)


def validate_inputs(params: GreeksInput):
    """Reject inputs for which d1/d2 are undefined."""
    if params.time_to_expiry <= 0:
        raise GreeksInputError(f"time_to_expiry must be positive, got {params.time_to_expiry}")
    if params.volatility <= 0:
        raise GreeksInputError(f"volatility must be positive, got {params.volatility}")
    if params.spot_price <= 0 or params.strike_price <= 0:
        raise GreeksInputError(
            f"spot and strike must be positive, got {params.spot_price}/{params.strike_price}"
        )


def _d1_d2(params: GreeksInput) -> Tuple[float, float]:
    s, k, t = params.spot_price, params.strike_price, params.time_to_expiry
    r, sigma = params.risk_free_rate, params.volatility
    sqrt_t = math.sqrt(t)
    d1 = (math.log(s / k) + (r + 0.5 * sigma ** 2) * t) / (sigma * sqrt_t)
    return d1, d1 - sigma * sqrt_t


def calculate_greeks(params: GreeksInput) -> Greeks:
    """
    Price a European option and compute its Greeks.

    Raises:
        GreeksInputError: time to expiry or volatility is not positive
    """
    validate_inputs(params)

    s, k, t = params.spot_price, params.strike_price, params.time_to_expiry
    r, sigma = params.risk_free_rate, params.volatility
    sqrt_t = math.sqrt(t)
    discount = math.exp(-r * t)

    d1, d2 = _d1_d2(params)
    pdf_d1 = normal_pdf(d1)

    gamma = pdf_d1 / (s * sigma * sqrt_t)
    vega = s * pdf_d1 * sqrt_t
    decay = -(s * pdf_d1 * sigma) / (2 * sqrt_t)

    if params.option_type == OptionType.CALL:
        price = s * normal_cdf(d1) - k * discount * normal_cdf(d2)
        delta = normal_cdf(d1)
        theta = decay - r * k * discount * normal_cdf(d2)
        rho = k * t * discount * normal_cdf(d2)
    else:
        price = k * discount * normal_cdf(-d2) - s * normal_cdf(-d1)
        delta = normal_cdf(d1) - 1
        theta = decay + r * k * discount * normal_cdf(-d2)
        rho = -k * t * discount * normal_cdf(-d2)

    return Greeks(
        delta=round(delta, 4),
        gamma=round(gamma, 4),
        theta=round(theta / 365, 2),
        vega=round(vega / 100, 2),
        rho=round(rho / 100, 2),
        price=round(price, 2),
    )


def portfolio_greeks(holdings: Iterable[Tuple[float, Greeks]]) -> Greeks:
    """Sum quantity-weighted Greeks over (quantity, greeks) pairs."""
    totals = dict(delta=0.0, gamma=0.0, theta=0.0, vega=0.0, rho=0.0, price=0.0)
    for quantity, greeks in holdings:
        for name in totals:
            totals[name] += quantity * getattr(greeks, name)
    return Greeks(**{name: round(value, 2) for name, value in totals.items()})
