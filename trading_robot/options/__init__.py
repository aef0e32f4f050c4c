"""
Options Analytics Module
========================
"""
from .greeks import (
    Greeks,
    GreeksInput,
    GreeksInputError,
    OptionType,
    calculate_greeks,
    portfolio_greeks,
    normal_cdf
)
from .options_engine import (
    OptionsRiskEngine,
    OptionsGreeksData,
    PortfolioGreeksRisk,
    RiskLevel,
    Recommendation,
    classify_risk_level,
    trading_recommendation,
    portfolio_risk_score
)

__all__ = [
    'Greeks',
    'GreeksInput',
    'GreeksInputError',
    'OptionType',
    'calculate_greeks',
    'portfolio_greeks',
    'normal_cdf',
    'OptionsRiskEngine',
    'OptionsGreeksData',
    'PortfolioGreeksRisk',
    'RiskLevel',
    'Recommendation',
    'classify_risk_level',
    'trading_recommendation',
    'portfolio_risk_score'
]
