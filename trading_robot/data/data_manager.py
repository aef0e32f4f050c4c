"""
Data Module
===========
Price, volume, sentiment and option-chain inputs for the robot.

One MarketDataSource abstraction with two interchangeable implementations,
a seeded simulator and a yfinance-backed live source. DataManager owns the
rolling windows and the last-known-value fallbacks so that nothing above it
ever sees a failed lookup.
"""

import asyncio
import pandas as pd
import numpy as np
import yfinance as yf
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Dict, List, Optional
from zoneinfo import ZoneInfo
import logging

from ..features.feature_engine import FeatureEngine, TechnicalSnapshot

logger = logging.getLogger(__name__)

IST = ZoneInfo("Asia/Kolkata")
NEUTRAL_SENTIMENT = 0.5


@dataclass
class PriceQuote:
    """Latest traded price for one symbol."""
    symbol: str
    price: float
    volume: int = 0
    high: float = 0.0
    low: float = 0.0
    open: float = 0.0
    change: float = 0.0  # percent vs session open
    timestamp: Optional[datetime] = None

    def to_dict(self) -> dict:
        return {
            'symbol': self.symbol,
            'price': self.price,
            'volume': self.volume,
            'high': self.high,
            'low': self.low,
            'open': self.open,
            'change': self.change,
            'timestamp': self.timestamp,
        }


@dataclass
class OptionQuote:
    """Market-observed inputs for one option contract."""
    implied_volatility: float
    volume: int = 0
    open_interest: int = 0


class MarketDataSource(ABC):
    """Abstract price feed."""

    def __init__(self):
        self._subscribers: Dict[str, List[Callable[[PriceQuote], None]]] = {}

    @abstractmethod
    async def get_realtime_price(self, symbol: str) -> PriceQuote:
        """Fetch the latest quote for a symbol."""
        pass

    @abstractmethod
    async def get_history(self, symbol: str, bars: int) -> pd.DataFrame:
        """Fetch up to `bars` OHLCV rows, oldest first."""
        pass

    async def get_market_sentiment(self, query: str) -> float:
        """Sentiment score in [0, 1]; sources without one report neutral."""
        return NEUTRAL_SENTIMENT

    async def get_option_quote(self, underlying: str, strike: float, option_type: str) -> OptionQuote:
        raise NotImplementedError(f"{type(self).__name__} has no option chain")

    def subscribe(self, symbol: str, callback: Callable[[PriceQuote], None]):
        self._subscribers.setdefault(symbol, []).append(callback)

    def unsubscribe(self, symbol: str):
        self._subscribers.pop(symbol, None)

    def _publish(self, quote: PriceQuote):
        for callback in self._subscribers.get(quote.symbol, []):
            try:
                callback(quote)
            except Exception as e:
                logger.error(f"Subscriber callback failed for {quote.symbol}: {e}")


class SimulatedDataSource(MarketDataSource):
    """Seeded random-walk source for paper trading and tests."""

    def __init__(self, config=None):
        super().__init__()
        from ..config import DataConfig
        self.config = config or DataConfig()
        self.rng = np.random.default_rng(self.config.random_seed)
        self._last: Dict[str, float] = {}
        self._open: Dict[str, float] = {}

    def _base_price(self, symbol: str) -> float:
        return self._last.get(symbol, self.config.base_prices.get(symbol, 1000.0))

    async def get_realtime_price(self, symbol: str) -> PriceQuote:
        last = self._base_price(symbol)
        bound = self.config.max_tick_move_pct
        price = round(last * (1 + self.rng.uniform(-bound, bound)), 2)
        session_open = self._open.setdefault(symbol, last)
        self._last[symbol] = price

        quote = PriceQuote(
            symbol=symbol,
            price=price,
            volume=int(self.rng.integers(50_000, 500_000)),
            high=max(price, last),
            low=min(price, last),
            open=session_open,
            change=round((price / session_open - 1) * 100, 2),
            timestamp=datetime.now(IST),
        )
        self._publish(quote)
        return quote

    async def get_history(self, symbol: str, bars: int) -> pd.DataFrame:
        last = self._base_price(symbol)
        returns = self.rng.normal(0, 0.002, bars)
        closes = np.cumprod(1 + returns)
        closes = closes / closes[-1] * last

        spread = np.abs(self.rng.normal(0, 0.001, bars)) * closes
        index = pd.date_range(end=pd.Timestamp.now(tz=IST).floor('min'), periods=bars, freq='5min')
        df = pd.DataFrame({
            'open': np.round(np.roll(closes, 1), 2),
            'high': np.round(closes + spread, 2),
            'low': np.round(closes - spread, 2),
            'close': np.round(closes, 2),
            'volume': self.rng.integers(50_000, 500_000, bars),
        }, index=index)
        df.iloc[0, df.columns.get_loc('open')] = df['close'].iloc[0]
        self._last[symbol] = float(df['close'].iloc[-1])
        return df

    async def get_market_sentiment(self, query: str) -> float:
        return float(round(self.rng.uniform(0.3, 0.7), 3))

    async def get_option_quote(self, underlying: str, strike: float, option_type: str) -> OptionQuote:
        return OptionQuote(
            implied_volatility=float(0.15 + self.rng.random() * 0.25),
            volume=int(1000 + self.rng.integers(0, 5000)),
            open_interest=int(10000 + self.rng.integers(0, 50000)),
        )


class YFinanceDataSource(MarketDataSource):
    """Yahoo Finance source. Blocking calls run in a worker thread."""

    SYMBOL_MAP = {
        'NIFTY': '^NSEI',
        'NIFTY50': '^NSEI',
        'BANKNIFTY': '^NSEBANK',
        'SENSEX': '^BSESN',
        'HDFC': 'HDFCBANK.NS',
        'ICICI': 'ICICIBANK.NS',
        'SBI': 'SBIN.NS',
    }

    def __init__(self, config=None):
        super().__init__()
        from ..config import DataConfig
        self.config = config or DataConfig()

    def _convert_symbol(self, symbol: str) -> str:
        """Convert symbol to Yahoo Finance format."""
        if symbol in self.SYMBOL_MAP:
            return self.SYMBOL_MAP[symbol]
        if not symbol.endswith('.NS') and not symbol.startswith('^'):
            return f"{symbol}.NS"
        return symbol

    def _fetch_quote(self, symbol: str) -> PriceQuote:
        df = yf.Ticker(self._convert_symbol(symbol)).history(period='1d', interval='1m')
        if df.empty:
            raise ValueError(f"No intraday data for {symbol}")

        last = df.iloc[-1]
        session_open = float(df['Open'].iloc[0])
        price = float(last['Close'])
        return PriceQuote(
            symbol=symbol,
            price=round(price, 2),
            volume=int(last['Volume']),
            high=float(df['High'].max()),
            low=float(df['Low'].min()),
            open=session_open,
            change=round((price / session_open - 1) * 100, 2) if session_open else 0.0,
            timestamp=df.index[-1].to_pydatetime(),
        )

    def _fetch_history(self, symbol: str, bars: int) -> pd.DataFrame:
        # Yahoo serves 5-minute bars for at most 60 days
        period = f"{min(self.config.lookback_days, 59)}d"
        df = yf.Ticker(self._convert_symbol(symbol)).history(period=period, interval='5m')
        df = df.rename(columns={
            'Open': 'open',
            'High': 'high',
            'Low': 'low',
            'Close': 'close',
            'Volume': 'volume'
        })
        return df[['open', 'high', 'low', 'close', 'volume']].tail(bars)

    async def get_realtime_price(self, symbol: str) -> PriceQuote:
        quote = await asyncio.to_thread(self._fetch_quote, symbol)
        self._publish(quote)
        return quote

    async def get_history(self, symbol: str, bars: int) -> pd.DataFrame:
        return await asyncio.to_thread(self._fetch_history, symbol, bars)


class DataManager:
    """
    Rolling market data for the robot.

    Responsibilities:
    - Load a history window per symbol at start-up
    - Refresh quotes concurrently, one failure never blocking another symbol
    - Fall back to the last known price, a neutral technical snapshot or a
      neutral sentiment when a lookup fails
    """

    def __init__(self, config=None, source: MarketDataSource = None, market_config=None):
        from ..config import DataConfig, MarketConfig
        self.config = config or DataConfig()
        market_config = market_config or MarketConfig()

        if source is not None:
            self.source = source
        elif self.config.use_simulated:
            self.source = SimulatedDataSource(self.config)
        else:
            self.source = YFinanceDataSource(self.config)

        self.feature_engine = FeatureEngine(
            volume_ma_period=market_config.volume_ma_period,
            volatility_window=market_config.volatility_window,
        )

        self.windows: Dict[str, pd.DataFrame] = {}
        self.last_quotes: Dict[str, PriceQuote] = {}
        self.failed_lookups = 0

    async def initialize(self, symbols: List[str] = None):
        """Load the starting history window for every tracked symbol."""
        symbols = symbols or self.config.symbols
        logger.info(f"Initializing DataManager for {len(symbols)} symbols...")

        for symbol in symbols:
            try:
                df = await self.source.get_history(symbol, self.config.window_size)
                self.windows[symbol] = self._clean_data(df)
            except Exception as e:
                logger.warning(f"History load failed for {symbol}: {e}")
                self.windows[symbol] = self._empty_window()

        loaded = sum(1 for df in self.windows.values() if not df.empty)
        logger.info(f"DataManager initialized with {loaded} symbols")

    async def refresh_quote(self, symbol: str) -> Optional[PriceQuote]:
        """Fetch one quote; on failure return the last known one (or None)."""
        try:
            quote = await self.source.get_realtime_price(symbol)
        except Exception as e:
            self.failed_lookups += 1
            logger.warning(f"Price lookup failed for {symbol}, using last known price: {e}")
            return self.last_quotes.get(symbol)

        self.last_quotes[symbol] = quote
        self._append_tick(quote)
        return quote

    async def refresh_all(self, symbols: List[str] = None) -> Dict[str, float]:
        """Refresh quotes concurrently and return the usable prices."""
        symbols = symbols or self.config.symbols
        quotes = await asyncio.gather(*(self.refresh_quote(s) for s in symbols))
        return {q.symbol: q.price for q in quotes if q is not None}

    def get_last_price(self, symbol: str) -> Optional[float]:
        quote = self.last_quotes.get(symbol)
        if quote is not None:
            return quote.price
        window = self.windows.get(symbol)
        if window is not None and not window.empty:
            return float(window['close'].iloc[-1])
        return None

    def get_window(self, symbol: str) -> pd.DataFrame:
        return self.windows.get(symbol, self._empty_window())

    def get_technical_indicators(self, symbol: str) -> TechnicalSnapshot:
        """Indicator snapshot, or the neutral default when unavailable."""
        try:
            snapshot = self.feature_engine.snapshot(self.get_window(symbol))
        except Exception as e:
            logger.warning(f"Indicator computation failed for {symbol}: {e}")
            snapshot = None
        return snapshot or TechnicalSnapshot.neutral()

    async def get_market_sentiment(self, query: str) -> float:
        try:
            score = float(await self.source.get_market_sentiment(query))
        except Exception as e:
            logger.warning(f"Sentiment lookup failed for {query}: {e}")
            return NEUTRAL_SENTIMENT
        return min(1.0, max(0.0, score))

    async def get_option_quote(self, underlying: str, strike: float, option_type: str,
                               default_volatility: float) -> OptionQuote:
        try:
            return await self.source.get_option_quote(underlying, strike, option_type)
        except Exception as e:
            logger.debug(f"Option quote unavailable for {underlying} {strike} {option_type}: {e}")
            return OptionQuote(implied_volatility=default_volatility)

    def _append_tick(self, quote: PriceQuote):
        timestamp = pd.Timestamp(quote.timestamp or datetime.now(IST))
        row = pd.DataFrame({
            'open': [quote.price],
            'high': [quote.price],
            'low': [quote.price],
            'close': [quote.price],
            'volume': [quote.volume],
        }, index=[timestamp])

        window = self.windows.get(quote.symbol)
        if window is None or window.empty:
            window = row
        else:
            window = pd.concat([window, row])
        self.windows[quote.symbol] = window.tail(self.config.window_size)

    @staticmethod
    def _empty_window() -> pd.DataFrame:
        return pd.DataFrame(columns=['open', 'high', 'low', 'close', 'volume'])

    def _clean_data(self, df: pd.DataFrame) -> pd.DataFrame:
        """Clean and validate market data."""
        if df is None or df.empty:
            return self._empty_window()

        df = df[~df.index.duplicated(keep='last')].copy()
        df = df.sort_index()
        df = df.ffill()

        # High should be >= Open, Close, Low and Low <= all of them
        df['high'] = df[['open', 'high', 'low', 'close']].max(axis=1)
        df['low'] = df[['open', 'high', 'low', 'close']].min(axis=1)

        df = df[(df['close'] > 0) & (df['volume'] >= 0)]
        return df.tail(self.config.window_size)
