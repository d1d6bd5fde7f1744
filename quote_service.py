"""
Quote Service — current market price and day change for a stock idea.

Simple interface:
    refresh(record) -> record with cmp / change_pct filled in

NSE / BSE symbols are looked up through yfinance with the exchange
suffix (INFY → INFY.NS). Quotes are cached for a minute per ticker.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Dict, Optional, Tuple

import pandas as pd
import yfinance as yf

from config import EXCHANGE_SUFFIXES, QUOTE_CACHE_SECONDS, QUOTE_HISTORY_PERIOD
from models import Exchange, RecommendationRecord

logger = logging.getLogger(__name__)


@dataclass
class Quote:
    ticker: str
    price: float
    change_pct: float
    timestamp: datetime


class QuoteService:
    def __init__(self, cache_seconds: int = QUOTE_CACHE_SECONDS):
        self._cache: Dict[str, Tuple[Quote, datetime]] = {}
        self._cache_timeout = timedelta(seconds=cache_seconds)

    # ── Public Interface ────────────────────────────────────────────────

    def refresh(self, record: RecommendationRecord) -> RecommendationRecord:
        """Return a copy with cmp and change_pct from the latest close."""
        quote = self.get_quote(record.stock_symbol, record.exchange)
        if quote is None:
            logger.warning(f"No quote for {record.stock_symbol} — cmp left as {record.cmp}")
            return record

        refreshed = record.clone()
        refreshed.cmp = round(quote.price, 2)
        refreshed.change_pct = quote.change_pct
        return refreshed

    def get_quote(self, symbol: str, exchange: Exchange = Exchange.NSE) -> Optional[Quote]:
        if not symbol:
            return None
        ticker = self.yf_ticker(symbol, exchange)

        if ticker in self._cache:
            quote, ts = self._cache[ticker]
            if datetime.now() - ts < self._cache_timeout:
                return quote

        try:
            quote = self._fetch(ticker)
        except Exception as e:
            logger.error(f"Failed to fetch quote for {ticker}: {e}", exc_info=True)
            return None

        if quote is not None:
            self._cache[ticker] = (quote, datetime.now())
        return quote

    @staticmethod
    def yf_ticker(symbol: str, exchange: Exchange = Exchange.NSE) -> str:
        symbol = symbol.strip().upper()
        if "." in symbol:
            return symbol
        return symbol + EXCHANGE_SUFFIXES.get(exchange.value, "")

    # ── Internal ────────────────────────────────────────────────────────

    def _fetch(self, ticker: str) -> Optional[Quote]:
        logger.info(f"Fetching quote for {ticker}")
        hist = yf.Ticker(ticker).history(period=QUOTE_HISTORY_PERIOD)
        if hist is None or hist.empty:
            return None

        close = hist["Close"].dropna()
        if close.empty:
            return None

        return Quote(
            ticker=ticker,
            price=float(close.iloc[-1]),
            change_pct=round(self._safe_pct_change(close), 2),
            timestamp=datetime.now(),
        )

    @staticmethod
    def _safe_pct_change(series: pd.Series) -> float:
        if len(series) < 2 or series.iloc[-2] == 0:
            return 0.0
        return float(((series.iloc[-1] / series.iloc[-2]) - 1) * 100)
