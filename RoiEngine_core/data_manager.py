# RoiEngine_core/data_manager.py
import logging
import datetime as dt
from dataclasses import dataclass
from decimal import Decimal
from typing import Dict, Iterable, List, Optional, Protocol, Tuple

from sqlalchemy.engine import Engine
from sqlmodel import select

from RoiEngine_core.db import get_session
from RoiEngine_core.errors import PriceSupplierError
from RoiEngine_core.models import AssetPriceDaily, PriceSource
from RoiEngine_core.num import D
from utils.calendar_days import to_utc_date, utcnow

logger = logging.getLogger(__name__)

DailyClose = Tuple[dt.date, Decimal]


class PriceSupplier(Protocol):
    """Anything that returns daily closes per ticker (CoinGeckoHttpClient, test fakes)."""

    def get_daily_closes(
        self, symbols: List[str], start_date: dt.date, end_date: dt.date
    ) -> Dict[str, List[DailyClose]]:
        ...


@dataclass
class IngestCounts:
    inserted: int = 0
    updated: int = 0
    unchanged: int = 0

    @property
    def total(self) -> int:
        return self.inserted + self.updated + self.unchanged

    def to_dict(self) -> Dict[str, int]:
        return {"inserted": self.inserted, "updated": self.updated, "unchanged": self.unchanged}


class PriceCacheManager:
    """
    Local cache of daily closes in asset_price_daily.

    ``ensure_prices`` pulls a window from the supplier and upserts it, so
    later NAV builds read prices from the database only.
    """

    def __init__(self, supplier: Optional[PriceSupplier] = None, engine: Optional[Engine] = None):
        if supplier is None:
            from RoiEngine_core.data_sources.coingecko_http_client import CoinGeckoHttpClient
            supplier = CoinGeckoHttpClient()
            logger.info("CoinGecko HTTP client initialized")
        self.supplier = supplier
        self.engine = engine

    def ensure_prices(self, symbols: Iterable[str], start_date, end_date) -> Dict[str, IngestCounts]:
        """
        Make sure every symbol has cached closes for [start_date, end_date].

        One supplier call covers all symbols. Each symbol is then upserted in
        its own transaction: a new (symbol, day) is inserted, an existing one
        gets the new close.

        Returns:
            {symbol: IngestCounts}

        Raises:
            PriceSupplierError: The supplier failed, or returned zero points
                for a symbol. Symbols upserted before the failing one stay
                committed.
        """
        tickers = sorted({s.strip().upper() for s in symbols if s and s.strip()})
        if not tickers:
            return {}

        start = to_utc_date(start_date)
        end = to_utc_date(end_date)
        logger.info(f"Ensuring prices for {tickers} from {start} to {end}")

        fetched = self.supplier.get_daily_closes(tickers, start, end)

        results: Dict[str, IngestCounts] = {}
        for ticker in tickers:
            closes = fetched.get(ticker) or []
            if not closes:
                raise PriceSupplierError(
                    f"No prices returned for {ticker} between {start} and {end}",
                    details={"symbol": ticker, "start": start.isoformat(), "end": end.isoformat()},
                )
            counts = self._upsert_symbol(ticker, closes)
            results[ticker] = counts
            logger.info(
                f"{ticker}: {counts.inserted} inserted, {counts.updated} updated, "
                f"{counts.unchanged} unchanged"
            )
        return results

    def _upsert_symbol(self, ticker: str, closes: List[DailyClose]) -> IngestCounts:
        counts = IngestCounts()
        source = PriceSource.for_ticker(ticker)
        by_day: Dict[dt.date, Decimal] = {}
        for day, close in closes:
            by_day[to_utc_date(day)] = D(close)

        with get_session(self.engine) as session:
            existing = {
                row.price_date: row
                for row in session.exec(
                    select(AssetPriceDaily).where(
                        AssetPriceDaily.symbol == ticker,
                        AssetPriceDaily.price_date.in_(list(by_day)),
                    )
                ).all()
            }
            now = utcnow()
            for day, close in sorted(by_day.items()):
                row = existing.get(day)
                if row is None:
                    session.add(AssetPriceDaily(
                        symbol=ticker, price_date=day, close=close, source=source,
                        created_at=now, updated_at=now,
                    ))
                    counts.inserted += 1
                elif D(row.close) != close:
                    row.close = close
                    row.source = source
                    row.updated_at = now
                    session.add(row)
                    counts.updated += 1
                else:
                    counts.unchanged += 1
        return counts

    def get_price_rows(self, symbols: Iterable[str], start_date, end_date) -> List[AssetPriceDaily]:
        """Cached rows for the symbols in [start_date, end_date], ordered by symbol and day."""
        tickers = sorted({s.strip().upper() for s in symbols if s and s.strip()})
        if not tickers:
            return []
        start = to_utc_date(start_date)
        end = to_utc_date(end_date)
        with get_session(self.engine) as session:
            rows = session.exec(
                select(AssetPriceDaily)
                .where(
                    AssetPriceDaily.symbol.in_(tickers),
                    AssetPriceDaily.price_date >= start,
                    AssetPriceDaily.price_date <= end,
                )
                .order_by(AssetPriceDaily.symbol, AssetPriceDaily.price_date)
            ).all()
            for row in rows:
                session.expunge(row)
        return list(rows)

    def get_prices_by_ticker(self, symbols: Iterable[str], start_date, end_date) -> Dict[str, Dict[dt.date, Decimal]]:
        """Cached closes as {ticker: {day: close}}; symbols without rows map to {}."""
        tickers = sorted({s.strip().upper() for s in symbols if s and s.strip()})
        prices: Dict[str, Dict[dt.date, Decimal]] = {t: {} for t in tickers}
        for row in self.get_price_rows(tickers, start_date, end_date):
            prices[row.symbol][row.price_date] = D(row.close)
        return prices
