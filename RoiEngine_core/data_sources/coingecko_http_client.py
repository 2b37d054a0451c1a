"""
CoinGecko HTTP API Client - daily USD closes for the portfolio assets.
Plain requests against the public v3 REST API.
"""
import logging
import time
from datetime import date, datetime, time as dt_time, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional

import requests

from ..config import (
    COINGECKO_API_KEY,
    COINGECKO_BASE_URL,
    MISSING_DAY_LOG_SAMPLE,
    SUPPLIER_BASE_DELAY_SECONDS,
    SUPPLIER_MAX_RETRIES,
    SUPPLIER_TIMEOUT_SECONDS,
)
from ..errors import PriceSupplierError
from ..models import CASH_TICKER
from ..num import ONE
from utils.calendar_days import list_calendar_days, to_utc_date

logger = logging.getLogger(__name__)

# Price ticker -> CoinGecko coin id. None: no coin on CoinGecko.
COINGECKO_IDS: Dict[str, Optional[str]] = {
    'BTC': 'bitcoin',
    'ETH': 'ethereum',
    'SOL': 'solana',
    'XRP': 'ripple',
    'DOGE': 'dogecoin',
    'SUI': 'sui',
    'BNB': 'binancecoin',
    'TRX': 'tron',
    'LINK': 'chainlink',
    'XAUT': 'tether-gold',
    'XAUTUSD': 'tether-gold',
    'HYPEH': None,
}


class CoinGeckoHttpClient:
    """
    HTTP client for the CoinGecko market data API
    Documentation: https://docs.coingecko.com/reference/coins-id-market-chart-range
    """

    def __init__(
        self,
        api_key: Optional[str] = COINGECKO_API_KEY,
        base_url: str = COINGECKO_BASE_URL,
        retry_count: int = SUPPLIER_MAX_RETRIES,
        retry_delay: float = SUPPLIER_BASE_DELAY_SECONDS,
        sleep=time.sleep,
    ):
        """
        Initialize CoinGecko HTTP client

        Args:
            api_key: Optional demo API key (sent as x-cg-demo-api-key)
            base_url: API root
            retry_count: Attempts per coin before giving up
            retry_delay: Base back-off in seconds, multiplied by the attempt number
            sleep: Sleep function (injectable for tests)
        """
        self.base_url = base_url.rstrip('/')
        self.retry_count = retry_count
        self.retry_delay = retry_delay
        self._sleep = sleep
        self.session = requests.Session()
        self.session.headers.update({
            'User-Agent': 'ROI-Engine/1.0',
            'Accept': 'application/json'
        })
        if api_key:
            self.session.headers['x-cg-demo-api-key'] = api_key

    @staticmethod
    def _to_unix_seconds(day: date, end_of_day: bool = False) -> int:
        moment = datetime.combine(day, dt_time(23, 59, 59) if end_of_day else dt_time(0, 0))
        return int(moment.replace(tzinfo=timezone.utc).timestamp())

    def _fetch_with_retry(self, url: str, params: Dict[str, Any], ticker: str) -> Any:
        """
        GET ``url`` with retries.

        429 responses wait for Retry-After (or the back-off) and retry; other
        failures back off ``retry_delay * attempt`` seconds.

        Raises:
            PriceSupplierError: When all attempts are exhausted
        """
        last_error = None
        for attempt in range(1, self.retry_count + 1):
            try:
                response = self.session.get(url, params=params, timeout=SUPPLIER_TIMEOUT_SECONDS)
            except requests.exceptions.RequestException as e:
                last_error = f"Request error: {e}"
                logger.warning(f"Request error for {ticker}, attempt {attempt}/{self.retry_count}: {e}")
                if attempt < self.retry_count:
                    self._sleep(self.retry_delay * attempt)
                continue

            if response.status_code == 429:
                retry_after = response.headers.get('Retry-After')
                try:
                    wait_time = float(retry_after) if retry_after else self.retry_delay * attempt
                except ValueError:
                    wait_time = self.retry_delay * attempt
                last_error = "HTTP 429"
                logger.warning(f"Rate limit reached for {ticker}, waiting {wait_time}s...")
                if attempt < self.retry_count:
                    self._sleep(wait_time)
                continue

            if response.status_code != 200:
                error_msg = response.text[:200] if response.text else "Unknown error"
                last_error = f"HTTP {response.status_code}"
                logger.warning(f"HTTP {response.status_code} for {ticker}: {error_msg}")
                if attempt < self.retry_count:
                    self._sleep(self.retry_delay * attempt)
                continue

            try:
                # Decimal straight from the JSON text, never via float
                return response.json(parse_float=Decimal)
            except ValueError as e:
                raise PriceSupplierError(
                    f"Failed to parse JSON response for {ticker}: {e}",
                    details={"ticker": ticker},
                ) from e

        raise PriceSupplierError(
            f"Failed to fetch {ticker} after {self.retry_count} attempts. Last error: {last_error}",
            details={"ticker": ticker, "last_error": last_error},
        )

    @staticmethod
    def _build_daily_close_map(prices: List[Any]) -> Dict[date, Decimal]:
        """Bucket [timestamp_ms, price] pairs by UTC day; the latest sample of a day wins."""
        closes: Dict[date, Decimal] = {}
        for entry in prices:
            if not isinstance(entry, (list, tuple)) or len(entry) < 2 or entry[1] is None:
                continue
            timestamp_ms, price = entry[0], entry[1]
            day = datetime.fromtimestamp(int(timestamp_ms) / 1000, tz=timezone.utc).date()
            closes[day] = Decimal(str(price)) if not isinstance(price, Decimal) else price
        return closes

    def get_daily_closes(
        self,
        symbols: List[str],
        start_date,
        end_date,
    ) -> Dict[str, List[tuple[date, Decimal]]]:
        """
        Fetch one close per UTC day for each symbol over [start_date, end_date]

        API Endpoint: GET /coins/{id}/market_chart/range?vs_currency=usd

        Args:
            symbols: Price tickers (e.g. 'BTC', 'XAUT', 'CASH')
            start_date: First day (date or 'YYYY-MM-DD')
            end_date: Last day (date or 'YYYY-MM-DD')

        Returns:
            {ticker: [(day, close), ...]} in ascending day order. CASH is
            synthesised at 1 for every day; tickers without a coin id map to
            an empty list.

        Raises:
            PriceSupplierError: A coin could not be fetched after retries
        """
        start = to_utc_date(start_date)
        end = to_utc_date(end_date)
        expected_days = list_calendar_days(start, end)
        results: Dict[str, List[tuple[date, Decimal]]] = {}

        for raw_symbol in symbols:
            ticker = raw_symbol.strip().upper()
            if ticker == CASH_TICKER:
                results[ticker] = [(day, ONE) for day in expected_days]
                continue

            coin_id = COINGECKO_IDS.get(ticker)
            if not coin_id:
                logger.warning(f"No CoinGecko mapping for {ticker}")
                results[ticker] = []
                continue

            endpoint = f"{self.base_url}/coins/{coin_id}/market_chart/range"
            params = {
                'vs_currency': 'usd',
                'from': self._to_unix_seconds(start),
                'to': self._to_unix_seconds(end, end_of_day=True),
            }
            payload = self._fetch_with_retry(endpoint, params, ticker)
            prices = payload.get('prices') if isinstance(payload, dict) else None
            close_map = self._build_daily_close_map(prices if isinstance(prices, list) else [])

            missing = [day for day in expected_days if day not in close_map]
            if missing:
                logger.warning(
                    f"Missing daily closes from CoinGecko for {ticker}: "
                    f"{[d.isoformat() for d in missing[:MISSING_DAY_LOG_SAMPLE]]} ({len(missing)} total)"
                )

            results[ticker] = [(day, close_map[day]) for day in expected_days if day in close_map]
            logger.debug(f"Fetched {len(results[ticker])} closes for {ticker} ({coin_id})")

        return results

    def test_connection(self) -> bool:
        """
        Ping the API

        Returns:
            True if the ping endpoint answered, False otherwise
        """
        try:
            response = self.session.get(f"{self.base_url}/ping", timeout=SUPPLIER_TIMEOUT_SECONDS)
        except requests.exceptions.RequestException as e:
            logger.error(f"CoinGecko connection test failed: {e}")
            return False
        if response.status_code == 200:
            logger.info("CoinGecko API connection successful")
            return True
        logger.warning(f"CoinGecko connection test returned HTTP {response.status_code}")
        return False
