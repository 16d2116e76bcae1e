"""
Price oracles used for USD valuation and impermanent-loss inputs.
"""
import logging
from abc import ABC, abstractmethod
from typing import Dict, Iterable, Optional

import requests
from django.core.cache import cache

from .conf import engine_setting
from .exceptions import PriceUnavailableError

logger = logging.getLogger(__name__)


class PriceOracle(ABC):

    @abstractmethod
    def get_price(self, symbol: str) -> float:
        """USD price of ``symbol``; raises PriceUnavailableError when unknown."""

    def get_prices(self, symbols: Iterable[str]) -> Dict[str, Optional[float]]:
        """Best-effort batch lookup, missing prices map to None."""
        prices = {}
        for symbol in symbols:
            try:
                prices[symbol] = self.get_price(symbol)
            except PriceUnavailableError:
                prices[symbol] = None
        return prices


class StaticPriceOracle(PriceOracle):
    """Fixed price table, symbols compared case-insensitively."""

    def __init__(self, prices: Optional[Dict[str, float]] = None):
        self._prices = {k.upper(): float(v) for k, v in (prices or {}).items()}

    def set_price(self, symbol: str, price: float):
        self._prices[symbol.upper()] = float(price)

    def get_price(self, symbol: str) -> float:
        price = self._prices.get(symbol.upper())
        if price is None or price <= 0:
            raise PriceUnavailableError(symbol)
        return price


class CoinGeckoPriceOracle(PriceOracle):
    """
    USD prices from the CoinGecko simple price endpoint.

    Symbols are mapped to CoinGecko ids through ``COINGECKO_IDS``; results are
    kept in Django's cache for ``PRICE_CACHE_SECONDS``.
    """

    cache_prefix = "yield_engine:price"

    def __init__(self, base_url: Optional[str] = None, api_key: Optional[str] = None,
                 ids: Optional[Dict[str, str]] = None, cache_seconds: Optional[int] = None,
                 timeout: Optional[float] = None, session: Optional[requests.Session] = None):
        self.base_url = (base_url or engine_setting("COINGECKO_BASE_URL")).rstrip("/")
        self.api_key = api_key if api_key is not None else engine_setting("COINGECKO_API_KEY")
        self.ids = {k.upper(): v for k, v in (ids or engine_setting("COINGECKO_IDS")).items()}
        self.cache_seconds = cache_seconds if cache_seconds is not None else engine_setting("PRICE_CACHE_SECONDS")
        self.timeout = timeout or engine_setting("PRICE_REQUEST_TIMEOUT")
        self.session = session or requests.Session()

    def _cache_key(self, coin_id: str) -> str:
        return f"{self.cache_prefix}:{coin_id}"

    def get_price(self, symbol: str) -> float:
        coin_id = self.ids.get(symbol.upper())
        if not coin_id:
            raise PriceUnavailableError(symbol, "no CoinGecko id mapped")

        cached = cache.get(self._cache_key(coin_id))
        if cached is not None:
            logger.debug(f"Price cache hit for {symbol}")
            return cached

        headers = {"x-cg-demo-api-key": self.api_key} if self.api_key else {}
        try:
            response = self.session.get(
                f"{self.base_url}/simple/price",
                params={"ids": coin_id, "vs_currencies": "usd"},
                headers=headers,
                timeout=self.timeout,
            )
            response.raise_for_status()
            data = response.json()
        except requests.RequestException as e:
            logger.error(f"Error fetching price for {symbol}: {str(e)}")
            raise PriceUnavailableError(symbol, str(e))

        price = (data.get(coin_id) or {}).get("usd")
        if price is None or float(price) <= 0:
            logger.warning(f"No price data found for token: {symbol}")
            raise PriceUnavailableError(symbol)

        price = float(price)
        cache.set(self._cache_key(coin_id), price, self.cache_seconds)
        return price
