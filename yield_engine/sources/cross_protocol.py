"""
Cross-protocol yields from an aggregator API (DefiLlama yields format).
"""
import logging
from typing import Any, Dict, Iterable, List, Optional

import httpx

from ..exceptions import SourceUnavailableError
from ..types import AssetMarket, SourceKind, StrategyType
from .base import MarketSource

logger = logging.getLogger(__name__)

DEFAULT_YIELDS_URL = "https://yields.llama.fi/pools"


class YieldsApiSource(MarketSource):
    """
    Markets from every protocol listed by a yields aggregator.

    Args:
        name: Source name used in logs and error tags
        url: Aggregator endpoint returning ``{"data": [pool, ...]}``
        projects: Only keep pools of these projects (all when empty)
        chain: Only keep pools on this chain (all when None)
        min_tvl_usd: Drop pools thinner than this
    """

    kind = SourceKind.CROSS_PROTOCOL

    def __init__(self, name: str, url: str = DEFAULT_YIELDS_URL, projects: Iterable[str] = (),
                 chain: Optional[str] = None, min_tvl_usd: float = 1_000_000, request_timeout: float = 15.0,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        super().__init__(name)
        self.url = url
        self.projects = {p.lower() for p in projects}
        self.chain = chain
        self.min_tvl_usd = min_tvl_usd
        self.request_timeout = request_timeout
        self._transport = transport

    def _keep(self, pool: Dict[str, Any]) -> bool:
        if self.projects and str(pool.get("project", "")).lower() not in self.projects:
            return False
        if self.chain and str(pool.get("chain", "")).lower() != self.chain.lower():
            return False
        return float(pool.get("tvlUsd") or 0) >= self.min_tvl_usd

    def _to_market(self, pool: Dict[str, Any]) -> AssetMarket:
        multi = pool.get("exposure") == "multi"
        reward_apy = float(pool.get("apyReward") or 0)
        if multi:
            strategy = StrategyType.LP
        elif reward_apy > 0:
            strategy = StrategyType.YIELD_FARMING
        else:
            strategy = StrategyType.LENDING
        tvl = float(pool.get("tvlUsd") or 0)
        apy = pool.get("apy")
        if apy is None:
            apy = float(pool.get("apyBase") or 0) + reward_apy
        return AssetMarket(
            asset=str(pool["symbol"]),
            protocol=str(pool["project"]),
            supply_apy=max(0.0, float(apy)),
            borrow_apy=0.0,
            utilization=0.0,
            total_assets=tvl,
            available_liquidity=tvl,
            kind=self.kind,
            strategy_type=strategy,
            address=str(pool.get("pool") or ""),
        )

    async def fetch_markets(self, asset: str) -> List[AssetMarket]:
        async with httpx.AsyncClient(transport=self._transport, timeout=self.request_timeout) as client:
            try:
                response = await client.get(self.url)
            except httpx.RequestError as e:
                raise SourceUnavailableError(self.name, f"request failed: {e}")
        if response.status_code != 200:
            raise SourceUnavailableError(self.name, f"yields API returned status {response.status_code}")

        markets = []
        for pool in response.json().get("data", []):
            if not self._keep(pool):
                continue
            try:
                market = self._to_market(pool)
            except (KeyError, TypeError, ValueError) as e:
                logger.warning(f"{self.name}: skipping malformed pool {pool.get('pool')}: {str(e)}")
                continue
            if market.kind == SourceKind.CROSS_PROTOCOL and market.strategy_type == StrategyType.LP:
                # Pair pools match on any leg
                if asset.upper() in (a.upper() for a in market.pair_assets):
                    markets.append(market)
            elif market.matches_asset(asset):
                markets.append(market)
        return markets
