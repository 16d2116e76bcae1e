"""
Liquidity pool source backed by a Uniswap-v3 style subgraph.
"""
import logging
from typing import Any, Dict, List, Optional, Tuple

import httpx

from ..exceptions import PriceUnavailableError, SourceUnavailableError
from ..types import AssetMarket, LPPosition, SourceKind, StrategyType, VaultPosition
from .base import MarketSource

logger = logging.getLogger(__name__)

POOLS_QUERY = """
query GetPools($first: Int!) {
  pools(first: $first, orderBy: totalValueLockedUSD, orderDirection: desc) {
    id
    token0 { id symbol }
    token1 { id symbol }
    feeTier
    totalValueLockedUSD
    poolDayData(first: 1, orderBy: date, orderDirection: desc) {
      feesUSD
      tvlUSD
    }
  }
}
"""

POSITIONS_QUERY = """
query GetUserPositions($user: String!) {
  positions(where: { owner: $user, liquidity_gt: 0 }) {
    id
    pool {
      id
      token0 { id symbol }
      token1 { id symbol }
      totalValueLockedUSD
      poolDayData(first: 1, orderBy: date, orderDirection: desc) {
        feesUSD
        tvlUSD
      }
    }
    depositedToken0
    depositedToken1
    withdrawnToken0
    withdrawnToken1
  }
}
"""


def fee_apy(pool: Dict[str, Any]) -> float:
    """Annualised fee yield (percent) from the latest day of pool fees."""
    day_data = pool.get("poolDayData") or []
    if not day_data:
        return 0.0
    fees = float(day_data[0].get("feesUSD") or 0)
    tvl = float(day_data[0].get("tvlUSD") or pool.get("totalValueLockedUSD") or 0)
    if tvl <= 0 or fees <= 0:
        return 0.0
    return fees * 365 / tvl * 100


class SubgraphPoolSource(MarketSource):
    """
    LP markets and positions from a GraphQL subgraph.

    Args:
        name: Source name used in logs and error tags
        protocol: Protocol label stamped on every market
        subgraph_url: GraphQL endpoint
        price_oracle: Optional oracle used to value positions in USD
        max_pools: How many of the deepest pools to consider
    """

    kind = SourceKind.LP

    def __init__(self, name: str, protocol: str, subgraph_url: str, price_oracle=None,
                 max_pools: int = 100, request_timeout: float = 10.0,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        super().__init__(name)
        self.protocol = protocol
        self.subgraph_url = subgraph_url
        self.price_oracle = price_oracle
        self.max_pools = max_pools
        self.request_timeout = request_timeout
        self._transport = transport

    async def _query(self, query: str, variables: Dict[str, Any]) -> Dict[str, Any]:
        async with httpx.AsyncClient(transport=self._transport, timeout=self.request_timeout) as client:
            try:
                response = await client.post(self.subgraph_url, json={"query": query, "variables": variables})
            except httpx.RequestError as e:
                raise SourceUnavailableError(self.name, f"request failed: {e}")
        if response.status_code != 200:
            raise SourceUnavailableError(self.name, f"subgraph returned status {response.status_code}")
        payload = response.json()
        if payload.get("errors"):
            raise SourceUnavailableError(self.name, f"subgraph errors: {payload['errors']}")
        return payload.get("data") or {}

    def _to_market(self, pool: Dict[str, Any]) -> AssetMarket:
        symbol0 = pool["token0"]["symbol"]
        symbol1 = pool["token1"]["symbol"]
        tvl = float(pool.get("totalValueLockedUSD") or 0)
        return AssetMarket(
            asset=f"{symbol0}-{symbol1}",
            protocol=self.protocol,
            supply_apy=fee_apy(pool),
            borrow_apy=0.0,
            utilization=0.0,
            total_assets=tvl,
            available_liquidity=tvl,
            kind=self.kind,
            strategy_type=StrategyType.LP,
            address=pool["id"],
        )

    async def fetch_markets(self, asset: str) -> List[AssetMarket]:
        data = await self._query(POOLS_QUERY, {"first": self.max_pools})
        markets = []
        for pool in data.get("pools", []):
            try:
                market = self._to_market(pool)
            except (KeyError, TypeError, ValueError) as e:
                logger.warning(f"{self.name}: skipping malformed pool {pool.get('id')}: {str(e)}")
                continue
            if market.matches_asset(asset):
                markets.append(market)
        return markets

    def _price(self, symbol: str) -> Optional[float]:
        if self.price_oracle is None:
            return None
        try:
            return self.price_oracle.get_price(symbol)
        except PriceUnavailableError:
            return None

    def _to_position(self, raw: Dict[str, Any]) -> Optional[LPPosition]:
        pool = raw["pool"]
        symbol0 = pool["token0"]["symbol"]
        symbol1 = pool["token1"]["symbol"]
        deposited0 = float(raw.get("depositedToken0") or 0)
        deposited1 = float(raw.get("depositedToken1") or 0)
        if deposited0 <= 0 or deposited1 <= 0:
            return None
        held0 = max(0.0, deposited0 - float(raw.get("withdrawnToken0") or 0))
        held1 = max(0.0, deposited1 - float(raw.get("withdrawnToken1") or 0))

        price0 = self._price(symbol0)
        price1 = self._price(symbol1)
        value_usd = held0 * price0 + held1 * price1 if price0 is not None and price1 is not None else 0.0

        # A constant-product deposit is value balanced, so e1/e0 == d0/d1.
        # Entry prices are expressed in token0 units.
        return LPPosition(
            protocol=self.protocol,
            pool_address=pool["id"],
            token0=symbol0,
            token1=symbol1,
            value_usd=value_usd,
            apy=fee_apy(pool),
            entry_price0=1.0,
            entry_price1=deposited0 / deposited1,
        )

    async def fetch_positions(self, address: str) -> Tuple[List[VaultPosition], List[LPPosition]]:
        data = await self._query(POSITIONS_QUERY, {"user": address.lower()})
        positions = []
        for raw in data.get("positions", []):
            try:
                position = self._to_position(raw)
            except (KeyError, TypeError, ValueError) as e:
                logger.warning(f"{self.name}: skipping malformed position {raw.get('id')}: {str(e)}")
                continue
            if position is not None:
                positions.append(position)
        return [], positions
