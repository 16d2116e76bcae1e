"""
Chain data gateway: concurrent fan-out over every configured market source.

Each source read runs under its own timeout; a failing or slow source is
turned into a SourceError tag on the result instead of failing the call.
"""
import asyncio
import logging
from typing import List, Optional, Sequence

from .conf import engine_setting
from .sources.base import MarketSource
from .types import MarketSnapshot, SourceError, UserPositions

logger = logging.getLogger(__name__)


class ChainDataGateway:

    def __init__(self, sources: Sequence[MarketSource], timeout: Optional[float] = None):
        self.sources = tuple(sources)
        self.timeout = float(timeout if timeout is not None else engine_setting("SOURCE_TIMEOUT_SECONDS"))

    def _error(self, source: MarketSource, exc: BaseException) -> SourceError:
        if isinstance(exc, asyncio.TimeoutError):
            logger.warning(f"Source {source.name} timed out after {self.timeout}s")
            return SourceError(source.name, source.kind, f"timed out after {self.timeout}s", timed_out=True)
        logger.warning(f"Source {source.name} unavailable: {str(exc)}")
        return SourceError(source.name, source.kind, str(exc) or exc.__class__.__name__)

    async def _bounded(self, coro):
        return await asyncio.wait_for(coro, timeout=self.timeout)

    async def get_markets_async(self, asset: str) -> MarketSnapshot:
        tasks = [self._bounded(source.fetch_markets(asset)) for source in self.sources]
        results = await asyncio.gather(*tasks, return_exceptions=True)

        markets, errors = [], []
        for source, result in zip(self.sources, results):
            if isinstance(result, Exception):
                errors.append(self._error(source, result))
            else:
                markets.extend(result)
        logger.debug(f"Fetched {len(markets)} markets for {asset} from {len(self.sources) - len(errors)} sources")
        return MarketSnapshot(asset=asset, markets=tuple(markets), source_errors=tuple(errors))

    async def get_user_positions_async(self, address: str) -> UserPositions:
        tasks = [self._bounded(source.fetch_positions(address)) for source in self.sources]
        results = await asyncio.gather(*tasks, return_exceptions=True)

        vaults, pools, errors = [], [], []
        for source, result in zip(self.sources, results):
            if isinstance(result, Exception):
                errors.append(self._error(source, result))
                continue
            source_vaults, source_pools = result
            vaults.extend(source_vaults)
            pools.extend(source_pools)
        return UserPositions(
            address=address,
            vault_positions=tuple(vaults),
            lp_positions=tuple(pools),
            source_errors=tuple(errors),
        )

    async def get_markets_for_assets_async(self, assets: Sequence[str]) -> List[MarketSnapshot]:
        return list(await asyncio.gather(*(self.get_markets_async(a) for a in assets)))

    def get_markets(self, asset: str) -> MarketSnapshot:
        """Synchronous facade for callers outside an event loop (views, workers)."""
        return asyncio.run(self.get_markets_async(asset))

    def get_user_positions(self, address: str) -> UserPositions:
        return asyncio.run(self.get_user_positions_async(address))

    def get_markets_for_assets(self, assets: Sequence[str]) -> List[MarketSnapshot]:
        return asyncio.run(self.get_markets_for_assets_async(assets))
