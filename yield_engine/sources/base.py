import asyncio
import logging
from abc import ABC, abstractmethod
from concurrent.futures import ThreadPoolExecutor
from typing import List, Tuple

from ..types import AssetMarket, LPPosition, SourceKind, VaultPosition

logger = logging.getLogger(__name__)

# Shared by every blocking reader. asyncio.run only joins the loop's default
# executor, so a read abandoned on timeout here never holds up the caller.
BLOCKING_EXECUTOR = ThreadPoolExecutor(max_workers=8, thread_name_prefix="market-source")


async def run_blocking(func, *args):
    """Run a blocking client call on the shared executor."""
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(BLOCKING_EXECUTOR, func, *args)


class MarketSource(ABC):
    """
    A single protocol data source feeding the common AssetMarket shape.

    Subclasses implement ``fetch_markets`` and optionally ``fetch_positions``.
    Both are coroutines so the gateway can fan them out; blocking clients
    should push their work to a thread with ``run_blocking``.
    """

    kind: SourceKind = SourceKind.LENDING

    def __init__(self, name: str):
        self.name = name

    @abstractmethod
    async def fetch_markets(self, asset: str) -> List[AssetMarket]:
        """Return every market this source has for ``asset``."""

    async def fetch_positions(self, address: str) -> Tuple[List[VaultPosition], List[LPPosition]]:
        """Return (vault_positions, lp_positions) held by ``address``."""
        return [], []

    def __repr__(self):
        return f"<{self.__class__.__name__} {self.name} ({self.kind.value})>"
