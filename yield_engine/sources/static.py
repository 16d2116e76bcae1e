import logging
from typing import Any, Dict, Iterable, List, Optional, Tuple

from ..types import AssetMarket, LPPosition, SourceKind, VaultPosition
from .base import MarketSource
from .normalize import normalize_lp_position, normalize_markets, normalize_vault_position

logger = logging.getLogger(__name__)


class StaticMarketSource(MarketSource):
    """
    In-memory source backed by fixed snapshots.

    Used for fixtures, demos and tests; it answers through exactly the same
    interface as the live sources so the engine cannot tell them apart.
    """

    def __init__(self, name: str, kind: SourceKind = SourceKind.LENDING,
                 markets: Iterable[AssetMarket] = (),
                 vault_positions: Optional[Dict[str, Iterable[VaultPosition]]] = None,
                 lp_positions: Optional[Dict[str, Iterable[LPPosition]]] = None):
        super().__init__(name)
        self.kind = kind
        self._markets = tuple(markets)
        self._vault_positions = {k.lower(): tuple(v) for k, v in (vault_positions or {}).items()}
        self._lp_positions = {k.lower(): tuple(v) for k, v in (lp_positions or {}).items()}

    @classmethod
    def from_records(cls, name: str, kind: SourceKind, markets: Iterable[Dict[str, Any]] = (),
                     positions: Optional[Dict[str, Dict[str, List[Dict[str, Any]]]]] = None,
                     protocol: Optional[str] = None) -> "StaticMarketSource":
        """
        Build a source from plain dict records (e.g. the ``SOURCES`` setting).

        ``positions`` maps an account address to
        ``{"vaults": [...], "lp": [...]}`` record lists.
        """
        vaults, pools = {}, {}
        for address, groups in (positions or {}).items():
            vaults[address] = [normalize_vault_position(r, protocol) for r in groups.get("vaults", [])]
            pools[address] = [normalize_lp_position(r, protocol) for r in groups.get("lp", [])]
        return cls(
            name,
            kind=kind,
            markets=normalize_markets(markets, kind, name, protocol=protocol),
            vault_positions=vaults,
            lp_positions=pools,
        )

    async def fetch_markets(self, asset: str) -> List[AssetMarket]:
        return [m for m in self._markets if m.matches_asset(asset)]

    async def fetch_positions(self, address: str) -> Tuple[List[VaultPosition], List[LPPosition]]:
        key = address.lower()
        return list(self._vault_positions.get(key, ())), list(self._lp_positions.get(key, ()))
