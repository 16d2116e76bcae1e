"""
Market sources. Every source implements MarketSource and returns the common
AssetMarket / position shapes, so fixture and live sources are interchangeable.
"""
import logging
from typing import Any, Dict, Iterable, List, Optional

from ..conf import engine_setting
from ..exceptions import InvalidConfigurationError
from ..types import SourceKind
from .base import MarketSource
from .cross_protocol import YieldsApiSource
from .lending import Erc4626VaultSource
from .pools import SubgraphPoolSource
from .static import StaticMarketSource

logger = logging.getLogger(__name__)

__all__ = [
    'MarketSource',
    'StaticMarketSource',
    'Erc4626VaultSource',
    'SubgraphPoolSource',
    'YieldsApiSource',
    'build_source',
    'build_sources_from_settings',
]


def build_source(definition: Dict[str, Any], price_oracle=None) -> MarketSource:
    """
    Build one source from a ``SOURCES`` entry.

    Supported ``type`` values: ``static``, ``erc4626``, ``subgraph``, ``yields_api``.
    """
    source_type = definition.get("type")
    name = definition.get("name") or source_type
    if source_type == "static":
        try:
            kind = SourceKind(definition.get("kind", SourceKind.LENDING.value))
        except ValueError:
            raise InvalidConfigurationError(f"source {name}: unknown kind {definition.get('kind')!r}")
        return StaticMarketSource.from_records(
            name,
            kind,
            markets=definition.get("markets", []),
            positions=definition.get("positions"),
            protocol=definition.get("protocol"),
        )
    if source_type == "erc4626":
        return Erc4626VaultSource(
            name,
            protocol=definition.get("protocol", name),
            vault_addresses=definition.get("vaults", []),
            price_oracle=price_oracle,
        )
    if source_type == "subgraph":
        if not definition.get("url"):
            raise InvalidConfigurationError(f"source {name}: subgraph url is required")
        return SubgraphPoolSource(
            name,
            protocol=definition.get("protocol", name),
            subgraph_url=definition["url"],
            price_oracle=price_oracle,
            max_pools=definition.get("max_pools", 100),
        )
    if source_type == "yields_api":
        kwargs = {k: definition[k] for k in ("url", "projects", "chain", "min_tvl_usd") if k in definition}
        return YieldsApiSource(name, **kwargs)
    raise InvalidConfigurationError(f"source {name}: unknown source type {source_type!r}")


def build_sources_from_settings(definitions: Optional[Iterable[Dict[str, Any]]] = None,
                                price_oracle=None) -> List[MarketSource]:
    definitions = engine_setting("SOURCES") if definitions is None else definitions
    sources = [build_source(d, price_oracle) for d in definitions]
    logger.info(f"Configured {len(sources)} market sources: {[s.name for s in sources]}")
    return sources
