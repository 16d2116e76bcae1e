"""
ERC-4626 lending vault source.

Reads vault state straight from chain through web3. Calls are blocking, so
the whole read runs in a worker thread to keep the gateway's fan-out
concurrent.
"""
import logging
from decimal import Decimal
from typing import Dict, List, Optional, Tuple

from ..exceptions import PriceUnavailableError, SourceUnavailableError
from ..types import AssetMarket, LPPosition, SourceKind, StrategyType, VaultPosition
from ..utils.apy import approximate_borrow_apy, per_second_rate_to_apy
from ..utils.rpc import get_web3_provider
from .base import MarketSource, run_blocking

logger = logging.getLogger(__name__)

# ERC-4626 + EVK subset used for reads
VAULT_ABI = [
    {"inputs": [], "name": "asset", "outputs": [{"name": "", "type": "address"}], "stateMutability": "view", "type": "function"},
    {"inputs": [], "name": "totalAssets", "outputs": [{"name": "", "type": "uint256"}], "stateMutability": "view", "type": "function"},
    {"inputs": [], "name": "totalBorrows", "outputs": [{"name": "", "type": "uint256"}], "stateMutability": "view", "type": "function"},
    {"inputs": [], "name": "interestRate", "outputs": [{"name": "", "type": "uint256"}], "stateMutability": "view", "type": "function"},
    {"inputs": [{"name": "account", "type": "address"}], "name": "balanceOf", "outputs": [{"name": "", "type": "uint256"}], "stateMutability": "view", "type": "function"},
    {"inputs": [{"name": "account", "type": "address"}], "name": "debtOf", "outputs": [{"name": "", "type": "uint256"}], "stateMutability": "view", "type": "function"},
    {"inputs": [{"name": "shares", "type": "uint256"}], "name": "convertToAssets", "outputs": [{"name": "", "type": "uint256"}], "stateMutability": "view", "type": "function"},
    {"inputs": [{"name": "account", "type": "address"}, {"name": "liquidation", "type": "bool"}], "name": "accountLiquidity",
     "outputs": [{"name": "collateralValue", "type": "uint256"}, {"name": "liabilityValue", "type": "uint256"}],
     "stateMutability": "view", "type": "function"},
]

ERC20_METADATA_ABI = [
    {"inputs": [], "name": "symbol", "outputs": [{"name": "", "type": "string"}], "stateMutability": "view", "type": "function"},
    {"inputs": [], "name": "decimals", "outputs": [{"name": "", "type": "uint8"}], "stateMutability": "view", "type": "function"},
]


class Erc4626VaultSource(MarketSource):
    """
    Lending markets from a list of ERC-4626 vaults.

    Args:
        name: Source name used in logs and error tags
        protocol: Protocol label stamped on every market
        vault_addresses: Vault contract addresses to read
        price_oracle: Optional oracle used to value positions in USD
        web3: Optional Web3 instance (defaults to the configured RPC)
    """

    kind = SourceKind.LENDING

    def __init__(self, name: str, protocol: str, vault_addresses: List[str], price_oracle=None, web3=None):
        super().__init__(name)
        self.protocol = protocol
        self.vault_addresses = list(vault_addresses)
        self.price_oracle = price_oracle
        self._web3 = web3

    @property
    def web3(self):
        if self._web3 is None:
            self._web3 = get_web3_provider()
        return self._web3

    def _vault(self, address: str):
        return self.web3.eth.contract(address=self.web3.to_checksum_address(address), abi=VAULT_ABI)

    def _asset_metadata(self, vault) -> Tuple[str, int]:
        asset_address = vault.functions.asset().call()
        token = self.web3.eth.contract(address=asset_address, abi=ERC20_METADATA_ABI)
        return token.functions.symbol().call(), token.functions.decimals().call()

    def _read_market(self, address: str) -> AssetMarket:
        vault = self._vault(address)
        symbol, decimals = self._asset_metadata(vault)
        scale = Decimal(10 ** decimals)

        total_assets_raw = vault.functions.totalAssets().call()
        total_borrows_raw = vault.functions.totalBorrows().call()
        rate = vault.functions.interestRate().call()

        total_assets = float(Decimal(total_assets_raw) / scale)
        total_borrows = float(Decimal(total_borrows_raw) / scale)
        utilization = min(1.0, total_borrows / total_assets) if total_assets > 0 else 0.0

        supply_apy = per_second_rate_to_apy(rate, utilization)
        return AssetMarket(
            asset=symbol,
            protocol=self.protocol,
            supply_apy=supply_apy,
            borrow_apy=approximate_borrow_apy(supply_apy),
            utilization=utilization,
            total_assets=total_assets,
            available_liquidity=max(0.0, total_assets - total_borrows),
            kind=self.kind,
            strategy_type=StrategyType.LENDING,
            address=address,
        )

    def _read_markets(self, asset: str) -> List[AssetMarket]:
        markets = []
        failures = 0
        for address in self.vault_addresses:
            try:
                market = self._read_market(address)
            except Exception as e:
                failures += 1
                logger.warning(f"{self.name}: failed to read vault {address}: {str(e)}")
                continue
            if market.matches_asset(asset):
                markets.append(market)
        if self.vault_addresses and failures == len(self.vault_addresses):
            raise SourceUnavailableError(self.name, "no vault could be read")
        return markets

    def _usd(self, symbol: str, amount: float) -> float:
        if self.price_oracle is None:
            return amount
        try:
            return amount * self.price_oracle.get_price(symbol)
        except PriceUnavailableError:
            logger.warning(f"{self.name}: no price for {symbol}, valuing position at 0")
            return 0.0

    def _read_position(self, address: str, vault_address: str) -> Optional[VaultPosition]:
        vault = self._vault(vault_address)
        account = self.web3.to_checksum_address(address)
        market = self._read_market(vault_address)
        _, decimals = self._asset_metadata(vault)
        scale = Decimal(10 ** decimals)

        shares = vault.functions.balanceOf(account).call()
        debt_raw = vault.functions.debtOf(account).call()
        if shares == 0 and debt_raw == 0:
            return None

        assets_raw = vault.functions.convertToAssets(shares).call() if shares > 0 else 0
        value_usd = self._usd(market.asset, float(Decimal(assets_raw) / scale))
        borrow_usd = self._usd(market.asset, float(Decimal(debt_raw) / scale))

        health_factor = None
        if debt_raw > 0:
            collateral_value, liability_value = vault.functions.accountLiquidity(account, False).call()
            health_factor = collateral_value / liability_value if liability_value else None

        return VaultPosition(
            protocol=self.protocol,
            vault_address=vault_address,
            asset=market.asset,
            value_usd=value_usd,
            supply_apy=market.supply_apy,
            borrow_value_usd=borrow_usd,
            borrow_apy=market.borrow_apy,
            health_factor=health_factor,
            risk_score=min(market.utilization * 10, 8.0),
        )

    def _read_positions(self, address: str) -> List[VaultPosition]:
        positions = []
        for vault_address in self.vault_addresses:
            try:
                position = self._read_position(address, vault_address)
            except Exception as e:
                logger.warning(f"{self.name}: failed to read position in {vault_address} for {address}: {str(e)}")
                continue
            if position is not None:
                positions.append(position)
        return positions

    async def fetch_markets(self, asset: str) -> List[AssetMarket]:
        return await run_blocking(self._read_markets, asset)

    async def fetch_positions(self, address: str) -> Tuple[List[VaultPosition], List[LPPosition]]:
        positions = await run_blocking(self._read_positions, address)
        return positions, []
