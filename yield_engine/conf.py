"""
Engine settings resolution.

All knobs live in ``settings.YIELD_ENGINE``; anything missing falls back to
the defaults below so the engine also works with a bare settings module.
"""
import copy
import logging

from django.conf import settings

logger = logging.getLogger(__name__)

DEFAULTS = {
    # Gateway
    "SOURCES": [],
    "SOURCE_TIMEOUT_SECONDS": 10.0,
    "RPC_REQUEST_TIMEOUT": 10,
    # Scanner
    "GAS_COST_USD": {
        "Lending": 25.0,
        "LP": 75.0,
        "LeveragedLP": 120.0,
        "Arbitrage": 150.0,
        "YieldFarming": 90.0,
    },
    "PROJECTION_MULTIPLIER": {
        "Lending": 1.05,
        "LP": 1.10,
        "LeveragedLP": 1.15,
        "Arbitrage": 1.0,
        "YieldFarming": 1.08,
    },
    "BASE_CONFIDENCE": {
        "Lending": 0.95,
        "LP": 0.82,
        "LeveragedLP": 0.7,
        "Arbitrage": 0.6,
        "YieldFarming": 0.75,
    },
    "STABLE_ASSETS": ["USDC", "USDT", "DAI", "USDE", "USDT0", "FRAX", "LUSD"],
    # Analytics / strategies
    "RISK_FREE_RATE": 4.0,
    "VOLATILITY_PER_RISK_POINT": 2.5,
    "DRAWDOWN_PER_RISK_POINT": 3.0,
    "BENCHMARK": {"strategy": "Hold base asset", "apy": 0.0},
    # Rebalance policy
    "TARGET_APY": 8.0,
    "IL_THRESHOLD_PCT": 5.0,
    "IL_CATASTROPHIC_MULTIPLE": 4.0,
    "HEALTH_FACTOR_SAFETY_MARGIN": 1.2,
    "DEFAULT_SLIPPAGE_TOLERANCE": 0.5,
    # Quality checks
    "MAX_SANE_APY": 1000.0,
    "MAX_DATA_AGE_SECONDS": 300,
    # Alerts
    "ALERT_COOLDOWN_MINUTES": 60,
    "MONITORED_ACCOUNTS": [],
    # Dotted path to an ExecutionSigner class; None leaves execution to operators
    "EXECUTION_SIGNER": None,
    # Price oracle
    "PRICE_ORACLE": {"type": "coingecko"},
    "COINGECKO_BASE_URL": "https://api.coingecko.com/api/v3",
    "COINGECKO_API_KEY": "",
    "COINGECKO_IDS": {
        "USDC": "usd-coin",
        "USDT": "tether",
        "DAI": "dai",
        "ETH": "ethereum",
        "WETH": "ethereum",
        "WBTC": "wrapped-bitcoin",
        "BTC": "bitcoin",
    },
    "PRICE_CACHE_SECONDS": 300,
    "PRICE_REQUEST_TIMEOUT": 20,
}


def engine_setting(name: str):
    """Return ``settings.YIELD_ENGINE[name]`` or the packaged default."""
    configured = getattr(settings, "YIELD_ENGINE", {}) or {}
    if name in configured:
        return configured[name]
    if name not in DEFAULTS:
        raise KeyError(f"Unknown yield engine setting: {name}")
    return copy.deepcopy(DEFAULTS[name])


def engine_lookup(name: str, key: str, default=None):
    """Read one entry of a per-strategy-type table such as GAS_COST_USD."""
    table = engine_setting(name) or {}
    if key in table:
        return table[key]
    fallback = DEFAULTS.get(name, {})
    if isinstance(fallback, dict) and key in fallback:
        return fallback[key]
    return default
