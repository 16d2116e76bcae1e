import logging

from django.conf import settings
from web3 import Web3

from ..conf import engine_setting

logger = logging.getLogger(__name__)


def get_rpc_url():
    """Get the RPC URL from settings."""
    return settings.BLOCKCHAIN_RPC_URL


def get_web3_provider():
    """Get a Web3 provider instance whose HTTP calls give up after RPC_REQUEST_TIMEOUT seconds."""
    rpc_url = get_rpc_url()
    if not rpc_url:
        raise ValueError("BLOCKCHAIN_RPC_URL is not configured")
    timeout = float(engine_setting("RPC_REQUEST_TIMEOUT"))
    return Web3(Web3.HTTPProvider(rpc_url, request_kwargs={"timeout": timeout}))
