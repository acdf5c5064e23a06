from web3 import Web3

from forged_withdrawal.custom_errors import ConfigurationError

from .config import ForgeryConfig


def get_web3(rpc_url: str) -> Web3:
    if not rpc_url:
        raise ConfigurationError("RPC url is empty")

    w3 = Web3(Web3.HTTPProvider(rpc_url))

    return w3


def get_providers(config: ForgeryConfig) -> tuple[Web3, Web3]:
    """Return the (L1, L2) providers for a run."""
    return get_web3(config.l1_rpc_url), get_web3(config.l2_rpc_url)
