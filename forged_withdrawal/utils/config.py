import os
from enum import StrEnum
from typing import Final, Mapping, NamedTuple, Optional, TypedDict

from dotenv import load_dotenv
from eth_typing import ChecksumAddress
from eth_utils.address import is_address, to_checksum_address
from web3 import Web3

from forged_withdrawal.custom_errors import ConfigurationError
from forged_withdrawal.scanner import (
    DEFAULT_LOOKBACK_BLOCKS,
    DEFAULT_MAX_CANDIDATES,
    DEFAULT_PREFIX_MARGIN,
)
from forged_withdrawal.search import (
    BASE_GAS_LIMIT,
    DEFAULT_MAX_ATTEMPTS,
    FORGED_NONCE,
    FORGED_SENDER,
    FORGED_TARGET,
    FORGED_VALUE,
    GAS_LIMIT_JITTER,
)


class ENV(StrEnum):
    L1_RPC_URL = "L1_RPC_URL"
    L2_RPC_URL = "L2_RPC_URL"
    OUTPUT_SOURCE = "OUTPUT_SOURCE"
    L2_OUTPUT_ORACLE_ADDRESS = "L2_OUTPUT_ORACLE_ADDRESS"
    DISPUTE_GAME_FACTORY_ADDRESS = "DISPUTE_GAME_FACTORY_ADDRESS"
    OPTIMISM_PORTAL_ADDRESS = "OPTIMISM_PORTAL_ADDRESS"
    L2_TO_L1_MESSAGE_PASSER_ADDRESS = "L2_TO_L1_MESSAGE_PASSER_ADDRESS"
    NETWORK_PREFIX = "NETWORK_PREFIX"
    OUTPUT_DIR = "OUTPUT_DIR"
    FORGED_TARGET = "FORGED_TARGET"
    FORGED_VALUE_ETHER = "FORGED_VALUE_ETHER"
    LOOKBACK_BLOCKS = "LOOKBACK_BLOCKS"
    MAX_CANDIDATES = "MAX_CANDIDATES"
    PREFIX_MARGIN = "PREFIX_MARGIN"
    MAX_ATTEMPTS = "MAX_ATTEMPTS"
    SEARCH_WORKERS = "SEARCH_WORKERS"


class OutputSource(StrEnum):
    # legacy `L2OutputOracle` (latestOutputIndex / getL2Output)
    ORACLE = "oracle"
    # fault proofs, `DisputeGameFactory.findLatestGames`
    DISPUTE_GAME = "dispute_game"


class ContractType(TypedDict):
    address: ChecksumAddress
    ABI: str


ABI_DIR = os.path.join(os.path.dirname(os.path.dirname(__file__)), "op_stack", "ABI")


def _abi(name: str) -> str:
    return os.path.join(ABI_DIR, name)


def _contract(address: str, abi_path: str) -> ContractType:
    return {
        "address": to_checksum_address(address),
        "ABI": abi_path,
    }


# OP STACK CONFIG

ABI_L2_TO_L1_MESSAGE_PASSER = _abi("L2ToL1MessagePasser.json")
ABI_L2_OUTPUT_ORACLE = _abi("L2OutputOracle.json")
ABI_DISPUTE_GAME_FACTORY = _abi("DisputeGameFactory.json")
ABI_OPTIMISM_PORTAL = _abi("OptimismPortal2.json")

L2_TO_L1_MESSAGE_PASSER_PREDEPLOY: Final = "0x4200000000000000000000000000000000000016"


# lower bounds shared by env parsing and CLI overrides
FIELD_MINIMUMS: Final = {
    "lookback_blocks": 0,
    "max_candidates": 1,
    "prefix_margin": 0,
    "max_attempts": 1,
    "workers": 1,
}


class ForgeryConfig(NamedTuple):
    l1_rpc_url: str
    l2_rpc_url: str
    output_source: OutputSource
    message_passer: ContractType
    output_oracle: Optional[ContractType] = None
    dispute_game_factory: Optional[ContractType] = None
    optimism_portal: Optional[ContractType] = None
    network_prefix: str = ""
    output_dir: str = "."
    forged_nonce: int = FORGED_NONCE
    forged_sender: ChecksumAddress = FORGED_SENDER
    forged_target: ChecksumAddress = FORGED_TARGET
    forged_value: int = FORGED_VALUE
    base_gas_limit: int = BASE_GAS_LIMIT
    gas_jitter: int = GAS_LIMIT_JITTER
    lookback_blocks: int = DEFAULT_LOOKBACK_BLOCKS
    max_candidates: int = DEFAULT_MAX_CANDIDATES
    prefix_margin: int = DEFAULT_PREFIX_MARGIN
    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    workers: int = 1


def _require(env: Mapping[str, str], key: ENV) -> str:
    value = env.get(key)

    if not value:
        raise ConfigurationError(f"`{key}` env variable not set")

    return value


def _address(env: Mapping[str, str], key: ENV, default: Optional[str] = None) -> str:
    value = env.get(key) or default

    if not value:
        raise ConfigurationError(f"`{key}` env variable not set")

    if not is_address(value):
        raise ConfigurationError(f"`{key}` is not a valid address: {value}")

    return value


def _int(env: Mapping[str, str], key: ENV, default: int, minimum: int = 0) -> int:
    value = env.get(key)

    if not value:
        return default

    try:
        parsed = int(value, 0)
    except ValueError as e:
        raise ConfigurationError(f"`{key}` must be an integer, got {value!r}", e)

    if parsed < minimum:
        raise ConfigurationError(f"`{key}` must be >= {minimum}, got {parsed}")

    return parsed


def _ether(env: Mapping[str, str], key: ENV, default: int) -> int:
    value = env.get(key)

    if not value:
        return default

    try:
        return int(Web3.to_wei(value, "ether"))
    except (ValueError, ArithmeticError) as e:
        raise ConfigurationError(f"`{key}` must be an ether amount, got {value!r}", e)


def load_config(env: Optional[Mapping[str, str]] = None) -> ForgeryConfig:
    """
    Build the run configuration from environment variables.

    When `env` is omitted, `.env` is loaded into the process environment first
    (existing variables win) and `os.environ` is used.

    Raises
    ------
    ConfigurationError
        If a required endpoint or address is missing or malformed.
    """
    if env is None:
        load_dotenv()
        env = os.environ

    try:
        output_source = OutputSource(env.get(ENV.OUTPUT_SOURCE) or OutputSource.ORACLE)
    except ValueError as e:
        raise ConfigurationError(
            f"`{ENV.OUTPUT_SOURCE}` must be one of {[s.value for s in OutputSource]}",
            e,
        )

    output_oracle = None
    dispute_game_factory = None
    optimism_portal = None

    if output_source == OutputSource.ORACLE:
        output_oracle = _contract(
            _address(env, ENV.L2_OUTPUT_ORACLE_ADDRESS), ABI_L2_OUTPUT_ORACLE
        )
    else:
        dispute_game_factory = _contract(
            _address(env, ENV.DISPUTE_GAME_FACTORY_ADDRESS), ABI_DISPUTE_GAME_FACTORY
        )
        optimism_portal = _contract(
            _address(env, ENV.OPTIMISM_PORTAL_ADDRESS), ABI_OPTIMISM_PORTAL
        )

    return ForgeryConfig(
        l1_rpc_url=_require(env, ENV.L1_RPC_URL),
        l2_rpc_url=_require(env, ENV.L2_RPC_URL),
        output_source=output_source,
        message_passer=_contract(
            _address(
                env,
                ENV.L2_TO_L1_MESSAGE_PASSER_ADDRESS,
                L2_TO_L1_MESSAGE_PASSER_PREDEPLOY,
            ),
            ABI_L2_TO_L1_MESSAGE_PASSER,
        ),
        output_oracle=output_oracle,
        dispute_game_factory=dispute_game_factory,
        optimism_portal=optimism_portal,
        network_prefix=env.get(ENV.NETWORK_PREFIX) or "",
        output_dir=env.get(ENV.OUTPUT_DIR) or ".",
        forged_target=to_checksum_address(
            _address(env, ENV.FORGED_TARGET, FORGED_TARGET)
        ),
        forged_value=_ether(env, ENV.FORGED_VALUE_ETHER, FORGED_VALUE),
        lookback_blocks=_int(
            env,
            ENV.LOOKBACK_BLOCKS,
            DEFAULT_LOOKBACK_BLOCKS,
            FIELD_MINIMUMS["lookback_blocks"],
        ),
        max_candidates=_int(
            env,
            ENV.MAX_CANDIDATES,
            DEFAULT_MAX_CANDIDATES,
            FIELD_MINIMUMS["max_candidates"],
        ),
        prefix_margin=_int(
            env,
            ENV.PREFIX_MARGIN,
            DEFAULT_PREFIX_MARGIN,
            FIELD_MINIMUMS["prefix_margin"],
        ),
        max_attempts=_int(
            env,
            ENV.MAX_ATTEMPTS,
            DEFAULT_MAX_ATTEMPTS,
            FIELD_MINIMUMS["max_attempts"],
        ),
        workers=_int(env, ENV.SEARCH_WORKERS, 1, FIELD_MINIMUMS["workers"]),
    )


def apply_overrides(config: ForgeryConfig, **overrides) -> ForgeryConfig:
    """
    Return `config` with every override that isn't `None` applied.

    Numeric fields are held to the same lower bounds as their environment
    variables.

    Raises
    ------
    ConfigurationError
        If an override is below its minimum.
    """
    values = {key: value for key, value in overrides.items() if value is not None}

    for key, value in values.items():
        minimum = FIELD_MINIMUMS.get(key)

        if minimum is not None and value < minimum:
            raise ConfigurationError(f"`{key}` must be >= {minimum}, got {value}")

    return config._replace(**values)
