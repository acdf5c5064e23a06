from eth_abi.abi import encode
from hexbytes import HexBytes
from web3 import Web3

from .types import WithdrawalEvent, WithdrawalMessage

# `Hashing.hashWithdrawal` in contracts-bedrock:
# keccak256(abi.encode(nonce, sender, target, value, gasLimit, data))
WITHDRAWAL_ABI_TYPES = ["uint256", "address", "address", "uint256", "uint256", "bytes"]


def hash_withdrawal(message: WithdrawalMessage) -> HexBytes:
    """
    Compute the 32-byte withdrawal hash the `L2ToL1MessagePasser` records in
    `sentMessages` and emits in `MessagePassed`.

    Parameters
    ----------
    message : WithdrawalMessage
        Struct containing the six fields that define the withdrawal.

    Returns
    -------
    HexBytes
    """
    return Web3.keccak(encode(WITHDRAWAL_ABI_TYPES, list(message)))


def verify_withdrawal_hash(event: WithdrawalEvent) -> bool:
    """
    Check that the fields of a parsed `MessagePassed` event re-hash to the
    `withdrawalHash` emitted alongside them.
    """
    computed_hash = hash_withdrawal(event.message)

    return HexBytes(event.withdrawal_hash) == computed_hash
