"""
Storage slot and trie key derivation for `L2ToL1MessagePasser.sentMessages`.

`sentMessages` is a `mapping(bytes32 => bool)` living at storage slot 0, so the
slot of an entry is `keccak256(withdrawalHash . uint256(0))`. Storage tries are
secure tries: the key actually walked in the trie is `keccak256(slot)`.
ref: https://specs.optimism.io/protocol/withdrawals.html#the-l2tol1messagepasser-contract
"""

from web3 import Web3

SENT_MESSAGES_SLOT = 0


def slot_for(withdrawal_hash: bytes, base_slot: int = SENT_MESSAGES_SLOT) -> bytes:
    """
    Compute the storage slot of `sentMessages[withdrawal_hash]`.

    Parameters
    ----------
    withdrawal_hash : bytes
        32-byte withdrawal hash.

    base_slot : int, optional
        Storage index of the mapping itself. `0` for the message passer.

    Returns
    -------
    bytes
        32-byte storage slot.
    """
    storage_slot = Web3.keccak(
        bytes(withdrawal_hash) + base_slot.to_bytes(32, byteorder="big")
    )

    return bytes(storage_slot)


def trie_key_for(slot: bytes) -> bytes:
    """
    Compute the key used to walk the storage trie for a given slot.

    Slots shorter than 32 bytes are left padded with zeros before hashing.
    """
    slot = bytes(slot)

    if len(slot) > 32:
        raise ValueError(f"Storage slot must be at most 32 bytes, got {len(slot)}")

    return bytes(Web3.keccak(slot.rjust(32, b"\x00")))


def trie_key_for_withdrawal(withdrawal_hash: bytes) -> bytes:
    return trie_key_for(slot_for(withdrawal_hash))


def key_prefix(trie_key: bytes, length: int) -> str:
    # lowercase hex nibbles without `0x`
    if length < 0:
        raise ValueError(f"Prefix length must be non-negative, got {length}")

    return bytes(trie_key).hex()[:length]
