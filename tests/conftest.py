from typing import Dict, List, Optional, Sequence

import pytest
import rlp
from eth_utils.address import to_checksum_address
from hexbytes import HexBytes

from forged_withdrawal.hashing import hash_withdrawal
from forged_withdrawal.keys import slot_for, trie_key_for_withdrawal
from forged_withdrawal.types import (
    BlockHeader,
    OutputProposal,
    StorageProof,
    WithdrawalEvent,
    WithdrawalMessage,
)
from forged_withdrawal.utils.config import (
    ABI_L2_OUTPUT_ORACLE,
    ABI_L2_TO_L1_MESSAGE_PASSER,
    ForgeryConfig,
    OutputSource,
)

MESSAGE_PASSER = to_checksum_address("0x4200000000000000000000000000000000000016")
OUTPUT_ORACLE = to_checksum_address("0x90E9c4f8a994a250F6aEfd61CAFb4F2e895D458F")
L2_SENDER = to_checksum_address("0x8F6aB6ad3ba7a3D22A0BbC2B2Ae0E1E7d5a3fE19")
L1_TARGET = to_checksum_address("0x2b3a1F5c6A2a1b1E3d4C5b6A7e8F9a0B1c2D3e4F")

STORAGE_HASH = HexBytes("0x" + "5a" * 32)
STATE_ROOT = HexBytes("0x" + "c3" * 32)
BLOCK_HASH = HexBytes("0x" + "b7" * 32)
OUTPUT_ROOT = HexBytes("0x" + "0f" * 32)

CHILD_HASH = b"\x11" * 32


def compact(nibbles: str, leaf: bool) -> bytes:
    """Hex-prefix encode a nibble string."""
    flag = 2 if leaf else 0

    if len(nibbles) % 2:
        return bytes.fromhex(f"{flag + 1:x}{nibbles}")

    return bytes.fromhex(f"{flag:x}0{nibbles}")


def branch_node() -> bytes:
    return rlp.encode([CHILD_HASH] * 16 + [b""])


def extension_node(nibbles: str = "a") -> bytes:
    return rlp.encode([compact(nibbles, leaf=False), CHILD_HASH])


def leaf_node(nibbles: str, value: bytes = b"\x01") -> bytes:
    return rlp.encode([compact(nibbles, leaf=True), rlp.encode(value)])


def leaf_for(trie_key: bytes, depth: int) -> bytes:
    # a leaf below `depth` branch nodes holds the rest of the key
    return leaf_node(trie_key.hex()[depth:])


def make_event(nonce: int, block_number: int = 100, data: bytes = b"") -> WithdrawalEvent:
    message = WithdrawalMessage(
        nonce=nonce,
        sender=L2_SENDER,
        target=L1_TARGET,
        value=10**15,
        gasLimit=21000 + nonce,
        data=data,
    )

    return WithdrawalEvent(
        message=message,
        withdrawal_hash=hash_withdrawal(message),
        block_number=block_number,
        transaction_hash=HexBytes("0x" + f"{nonce:064x}"),
    )


def clean_proof(event: WithdrawalEvent, branches: int) -> List[bytes]:
    trie_key = trie_key_for_withdrawal(event.withdrawal_hash)
    return [branch_node() for _ in range(branches)] + [leaf_for(trie_key, branches)]


class FakeSource:
    """In-memory stand-in for `OPStackReader`."""

    def __init__(
        self,
        events: Sequence[WithdrawalEvent],
        proofs: Dict[bytes, Sequence[bytes]],
        latest_block: int = 1_000,
        output: Optional[OutputProposal] = None,
    ):
        self.events = list(events)
        self.proofs = {bytes(slot): nodes for slot, nodes in proofs.items()}
        self.latest_block = latest_block
        self.output = output or OutputProposal(
            index=42,
            output_root=OUTPUT_ROOT,
            timestamp=1_700_000_000,
            l2_block_number=900,
        )
        self.event_ranges: List[tuple] = []
        self.proof_requests: List[tuple] = []
        self.block_requests: List[int] = []

    def latest_block_number(self) -> int:
        return self.latest_block

    def get_withdrawal_events(self, from_block: int, to_block: int) -> List[WithdrawalEvent]:
        self.event_ranges.append((from_block, to_block))
        return list(self.events)

    def get_storage_proof(self, storage_slot: bytes, block_number: int) -> StorageProof:
        self.proof_requests.append((bytes(storage_slot), block_number))
        nodes = self.proofs[bytes(storage_slot)]
        return StorageProof(
            storage_hash=STORAGE_HASH,
            nodes=tuple(HexBytes(node) for node in nodes),
        )

    def get_block(self, block_number: int) -> BlockHeader:
        self.block_requests.append(block_number)
        return BlockHeader(number=block_number, hash=BLOCK_HASH, state_root=STATE_ROOT)

    def get_latest_output(self) -> OutputProposal:
        return self.output


def proofs_for(pairs) -> Dict[bytes, Sequence[bytes]]:
    return {slot_for(event.withdrawal_hash): nodes for event, nodes in pairs}


@pytest.fixture
def config(tmp_path) -> ForgeryConfig:
    return ForgeryConfig(
        l1_rpc_url="http://localhost:8545",
        l2_rpc_url="http://localhost:9545",
        output_source=OutputSource.ORACLE,
        message_passer={"address": MESSAGE_PASSER, "ABI": ABI_L2_TO_L1_MESSAGE_PASSER},
        output_oracle={"address": OUTPUT_ORACLE, "ABI": ABI_L2_OUTPUT_ORACLE},
        output_dir=str(tmp_path),
        network_prefix="test-",
    )
