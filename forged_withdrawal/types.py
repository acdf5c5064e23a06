from enum import StrEnum
from typing import List, NamedTuple, Optional, Protocol, Tuple

from eth_typing import ChecksumAddress
from hexbytes import HexBytes


class WithdrawalMessage(NamedTuple):
    """
    Fields of `Types.WithdrawalTransaction` in the same order the
    `L2ToL1MessagePasser` hashes them.
    """

    nonce: int
    sender: ChecksumAddress
    target: ChecksumAddress
    value: int
    gasLimit: int
    data: bytes


class WithdrawalEvent(NamedTuple):
    message: WithdrawalMessage
    withdrawal_hash: HexBytes
    block_number: int
    transaction_hash: Optional[HexBytes] = None


class NodeKind(StrEnum):
    BRANCH = "branch"
    EXTENSION = "extension"
    LEAF = "leaf"
    UNKNOWN = "unknown"


class ProofNode(NamedTuple):
    """
    - `raw`: RLP-encoded node exactly as returned by `eth_getProof`.
    - `kind`: shape of the decoded node.
    - `path`: hex nibbles of the compact path (leaf and extension only).
    - `value`: raw value bytes (leaf only).
    """

    raw: HexBytes
    kind: NodeKind
    path: str = ""
    value: Optional[bytes] = None

    def describe(self) -> str:
        if self.kind == NodeKind.LEAF:
            value = self.value.hex() if self.value is not None else ""
            return f"leaf [path={self.path}] [value={value}]"
        if self.kind == NodeKind.EXTENSION:
            return f"extension [path={self.path}]"
        return str(self.kind)


class ProofPath(NamedTuple):
    trie_key: bytes
    nodes: Tuple[ProofNode, ...]

    @property
    def kinds(self) -> Tuple[NodeKind, ...]:
        return tuple(node.kind for node in self.nodes)

    @property
    def raw_nodes(self) -> Tuple[HexBytes, ...]:
        return tuple(node.raw for node in self.nodes)

    def __len__(self) -> int:
        return len(self.nodes)


class StorageProof(NamedTuple):
    storage_hash: HexBytes
    nodes: Tuple[HexBytes, ...]


class BlockHeader(NamedTuple):
    number: int
    hash: HexBytes
    state_root: HexBytes


class OutputProposal(NamedTuple):
    """
    - `index`: L2 output index (or dispute game index) the proof is built against.
    - `output_root`: 32-byte output root committed on L1.
    - `timestamp`: L1 timestamp of the commitment.
    - `l2_block_number`: L2 block the output root describes.
    """

    index: int
    output_root: HexBytes
    timestamp: int
    l2_block_number: int


class ScanCandidate(NamedTuple):
    event: WithdrawalEvent
    path: ProofPath
    storage_proof: StorageProof


class Rejection(NamedTuple):
    withdrawal_hash: HexBytes
    block_number: int
    reason: str
    transaction_hash: Optional[HexBytes] = None


class ScanResult(NamedTuple):
    candidate: ScanCandidate
    trie_key: bytes
    required_prefix: str
    scanned: int
    rejections: Tuple[Rejection, ...] = ()


class SearchResult(NamedTuple):
    candidate: WithdrawalMessage
    index: int
    trie_key: bytes
    attempts: int


class ForgedArtifact(NamedTuple):
    proof: Tuple[HexBytes, ...]
    nonce: int
    sender: ChecksumAddress
    target: ChecksumAddress
    value: int
    gasLimit: int
    data: bytes
    l2OutputIndex: int
    version: bytes
    stateRoot: HexBytes
    storageHash: HexBytes
    latestBlockhash: HexBytes


class WithdrawalSource(Protocol):
    """Remote reads the pipeline needs from the L1 and L2 nodes."""

    def latest_block_number(self) -> int: ...

    def get_withdrawal_events(
        self, from_block: int, to_block: int
    ) -> List[WithdrawalEvent]: ...

    def get_storage_proof(self, storage_slot: bytes, block_number: int) -> StorageProof: ...

    def get_block(self, block_number: int) -> BlockHeader: ...

    def get_latest_output(self) -> OutputProposal: ...
