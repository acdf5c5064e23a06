"""
Read-only OP Stack access used to build forged withdrawals.

Every response is parsed into the typed tuples of `forged_withdrawal.types`
right here, so the rest of the pipeline never touches raw web3 objects.
"""

import logging
from typing import Any, List, Optional

from eth_utils.address import to_checksum_address
from hexbytes import HexBytes
from web3 import Web3
from web3.contract import Contract

from forged_withdrawal.custom_errors import (
    ConfigurationError,
    ProofResponseError,
    RemoteCallError,
)
from forged_withdrawal.types import (
    BlockHeader,
    OutputProposal,
    StorageProof,
    WithdrawalEvent,
    WithdrawalMessage,
)
from forged_withdrawal.utils.chain import get_contract
from forged_withdrawal.utils.config import ContractType, ForgeryConfig, OutputSource
from forged_withdrawal.utils.providers import get_providers

from .types import GameSearchResult

logger = logging.getLogger(__name__)


def _field(container: Any, name: str, context: str) -> Any:
    try:
        value = container[name]
    except (KeyError, TypeError, IndexError) as e:
        raise ProofResponseError(f"`{name}` missing from {context}", e)

    if value is None:
        raise ProofResponseError(f"`{name}` is null in {context}")

    return value


def parse_message_passed(event: Any) -> WithdrawalEvent:
    """
    Convert a decoded `MessagePassed` log into a `WithdrawalEvent`.

    Raises
    ------
    ProofResponseError
        If any of the event fields is missing.
    """
    args = _field(event, "args", "MessagePassed log")
    block_number = int(_field(event, "blockNumber", "MessagePassed log"))
    context = f"MessagePassed log in L2 block {block_number}"

    tx_hash = event.get("transactionHash") if hasattr(event, "get") else None

    message = WithdrawalMessage(
        nonce=int(_field(args, "nonce", context)),
        sender=to_checksum_address(_field(args, "sender", context)),
        target=to_checksum_address(_field(args, "target", context)),
        value=int(_field(args, "value", context)),
        gasLimit=int(_field(args, "gasLimit", context)),
        data=bytes(_field(args, "data", context)),
    )

    withdrawal_hash = HexBytes(_field(args, "withdrawalHash", context))

    if len(withdrawal_hash) != 32:
        raise ProofResponseError(
            f"`withdrawalHash` must be 32 bytes in {context}, got {len(withdrawal_hash)}"
        )

    return WithdrawalEvent(
        message=message,
        withdrawal_hash=withdrawal_hash,
        block_number=block_number,
        transaction_hash=HexBytes(tx_hash) if tx_hash is not None else None,
    )


def parse_storage_proof(response: Any, context: str = "eth_getProof response") -> StorageProof:
    """
    Extract the storage root and the RLP proof nodes of the first (and only)
    requested slot from an `eth_getProof` response.
    """
    storage_hash = HexBytes(_field(response, "storageHash", context))
    storage_proofs = _field(response, "storageProof", context)

    if len(storage_proofs) == 0:
        raise ProofResponseError(f"No storage proofs returned in {context}")

    nodes = _field(storage_proofs[0], "proof", context)

    try:
        parsed_nodes = tuple(HexBytes(node) for node in nodes)
    except (TypeError, ValueError) as e:
        raise ProofResponseError(f"Proof nodes aren't hex encoded in {context}", e)

    return StorageProof(storage_hash=storage_hash, nodes=parsed_nodes)


def parse_block_header(block: Any) -> BlockHeader:
    if not block:
        raise ProofResponseError("Empty block returned by eth_getBlockByNumber")

    number = int(_field(block, "number", "BlockData"))
    context = f"BlockData of block {number}"

    return BlockHeader(
        number=number,
        hash=HexBytes(_field(block, "hash", context)),
        state_root=HexBytes(_field(block, "stateRoot", context)),
    )


def parse_output_proposal(index: int, result: Any) -> OutputProposal:
    """
    `L2OutputOracle.getL2Output` returns `(outputRoot, timestamp, l2BlockNumber)`.
    """
    if not result or len(result) != 3:
        raise ProofResponseError(
            f"`getL2Output({index})` must return a tuple of size 3, got {result}"
        )

    output_root, timestamp, l2_block_number = result

    return OutputProposal(
        index=int(index),
        output_root=HexBytes(output_root),
        timestamp=int(timestamp),
        l2_block_number=int(l2_block_number),
    )


def parse_game_result(latest_game: Any) -> GameSearchResult:
    if not latest_game or not len(latest_game) == 5:
        raise ProofResponseError(
            "`Game` must return a tuple of size 5. Invalid dispute game."
        )

    game_result: GameSearchResult = {
        "index": latest_game[0],
        "metadata": latest_game[1],
        "timestamp": latest_game[2],
        "root_claim": latest_game[3],
        "extra_data": latest_game[4],
    }

    return game_result


def game_output_proposal(game_result: GameSearchResult) -> OutputProposal:
    extra_data = game_result["extra_data"]

    if len(extra_data) < 32:
        raise ProofResponseError(
            f"Dispute game {game_result['index']} extraData is shorter than 32 bytes"
        )

    # extraData of output bisection games starts with the L2 block number
    return OutputProposal(
        index=int(game_result["index"]),
        output_root=HexBytes(game_result["root_claim"]),
        timestamp=int(game_result["timestamp"]),
        l2_block_number=int.from_bytes(extra_data[:32], "big"),
    )


class OPStackReader:
    """
    Reads withdrawal events, storage proofs, blocks and output commitments
    from an OP-Stack chain and its L1.

    Parameters
    ----------
    config: ForgeryConfig
        Endpoints and contract addresses for the run.

    l1_provider: Web3, optional
    l2_provider: Web3, optional
        Pre-built providers. If omitted, HTTP providers are created from
        the RPC urls in `config`.

    MORE INFO
    ----------
    Every L2 -> L1 withdrawal is recorded by the `L2ToL1MessagePasser`
    predeploy as `sentMessages[withdrawalHash] = true` and announced with a
    `MessagePassed` event. The storage root of the message passer is part of
    the output root committed on L1, either by the `L2OutputOracle` or, with
    fault proofs, as the root claim of a dispute game created through the
    `DisputeGameFactory`.

    No call is retried: a failing RPC raises `RemoteCallError` immediately.
    """

    def __init__(
        self,
        config: ForgeryConfig,
        l1_provider: Optional[Web3] = None,
        l2_provider: Optional[Web3] = None,
    ):
        self.config = config

        if l1_provider is None or l2_provider is None:
            default_l1, default_l2 = get_providers(config)
            l1_provider = l1_provider or default_l1
            l2_provider = l2_provider or default_l2

        self.l1_provider = l1_provider
        self.l2_provider = l2_provider

    def _get_l1_contract(self, info: Optional[ContractType]) -> Contract:
        if not info:
            raise ConfigurationError(
                f"Contract information missing for output source `{self.config.output_source}`"
            )

        return get_contract(self.l1_provider, info)

    def _get_message_passer(self) -> Contract:
        return get_contract(self.l2_provider, self.config.message_passer)

    def latest_block_number(self) -> int:
        try:
            return self.l2_provider.eth.block_number
        except Exception as e:
            raise RemoteCallError(f"Fetching the latest L2 block number failed: {e}", e)

    def get_withdrawal_events(self, from_block: int, to_block: int) -> List[WithdrawalEvent]:
        """
        Fetch every `MessagePassed` event of the message passer in
        `[from_block, to_block]`.

        Returns
        -------
        List[WithdrawalEvent]
            Events in log order.
        """
        mp_contract = self._get_message_passer()

        try:
            logs = mp_contract.events.MessagePassed().get_logs(
                from_block=from_block,
                to_block=to_block,
            )
        except Exception as e:
            raise RemoteCallError(
                f"Fetching MessagePassed events in L2 blocks {from_block}..{to_block} failed: {e}",
                e,
            )

        return [parse_message_passed(log) for log in logs]

    def get_storage_proof(self, storage_slot: bytes, block_number: int) -> StorageProof:
        """
        Generate the Merkle Patricia proof of a message passer storage slot.

        Parameters
        ----------
        storage_slot : bytes
            32-byte storage slot, i.e. `slot_for(withdrawal_hash)`.

        block_number : int
            L2 block the proof is taken against.

        Returns
        -------
        StorageProof
        """
        address = self.config.message_passer["address"]
        context = (
            f"eth_getProof({address}, 0x{bytes(storage_slot).hex()}) at L2 block {block_number}"
        )

        try:
            proof = self.l2_provider.eth.get_proof(
                address,
                [int.from_bytes(storage_slot, "big")],
                block_number,
            )
        except Exception as e:
            raise RemoteCallError(f"{context} failed: {e}", e)

        if not proof:
            raise ProofResponseError(f"{context} returned type {type(proof)}")

        return parse_storage_proof(proof, context)

    def get_block(self, block_number: int) -> BlockHeader:
        try:
            block = self.l2_provider.eth.get_block(block_number)
        except Exception as e:
            raise RemoteCallError(f"Fetching L2 block {block_number} failed: {e}", e)

        return parse_block_header(block)

    def _get_latest_oracle_output(self) -> OutputProposal:
        oracle = self._get_l1_contract(self.config.output_oracle)

        try:
            l2_output_index = oracle.functions.latestOutputIndex().call()
            result = oracle.functions.getL2Output(l2_output_index).call()
        except Exception as e:
            raise RemoteCallError(f"Reading the latest L2OutputOracle output failed: {e}", e)

        return parse_output_proposal(l2_output_index, result)

    def _get_latest_game_result(self) -> GameSearchResult:
        """
        Locate the most recent dispute game of the portal's respected game type.
        """
        dispute_game_factory = self._get_l1_contract(self.config.dispute_game_factory)
        portal = self._get_l1_contract(self.config.optimism_portal)

        try:
            game_count = dispute_game_factory.functions.gameCount().call()
            respected_game_type = portal.functions.respectedGameType().call()

            latest_games = dispute_game_factory.functions.findLatestGames(
                respected_game_type,
                game_count - 1,
                1,
            ).call()
        except Exception as e:
            raise RemoteCallError(f"Reading the latest dispute game failed: {e}", e)

        if not latest_games or not len(latest_games) > 0:
            raise ProofResponseError(
                f"`len(latest_games) = {len(latest_games or [])}`. No dispute game "
                f"of type {respected_game_type} found."
            )

        return parse_game_result(latest_games[0])

    def get_latest_output(self) -> OutputProposal:
        """
        Return the most recent output commitment on L1 the forged withdrawal
        will be proven against.
        """
        if self.config.output_source == OutputSource.DISPUTE_GAME:
            return game_output_proposal(self._get_latest_game_result())

        return self._get_latest_oracle_output()
