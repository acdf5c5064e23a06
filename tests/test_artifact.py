import json
import os
import random
import stat

from hexbytes import HexBytes

from conftest import (
    BLOCK_HASH,
    STATE_ROOT,
    STORAGE_HASH,
    FakeSource,
    clean_proof,
    make_event,
    proofs_for,
)
from forged_withdrawal.artifact import (
    OUTPUT_VERSION_V0,
    artifact_path,
    artifact_to_json,
    assemble_artifact,
    write_artifact,
)
from forged_withdrawal.scanner import WithdrawalScanner
from forged_withdrawal.search import build_base_candidate, find_matching_withdrawal


def _artifact():
    event = make_event(9)
    nodes = clean_proof(event, 1)
    source = FakeSource([event], proofs_for([(event, nodes)]))

    scan = WithdrawalScanner(source).scan(proof_block=900)
    search = find_matching_withdrawal(
        build_base_candidate(rng=random.Random(5)), "", max_attempts=1
    )
    output = source.get_latest_output()
    block = source.get_block(900)

    return assemble_artifact(scan, search, output, block), nodes, search


def test_assemble_keeps_real_proof_and_forged_fields():
    artifact, nodes, search = _artifact()

    assert artifact.proof == tuple(HexBytes(node) for node in nodes)
    assert artifact.nonce == search.candidate.nonce
    assert artifact.gasLimit == search.candidate.gasLimit
    assert artifact.data == search.candidate.data
    assert artifact.l2OutputIndex == 42
    assert artifact.version == OUTPUT_VERSION_V0
    assert artifact.stateRoot == STATE_ROOT
    assert artifact.storageHash == STORAGE_HASH
    assert artifact.latestBlockhash == BLOCK_HASH


def test_json_encoding():
    artifact, nodes, search = _artifact()

    encoded = artifact_to_json(artifact)

    assert list(encoded) == [
        "proof",
        "nonce",
        "sender",
        "target",
        "value",
        "gasLimit",
        "data",
        "l2OutputIndex",
        "version",
        "stateRoot",
        "storageHash",
        "latestBlockhash",
    ]
    assert encoded["proof"] == ["0x" + node.hex() for node in nodes]
    assert encoded["nonce"] == str(search.candidate.nonce)
    assert encoded["value"] == "5000000000000000000"
    assert encoded["gasLimit"] == str(search.candidate.gasLimit)
    assert encoded["data"] == "0x0000"
    assert encoded["l2OutputIndex"] == 42
    assert encoded["version"] == "0x" + "00" * 32
    assert encoded["stateRoot"] == "0x" + "c3" * 32
    assert encoded["sender"] == "0x4200000000000000000000000000000000000007"


def test_write_artifact(tmp_path):
    artifact, _, _ = _artifact()
    path = artifact_path(str(tmp_path / "out"), "sepolia-")

    written = write_artifact(artifact, path)

    assert written == path
    assert os.path.basename(path) == "sepolia-forgedWithdrawal.json"
    with open(path) as file:
        assert json.load(file) == artifact_to_json(artifact)
    assert os.listdir(tmp_path / "out") == ["sepolia-forgedWithdrawal.json"]


def test_written_artifact_follows_umask(tmp_path):
    artifact, _, _ = _artifact()
    umask = os.umask(0o022)

    try:
        path = write_artifact(artifact, str(tmp_path / "forgedWithdrawal.json"))
    finally:
        os.umask(umask)

    assert stat.S_IMODE(os.stat(path).st_mode) == 0o644
