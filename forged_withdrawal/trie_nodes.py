"""
Classification of Merkle-Patricia-Trie proof nodes.

A storage proof returned by `eth_getProof` is an ordered list of RLP-encoded
nodes from the storage root down to the slot. Only the node shapes matter here:

* branch    - 17 item list (16 children + value)
* extension - [compact path, child], flag nibble 0x0 (even) or 0x1 (odd)
* leaf      - [compact path, value], flag nibble 0x2 (even) or 0x3 (odd)

ref: https://ethereum.org/en/developers/docs/data-structures-and-encoding/patricia-merkle-trie/
"""

import logging
from typing import Iterable, Tuple, Union

import rlp
from hexbytes import HexBytes
from rlp.exceptions import DecodingError

from .types import NodeKind, ProofNode, ProofPath

logger = logging.getLogger(__name__)

BRANCH_NODE_LENGTH = 17
SHORT_NODE_LENGTH = 2

ODD_FLAG = 0x1
LEAF_FLAG = 0x2


def decode_compact(encoded: bytes) -> Tuple[str, bool]:
    """
    Decode a hex-prefix (compact) encoded path.

    The high nibble of the first byte is the flag: bit 0 marks an odd number of
    path nibbles, bit 1 marks a leaf. For odd paths only the flag nibble is
    dropped, for even paths the flag nibble and its zero padding nibble are.

    Parameters
    ----------
    encoded : bytes
        Element 0 of a leaf or extension node.

    Returns
    -------
    Tuple[str, bool]
        Remaining path as lowercase hex nibbles, and whether the node is a leaf.
    """
    if len(encoded) == 0:
        raise ValueError("Compact encoded path is empty")

    nibbles = bytes(encoded).hex()
    flag = int(nibbles[0], 16)

    if flag > (ODD_FLAG | LEAF_FLAG):
        raise ValueError(f"Invalid compact path flag nibble: {flag:#x}")

    offset = 1 if flag & ODD_FLAG else 2
    is_leaf = bool(flag & LEAF_FLAG)

    return nibbles[offset:], is_leaf


def _to_bytes(node: Union[str, bytes]) -> HexBytes:
    # HexBytes accepts "0x.." and bare hex strings as well as raw bytes
    return HexBytes(node)


def classify_node(node: Union[str, bytes]) -> ProofNode:
    """
    Decode one RLP proof node and classify its shape.

    Anything that isn't a 17 item list or a well formed 2 item list is
    returned as `NodeKind.UNKNOWN` so callers can reject the whole path.
    """
    raw = _to_bytes(node)

    try:
        decoded = rlp.decode(bytes(raw))
    except DecodingError as e:
        logger.debug("Undecodable proof node %s: %s", raw.to_0x_hex(), e)
        return ProofNode(raw=raw, kind=NodeKind.UNKNOWN)

    if not isinstance(decoded, list):
        return ProofNode(raw=raw, kind=NodeKind.UNKNOWN)

    if len(decoded) == BRANCH_NODE_LENGTH:
        return ProofNode(raw=raw, kind=NodeKind.BRANCH)

    if len(decoded) == SHORT_NODE_LENGTH:
        encoded_path = decoded[0]

        if not isinstance(encoded_path, bytes):
            return ProofNode(raw=raw, kind=NodeKind.UNKNOWN)

        try:
            path, is_leaf = decode_compact(encoded_path)
        except ValueError as e:
            logger.debug("Invalid compact path in %s: %s", raw.to_0x_hex(), e)
            return ProofNode(raw=raw, kind=NodeKind.UNKNOWN)

        if is_leaf:
            value = decoded[1] if isinstance(decoded[1], bytes) else rlp.encode(decoded[1])
            return ProofNode(raw=raw, kind=NodeKind.LEAF, path=path, value=value)

        return ProofNode(raw=raw, kind=NodeKind.EXTENSION, path=path)

    return ProofNode(raw=raw, kind=NodeKind.UNKNOWN)


def classify_proof(trie_key: bytes, nodes: Iterable[Union[str, bytes]]) -> ProofPath:
    return ProofPath(
        trie_key=bytes(trie_key),
        nodes=tuple(classify_node(node) for node in nodes),
    )


def describe_path(path: ProofPath) -> str:
    return ", ".join(node.describe() for node in path.nodes)
