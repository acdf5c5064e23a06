import pytest
import rlp

from conftest import CHILD_HASH, branch_node, compact, extension_node, leaf_node
from forged_withdrawal.trie_nodes import classify_node, classify_proof, decode_compact
from forged_withdrawal.types import NodeKind


def test_decode_compact_even_leaf():
    assert decode_compact(bytes.fromhex("20abcd")) == ("abcd", True)


def test_decode_compact_odd_leaf():
    assert decode_compact(bytes.fromhex("3abc")) == ("abc", True)


def test_decode_compact_even_extension():
    assert decode_compact(bytes.fromhex("0012")) == ("12", False)


def test_decode_compact_odd_extension():
    assert decode_compact(bytes.fromhex("1f")) == ("f", False)


def test_decode_compact_empty_paths():
    assert decode_compact(bytes.fromhex("20")) == ("", True)
    assert decode_compact(bytes.fromhex("00")) == ("", False)


@pytest.mark.parametrize("encoded", [b"", bytes.fromhex("40"), bytes.fromhex("f1")])
def test_decode_compact_rejects_invalid(encoded):
    with pytest.raises(ValueError):
        decode_compact(encoded)


def test_seventeen_items_is_branch():
    node = classify_node(branch_node())
    assert node.kind == NodeKind.BRANCH
    assert node.path == ""

    # even with a value and no children
    assert classify_node(rlp.encode([b""] * 16 + [b"\x01"])).kind == NodeKind.BRANCH


def test_leaf_node_keeps_path_and_value():
    node = classify_node(leaf_node("abc", b"\x01"))

    assert node.kind == NodeKind.LEAF
    assert node.path == "abc"
    assert node.value == rlp.encode(b"\x01")
    assert node.describe() == "leaf [path=abc] [value=01]"


def test_extension_node():
    node = classify_node(extension_node("12"))

    assert node.kind == NodeKind.EXTENSION
    assert node.path == "12"
    assert node.describe() == "extension [path=12]"


@pytest.mark.parametrize("second", [b"", CHILD_HASH, b"\x20" * 40, [b"\x01", b"\x02"]])
def test_short_node_kind_ignores_second_element(second):
    assert classify_node(rlp.encode([compact("ab", leaf=True), second])).kind == NodeKind.LEAF
    assert (
        classify_node(rlp.encode([compact("ab", leaf=False), second])).kind
        == NodeKind.EXTENSION
    )


def test_hex_string_input():
    raw = leaf_node("0f")

    assert classify_node("0x" + raw.hex()).kind == NodeKind.LEAF
    assert classify_node(raw.hex()).kind == NodeKind.LEAF
    assert classify_node("0x" + raw.hex()).raw == raw


@pytest.mark.parametrize(
    "raw",
    [
        rlp.encode([b"\x01", b"\x02", b"\x03"]),
        rlp.encode(b"\x01\x02"),
        rlp.encode([[b"\x20"], b"\x01"]),
        rlp.encode([b"", b"\x01"]),
        rlp.encode([b"\x45", b"\x01"]),
        b"\xf8",
    ],
)
def test_other_shapes_are_unknown(raw):
    assert classify_node(raw).kind == NodeKind.UNKNOWN


def test_classify_proof_preserves_order():
    path = classify_proof(b"\x00" * 32, [branch_node(), extension_node(), leaf_node("1")])

    assert path.kinds == (NodeKind.BRANCH, NodeKind.EXTENSION, NodeKind.LEAF)
    assert len(path) == 3
    assert path.raw_nodes[0] == branch_node()
