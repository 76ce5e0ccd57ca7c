import itertools
import math
import random

import pytest

import huffman as huff


SAMPLE = "aaaaabbbccd"


def _pipeline(data):
    ft = huff.count_frequencies(data)
    tree = huff.build_huffman_tree(ft)
    codes = huff.generate_huffman_codes(tree)
    return ft, tree, codes


# Frequency analysis

def test_frequencies_sum_to_input_length():
    data = b"mississippi river"
    ft = huff.count_frequencies(data)
    assert sum(ft.values()) == len(data)
    assert set(ft) == set(data)
    assert ft[ord("s")] == 4


def test_empty_input_is_invalid():
    with pytest.raises(huff.InvalidInput):
        huff.count_frequencies(b"")
    with pytest.raises(huff.InvalidInput):
        huff.build_huffman_tree({})


def test_non_positive_frequency_is_invalid():
    with pytest.raises(huff.InvalidInput):
        huff.build_huffman_tree({"a": 3, "b": 0})
    with pytest.raises(ValueError):
        huff.build_huffman_tree({"a": -1})



def test_bool_frequency_is_invalid():
    with pytest.raises(huff.InvalidInput):
        huff.build_huffman_tree({"a": True, "b": 2})
    with pytest.raises(huff.InvalidInput):
        huff.build_huffman_tree({"a": 1.5, "b": 2})


# Tree construction

def test_sample_tree_shape():
    ft, tree, _ = _pipeline(SAMPLE)
    assert ft == {"a": 5, "b": 3, "c": 2, "d": 1}
    assert tree.leaf_count == 4
    assert tree.internal_count == 3
    assert len(tree) == 7
    assert tree.weight == len(SAMPLE)


def test_internal_weights_are_sum_of_children():
    _, tree, _ = _pipeline(b"the quick brown fox jumps over the lazy dog")
    for node in range(len(tree)):
        if not tree.is_leaf(node):
            assert tree.symbols[node] is None
            assert tree.weights[node] == tree.weights[tree.left[node]] + tree.weights[tree.right[node]]


def test_every_non_root_node_has_one_parent():
    _, tree, _ = _pipeline(b"abracadabra alakazam")
    children = [c for node in range(len(tree)) if not tree.is_leaf(node) for c in (tree.left[node], tree.right[node])]
    assert sorted(children) == sorted(n for n in range(len(tree)) if n != tree.root)


def test_sample_codes_match_tie_break_order():
    _, _, codes = _pipeline(SAMPLE)
    assert codes.codes == {"a": "0", "b": "10", "d": "110", "c": "111"}


def test_ties_resolved_by_symbol_then_creation_order():
    assert huff.generate_huffman_codes(huff.build_huffman_tree({"y": 1, "x": 1})).codes == {"x": "0", "y": "1"}
    codes = huff.generate_huffman_codes(huff.build_huffman_tree({"a": 1, "b": 1, "c": 1})).codes
    assert codes == {"c": "0", "a": "10", "b": "11"}


def test_tree_is_reproducible():
    data = bytes(random.Random(7).randrange(0, 40) for _ in range(2000))
    first = _pipeline(data)[2]
    second = _pipeline(bytes(data))[2]
    assert first == second


def test_skewed_frequencies_build_deep_tree_without_recursion():
    fib = [1, 1]
    while len(fib) < 40:
        fib.append(fib[-1] + fib[-2])
    tree = huff.build_huffman_tree({i: f for i, f in enumerate(fib)})
    codes = huff.generate_huffman_codes(tree)
    assert huff.tree_stats(tree)["depth"] == 39
    assert codes.max_length == 39

    data = list(range(40)) * 3
    payload = huff.huffman_encode(data, codes)
    assert huff.huffman_decode(payload, tree) == data


# Codes

def test_codes_are_prefix_free():
    _, _, codes = _pipeline(bytes(random.Random(3).randrange(0, 256) for _ in range(5000)))
    for (s1, c1), (s2, c2) in itertools.combinations(codes.codes.items(), 2):
        assert not c1.startswith(c2) and not c2.startswith(c1), (s1, s2)


def test_reverse_table_is_inverse():
    _, _, codes = _pipeline(b"hello huffman")
    assert len(codes.reverse) == len(codes)
    for symbol, code in codes.codes.items():
        assert codes.reverse[code] == symbol


@pytest.mark.parametrize("seed,alphabet", [(1, 2), (2, 5), (3, 26), (4, 256)])
def test_average_length_within_one_bit_of_entropy(seed, alphabet):
    rng = random.Random(seed)
    weights = [rng.random() ** 3 + 0.01 for _ in range(alphabet)]
    data = bytes(rng.choices(range(alphabet), weights=weights, k=4000))
    ft, _, codes = _pipeline(data)
    h = huff.shannon_entropy(ft)
    l = huff.average_code_length(ft, codes)
    assert h - 1e-9 <= l < h + 1


def test_tree_from_codes_weights_count_symbols():
    tree = huff.tree_from_codes({"a": "0", "b": "10", "d": "110", "c": "111"})
    assert all(tree.weights[node] == 1 for node in range(len(tree)) if tree.is_leaf(node))
    assert tree.weight == 4
    assert huff.tree_from_codes({"a": "0"}).weight == 1


def test_tree_from_codes_decodes_like_built_tree():
    data = b"she sells sea shells by the sea shore"
    _, tree, codes = _pipeline(data)
    rebuilt = huff.tree_from_codes(codes.codes)
    assert huff.generate_huffman_codes(rebuilt) == codes
    payload = huff.huffman_encode(data, codes)
    assert bytes(huff.huffman_decode(payload, rebuilt)) == data


@pytest.mark.parametrize("codes", [
    {"a": "0", "b": "01"},
    {"a": "01", "b": "0"},
    {"a": "0", "b": "0"},
    {"a": "0", "b": "10"},
    {"a": "1"},
    {"a": "0", "b": "1x"},
    {},
])
def test_tree_from_codes_rejects_bad_tables(codes):
    with pytest.raises(huff.InvalidInput):
        huff.tree_from_codes(codes)


# Single symbol

def test_single_symbol_uses_one_bit_per_occurrence():
    data = "aaaa"
    ft, tree, codes = _pipeline(data)
    assert tree.is_leaf(tree.root)
    assert tree.internal_count == 0
    assert codes.codes == {"a": "0"}

    payload = huff.huffman_encode(data, codes)
    assert payload.bit_length == len(data)
    assert payload.data == b"\x00"
    assert "".join(huff.huffman_decode(payload, tree)) == data
    assert "".join(huff.decode_with_table("0000", codes)) == data


def test_single_symbol_rejects_one_bit():
    _, tree, codes = _pipeline(b"zzz")
    with pytest.raises(huff.MalformedPayload):
        huff.decode_bits([0, 1, 0], tree)
    with pytest.raises(huff.MalformedPayload):
        huff.decode_with_table("01", codes)


# Encoding

def test_sample_encoding_is_packed_msb_first():
    _, _, codes = _pipeline(SAMPLE)
    assert huff.encode_to_bits(SAMPLE, codes) == "00000101010111111110"
    payload = huff.huffman_encode(SAMPLE, codes)
    assert payload.bit_length == 20
    assert payload.data == b"\x05\x5f\xe0"
    assert payload.pad_bits == 4


def test_encode_rejects_unknown_symbol():
    _, _, codes = _pipeline("ab")
    with pytest.raises(huff.UnknownSymbol) as excinfo:
        huff.huffman_encode("abz", codes)
    assert excinfo.value.symbol == "z"
    assert excinfo.value.position == 2
    with pytest.raises(LookupError):
        huff.encode_to_bits("q", codes)


def test_encode_rejects_empty_input():
    _, _, codes = _pipeline("ab")
    with pytest.raises(huff.InvalidInput):
        huff.huffman_encode("", codes)


def test_encode_accepts_plain_dict():
    payload = huff.huffman_encode(b"\x01\x02\x01", {1: "0", 2: "1"})
    assert payload.bit_length == 3
    assert payload.data == b"\x40"


@pytest.mark.parametrize("codes", [
    {"a": "0", "b": ""},
    {"a": "0", "b": "12"},
    {"a": "0", "b": " 1"},
    {"a": "0", "b": 1},
])
def test_encode_rejects_invalid_codes(codes):
    with pytest.raises(huff.InvalidInput):
        huff.huffman_encode("ab", codes)
    with pytest.raises(huff.InvalidInput):
        huff.encode_to_bits("ab", codes)


def test_pack_bitstring():
    payload = huff.pack_bitstring("101")
    assert payload.data == b"\xa0"
    assert payload.bit_length == 3
    assert huff.pack_bitstring("").data == b""
    with pytest.raises(huff.MalformedPayload):
        huff.pack_bitstring("10a")


# Decoding

def test_sample_round_trip_to_literal():
    _, tree, codes = _pipeline(SAMPLE)
    payload = huff.huffman_encode(SAMPLE, codes)
    assert "".join(huff.huffman_decode(payload, tree)) == "aaaaabbbccd"


@pytest.mark.parametrize("data", [
    b"a",
    b"ab",
    bytes(range(256)),
    b"Phetchaburi Rajabhat University",
    bytes(random.Random(11).getrandbits(8) for _ in range(10 * 1024)),
])
def test_round_trip_identity(data):
    _, tree, codes = _pipeline(data)
    payload = huff.huffman_encode(data, codes)
    assert bytes(huff.huffman_decode(payload, tree)) == data


def test_table_decoder_matches_tree_walk():
    data = bytes(random.Random(5).choices(range(30), k=3000))
    _, tree, codes = _pipeline(data)
    bits = huff.encode_to_bits(data, codes)
    assert huff.decode_with_table(bits, codes) == huff.decode_bits(bits, tree)


def test_decode_accepts_int_and_char_bits():
    _, tree, _ = _pipeline(SAMPLE)
    assert huff.decode_bits("10110", tree) == ["b", "d"]
    assert huff.decode_bits([1, 0, 1, 1, 0], tree) == ["b", "d"]


@pytest.mark.parametrize("bits", ["0201", [0, 1, 2], [0, None], ["0", "x"]])
def test_decode_rejects_non_binary_bits(bits):
    _, tree, codes = _pipeline(SAMPLE)
    with pytest.raises(huff.MalformedPayload):
        huff.decode_bits(bits, tree)
    with pytest.raises(huff.MalformedPayload):
        huff.decode_with_table(bits, codes)


def test_truncated_code_is_an_error_when_strict():
    _, tree, codes = _pipeline(SAMPLE)
    with pytest.raises(huff.MalformedPayload, match="dangling"):
        huff.decode_bits("00011", tree)
    with pytest.raises(huff.MalformedPayload, match="dangling"):
        huff.decode_with_table("00011", codes)


def test_truncated_code_warns_when_permissive(capsys):
    _, tree, codes = _pipeline(SAMPLE)
    assert huff.decode_bits("00011", tree, strict=False) == ["a", "a", "a"]
    assert "2 dangling bits" in capsys.readouterr().err
    assert huff.decode_with_table("0001", codes, strict=False) == ["a", "a", "a"]
    assert "1 dangling bit" in capsys.readouterr().err


def test_padding_never_reaches_decoder():
    _, tree, codes = _pipeline(SAMPLE)
    payload = huff.huffman_encode(SAMPLE, codes)
    # the four padding zeros would decode as "aaaa" if they were passed on
    assert len(huff.huffman_decode(payload, tree)) == len(SAMPLE)
    assert list(huff.iter_bits(payload.data, payload.bit_length)) == [int(b) for b in "00000101010111111110"]


def test_bit_length_beyond_data_is_malformed():
    _, tree, _ = _pipeline(SAMPLE)
    with pytest.raises(huff.MalformedPayload):
        huff.huffman_decode(huff.EncodedPayload(b"\x05", 9), tree)


@pytest.mark.parametrize("bit_length", [-1, -8, 2.0, True])
def test_bad_bit_length_is_malformed(bit_length):
    _, tree, _ = _pipeline(SAMPLE)
    with pytest.raises(huff.MalformedPayload, match="non-negative integer"):
        huff.iter_bits(b"\x05", bit_length)
    with pytest.raises(huff.MalformedPayload):
        huff.huffman_decode(huff.EncodedPayload(b"\x05", bit_length), tree)


def test_table_decoder_rejects_bits_matching_no_code():
    codes = huff.CodeTable({"a": "0", "b": "10"})
    assert huff.decode_with_table("0100", codes) == ["a", "b", "a"]
    with pytest.raises(huff.MalformedPayload, match="no code matches '11' ending at position 2"):
        huff.decode_with_table("011", codes)


def test_empty_bit_sequence_decodes_to_nothing():
    _, tree, _ = _pipeline(SAMPLE)
    assert huff.huffman_decode(huff.EncodedPayload(b"", 0), tree) == []


# Statistics

def test_statistics_for_sample():
    ft, tree, codes = _pipeline(SAMPLE)
    expected_h = -sum((c / 11) * math.log2(c / 11) for c in (5, 3, 2, 1))
    assert huff.shannon_entropy(ft) == pytest.approx(expected_h)
    assert huff.average_code_length(ft, codes) == pytest.approx(20 / 11)
    assert huff.code_table_rows(ft, codes) == [("a", 5, "0"), ("b", 3, "10"), ("d", 1, "110"), ("c", 2, "111")]
    assert huff.tree_stats(tree) == {"leaves": 4, "internal_nodes": 3, "depth": 3, "root_weight": 11}


def test_compression_ratio_and_saving():
    assert huff.compression_ratio(100, 25) == pytest.approx(0.25)
    assert huff.space_saving(100, 25) == pytest.approx(0.75)
    assert huff.compression_ratio(0, 10) == 10
    assert huff.shannon_entropy({"a": 9}) == 0.0
