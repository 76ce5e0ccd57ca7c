"""
Static binary Huffman coding.

Pipeline: count_frequencies -> build_huffman_tree -> generate_huffman_codes
-> huffman_encode -> huffman_decode. The container format lives in
huffman_container.py.

Tie-break: the heap is ordered by (weight, sequence). Leaves get sequence
numbers in ascending symbol order, internal nodes get the next number when
they are created. The first node popped becomes the left child (bit 0).
"""

from __future__ import annotations

import heapq
import math
import os
import sys
from collections import Counter
from dataclasses import dataclass
from typing import Dict, Hashable, Iterable, Iterator, List, Optional, Sequence, Tuple, Union

Symbol = Hashable

_DEBUG = os.environ.get("HUFFMAN_DEBUG", "").lower() in {"1", "true", "yes"}


def _dbg(msg: str) -> None:
    if _DEBUG:
        print(f"[huffman] {msg}", file=sys.stderr)


def _warn(msg: str) -> None:
    print(f"[huffman] warning: {msg}", file=sys.stderr)


# Errors

class HuffmanError(Exception):
    """Base class for every error raised by the codec."""


class InvalidInput(HuffmanError, ValueError):
    pass


class UnknownSymbol(HuffmanError, LookupError):
    def __init__(self, symbol, position: Optional[int] = None):
        self.symbol = symbol
        self.position = position
        where = f" at position {position}" if position is not None else ""
        super().__init__(f"symbol {symbol!r}{where} is not in the code table")


class MalformedPayload(HuffmanError, ValueError):
    pass


class CorruptContainer(HuffmanError, ValueError):
    pass


# Frequency analysis

def count_frequencies(data: Iterable[Symbol]) -> Dict[Symbol, int]:
    freqs = dict(Counter(data))
    if not freqs:
        raise InvalidInput("cannot count frequencies of empty input")
    return freqs


# Tree

class HuffmanTree: # arena of nodes addressed by integer handles
    def __init__(self):
        self.symbols: List[Optional[Symbol]] = [] # None for internal nodes
        self.weights: List[int] = []
        self.left: List[int] = [] # -1 for leaves
        self.right: List[int] = []
        self.root = -1

    def add_leaf(self, symbol: Symbol, weight: int) -> int:
        self.symbols.append(symbol)
        self.weights.append(weight)
        self.left.append(-1)
        self.right.append(-1)
        return len(self.symbols) - 1

    def add_internal(self, left: int, right: int) -> int:
        self.symbols.append(None)
        self.weights.append(self.weights[left] + self.weights[right])
        self.left.append(left)
        self.right.append(right)
        return len(self.symbols) - 1

    def is_leaf(self, node: int) -> bool:
        return self.left[node] < 0

    def __len__(self) -> int:
        return len(self.symbols)

    @property
    def leaf_count(self) -> int:
        return sum(1 for l in self.left if l < 0)

    @property
    def internal_count(self) -> int:
        return len(self.left) - self.leaf_count

    @property
    def weight(self) -> int:
        return self.weights[self.root]


def build_huffman_tree(frequency_table: Dict[Symbol, int]) -> HuffmanTree: # frequency_table: dict of symbol -> count
    if not frequency_table:
        raise InvalidInput("frequency table is empty")

    tree = HuffmanTree()
    heap: List[Tuple[int, int]] = [] # (weight, node)
    for symbol in sorted(frequency_table):
        weight = frequency_table[symbol]
        if not isinstance(weight, int) or isinstance(weight, bool) or weight <= 0:
            raise InvalidInput(f"frequency of {symbol!r} must be a positive integer, got {weight!r}")
        node = tree.add_leaf(symbol, weight)
        heap.append((weight, node))
    heapq.heapify(heap)

    # Leaves and internal nodes share one counter, so node handles double as sequence numbers
    while len(heap) > 1:
        _, left = heapq.heappop(heap)
        _, right = heapq.heappop(heap)
        node = tree.add_internal(left, right)
        heapq.heappush(heap, (tree.weights[node], node))

    tree.root = heap[0][1]
    _dbg(f"built tree: {tree.leaf_count} leaves, {tree.internal_count} internal, root weight {tree.weight}")
    return tree


def tree_from_codes(codes: Dict[Symbol, str]) -> HuffmanTree:
    """
    Rebuild a tree from an explicit symbol -> bitstring table.

    The codes must be prefix-free and complete (every internal node gets two
    children). A lone symbol must carry the code "0".

    Codes say nothing about counts, so every leaf gets weight 1 and the root
    weight is the number of symbols.
    """
    if not codes:
        raise InvalidInput("code table is empty")

    tree = HuffmanTree()
    if len(codes) == 1:
        (symbol, code), = codes.items()
        if code != "0":
            raise InvalidInput(f"single-symbol code must be '0', got {code!r}")
        tree.root = tree.add_leaf(symbol, 1)
        return tree

    # Grow the arena top-down; weights are unknown here and stay 0 until the end
    tree.symbols.append(None)
    tree.weights.append(0)
    tree.left.append(-1)
    tree.right.append(-1)
    tree.root = 0
    for symbol in sorted(codes):
        code = codes[symbol]
        if not code or set(code) - {"0", "1"}:
            raise InvalidInput(f"invalid code {code!r} for symbol {symbol!r}")
        node = tree.root
        for bit in code:
            if tree.symbols[node] is not None:
                raise InvalidInput(f"code {code!r} for {symbol!r} extends the code of {tree.symbols[node]!r}")
            children = tree.right if bit == "1" else tree.left
            child = children[node]
            if child < 0:
                tree.symbols.append(None)
                tree.weights.append(0)
                tree.left.append(-1)
                tree.right.append(-1)
                child = len(tree.symbols) - 1
                children[node] = child
            node = child
        if tree.symbols[node] is not None or tree.left[node] >= 0 or tree.right[node] >= 0:
            raise InvalidInput(f"code {code!r} for {symbol!r} collides with another code")
        tree.symbols[node] = symbol
        tree.weights[node] = 1

    for node in range(len(tree)):
        if tree.symbols[node] is None and (tree.left[node] < 0 or tree.right[node] < 0):
            raise InvalidInput("code table is incomplete: some bit paths lead nowhere")

    # Children always come after their parent, so one reverse pass sums the weights
    for node in range(len(tree) - 1, -1, -1):
        if tree.symbols[node] is None:
            tree.weights[node] = tree.weights[tree.left[node]] + tree.weights[tree.right[node]]
    return tree


# Codes

class CodeTable:
    def __init__(self, codes: Dict[Symbol, str]):
        self.codes = codes
        self.reverse: Dict[str, Symbol] = {code: symbol for symbol, code in codes.items()}

    def __getitem__(self, symbol: Symbol) -> str:
        return self.codes[symbol]

    def __contains__(self, symbol: Symbol) -> bool:
        return symbol in self.codes

    def __len__(self) -> int:
        return len(self.codes)

    def __eq__(self, other) -> bool:
        if isinstance(other, CodeTable):
            return self.codes == other.codes
        return NotImplemented

    def __repr__(self) -> str:
        return f"CodeTable({self.codes!r})"

    @property
    def max_length(self) -> int:
        return max(len(code) for code in self.codes.values())


def generate_huffman_codes(tree: HuffmanTree) -> CodeTable: # depth-first walk with an explicit stack
    if tree.is_leaf(tree.root):
        return CodeTable({tree.symbols[tree.root]: "0"})

    codes: Dict[Symbol, str] = {}
    stack = [(tree.root, "")]
    while stack:
        node, path = stack.pop()
        if tree.is_leaf(node):
            codes[tree.symbols[node]] = path
            continue
        # right pushed first so the left subtree is visited first
        stack.append((tree.right[node], path + "1"))
        stack.append((tree.left[node], path + "0"))
    return CodeTable(codes)


# Encoding

@dataclass
class EncodedPayload:
    data: bytes # packed bits, MSB first, last byte zero padded
    bit_length: int # meaningful bits, padding excluded

    @property
    def pad_bits(self) -> int:
        return len(self.data) * 8 - self.bit_length


class BitWriter:
    def __init__(self) -> None:
        self.buf = bytearray()
        self.acc = 0
        self.bits = 0
        self.bit_length = 0

    def write(self, code: int, length: int) -> None:
        self.acc = (self.acc << length) | code
        self.bits += length
        self.bit_length += length
        while self.bits >= 8:
            self.bits -= 8
            self.buf.append((self.acc >> self.bits) & 0xFF)
        self.acc &= (1 << self.bits) - 1

    def finish(self) -> bytes:
        if self.bits > 0:
            self.buf.append((self.acc << (8 - self.bits)) & 0xFF)
            self.acc = 0
            self.bits = 0
        return bytes(self.buf)


def _as_codes(code_table: Union[CodeTable, Dict[Symbol, str]]) -> Dict[Symbol, str]:
    return code_table.codes if isinstance(code_table, CodeTable) else code_table


def _check_codes(codes: Dict[Symbol, str]) -> None:
    for symbol, code in codes.items():
        if not isinstance(code, str) or not code or set(code) - {"0", "1"}:
            raise InvalidInput(f"invalid code {code!r} for symbol {symbol!r}")


def huffman_encode(data: Sequence[Symbol], code_table: Union[CodeTable, Dict[Symbol, str]]) -> EncodedPayload:
    if not data:
        raise InvalidInput("cannot encode empty input")
    codes = _as_codes(code_table)
    _check_codes(codes)
    packed = {symbol: (int(code, 2), len(code)) for symbol, code in codes.items()}

    writer = BitWriter()
    for position, symbol in enumerate(data):
        try:
            code, length = packed[symbol]
        except KeyError:
            raise UnknownSymbol(symbol, position) from None
        writer.write(code, length)
    return EncodedPayload(writer.finish(), writer.bit_length)


def encode_to_bits(data: Sequence[Symbol], code_table: Union[CodeTable, Dict[Symbol, str]]) -> str:
    """Same as huffman_encode but returns the unpacked '0'/'1' string."""
    if not data:
        raise InvalidInput("cannot encode empty input")
    codes = _as_codes(code_table)
    _check_codes(codes)
    parts = []
    for position, symbol in enumerate(data):
        try:
            parts.append(codes[symbol])
        except KeyError:
            raise UnknownSymbol(symbol, position) from None
    return "".join(parts)


def pack_bitstring(bits: str) -> EncodedPayload:
    writer = BitWriter()
    for position, ch in enumerate(bits):
        if ch not in ("0", "1"):
            raise MalformedPayload(f"invalid bit {ch!r} at position {position}")
        writer.write(1 if ch == "1" else 0, 1)
    return EncodedPayload(writer.finish(), writer.bit_length)


def iter_bits(data: bytes, bit_length: int) -> Iterator[int]:
    """Yield the first bit_length bits of data, MSB first. Checked before the first bit."""
    if not isinstance(bit_length, int) or isinstance(bit_length, bool) or bit_length < 0:
        raise MalformedPayload(f"bit length must be a non-negative integer, got {bit_length!r}")
    if bit_length > len(data) * 8:
        raise MalformedPayload(f"bit length {bit_length} exceeds the {len(data) * 8} bits available")
    return _iter_bits(data, bit_length)


def _iter_bits(data: bytes, bit_length: int) -> Iterator[int]:
    remaining = bit_length
    for byte in data:
        for i in range(7, -1, -1):
            if remaining == 0:
                return
            yield (byte >> i) & 1
            remaining -= 1


# Decoding

_BIT_VALUES = {0: 0, 1: 1, "0": 0, "1": 1}


def _bit_value(bit, position: int) -> int:
    try:
        return _BIT_VALUES[bit]
    except (KeyError, TypeError):
        raise MalformedPayload(f"invalid bit {bit!r} at position {position}") from None


def _truncated(dangling: int, strict: bool) -> None:
    msg = f"bit sequence ends inside a code ({dangling} dangling bit{'s' if dangling != 1 else ''})"
    if strict:
        raise MalformedPayload(msg)
    _warn(msg + "; returning the complete symbols only")


def decode_bits(bits: Iterable, tree: HuffmanTree, strict: bool = True) -> List[Symbol]:
    """
    Walk the tree one bit at a time, emitting a symbol at every leaf.

    Bits may be ints 0/1 or characters '0'/'1'. A sequence that stops in the
    middle of a code raises MalformedPayload when strict, otherwise the
    complete symbols are returned and a warning is printed to stderr.
    """
    root = tree.root
    left, right, symbols = tree.left, tree.right, tree.symbols
    decoded: List[Symbol] = []

    if left[root] < 0: # single-symbol tree: every bit is the code "0"
        symbol = symbols[root]
        for position, bit in enumerate(bits):
            if _bit_value(bit, position):
                raise MalformedPayload(f"bit 1 at position {position} has no code in a single-symbol tree")
            decoded.append(symbol)
        return decoded

    node = root
    dangling = 0
    for position, bit in enumerate(bits):
        node = right[node] if _bit_value(bit, position) else left[node]
        dangling += 1
        if left[node] < 0: # reached a leaf
            decoded.append(symbols[node])
            node = root
            dangling = 0

    if dangling:
        _truncated(dangling, strict)
    return decoded


def huffman_decode(payload: EncodedPayload, tree: HuffmanTree, strict: bool = True) -> List[Symbol]:
    """Decode a packed payload; use bytes(...) on the result for byte input."""
    return decode_bits(iter_bits(payload.data, payload.bit_length), tree, strict=strict)


def decode_with_table(bits: Iterable, code_table: CodeTable, strict: bool = True) -> List[Symbol]: # reverse-table lookup, same results as the tree walk
    reverse = code_table.reverse
    max_length = code_table.max_length
    decoded: List[Symbol] = []
    current = ""
    for position, bit in enumerate(bits):
        current += "1" if _bit_value(bit, position) else "0"
        symbol = reverse.get(current)
        if symbol is not None or current in reverse:
            decoded.append(symbol)
            current = ""
        elif len(current) >= max_length:
            raise MalformedPayload(f"no code matches {current!r} ending at position {position}")

    if current:
        _truncated(len(current), strict)
    return decoded


# Statistics

def shannon_entropy(frequency_table: Dict[Symbol, int]) -> float:
    total = sum(frequency_table.values())
    if total == 0:
        return 0.0
    entropy = 0.0
    for count in frequency_table.values():
        p = count / total
        entropy -= p * math.log2(p)
    return entropy


def average_code_length(frequency_table: Dict[Symbol, int], code_table: Union[CodeTable, Dict[Symbol, str]]) -> float:
    codes = _as_codes(code_table)
    total = sum(frequency_table.values())
    if total == 0:
        return 0.0
    return sum(count * len(codes[symbol]) for symbol, count in frequency_table.items()) / total


def compression_ratio(original_bytes: int, compressed_bytes: int) -> float:
    return compressed_bytes / max(1, original_bytes) # compressed / original, lower is better


def space_saving(original_bytes: int, compressed_bytes: int) -> float:
    return 1.0 - compression_ratio(original_bytes, compressed_bytes)


def code_table_rows(frequency_table: Dict[Symbol, int], code_table: Union[CodeTable, Dict[Symbol, str]]) -> List[Tuple[Symbol, int, str]]:
    """(symbol, count, code) rows, shortest codes first."""
    codes = _as_codes(code_table)
    rows = [(symbol, frequency_table[symbol], code) for symbol, code in codes.items()]
    rows.sort(key=lambda row: (len(row[2]), row[2]))
    return rows


def tree_stats(tree: HuffmanTree) -> Dict[str, int]:
    depth = 0
    stack = [(tree.root, 0)]
    while stack:
        node, d = stack.pop()
        if tree.is_leaf(node):
            depth = max(depth, d)
        else:
            stack.append((tree.left[node], d + 1))
            stack.append((tree.right[node], d + 1))
    return {
        "leaves": tree.leaf_count,
        "internal_nodes": tree.internal_count,
        "depth": depth,
        "root_weight": tree.weight,
    }
