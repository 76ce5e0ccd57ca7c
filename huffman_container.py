"""
Binary container for Huffman-coded data.

All integers are big-endian and unsigned.

    magic        4 bytes  b"HUF1"
    table kind   uint8    0 = frequencies, 1 = codes
    entry count  uint32
    entries      frequencies: symbol uint8, count uint32
                 codes:       symbol uint8, code length uint32,
                              ceil(length / 8) bytes of code bits (MSB first)
    bit length   uint32   meaningful payload bits, padding excluded
    payload      ceil(bit length / 8) bytes, MSB first, last byte zero padded

A frequency table is enough to rebuild the exact tree used for encoding,
since build_huffman_tree breaks ties deterministically. Code tables are the
larger alternative for callers that only hold codes.
"""

from __future__ import annotations

import os
import struct
import sys
from dataclasses import dataclass
from typing import BinaryIO, Dict, Optional, Tuple

from huffman import (
    CodeTable,
    CorruptContainer,
    EncodedPayload,
    HuffmanTree,
    InvalidInput,
    build_huffman_tree,
    count_frequencies,
    generate_huffman_codes,
    huffman_decode,
    huffman_encode,
    iter_bits,
    pack_bitstring,
    tree_from_codes,
)

MAGIC = b"HUF1"
TABLE_FREQUENCIES = 0
TABLE_CODES = 1
TABLE_KINDS = {"frequencies": TABLE_FREQUENCIES, "codes": TABLE_CODES}

_HEADER = struct.Struct(">4sBI") # magic, table kind, entry count
_ENTRY = struct.Struct(">BI") # symbol, count or code length
_U32 = struct.Struct(">I")
_U32_MAX = 0xFFFFFFFF
_MAX_SYMBOLS = 256

_DEBUG = os.environ.get("HUFFMAN_DEBUG", "").lower() in {"1", "true", "yes"}


def _dbg(msg: str) -> None:
    if _DEBUG:
        print(f"[container] {msg}", file=sys.stderr)


@dataclass
class Container:
    """
    Decoded view of a container.

    - frequencies: symbol -> count, or None for code-table containers
    - codes / tree: rebuilt from whichever table was stored. A tree rebuilt
      from codes carries no counts: each leaf weighs 1, so tree.weight is the
      number of symbols rather than the input length
    - payload: packed bits plus their exact length
    """
    table: str
    frequencies: Optional[Dict[int, int]]
    codes: CodeTable
    tree: HuffmanTree
    payload: EncodedPayload

    def decode(self, strict: bool = True) -> bytes:
        return bytes(huffman_decode(self.payload, self.tree, strict=strict))


def _check_symbol(symbol) -> None:
    if not isinstance(symbol, int) or isinstance(symbol, bool) or not 0 <= symbol <= 0xFF:
        raise InvalidInput(f"container symbols must be bytes (0..255), got {symbol!r}")


def _check_u32(value: int, what: str) -> None:
    if not 0 <= value <= _U32_MAX:
        raise InvalidInput(f"{what} {value} does not fit in 32 bits")


def write_container(payload: EncodedPayload,
                    frequencies: Optional[Dict[int, int]] = None,
                    code_table: Optional[CodeTable] = None) -> bytes:
    """
    Serialize a payload together with exactly one of a frequency table or a
    code table.

    A frequency table must rebuild a tree whose codes account for exactly
    payload.bit_length bits. Code tables are written as given as long as
    every code is a non-empty bitstring; read_container checks that the set
    is prefix-free and complete.
    """
    if (frequencies is None) == (code_table is None):
        raise InvalidInput("pass exactly one of frequencies or code_table")
    _check_u32(payload.bit_length, "bit length")
    if len(payload.data) != (payload.bit_length + 7) // 8:
        raise InvalidInput(f"payload holds {len(payload.data)} bytes for {payload.bit_length} bits")

    out = bytearray()
    if frequencies is not None:
        if not frequencies:
            raise InvalidInput("frequency table is empty")
        for symbol in frequencies:
            _check_symbol(symbol)
        # rejects zero, negative and non-integer counts
        implied = generate_huffman_codes(build_huffman_tree(frequencies))
        expected_bits = sum(count * len(implied[symbol]) for symbol, count in frequencies.items())
        if expected_bits != payload.bit_length:
            raise InvalidInput(f"frequency table implies {expected_bits} payload bits, payload has {payload.bit_length}")
        out += _HEADER.pack(MAGIC, TABLE_FREQUENCIES, len(frequencies))
        for symbol in sorted(frequencies):
            _check_u32(frequencies[symbol], "count")
            out += _ENTRY.pack(symbol, frequencies[symbol])
    else:
        if not code_table.codes:
            raise InvalidInput("code table is empty")
        out += _HEADER.pack(MAGIC, TABLE_CODES, len(code_table))
        for symbol in sorted(code_table.codes):
            _check_symbol(symbol)
            code = code_table.codes[symbol]
            if not isinstance(code, str) or not code or set(code) - {"0", "1"}:
                raise InvalidInput(f"invalid code {code!r} for symbol {symbol!r}")
            _check_u32(len(code), "code length")
            out += _ENTRY.pack(symbol, len(code))
            out += pack_bitstring(code).data

    out += _U32.pack(payload.bit_length)
    out += payload.data
    return bytes(out)


def _read_codes(blob: bytes, offset: int, count: int) -> Tuple[Dict[int, str], int]:
    codes: Dict[int, str] = {}
    for index in range(count):
        if offset + _ENTRY.size > len(blob):
            raise CorruptContainer(f"code entry {index} runs past the end of the container")
        symbol, length = _ENTRY.unpack_from(blob, offset)
        offset += _ENTRY.size
        if symbol in codes:
            raise CorruptContainer(f"symbol {symbol} appears twice")
        if length == 0:
            raise CorruptContainer(f"symbol {symbol} has an empty code")
        n_bytes = (length + 7) // 8
        if offset + n_bytes > len(blob):
            raise CorruptContainer(f"code for symbol {symbol} ({length} bits) runs past the end of the container")
        codes[symbol] = "".join("1" if bit else "0" for bit in iter_bits(blob[offset:offset + n_bytes], length))
        offset += n_bytes
    return codes, offset


def _read_frequencies(blob: bytes, offset: int, count: int) -> Tuple[Dict[int, int], int]:
    if offset + count * _ENTRY.size > len(blob):
        raise CorruptContainer(f"{count} table entries run past the end of the container")
    frequencies: Dict[int, int] = {}
    for _ in range(count):
        symbol, weight = _ENTRY.unpack_from(blob, offset)
        offset += _ENTRY.size
        if symbol in frequencies:
            raise CorruptContainer(f"symbol {symbol} appears twice")
        if weight == 0:
            raise CorruptContainer(f"symbol {symbol} has a zero count")
        frequencies[symbol] = weight
    return frequencies, offset


def read_container(blob: bytes) -> Container:
    if len(blob) < _HEADER.size:
        raise CorruptContainer(f"container is {len(blob)} bytes, shorter than its {_HEADER.size}-byte header")
    magic, kind, count = _HEADER.unpack_from(blob, 0)
    if magic != MAGIC:
        raise CorruptContainer(f"bad magic {magic!r}")
    if not 1 <= count <= _MAX_SYMBOLS:
        raise CorruptContainer(f"table entry count {count} outside 1..{_MAX_SYMBOLS}")

    offset = _HEADER.size
    frequencies = None
    if kind == TABLE_FREQUENCIES:
        frequencies, offset = _read_frequencies(blob, offset, count)
    elif kind == TABLE_CODES:
        codes, offset = _read_codes(blob, offset, count)
    else:
        raise CorruptContainer(f"unknown table kind {kind}")

    if offset + _U32.size > len(blob):
        raise CorruptContainer("bit length field runs past the end of the container")
    (bit_length,) = _U32.unpack_from(blob, offset)
    offset += _U32.size

    data = blob[offset:]
    expected_bytes = (bit_length + 7) // 8
    if len(data) != expected_bytes:
        raise CorruptContainer(f"bit length {bit_length} needs {expected_bytes} payload bytes, found {len(data)}")
    pad = expected_bytes * 8 - bit_length
    if pad and data[-1] & ((1 << pad) - 1):
        raise CorruptContainer("padding bits in the last payload byte are not zero")

    if frequencies is not None:
        tree = build_huffman_tree(frequencies)
        code_table = generate_huffman_codes(tree)
        expected_bits = sum(weight * len(code_table[symbol]) for symbol, weight in frequencies.items())
        if expected_bits != bit_length:
            raise CorruptContainer(f"frequency table implies {expected_bits} payload bits, header says {bit_length}")
        table = "frequencies"
    else:
        try:
            tree = tree_from_codes(codes)
        except InvalidInput as exc:
            raise CorruptContainer(f"stored code table is unusable: {exc}") from exc
        code_table = CodeTable(codes)
        table = "codes"

    _dbg(f"read {table} container: {count} symbols, {bit_length} payload bits")
    return Container(table, frequencies, code_table, tree, EncodedPayload(bytes(data), bit_length))


def compress(data: bytes, table: str = "frequencies") -> bytes:
    if table not in TABLE_KINDS:
        raise InvalidInput(f"table must be one of {sorted(TABLE_KINDS)}, got {table!r}")
    frequencies = count_frequencies(data)
    tree = build_huffman_tree(frequencies)
    code_table = generate_huffman_codes(tree)
    payload = huffman_encode(data, code_table)
    if table == "codes":
        return write_container(payload, code_table=code_table)
    return write_container(payload, frequencies=frequencies)


def decompress(blob: bytes, strict: bool = True) -> bytes:
    return read_container(blob).decode(strict=strict)


def dump(data: bytes, fp: BinaryIO, table: str = "frequencies") -> int:
    blob = compress(data, table=table)
    fp.write(blob)
    return len(blob)


def load(fp: BinaryIO, strict: bool = True) -> bytes:
    return decompress(fp.read(), strict=strict)
