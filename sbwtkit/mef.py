"""Bucketed Elias-Fano bit vector with rank support."""

from __future__ import annotations

import struct
from itertools import accumulate
from typing import BinaryIO, Iterable

_MASK64 = (1 << 64) - 1
_MASK32 = (1 << 32) - 1
_ODD_BITS = 0xAAAAAAAAAAAAAAAA
_EVEN_BITS = 0x5555555555555555
_HEADER = struct.Struct("<QB")
_LENGTH = struct.Struct("<Q")


def pext(x: int, mask: int) -> int:
    """Parallel bit extract: gather the bits of x selected by mask into the low bits."""
    result = 0
    shift = 0
    while mask:
        if mask & 1:
            result |= (x & 1) << shift
            shift += 1
        x >>= 1
        mask >>= 1
    return result


def shrink_word(x: int) -> int:
    """Collapse each pair of bits of a 64-bit word into one bit (their OR)."""
    x &= _MASK64
    return pext(((x & _ODD_BITS) >> 1) | x, _EVEN_BITS)


def _bits_to_int(bits: list[int]) -> int:
    text = "".join("1" if b else "0" for b in reversed(bits))
    return int(text, 2) if text else 0


def _int_to_bits(value: int, length: int) -> list[int]:
    if length == 0:
        return []
    return [int(ch) for ch in reversed(format(value, f"0{length}b")[-length:])]


def _shrink_vector(value: int, size: int) -> tuple[int, int]:
    """Halve a bit vector by shrinking its 64-bit words, keeping the last word as is."""
    data = value.to_bytes((size + 7) // 8 + 8, "little")
    pieces = []
    for start in range(0, size - 64, 64):
        word = int.from_bytes(data[start // 8:start // 8 + 8], "little")
        pieces.append((shrink_word(word) & _MASK32).to_bytes(4, "little"))
    low_bits = 32 * len(pieces)
    low = int.from_bytes(b"".join(pieces), "little")
    out = ((value >> low_bits) << low_bits) | low
    size //= 2
    return out & ((1 << size) - 1), size


def optimize_width(bits: Iterable[int]) -> int:
    """Choose the bucket width (log2 of the bucket size) that minimises total space."""
    bit_list = [1 if b else 0 for b in bits]
    size = len(bit_list)
    value = _bits_to_int(bit_list)
    best = size
    width = 0
    while size >= 64:
        width += 1
        value, size = _shrink_vector(value, size)
        total = size + bin(value).count("1") * (1 << width)
        if total < best:
            best = total
        else:
            return width - 1
    return width


def _pack(bits: list[int]) -> bytes:
    return _bits_to_int(bits).to_bytes((len(bits) + 7) // 8, "little")


def _read_exact(stream: BinaryIO, n: int) -> bytes:
    data = stream.read(n)
    if len(data) != n:
        raise ValueError("truncated Elias-Fano bit vector data")
    return data


class EliasFanoBitVector:
    """A bit vector stored as its non-empty buckets, answering rank queries.

    Buckets of 2**width bits that hold no ones are dropped; an upper bit vector
    marks which buckets are kept. The final (possibly partial) bucket is always kept.
    """

    def __init__(self, bits: Iterable[int], width: int | None = None) -> None:
        bit_list = [1 if b else 0 for b in bits]
        if width is None:
            width = optimize_width(bit_list)
        if not 0 <= width < 64:
            raise ValueError(f"bucket width must be in 0..63, got {width}")
        bucket = 1 << width
        full = len(bit_list) // bucket
        buckets = [bit_list[s:s + bucket] for s in range(0, full * bucket, bucket)]
        upper = [1 if any(b) else 0 for b in buckets] + [1]
        lower = [bit for b in buckets if any(b) for bit in b]
        tail = bit_list[full * bucket:]
        lower.extend(tail)
        lower.extend([0] * (bucket - len(tail)))
        self._set(len(bit_list), width, upper, lower)

    def _set(self, size: int, width: int, upper: list[int], lower: list[int]) -> None:
        self._size = size
        self._width = width
        self._mask = (1 << width) - 1
        self._upper = upper
        self._lower = lower
        self._upper_rank = list(accumulate(upper, initial=0))
        self._lower_rank = list(accumulate(lower, initial=0))

    @property
    def width(self) -> int:
        """Log2 of the bucket size."""
        return self._width

    def __len__(self) -> int:
        return self._size

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, EliasFanoBitVector):
            return NotImplemented
        return (
            self._size == other._size
            and self._width == other._width
            and self._upper == other._upper
            and self._lower == other._lower
        )

    def rank(self, i: int) -> int:
        """Number of one bits in positions [0, i) of the original vector."""
        if not 0 <= i <= self._size:
            raise IndexError(f"rank position {i} out of range 0..{self._size}")
        block = i >> self._width
        nonzero_blocks = self._upper_rank[block]
        offset = (i & self._mask) if self._upper[block] else 0
        return self._lower_rank[(nonzero_blocks << self._width) + offset]

    __call__ = rank

    def serialize(self, out: BinaryIO) -> int:
        """Write the structure to a binary stream; return the number of bytes written."""
        parts = [_HEADER.pack(self._size, self._width)]
        for bits in (self._upper, self._lower):
            parts.append(_LENGTH.pack(len(bits)))
            parts.append(_pack(bits))
        data = b"".join(parts)
        out.write(data)
        return len(data)

    @classmethod
    def load(cls, stream: BinaryIO) -> EliasFanoBitVector:
        """Read a structure written by serialize."""
        size, width = _HEADER.unpack(_read_exact(stream, _HEADER.size))
        if width >= 64:
            raise ValueError(f"invalid bucket width {width}")
        vectors = []
        for _ in range(2):
            (length,) = _LENGTH.unpack(_read_exact(stream, _LENGTH.size))
            raw = _read_exact(stream, (length + 7) // 8)
            vectors.append(_int_to_bits(int.from_bytes(raw, "little"), length))
        upper, lower = vectors
        bucket = 1 << width
        if len(upper) != (size >> width) + 1 or len(lower) != sum(upper) * bucket:
            raise ValueError("inconsistent Elias-Fano bit vector data")
        obj = cls.__new__(cls)
        obj._set(size, width, upper, lower)
        return obj