"""
Split a serialized PSBT into chunks small enough for one QR code each.

Chunks carry their 0-based index and the total count so they can be scanned
in any order. The encoder works on raw bytes and never decodes the PSBT: the
payload has to be transmitted byte for byte whether or not it is valid.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from functools import reduce

from loguru import logger

from psbtcore.errors import EmptyInput, MalformedInput

# Byte-mode capacity of QR versions 1..40 at error correction level L
QR_BYTE_CAPACITY_L = (
    17, 32, 53, 78, 106, 134, 154, 192, 230, 271,
    321, 367, 425, 458, 520, 586, 644, 718, 792, 858,
    929, 1003, 1091, 1171, 1273, 1367, 1465, 1528, 1628, 1732,
    1840, 1952, 2068, 2188, 2303, 2431, 2563, 2699, 2809, 2953,
)  # fmt: skip

# Structured append header: mode (4 bits) + index (4) + total (4) + parity (8)
STRUCTURED_APPEND_HEADER_BYTES = 3


def chunk_size_for_qr_version(version: int) -> int:
    """Largest chunk that fits a level-L QR code of ``version`` with a structured append header."""
    if not 1 <= version <= len(QR_BYTE_CAPACITY_L):
        raise ValueError(f"QR version must be between 1 and 40, got {version}")
    return QR_BYTE_CAPACITY_L[version - 1] - STRUCTURED_APPEND_HEADER_BYTES


def xor_parity(data: bytes) -> int:
    return reduce(lambda acc, byte: acc ^ byte, data, 0)


@dataclass(frozen=True)
class Chunk:
    index: int
    total: int
    data: bytes


@dataclass(frozen=True)
class ChunkSet:
    chunks: tuple[Chunk, ...]
    parity: int

    @property
    def total(self) -> int:
        return len(self.chunks)

    def __iter__(self):
        return iter(self.chunks)

    def __len__(self) -> int:
        return len(self.chunks)


def split(data: bytes, max_chunk_size: int) -> ChunkSet:
    """
    Split ``data`` into chunks of at most ``max_chunk_size`` bytes.

    All chunks are full except possibly the last one.

    Raises:
        EmptyInput: ``data`` is empty
        ValueError: ``max_chunk_size`` is smaller than 1
    """
    if not data:
        raise EmptyInput("Cannot split an empty byte sequence")
    if max_chunk_size < 1:
        raise ValueError(f"max_chunk_size must be positive, got {max_chunk_size}")

    total = -(-len(data) // max_chunk_size)
    chunks = tuple(
        Chunk(index=i, total=total, data=data[i * max_chunk_size : (i + 1) * max_chunk_size])
        for i in range(total)
    )
    logger.debug(f"Split {len(data)} bytes into {total} chunks of <= {max_chunk_size} bytes")
    return ChunkSet(chunks=chunks, parity=xor_parity(data))


def merge(chunks: Iterable[Chunk]) -> bytes:
    """
    Reassemble chunks received in any order.

    Raises:
        MalformedInput: No chunks, chunks disagree on the total, an index is
            duplicated or out of range, or some index is missing
    """
    by_index: dict[int, Chunk] = {}
    total: int | None = None

    for chunk in chunks:
        if total is None:
            total = chunk.total
        elif chunk.total != total:
            raise MalformedInput(f"Chunk totals disagree: {chunk.total} != {total}")
        if not 0 <= chunk.index < chunk.total:
            raise MalformedInput(f"Chunk index {chunk.index} out of range for total {chunk.total}")
        if chunk.index in by_index:
            raise MalformedInput(f"Duplicate chunk index {chunk.index}")
        by_index[chunk.index] = chunk

    if total is None:
        raise MalformedInput("No chunks to merge")

    missing = sorted(set(range(total)) - by_index.keys())
    if missing:
        raise MalformedInput(f"Missing chunk indexes: {missing}")

    return b"".join(by_index[i].data for i in range(total))
