"""
Tests for splitting PSBT bytes into QR-sized chunks.
"""

from __future__ import annotations

import random

import pytest

from psbtcore.chunks import (
    Chunk,
    chunk_size_for_qr_version,
    merge,
    split,
    xor_parity,
)
from psbtcore.errors import EmptyInput, MalformedInput


@pytest.fixture
def payload() -> bytes:
    return bytes(range(256)) + bytes(range(44))


class TestSplit:
    def test_even_split(self, payload: bytes) -> None:
        """300 bytes at 100 per chunk give three full chunks tagged 0..2 of 3."""
        assert len(payload) == 300
        chunks = split(payload, 100)

        assert chunks.total == 3
        assert len(chunks) == 3
        assert [c.index for c in chunks] == [0, 1, 2]
        assert {c.total for c in chunks} == {3}
        assert [len(c.data) for c in chunks] == [100, 100, 100]

    def test_remainder_in_last_chunk(self) -> None:
        chunks = split(b"\xaa" * 250, 100)
        assert [len(c.data) for c in chunks] == [100, 100, 50]

    def test_single_byte(self) -> None:
        chunks = split(b"\x01", 100)
        assert list(chunks) == [Chunk(index=0, total=1, data=b"\x01")]

    def test_chunk_size_one(self) -> None:
        chunks = split(b"abc", 1)
        assert [c.data for c in chunks] == [b"a", b"b", b"c"]

    def test_concatenation_restores_data(self, payload: bytes) -> None:
        for size in (1, 7, 99, 100, 299, 300, 1000):
            chunks = split(payload, size)
            assert b"".join(c.data for c in chunks) == payload

    def test_parity(self) -> None:
        assert split(b"\x01\x02\x04", 2).parity == 0x07
        assert xor_parity(b"\xff\xff") == 0

    def test_empty_input(self) -> None:
        with pytest.raises(EmptyInput):
            split(b"", 100)

    @pytest.mark.parametrize("size", [0, -5])
    def test_invalid_chunk_size(self, size: int) -> None:
        with pytest.raises(ValueError):
            split(b"data", size)


class TestMerge:
    def test_any_order(self, payload: bytes) -> None:
        chunks = list(split(payload, 37))
        random.Random(7).shuffle(chunks)
        assert merge(chunks) == payload

    def test_missing_chunk(self, payload: bytes) -> None:
        chunks = list(split(payload, 100))
        with pytest.raises(MalformedInput, match="Missing"):
            merge(chunks[:2])

    def test_duplicate_chunk(self, payload: bytes) -> None:
        chunks = list(split(payload, 100))
        with pytest.raises(MalformedInput, match="Duplicate"):
            merge(chunks + [chunks[0]])

    def test_mixed_totals(self, payload: bytes) -> None:
        chunks = list(split(payload, 100)) + [Chunk(index=3, total=4, data=b"x")]
        with pytest.raises(MalformedInput, match="disagree"):
            merge(chunks)

    def test_index_out_of_range(self) -> None:
        with pytest.raises(MalformedInput, match="out of range"):
            merge([Chunk(index=2, total=2, data=b"x")])

    def test_no_chunks(self) -> None:
        with pytest.raises(MalformedInput):
            merge([])


class TestQrChunkSize:
    def test_default_version(self) -> None:
        # Version 14-L holds 458 bytes; 3 go to the structured append header
        assert chunk_size_for_qr_version(14) == 455

    def test_bounds(self) -> None:
        assert chunk_size_for_qr_version(1) == 14
        assert chunk_size_for_qr_version(40) == 2950

    @pytest.mark.parametrize("version", [0, 41])
    def test_invalid_version(self, version: int) -> None:
        with pytest.raises(ValueError):
            chunk_size_for_qr_version(version)

    def test_capacity_grows_with_version(self) -> None:
        sizes = [chunk_size_for_qr_version(v) for v in range(1, 41)]
        assert sizes == sorted(sizes)
