"""
Bitcoin compact-size integers and bounds-checked byte reading.

Every reader takes ``(data, offset)`` and returns ``(value, new_offset)``.
Reads past the end of the buffer raise MalformedInput instead of returning
short slices, so a truncated PSBT can never be mistaken for a shorter one.
"""

from __future__ import annotations

import hashlib

from psbtcore.errors import MalformedInput


def hash256(data: bytes) -> bytes:
    return hashlib.sha256(hashlib.sha256(data).digest()).digest()


def read_bytes(data: bytes, offset: int, length: int) -> tuple[bytes, int]:
    end = offset + length
    if length < 0 or end > len(data):
        raise MalformedInput(
            f"Length {length} at offset {offset} overruns buffer of {len(data)} bytes"
        )
    return data[offset:end], end


def read_uint(data: bytes, offset: int, size: int) -> tuple[int, int]:
    """Read a little-endian unsigned integer of ``size`` bytes."""
    raw, offset = read_bytes(data, offset, size)
    return int.from_bytes(raw, "little"), offset


def read_varint(data: bytes, offset: int) -> tuple[int, int]:
    """Read a canonically encoded compact size."""
    first, offset = read_uint(data, offset, 1)

    if first < 0xFD:
        return first, offset
    if first == 0xFD:
        value, offset = read_uint(data, offset, 2)
        minimum = 0xFD
    elif first == 0xFE:
        value, offset = read_uint(data, offset, 4)
        minimum = 0x10000
    else:
        value, offset = read_uint(data, offset, 8)
        minimum = 0x100000000

    if value < minimum:
        raise MalformedInput(f"Non-canonical compact size {value} at offset {offset}")
    return value, offset


def read_varbytes(data: bytes, offset: int) -> tuple[bytes, int]:
    """Read a compact-size length prefix followed by that many bytes."""
    length, offset = read_varint(data, offset)
    return read_bytes(data, offset, length)


def encode_varint(value: int) -> bytes:
    if value < 0:
        raise ValueError(f"Compact size cannot be negative: {value}")
    if value < 0xFD:
        return bytes([value])
    if value <= 0xFFFF:
        return b"\xfd" + value.to_bytes(2, "little")
    if value <= 0xFFFFFFFF:
        return b"\xfe" + value.to_bytes(4, "little")
    return b"\xff" + value.to_bytes(8, "little")


def encode_varbytes(data: bytes) -> bytes:
    return encode_varint(len(data)) + data


def varint_size(value: int) -> int:
    """Number of bytes ``encode_varint(value)`` takes."""
    if value < 0xFD:
        return 1
    if value <= 0xFFFF:
        return 3
    if value <= 0xFFFFFFFF:
        return 5
    return 9
