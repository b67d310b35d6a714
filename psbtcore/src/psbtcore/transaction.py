"""
Bitcoin transaction codec.

Used for the PSBT's unsigned transaction skeleton and for embedded previous
transactions (non-witness UTXOs).
"""

from __future__ import annotations

from dataclasses import dataclass

from psbtcore.encoding import (
    encode_varbytes,
    encode_varint,
    hash256,
    read_bytes,
    read_uint,
    read_varbytes,
    read_varint,
)
from psbtcore.errors import MalformedInput

# Smallest possible serialized input (outpoint + empty script + sequence)
# and output (value + empty script); used to reject absurd counts early.
MIN_INPUT_SIZE = 41
MIN_OUTPUT_SIZE = 9


@dataclass(frozen=True)
class OutPoint:
    """Reference to a previous transaction output. txid is in RPC (display) byte order."""

    txid: str
    vout: int

    def __str__(self) -> str:
        return f"{self.txid}:{self.vout}"

    def serialize(self) -> bytes:
        return bytes.fromhex(self.txid)[::-1] + self.vout.to_bytes(4, "little")


@dataclass(frozen=True)
class TxIn:
    prevout: OutPoint
    script_sig: bytes = b""
    sequence: int = 0xFFFFFFFF
    witness: tuple[bytes, ...] = ()

    def serialize(self) -> bytes:
        return (
            self.prevout.serialize()
            + encode_varbytes(self.script_sig)
            + self.sequence.to_bytes(4, "little")
        )


@dataclass(frozen=True)
class TxOut:
    value: int
    script_pubkey: bytes

    def serialize(self) -> bytes:
        return self.value.to_bytes(8, "little") + encode_varbytes(self.script_pubkey)

    @classmethod
    def read(cls, data: bytes, offset: int) -> tuple[TxOut, int]:
        value, offset = read_uint(data, offset, 8)
        script_pubkey, offset = read_varbytes(data, offset)
        return cls(value, script_pubkey), offset

    @classmethod
    def deserialize(cls, data: bytes) -> TxOut:
        txout, offset = cls.read(data, 0)
        if offset != len(data):
            raise MalformedInput(f"{len(data) - offset} trailing bytes after transaction output")
        return txout


@dataclass(frozen=True)
class Transaction:
    version: int
    inputs: tuple[TxIn, ...]
    outputs: tuple[TxOut, ...]
    locktime: int

    @property
    def has_witness(self) -> bool:
        return any(inp.witness for inp in self.inputs)

    def serialize(self, include_witness: bool = True) -> bytes:
        segwit = include_witness and self.has_witness

        result = self.version.to_bytes(4, "little")
        if segwit:
            result += bytes([0x00, 0x01])

        result += encode_varint(len(self.inputs))
        for inp in self.inputs:
            result += inp.serialize()

        result += encode_varint(len(self.outputs))
        for out in self.outputs:
            result += out.serialize()

        if segwit:
            for inp in self.inputs:
                result += encode_varint(len(inp.witness))
                for item in inp.witness:
                    result += encode_varbytes(item)

        result += self.locktime.to_bytes(4, "little")
        return result

    def serialize_no_witness(self) -> bytes:
        return self.serialize(include_witness=False)

    @property
    def txid(self) -> str:
        """Double SHA256 of the non-witness serialization, display byte order."""
        return hash256(self.serialize_no_witness())[::-1].hex()

    @property
    def base_size(self) -> int:
        return len(self.serialize_no_witness())

    @classmethod
    def read(
        cls, data: bytes, offset: int = 0, allow_witness: bool = True
    ) -> tuple[Transaction, int]:
        """
        Parse a transaction starting at ``offset``.

        Args:
            data: Buffer holding the transaction
            offset: Start position
            allow_witness: Whether the BIP144 marker/flag may be present. The
                PSBT unsigned transaction is always non-witness, which also
                settles the zero-input ambiguity of the extended format.

        Returns:
            (transaction, offset after the transaction)
        """
        version, offset = read_uint(data, offset, 4)

        segwit = False
        if allow_witness and data[offset : offset + 2] == b"\x00\x01":
            segwit = True
            offset += 2

        input_count, offset = read_varint(data, offset)
        if input_count * MIN_INPUT_SIZE > len(data) - offset:
            raise MalformedInput(f"Input count {input_count} exceeds remaining data")

        raw_inputs: list[tuple[OutPoint, bytes, int]] = []
        for _ in range(input_count):
            txid_le, offset = read_bytes(data, offset, 32)
            vout, offset = read_uint(data, offset, 4)
            script_sig, offset = read_varbytes(data, offset)
            sequence, offset = read_uint(data, offset, 4)
            raw_inputs.append((OutPoint(txid_le[::-1].hex(), vout), script_sig, sequence))

        output_count, offset = read_varint(data, offset)
        if output_count * MIN_OUTPUT_SIZE > len(data) - offset:
            raise MalformedInput(f"Output count {output_count} exceeds remaining data")

        outputs: list[TxOut] = []
        for _ in range(output_count):
            txout, offset = TxOut.read(data, offset)
            outputs.append(txout)

        witnesses: list[tuple[bytes, ...]] = [() for _ in raw_inputs]
        if segwit:
            for i in range(input_count):
                stack_count, offset = read_varint(data, offset)
                if stack_count > len(data) - offset:
                    raise MalformedInput(f"Witness item count {stack_count} exceeds remaining data")
                items = []
                for _ in range(stack_count):
                    item, offset = read_varbytes(data, offset)
                    items.append(item)
                witnesses[i] = tuple(items)
            if not any(witnesses):
                raise MalformedInput("Transaction has witness marker but no witness data")

        locktime, offset = read_uint(data, offset, 4)

        inputs = tuple(
            TxIn(prevout, script_sig, sequence, witness)
            for (prevout, script_sig, sequence), witness in zip(raw_inputs, witnesses)
        )
        return cls(version, inputs, tuple(outputs), locktime), offset

    @classmethod
    def deserialize(cls, data: bytes, allow_witness: bool = True) -> Transaction:
        """Parse a transaction that must span the whole buffer."""
        tx, offset = cls.read(data, 0, allow_witness=allow_witness)
        if offset != len(data):
            raise MalformedInput(f"{len(data) - offset} trailing bytes after transaction")
        return tx
