"""
PSBT (BIP174) wire decoder and serializer.

A PSBT is the magic ``psbt\\xff`` followed by a global key-value map and one
map per input and per output of the unsigned transaction. Each map is a
sequence of ``<compact-size key><compact-size value>`` pairs closed by a
zero-length key. The first compact size inside the key selects the field.

Every pair is kept as a Record tagged with a member of the closed key-type
enumeration for its map (UNKNOWN for unrecognized types). Typed fields are
parsed from the records, while serialization re-emits the records verbatim
and in their original order, so unknown and proprietary data survive a
decode/serialize round trip byte for byte.
"""

from __future__ import annotations

import base64
import binascii
from dataclasses import dataclass, field
from enum import IntEnum

from loguru import logger

from psbtcore.constants import (
    HARDENED,
    MAX_MONEY,
    PSBT_HIGHEST_VERSION,
    PSBT_MAGIC,
    GlobalKey,
    InputKey,
    OutputKey,
)
from psbtcore.encoding import (
    encode_varbytes,
    encode_varint,
    read_varbytes,
    read_varint,
)
from psbtcore.errors import MalformedInput, UnsupportedVersion
from psbtcore.transaction import OutPoint, Transaction, TxOut

XPUB_SERIALIZED_SIZE = 78


def format_path(path: tuple[int, ...]) -> str:
    """Format a derivation path as ``m/48'/0'/0'/2'/0/5``."""
    parts = ["m"]
    for index in path:
        if index >= HARDENED:
            parts.append(f"{index - HARDENED}'")
        else:
            parts.append(str(index))
    return "/".join(parts)


def encode_key_value(key: bytes, value: bytes) -> bytes:
    """Serialize one key-value pair of a PSBT map."""
    return encode_varbytes(key) + encode_varbytes(value)


@dataclass(frozen=True)
class Record:
    """One key-value pair of a PSBT map, tagged with its key type."""

    kind: IntEnum
    key_type: int
    key_data: bytes
    value: bytes

    @property
    def key(self) -> bytes:
        return encode_varint(self.key_type) + self.key_data

    def serialize(self) -> bytes:
        return encode_key_value(self.key, self.value)


@dataclass(frozen=True)
class KeyOrigin:
    """Master key fingerprint and derivation path of a public key."""

    fingerprint: bytes
    path: tuple[int, ...]

    def __str__(self) -> str:
        return format_path(self.path)

    @property
    def fingerprint_hex(self) -> str:
        return self.fingerprint.hex()

    def serialize(self) -> bytes:
        return self.fingerprint + b"".join(i.to_bytes(4, "little") for i in self.path)

    @classmethod
    def parse(cls, value: bytes) -> KeyOrigin:
        if len(value) < 4 or len(value) % 4:
            raise MalformedInput(f"Invalid key origin length: {len(value)}")
        path = tuple(
            int.from_bytes(value[i : i + 4], "little") for i in range(4, len(value), 4)
        )
        return cls(value[:4], path)


@dataclass(frozen=True)
class GlobalXpub:
    xpub: bytes
    origin: KeyOrigin


@dataclass(frozen=True)
class InputEntry:
    """Decoded PSBT input map joined with its unsigned transaction input."""

    index: int
    prevout: OutPoint
    sequence: int
    records: tuple[Record, ...]
    non_witness_utxo: Transaction | None = None
    witness_utxo: TxOut | None = None
    partial_sigs: dict[bytes, bytes] = field(default_factory=dict)
    sighash_type: int | None = None
    redeem_script: bytes | None = None
    witness_script: bytes | None = None
    bip32_derivations: dict[bytes, KeyOrigin] = field(default_factory=dict)
    final_script_sig: bytes | None = None
    final_script_witness: tuple[bytes, ...] | None = None
    unknown: tuple[Record, ...] = ()

    def __hash__(self) -> int:
        # The dict fields are derived from records
        return hash((self.index, self.prevout, self.sequence, self.records))

    @property
    def spent_output(self) -> TxOut | None:
        """The previous output being spent, from whichever UTXO field is present."""
        if self.witness_utxo is not None:
            return self.witness_utxo
        if self.non_witness_utxo is not None:
            return self.non_witness_utxo.outputs[self.prevout.vout]
        return None

    @property
    def value(self) -> int | None:
        spent = self.spent_output
        return spent.value if spent is not None else None

    @property
    def script_pubkey(self) -> bytes | None:
        spent = self.spent_output
        return spent.script_pubkey if spent is not None else None

    @property
    def is_finalized(self) -> bool:
        return self.final_script_sig is not None or self.final_script_witness is not None


@dataclass(frozen=True)
class OutputEntry:
    """Decoded PSBT output map joined with its unsigned transaction output."""

    index: int
    value: int
    script_pubkey: bytes
    records: tuple[Record, ...]
    redeem_script: bytes | None = None
    witness_script: bytes | None = None
    bip32_derivations: dict[bytes, KeyOrigin] = field(default_factory=dict)
    unknown: tuple[Record, ...] = ()

    def __hash__(self) -> int:
        return hash((self.index, self.value, self.script_pubkey, self.records))


@dataclass(frozen=True)
class DecodedPsbt:
    version: int
    tx: Transaction
    global_records: tuple[Record, ...]
    inputs: tuple[InputEntry, ...]
    outputs: tuple[OutputEntry, ...]
    xpubs: tuple[GlobalXpub, ...] = ()
    global_unknown: tuple[Record, ...] = ()
    raw_size: int = 0

    @property
    def unknown_count(self) -> int:
        """Number of unrecognized or proprietary records across all maps."""
        return (
            len(self.global_unknown)
            + sum(len(inp.unknown) for inp in self.inputs)
            + sum(len(out.unknown) for out in self.outputs)
        )

    def serialize(self) -> bytes:
        return serialize(self)


def _classify(key_enum: type[IntEnum], key_type: int) -> IntEnum:
    try:
        return key_enum(key_type)
    except ValueError:
        return key_enum["UNKNOWN"]


def _read_map(
    data: bytes, offset: int, key_enum: type[IntEnum], scope: str
) -> tuple[list[Record], int]:
    records: list[Record] = []
    seen: set[bytes] = set()

    while True:
        key, offset = read_varbytes(data, offset)
        if not key:
            return records, offset

        key_type, key_offset = read_varint(key, 0)
        value, offset = read_varbytes(data, offset)

        if key in seen:
            raise MalformedInput(f"Duplicate key {key.hex()} in {scope} map")
        seen.add(key)

        record = Record(_classify(key_enum, key_type), key_type, key[key_offset:], value)
        logger.debug(
            f"{scope}: {record.kind.name} key={key.hex()[:20]} value_len={len(value)}"
        )
        records.append(record)


def _require_empty_key(record: Record, scope: str) -> None:
    if record.key_data:
        raise MalformedInput(f"{scope}: {record.kind.name} key must not carry key data")


def _check_pubkey(pubkey: bytes, scope: str) -> None:
    compressed = len(pubkey) == 33 and pubkey[0] in (0x02, 0x03)
    uncompressed = len(pubkey) == 65 and pubkey[0] == 0x04
    if not (compressed or uncompressed):
        raise MalformedInput(f"{scope}: invalid public key {pubkey.hex()}")


def _check_value(value: int, scope: str) -> None:
    if value > MAX_MONEY:
        raise MalformedInput(f"{scope}: value {value} exceeds the 21M BTC supply")


def _parse_witness_stack(value: bytes, scope: str) -> tuple[bytes, ...]:
    count, offset = read_varint(value, 0)
    if count > len(value) - offset:
        raise MalformedInput(f"{scope}: witness item count {count} exceeds data")
    items = []
    for _ in range(count):
        item, offset = read_varbytes(value, offset)
        items.append(item)
    if offset != len(value):
        raise MalformedInput(f"{scope}: trailing bytes after final script witness")
    return tuple(items)


def _parse_global(records: list[Record]) -> tuple[int, Transaction, list[GlobalXpub], list[Record]]:
    version = 0
    tx: Transaction | None = None
    xpubs: list[GlobalXpub] = []
    unknown: list[Record] = []

    for record in records:
        if record.kind == GlobalKey.VERSION:
            _require_empty_key(record, "global")
            if len(record.value) != 4:
                raise MalformedInput(
                    f"global: version value must be 4 bytes, got {len(record.value)}"
                )
            version = int.from_bytes(record.value, "little")
        elif record.kind == GlobalKey.UNSIGNED_TX:
            _require_empty_key(record, "global")
            tx = Transaction.deserialize(record.value, allow_witness=False)
        elif record.kind == GlobalKey.XPUB:
            if len(record.key_data) != XPUB_SERIALIZED_SIZE:
                raise MalformedInput(
                    f"global: xpub key must be 78 bytes, got {len(record.key_data)}"
                )
            xpubs.append(GlobalXpub(record.key_data, KeyOrigin.parse(record.value)))
        else:
            unknown.append(record)

    # Checked before the transaction so PSBTv2 (no unsigned tx) reads as unsupported
    if version > PSBT_HIGHEST_VERSION:
        raise UnsupportedVersion(version, PSBT_HIGHEST_VERSION)

    if tx is None:
        raise MalformedInput("PSBT is missing the global unsigned transaction")

    for i, txin in enumerate(tx.inputs):
        if txin.script_sig:
            raise MalformedInput(f"Unsigned transaction input #{i} has a non-empty scriptSig")

    return version, tx, xpubs, unknown


def _parse_input(index: int, tx: Transaction, records: list[Record]) -> InputEntry:
    scope = f"input #{index}"
    txin = tx.inputs[index]
    fields: dict = {
        "partial_sigs": {},
        "bip32_derivations": {},
    }
    unknown: list[Record] = []

    for record in records:
        kind = record.kind
        if kind == InputKey.NON_WITNESS_UTXO:
            _require_empty_key(record, scope)
            prev_tx = Transaction.deserialize(record.value)
            if prev_tx.txid != txin.prevout.txid:
                raise MalformedInput(
                    f"{scope}: non-witness UTXO txid {prev_tx.txid} does not match "
                    f"prevout {txin.prevout.txid}"
                )
            if txin.prevout.vout >= len(prev_tx.outputs):
                raise MalformedInput(
                    f"{scope}: prevout index {txin.prevout.vout} not in non-witness UTXO"
                )
            _check_value(prev_tx.outputs[txin.prevout.vout].value, scope)
            fields["non_witness_utxo"] = prev_tx
        elif kind == InputKey.WITNESS_UTXO:
            _require_empty_key(record, scope)
            witness_utxo = TxOut.deserialize(record.value)
            _check_value(witness_utxo.value, scope)
            fields["witness_utxo"] = witness_utxo
        elif kind == InputKey.PARTIAL_SIG:
            _check_pubkey(record.key_data, scope)
            fields["partial_sigs"][record.key_data] = record.value
        elif kind == InputKey.SIGHASH_TYPE:
            _require_empty_key(record, scope)
            if len(record.value) != 4:
                raise MalformedInput(f"{scope}: sighash type must be 4 bytes")
            fields["sighash_type"] = int.from_bytes(record.value, "little")
        elif kind == InputKey.REDEEM_SCRIPT:
            _require_empty_key(record, scope)
            fields["redeem_script"] = record.value
        elif kind == InputKey.WITNESS_SCRIPT:
            _require_empty_key(record, scope)
            fields["witness_script"] = record.value
        elif kind == InputKey.BIP32_DERIVATION:
            _check_pubkey(record.key_data, scope)
            fields["bip32_derivations"][record.key_data] = KeyOrigin.parse(record.value)
        elif kind == InputKey.FINAL_SCRIPTSIG:
            _require_empty_key(record, scope)
            fields["final_script_sig"] = record.value
        elif kind == InputKey.FINAL_SCRIPTWITNESS:
            _require_empty_key(record, scope)
            fields["final_script_witness"] = _parse_witness_stack(record.value, scope)
        else:
            unknown.append(record)

    witness_utxo = fields.get("witness_utxo")
    prev_tx = fields.get("non_witness_utxo")
    if witness_utxo is not None and prev_tx is not None:
        if prev_tx.outputs[txin.prevout.vout] != witness_utxo:
            raise MalformedInput(f"{scope}: witness UTXO disagrees with non-witness UTXO")

    return InputEntry(
        index=index,
        prevout=txin.prevout,
        sequence=txin.sequence,
        records=tuple(records),
        unknown=tuple(unknown),
        **fields,
    )


def _parse_output(index: int, tx: Transaction, records: list[Record]) -> OutputEntry:
    scope = f"output #{index}"
    txout = tx.outputs[index]
    _check_value(txout.value, scope)

    redeem_script = None
    witness_script = None
    derivations: dict[bytes, KeyOrigin] = {}
    unknown: list[Record] = []

    for record in records:
        if record.kind == OutputKey.REDEEM_SCRIPT:
            _require_empty_key(record, scope)
            redeem_script = record.value
        elif record.kind == OutputKey.WITNESS_SCRIPT:
            _require_empty_key(record, scope)
            witness_script = record.value
        elif record.kind == OutputKey.BIP32_DERIVATION:
            _check_pubkey(record.key_data, scope)
            derivations[record.key_data] = KeyOrigin.parse(record.value)
        else:
            unknown.append(record)

    return OutputEntry(
        index=index,
        value=txout.value,
        script_pubkey=txout.script_pubkey,
        records=tuple(records),
        redeem_script=redeem_script,
        witness_script=witness_script,
        bip32_derivations=derivations,
        unknown=tuple(unknown),
    )


def decode(data: bytes) -> DecodedPsbt:
    """
    Decode raw PSBT bytes.

    Raises:
        MalformedInput: Bad magic, overrunning length prefixes, missing
            unsigned transaction, map count mismatch, duplicate keys or
            invalid field contents
        UnsupportedVersion: PSBT version newer than BIP174 version 0
    """
    if not data.startswith(PSBT_MAGIC):
        raise MalformedInput("Data does not start with the PSBT magic bytes")

    offset = len(PSBT_MAGIC)
    global_records, offset = _read_map(data, offset, GlobalKey, "global")
    version, tx, xpubs, global_unknown = _parse_global(global_records)

    logger.debug(
        f"Unsigned tx {tx.txid}: {len(tx.inputs)} inputs, {len(tx.outputs)} outputs"
    )

    inputs = []
    for i in range(len(tx.inputs)):
        if offset >= len(data):
            raise MalformedInput(f"PSBT has fewer input maps than transaction inputs ({i})")
        records, offset = _read_map(data, offset, InputKey, f"input #{i}")
        inputs.append(_parse_input(i, tx, records))

    outputs = []
    for i in range(len(tx.outputs)):
        if offset >= len(data):
            raise MalformedInput(f"PSBT has fewer output maps than transaction outputs ({i})")
        records, offset = _read_map(data, offset, OutputKey, f"output #{i}")
        outputs.append(_parse_output(i, tx, records))

    if offset != len(data):
        raise MalformedInput(f"{len(data) - offset} trailing bytes after the last PSBT map")

    return DecodedPsbt(
        version=version,
        tx=tx,
        global_records=tuple(global_records),
        inputs=tuple(inputs),
        outputs=tuple(outputs),
        xpubs=tuple(xpubs),
        global_unknown=tuple(global_unknown),
        raw_size=len(data),
    )


def _serialize_map(records: tuple[Record, ...]) -> bytes:
    return b"".join(record.serialize() for record in records) + b"\x00"


def serialize(psbt: DecodedPsbt) -> bytes:
    """Re-emit a decoded PSBT. ``serialize(decode(b)) == b`` for every accepted ``b``."""
    result = PSBT_MAGIC + _serialize_map(psbt.global_records)
    for inp in psbt.inputs:
        result += _serialize_map(inp.records)
    for out in psbt.outputs:
        result += _serialize_map(out.records)
    return result


def parse_psbt_text(text: str) -> bytes:
    """Convert a base64 or hex encoded PSBT to raw bytes."""
    text = text.strip()
    if text.lower().startswith(PSBT_MAGIC.hex()):
        try:
            return bytes.fromhex(text)
        except ValueError as e:
            raise MalformedInput(f"Invalid hex PSBT: {e}") from e
    try:
        return base64.b64decode(text, validate=True)
    except binascii.Error as e:
        raise MalformedInput(f"PSBT is neither hex nor base64: {e}") from e
