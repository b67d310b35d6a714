"""
psbtcore - PSBT wire format, transaction codec and chunking

Provides the pieces of the analyzer that only look at bytes.
"""

__version__ = "0.1.0"

from psbtcore.chunks import Chunk, ChunkSet, chunk_size_for_qr_version, merge, split
from psbtcore.constants import PSBT_MAGIC, GlobalKey, InputKey, NetworkType, OutputKey
from psbtcore.errors import (
    AmbiguousOwnership,
    EmptyInput,
    MalformedInput,
    NegativeFee,
    PsbtError,
    UnsupportedVersion,
)
from psbtcore.psbt import (
    DecodedPsbt,
    GlobalXpub,
    InputEntry,
    KeyOrigin,
    OutputEntry,
    Record,
    decode,
    format_path,
    parse_psbt_text,
    serialize,
)
from psbtcore.transaction import OutPoint, Transaction, TxIn, TxOut

__all__ = [
    "AmbiguousOwnership",
    "Chunk",
    "ChunkSet",
    "DecodedPsbt",
    "EmptyInput",
    "GlobalKey",
    "GlobalXpub",
    "InputEntry",
    "InputKey",
    "KeyOrigin",
    "MalformedInput",
    "NegativeFee",
    "NetworkType",
    "OutPoint",
    "OutputEntry",
    "OutputKey",
    "PSBT_MAGIC",
    "PsbtError",
    "Record",
    "Transaction",
    "TxIn",
    "TxOut",
    "UnsupportedVersion",
    "chunk_size_for_qr_version",
    "decode",
    "format_path",
    "merge",
    "parse_psbt_text",
    "serialize",
    "split",
]
