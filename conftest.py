"""
Fixtures shared by the psbtcore, psbtwallet and analyzer test suites.

PSBTs are assembled from raw key-value pairs, so each test controls exactly
which records end up in the maps.
"""

from __future__ import annotations

from collections.abc import Sequence

import pytest

from psbtcore.constants import PSBT_MAGIC, InputKey, OutputKey
from psbtcore.psbt import KeyOrigin, encode_key_value
from psbtcore.transaction import OutPoint, Transaction, TxIn, TxOut
from psbtwallet.descriptor import WalletDescriptor

# BIP32 test vector 1: master fingerprint and public keys at m/0H, m/0H/1
# and m/0H/1/2H/2
TV1_FINGERPRINT = "3442193e"
TV1_XPUB_M0H = (
    "xpub68Gmy5EdvgibQVfPdqkBBCHxA5htiqg55crXYuXoQRKfDBFA1WEjWgP6LH"
    "hwBZeNK1VTsfTFUHCdrfp1bgwQ9xv5ski8PX9rL2dZXvgGDnw"
)
TV1_XPUB_M0H_1 = (
    "xpub6ASuArnXKPbfEwhqN6e3mwBcDTgzisQN1wXN9BJcM47sSikHjJf3UFHKkN"
    "AWbWMiGj7Wf5uMash7SyYq527Hqck2AxYysAA7xmALppuCkwQ"
)
TV1_XPUB_M0H_1_2H_2 = (
    "xpub6FHa3pjLCk84BayeJxFW2SP4XRrFd1JYnxeLeU8EqN3vDfZmbqBqaGJAyi"
    "LjTAwm6ZLRQUMv1ZACTj37sR62cfN7fe5JnJ7dh8zL4fiyLHV"
)

# Generator point G and its P2WPKH script (BIP173 example key)
PUBKEY_G = bytes.fromhex("0279be667ef9dcbbac55a06295ce870b07029bfcdb2dce28d959f2815b16f81798")
P2WPKH_G = bytes.fromhex("0014751e76e8199196d454941c45d1b3a323f1433bd6")
P2PKH_G = bytes.fromhex("76a914751e76e8199196d454941c45d1b3a323f1433bd688ac")

KeyValues = Sequence[tuple[bytes, bytes]]
Derivations = Sequence[tuple[bytes, KeyOrigin]]


def encode_map(pairs: KeyValues) -> bytes:
    return b"".join(encode_key_value(key, value) for key, value in pairs) + b"\x00"


class PsbtBuilder:
    """Assemble PSBT bytes input by input and output by output."""

    def __init__(self) -> None:
        self.txins: list[TxIn] = []
        self.txouts: list[TxOut] = []
        self.input_maps: list[list[tuple[bytes, bytes]]] = []
        self.output_maps: list[list[tuple[bytes, bytes]]] = []
        self.global_pairs: list[tuple[bytes, bytes]] = []
        self.version = 2
        self.locktime = 0

    def add_input(
        self,
        value: int | None,
        script_pubkey: bytes = P2WPKH_G,
        derivations: Derivations = (),
        extra: KeyValues = (),
        prevout: OutPoint | None = None,
        sequence: int = 0xFFFFFFFD,
    ) -> PsbtBuilder:
        """Add an input; ``value=None`` leaves out the witness UTXO record."""
        if prevout is None:
            prevout = OutPoint(f"{len(self.txins) + 1:064x}", 0)
        self.txins.append(TxIn(prevout, sequence=sequence))

        pairs = []
        if value is not None:
            pairs.append((bytes([InputKey.WITNESS_UTXO]), TxOut(value, script_pubkey).serialize()))
        for pubkey, origin in derivations:
            pairs.append((bytes([InputKey.BIP32_DERIVATION]) + pubkey, origin.serialize()))
        pairs.extend(extra)
        self.input_maps.append(pairs)
        return self

    def add_output(
        self,
        value: int,
        script_pubkey: bytes = P2WPKH_G,
        derivations: Derivations = (),
        extra: KeyValues = (),
    ) -> PsbtBuilder:
        self.txouts.append(TxOut(value, script_pubkey))
        pairs = [
            (bytes([OutputKey.BIP32_DERIVATION]) + pubkey, origin.serialize())
            for pubkey, origin in derivations
        ]
        pairs.extend(extra)
        self.output_maps.append(pairs)
        return self

    def add_global(self, key: bytes, value: bytes) -> PsbtBuilder:
        self.global_pairs.append((key, value))
        return self

    @property
    def tx(self) -> Transaction:
        return Transaction(self.version, tuple(self.txins), tuple(self.txouts), self.locktime)

    def build(self) -> bytes:
        unsigned_tx = (b"\x00", self.tx.serialize_no_witness())
        result = PSBT_MAGIC + encode_map([unsigned_tx, *self.global_pairs])
        for pairs in self.input_maps:
            result += encode_map(pairs)
        for pairs in self.output_maps:
            result += encode_map(pairs)
        return result


@pytest.fixture
def psbt_builder() -> PsbtBuilder:
    return PsbtBuilder()


@pytest.fixture
def new_builder() -> type[PsbtBuilder]:
    """The builder class, for tests that assemble several PSBTs."""
    return PsbtBuilder


@pytest.fixture
def tv1_fingerprint() -> bytes:
    return bytes.fromhex(TV1_FINGERPRINT)


@pytest.fixture
def tv1_xpubs() -> dict[str, str]:
    return {
        "m/0h": TV1_XPUB_M0H,
        "m/0h/1": TV1_XPUB_M0H_1,
        "m/0h/1/2h/2": TV1_XPUB_M0H_1_2H_2,
    }


@pytest.fixture
def pubkey_g() -> bytes:
    return PUBKEY_G


@pytest.fixture
def p2wpkh_g() -> bytes:
    return P2WPKH_G


@pytest.fixture
def p2pkh_g() -> bytes:
    return P2PKH_G


def derivations_at(
    descriptor: WalletDescriptor, rest: Sequence[int]
) -> list[tuple[bytes, KeyOrigin]]:
    """BIP32 derivation records of every key of ``descriptor`` at ``rest``."""
    return [
        (key.pubkey_at(rest), KeyOrigin(key.origin_fingerprint, key.origin_path + tuple(rest)))
        for key in descriptor.keys
    ]


@pytest.fixture
def owned_by():
    """Derivation records a wallet would add for its own input or output."""
    return derivations_at


@pytest.fixture
def wallet_a() -> WalletDescriptor:
    """Single-key P2WPKH wallet on the m/0h key."""
    return WalletDescriptor.parse("A", f"wpkh([{TV1_FINGERPRINT}/0h]{TV1_XPUB_M0H}/<0;1>/*)")


@pytest.fixture
def vault() -> WalletDescriptor:
    """2-of-3 P2WSH sortedmulti wallet; its first cosigner is wallet A's key."""
    keys = ",".join(
        [
            f"[{TV1_FINGERPRINT}/0h]{TV1_XPUB_M0H}/<0;1>/*",
            f"[{TV1_FINGERPRINT}/0h/1]{TV1_XPUB_M0H_1}/<0;1>/*",
            f"[{TV1_FINGERPRINT}/0h/1/2h/2]{TV1_XPUB_M0H_1_2H_2}/<0;1>/*",
        ]
    )
    return WalletDescriptor.parse("vault", f"wsh(sortedmulti(2,{keys}))")
