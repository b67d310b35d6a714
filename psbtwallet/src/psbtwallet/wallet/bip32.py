"""
BIP32 extended public keys.

Only public (non-hardened) derivation is implemented: wallet descriptors
handed to the analyzer hold xpubs, never private keys.
"""

from __future__ import annotations

import hashlib
import hmac
from collections.abc import Sequence
from dataclasses import dataclass

import base58
from coincurve import PublicKey

from psbtcore.constants import HARDENED, NetworkType
from psbtwallet.wallet.address import hash160

# secp256k1 curve order
SECP256K1_N = int("FFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFEBAAEDCE6AF48A03BBFD25E8CD0364141", 16)

# SLIP-132 version bytes -> (prefix, mainnet)
XPUB_VERSIONS: dict[bytes, tuple[str, bool]] = {
    bytes.fromhex("0488b21e"): ("xpub", True),
    bytes.fromhex("049d7cb2"): ("ypub", True),
    bytes.fromhex("04b24746"): ("zpub", True),
    bytes.fromhex("0295b43f"): ("Ypub", True),
    bytes.fromhex("02aa7ed3"): ("Zpub", True),
    bytes.fromhex("043587cf"): ("tpub", False),
    bytes.fromhex("044a5262"): ("upub", False),
    bytes.fromhex("045f1cf6"): ("vpub", False),
    bytes.fromhex("024289ef"): ("Upub", False),
    bytes.fromhex("02575483"): ("Vpub", False),
}


class BIP32Error(ValueError):
    pass


def parse_path(path: str) -> tuple[int, ...]:
    """
    Parse path notation (e.g., "m/84'/0'/0'/0/0") into child indexes.
    ' or h indicates hardened derivation
    """
    parts = path.split("/")
    if parts and parts[0] == "m":
        parts = parts[1:]

    indexes = []
    for part in parts:
        if not part:
            continue

        hardened = part.endswith(("'", "h", "H"))
        index_str = part.rstrip("'hH")
        if not index_str.isdigit():
            raise BIP32Error(f"Invalid path component: {part!r}")
        index = int(index_str)
        if index >= HARDENED:
            raise BIP32Error(f"Path index out of range: {part!r}")

        if hardened:
            index += HARDENED

        indexes.append(index)

    return tuple(indexes)


@dataclass(frozen=True)
class ExtendedPublicKey:
    """
    BIP32 extended public key.

    The public key is stored compressed (33 bytes).
    """

    version: bytes
    depth: int
    parent_fingerprint: bytes
    child_number: int
    chain_code: bytes
    public_key: bytes

    @classmethod
    def from_base58(cls, text: str) -> ExtendedPublicKey:
        try:
            raw = base58.b58decode_check(text)
        except ValueError as e:
            raise BIP32Error(f"Invalid extended key checksum or encoding: {e}") from e
        return cls.from_bytes(raw)

    @classmethod
    def from_bytes(cls, raw: bytes) -> ExtendedPublicKey:
        if len(raw) != 78:
            raise BIP32Error(f"Extended key must be 78 bytes, got {len(raw)}")

        version = raw[:4]
        if version not in XPUB_VERSIONS:
            raise BIP32Error(f"Unknown extended public key version {version.hex()}")

        public_key = raw[45:78]
        try:
            PublicKey(public_key)
        except ValueError as e:
            raise BIP32Error(f"Extended key holds an invalid public key: {e}") from e

        return cls(
            version=version,
            depth=raw[4],
            parent_fingerprint=raw[5:9],
            child_number=int.from_bytes(raw[9:13], "big"),
            chain_code=raw[13:45],
            public_key=public_key,
        )

    def to_bytes(self) -> bytes:
        return (
            self.version
            + bytes([self.depth])
            + self.parent_fingerprint
            + self.child_number.to_bytes(4, "big")
            + self.chain_code
            + self.public_key
        )

    def to_base58(self) -> str:
        return base58.b58encode_check(self.to_bytes()).decode()

    def __str__(self) -> str:
        return self.to_base58()

    @property
    def prefix(self) -> str:
        return XPUB_VERSIONS[self.version][0]

    @property
    def is_mainnet(self) -> bool:
        return XPUB_VERSIONS[self.version][1]

    def matches_network(self, network: NetworkType) -> bool:
        return self.is_mainnet == (network == NetworkType.MAINNET)

    @property
    def fingerprint(self) -> bytes:
        """First 4 bytes of HASH160 of the public key"""
        return hash160(self.public_key)[:4]

    def derive_child(self, index: int) -> ExtendedPublicKey:
        """Derive a non-hardened child key (CKDpub)"""
        if index >= HARDENED:
            raise BIP32Error("Cannot derive a hardened child from a public key")
        if index < 0:
            raise BIP32Error(f"Invalid child index {index}")

        data = self.public_key + index.to_bytes(4, "big")
        hmac_result = hmac.new(self.chain_code, data, hashlib.sha512).digest()
        key_offset = hmac_result[:32]
        child_chain = hmac_result[32:]

        if int.from_bytes(key_offset, "big") >= SECP256K1_N:
            raise BIP32Error(f"Invalid child key at index {index}")

        try:
            child_point = PublicKey(self.public_key).add(key_offset)
        except ValueError as e:
            raise BIP32Error(f"Invalid child key at index {index}: {e}") from e

        return ExtendedPublicKey(
            version=self.version,
            depth=self.depth + 1,
            parent_fingerprint=self.fingerprint,
            child_number=index,
            chain_code=child_chain,
            public_key=child_point.format(compressed=True),
        )

    def derive(self, path: Sequence[int] | str) -> ExtendedPublicKey:
        """Derive along a relative path, e.g. (0, 5) or "m/0/5"."""
        if isinstance(path, str):
            path = parse_path(path)

        key = self
        for index in path:
            key = key.derive_child(index)
        return key
