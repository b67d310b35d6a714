"""
Wallet descriptors: which scripts a wallet owns and at which derivation paths.

A WalletDescriptor is a named output-descriptor template over one or more
extended public keys, e.g.::

    wsh(sortedmulti(2,[d34db33f/48'/0'/0'/2']xpub.../<0;1>/*,[...]xpub.../<0;1>/*))

Supported forms: pkh, wpkh, sh(wpkh), sh(multi), wsh(multi), sh(wsh(multi)),
each multi also as sortedmulti.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from enum import Enum

from psbtcore.constants import HARDENED, NetworkType
from psbtcore.psbt import KeyOrigin
from psbtwallet.wallet.address import (
    MAX_MULTISIG_KEYS,
    multisig_script,
    p2pkh_script,
    p2sh_script,
    p2wpkh_script,
    p2wsh_script,
)
from psbtwallet.wallet.bip32 import BIP32Error, ExtendedPublicKey, parse_path

INPUT_CHARSET = (
    "0123456789()[],'/*abcdefgh@:$%{}"
    "IJKLMNOPQRSTUVWXYZ&+-.;<=>?!^_|~ijklmnopqrstuvwxyzABCDEFGH`#\"\\ "
)
CHECKSUM_CHARSET = "qpzry9x8gf2tvdw0s3jn54khce6mua7l"


class DescriptorError(ValueError):
    """Invalid descriptor text or descriptor contents."""

    pass


def _polymod(c: int, val: int) -> int:
    c0 = c >> 35
    c = ((c & 0x7FFFFFFFF) << 5) ^ val
    if c0 & 1:
        c ^= 0xF5DEE51989
    if c0 & 2:
        c ^= 0xA9FDCA3312
    if c0 & 4:
        c ^= 0x1BAB10E32D
    if c0 & 8:
        c ^= 0x3706B1677A
    if c0 & 16:
        c ^= 0x644D626FFD
    return c


def descriptor_checksum(desc: str) -> str:
    """BIP380 descriptor checksum (8 characters)."""
    c = 1
    cls = 0
    clscount = 0
    for ch in desc:
        pos = INPUT_CHARSET.find(ch)
        if pos == -1:
            raise DescriptorError(f"Invalid character in descriptor: {ch!r}")

        c = _polymod(c, pos & 31)
        cls = cls * 3 + (pos >> 5)
        clscount += 1
        if clscount == 3:
            c = _polymod(c, cls)
            cls = 0
            clscount = 0

    if clscount > 0:
        c = _polymod(c, cls)
    for _ in range(8):
        c = _polymod(c, 0)
    c ^= 1

    return "".join(CHECKSUM_CHARSET[(c >> (5 * (7 - j))) & 31] for j in range(8))


def strip_checksum(text: str) -> str:
    """Remove and verify a trailing ``#checksum``; text without one is returned as is."""
    if "#" not in text:
        return text
    desc, _, checksum = text.rpartition("#")
    expected = descriptor_checksum(desc)
    if checksum != expected:
        raise DescriptorError(f"Descriptor checksum mismatch: got {checksum}, expected {expected}")
    return desc


class ScriptTemplate(str, Enum):
    PKH = "pkh"
    WPKH = "wpkh"
    SH_WPKH = "sh-wpkh"
    SH_MULTI = "sh-multi"
    WSH_MULTI = "wsh-multi"
    SH_WSH_MULTI = "sh-wsh-multi"

    @property
    def is_multisig(self) -> bool:
        return self not in (ScriptTemplate.PKH, ScriptTemplate.WPKH, ScriptTemplate.SH_WPKH)


@dataclass(frozen=True)
class DescriptorKey:
    """
    An extended public key with its origin and the derivation steps below it.

    ``suffix`` holds one entry per step after the xpub: a tuple of allowed
    indexes (one for a fixed step, several for a ``<a;b>`` multipath step),
    or None for the ``*`` wildcard.
    """

    xpub: ExtendedPublicKey
    origin_fingerprint: bytes
    origin_path: tuple[int, ...] = ()
    suffix: tuple[tuple[int, ...] | None, ...] = ((0, 1), None)

    def remainder(self, origin: KeyOrigin) -> tuple[int, ...] | None:
        """Steps below the xpub if ``origin`` lies inside this key's derivation range."""
        if origin.fingerprint != self.origin_fingerprint:
            return None

        depth = len(self.origin_path)
        if origin.path[:depth] != self.origin_path:
            return None

        rest = origin.path[depth:]
        if not self.accepts(rest):
            return None
        return rest

    def accepts(self, rest: Sequence[int]) -> bool:
        if len(rest) != len(self.suffix):
            return False
        for index, allowed in zip(rest, self.suffix):
            if index >= HARDENED:
                return False
            if allowed is not None and index not in allowed:
                return False
        return True

    def pubkey_at(self, rest: Sequence[int]) -> bytes:
        return self.xpub.derive(rest).public_key


@dataclass(frozen=True)
class WalletDescriptor:
    """A named wallet: script template, threshold and cosigner keys."""

    name: str
    template: ScriptTemplate
    keys: tuple[DescriptorKey, ...]
    threshold: int = 1
    sorted_keys: bool = False

    def __post_init__(self) -> None:
        if not self.name:
            raise DescriptorError("Wallet descriptor needs a name")
        if not self.keys:
            raise DescriptorError(f"Wallet {self.name} has no keys")
        if self.template.is_multisig:
            if not 1 <= self.threshold <= len(self.keys) <= MAX_MULTISIG_KEYS:
                raise DescriptorError(
                    f"Wallet {self.name}: invalid multisig {self.threshold}-of-{len(self.keys)}"
                )
        elif len(self.keys) != 1 or self.threshold != 1:
            raise DescriptorError(f"Wallet {self.name}: single-key template needs exactly one key")

    @property
    def required_signatures(self) -> int:
        return self.threshold

    def owned_path(self, pubkey: bytes, origin: KeyOrigin) -> tuple[int, ...] | None:
        """
        Steps below the xpubs at which this wallet derives ``pubkey``.

        Returns None unless one of the wallet's keys covers ``origin`` and
        actually derives ``pubkey`` there.
        """
        for key in self.keys:
            rest = key.remainder(origin)
            if rest is not None and key.pubkey_at(rest) == pubkey:
                return rest
        return None

    def pubkeys_at(self, rest: Sequence[int]) -> list[bytes]:
        """Cosigner keys at ``rest`` in descriptor order."""
        for key in self.keys:
            if not key.accepts(rest):
                raise DescriptorError(f"Wallet {self.name}: path {list(rest)} outside key range")
        return [key.pubkey_at(rest) for key in self.keys]

    def multisig_script_at(self, rest: Sequence[int]) -> bytes:
        return multisig_script(self.threshold, self.pubkeys_at(rest), sort=self.sorted_keys)

    def script_pubkey_at(self, rest: Sequence[int]) -> bytes:
        """The scriptPubKey this wallet derives at ``rest``."""
        if self.template == ScriptTemplate.PKH:
            return p2pkh_script(self.pubkeys_at(rest)[0])
        if self.template == ScriptTemplate.WPKH:
            return p2wpkh_script(self.pubkeys_at(rest)[0])
        if self.template == ScriptTemplate.SH_WPKH:
            return p2sh_script(p2wpkh_script(self.pubkeys_at(rest)[0]))

        ms = self.multisig_script_at(rest)
        if self.template == ScriptTemplate.SH_MULTI:
            return p2sh_script(ms)
        if self.template == ScriptTemplate.WSH_MULTI:
            return p2wsh_script(ms)
        return p2sh_script(p2wsh_script(ms))

    @classmethod
    def parse(
        cls, name: str, text: str, network: NetworkType = NetworkType.MAINNET
    ) -> WalletDescriptor:
        """
        Parse an output descriptor string.

        Args:
            name: Wallet name reported for owned inputs/outputs
            text: Descriptor, optionally followed by ``#checksum``
            network: Network the xpubs must belong to

        Raises:
            DescriptorError: Unsupported form, bad checksum, bad key expression
                or xpub from another network
        """
        desc = strip_checksum(text.strip())

        inner = _unwrap(desc, "sh")
        if inner is not None:
            nested = _unwrap(inner, "wsh")
            if nested is not None:
                return cls._parse_multi(name, nested, ScriptTemplate.SH_WSH_MULTI, network)
            single = _unwrap(inner, "wpkh")
            if single is not None:
                return cls(name, ScriptTemplate.SH_WPKH, (parse_key(single, network),))
            return cls._parse_multi(name, inner, ScriptTemplate.SH_MULTI, network)

        inner = _unwrap(desc, "wsh")
        if inner is not None:
            return cls._parse_multi(name, inner, ScriptTemplate.WSH_MULTI, network)

        for func, template in (("wpkh", ScriptTemplate.WPKH), ("pkh", ScriptTemplate.PKH)):
            inner = _unwrap(desc, func)
            if inner is not None:
                return cls(name, template, (parse_key(inner, network),))

        raise DescriptorError(f"Unsupported descriptor: {desc}")

    @classmethod
    def _parse_multi(
        cls, name: str, text: str, template: ScriptTemplate, network: NetworkType
    ) -> WalletDescriptor:
        sorted_keys = False
        inner = _unwrap(text, "multi")
        if inner is None:
            inner = _unwrap(text, "sortedmulti")
            sorted_keys = True
        if inner is None:
            raise DescriptorError(f"Expected multi or sortedmulti, got: {text}")

        threshold_str, *key_exprs = inner.split(",")
        if not threshold_str.isdigit():
            raise DescriptorError(f"Invalid multisig threshold: {threshold_str!r}")

        keys = tuple(parse_key(expr, network) for expr in key_exprs)
        return cls(name, template, keys, threshold=int(threshold_str), sorted_keys=sorted_keys)


def _unwrap(text: str, func: str) -> str | None:
    prefix = f"{func}("
    if text.startswith(prefix) and text.endswith(")"):
        return text[len(prefix) : -1]
    return None


def _parse_suffix_step(step: str) -> tuple[int, ...] | None:
    if step == "*":
        return None
    if step.endswith(("'", "h", "H")):
        raise DescriptorError("Hardened derivation after an xpub cannot be resolved")
    if step.startswith("<") and step.endswith(">"):
        alternatives = step[1:-1].split(";")
        if len(alternatives) < 2 or not all(a.isdigit() for a in alternatives):
            raise DescriptorError(f"Invalid multipath step: {step!r}")
        return tuple(int(a) for a in alternatives)
    if not step.isdigit():
        raise DescriptorError(f"Invalid derivation step: {step!r}")
    return (int(step),)


def parse_key(expr: str, network: NetworkType = NetworkType.MAINNET) -> DescriptorKey:
    """Parse ``[fingerprint/origin/path]xpub/suffix`` into a DescriptorKey."""
    expr = expr.strip()
    origin_fingerprint: bytes | None = None
    origin_path: tuple[int, ...] = ()

    if expr.startswith("["):
        end = expr.find("]")
        if end == -1:
            raise DescriptorError(f"Unterminated key origin: {expr}")
        fingerprint_hex, _, path = expr[1:end].partition("/")
        if len(fingerprint_hex) != 8:
            raise DescriptorError(
                f"Key origin fingerprint must be 8 hex chars: {fingerprint_hex!r}"
            )
        try:
            origin_fingerprint = bytes.fromhex(fingerprint_hex)
            origin_path = parse_path(path)
        except (ValueError, BIP32Error) as e:
            raise DescriptorError(f"Invalid key origin {expr[: end + 1]}: {e}") from e
        expr = expr[end + 1 :]

    xpub_str, *steps = expr.split("/")
    try:
        xpub = ExtendedPublicKey.from_base58(xpub_str)
    except BIP32Error as e:
        raise DescriptorError(f"Invalid extended public key {xpub_str[:12]}...: {e}") from e

    if not xpub.matches_network(network):
        raise DescriptorError(f"{xpub.prefix} key does not belong to {network.value}")

    suffix = tuple(_parse_suffix_step(step) for step in steps)
    if None in suffix[:-1]:
        raise DescriptorError("Wildcard is only allowed as the last derivation step")

    if origin_fingerprint is None:
        origin_fingerprint = xpub.fingerprint

    return DescriptorKey(
        xpub=xpub,
        origin_fingerprint=origin_fingerprint,
        origin_path=origin_path,
        suffix=suffix,
    )
