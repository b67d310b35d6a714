"""
Attribute PSBT inputs and outputs to wallet descriptors.

Ownership is decided by rebuilding the script: a BIP32 derivation record in
the PSBT only names a candidate path, and the entry belongs to a wallet only
if that wallet derives exactly the entry's scriptPubKey at that path (all
cosigner keys included). A single matching cosigner key is not enough.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass

from loguru import logger

from psbtcore.errors import AmbiguousOwnership
from psbtcore.psbt import DecodedPsbt, InputEntry, KeyOrigin, OutputEntry
from psbtwallet.descriptor import WalletDescriptor

INPUT = "input"
OUTPUT = "output"


@dataclass(frozen=True)
class ResolvedEndpoint:
    """An input or output with the wallet that owns it, if any."""

    side: str
    index: int
    entry: InputEntry | OutputEntry
    descriptor: WalletDescriptor | None = None
    origin: KeyOrigin | None = None
    # Derivation steps below the wallet xpubs
    rest: tuple[int, ...] = ()
    candidates: tuple[str, ...] = ()

    @property
    def wallet(self) -> str | None:
        return self.descriptor.name if self.descriptor is not None else None

    @property
    def path(self) -> str | None:
        return str(self.origin) if self.origin is not None else None

    @property
    def resolved(self) -> bool:
        return self.descriptor is not None

    @property
    def ambiguous(self) -> bool:
        return len(self.candidates) > 1

    @property
    def value(self) -> int | None:
        return self.entry.value

    def ambiguity(self) -> AmbiguousOwnership:
        return AmbiguousOwnership(self.side, self.index, self.candidates)


@dataclass(frozen=True)
class Resolution:
    inputs: tuple[ResolvedEndpoint, ...]
    outputs: tuple[ResolvedEndpoint, ...]

    @property
    def endpoints(self) -> tuple[ResolvedEndpoint, ...]:
        return self.inputs + self.outputs

    @property
    def ambiguities(self) -> list[AmbiguousOwnership]:
        return [endpoint.ambiguity() for endpoint in self.endpoints if endpoint.ambiguous]


def match_entry(
    entry: InputEntry | OutputEntry, script_pubkey: bytes, descriptor: WalletDescriptor
) -> tuple[KeyOrigin, tuple[int, ...]] | None:
    """
    Find the derivation under which ``descriptor`` owns ``entry``.

    Returns:
        (origin, steps below the xpubs), or None if the wallet does not own it
    """
    for pubkey, origin in sorted(
        entry.bip32_derivations.items(), key=lambda item: (item[1].path, item[0])
    ):
        rest = descriptor.owned_path(pubkey, origin)
        if rest is None:
            continue
        if descriptor.script_pubkey_at(rest) == script_pubkey:
            return origin, rest
        logger.debug(
            f"{descriptor.name}: key {pubkey.hex()[:16]}... at {origin} derives a different script"
        )
    return None


def _resolve_entry(
    side: str,
    entry: InputEntry | OutputEntry,
    script_pubkey: bytes | None,
    descriptors: list[WalletDescriptor],
    strict: bool,
) -> ResolvedEndpoint:
    if script_pubkey is None or not entry.bip32_derivations:
        return ResolvedEndpoint(side, entry.index, entry)

    matches: list[tuple[WalletDescriptor, KeyOrigin, tuple[int, ...]]] = []
    for descriptor in descriptors:
        found = match_entry(entry, script_pubkey, descriptor)
        if found is not None:
            matches.append((descriptor, *found))

    if not matches:
        return ResolvedEndpoint(side, entry.index, entry)

    if len(matches) > 1:
        candidates = tuple(match[0].name for match in matches)
        endpoint = ResolvedEndpoint(side, entry.index, entry, candidates=candidates)
        logger.warning(endpoint.ambiguity().describe())
        if strict:
            raise endpoint.ambiguity()
        return endpoint

    descriptor, origin, rest = matches[0]
    return ResolvedEndpoint(
        side,
        entry.index,
        entry,
        descriptor=descriptor,
        origin=origin,
        rest=rest,
        candidates=(descriptor.name,),
    )


def resolve(
    psbt: DecodedPsbt, descriptors: Iterable[WalletDescriptor], strict: bool = False
) -> Resolution:
    """
    Resolve every input and output of ``psbt`` against ``descriptors``.

    Args:
        psbt: Decoded PSBT
        descriptors: Known wallets; names must be unique
        strict: Raise AmbiguousOwnership instead of leaving ambiguous
            entries unresolved

    Returns:
        Resolution with one endpoint per input and per output, in PSBT order
    """
    ordered = sorted(descriptors, key=lambda d: d.name)
    names = [d.name for d in ordered]
    if len(set(names)) != len(names):
        raise ValueError(f"Wallet descriptor names must be unique: {names}")

    inputs = tuple(
        _resolve_entry(INPUT, entry, entry.script_pubkey, ordered, strict) for entry in psbt.inputs
    )
    outputs = tuple(
        _resolve_entry(OUTPUT, entry, entry.script_pubkey, ordered, strict)
        for entry in psbt.outputs
    )

    logger.info(
        f"Resolved {sum(e.resolved for e in inputs)}/{len(inputs)} inputs and "
        f"{sum(e.resolved for e in outputs)}/{len(outputs)} outputs against {len(ordered)} wallets"
    )
    return Resolution(inputs=inputs, outputs=outputs)
