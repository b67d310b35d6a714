"""
Fee and transaction size estimation.

The unsigned transaction in a PSBT has empty scriptSigs and no witnesses.
Its signed size is projected per input from the script type: the scriptSig
bytes count four weight units each, witness bytes one. A threshold multisig
input pays for ``threshold`` signatures, not for every cosigner.

Byte costs follow consensus serialization with a 72-byte signature (DER +
sighash byte) and 33-byte compressed public keys:

=============  ====================================  ===========================
type           scriptSig                             witness
=============  ====================================  ===========================
P2PKH          push(sig) push(pubkey) = 107          -
P2SH-P2WPKH    push(P2WPKH script) = 23              [sig, pubkey] = 108
P2WPKH         -                                     [sig, pubkey] = 108
P2SH multi     OP_0 m*push(sig) push(script)         -
P2WSH multi    -                                     ["", m*sig, script]
P2SH-P2WSH     push(P2WSH script) = 35               ["", m*sig, script]
P2TR keypath   -                                     [schnorr sig] = 66
=============  ====================================  ===========================
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from decimal import ROUND_HALF_EVEN, Decimal

from loguru import logger

from psbtcore.constants import (
    COMPRESSED_PUBKEY_SIZE,
    ECDSA_SIGNATURE_SIZE,
    SATS_PER_BTC,
    SCHNORR_SIGNATURE_SIZE,
    WITNESS_SCALE_FACTOR,
)
from psbtcore.encoding import varint_size
from psbtcore.errors import MalformedInput, NegativeFee
from psbtcore.psbt import DecodedPsbt, InputEntry
from psbtwallet.descriptor import ScriptTemplate
from psbtwallet.resolver import ResolvedEndpoint
from psbtwallet.wallet.address import (
    is_p2pkh,
    is_p2sh,
    is_p2tr,
    is_p2wpkh,
    is_p2wsh,
    parse_multisig,
    push_size,
)

SIG_PUSH = 1 + ECDSA_SIGNATURE_SIZE
PUBKEY_PUSH = 1 + COMPRESSED_PUBKEY_SIZE
# Witness [sig, pubkey]: item count + two pushes
P2WPKH_WITNESS = 1 + SIG_PUSH + PUBKEY_PUSH
# scriptSig pushing the 22-byte P2WPKH / 34-byte P2WSH program
NESTED_P2WPKH_SCRIPTSIG = 1 + 22
NESTED_P2WSH_SCRIPTSIG = 1 + 34
P2TR_KEYPATH_WITNESS = 1 + 1 + SCHNORR_SIGNATURE_SIZE

# Marker + flag bytes of a segwit transaction
SEGWIT_HEADER = 2


def format_btc(sats: int) -> str:
    return f"{Decimal(sats) / SATS_PER_BTC:.8f} BTC"


@dataclass(frozen=True)
class FeeSummary:
    """Absolute fee (sats) and the estimated virtual size it pays for."""

    absolute: int
    vsize: int

    @property
    def rate(self) -> Decimal:
        """sat/vB; derived on demand, never stored rounded."""
        if self.vsize <= 0:
            return Decimal(0)
        return Decimal(self.absolute) / Decimal(self.vsize)

    @property
    def rate_fmt(self) -> str:
        rounded = self.rate.quantize(Decimal("0.01"), rounding=ROUND_HALF_EVEN)
        return f"{rounded} sat/vB"

    @property
    def absolute_fmt(self) -> str:
        return format_btc(self.absolute)


@dataclass(frozen=True)
class SizeEstimate:
    unsigned: int
    estimated: int
    psbt: int
    weight: int


@dataclass(frozen=True)
class Estimate:
    fee: FeeSummary
    size: SizeEstimate
    notes: tuple[str, ...] = ()


@dataclass(frozen=True)
class InputCost:
    """Projected final scriptSig length and witness size (None = no witness)."""

    script_sig: int
    witness: int | None


def _multisig_cost(
    template: ScriptTemplate, threshold: int, script_len: int
) -> InputCost:
    if template == ScriptTemplate.SH_MULTI:
        script_sig = 1 + threshold * SIG_PUSH + push_size(script_len) + script_len
        return InputCost(script_sig, None)

    # Items: empty dummy for the CHECKMULTISIG bug, signatures, witness script
    witness = (
        varint_size(threshold + 2)
        + 1
        + threshold * SIG_PUSH
        + varint_size(script_len)
        + script_len
    )
    script_sig = NESTED_P2WSH_SCRIPTSIG if template == ScriptTemplate.SH_WSH_MULTI else 0
    return InputCost(script_sig, witness)


def _final_cost(entry: InputEntry) -> InputCost:
    script_sig = len(entry.final_script_sig or b"")
    witness = None
    if entry.final_script_witness is not None:
        stack = entry.final_script_witness
        witness = varint_size(len(stack)) + sum(varint_size(len(i)) + len(i) for i in stack)
    return InputCost(script_sig, witness)


def _resolved_cost(endpoint: ResolvedEndpoint) -> InputCost:
    descriptor = endpoint.descriptor
    template = descriptor.template

    if template == ScriptTemplate.PKH:
        return InputCost(SIG_PUSH + PUBKEY_PUSH, None)
    if template == ScriptTemplate.WPKH:
        return InputCost(0, P2WPKH_WITNESS)
    if template == ScriptTemplate.SH_WPKH:
        return InputCost(NESTED_P2WPKH_SCRIPTSIG, P2WPKH_WITNESS)

    script_len = len(descriptor.multisig_script_at(endpoint.rest))
    return _multisig_cost(template, descriptor.threshold, script_len)


def _inferred_cost(entry: InputEntry) -> InputCost | None:
    """Cost from the PSBT's own script metadata, for inputs no wallet owns."""
    spk = entry.script_pubkey or b""

    if is_p2pkh(spk):
        return InputCost(SIG_PUSH + PUBKEY_PUSH, None)
    if is_p2wpkh(spk):
        return InputCost(0, P2WPKH_WITNESS)
    if is_p2tr(spk):
        return InputCost(0, P2TR_KEYPATH_WITNESS)

    if is_p2wsh(spk) and entry.witness_script is not None:
        multisig = parse_multisig(entry.witness_script)
        if multisig is not None:
            return _multisig_cost(
                ScriptTemplate.WSH_MULTI, multisig[0], len(entry.witness_script)
            )

    if is_p2sh(spk) and entry.redeem_script is not None:
        redeem = entry.redeem_script
        if is_p2wpkh(redeem):
            return InputCost(NESTED_P2WPKH_SCRIPTSIG, P2WPKH_WITNESS)
        if is_p2wsh(redeem) and entry.witness_script is not None:
            multisig = parse_multisig(entry.witness_script)
            if multisig is not None:
                return _multisig_cost(
                    ScriptTemplate.SH_WSH_MULTI, multisig[0], len(entry.witness_script)
                )
        multisig = parse_multisig(redeem)
        if multisig is not None:
            return _multisig_cost(ScriptTemplate.SH_MULTI, multisig[0], len(redeem))

    return None


def input_cost(endpoint: ResolvedEndpoint) -> InputCost | None:
    """Projected signed cost of one input; None if the script type is unknown."""
    entry = endpoint.entry
    if entry.is_finalized:
        return _final_cost(entry)
    if endpoint.resolved:
        return _resolved_cost(endpoint)
    return _inferred_cost(entry)


def compute_fee(inputs: Sequence[ResolvedEndpoint], outputs: Sequence[ResolvedEndpoint]) -> int:
    """
    Fee = sum(input values) - sum(output values).

    Raises:
        MalformedInput: An input carries no previous output value
        NegativeFee: Outputs exceed inputs
    """
    missing = [endpoint.index for endpoint in inputs if endpoint.value is None]
    if missing:
        raise MalformedInput(f"Inputs {missing} carry no previous output (UTXO) value")

    inputs_total = sum(endpoint.value for endpoint in inputs)
    outputs_total = sum(endpoint.value for endpoint in outputs)
    if inputs_total < outputs_total:
        raise NegativeFee(inputs_total, outputs_total)
    return inputs_total - outputs_total


def estimate(
    psbt: DecodedPsbt,
    inputs: Sequence[ResolvedEndpoint],
    outputs: Sequence[ResolvedEndpoint],
) -> Estimate:
    """
    Compute the fee and size figures of ``psbt``.

    Returns:
        Estimate with exact integer fee and sizes (estimated size in vbytes)

    Raises:
        MalformedInput: An input value is unknown
        NegativeFee: Outputs exceed inputs
    """
    fee = compute_fee(inputs, outputs)
    unsigned = psbt.tx.base_size

    notes: list[str] = []
    script_sig_growth = 0
    witness_sizes: list[int | None] = []

    for endpoint in inputs:
        cost = input_cost(endpoint)
        if cost is None:
            notes.append(
                f"Input #{endpoint.index} has an unknown script type; "
                "its signature size is not included in the estimate"
            )
            cost = InputCost(0, None)
        # The unsigned tx already holds a 1-byte empty scriptSig length
        script_sig_growth += varint_size(cost.script_sig) - 1 + cost.script_sig
        witness_sizes.append(cost.witness)

    base = unsigned + script_sig_growth
    weight = base * WITNESS_SCALE_FACTOR
    if any(size is not None for size in witness_sizes):
        # Inputs without witness still need an empty stack (1 byte)
        weight += SEGWIT_HEADER + sum(1 if size is None else size for size in witness_sizes)

    vsize = -(-weight // WITNESS_SCALE_FACTOR)

    fee_summary = FeeSummary(absolute=fee, vsize=vsize)
    logger.info(
        f"Fee {fee} sat, unsigned {unsigned} B, estimated {vsize} vB, "
        f"rate {fee_summary.rate_fmt}"
    )

    return Estimate(
        fee=fee_summary,
        size=SizeEstimate(unsigned=unsigned, estimated=vsize, psbt=psbt.raw_size, weight=weight),
        notes=tuple(notes),
    )
