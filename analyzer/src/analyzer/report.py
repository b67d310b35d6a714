"""
Assemble decoder, resolver, estimator and balance results into one report.

The builder only collects: it computes nothing beyond formatting and the
informational notes, and every input, output and note it is given ends up
in the report.
"""

from __future__ import annotations

from decimal import Decimal

from loguru import logger

from psbtcore.constants import NetworkType
from psbtcore.psbt import DecodedPsbt
from psbtwallet.resolver import Resolution, ResolvedEndpoint
from psbtwallet.wallet.address import script_to_address

from analyzer.balance import external_delta, format_balances
from analyzer.estimator import Estimate
from analyzer.models import (
    AnalysisReport,
    FeeReport,
    InputReport,
    OutputReport,
    SizeReport,
    WalletBalance,
)


def _input_report(endpoint: ResolvedEndpoint) -> InputReport:
    entry = endpoint.entry
    return InputReport(
        index=endpoint.index,
        outpoint=str(entry.prevout),
        value=endpoint.value,
        wallet=endpoint.wallet,
        path=endpoint.path,
        signatures=len(entry.partial_sigs),
    )


def _output_report(endpoint: ResolvedEndpoint, network: NetworkType) -> OutputReport:
    return OutputReport(
        index=endpoint.index,
        address=script_to_address(endpoint.entry.script_pubkey, network),
        value=endpoint.value,
        wallet=endpoint.wallet,
        path=endpoint.path,
    )


def ownership_notes(resolution: Resolution) -> list[str]:
    notes = []
    for endpoint in resolution.endpoints:
        if endpoint.ambiguous:
            notes.append(endpoint.ambiguity().describe())
        elif not endpoint.resolved:
            side = endpoint.side.capitalize()
            notes.append(f"{side} #{endpoint.index} does not belong to any known wallet")
    return notes


def fee_rate_notes(rate: Decimal, rate_fmt: str, min_rate: Decimal, max_rate: Decimal) -> list[str]:
    if rate < min_rate:
        note = f"Fee rate {rate_fmt} is below the minimum of {min_rate} sat/vB"
    elif rate > max_rate:
        note = f"Fee rate {rate_fmt} is above the maximum of {max_rate} sat/vB"
    else:
        return []
    logger.warning(note)
    return [note]


def build_report(
    psbt: DecodedPsbt,
    resolution: Resolution,
    estimate: Estimate,
    balances: dict[str, int],
    network: NetworkType = NetworkType.MAINNET,
    min_fee_rate: Decimal = Decimal("1"),
    max_fee_rate: Decimal = Decimal("1000"),
) -> AnalysisReport:
    """
    Build the AnalysisReport for an already decoded, resolved and estimated PSBT.

    Args:
        psbt: Decoded PSBT
        resolution: Ownership of every input and output
        estimate: Fee and size figures
        balances: Per-wallet deltas from :func:`analyzer.balance.aggregate`; the
            external delta is derived here so that all deltas sum to zero
        network: Network used to render output addresses
        min_fee_rate: Rates below this (sat/vB) get a note
        max_fee_rate: Rates above this (sat/vB) get a note
    """
    fee = estimate.fee
    notes = ownership_notes(resolution)
    notes += fee_rate_notes(fee.rate, fee.rate_fmt, min_fee_rate, max_fee_rate)
    notes += estimate.notes

    if psbt.unknown_count:
        notes.append(f"{psbt.unknown_count} unknown or proprietary records preserved")
    if psbt.inputs and all(entry.is_finalized for entry in psbt.inputs):
        notes.append("All inputs are finalized")

    return AnalysisReport(
        txid=psbt.tx.txid,
        inputs=tuple(_input_report(endpoint) for endpoint in resolution.inputs),
        outputs=tuple(_output_report(endpoint, network) for endpoint in resolution.outputs),
        fee=FeeReport(
            absolute=fee.absolute,
            absolute_fmt=fee.absolute_fmt,
            rate_fmt=fee.rate_fmt,
            vsize=fee.vsize,
        ),
        size=SizeReport(
            unsigned=estimate.size.unsigned,
            estimated=estimate.size.estimated,
            psbt=estimate.size.psbt,
        ),
        balances=tuple(WalletBalance(wallet=w, delta=d) for w, d in sorted(balances.items())),
        external=external_delta(resolution.inputs, resolution.outputs, fee.absolute),
        balances_fmt=format_balances(balances),
        notes=tuple(notes),
    )
