"""
End-to-end PSBT analysis: decode, resolve, estimate, aggregate, report.
"""

from __future__ import annotations

from collections.abc import Iterable

from loguru import logger

from psbtcore.chunks import ChunkSet, split
from psbtcore.psbt import decode
from psbtwallet.descriptor import WalletDescriptor
from psbtwallet.resolver import resolve

from analyzer.balance import aggregate
from analyzer.config import AnalyzerSettings
from analyzer.estimator import estimate
from analyzer.models import AnalysisReport
from analyzer.report import build_report


def analyze(
    data: bytes,
    descriptors: Iterable[WalletDescriptor],
    settings: AnalyzerSettings | None = None,
) -> AnalysisReport:
    """
    Analyze a raw PSBT against the given wallets.

    Args:
        data: PSBT bytes (use psbtcore.parse_psbt_text for base64/hex)
        descriptors: Wallets whose ownership should be resolved
        settings: Analyzer settings; defaults are loaded from the environment

    Returns:
        Complete AnalysisReport

    Raises:
        MalformedInput: Invalid PSBT bytes or missing input values
        UnsupportedVersion: PSBT version newer than supported
        NegativeFee: Outputs exceed inputs
        AmbiguousOwnership: Only with strict_ownership enabled
    """
    if settings is None:
        settings = AnalyzerSettings()

    psbt = decode(data)
    logger.info(
        f"Decoded PSBT {psbt.tx.txid}: {len(psbt.inputs)} inputs, "
        f"{len(psbt.outputs)} outputs, {psbt.raw_size} bytes"
    )

    resolution = resolve(psbt, descriptors, strict=settings.strict_ownership)
    fee_estimate = estimate(psbt, resolution.inputs, resolution.outputs)
    balances = aggregate(resolution.inputs, resolution.outputs)

    report = build_report(
        psbt,
        resolution,
        fee_estimate,
        balances,
        network=settings.network,
        min_fee_rate=settings.min_fee_rate,
        max_fee_rate=settings.max_fee_rate,
    )
    logger.info(f"Analysis complete: {report.balances_fmt}, {len(report.notes)} notes")
    return report


def chunk_psbt(data: bytes, settings: AnalyzerSettings | None = None) -> ChunkSet:
    """Split raw PSBT bytes into chunks sized by the configured QR version or size."""
    if settings is None:
        settings = AnalyzerSettings()
    chunks = split(data, settings.chunk_size())
    logger.info(f"Split {len(data)} bytes into {chunks.total} chunks")
    return chunks
