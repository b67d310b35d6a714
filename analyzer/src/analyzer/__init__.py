"""
analyzer - PSBT fee, size and balance analysis

Turns a PSBT and a set of wallet descriptors into a display-ready report.
"""

__version__ = "0.1.0"

from analyzer.balance import aggregate, external_delta, format_balances
from analyzer.config import AnalyzerSettings, get_settings
from analyzer.estimator import Estimate, FeeSummary, SizeEstimate, estimate
from analyzer.models import (
    AnalysisReport,
    FeeReport,
    InputReport,
    OutputReport,
    SizeReport,
    WalletBalance,
)
from analyzer.pipeline import analyze, chunk_psbt
from analyzer.report import build_report

__all__ = [
    "AnalysisReport",
    "AnalyzerSettings",
    "Estimate",
    "FeeReport",
    "FeeSummary",
    "InputReport",
    "OutputReport",
    "SizeEstimate",
    "SizeReport",
    "WalletBalance",
    "aggregate",
    "analyze",
    "build_report",
    "chunk_psbt",
    "estimate",
    "external_delta",
    "format_balances",
    "get_settings",
]
