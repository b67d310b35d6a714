"""
Error kinds raised by the PSBT analyzer.

Callers only need to tell a corrupt PSBT apart from one that decodes but is
semantically inconsistent, so every failure maps onto one of these classes.
"""

from __future__ import annotations

from collections.abc import Sequence


class PsbtError(Exception):
    """Base class for all analyzer errors."""

    pass


class MalformedInput(PsbtError):
    """Structurally invalid PSBT bytes (or chunk set)."""

    pass


class UnsupportedVersion(PsbtError):
    """PSBT version field is newer than what the decoder implements."""

    def __init__(self, version: int, highest_supported: int):
        super().__init__(
            f"PSBT version {version} is not supported (highest supported: {highest_supported})"
        )
        self.version = version
        self.highest_supported = highest_supported


class NegativeFee(PsbtError):
    """Outputs spend more than the inputs provide."""

    def __init__(self, inputs_total: int, outputs_total: int):
        fee = inputs_total - outputs_total
        super().__init__(
            f"Negative fee: inputs total {inputs_total} sat, outputs total {outputs_total} sat "
            f"(fee {fee} sat)"
        )
        self.inputs_total = inputs_total
        self.outputs_total = outputs_total
        self.fee = fee


class AmbiguousOwnership(PsbtError):
    """More than one wallet descriptor claims the same input or output.

    Normally recorded as a report note; only raised when strict ownership
    checking is enabled.
    """

    def __init__(self, side: str, index: int, candidates: Sequence[str]):
        self.side = side
        self.index = index
        self.candidates = tuple(candidates)
        super().__init__(self.describe())

    def describe(self) -> str:
        names = ", ".join(self.candidates)
        return f"AmbiguousOwnership: {self.side} #{self.index} matches wallets {names}"


class EmptyInput(PsbtError):
    """The chunk encoder was given zero bytes."""

    pass
