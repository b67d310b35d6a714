"""
Net balance change per wallet.
"""

from __future__ import annotations

from collections.abc import Sequence

from psbtwallet.resolver import ResolvedEndpoint


def aggregate(
    inputs: Sequence[ResolvedEndpoint], outputs: Sequence[ResolvedEndpoint]
) -> dict[str, int]:
    """
    Signed delta per wallet: owned outputs minus owned inputs.

    Unresolved (or ambiguous) entries count toward no wallet. The result is
    keyed in wallet name order, so it does not depend on descriptor order.
    """
    deltas: dict[str, int] = {}
    for endpoint in inputs:
        if endpoint.resolved and endpoint.value is not None:
            deltas[endpoint.wallet] = deltas.get(endpoint.wallet, 0) - endpoint.value
    for endpoint in outputs:
        if endpoint.resolved and endpoint.value is not None:
            deltas[endpoint.wallet] = deltas.get(endpoint.wallet, 0) + endpoint.value
    return dict(sorted(deltas.items()))


def external_delta(
    inputs: Sequence[ResolvedEndpoint], outputs: Sequence[ResolvedEndpoint], fee: int
) -> int:
    """
    Delta of everything outside the known wallets, the fee included.

    Together with :func:`aggregate` the deltas sum to zero.
    """
    paid_out = sum(e.value for e in outputs if not e.resolved and e.value is not None)
    spent = sum(e.value for e in inputs if not e.resolved and e.value is not None)
    return paid_out + fee - spent


def format_balances(deltas: dict[str, int]) -> str:
    """Render deltas as ``"A: -60000 sat, B: +1 sat"``."""
    if not deltas:
        return "no wallet involved"
    return ", ".join(f"{wallet}: {delta:+d} sat" for wallet, delta in deltas.items())
