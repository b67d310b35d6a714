"""
Analysis report models using Pydantic for validation and serialization.
"""

from __future__ import annotations

from pydantic import BaseModel, Field


class InputReport(BaseModel):
    index: int = Field(..., ge=0)
    outpoint: str
    value: int = Field(..., ge=0)
    wallet: str | None = None
    path: str | None = None
    signatures: int = Field(default=0, ge=0)

    model_config = {"frozen": True}


class OutputReport(BaseModel):
    index: int = Field(..., ge=0)
    address: str
    value: int = Field(..., ge=0)
    wallet: str | None = None
    path: str | None = None

    model_config = {"frozen": True}


class FeeReport(BaseModel):
    absolute: int = Field(..., ge=0)
    absolute_fmt: str
    rate_fmt: str
    vsize: int = Field(..., ge=0)

    model_config = {"frozen": True}


class SizeReport(BaseModel):
    unsigned: int = Field(..., ge=0)
    estimated: int = Field(..., ge=0)  # vbytes
    psbt: int = Field(..., ge=0)

    model_config = {"frozen": True}


class WalletBalance(BaseModel):
    wallet: str = Field(..., min_length=1)
    delta: int

    model_config = {"frozen": True}


class AnalysisReport(BaseModel):
    txid: str
    inputs: tuple[InputReport, ...]
    outputs: tuple[OutputReport, ...]
    fee: FeeReport
    size: SizeReport
    balances: tuple[WalletBalance, ...] = ()
    # Delta of everything outside the known wallets, the fee included
    external: int = 0
    balances_fmt: str = ""
    notes: tuple[str, ...] = ()

    model_config = {"frozen": True}

    def balance_of(self, wallet: str) -> int | None:
        for balance in self.balances:
            if balance.wallet == wallet:
                return balance.delta
        return None

    @property
    def wallets(self) -> list[str]:
        return [balance.wallet for balance in self.balances]

    def to_json(self, indent: int | None = None) -> str:
        return self.model_dump_json(indent=indent)
