"""
Configuration management using pydantic-settings.
"""

from __future__ import annotations

from decimal import Decimal

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from psbtcore.chunks import chunk_size_for_qr_version
from psbtcore.constants import NetworkType


class AnalyzerSettings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="PSBT_ANALYZER_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # Selects address encoding and which xpub versions descriptors may use
    network: NetworkType = NetworkType.MAINNET

    # Fee rates outside this window (sat/vB) are flagged in the report notes
    min_fee_rate: Decimal = Field(default=Decimal("1"), ge=0)
    max_fee_rate: Decimal = Field(default=Decimal("1000"), gt=0)

    # Raise AmbiguousOwnership instead of noting it
    strict_ownership: bool = False

    # Visual chunk sizing: explicit size wins over the QR version
    qr_version: int = Field(default=14, ge=1, le=40)
    max_chunk_size: int | None = Field(default=None, ge=1)

    @model_validator(mode="after")
    def check_fee_rate_window(self) -> AnalyzerSettings:
        if self.min_fee_rate > self.max_fee_rate:
            raise ValueError(
                f"min_fee_rate ({self.min_fee_rate}) must not exceed max_fee_rate "
                f"({self.max_fee_rate})"
            )
        return self

    def chunk_size(self) -> int:
        if self.max_chunk_size is not None:
            return self.max_chunk_size
        return chunk_size_for_qr_version(self.qr_version)


def get_settings() -> AnalyzerSettings:
    return AnalyzerSettings()
