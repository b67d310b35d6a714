"""
PSBT (BIP174) format and Bitcoin consensus constants.
"""

from __future__ import annotations

from enum import Enum, IntEnum

PSBT_MAGIC = b"psbt\xff"

# Highest global PSBT_GLOBAL_VERSION this decoder understands (BIP174 = 0)
PSBT_HIGHEST_VERSION = 0

SATS_PER_BTC = 100_000_000
MAX_MONEY = 21_000_000 * SATS_PER_BTC

# BIP32 hardened index offset
HARDENED = 0x80000000

# Weight units per virtual byte (BIP141)
WITNESS_SCALE_FACTOR = 4

# Sizes used by the signed-size estimator.
# ECDSA signature including the sighash byte (low-R DER: 71 + 1)
ECDSA_SIGNATURE_SIZE = 72
COMPRESSED_PUBKEY_SIZE = 33
SCHNORR_SIGNATURE_SIZE = 64


class NetworkType(str, Enum):
    MAINNET = "mainnet"
    TESTNET = "testnet"
    SIGNET = "signet"
    REGTEST = "regtest"


BECH32_HRP = {
    NetworkType.MAINNET: "bc",
    NetworkType.TESTNET: "tb",
    NetworkType.SIGNET: "tb",
    NetworkType.REGTEST: "bcrt",
}

# Base58 version bytes: (P2PKH, P2SH)
BASE58_PREFIXES = {
    NetworkType.MAINNET: (0x00, 0x05),
    NetworkType.TESTNET: (0x6F, 0xC4),
    NetworkType.SIGNET: (0x6F, 0xC4),
    NetworkType.REGTEST: (0x6F, 0xC4),
}


class GlobalKey(IntEnum):
    """Key types of the PSBT global map."""

    UNSIGNED_TX = 0x00
    XPUB = 0x01
    VERSION = 0xFB
    PROPRIETARY = 0xFC
    UNKNOWN = -1


class InputKey(IntEnum):
    """Key types of a PSBT input map."""

    NON_WITNESS_UTXO = 0x00
    WITNESS_UTXO = 0x01
    PARTIAL_SIG = 0x02
    SIGHASH_TYPE = 0x03
    REDEEM_SCRIPT = 0x04
    WITNESS_SCRIPT = 0x05
    BIP32_DERIVATION = 0x06
    FINAL_SCRIPTSIG = 0x07
    FINAL_SCRIPTWITNESS = 0x08
    PROPRIETARY = 0xFC
    UNKNOWN = -1


class OutputKey(IntEnum):
    """Key types of a PSBT output map."""

    REDEEM_SCRIPT = 0x00
    WITNESS_SCRIPT = 0x01
    BIP32_DERIVATION = 0x02
    PROPRIETARY = 0xFC
    UNKNOWN = -1
