"""
psbtwallet - Wallet descriptors and PSBT ownership resolution
"""

__version__ = "0.1.0"

from psbtwallet.descriptor import (
    DescriptorError,
    DescriptorKey,
    ScriptTemplate,
    WalletDescriptor,
    descriptor_checksum,
)
from psbtwallet.resolver import Resolution, ResolvedEndpoint, match_entry, resolve
from psbtwallet.wallet.bip32 import BIP32Error, ExtendedPublicKey

__all__ = [
    "BIP32Error",
    "DescriptorError",
    "DescriptorKey",
    "ExtendedPublicKey",
    "Resolution",
    "ResolvedEndpoint",
    "ScriptTemplate",
    "WalletDescriptor",
    "descriptor_checksum",
    "match_entry",
    "resolve",
]
