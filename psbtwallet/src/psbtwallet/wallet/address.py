"""
Bitcoin script and address utilities.
"""

from __future__ import annotations

import hashlib
from collections.abc import Sequence

import base58

from psbtcore.constants import BASE58_PREFIXES, BECH32_HRP, NetworkType

OP_0 = 0x00
OP_PUSHDATA1 = 0x4C
OP_PUSHDATA2 = 0x4D
OP_1 = 0x51
OP_16 = 0x60
OP_DUP = 0x76
OP_EQUAL = 0x87
OP_EQUALVERIFY = 0x88
OP_HASH160 = 0xA9
OP_CHECKSIG = 0xAC
OP_CHECKMULTISIG = 0xAE

MAX_MULTISIG_KEYS = 20

BECH32_CONST = 1
BECH32M_CONST = 0x2BC830A3
BECH32_CHARSET = "qpzry9x8gf2tvdw0s3jn54khce6mua7l"


def hash160(data: bytes) -> bytes:
    """RIPEMD160(SHA256(data))"""
    h = hashlib.new("ripemd160")
    h.update(hashlib.sha256(data).digest())
    return h.digest()


def bech32_polymod(values: list[int]) -> int:
    """Bech32 checksum polymod"""
    gen = [0x3B6A57B2, 0x26508E6D, 0x1EA119FA, 0x3D4233DD, 0x2A1462B3]
    chk = 1
    for v in values:
        b = chk >> 25
        chk = (chk & 0x1FFFFFF) << 5 ^ v
        for i in range(5):
            chk ^= gen[i] if ((b >> i) & 1) else 0
    return chk


def bech32_hrp_expand(hrp: str) -> list[int]:
    """Expand HRP for bech32"""
    return [ord(x) >> 5 for x in hrp] + [0] + [ord(x) & 31 for x in hrp]


def bech32_create_checksum(hrp: str, data: list[int], const: int = BECH32_CONST) -> list[int]:
    """Create bech32 (const=1) or bech32m (BIP350) checksum"""
    values = bech32_hrp_expand(hrp) + data
    polymod = bech32_polymod(values + [0, 0, 0, 0, 0, 0]) ^ const
    return [(polymod >> 5 * (5 - i)) & 31 for i in range(6)]


def bech32_encode(hrp: str, data: list[int], const: int = BECH32_CONST) -> str:
    """Encode bech32 string"""
    combined = data + bech32_create_checksum(hrp, data, const)
    return hrp + "1" + "".join([BECH32_CHARSET[d] for d in combined])


def convertbits(data: bytes, frombits: int, tobits: int, pad: bool = True) -> list[int]:
    """Convert between bit groups"""
    acc = 0
    bits = 0
    ret = []
    maxv = (1 << tobits) - 1
    max_acc = (1 << (frombits + tobits - 1)) - 1

    for value in data:
        acc = ((acc << frombits) | value) & max_acc
        bits += frombits
        while bits >= tobits:
            bits -= tobits
            ret.append((acc >> bits) & maxv)

    if pad:
        if bits:
            ret.append((acc << (tobits - bits)) & maxv)
    elif bits >= frombits or ((acc << (tobits - bits)) & maxv):
        raise ValueError("Invalid bits")

    return ret


def encode_segwit_address(witness_version: int, program: bytes, network: NetworkType) -> str:
    """BIP173 (v0) / BIP350 (v1+) segwit address."""
    const = BECH32_CONST if witness_version == 0 else BECH32M_CONST
    data = [witness_version] + convertbits(program, 8, 5)
    return bech32_encode(BECH32_HRP[network], data, const)


def push_data(data: bytes) -> bytes:
    """Minimal push opcode for ``data``."""
    length = len(data)
    if length <= 75:
        return bytes([length]) + data
    if length <= 0xFF:
        return bytes([OP_PUSHDATA1, length]) + data
    return bytes([OP_PUSHDATA2]) + length.to_bytes(2, "little") + data


def push_size(length: int) -> int:
    """Bytes taken by the push opcode for ``length`` bytes of data."""
    if length <= 75:
        return 1
    if length <= 0xFF:
        return 2
    return 3


def encode_small_int(n: int) -> bytes:
    if n == 0:
        return bytes([OP_0])
    if 1 <= n <= 16:
        return bytes([OP_1 + n - 1])
    return push_data(bytes([n]))


def p2pkh_script(pubkey: bytes) -> bytes:
    """OP_DUP OP_HASH160 <20-byte-hash> OP_EQUALVERIFY OP_CHECKSIG"""
    return (
        bytes([OP_DUP, OP_HASH160, 0x14]) + hash160(pubkey) + bytes([OP_EQUALVERIFY, OP_CHECKSIG])
    )


def p2wpkh_script(pubkey: bytes) -> bytes:
    """Create P2WPKH scriptPubKey (OP_0 <20-byte-hash>)"""
    return bytes([OP_0, 0x14]) + hash160(pubkey)


def p2sh_script(redeem_script: bytes) -> bytes:
    """OP_HASH160 <20-byte-scripthash> OP_EQUAL"""
    return bytes([OP_HASH160, 0x14]) + hash160(redeem_script) + bytes([OP_EQUAL])


def p2wsh_script(witness_script: bytes) -> bytes:
    """
    Create P2WSH scriptPubKey from witness script.

    Args:
        witness_script: The witness script bytes

    Returns:
        P2WSH scriptPubKey (OP_0 <32-byte-hash>)
    """
    return bytes([OP_0, 0x20]) + hashlib.sha256(witness_script).digest()


def multisig_script(threshold: int, pubkeys: Sequence[bytes], sort: bool = False) -> bytes:
    """
    Build a bare ``threshold``-of-``len(pubkeys)`` CHECKMULTISIG script.

    Args:
        threshold: Required signatures
        pubkeys: Cosigner public keys in descriptor order
        sort: Apply BIP67 lexicographic ordering (``sortedmulti``)

    Returns:
        OP_m <pubkey>... OP_n OP_CHECKMULTISIG
    """
    if not 1 <= threshold <= len(pubkeys) <= MAX_MULTISIG_KEYS:
        raise ValueError(f"Invalid multisig {threshold}-of-{len(pubkeys)}")
    keys = sorted(pubkeys) if sort else list(pubkeys)
    script = encode_small_int(threshold)
    for key in keys:
        script += push_data(key)
    return script + encode_small_int(len(keys)) + bytes([OP_CHECKMULTISIG])


def _decode_small_int(script: bytes, offset: int) -> tuple[int, int] | None:
    if offset >= len(script):
        return None
    op = script[offset]
    if OP_1 <= op <= OP_16:
        return op - OP_1 + 1, offset + 1
    if op == 0x01 and offset + 1 < len(script):
        return script[offset + 1], offset + 2
    return None


def parse_multisig(script: bytes) -> tuple[int, list[bytes]] | None:
    """Return (threshold, pubkeys) for a bare CHECKMULTISIG script, else None."""
    if not script or script[-1] != OP_CHECKMULTISIG:
        return None

    decoded = _decode_small_int(script, 0)
    if decoded is None:
        return None
    threshold, offset = decoded

    pubkeys = []
    while offset < len(script) and script[offset] in (33, 65):
        length = script[offset]
        key = script[offset + 1 : offset + 1 + length]
        if len(key) != length:
            return None
        pubkeys.append(key)
        offset += 1 + length

    decoded = _decode_small_int(script, offset)
    if decoded is None:
        return None
    count, offset = decoded

    if offset != len(script) - 1 or count != len(pubkeys) or not 1 <= threshold <= count:
        return None
    return threshold, pubkeys


def is_p2pkh(script: bytes) -> bool:
    return (
        len(script) == 25
        and script[:3] == bytes([OP_DUP, OP_HASH160, 0x14])
        and script[23:] == bytes([OP_EQUALVERIFY, OP_CHECKSIG])
    )


def is_p2sh(script: bytes) -> bool:
    return len(script) == 23 and script[:2] == bytes([OP_HASH160, 0x14]) and script[22] == OP_EQUAL


def witness_program(script: bytes) -> tuple[int, bytes] | None:
    """Return (version, program) if ``script`` is a segwit output script."""
    if len(script) < 4 or len(script) > 42:
        return None
    op = script[0]
    if op != OP_0 and not OP_1 <= op <= OP_16:
        return None
    if script[1] != len(script) - 2:
        return None
    version = 0 if op == OP_0 else op - OP_1 + 1
    return version, script[2:]


def is_p2wpkh(script: bytes) -> bool:
    return len(script) == 22 and script[0] == OP_0 and script[1] == 0x14


def is_p2wsh(script: bytes) -> bool:
    return len(script) == 34 and script[0] == OP_0 and script[1] == 0x20


def is_p2tr(script: bytes) -> bool:
    return len(script) == 34 and script[0] == OP_1 and script[1] == 0x20


def script_to_address(script: bytes, network: NetworkType = NetworkType.MAINNET) -> str:
    """
    Render a scriptPubKey as an address.

    Scripts without an address form (OP_RETURN, bare multisig, ...) are
    rendered as ``script(<hex>)``.
    """
    p2pkh_prefix, p2sh_prefix = BASE58_PREFIXES[network]

    if is_p2pkh(script):
        return base58.b58encode_check(bytes([p2pkh_prefix]) + script[3:23]).decode()

    if is_p2sh(script):
        return base58.b58encode_check(bytes([p2sh_prefix]) + script[2:22]).decode()

    program = witness_program(script)
    if program is not None:
        version, data = program
        if version == 0 and len(data) not in (20, 32):
            return f"script({script.hex()})"
        return encode_segwit_address(version, data, network)

    return f"script({script.hex()})"
