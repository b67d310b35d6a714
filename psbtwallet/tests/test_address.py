"""
Tests for script construction, classification and address rendering.
"""

from __future__ import annotations

import pytest

from psbtcore.constants import NetworkType
from psbtwallet.wallet.address import (
    encode_small_int,
    hash160,
    is_p2pkh,
    is_p2sh,
    is_p2tr,
    is_p2wpkh,
    is_p2wsh,
    multisig_script,
    p2pkh_script,
    p2sh_script,
    p2wpkh_script,
    p2wsh_script,
    parse_multisig,
    push_data,
    push_size,
    script_to_address,
    witness_program,
)

# BIP173 P2WSH example program
P2WSH_SCRIPT = bytes.fromhex(
    "00201863143c14c5166804bd19203356da136c985678cd4d27a1b8c6329604903262"
)
# BIP350 example: witness v1 program holding G's x coordinate
P2TR_SCRIPT = bytes.fromhex(
    "512079be667ef9dcbbac55a06295ce870b07029bfcdb2dce28d959f2815b16f81798"
)
PUBKEY_2 = bytes.fromhex("02" + "c6047f9441ed7d6d3045406e95c07cd85c778e4b8cef3ca7abac09b95c709ee5")


class TestScripts:
    def test_hash160(self, pubkey_g: bytes) -> None:
        assert hash160(pubkey_g).hex() == "751e76e8199196d454941c45d1b3a323f1433bd6"

    def test_p2wpkh(self, pubkey_g: bytes, p2wpkh_g: bytes) -> None:
        assert p2wpkh_script(pubkey_g) == p2wpkh_g

    def test_p2pkh(self, pubkey_g: bytes, p2pkh_g: bytes) -> None:
        assert p2pkh_script(pubkey_g) == p2pkh_g

    def test_p2sh_wraps_hash(self, p2wpkh_g: bytes) -> None:
        script = p2sh_script(p2wpkh_g)
        assert script == b"\xa9\x14" + hash160(p2wpkh_g) + b"\x87"
        assert is_p2sh(script)

    def test_p2wsh_length(self) -> None:
        script = p2wsh_script(b"\x51")
        assert len(script) == 34
        assert is_p2wsh(script)

    def test_push_data(self) -> None:
        assert push_data(b"\x01" * 75)[:1] == bytes([75])
        assert push_data(b"\x01" * 76)[:2] == bytes([0x4C, 76])
        assert push_data(b"\x01" * 256)[:3] == bytes([0x4D, 0x00, 0x01])
        for length in (1, 75, 76, 255, 256, 520):
            assert push_size(length) == len(push_data(b"\x00" * length)) - length

    def test_small_int(self) -> None:
        assert encode_small_int(0) == b"\x00"
        assert encode_small_int(1) == b"\x51"
        assert encode_small_int(16) == b"\x60"
        assert encode_small_int(17) == b"\x01\x11"


class TestMultisig:
    def test_layout(self, pubkey_g: bytes) -> None:
        script = multisig_script(1, [pubkey_g, PUBKEY_2])
        assert script[0] == 0x51
        assert script[-2:] == b"\x52\xae"
        assert len(script) == 3 + 2 * 34

    def test_sorted_keys(self, pubkey_g: bytes) -> None:
        """sortedmulti orders keys lexicographically regardless of input order."""
        forward = multisig_script(2, [PUBKEY_2, pubkey_g], sort=True)
        backward = multisig_script(2, [pubkey_g, PUBKEY_2], sort=True)
        assert forward == backward
        assert parse_multisig(forward) == (2, sorted([pubkey_g, PUBKEY_2]))

    def test_unsorted_keeps_order(self, pubkey_g: bytes) -> None:
        script = multisig_script(1, [PUBKEY_2, pubkey_g])
        assert parse_multisig(script) == (1, [PUBKEY_2, pubkey_g])

    @pytest.mark.parametrize("threshold", [0, 3])
    def test_invalid_threshold(self, pubkey_g: bytes, threshold: int) -> None:
        with pytest.raises(ValueError):
            multisig_script(threshold, [pubkey_g, PUBKEY_2])

    @pytest.mark.parametrize(
        "script",
        [b"", b"\x51", b"\x51\x51\xae", b"\x52\x21" + b"\x02" * 33 + b"\x51\xae", b"\x51\x21\x02"],
    )
    def test_parse_rejects_non_multisig(self, script: bytes) -> None:
        assert parse_multisig(script) is None


class TestClassification:
    def test_classifiers(self, p2wpkh_g: bytes, p2pkh_g: bytes) -> None:
        assert is_p2wpkh(p2wpkh_g) and not is_p2wsh(p2wpkh_g)
        assert is_p2pkh(p2pkh_g) and not is_p2sh(p2pkh_g)
        assert is_p2wsh(P2WSH_SCRIPT)
        assert is_p2tr(P2TR_SCRIPT) and not is_p2wsh(P2TR_SCRIPT)

    def test_witness_program(self, p2wpkh_g: bytes) -> None:
        assert witness_program(p2wpkh_g) == (0, p2wpkh_g[2:])
        assert witness_program(P2TR_SCRIPT) == (1, P2TR_SCRIPT[2:])
        assert witness_program(b"\x6a\x04abcd") is None


class TestScriptToAddress:
    @pytest.mark.parametrize(
        "network,expected",
        [
            (NetworkType.MAINNET, "bc1qw508d6qejxtdg4y5r3zarvary0c5xw7kv8f3t4"),
            (NetworkType.TESTNET, "tb1qw508d6qejxtdg4y5r3zarvary0c5xw7kxpjzsx"),
            (NetworkType.REGTEST, "bcrt1qw508d6qejxtdg4y5r3zarvary0c5xw7kygt080"),
        ],
    )
    def test_p2wpkh(self, p2wpkh_g: bytes, network: NetworkType, expected: str) -> None:
        assert script_to_address(p2wpkh_g, network) == expected

    def test_p2pkh(self, p2pkh_g: bytes) -> None:
        assert script_to_address(p2pkh_g) == "1BgGZ9tcN4rm9KBzDn7KprQz87SZ26SAMH"

    def test_p2wsh(self) -> None:
        assert (
            script_to_address(P2WSH_SCRIPT)
            == "bc1qrp33g0q5c5txsp9arysrx4k6zdkfs4nce4xj0gdcccefvpysxf3qccfmv3"
        )
        assert (
            script_to_address(P2WSH_SCRIPT, NetworkType.TESTNET)
            == "tb1qrp33g0q5c5txsp9arysrx4k6zdkfs4nce4xj0gdcccefvpysxf3q0sl5k7"
        )

    def test_p2tr_uses_bech32m(self) -> None:
        assert (
            script_to_address(P2TR_SCRIPT)
            == "bc1p0xlxvlhemja6c4dqv22uapctqupfhlxm9h8z3k2e72q4k9hcz7vqzk5jj0"
        )

    def test_p2sh_prefixes(self, p2wpkh_g: bytes) -> None:
        script = p2sh_script(p2wpkh_g)
        assert script_to_address(script).startswith("3")
        assert script_to_address(script, NetworkType.TESTNET).startswith("2")

    def test_no_address_form(self) -> None:
        assert script_to_address(b"\x6a\x04abcd") == "script(6a0461626364)"

    def test_invalid_v0_program_length(self) -> None:
        script = b"\x00\x19" + b"\x01" * 25
        assert script_to_address(script) == f"script({script.hex()})"
