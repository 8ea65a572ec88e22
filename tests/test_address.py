"""
Tests for address and scriptPubKey utilities.
"""

from __future__ import annotations

import pytest

from viadeposit.address import (
    address_to_scriptpubkey,
    decode_segwit_address,
    encode_segwit_address,
    hash160,
    pubkey_to_p2wpkh_address,
    pubkey_to_p2wpkh_script,
    scriptpubkey_to_address,
)
from viadeposit.models import NetworkType

GENERATOR_PUBKEY = bytes.fromhex(
    "0279be667ef9dcbbac55a06295ce870b07029bfcdb2dce28d959f2815b16f81798"
)


class TestHash160:
    def test_generator_pubkey(self) -> None:
        """hash160 of the compressed generator point is the BIP-173 test program."""
        assert hash160(GENERATOR_PUBKEY).hex() == "751e76e8199196d454941c45d1b3a323f1433bd6"


class TestSegwitAddresses:
    """Tests for bech32 / bech32m decoding and encoding."""

    def test_p2wpkh_testnet(self) -> None:
        script = address_to_scriptpubkey(
            "tb1qw508d6qejxtdg4y5r3zarvary0c5xw7kxpjzsx", NetworkType.TESTNET
        )
        assert script.hex() == "0014751e76e8199196d454941c45d1b3a323f1433bd6"

    def test_p2wpkh_mainnet_uppercase(self) -> None:
        script = address_to_scriptpubkey(
            "BC1QW508D6QEJXTDG4Y5R3ZARVARY0C5XW7KV8F3T4", NetworkType.MAINNET
        )
        assert script.hex() == "0014751e76e8199196d454941c45d1b3a323f1433bd6"

    def test_p2wsh_testnet(self) -> None:
        script = address_to_scriptpubkey(
            "tb1qrp33g0q5c5txsp9arysrx4k6zdkfs4nce4xj0gdcccefvpysxf3q0sl5k7",
            NetworkType.TESTNET,
        )
        assert script.hex() == (
            "00201863143c14c5166804bd19203356da136c985678cd4d27a1b8c6329604903262"
        )

    def test_p2tr_testnet(self) -> None:
        """Taproot addresses use the bech32m checksum (BIP-350)."""
        script = address_to_scriptpubkey(
            "tb1pqqqqp399et2xygdj5xreqhjjvcmzhxw4aywxecjdzew6hylgvsesf3hn0c",
            NetworkType.TESTNET,
        )
        assert script.hex() == (
            "5120000000c4a5cad46221b2a187905e5266362b99d5e91c6ce24d165dab93e86433"
        )

    def test_p2tr_mainnet(self) -> None:
        script = address_to_scriptpubkey(
            "bc1p0xlxvlhemja6c4dqv22uapctqupfhlxm9h8z3k2e72q4k9hcz7vqzk5jj0",
            NetworkType.MAINNET,
        )
        assert script.hex() == (
            "512079be667ef9dcbbac55a06295ce870b07029bfcdb2dce28d959f2815b16f81798"
        )

    def test_via_bridge_address(self) -> None:
        """The deployed testnet bridge address is a Taproot output."""
        script = address_to_scriptpubkey(
            "tb1pgvfdm6mfam4kqtnsjudjfa9c4q83mc0a6w5qyz07ajqvyt4f25vsaywx9w",
            NetworkType.TESTNET,
        )
        assert script[0] == 0x51
        assert script[1] == 0x20
        assert len(script) == 34

    def test_signet_shares_testnet_hrp(self) -> None:
        script = address_to_scriptpubkey(
            "tb1qw508d6qejxtdg4y5r3zarvary0c5xw7kxpjzsx", NetworkType.SIGNET
        )
        assert len(script) == 22

    def test_invalid_checksum(self) -> None:
        with pytest.raises(ValueError, match="checksum"):
            address_to_scriptpubkey(
                "tb1qw508d6qejxtdg4y5r3zarvary0c5xw7kxpjzsy", NetworkType.TESTNET
            )

    def test_mixed_case_rejected(self) -> None:
        with pytest.raises(ValueError, match="Mixed-case"):
            address_to_scriptpubkey(
                "tb1qW508d6qejxtdg4y5r3zarvary0c5xw7kxpjzsx", NetworkType.TESTNET
            )

    def test_wrong_network(self) -> None:
        """A mainnet address cannot be used on testnet."""
        with pytest.raises(ValueError, match="HRP"):
            address_to_scriptpubkey(
                "bc1qw508d6qejxtdg4y5r3zarvary0c5xw7kv8f3t4", NetworkType.TESTNET
            )

    def test_encode_decode_p2tr(self) -> None:
        program = bytes.fromhex(
            "79be667ef9dcbbac55a06295ce870b07029bfcdb2dce28d959f2815b16f81798"
        )
        address = encode_segwit_address("bc", 1, program)
        assert address == "bc1p0xlxvlhemja6c4dqv22uapctqupfhlxm9h8z3k2e72q4k9hcz7vqzk5jj0"
        assert decode_segwit_address("bc", address) == (1, program)


class TestBase58Addresses:
    """Tests for legacy base58 addresses."""

    def test_p2pkh_mainnet(self) -> None:
        script = address_to_scriptpubkey("1BvBMSEYstWetqTFn5Au4m4GFg7xJaNVN2", NetworkType.MAINNET)
        assert script[:3] == bytes([0x76, 0xA9, 0x14])
        assert script[-2:] == bytes([0x88, 0xAC])
        assert len(script) == 25

    def test_p2sh_mainnet(self) -> None:
        script = address_to_scriptpubkey("3J98t1WpEZ73CNmQviecrnyiWrnqRhWNLy", NetworkType.MAINNET)
        assert script[:2] == bytes([0xA9, 0x14])
        assert script[-1] == 0x87
        assert len(script) == 23

    def test_mainnet_p2pkh_on_testnet(self) -> None:
        with pytest.raises(ValueError, match="not valid for testnet"):
            address_to_scriptpubkey("1BvBMSEYstWetqTFn5Au4m4GFg7xJaNVN2", NetworkType.TESTNET)

    def test_invalid_base58(self) -> None:
        with pytest.raises(ValueError):
            address_to_scriptpubkey("1InvalidAddress", NetworkType.MAINNET)


class TestScriptPubKeyToAddress:
    @pytest.mark.parametrize(
        "address",
        [
            "1BvBMSEYstWetqTFn5Au4m4GFg7xJaNVN2",
            "3J98t1WpEZ73CNmQviecrnyiWrnqRhWNLy",
            "bc1qw508d6qejxtdg4y5r3zarvary0c5xw7kv8f3t4",
            "bc1p0xlxvlhemja6c4dqv22uapctqupfhlxm9h8z3k2e72q4k9hcz7vqzk5jj0",
        ],
    )
    def test_mainnet_addresses(self, address: str) -> None:
        script = address_to_scriptpubkey(address, NetworkType.MAINNET)
        assert scriptpubkey_to_address(script, NetworkType.MAINNET) == address

    def test_op_return_unsupported(self) -> None:
        with pytest.raises(ValueError, match="Unsupported"):
            scriptpubkey_to_address(bytes([0x6A, 0x01, 0xFF]), NetworkType.TESTNET)


class TestP2WPKH:
    def test_address_from_pubkey(self) -> None:
        assert (
            pubkey_to_p2wpkh_address(GENERATOR_PUBKEY, NetworkType.TESTNET)
            == "tb1qw508d6qejxtdg4y5r3zarvary0c5xw7kxpjzsx"
        )
        assert (
            pubkey_to_p2wpkh_address(GENERATOR_PUBKEY, NetworkType.REGTEST)
            == "bcrt1qw508d6qejxtdg4y5r3zarvary0c5xw7kygt080"
        )

    def test_script_from_pubkey(self) -> None:
        assert pubkey_to_p2wpkh_script(GENERATOR_PUBKEY).hex() == (
            "0014751e76e8199196d454941c45d1b3a323f1433bd6"
        )

    def test_uncompressed_pubkey_rejected(self) -> None:
        with pytest.raises(ValueError, match="compressed pubkey"):
            pubkey_to_p2wpkh_script(b"\x04" + bytes(64))
