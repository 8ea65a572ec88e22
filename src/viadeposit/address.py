"""
Bitcoin address and scriptPubKey utilities.

Supports native SegWit v0 (bech32, BIP-173), Taproot and later witness
versions (bech32m, BIP-350) and legacy base58 P2PKH / P2SH addresses.
"""

from __future__ import annotations

import hashlib

import base58
import bech32

from viadeposit.constants import (
    OP_0,
    OP_1,
    OP_CHECKSIG,
    OP_DUP,
    OP_EQUAL,
    OP_EQUALVERIFY,
    OP_HASH160,
)
from viadeposit.models import NetworkType

BECH32_CONST = 1
BECH32M_CONST = 0x2BC830A3

BECH32_HRPS: dict[NetworkType, str] = {
    NetworkType.MAINNET: "bc",
    NetworkType.TESTNET: "tb",
    NetworkType.SIGNET: "tb",
    NetworkType.REGTEST: "bcrt",
}

P2PKH_VERSIONS: dict[NetworkType, int] = {
    NetworkType.MAINNET: 0x00,
    NetworkType.TESTNET: 0x6F,
    NetworkType.SIGNET: 0x6F,
    NetworkType.REGTEST: 0x6F,
}

P2SH_VERSIONS: dict[NetworkType, int] = {
    NetworkType.MAINNET: 0x05,
    NetworkType.TESTNET: 0xC4,
    NetworkType.SIGNET: 0xC4,
    NetworkType.REGTEST: 0xC4,
}


def hash160(data: bytes) -> bytes:
    """RIPEMD160(SHA256(data))"""
    h = hashlib.new("ripemd160")
    h.update(hashlib.sha256(data).digest())
    return h.digest()


def get_bech32_hrp(network: NetworkType) -> str:
    return BECH32_HRPS[network]


def decode_segwit_address(hrp: str, address: str) -> tuple[int, bytes]:
    """
    Decode a bech32/bech32m SegWit address.

    Witness version 0 must use the bech32 checksum, versions 1-16 bech32m.

    Returns:
        (witness_version, witness_program)

    Raises:
        ValueError: If the address is malformed or belongs to another HRP
    """
    if address.lower() != address and address.upper() != address:
        raise ValueError(f"Mixed-case bech32 address: {address}")
    address = address.lower()

    pos = address.rfind("1")
    if pos < 1 or pos + 7 > len(address) or len(address) > 90:
        raise ValueError(f"Invalid bech32 address: {address}")
    if address[:pos] != hrp:
        raise ValueError(f"Address {address} does not use HRP '{hrp}'")

    data = [bech32.CHARSET.find(c) for c in address[pos + 1 :]]
    if any(d == -1 for d in data):
        raise ValueError(f"Invalid bech32 character in address: {address}")

    const = bech32.bech32_polymod(bech32.bech32_hrp_expand(hrp) + data)
    data = data[:-6]
    if not data:
        raise ValueError(f"Invalid bech32 address: {address}")

    witver = data[0]
    if witver > 16:
        raise ValueError(f"Invalid witness version {witver}: {address}")
    expected_const = BECH32_CONST if witver == 0 else BECH32M_CONST
    if const != expected_const:
        raise ValueError(f"Invalid bech32 checksum: {address}")

    witprog = bech32.convertbits(data[1:], 5, 8, False)
    if witprog is None or not 2 <= len(witprog) <= 40:
        raise ValueError(f"Invalid witness program: {address}")
    if witver == 0 and len(witprog) not in (20, 32):
        raise ValueError(f"Invalid v0 witness program length {len(witprog)}: {address}")

    return witver, bytes(witprog)


def encode_segwit_address(hrp: str, witver: int, witprog: bytes) -> str:
    """Encode a witness program as bech32 (v0) or bech32m (v1+)."""
    data = [witver] + bech32.convertbits(witprog, 8, 5)
    const = BECH32_CONST if witver == 0 else BECH32M_CONST
    polymod = bech32.bech32_polymod(bech32.bech32_hrp_expand(hrp) + data + [0] * 6) ^ const
    checksum = [(polymod >> 5 * (5 - i)) & 31 for i in range(6)]
    return hrp + "1" + "".join(bech32.CHARSET[d] for d in data + checksum)


def _is_bech32(address: str) -> bool:
    lowered = address.lower()
    return any(lowered.startswith(hrp + "1") for hrp in set(BECH32_HRPS.values()))


def address_to_scriptpubkey(address: str, network: NetworkType) -> bytes:
    """
    Convert a Bitcoin address to scriptPubKey.

    The address must belong to the given network.

    Supports:
    - P2WPKH / P2WSH (bech32)
    - P2TR and future witness versions (bech32m)
    - P2PKH / P2SH (base58check)
    """
    if _is_bech32(address):
        witver, witprog = decode_segwit_address(get_bech32_hrp(network), address)
        version_op = OP_0 if witver == 0 else OP_1 + witver - 1
        return bytes([version_op, len(witprog)]) + witprog

    try:
        decoded = base58.b58decode_check(address)
    except ValueError as e:
        raise ValueError(f"Invalid address {address}: {e}") from e

    if len(decoded) != 21:
        raise ValueError(f"Invalid base58 payload length: {address}")
    version = decoded[0]
    payload = decoded[1:]

    if version == P2PKH_VERSIONS[network]:
        return bytes([OP_DUP, OP_HASH160, 0x14]) + payload + bytes([OP_EQUALVERIFY, OP_CHECKSIG])
    if version == P2SH_VERSIONS[network]:
        return bytes([OP_HASH160, 0x14]) + payload + bytes([OP_EQUAL])

    raise ValueError(f"Address {address} is not valid for {network.value}")


def scriptpubkey_to_address(scriptpubkey: bytes, network: NetworkType) -> str:
    """Convert a standard scriptPubKey back to its address."""
    if (
        len(scriptpubkey) >= 4
        and (scriptpubkey[0] == OP_0 or OP_1 <= scriptpubkey[0] <= OP_1 + 15)
        and scriptpubkey[1] == len(scriptpubkey) - 2
    ):
        witver = 0 if scriptpubkey[0] == OP_0 else scriptpubkey[0] - OP_1 + 1
        return encode_segwit_address(get_bech32_hrp(network), witver, scriptpubkey[2:])

    if (
        len(scriptpubkey) == 25
        and scriptpubkey[:3] == bytes([OP_DUP, OP_HASH160, 0x14])
        and scriptpubkey[23:] == bytes([OP_EQUALVERIFY, OP_CHECKSIG])
    ):
        payload = bytes([P2PKH_VERSIONS[network]]) + scriptpubkey[3:23]
        return base58.b58encode_check(payload).decode("ascii")

    if (
        len(scriptpubkey) == 23
        and scriptpubkey[:2] == bytes([OP_HASH160, 0x14])
        and scriptpubkey[22] == OP_EQUAL
    ):
        payload = bytes([P2SH_VERSIONS[network]]) + scriptpubkey[2:22]
        return base58.b58encode_check(payload).decode("ascii")

    raise ValueError(f"Unsupported scriptPubKey: {scriptpubkey.hex()}")


def pubkey_to_p2wpkh_script(pubkey: bytes) -> bytes:
    """Create P2WPKH scriptPubKey (OP_0 <20-byte-hash>)"""
    if len(pubkey) != 33:
        raise ValueError(f"Invalid compressed pubkey length: {len(pubkey)}")
    return bytes([OP_0, 0x14]) + hash160(pubkey)


def pubkey_to_p2wpkh_address(pubkey: bytes, network: NetworkType) -> str:
    """
    Convert compressed public key to P2WPKH (native segwit) address.
    BIP173 bech32 encoding.
    """
    if len(pubkey) != 33:
        raise ValueError(f"Invalid compressed pubkey length: {len(pubkey)}")
    return encode_segwit_address(get_bech32_hrp(network), 0, hash160(pubkey))


def is_p2wpkh_script(script: bytes) -> bool:
    return len(script) == 22 and script[0] == OP_0 and script[1] == 0x14
