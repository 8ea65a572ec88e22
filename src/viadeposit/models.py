"""
Deposit data models.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class NetworkType(str, Enum):
    MAINNET = "mainnet"
    TESTNET = "testnet"
    SIGNET = "signet"
    REGTEST = "regtest"


@dataclass(frozen=True)
class UnspentOutput:
    """A spendable output reported by the UTXO provider"""

    txid: str
    vout: int
    value: int
    address: str
    scriptpubkey: str = ""

    @property
    def outpoint(self) -> str:
        return f"{self.txid}:{self.vout}"


@dataclass(frozen=True)
class OwnedAddress:
    """Address and compressed public key supplied by the external signer"""

    address: str
    public_key: str

    @property
    def public_key_bytes(self) -> bytes:
        return bytes.fromhex(self.public_key)


@dataclass(frozen=True)
class FinalizedTransaction:
    """Fully signed raw transaction ready for broadcast"""

    raw: bytes
    txid: str

    @property
    def hex(self) -> str:
        return self.raw.hex()
