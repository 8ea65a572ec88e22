"""
Test configuration for deposit tests.
"""

from __future__ import annotations

from collections.abc import Callable

import pytest
from coincurve import PrivateKey

from viadeposit.address import hash160
from viadeposit.config import DepositConfig
from viadeposit.constants import SIGHASH_ALL
from viadeposit.models import NetworkType, OwnedAddress, UnspentOutput
from viadeposit.psbt import Psbt
from viadeposit.transaction import compute_sighash_segwit, create_p2wpkh_script_code

# Private key 1: its P2WPKH program is the BIP-173 test vector
# tb1qw508d6qejxtdg4y5r3zarvary0c5xw7kxpjzsx
TEST_SECRET = bytes(31) + b"\x01"
TEST_ADDRESS = "tb1qw508d6qejxtdg4y5r3zarvary0c5xw7kxpjzsx"
BRIDGE_ADDRESS = "tb1pgvfdm6mfam4kqtnsjudjfa9c4q83mc0a6w5qyz07ajqvyt4f25vsaywx9w"
RECEIVER_ID = "36615Cf349d7F6344891B1e7CA7C72883F5dc049"
FUNDING_TXID = "7b1eabe0209b1fe794124575ef807057c77ada2138ae4fa8d6c4de0398a14f3f"


def sign_psbt_input(
    psbt: Psbt, input_index: int, key: PrivateKey, sighash_type: int = SIGHASH_ALL
) -> None:
    """Add a P2WPKH partial signature in place, like an external wallet would."""
    pubkey = key.public_key.format(compressed=True)
    witness_utxo = psbt.inputs[input_index].witness_utxo
    assert witness_utxo is not None
    sighash = compute_sighash_segwit(
        psbt.tx,
        input_index,
        create_p2wpkh_script_code(hash160(pubkey)),
        witness_utxo.value,
        sighash_type,
    )
    signature = key.sign(sighash, hasher=None) + bytes([sighash_type])
    psbt.inputs[input_index].partial_sigs[pubkey] = signature


@pytest.fixture
def private_key() -> PrivateKey:
    """Test key (not for production use!)."""
    return PrivateKey(TEST_SECRET)


@pytest.fixture
def owner(private_key: PrivateKey) -> OwnedAddress:
    return OwnedAddress(
        address=TEST_ADDRESS,
        public_key=private_key.public_key.format(compressed=True).hex(),
    )


@pytest.fixture
def deposit_config() -> DepositConfig:
    return DepositConfig(
        network=NetworkType.TESTNET,
        bridge_address=BRIDGE_ADDRESS,
        receiver_id=RECEIVER_ID,
        amount_sats=1500,
        fee_sats=300,
    )


@pytest.fixture
def make_utxo() -> Callable[..., UnspentOutput]:
    def _make(value: int, txid: str = FUNDING_TXID, vout: int = 0) -> UnspentOutput:
        return UnspentOutput(txid=txid, vout=vout, value=value, address=TEST_ADDRESS)

    return _make


@pytest.fixture
def sign_psbt(private_key: PrivateKey) -> Callable[[str], str]:
    """Sign every input of a base64 PSBT with the test key and return base64."""

    def _sign(psbt_b64: str) -> str:
        psbt = Psbt.from_base64(psbt_b64)
        for index in range(len(psbt.inputs)):
            sign_psbt_input(psbt, index, private_key)
        return psbt.to_base64()

    return _sign


@pytest.fixture
def sign_input() -> Callable[..., None]:
    return sign_psbt_input
