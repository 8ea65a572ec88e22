"""
Deposit PSBT builder.

Builds the unsigned bridge deposit from:
- The selected UTXO and the spender's public key
- The bridge address and deposit amount
- The L2 receiver id (embedded with OP_RETURN)
- A fixed fee, with any remaining value returned as change

Output order is fixed: bridge deposit, OP_RETURN metadata, then change.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from loguru import logger

from viadeposit.address import address_to_scriptpubkey, pubkey_to_p2wpkh_script
from viadeposit.config import DepositConfig
from viadeposit.errors import InvalidDepositParameters
from viadeposit.models import NetworkType, OwnedAddress, UnspentOutput
from viadeposit.opreturn import encode_op_return
from viadeposit.psbt import Psbt
from viadeposit.transaction import Transaction, TxInput, TxOutput


@dataclass
class DepositDraft:
    """Inputs and outputs of a deposit while it is being assembled."""

    inputs: list[TxInput] = field(default_factory=list)
    witness_utxos: list[TxOutput] = field(default_factory=list)
    outputs: list[TxOutput] = field(default_factory=list)

    def add_input(self, utxo: UnspentOutput, witness_utxo: TxOutput) -> None:
        self.inputs.append(TxInput(txid=utxo.txid, vout=utxo.vout))
        self.witness_utxos.append(witness_utxo)

    def add_output(self, output: TxOutput) -> None:
        self.outputs.append(output)

    def to_psbt(self) -> Psbt:
        psbt = Psbt.from_transaction(Transaction(inputs=self.inputs, outputs=self.outputs))
        for psbt_input, witness_utxo in zip(psbt.inputs, self.witness_utxos, strict=True):
            psbt_input.witness_utxo = witness_utxo
        return psbt


def _require_int(name: str, value: int) -> None:
    if isinstance(value, bool) or not isinstance(value, int):
        raise TypeError(f"{name} must be an integer number of satoshis, got {value!r}")


def calculate_change(input_value: int, amount: int, fee: int) -> int:
    """Change left after the deposit and fee. May be zero or negative."""
    for name, value in (("input_value", input_value), ("amount", amount), ("fee", fee)):
        _require_int(name, value)
    return input_value - amount - fee


class DepositPsbtBuilder:
    """
    Builds unsigned deposit PSBTs.

    The transaction structure:
    - Input: the selected UTXO, with its witness UTXO (value and P2WPKH script)
    - Outputs: bridge deposit, OP_RETURN(receiver id), optional change
    """

    def __init__(self, network: NetworkType = NetworkType.TESTNET):
        self.network = network

    def build(
        self,
        utxo: UnspentOutput,
        owner: OwnedAddress,
        amount: int,
        fee: int,
        bridge_address: str,
        metadata: bytes,
    ) -> Psbt:
        """
        Build the unsigned deposit PSBT.

        Args:
            utxo: UTXO funding the deposit
            owner: Spender address and public key
            amount: Deposit amount in sats
            fee: Transaction fee in sats
            bridge_address: Bridge destination address
            metadata: OP_RETURN payload (L2 receiver id)

        Returns:
            Unsigned PSBT

        Raises:
            InvalidDepositParameters: If an address does not belong to the network or the
                public key is malformed
            TypeError: If an amount is not an integer
        """
        change = calculate_change(utxo.value, amount, fee)

        try:
            witness_script = pubkey_to_p2wpkh_script(owner.public_key_bytes)
        except ValueError as e:
            raise InvalidDepositParameters(f"Unusable public key {owner.public_key!r}: {e}") from e
        bridge_script = self._script_for(bridge_address)
        change_script = self._script_for(owner.address)

        draft = DepositDraft()
        draft.add_input(utxo, TxOutput(value=utxo.value, script=witness_script))
        draft.add_output(TxOutput(value=amount, script=bridge_script))
        draft.add_output(encode_op_return(metadata))

        if change > 0:
            draft.add_output(TxOutput(value=change, script=change_script))
        else:
            logger.debug(f"No change output (change = {change} sats)")

        psbt = draft.to_psbt()
        logger.debug(
            f"Built deposit PSBT: input {utxo.outpoint}, {len(draft.outputs)} outputs, "
            f"amount={amount:,}, fee={fee:,}, change={max(change, 0):,}"
        )
        return psbt

    def _script_for(self, address: str) -> bytes:
        try:
            return address_to_scriptpubkey(address, self.network)
        except ValueError as e:
            raise InvalidDepositParameters(str(e)) from e


def build_deposit_psbt(utxo: UnspentOutput, owner: OwnedAddress, config: DepositConfig) -> Psbt:
    """Build a deposit PSBT using the deployment parameters from `config`."""
    builder = DepositPsbtBuilder(config.network)
    return builder.build(
        utxo=utxo,
        owner=owner,
        amount=config.amount_sats,
        fee=config.fee_sats,
        bridge_address=config.bridge_address,
        metadata=config.receiver_bytes,
    )
