"""
PSBT finalization and raw transaction extraction.

Turns the PSBT returned by the external signer into a broadcastable
transaction. This is the last point where a tampered or incomplete result can
be caught before it reaches the network, so every input is checked before
anything is finalized:

1. The PSBT decodes and wraps the exact unsigned transaction that was sent
2. Each input carries one signature for the key that locks its P2WPKH UTXO
3. Each signature is SIGHASH_ALL and verifies against the BIP-143 sighash
"""

from __future__ import annotations

from collections.abc import Sequence

from coincurve import PublicKey
from loguru import logger

from viadeposit.address import hash160, is_p2wpkh_script
from viadeposit.constants import SIGHASH_ALL
from viadeposit.errors import IncompleteWitness, MalformedSignedStructure
from viadeposit.models import FinalizedTransaction
from viadeposit.psbt import Psbt, PsbtDecodeError, PsbtInput
from viadeposit.transaction import (
    Transaction,
    compute_sighash_segwit,
    create_p2wpkh_script_code,
)


def create_witness_stack(signature: bytes, pubkey_bytes: bytes) -> list[bytes]:
    return [signature, pubkey_bytes]


def verify_p2wpkh_signature(
    tx: Transaction, input_index: int, psbt_input: PsbtInput, pubkey: bytes, signature: bytes
) -> None:
    """
    Check one P2WPKH signature against the input it claims to unlock.

    Raises:
        IncompleteWitness: If the signature cannot unlock the input
    """
    witness_utxo = psbt_input.witness_utxo
    if witness_utxo is None:
        raise IncompleteWitness(input_index, "missing witness UTXO")
    if not is_p2wpkh_script(witness_utxo.script):
        raise IncompleteWitness(
            input_index, f"unsupported script type {witness_utxo.script.hex()}"
        )
    if len(pubkey) != 33:
        raise IncompleteWitness(input_index, "P2WPKH requires a compressed public key")

    pubkey_hash = hash160(pubkey)
    if witness_utxo.script[2:] != pubkey_hash:
        raise IncompleteWitness(input_index, "public key does not match the spent output")

    if len(signature) < 2:
        raise IncompleteWitness(input_index, "empty signature")
    sighash_type = signature[-1]
    if sighash_type != SIGHASH_ALL:
        raise IncompleteWitness(input_index, f"unsupported sighash type {sighash_type:#x}")

    sighash = compute_sighash_segwit(
        tx,
        input_index,
        create_p2wpkh_script_code(pubkey_hash),
        witness_utxo.value,
        sighash_type,
    )

    try:
        valid = PublicKey(pubkey).verify(signature[:-1], sighash, hasher=None)
    except ValueError as e:
        raise IncompleteWitness(input_index, f"unparseable signature: {e}") from e
    if not valid:
        raise IncompleteWitness(input_index, "signature does not verify")


class TransactionFinalizer:
    """Finalizes signed deposit PSBTs."""

    def decode(self, signed_psbt_b64: str, sent: Psbt) -> Psbt:
        """
        Decode the signer's PSBT and check it still describes the sent transaction.

        Raises:
            MalformedSignedStructure: On decode failure or any change in inputs/outputs
        """
        try:
            signed = Psbt.from_base64(signed_psbt_b64)
        except PsbtDecodeError as e:
            raise MalformedSignedStructure(f"Signed PSBT could not be decoded: {e}") from e

        if signed.unsigned_tx_bytes != sent.unsigned_tx_bytes:
            logger.debug(
                f"Signed tx {signed.tx.txid} differs from sent tx {sent.tx.txid}: "
                f"{len(signed.tx.inputs)}/{len(signed.tx.outputs)} vs "
                f"{len(sent.tx.inputs)}/{len(sent.tx.outputs)} inputs/outputs"
            )
            raise MalformedSignedStructure(
                "Signed PSBT does not match the transaction sent for signing"
            )

        # Signers may drop the witness UTXO once they have signed
        for signed_input, sent_input in zip(signed.inputs, sent.inputs, strict=True):
            if signed_input.witness_utxo is None:
                signed_input.witness_utxo = sent_input.witness_utxo
            elif signed_input.witness_utxo != sent_input.witness_utxo:
                raise MalformedSignedStructure("Signed PSBT changed the spent output data")

        return signed

    def input_witness(self, psbt: Psbt, input_index: int) -> list[bytes]:
        """
        Build the final witness for one input.

        Inputs the signer already finalized are verified the same way as
        inputs carrying a partial signature.
        """
        psbt_input = psbt.inputs[input_index]

        if psbt_input.final_scriptwitness is not None:
            if psbt_input.final_scriptsig:
                raise IncompleteWitness(input_index, "native SegWit input has a scriptSig")
            if len(psbt_input.final_scriptwitness) != 2:
                raise IncompleteWitness(input_index, "final witness is not [signature, pubkey]")
            signature, pubkey = psbt_input.final_scriptwitness
        else:
            if not psbt_input.partial_sigs:
                raise IncompleteWitness(input_index, "no signature")
            if len(psbt_input.partial_sigs) != 1:
                raise IncompleteWitness(
                    input_index, f"expected 1 signature, found {len(psbt_input.partial_sigs)}"
                )
            pubkey, signature = next(iter(psbt_input.partial_sigs.items()))

        if psbt_input.sighash_type is not None and psbt_input.sighash_type != SIGHASH_ALL:
            raise IncompleteWitness(
                input_index, f"unsupported sighash type {psbt_input.sighash_type:#x}"
            )

        verify_p2wpkh_signature(psbt.tx, input_index, psbt_input, pubkey, signature)
        return create_witness_stack(signature, pubkey)

    def finalize(
        self,
        signed_psbt_b64: str,
        sent: Psbt,
        signing_indexes: Sequence[int] | None = None,
    ) -> FinalizedTransaction:
        """
        Finalize the required inputs and extract the raw transaction.

        All inputs are checked before any witness is attached, so a failure
        leaves nothing half-finalized. Inputs outside `signing_indexes` must
        already carry a final witness from whoever else signed them.

        Args:
            signed_psbt_b64: PSBT returned by the signer (base64)
            sent: The unsigned PSBT that was sent for signing
            signing_indexes: Inputs the signer was asked to sign (default: all)

        Returns:
            Raw transaction and txid

        Raises:
            MalformedSignedStructure: The PSBT is malformed or was altered
            IncompleteWitness: An input cannot be unlocked (carries input_index)
            ValueError: If a signing index does not name an input
        """
        if signing_indexes is None:
            signing_indexes = range(len(sent.inputs))
        required = set(signing_indexes)
        for index in required:
            if not 0 <= index < len(sent.inputs):
                raise ValueError(
                    f"Signing index {index} out of range for {len(sent.inputs)} inputs"
                )

        psbt = self.decode(signed_psbt_b64, sent)

        witnesses = {i: self.input_witness(psbt, i) for i in sorted(required)}
        for index, psbt_input in enumerate(psbt.inputs):
            if index not in required and psbt_input.final_scriptwitness is None:
                raise IncompleteWitness(index, "input is not finalized")

        for index, witness in witnesses.items():
            psbt_input = psbt.inputs[index]
            psbt_input.final_scriptsig = b""
            psbt_input.final_scriptwitness = witness
            psbt_input.partial_sigs.clear()
            psbt_input.sighash_type = None

        finalized = extract_transaction(psbt)
        logger.info(f"Finalized transaction {finalized.txid} ({len(finalized.raw)} bytes)")
        return finalized


def extract_transaction(psbt: Psbt) -> FinalizedTransaction:
    """Serialize a fully finalized PSBT as a network transaction."""
    for index, psbt_input in enumerate(psbt.inputs):
        if psbt_input.final_scriptwitness is None:
            raise IncompleteWitness(index, "input is not finalized")

    tx = Transaction(
        version=psbt.tx.version,
        inputs=psbt.tx.inputs,
        outputs=psbt.tx.outputs,
        locktime=psbt.tx.locktime,
        witnesses=[list(psbt_input.final_scriptwitness or []) for psbt_input in psbt.inputs],
    )
    return FinalizedTransaction(raw=tx.serialize(), txid=tx.txid)
