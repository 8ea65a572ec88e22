"""
Partially Signed Bitcoin Transactions (BIP-174, version 0).

Only the fields a single-key SegWit spend needs are interpreted: witness and
non-witness UTXOs, partial signatures, sighash type and the final
scriptSig/witness. Every other key/value pair is kept verbatim so a PSBT
returned by a signer can be re-serialized without losing data.
"""

from __future__ import annotations

import base64
import binascii
import struct
from dataclasses import dataclass, field

from viadeposit.constants import (
    PSBT_GLOBAL_UNSIGNED_TX,
    PSBT_GLOBAL_VERSION,
    PSBT_IN_FINAL_SCRIPTSIG,
    PSBT_IN_FINAL_SCRIPTWITNESS,
    PSBT_IN_NON_WITNESS_UTXO,
    PSBT_IN_PARTIAL_SIG,
    PSBT_IN_SIGHASH_TYPE,
    PSBT_IN_WITNESS_UTXO,
    PSBT_MAGIC,
)
from viadeposit.transaction import (
    Transaction,
    TransactionDecodeError,
    TxOutput,
    deserialize_transaction,
    encode_varint,
    read_amount,
    read_bytes,
    read_varint,
    serialize_output,
    serialize_witness,
)


class PsbtDecodeError(ValueError):
    """Raised when PSBT bytes are malformed."""


@dataclass
class PsbtInput:
    witness_utxo: TxOutput | None = None
    non_witness_utxo: bytes | None = None
    partial_sigs: dict[bytes, bytes] = field(default_factory=dict)  # pubkey -> signature
    sighash_type: int | None = None
    final_scriptsig: bytes | None = None
    final_scriptwitness: list[bytes] | None = None
    unknown: dict[bytes, bytes] = field(default_factory=dict)

    @property
    def is_finalized(self) -> bool:
        return self.final_scriptwitness is not None or self.final_scriptsig is not None


@dataclass
class PsbtOutput:
    unknown: dict[bytes, bytes] = field(default_factory=dict)


@dataclass
class Psbt:
    tx: Transaction
    inputs: list[PsbtInput]
    outputs: list[PsbtOutput]
    unknown: dict[bytes, bytes] = field(default_factory=dict)

    @classmethod
    def from_transaction(cls, tx: Transaction) -> Psbt:
        """Wrap an unsigned transaction with empty per-input/output maps."""
        if any(inp.script_sig for inp in tx.inputs) or tx.has_witness:
            raise ValueError("PSBT unsigned transaction must have empty scriptSigs and witnesses")
        return cls(
            tx=tx,
            inputs=[PsbtInput() for _ in tx.inputs],
            outputs=[PsbtOutput() for _ in tx.outputs],
        )

    @property
    def unsigned_tx_bytes(self) -> bytes:
        return self.tx.serialize(include_witness=False)

    def to_bytes(self) -> bytes:
        result = bytearray(PSBT_MAGIC)

        _write_pair(result, bytes([PSBT_GLOBAL_UNSIGNED_TX]), self.unsigned_tx_bytes)
        for key, value in self.unknown.items():
            _write_pair(result, key, value)
        result += b"\x00"

        for psbt_input in self.inputs:
            _serialize_input_map(result, psbt_input)
            result += b"\x00"

        for psbt_output in self.outputs:
            for key, value in psbt_output.unknown.items():
                _write_pair(result, key, value)
            result += b"\x00"

        return bytes(result)

    def to_base64(self) -> str:
        return base64.b64encode(self.to_bytes()).decode("ascii")

    @classmethod
    def from_bytes(cls, data: bytes) -> Psbt:
        """
        Parse a serialized PSBT.

        Raises:
            PsbtDecodeError: On bad magic, duplicate or malformed keys, a missing
                unsigned transaction, map count mismatches or trailing bytes
        """
        try:
            return _parse_psbt(data)
        except TransactionDecodeError as e:
            raise PsbtDecodeError(f"Malformed PSBT: {e}") from e

    @classmethod
    def from_base64(cls, psbt_b64: str) -> Psbt:
        try:
            data = base64.b64decode(psbt_b64.strip(), validate=True)
        except (binascii.Error, ValueError) as e:
            raise PsbtDecodeError(f"Invalid base64 PSBT: {e}") from e
        return cls.from_bytes(data)


def _write_pair(result: bytearray, key: bytes, value: bytes) -> None:
    result += encode_varint(len(key))
    result += key
    result += encode_varint(len(value))
    result += value


def _serialize_input_map(result: bytearray, psbt_input: PsbtInput) -> None:
    if psbt_input.non_witness_utxo is not None:
        _write_pair(result, bytes([PSBT_IN_NON_WITNESS_UTXO]), psbt_input.non_witness_utxo)
    if psbt_input.witness_utxo is not None:
        _write_pair(
            result, bytes([PSBT_IN_WITNESS_UTXO]), serialize_output(psbt_input.witness_utxo)
        )
    for pubkey, signature in psbt_input.partial_sigs.items():
        _write_pair(result, bytes([PSBT_IN_PARTIAL_SIG]) + pubkey, signature)
    if psbt_input.sighash_type is not None:
        _write_pair(
            result, bytes([PSBT_IN_SIGHASH_TYPE]), struct.pack("<I", psbt_input.sighash_type)
        )
    if psbt_input.final_scriptsig is not None:
        _write_pair(result, bytes([PSBT_IN_FINAL_SCRIPTSIG]), psbt_input.final_scriptsig)
    if psbt_input.final_scriptwitness is not None:
        _write_pair(
            result,
            bytes([PSBT_IN_FINAL_SCRIPTWITNESS]),
            serialize_witness(psbt_input.final_scriptwitness),
        )
    for key, value in psbt_input.unknown.items():
        _write_pair(result, key, value)


def _read_map(data: bytes, offset: int) -> tuple[list[tuple[bytes, bytes]], int]:
    """Read key/value pairs up to the 0x00 separator."""
    pairs: list[tuple[bytes, bytes]] = []
    seen: set[bytes] = set()

    while True:
        key_len, offset = read_varint(data, offset)
        if key_len == 0:
            return pairs, offset
        key, offset = read_bytes(data, offset, key_len)
        value_len, offset = read_varint(data, offset)
        value, offset = read_bytes(data, offset, value_len)

        if key in seen:
            raise PsbtDecodeError(f"Duplicate PSBT key: {key.hex()}")
        seen.add(key)
        pairs.append((key, value))


def _parse_witness_utxo(value: bytes) -> TxOutput:
    amount, offset = read_amount(value, 0)
    script_len, offset = read_varint(value, offset)
    script, offset = read_bytes(value, offset, script_len)
    if offset != len(value):
        raise PsbtDecodeError("Trailing bytes in witness UTXO")
    return TxOutput(value=amount, script=script)


def _parse_witness_stack(value: bytes) -> list[bytes]:
    count, offset = read_varint(value, 0)
    stack: list[bytes] = []
    for _ in range(count):
        item_len, offset = read_varint(value, offset)
        item, offset = read_bytes(value, offset, item_len)
        stack.append(item)
    if offset != len(value):
        raise PsbtDecodeError("Trailing bytes in final witness")
    return stack


def _parse_input_map(pairs: list[tuple[bytes, bytes]]) -> PsbtInput:
    psbt_input = PsbtInput()

    for key, value in pairs:
        key_type = key[0]
        key_data = key[1:]

        if key_type == PSBT_IN_NON_WITNESS_UTXO and not key_data:
            psbt_input.non_witness_utxo = value
        elif key_type == PSBT_IN_WITNESS_UTXO and not key_data:
            psbt_input.witness_utxo = _parse_witness_utxo(value)
        elif key_type == PSBT_IN_PARTIAL_SIG:
            if len(key_data) not in (33, 65):
                raise PsbtDecodeError(f"Invalid partial signature pubkey length: {len(key_data)}")
            psbt_input.partial_sigs[key_data] = value
        elif key_type == PSBT_IN_SIGHASH_TYPE and not key_data:
            if len(value) != 4:
                raise PsbtDecodeError("Invalid sighash type length")
            psbt_input.sighash_type = struct.unpack("<I", value)[0]
        elif key_type == PSBT_IN_FINAL_SCRIPTSIG and not key_data:
            psbt_input.final_scriptsig = value
        elif key_type == PSBT_IN_FINAL_SCRIPTWITNESS and not key_data:
            psbt_input.final_scriptwitness = _parse_witness_stack(value)
        else:
            psbt_input.unknown[key] = value

    return psbt_input


def _parse_psbt(data: bytes) -> Psbt:
    if not data.startswith(PSBT_MAGIC):
        raise PsbtDecodeError("Invalid PSBT magic")
    offset = len(PSBT_MAGIC)

    global_pairs, offset = _read_map(data, offset)
    tx: Transaction | None = None
    unknown: dict[bytes, bytes] = {}

    for key, value in global_pairs:
        if key == bytes([PSBT_GLOBAL_UNSIGNED_TX]):
            tx = deserialize_transaction(value)
            if tx.has_witness or any(inp.script_sig for inp in tx.inputs):
                raise PsbtDecodeError("Unsigned transaction must not carry scriptSigs or witnesses")
        elif key == bytes([PSBT_GLOBAL_VERSION]):
            if len(value) != 4 or struct.unpack("<I", value)[0] != 0:
                raise PsbtDecodeError("Only PSBT version 0 is supported")
            unknown[key] = value
        else:
            unknown[key] = value

    if tx is None:
        raise PsbtDecodeError("PSBT is missing the unsigned transaction")

    inputs: list[PsbtInput] = []
    for _ in tx.inputs:
        pairs, offset = _read_map(data, offset)
        inputs.append(_parse_input_map(pairs))

    outputs: list[PsbtOutput] = []
    for _ in tx.outputs:
        pairs, offset = _read_map(data, offset)
        outputs.append(PsbtOutput(unknown=dict(pairs)))

    if offset != len(data):
        raise PsbtDecodeError(f"{len(data) - offset} trailing bytes after PSBT")

    return Psbt(tx=tx, inputs=inputs, outputs=outputs, unknown=unknown)
