"""
Raw Bitcoin transaction serialization, txid and BIP-143 sighash.
"""

from __future__ import annotations

import hashlib
import struct
from dataclasses import dataclass, field

from viadeposit.constants import (
    MAX_MONEY,
    OP_CHECKSIG,
    OP_DUP,
    OP_EQUALVERIFY,
    OP_HASH160,
    SEQUENCE_FINAL,
    TX_LOCKTIME,
    TX_VERSION,
)


class TransactionDecodeError(ValueError):
    """Raised when raw transaction bytes cannot be parsed."""


@dataclass
class TxInput:
    """Transaction input."""

    txid: str
    vout: int
    script_sig: bytes = b""
    sequence: int = SEQUENCE_FINAL

    @property
    def outpoint(self) -> str:
        return f"{self.txid}:{self.vout}"


@dataclass
class TxOutput:
    """Transaction output."""

    value: int
    script: bytes


@dataclass
class Transaction:
    version: int = TX_VERSION
    inputs: list[TxInput] = field(default_factory=list)
    outputs: list[TxOutput] = field(default_factory=list)
    locktime: int = TX_LOCKTIME
    witnesses: list[list[bytes]] = field(default_factory=list)

    @property
    def has_witness(self) -> bool:
        return any(self.witnesses)

    def serialize(self, include_witness: bool = True) -> bytes:
        return serialize_transaction(self, include_witness=include_witness)

    @property
    def txid(self) -> str:
        """Double SHA256 of the non-witness serialization, in RPC byte order."""
        return hash256(self.serialize(include_witness=False))[::-1].hex()


def hash256(data: bytes) -> bytes:
    return hashlib.sha256(hashlib.sha256(data).digest()).digest()


def encode_varint(value: int) -> bytes:
    if value < 0:
        raise ValueError(f"Cannot encode negative varint: {value}")
    if value < 0xFD:
        return bytes([value])
    if value <= 0xFFFF:
        return b"\xfd" + value.to_bytes(2, "little")
    if value <= 0xFFFFFFFF:
        return b"\xfe" + value.to_bytes(4, "little")
    return b"\xff" + value.to_bytes(8, "little")


def read_bytes(data: bytes, offset: int, length: int) -> tuple[bytes, int]:
    """Read exactly `length` bytes, returning (chunk, new_offset)."""
    end = offset + length
    if length < 0 or end > len(data):
        raise TransactionDecodeError(
            f"Unexpected end of data: need {length} bytes at offset {offset}, have {len(data)}"
        )
    return data[offset:end], end


def read_varint(data: bytes, offset: int) -> tuple[int, int]:
    first, offset = read_bytes(data, offset, 1)

    if first[0] < 0xFD:
        return first[0], offset
    width = {0xFD: 2, 0xFE: 4, 0xFF: 8}[first[0]]
    raw, offset = read_bytes(data, offset, width)
    return int.from_bytes(raw, "little"), offset


def read_amount(data: bytes, offset: int) -> tuple[int, int]:
    raw, offset = read_bytes(data, offset, 8)
    value = struct.unpack("<Q", raw)[0]
    if value > MAX_MONEY:
        raise TransactionDecodeError(f"Amount out of range: {value}")
    return value, offset


def serialize_amount(value: int) -> bytes:
    if isinstance(value, bool) or not isinstance(value, int):
        raise TypeError(f"Amount must be an integer number of satoshis, got {value!r}")
    if not 0 <= value <= MAX_MONEY:
        raise ValueError(f"Amount out of range: {value}")
    return struct.pack("<Q", value)


def serialize_outpoint(txid: str, vout: int) -> bytes:
    # Raw transactions carry the txid byte-reversed
    txid_bytes = bytes.fromhex(txid)
    if len(txid_bytes) != 32:
        raise ValueError(f"Invalid txid length: {txid}")
    return txid_bytes[::-1] + struct.pack("<I", vout)


def serialize_input(inp: TxInput) -> bytes:
    result = serialize_outpoint(inp.txid, inp.vout)
    result += encode_varint(len(inp.script_sig))
    result += inp.script_sig
    result += struct.pack("<I", inp.sequence)
    return result


def serialize_output(out: TxOutput) -> bytes:
    result = serialize_amount(out.value)
    result += encode_varint(len(out.script))
    result += out.script
    return result


def serialize_witness(stack: list[bytes]) -> bytes:
    result = encode_varint(len(stack))
    for item in stack:
        result += encode_varint(len(item))
        result += item
    return result


def serialize_transaction(tx: Transaction, include_witness: bool = True) -> bytes:
    """Serialize transaction to bytes (BIP-144 format when witnesses are present)."""
    with_witness = include_witness and tx.has_witness
    if with_witness and len(tx.witnesses) != len(tx.inputs):
        raise ValueError(
            f"Witness count {len(tx.witnesses)} does not match input count {len(tx.inputs)}"
        )

    result = struct.pack("<I", tx.version)
    if with_witness:
        # Marker and flag for SegWit
        result += bytes([0x00, 0x01])

    result += encode_varint(len(tx.inputs))
    for inp in tx.inputs:
        result += serialize_input(inp)

    result += encode_varint(len(tx.outputs))
    for out in tx.outputs:
        result += serialize_output(out)

    if with_witness:
        for stack in tx.witnesses:
            result += serialize_witness(stack)

    result += struct.pack("<I", tx.locktime)
    return result


def deserialize_transaction(tx_bytes: bytes) -> Transaction:
    """
    Parse a raw transaction.

    The whole buffer must be consumed; trailing bytes are an error.

    Raises:
        TransactionDecodeError: If the bytes are not a well-formed transaction
    """
    offset = 0
    raw_version, offset = read_bytes(tx_bytes, offset, 4)
    version = struct.unpack("<I", raw_version)[0]

    has_witness = False
    if len(tx_bytes) > offset + 1 and tx_bytes[offset] == 0x00 and tx_bytes[offset + 1] == 0x01:
        has_witness = True
        offset += 2

    input_count, offset = read_varint(tx_bytes, offset)
    inputs: list[TxInput] = []
    for _ in range(input_count):
        txid_le, offset = read_bytes(tx_bytes, offset, 32)
        raw_vout, offset = read_bytes(tx_bytes, offset, 4)
        script_len, offset = read_varint(tx_bytes, offset)
        script_sig, offset = read_bytes(tx_bytes, offset, script_len)
        raw_sequence, offset = read_bytes(tx_bytes, offset, 4)
        inputs.append(
            TxInput(
                txid=txid_le[::-1].hex(),
                vout=struct.unpack("<I", raw_vout)[0],
                script_sig=script_sig,
                sequence=struct.unpack("<I", raw_sequence)[0],
            )
        )

    output_count, offset = read_varint(tx_bytes, offset)
    outputs: list[TxOutput] = []
    for _ in range(output_count):
        value, offset = read_amount(tx_bytes, offset)
        script_len, offset = read_varint(tx_bytes, offset)
        script, offset = read_bytes(tx_bytes, offset, script_len)
        outputs.append(TxOutput(value=value, script=script))

    witnesses: list[list[bytes]] = []
    if has_witness:
        for _ in range(input_count):
            stack_count, offset = read_varint(tx_bytes, offset)
            stack: list[bytes] = []
            for _ in range(stack_count):
                item_len, offset = read_varint(tx_bytes, offset)
                item, offset = read_bytes(tx_bytes, offset, item_len)
                stack.append(item)
            witnesses.append(stack)

    raw_locktime, offset = read_bytes(tx_bytes, offset, 4)
    if offset != len(tx_bytes):
        raise TransactionDecodeError(f"{len(tx_bytes) - offset} trailing bytes after transaction")

    return Transaction(
        version=version,
        inputs=inputs,
        outputs=outputs,
        locktime=struct.unpack("<I", raw_locktime)[0],
        witnesses=witnesses,
    )


def compute_sighash_segwit(
    tx: Transaction,
    input_index: int,
    script_code: bytes,
    value: int,
    sighash_type: int,
) -> bytes:
    """BIP-143 signature hash for SIGHASH_ALL over a SegWit v0 input."""
    if input_index >= len(tx.inputs):
        raise ValueError("Input index out of range")

    hash_prevouts = hash256(
        b"".join(serialize_outpoint(inp.txid, inp.vout) for inp in tx.inputs)
    )
    hash_sequence = hash256(b"".join(struct.pack("<I", inp.sequence) for inp in tx.inputs))
    hash_outputs = hash256(b"".join(serialize_output(out) for out in tx.outputs))

    target_input = tx.inputs[input_index]

    preimage = (
        struct.pack("<I", tx.version)
        + hash_prevouts
        + hash_sequence
        + serialize_outpoint(target_input.txid, target_input.vout)
        + encode_varint(len(script_code))
        + script_code
        + serialize_amount(value)
        + struct.pack("<I", target_input.sequence)
        + hash_outputs
        + struct.pack("<I", tx.locktime)
        + struct.pack("<I", sighash_type)
    )

    return hash256(preimage)


def create_p2wpkh_script_code(pubkey_hash: bytes) -> bytes:
    """BIP-143 scriptCode of a P2WPKH input: the equivalent P2PKH script."""
    return bytes([OP_DUP, OP_HASH160, 0x14]) + pubkey_hash + bytes([OP_EQUALVERIFY, OP_CHECKSIG])
