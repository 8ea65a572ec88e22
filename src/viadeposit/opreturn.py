"""
OP_RETURN metadata outputs.

The deposit embeds the L2 receiver id as:

    OP_RETURN <len> <payload>

with a zero-value output. Callers are responsible for keeping the payload
within a single direct push (MAX_DIRECT_PUSH bytes) so the output stays
standard.
"""

from __future__ import annotations

from viadeposit.constants import OP_RETURN
from viadeposit.transaction import TxOutput


def build_op_return_script(payload: bytes) -> bytes:
    # bytes() rejects lengths that do not fit in one byte
    return bytes([OP_RETURN, len(payload)]) + payload


def encode_op_return(payload: bytes) -> TxOutput:
    """Create the zero-value OP_RETURN output carrying `payload`."""
    return TxOutput(value=0, script=build_op_return_script(payload))


def decode_op_return(script: bytes) -> bytes:
    """
    Extract the payload from an OP_RETURN script built by encode_op_return.

    Raises:
        ValueError: If the script is not OP_RETURN followed by a single length-prefixed push
    """
    if len(script) < 2 or script[0] != OP_RETURN:
        raise ValueError(f"Not an OP_RETURN script: {script.hex()}")
    length = script[1]
    if len(script) != length + 2:
        raise ValueError(
            f"OP_RETURN push length {length} does not match script length {len(script)}"
        )
    return script[2:]


def is_op_return(script: bytes) -> bool:
    return len(script) > 0 and script[0] == OP_RETURN
