"""
viadeposit - VIA bridge deposit transactions

Builds the Bitcoin deposit PSBT, coordinates signing with an external wallet,
finalizes the signed PSBT and broadcasts the result.
"""

__version__ = "0.1.0"

from viadeposit.builder import DepositPsbtBuilder, build_deposit_psbt
from viadeposit.config import DepositConfig, Settings
from viadeposit.errors import (
    DepositError,
    FundingError,
    IncompleteWitness,
    InvalidDepositParameters,
    MalformedSignedStructure,
    ProviderError,
    SigningFailed,
    SigningRejected,
    SubmissionRejected,
)
from viadeposit.finalizer import TransactionFinalizer
from viadeposit.models import FinalizedTransaction, NetworkType, OwnedAddress, UnspentOutput
from viadeposit.opreturn import decode_op_return, encode_op_return
from viadeposit.pipeline import DepositPipeline, DepositResult, DepositState
from viadeposit.psbt import Psbt, PsbtDecodeError
from viadeposit.selection import select_utxo
from viadeposit.signer import (
    CallbackSigner,
    Cancelled,
    ExternalSigner,
    Failed,
    Signed,
    SignerResult,
    SigningCoordinator,
    SigningRequest,
)

__all__ = [
    "CallbackSigner",
    "Cancelled",
    "DepositConfig",
    "DepositError",
    "DepositPipeline",
    "DepositPsbtBuilder",
    "DepositResult",
    "DepositState",
    "ExternalSigner",
    "Failed",
    "FinalizedTransaction",
    "FundingError",
    "IncompleteWitness",
    "InvalidDepositParameters",
    "MalformedSignedStructure",
    "NetworkType",
    "OwnedAddress",
    "ProviderError",
    "Psbt",
    "PsbtDecodeError",
    "Settings",
    "Signed",
    "SignerResult",
    "SigningCoordinator",
    "SigningFailed",
    "SigningRejected",
    "SigningRequest",
    "SubmissionRejected",
    "TransactionFinalizer",
    "UnspentOutput",
    "build_deposit_psbt",
    "decode_op_return",
    "encode_op_return",
    "select_utxo",
]
