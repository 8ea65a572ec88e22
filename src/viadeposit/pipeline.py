"""
VIA bridge deposit pipeline.

Runs one deposit attempt end to end:
1. Fetch UTXOs for the spender's address
2. Select the funding UTXO
3. Build the unsigned PSBT (bridge output, OP_RETURN receiver id, change)
4. Ask the external signer for a signature
5. Finalize the signed PSBT into a raw transaction
6. Broadcast it once

Stages run strictly in order and the first failure ends the attempt.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from loguru import logger

from viadeposit.backends.base import DepositBackend
from viadeposit.builder import build_deposit_psbt
from viadeposit.config import DepositConfig
from viadeposit.errors import DepositError
from viadeposit.finalizer import TransactionFinalizer
from viadeposit.models import OwnedAddress
from viadeposit.selection import select_utxo
from viadeposit.signer import ExternalSigner, SigningCoordinator


class DepositState(str, Enum):
    """Deposit pipeline stages."""

    IDLE = "idle"
    FETCHING_UTXOS = "fetching_utxos"
    SELECTING = "selecting"
    BUILDING = "building"
    SIGNING = "signing"
    FINALIZING = "finalizing"
    BROADCASTING = "broadcasting"
    COMPLETE = "complete"
    FAILED = "failed"


@dataclass(frozen=True)
class DepositResult:
    """Terminal outcome of one deposit attempt: either a txid or an error."""

    state: DepositState
    txid: str | None = None
    explorer_link: str | None = None
    error: DepositError | None = None
    failed_stage: DepositState | None = None

    @property
    def success(self) -> bool:
        return self.error is None and self.txid is not None


class DepositPipeline:
    """
    Orchestrates a single bridge deposit.

    Holds no per-deposit state between runs; every call to run() builds its
    own draft and PSBT.
    """

    def __init__(
        self,
        config: DepositConfig,
        backend: DepositBackend,
        signer: ExternalSigner,
    ):
        """
        Initialize the pipeline.

        Args:
            config: Deployment parameters (bridge, amount, fee, receiver id, network)
            backend: UTXO provider and broadcast service
            signer: External signer holding the spender's key
        """
        self.config = config
        self.backend = backend
        self.coordinator = SigningCoordinator(signer, config.network, config.signing_message)
        self.finalizer = TransactionFinalizer()

    async def run(self, owner: OwnedAddress) -> DepositResult:
        """
        Execute the deposit for `owner`.

        Never raises DepositError: failures are reported in the result.
        """
        stage = DepositState.IDLE
        logger.info(
            f"Starting VIA bridge deposit of {self.config.amount_sats:,} sats "
            f"from {owner.address} ({self.config.network.value})"
        )

        try:
            stage = DepositState.FETCHING_UTXOS
            utxos = await self.backend.get_utxos(owner.address)

            stage = DepositState.SELECTING
            utxo = select_utxo(utxos, self.config.required_total)
            logger.info(f"Selected UTXO {utxo.outpoint} ({utxo.value:,} sats)")

            stage = DepositState.BUILDING
            unsigned = build_deposit_psbt(utxo, owner, self.config)
            logger.info(f"PSBT created ({len(unsigned.tx.outputs)} outputs)")

            stage = DepositState.SIGNING
            signing_indexes = list(range(len(unsigned.inputs)))
            signed_b64 = await self.coordinator.request_signature(
                unsigned.to_base64(), owner.address, signing_indexes
            )

            stage = DepositState.FINALIZING
            finalized = self.finalizer.finalize(signed_b64, unsigned, signing_indexes)

            stage = DepositState.BROADCASTING
            txid = await self.backend.broadcast_transaction(finalized.hex)

        except DepositError as e:
            logger.error(f"Deposit failed during {stage.value}: {e}")
            return DepositResult(state=DepositState.FAILED, error=e, failed_stage=stage)

        if txid != finalized.txid:
            logger.warning(f"Broadcast returned txid {txid}, computed {finalized.txid}")

        logger.info(f"Transaction broadcasted: {txid}")
        return DepositResult(
            state=DepositState.COMPLETE,
            txid=txid,
            explorer_link=self.config.explorer_link(txid),
        )
