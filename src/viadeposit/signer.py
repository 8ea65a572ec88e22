"""
External signer coordination.

The signer holds the keys. This module hands it the unsigned PSBT and waits
for exactly one outcome: signed, cancelled by the user, or failed.
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass

from loguru import logger
from pydantic import BaseModel, ConfigDict, Field

from viadeposit.constants import DEFAULT_SIGNING_MESSAGE
from viadeposit.errors import SigningFailed, SigningRejected
from viadeposit.models import NetworkType


class InputsToSign(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    address: str
    signing_indexes: list[int] = Field(..., alias="signingIndexes", min_length=1)


class SigningRequest(BaseModel):
    """Payload sent to the external signer (wallet `signTransaction` shape)."""

    model_config = ConfigDict(populate_by_name=True)

    network: NetworkType
    message: str = DEFAULT_SIGNING_MESSAGE
    psbt_base64: str = Field(..., alias="psbtBase64")
    inputs_to_sign: list[InputsToSign] = Field(..., alias="inputsToSign")
    # The pipeline always broadcasts itself
    broadcast: bool = False

    def to_payload(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)


@dataclass(frozen=True)
class Signed:
    psbt_base64: str


@dataclass(frozen=True)
class Cancelled:
    pass


@dataclass(frozen=True)
class Failed:
    reason: str


SignerResult = Signed | Cancelled | Failed


class ExternalSigner(ABC):
    """Signer process that owns the private keys."""

    @abstractmethod
    async def sign_psbt(self, request: SigningRequest) -> SignerResult:
        """Prompt for a signature and wait for the outcome."""


class CallbackSigner(ExternalSigner):
    """
    Adapter for signers that report completion through callbacks.

    Subclasses implement start_signing() and invoke exactly one of the
    callbacks when the user finishes. Callbacks may come from any thread;
    later invocations are ignored.
    """

    @abstractmethod
    def start_signing(
        self,
        request: SigningRequest,
        on_finish: Callable[[str], None],
        on_cancel: Callable[[], None],
        on_error: Callable[[str], None],
    ) -> None:
        """Begin the signing prompt."""

    async def sign_psbt(self, request: SigningRequest) -> SignerResult:
        loop = asyncio.get_running_loop()
        future: asyncio.Future[SignerResult] = loop.create_future()

        def resolve(result: SignerResult) -> None:
            def _set() -> None:
                if not future.done():
                    future.set_result(result)

            loop.call_soon_threadsafe(_set)

        self.start_signing(
            request,
            on_finish=lambda psbt_b64: resolve(Signed(psbt_b64)),
            on_cancel=lambda: resolve(Cancelled()),
            on_error=lambda reason: resolve(Failed(reason)),
        )
        return await future


class SigningCoordinator:
    """Sends the unsigned PSBT to the external signer and interprets the result."""

    def __init__(
        self,
        signer: ExternalSigner,
        network: NetworkType,
        message: str = DEFAULT_SIGNING_MESSAGE,
    ):
        self.signer = signer
        self.network = network
        self.message = message

    def build_request(
        self, psbt_base64: str, address: str, signing_indexes: list[int]
    ) -> SigningRequest:
        return SigningRequest(
            network=self.network,
            message=self.message,
            psbt_base64=psbt_base64,
            inputs_to_sign=[InputsToSign(address=address, signing_indexes=signing_indexes)],
            broadcast=False,
        )

    async def request_signature(
        self, psbt_base64: str, address: str, signing_indexes: list[int]
    ) -> str:
        """
        Ask the signer to sign the given inputs.

        No timeout is applied; the signer decides when the prompt ends.

        Returns:
            The signed PSBT (base64)

        Raises:
            SigningRejected: The user cancelled
            SigningFailed: The signer reported an error or crashed
        """
        request = self.build_request(psbt_base64, address, signing_indexes)
        logger.info(f"Requesting signature for inputs {signing_indexes} of {address}")

        try:
            result = await self.signer.sign_psbt(request)
        except (SigningRejected, SigningFailed):
            raise
        except Exception as e:
            raise SigningFailed(f"Signer error: {e}") from e

        if isinstance(result, Signed):
            logger.info("Signer returned signed PSBT")
            return result.psbt_base64
        if isinstance(result, Cancelled):
            raise SigningRejected("Signing request cancelled by user")
        if isinstance(result, Failed):
            raise SigningFailed(f"Signer failed: {result.reason}")

        raise SigningFailed(f"Unexpected signer result: {result!r}")
