"""
Deposit pipeline errors.

Every stage raises a subclass of DepositError so the caller can tell the
failure kinds apart without inspecting messages.
"""

from __future__ import annotations


class DepositError(Exception):
    """Base class for all deposit pipeline failures."""


class FundingError(DepositError):
    """No spendable outputs are available for the address."""


class ProviderError(DepositError):
    """The UTXO provider could not be queried."""


class InvalidDepositParameters(DepositError, ValueError):
    """An address or public key cannot be used to build the deposit on this network."""


class SigningRejected(DepositError):
    """The external signer reports that the user cancelled the request."""


class SigningFailed(DepositError):
    """The external signer reports an internal or unknown error."""


class MalformedSignedStructure(DepositError):
    """The signed PSBT does not decode or does not match what was sent."""


class IncompleteWitness(DepositError):
    """An input lacks a usable signature, so the transaction cannot be finalized."""

    def __init__(self, input_index: int, reason: str):
        self.input_index = input_index
        self.reason = reason
        super().__init__(f"Input {input_index} has no usable witness: {reason}")


class SubmissionRejected(DepositError):
    """The broadcast target rejected the finalized transaction."""

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Broadcast rejected: {reason}")
