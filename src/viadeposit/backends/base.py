"""
Base interface for the UTXO provider and broadcast service.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from viadeposit.models import UnspentOutput


class DepositBackend(ABC):
    """
    Network data provider used by the deposit pipeline.

    Implementations perform a single request per call: no polling and no
    retries.
    """

    @abstractmethod
    async def get_utxos(self, address: str) -> list[UnspentOutput]:
        """Get UTXOs for the address, in provider order. Empty means no funds."""

    @abstractmethod
    async def broadcast_transaction(self, tx_hex: str) -> str:
        """Broadcast transaction, returns txid"""

    async def close(self) -> None:
        """Close backend connection"""
        pass
