"""
Esplora REST API backend (Blockstream / mempool.space).

Endpoints used:
- GET  {base}/address/{address}/utxo
- POST {base}/tx  (raw transaction hex as text/plain, returns the txid)
"""

from __future__ import annotations

from typing import Any

import httpx
from loguru import logger

from viadeposit.backends.base import DepositBackend
from viadeposit.errors import ProviderError, SubmissionRejected
from viadeposit.models import UnspentOutput


class EsploraBackend(DepositBackend):
    def __init__(
        self,
        base_url: str = "https://blockstream.info/testnet/api",
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """
        Initialize Esplora backend.

        Args:
            base_url: Esplora API root, e.g. https://blockstream.info/testnet/api
            timeout: Request timeout in seconds
            transport: Optional httpx transport (used by tests)
        """
        self.base_url = base_url.rstrip("/")
        self.client = httpx.AsyncClient(timeout=timeout, transport=transport)

    async def get_utxos(self, address: str) -> list[UnspentOutput]:
        url = f"{self.base_url}/address/{address}/utxo"
        try:
            response = await self.client.get(url)
            response.raise_for_status()
            data: Any = response.json()
        except httpx.HTTPError as e:
            logger.error(f"Failed to fetch UTXOs for {address}: {e}")
            raise ProviderError(f"Failed to fetch UTXOs for {address}: {e}") from e
        except ValueError as e:
            raise ProviderError(f"Invalid UTXO response for {address}: {e}") from e

        if not isinstance(data, list):
            raise ProviderError(f"Invalid UTXO response for {address}: expected a list")
        utxos = [_parse_utxo(item, address) for item in data]

        logger.debug(f"Found {len(utxos)} UTXOs for {address}")
        return utxos

    async def broadcast_transaction(self, tx_hex: str) -> str:
        """
        Submit a raw transaction once.

        Raises:
            SubmissionRejected: With the node's reason (fee, double-spend, policy) or
                the transport error
        """
        url = f"{self.base_url}/tx"
        try:
            response = await self.client.post(
                url, content=tx_hex.lower(), headers={"Content-Type": "text/plain"}
            )
        except httpx.HTTPError as e:
            logger.error(f"Failed to broadcast transaction: {e}")
            raise SubmissionRejected(f"network error: {e}") from e

        if response.is_error:
            reason = response.text.strip() or f"HTTP {response.status_code}"
            logger.error(f"Broadcast rejected ({response.status_code}): {reason}")
            raise SubmissionRejected(reason)

        txid = response.text.strip()
        logger.info(f"Broadcast transaction: {txid}")
        return txid

    async def close(self) -> None:
        await self.client.aclose()


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _parse_utxo(item: Any, address: str) -> UnspentOutput:
    """
    Validate one entry of the /utxo response.

    Amounts and indexes must be JSON integers; floats are never coerced.
    """
    if not isinstance(item, dict):
        raise ProviderError(f"Invalid UTXO entry for {address}: {item!r}")

    txid = item.get("txid")
    vout = item.get("vout")
    value = item.get("value")
    if not isinstance(txid, str) or len(txid) != 64:
        raise ProviderError(f"Invalid UTXO entry for {address}: bad txid {txid!r}")
    try:
        bytes.fromhex(txid)
    except ValueError as e:
        raise ProviderError(f"Invalid UTXO entry for {address}: bad txid {txid!r}") from e
    if not _is_int(vout) or vout < 0:
        raise ProviderError(f"Invalid UTXO entry for {address}: bad vout {vout!r}")
    if not _is_int(value) or value < 0:
        raise ProviderError(f"Invalid UTXO entry for {address}: bad value {value!r}")

    scriptpubkey = item.get("scriptpubkey", "")
    return UnspentOutput(
        txid=txid,
        vout=vout,
        value=value,
        address=address,
        scriptpubkey=scriptpubkey if isinstance(scriptpubkey, str) else "",
    )
