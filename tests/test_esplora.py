"""
Tests for the Esplora UTXO provider and broadcast backend.
"""

from __future__ import annotations

from collections.abc import Callable

import httpx
import pytest

from viadeposit.backends.esplora import EsploraBackend
from viadeposit.errors import ProviderError, SubmissionRejected
from viadeposit.models import UnspentOutput

BASE_URL = "https://blockstream.info/testnet/api"
ADDRESS = "tb1qw508d6qejxtdg4y5r3zarvary0c5xw7kxpjzsx"
TXID = "7b1eabe0209b1fe794124575ef807057c77ada2138ae4fa8d6c4de0398a14f3f"


def make_backend(handler: Callable[[httpx.Request], httpx.Response]) -> EsploraBackend:
    return EsploraBackend(BASE_URL + "/", transport=httpx.MockTransport(handler))


class TestGetUtxos:
    @pytest.mark.asyncio
    async def test_parses_utxos_in_order(self) -> None:
        requests: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(
                200,
                json=[
                    {
                        "txid": TXID,
                        "vout": 1,
                        "value": 5000,
                        "status": {"confirmed": True, "block_height": 2500000},
                    },
                    {"txid": "aa" * 32, "vout": 0, "value": 90000, "status": {"confirmed": False}},
                ],
            )

        backend = make_backend(handler)
        utxos = await backend.get_utxos(ADDRESS)
        await backend.close()

        assert str(requests[0].url) == f"{BASE_URL}/address/{ADDRESS}/utxo"
        assert utxos == [
            UnspentOutput(txid=TXID, vout=1, value=5000, address=ADDRESS),
            UnspentOutput(txid="aa" * 32, vout=0, value=90000, address=ADDRESS),
        ]

    @pytest.mark.asyncio
    async def test_empty(self) -> None:
        backend = make_backend(lambda request: httpx.Response(200, json=[]))
        assert await backend.get_utxos(ADDRESS) == []
        await backend.close()

    @pytest.mark.asyncio
    async def test_http_error(self) -> None:
        backend = make_backend(lambda request: httpx.Response(500, text="oops"))
        with pytest.raises(ProviderError, match="Failed to fetch UTXOs"):
            await backend.get_utxos(ADDRESS)
        await backend.close()

    @pytest.mark.asyncio
    async def test_connection_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        backend = make_backend(handler)
        with pytest.raises(ProviderError):
            await backend.get_utxos(ADDRESS)
        await backend.close()

    @pytest.mark.asyncio
    async def test_invalid_json(self) -> None:
        backend = make_backend(lambda request: httpx.Response(200, text="<html>"))
        with pytest.raises(ProviderError, match="Invalid UTXO response"):
            await backend.get_utxos(ADDRESS)
        await backend.close()

    @pytest.mark.asyncio
    async def test_invalid_entry(self) -> None:
        backend = make_backend(lambda request: httpx.Response(200, json=[{"txid": TXID}]))
        with pytest.raises(ProviderError, match="Invalid UTXO entry"):
            await backend.get_utxos(ADDRESS)
        await backend.close()

    @pytest.mark.parametrize(
        "entry",
        [
            {"txid": TXID, "vout": 0, "value": 5000.7},
            {"txid": TXID, "vout": 0, "value": "5000"},
            {"txid": TXID, "vout": 0, "value": True},
            {"txid": TXID, "vout": 0, "value": -1},
            {"txid": TXID, "vout": 1.0, "value": 5000},
            {"txid": "zz" * 32, "vout": 0, "value": 5000},
            {"txid": TXID[:-2], "vout": 0, "value": 5000},
        ],
    )
    @pytest.mark.asyncio
    async def test_rejects_non_integer_or_malformed_fields(self, entry: dict) -> None:
        """Amounts are never coerced: a float value is an error, not a truncation."""
        backend = make_backend(lambda request: httpx.Response(200, json=[entry]))
        with pytest.raises(ProviderError, match="Invalid UTXO entry"):
            await backend.get_utxos(ADDRESS)
        await backend.close()

    @pytest.mark.asyncio
    async def test_non_list_response(self) -> None:
        backend = make_backend(lambda request: httpx.Response(200, json={"error": "nope"}))
        with pytest.raises(ProviderError, match="expected a list"):
            await backend.get_utxos(ADDRESS)
        await backend.close()


class TestBroadcastTransaction:
    @pytest.mark.asyncio
    async def test_success(self) -> None:
        requests: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(200, text=TXID + "\n")

        backend = make_backend(handler)
        txid = await backend.broadcast_transaction("02000000ABCD")
        await backend.close()

        assert txid == TXID
        assert requests[0].method == "POST"
        assert str(requests[0].url) == f"{BASE_URL}/tx"
        assert requests[0].headers["content-type"] == "text/plain"
        assert requests[0].content == b"02000000abcd"

    @pytest.mark.asyncio
    async def test_single_attempt_on_rejection(self) -> None:
        calls = 0

        def handler(request: httpx.Request) -> httpx.Response:
            nonlocal calls
            calls += 1
            return httpx.Response(
                400, text="sendrawtransaction RPC error: min relay fee not met"
            )

        backend = make_backend(handler)
        with pytest.raises(SubmissionRejected) as exc_info:
            await backend.broadcast_transaction("0200")
        await backend.close()

        assert calls == 1
        assert "min relay fee not met" in exc_info.value.reason

    @pytest.mark.asyncio
    async def test_rejection_without_body(self) -> None:
        backend = make_backend(lambda request: httpx.Response(503))
        with pytest.raises(SubmissionRejected, match="HTTP 503"):
            await backend.broadcast_transaction("0200")
        await backend.close()

    @pytest.mark.asyncio
    async def test_network_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectTimeout("timed out", request=request)

        backend = make_backend(handler)
        with pytest.raises(SubmissionRejected, match="network error"):
            await backend.broadcast_transaction("0200")
        await backend.close()
