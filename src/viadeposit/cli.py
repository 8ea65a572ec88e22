"""
Command-line interface for VIA bridge deposits.
"""

from __future__ import annotations

import asyncio
import sys
from typing import Annotated

import typer
from loguru import logger

from viadeposit.address import scriptpubkey_to_address
from viadeposit.backends.esplora import EsploraBackend
from viadeposit.builder import build_deposit_psbt
from viadeposit.config import DepositConfig, get_settings
from viadeposit.errors import DepositError
from viadeposit.finalizer import TransactionFinalizer
from viadeposit.models import NetworkType, OwnedAddress, UnspentOutput
from viadeposit.opreturn import decode_op_return, is_op_return
from viadeposit.pipeline import DepositPipeline, DepositResult
from viadeposit.psbt import Psbt
from viadeposit.signer import Cancelled, ExternalSigner, Signed, SignerResult, SigningRequest

app = typer.Typer(
    name="via-deposit",
    help="VIA Bridge - deposit BTC from Bitcoin to the VIA network",
    add_completion=False,
)


def setup_logging(level: str) -> None:
    """Configure loguru logging."""
    logger.remove()
    logger.add(
        sys.stderr,
        level=level.upper(),
        format="<green>{time:HH:mm:ss}</green> | <level>{level: <8}</level> | {message}",
    )


class ConsoleSigner(ExternalSigner):
    """
    Signer that hands the PSBT to the user on the terminal.

    The user signs it with an external wallet and pastes the result back.
    An empty answer cancels the deposit.
    """

    def _prompt(self, request: SigningRequest) -> SignerResult:
        typer.echo(f"\n{request.message}")
        for entry in request.inputs_to_sign:
            typer.echo(f"Sign inputs {entry.signing_indexes} for {entry.address}")
        typer.echo(f"\nUnsigned PSBT ({request.network.value}):\n{request.psbt_base64}\n")
        answer = typer.prompt("Signed PSBT (leave empty to cancel)", default="", show_default=False)
        if not answer.strip():
            return Cancelled()
        return Signed(answer.strip())

    async def sign_psbt(self, request: SigningRequest) -> SignerResult:
        return await asyncio.to_thread(self._prompt, request)


def _build_config(
    network: str,
    bridge_address: str | None,
    receiver_id: str | None,
    amount: int | None,
    fee: int | None,
    esplora_url: str | None,
) -> DepositConfig:
    """Merge CLI options over VIA_* environment settings."""
    settings = get_settings()
    overrides = {
        "network": NetworkType(network),
        "bridge_address": bridge_address,
        "receiver_id": receiver_id,
        "amount_sats": amount,
        "fee_sats": fee,
        "esplora_url": esplora_url,
    }
    for name, value in overrides.items():
        if value is not None:
            setattr(settings, name, value)
    return settings.to_deposit_config()


def _describe_psbt(psbt: Psbt, network: NetworkType) -> None:
    for inp in psbt.tx.inputs:
        typer.echo(f"  input  {inp.outpoint}")
    for index, out in enumerate(psbt.tx.outputs):
        if is_op_return(out.script):
            target = f"OP_RETURN {decode_op_return(out.script).hex()}"
        else:
            target = scriptpubkey_to_address(out.script, network)
        typer.echo(f"  output {index}: {out.value:,} sats -> {target}")


NetworkOption = Annotated[
    str, typer.Option("--network", envvar="VIA_NETWORK", help="Bitcoin network")
]
BridgeOption = Annotated[
    str | None, typer.Option("--bridge-address", help="Bridge destination address")
]
ReceiverOption = Annotated[
    str | None, typer.Option("--receiver-id", help="L2 receiver address (hex)")
]
AmountOption = Annotated[int | None, typer.Option("--amount", "-a", help="Deposit amount in sats")]
FeeOption = Annotated[int | None, typer.Option("--fee", help="Transaction fee in sats")]
LogLevelOption = Annotated[
    str | None, typer.Option("--log-level", "-l", help="Log level (default: VIA_LOG_LEVEL)")
]


@app.command()
def deposit(
    address: Annotated[str, typer.Option("--address", help="Spender P2WPKH address")],
    pubkey: Annotated[str, typer.Option("--pubkey", help="Spender compressed public key (hex)")],
    network: NetworkOption = "testnet",
    bridge_address: BridgeOption = None,
    receiver_id: ReceiverOption = None,
    amount: AmountOption = None,
    fee: FeeOption = None,
    esplora_url: Annotated[
        str | None, typer.Option("--esplora-url", help="Esplora API URL")
    ] = None,
    log_level: LogLevelOption = None,
) -> None:
    """Build, sign (via the terminal), finalize and broadcast a deposit."""
    setup_logging(log_level or get_settings().log_level)

    try:
        config = _build_config(network, bridge_address, receiver_id, amount, fee, esplora_url)
    except ValueError as e:
        logger.error(f"Invalid configuration: {e}")
        raise typer.Exit(1)

    owner = OwnedAddress(address=address, public_key=pubkey)
    try:
        result = asyncio.run(_run_deposit(config, owner))
    except ValueError as e:
        logger.error(f"Cannot build deposit: {e}")
        raise typer.Exit(1)

    if not result.success:
        typer.echo(f"Deposit failed: {result.error}", err=True)
        raise typer.Exit(1)

    typer.echo(f"Transaction sent: {result.txid}")
    if result.explorer_link:
        typer.echo(f"View on block explorer: {result.explorer_link}")


async def _run_deposit(config: DepositConfig, owner: OwnedAddress) -> DepositResult:
    backend = EsploraBackend(config.esplora_url or "", timeout=config.request_timeout)
    try:
        pipeline = DepositPipeline(config, backend, ConsoleSigner())
        return await pipeline.run(owner)
    finally:
        await backend.close()


@app.command("build-psbt")
def build_psbt(
    address: Annotated[str, typer.Option("--address", help="Spender P2WPKH address")],
    pubkey: Annotated[str, typer.Option("--pubkey", help="Spender compressed public key (hex)")],
    txid: Annotated[str, typer.Option("--txid", help="Funding UTXO txid")],
    vout: Annotated[int, typer.Option("--vout", help="Funding UTXO output index")],
    value: Annotated[int, typer.Option("--value", help="Funding UTXO value in sats")],
    network: NetworkOption = "testnet",
    bridge_address: BridgeOption = None,
    receiver_id: ReceiverOption = None,
    amount: AmountOption = None,
    fee: FeeOption = None,
    log_level: LogLevelOption = None,
) -> None:
    """Print an unsigned deposit PSBT for a known UTXO, without network access."""
    setup_logging(log_level or get_settings().log_level)

    try:
        config = _build_config(network, bridge_address, receiver_id, amount, fee, None)
        owner = OwnedAddress(address=address, public_key=pubkey)
        utxo = UnspentOutput(txid=txid, vout=vout, value=value, address=address)
        psbt = build_deposit_psbt(utxo, owner, config)
    except ValueError as e:
        logger.error(str(e))
        raise typer.Exit(1)

    _describe_psbt(psbt, config.network)
    typer.echo(psbt.to_base64())


@app.command()
def finalize(
    unsigned: Annotated[str, typer.Option("--unsigned", help="Unsigned PSBT sent to the signer")],
    signed: Annotated[str, typer.Option("--signed", help="Signed PSBT returned by the signer")],
    broadcast: Annotated[
        bool, typer.Option("--broadcast", help="Broadcast the finalized transaction")
    ] = False,
    network: NetworkOption = "testnet",
    esplora_url: Annotated[
        str | None, typer.Option("--esplora-url", help="Esplora API URL")
    ] = None,
    log_level: LogLevelOption = None,
) -> None:
    """Finalize a signed deposit PSBT and optionally broadcast it."""
    setup_logging(log_level or get_settings().log_level)

    try:
        config = _build_config(network, None, None, None, None, esplora_url)
        sent = Psbt.from_base64(unsigned)
        finalized = TransactionFinalizer().finalize(signed, sent)
    except (ValueError, DepositError) as e:
        logger.error(str(e))
        raise typer.Exit(1)

    typer.echo(f"txid: {finalized.txid}")
    typer.echo(finalized.hex)

    if broadcast:
        try:
            txid = asyncio.run(_broadcast(config, finalized.hex))
        except DepositError as e:
            logger.error(str(e))
            raise typer.Exit(1)
        typer.echo(f"Transaction sent: {txid}")


async def _broadcast(config: DepositConfig, tx_hex: str) -> str:
    backend = EsploraBackend(config.esplora_url or "", timeout=config.request_timeout)
    try:
        return await backend.broadcast_transaction(tx_hex)
    finally:
        await backend.close()


def main() -> None:
    """Entry point."""
    app()


if __name__ == "__main__":
    main()
