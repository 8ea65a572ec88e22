"""
UTXO selection for deposits.
"""

from __future__ import annotations

from collections.abc import Sequence

from loguru import logger

from viadeposit.errors import FundingError
from viadeposit.models import UnspentOutput


def select_utxo(utxos: Sequence[UnspentOutput], required_total: int) -> UnspentOutput:
    """
    Pick the output that funds the deposit.

    The first UTXO reported by the provider is used as-is. Its value is not
    checked against `required_total`: an output that is too small only results
    in the change output being omitted when the transaction is built.

    Raises:
        FundingError: If there are no UTXOs at all
    """
    if not utxos:
        raise FundingError("No UTXOs found. Please fund your wallet before depositing")

    selected = utxos[0]
    logger.debug(f"Selected UTXO {selected.outpoint} ({selected.value:,} sats)")

    if selected.value < required_total:
        logger.warning(
            f"Selected UTXO {selected.outpoint} holds {selected.value:,} sats, "
            f"less than the required {required_total:,} sats"
        )

    return selected
