"""
Tests for UTXO selection.
"""

from __future__ import annotations

from collections.abc import Callable

import pytest

from viadeposit.errors import FundingError
from viadeposit.models import UnspentOutput
from viadeposit.selection import select_utxo


class TestSelectUtxo:
    def test_no_utxos(self) -> None:
        with pytest.raises(FundingError, match="fund your wallet"):
            select_utxo([], 1800)

    def test_first_utxo_wins(self, make_utxo: Callable[..., UnspentOutput]) -> None:
        """Provider order is kept, even when a later UTXO is larger."""
        first = make_utxo(5000, vout=0)
        second = make_utxo(90_000, vout=1)

        assert select_utxo([first, second], 1800) is first

    def test_exact_amount(self, make_utxo: Callable[..., UnspentOutput]) -> None:
        utxo = make_utxo(1800)
        assert select_utxo([utxo], 1800) is utxo

    def test_insufficient_value_still_selected(
        self, make_utxo: Callable[..., UnspentOutput]
    ) -> None:
        """No sufficiency check: a small UTXO is returned and the build decides."""
        utxo = make_utxo(1000)
        assert select_utxo([utxo], 1800) is utxo
