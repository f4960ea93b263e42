"""UTXO selection strategies and the flat fee estimate."""

from __future__ import annotations

import math
from abc import ABC, abstractmethod
from typing import List, Sequence

from nuri.core import config
from nuri.core.exceptions import InsufficientFundsError
from nuri.wallet.chain_client import Utxo


def estimate_fee(fee_rate: float, vbytes: int = config.ESTIMATED_TX_VBYTES) -> int:
    """Flat fee in satoshis: ``fee_rate`` sat/vB times an assumed size, rounded up."""
    if fee_rate <= 0:
        raise ValueError("fee_rate must be positive")
    return math.ceil(fee_rate * vbytes)


class CoinSelector(ABC):
    """Chooses which UTXOs fund a payment."""

    @abstractmethod
    def select(self, utxos: Sequence[Utxo], target: int) -> List[Utxo]:
        """
        Return UTXOs whose total value is at least ``target``.

        Raises:
            InsufficientFundsError: All UTXOs together fall short.
        """
        pass


class GreedyAscendingSelector(CoinSelector):
    """
    Smallest-first accumulation.

    Deterministic, and sweeps small outputs first, but not fee-optimal: it can
    use more inputs than a single large UTXO would need.
    """

    def select(self, utxos: Sequence[Utxo], target: int) -> List[Utxo]:
        available = sum(utxo.value for utxo in utxos)
        if available < target:
            raise InsufficientFundsError(
                f"Insufficient funds: need {target} sats, have {available} sats",
                available=available,
                required=target,
                details={"available": available, "required": target},
            )

        selected: List[Utxo] = []
        total = 0
        for utxo in sorted(utxos, key=lambda u: (u.value, u.txid, u.vout)):
            selected.append(utxo)
            total += utxo.value
            if total >= target:
                break
        return selected
