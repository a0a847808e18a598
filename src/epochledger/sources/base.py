"""
epochledger/sources/base.py

Weight source protocol.

A weight source is a stateless policy. The distributor owns one packed
integer word per account; the source decodes it, computes the account's
weight for an epoch and encodes the result of balance-changing events.

compute_weight() must be pure so a distributor can re-derive the weight of
any historical or current epoch from the stored word alone.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

from ..epoch import EpochClock
from ..exceptions import ArithmeticStateError
from ..packing import BitLayout

logger = logging.getLogger("epochledger.sources")


class WeightSource(ABC):
    """Base class of every weighting policy."""

    name = "abstract"
    layout: BitLayout

    def __init__(self, clock: Optional[EpochClock] = None):
        self.clock = clock

    @abstractmethod
    def compute_weight(self, account: str, packed_state: int, epoch: int) -> int:
        """Weight of `account` in `epoch` given its packed state."""
        ...

    @abstractmethod
    def on_increase(self, packed_state: int, amount: int, timestamp: int, **params: Any) -> int:
        """Return the packed state after `amount` was added at `timestamp`."""
        ...

    @abstractmethod
    def on_decrease(self, packed_state: int, amount: int, timestamp: int, **params: Any) -> int:
        """Return the packed state after `amount` was removed at `timestamp`."""
        ...

    def balance(self, packed_state: int) -> int:
        """Underlying asset amount represented by a packed state."""
        return self.layout.unpack(packed_state)[0]

    def is_invalidated(self, account: str, packed_state: int) -> bool:
        """True when the position was closed outside of this ledger."""
        return False

    def describe(self, packed_state: int) -> Dict[str, int]:
        return self.layout.unpack_dict(packed_state)

    def _require_clock(self) -> EpochClock:
        if self.clock is None:
            raise ValueError(f"{type(self).__name__} requires an EpochClock")
        return self.clock

    @staticmethod
    def _decrease(balance: int, amount: int) -> int:
        if amount > balance:
            raise ArithmeticStateError(f"Balance underflow: {balance} - {amount}")
        return balance - amount

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.layout!r})"


class BalanceWeightSource(WeightSource):
    """Plain stake: weight equals balance in every epoch."""

    name = "balance"
    layout = BitLayout([("balance", 256)])

    def compute_weight(self, account: str, packed_state: int, epoch: int) -> int:
        return packed_state

    def on_increase(self, packed_state: int, amount: int, timestamp: int, **params: Any) -> int:
        return self.layout.pack_values(packed_state + amount)

    def on_decrease(self, packed_state: int, amount: int, timestamp: int, **params: Any) -> int:
        return self._decrease(packed_state, amount)
