"""
epochledger/sources/ramped.py

Ramped balance weight.

Weight grows linearly from 0 to the full balance over `ramp_length`
seconds after the position's balance-weighted deposit time:

    weight(e) = balance * min(max(epoch_start(e) - timestamp, 0), ramp) // ramp

Adding to a position moves the timestamp forward so that the weight at
the instant of the deposit stays the same, up to rounding:

    elapsed  = min(now - old_time, ramp)
    new_time = now - old_balance * elapsed // new_balance

The ledger measures weight at the start of each epoch, so the new timestamp
is also capped such that the weight credited for the current epoch never
drops:

    credited = min(epoch_start - old_time, ramp)
    new_time <= epoch_start - ceil(old_balance * credited / new_balance)

Packed state: balance (128 bits) | timestamp (128 bits).
"""

from typing import Any, Optional

from ..config import DEFAULT_RAMP_LENGTH
from ..epoch import EpochClock
from ..packing import BitLayout
from .base import WeightSource


class RampedBalanceSource(WeightSource):
    """Balance weight that ramps in over a fixed window."""

    name = "ramped"
    layout = BitLayout([("balance", 128), ("timestamp", 128)])

    def __init__(self, clock: EpochClock, ramp_length: int = DEFAULT_RAMP_LENGTH):
        super().__init__(clock)
        if ramp_length <= 0:
            raise ValueError(f"ramp_length must be positive, got {ramp_length}")
        self.ramp_length = ramp_length

    def weight_at(self, packed_state: int, timestamp: int) -> int:
        balance, started = self.layout.unpack(packed_state)
        if balance == 0:
            return 0
        elapsed = min(max(timestamp - started, 0), self.ramp_length)
        return balance * elapsed // self.ramp_length

    def compute_weight(self, account: str, packed_state: int, epoch: int) -> int:
        return self.weight_at(packed_state, self._require_clock().epoch_start(epoch))

    def on_increase(self, packed_state: int, amount: int, timestamp: int, **params: Any) -> int:
        old_balance, old_time = self.layout.unpack(packed_state)
        new_balance = old_balance + amount
        if new_balance == 0:
            return 0
        if old_balance == 0:
            new_time = timestamp
        else:
            elapsed = min(max(timestamp - old_time, 0), self.ramp_length)
            new_time = timestamp - old_balance * elapsed // new_balance
            clock = self._require_clock()
            start = clock.epoch_start(clock.epoch(timestamp))
            credited = min(max(start - old_time, 0), self.ramp_length)
            if credited:
                # round up so the current epoch's weight cannot fall
                kept = -(-old_balance * credited // new_balance)
                new_time = min(new_time, start - kept)
        return self.layout.pack(balance=new_balance, timestamp=new_time)

    def on_decrease(self, packed_state: int, amount: int, timestamp: int, **params: Any) -> int:
        balance, started = self.layout.unpack(packed_state)
        balance = self._decrease(balance, amount)
        if balance == 0:
            # no position
            return 0
        return self.layout.pack(balance=balance, timestamp=started)

    def ramp_end(self, packed_state: int) -> Optional[int]:
        """Timestamp at which the position reaches full weight."""
        balance, started = self.layout.unpack(packed_state)
        if balance == 0:
            return None
        return started + self.ramp_length
