"""
epochledger/sources/multi_bucket.py

Multi-bucket boosted balance.

Three independent balances share one word. Each bucket is scaled by its
weight fraction (the fractions sum to one) and the combined balance is
boosted by a factor that decays linearly from 2x to 1x over
`boost_epochs` epochs after `boost_start_epoch`:

    elapsed = min(max(epoch - start, 0), D)
    weight  = sum(b_i * w_i) * (2 * D - elapsed) // (sum(w) * D)

Packed state: three 85-bit balances.
"""

from typing import Any, Optional, Sequence

from ..config import DEFAULT_BOOST_EPOCHS, DEFAULT_BUCKET_WEIGHTS
from ..epoch import EpochClock
from ..packing import BitLayout
from .base import WeightSource

BUCKET_BITS = 85


class MultiBucketBoostSource(WeightSource):
    """Weighted buckets with a decaying 2x boost."""

    name = "multi_bucket"
    layout = BitLayout([(f"bucket{i}", BUCKET_BITS) for i in range(3)])

    def __init__(
        self,
        clock: Optional[EpochClock] = None,
        bucket_weights: Sequence[int] = DEFAULT_BUCKET_WEIGHTS,
        boost_epochs: int = DEFAULT_BOOST_EPOCHS,
        boost_start_epoch: int = 0,
    ):
        super().__init__(clock)
        if len(bucket_weights) != len(self.layout.widths):
            raise ValueError(f"Expected {len(self.layout.widths)} bucket weights")
        if any(w < 0 for w in bucket_weights) or sum(bucket_weights) == 0:
            raise ValueError(f"Invalid bucket weights: {bucket_weights}")
        if boost_epochs <= 0:
            raise ValueError(f"boost_epochs must be positive, got {boost_epochs}")
        self.bucket_weights = tuple(bucket_weights)
        self.boost_epochs = boost_epochs
        self.boost_start_epoch = boost_start_epoch

    def boost_numerator(self, epoch: int) -> int:
        """2*D at the start of the boost window, D after it."""
        elapsed = min(max(epoch - self.boost_start_epoch, 0), self.boost_epochs)
        return 2 * self.boost_epochs - elapsed

    def compute_weight(self, account: str, packed_state: int, epoch: int) -> int:
        balances = self.layout.unpack(packed_state)
        combined = sum(b * w for b, w in zip(balances, self.bucket_weights))
        if combined == 0:
            return 0
        return combined * self.boost_numerator(epoch) // (sum(self.bucket_weights) * self.boost_epochs)

    def _bucket_index(self, bucket: Any) -> int:
        if isinstance(bucket, str):
            if bucket not in self.layout.names:
                raise ValueError(f"Unknown bucket {bucket!r}")
            return self.layout.names.index(bucket)
        if not 0 <= bucket < len(self.layout.widths):
            raise ValueError(f"Unknown bucket {bucket!r}")
        return bucket

    def on_increase(self, packed_state: int, amount: int, timestamp: int, bucket: Any = 0, **params: Any) -> int:
        balances = list(self.layout.unpack(packed_state))
        i = self._bucket_index(bucket)
        balances[i] += amount
        return self.layout.pack_values(*balances)

    def on_decrease(self, packed_state: int, amount: int, timestamp: int, bucket: Any = 0, **params: Any) -> int:
        balances = list(self.layout.unpack(packed_state))
        i = self._bucket_index(bucket)
        balances[i] = self._decrease(balances[i], amount)
        return self.layout.pack_values(*balances)

    def balance(self, packed_state: int) -> int:
        return sum(self.layout.unpack(packed_state))
