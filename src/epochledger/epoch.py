"""
epochledger/epoch.py

Epoch clock: wall-clock time to a monotonic epoch index.

    epoch(ts) = (ts - genesis) // epoch_length

Measuring time before genesis is refused with BeforeGenesisError. Operations
that only schedule something for the future (reward deposits, registry
setup) use first_open_epoch(), which is 0 before genesis.
"""

import time
from typing import Callable, Optional

from .config import EPOCH_LENGTH
from .exceptions import BeforeGenesisError


class ManualTime:
    """
    Settable time source for tests and simulations.

    Usage:
        now = ManualTime(genesis)
        clock = EpochClock(genesis, time_source=now)
        now.advance(EPOCH_LENGTH // 2)
    """

    def __init__(self, timestamp: int = 0):
        self.timestamp = int(timestamp)

    def __call__(self) -> int:
        return self.timestamp

    def set(self, timestamp: int) -> None:
        if timestamp < self.timestamp:
            raise ValueError(f"Time cannot go backwards: {timestamp} < {self.timestamp}")
        self.timestamp = int(timestamp)

    def advance(self, seconds: int) -> int:
        self.set(self.timestamp + seconds)
        return self.timestamp


class EpochClock:
    """Fixed genesis and epoch length; both immutable after construction."""

    def __init__(
        self,
        genesis: int,
        epoch_length: int = EPOCH_LENGTH,
        time_source: Callable[[], float] = time.time,
    ):
        if genesis < 0:
            raise ValueError(f"genesis must be non-negative, got {genesis}")
        if epoch_length <= 0:
            raise ValueError(f"epoch_length must be positive, got {epoch_length}")
        self._genesis = int(genesis)
        self._epoch_length = int(epoch_length)
        self._time_source = time_source

    @property
    def genesis(self) -> int:
        return self._genesis

    @property
    def epoch_length(self) -> int:
        return self._epoch_length

    def now(self) -> int:
        return int(self._time_source())

    def has_started(self, timestamp: Optional[int] = None) -> bool:
        timestamp = self.now() if timestamp is None else timestamp
        return timestamp >= self._genesis

    def offset(self, timestamp: Optional[int] = None) -> int:
        """Seconds elapsed since genesis."""
        timestamp = self.now() if timestamp is None else timestamp
        if timestamp < self._genesis:
            raise BeforeGenesisError(
                f"Timestamp {timestamp} is before genesis {self._genesis}"
            )
        return timestamp - self._genesis

    def epoch(self, timestamp: Optional[int] = None) -> int:
        return self.offset(timestamp) // self._epoch_length

    def first_open_epoch(self, timestamp: Optional[int] = None) -> int:
        """Earliest epoch that is not in the past (0 before genesis)."""
        timestamp = self.now() if timestamp is None else timestamp
        if timestamp < self._genesis:
            return 0
        return self.epoch(timestamp)

    def epoch_start(self, epoch: int) -> int:
        return self._genesis + epoch * self._epoch_length

    def epoch_end(self, epoch: int) -> int:
        return self.epoch_start(epoch + 1)

    def elapsed_in_epoch(self, timestamp: Optional[int] = None) -> int:
        return self.offset(timestamp) % self._epoch_length

    def __repr__(self) -> str:
        return f"EpochClock(genesis={self._genesis}, epoch_length={self._epoch_length})"
