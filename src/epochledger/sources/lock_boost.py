"""
epochledger/sources/lock_boost.py

Decaying lock boost weight and the voting-escrow snapshot it can be
checked against.

A locked position earns its principal plus a boost that decays by one
slope per epoch until either the boost window or the lock runs out:

    slope  = amount // max_lock_epochs
    weight = amount + slope * min(max(boost_epoch - epoch, 0), unlock_epoch - epoch)

and nothing once epoch >= unlock_epoch. The boost term is clamped at zero
after the boost window ends.

Packed state: amount (128 bits) | boost_epoch (64 bits) | unlock_epoch (64 bits).

Usage:
    snapshot = VotingEscrowSnapshot(escrow, authority, journal=journal)
    snapshot.set_snapshot("alice", 10**12, 8, unlock_time, caller="management")
    source = DecayingLockBoostSource(clock, snapshot=snapshot)
"""

import logging
from abc import ABC, abstractmethod
from collections import namedtuple
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from ..auth import Authority
from ..config import MAX_LOCK_EPOCHS
from ..epoch import EpochClock
from ..exceptions import PreconditionError
from ..fixedpoint import check_uint
from ..journal import Journal, Stateful, atomic
from ..packing import BitLayout
from .base import WeightSource

logger = logging.getLogger("epochledger.sources.lock_boost")


LockedBalance = namedtuple("LockedBalance", ["amount", "end"])
SnapshotLock = namedtuple("SnapshotLock", ["amount", "boost_epoch", "unlock_time"])

EMPTY_LOCK = SnapshotLock(0, 0, 0)


# ============================================================================
# VOTING ESCROW
# ============================================================================

class VotingEscrow(ABC):
    """Live lock positions held outside the ledger."""

    @abstractmethod
    def locked(self, account: str) -> LockedBalance:
        ...


@dataclass
class SnapshotState:
    """Admin-recorded locks, keyed by account."""
    entries: Dict[str, SnapshotLock] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {"entries": {k: list(v) for k, v in self.entries.items()}}

    @classmethod
    def from_dict(cls, data: dict) -> "SnapshotState":
        return cls(entries={
            k: SnapshotLock(*(int(x) for x in v))
            for k, v in data.get("entries", {}).items()
        })


class VotingEscrowSnapshot(Stateful):
    """
    Recorded lock positions that stay valid only while the live lock holds.

    locked() returns the recorded (amount, boost_epoch, unlock_time) as long
    as the escrow still locks at least that amount until at least that
    time. An early exit, or a replacement lock that is smaller or shorter,
    makes it return zeros.
    """

    def __init__(
        self,
        escrow: VotingEscrow,
        authority: Authority,
        journal: Optional[Journal] = None,
    ):
        self.escrow = escrow
        self.authority = authority
        self._state = SnapshotState()
        super().__init__(journal)

    def snapshot(self, account: str) -> SnapshotLock:
        return self._state.entries.get(account, EMPTY_LOCK)

    @atomic
    def set_snapshot(
        self,
        account: str,
        amount: int,
        boost_epoch: int,
        unlock_time: int,
        caller: str,
    ) -> None:
        self.authority.require(caller)
        check_uint(amount, "snapshot amount")
        if boost_epoch < 0 or unlock_time < 0:
            raise ValueError("boost_epoch and unlock_time must be non-negative")
        self._state.entries[account] = SnapshotLock(amount, boost_epoch, unlock_time)
        logger.info(f"Snapshot set for {account}: amount={amount} boost_epoch={boost_epoch} unlock={unlock_time}")

    def locked(self, account: str) -> SnapshotLock:
        recorded = self.snapshot(account)
        if recorded.amount == 0:
            return EMPTY_LOCK
        live = self.escrow.locked(account)
        if live.amount < recorded.amount or live.end < recorded.unlock_time:
            return EMPTY_LOCK
        return recorded


# ============================================================================
# WEIGHT SOURCE
# ============================================================================

class DecayingLockBoostSource(WeightSource):
    """Locked principal with a linearly decaying boost."""

    name = "lock_boost"
    layout = BitLayout([("amount", 128), ("boost_epoch", 64), ("unlock_epoch", 64)])

    def __init__(
        self,
        clock: EpochClock,
        max_lock_epochs: int = MAX_LOCK_EPOCHS,
        snapshot: Optional[VotingEscrowSnapshot] = None,
    ):
        super().__init__(clock)
        if max_lock_epochs <= 0:
            raise ValueError(f"max_lock_epochs must be positive, got {max_lock_epochs}")
        self.max_lock_epochs = max_lock_epochs
        self.snapshot = snapshot

    def slope(self, amount: int) -> int:
        return amount // self.max_lock_epochs

    def compute_weight(self, account: str, packed_state: int, epoch: int) -> int:
        amount, boost_epoch, unlock_epoch = self.layout.unpack(packed_state)
        if amount == 0 or epoch >= unlock_epoch:
            return 0
        remaining_boost = max(boost_epoch - epoch, 0)
        remaining_lock = unlock_epoch - epoch
        return amount + self.slope(amount) * min(remaining_boost, remaining_lock)

    def on_increase(
        self,
        packed_state: int,
        amount: int,
        timestamp: int,
        boost_epoch: Optional[int] = None,
        unlock_epoch: Optional[int] = None,
        **params: Any,
    ) -> int:
        old_amount, old_boost, old_unlock = self.layout.unpack(packed_state)
        boost = max(old_boost, boost_epoch or 0)
        unlock = max(old_unlock, unlock_epoch or 0)
        new_amount = old_amount + amount
        if new_amount == 0:
            return 0

        current = self._require_clock().epoch(timestamp)
        if unlock <= current:
            raise PreconditionError(f"Lock ends in epoch {unlock}, current epoch is {current}")
        if unlock - current > self.max_lock_epochs:
            raise PreconditionError(
                f"Lock of {unlock - current} epochs exceeds maximum of {self.max_lock_epochs}"
            )
        return self.layout.pack(amount=new_amount, boost_epoch=boost, unlock_epoch=unlock)

    def on_decrease(self, packed_state: int, amount: int, timestamp: int, **params: Any) -> int:
        old_amount, boost, unlock = self.layout.unpack(packed_state)
        new_amount = self._decrease(old_amount, amount)
        if new_amount == 0:
            return 0
        return self.layout.pack(amount=new_amount, boost_epoch=boost, unlock_epoch=unlock)

    def is_invalidated(self, account: str, packed_state: int) -> bool:
        if self.snapshot is None:
            return False
        amount, _, unlock_epoch = self.layout.unpack(packed_state)
        if amount == 0:
            return False
        # an expired lock already weighs nothing
        if self._require_clock().first_open_epoch() >= unlock_epoch:
            return False
        return self.snapshot.locked(account).amount < amount
