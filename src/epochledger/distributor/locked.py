"""
epochledger/distributor/locked.py

Distributor for locked positions migrated from a voting escrow.

An account's lock, as recorded by a VotingEscrowSnapshot, becomes a
decaying-lock-boost position with migrate(). Anyone may migrate on behalf
of an account; the position always comes from the subject account's own
lock. Positions whose lock was exited early can be reported, which zeroes
the weight and forwards the accrued reward.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from ..assets import AssetLedger
from ..auth import Authority
from ..config import MAX_SYNC_EPOCHS, DistributorConfig
from ..epoch import EpochClock
from ..exceptions import PreconditionError
from ..journal import Journal, atomic
from ..sources.lock_boost import DecayingLockBoostSource
from .stream import ComponentDistributor, DistributorState

logger = logging.getLogger("epochledger.distributor.locked")


@dataclass
class LockedDistributorState(DistributorState):
    migrated: Dict[str, bool] = field(default_factory=dict)

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["migrated"] = dict(self.migrated)
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "LockedDistributorState":
        return cls(
            migrated={k: bool(v) for k, v in data.get("migrated", {}).items()},
            **cls._fields_from_dict(data),
        )


class LockedPositionDistributor(ComponentDistributor):
    """Component distributor over snapshotted voting-escrow locks."""

    state_class = LockedDistributorState

    def __init__(
        self,
        address: str,
        clock: EpochClock,
        asset: AssetLedger,
        source: DecayingLockBoostSource,
        authority: Authority,
        upstream: Any = None,
        config: Optional[DistributorConfig] = None,
        max_sync_epochs: int = MAX_SYNC_EPOCHS,
        journal: Optional[Journal] = None,
    ):
        if source.snapshot is None:
            raise ValueError("LockedPositionDistributor needs a source with a snapshot")
        super().__init__(
            address, clock, asset, source, authority,
            upstream=upstream, config=config, max_sync_epochs=max_sync_epochs, journal=journal,
        )

    def is_migrated(self, account: str) -> bool:
        return self._state.migrated.get(account, False)

    @atomic
    def migrate(self, account: str, caller: Optional[str] = None) -> int:
        """
        Create the account's position from its snapshotted lock.

        Args:
            account: Account whose lock is migrated
            caller: Who submitted the migration (any account)

        Returns:
            The account's weight in the current epoch
        """
        if self.is_migrated(account):
            raise PreconditionError(f"{account} was already migrated")
        lock = self.source.snapshot.locked(account)
        if lock.amount == 0:
            raise PreconditionError(f"{account} has no valid lock to migrate")

        now = self.clock.now()
        current = self._require_sync(now)
        unlock_epoch = self.clock.first_open_epoch(lock.unlock_time)
        rec = self._checkpoint(account, current)
        new_state = self.source.on_increase(
            rec.state, lock.amount, now,
            boost_epoch=lock.boost_epoch, unlock_epoch=unlock_epoch,
        )
        self._apply_state(account, rec, new_state, current)
        self._state.migrated[account] = True
        logger.info(f"{self.address}: migrated lock of {account} ({lock.amount}) by {caller or account}")
        return self.source.compute_weight(account, new_state, current)
