"""
epochledger/distributor/chained.py

Sub-distributor fed by an account of a parent distributor.

A delegating contract holds a position in a parent ComponentDistributor
under `parent_account` and re-distributes what that position earns to its
own depositors. On every sync the chained distributor claims the
account's pending reward from the parent (it must be an approved claimer
there) and folds it into its own integral at once; the parent already
streamed it.
"""

import logging
from typing import Optional

from ..assets import AssetLedger
from ..auth import Authority
from ..config import MAX_SYNC_EPOCHS, DistributorConfig
from ..epoch import EpochClock
from ..journal import Journal
from ..sources.base import WeightSource
from .stream import ComponentDistributor

logger = logging.getLogger("epochledger.distributor.chained")


class ChainedDistributor(ComponentDistributor):
    """Distributor whose upstream is one account of a parent distributor."""

    def __init__(
        self,
        address: str,
        clock: EpochClock,
        asset: AssetLedger,
        source: WeightSource,
        authority: Authority,
        parent: ComponentDistributor,
        parent_account: Optional[str] = None,
        config: Optional[DistributorConfig] = None,
        max_sync_epochs: int = MAX_SYNC_EPOCHS,
        journal: Optional[Journal] = None,
    ):
        """
        Initialize the chained distributor.

        Args:
            parent: Distributor in which the delegated position is held
            parent_account: Account of the position in the parent
                (defaults to this distributor's address)
        """
        super().__init__(
            address, clock, asset, source, authority,
            upstream=None, config=config, max_sync_epochs=max_sync_epochs, journal=journal,
        )
        self.parent = parent
        self.parent_account = parent_account or address

    def _start_epoch(self, epoch: int) -> int:
        # no second stream
        return 0

    def _sync(self, now: int) -> bool:
        if not super()._sync(now):
            return False
        if not self.parent._sync(now):
            return False

        current = self.clock.epoch(now)
        amount = self.parent.claim(self.parent_account, caller=self.address, recipient=self.address)
        s = self._state
        s.total_received += amount
        amount += s.carry
        s.carry = 0
        if amount:
            self._fold(current, amount)
            logger.debug(f"{self.address}: folded {amount} from {self.parent.address}")
        return True
