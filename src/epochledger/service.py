"""
epochledger/service.py

Async single-writer front end for a ledger.

All callers go through one trio.Lock, so ledger operations never
interleave even when many tasks share the ledger. An optional keeper task
finalizes epochs and advances every distributor stream in bounded steps,
yielding to other tasks between steps.

Usage:
    service = LedgerService(aggregator, [staking], keeper_interval=60)
    async with trio.open_nursery() as nursery:
        await service.start(nursery)
        await service.call(staking.deposit, "alice", amount, caller="vault")
        ...
        await service.stop()
"""

import logging
from typing import Any, Callable, List, Optional, Sequence

import trio

from .distributor.aggregator import EpochAggregator
from .distributor.stream import ComponentDistributor
from .exceptions import BeforeGenesisError, LedgerError

logger = logging.getLogger("epochledger.service")

DEFAULT_KEEPER_INTERVAL = 60.0  # seconds
MAX_CATCH_UP_ROUNDS = 1000


class LedgerService:
    """Serializes async access to one ledger and keeps it synced."""

    def __init__(
        self,
        aggregator: EpochAggregator,
        distributors: Sequence[ComponentDistributor] = (),
        keeper_interval: float = DEFAULT_KEEPER_INTERVAL,
    ):
        """
        Initialize the service.

        Args:
            aggregator: Aggregator to keep finalized
            distributors: Distributors whose streams the keeper advances
            keeper_interval: Seconds between keeper rounds
        """
        self.aggregator = aggregator
        self.distributors: List[ComponentDistributor] = list(distributors)
        self.keeper_interval = keeper_interval
        self._lock = trio.Lock()
        self._keeper_cancel_scope: Optional[trio.CancelScope] = None
        self._started = False
        self.rounds = 0

    @property
    def is_running(self) -> bool:
        return self._started

    async def call(self, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
        """Run one ledger operation under the service lock."""
        async with self._lock:
            return fn(*args, **kwargs)

    async def _catch_up(self, sync: Callable[[], bool], name: str) -> bool:
        for _ in range(MAX_CATCH_UP_ROUNDS):
            async with self._lock:
                done = sync()
            if done:
                return True
            # let other callers in between bounded steps
            await trio.sleep(0)
        logger.warning(f"{name} did not catch up after {MAX_CATCH_UP_ROUNDS} rounds")
        return False

    async def sync_all(self) -> bool:
        """Finalize the aggregator and advance every stream. True if all caught up."""
        ok = await self._catch_up(self.aggregator.sync, "aggregator")
        for distributor in self.distributors:
            ok = await self._catch_up(distributor.sync, distributor.address) and ok
        return ok

    # ========== Background Tasks ==========

    async def run_keeper(self, task_status=trio.TASK_STATUS_IGNORED) -> None:
        """
        Run the keeper loop in a nursery.

        Usage:
            async with trio.open_nursery() as nursery:
                await nursery.start(service.run_keeper)
        """
        self._keeper_cancel_scope = trio.CancelScope()
        task_status.started()

        with self._keeper_cancel_scope:
            await self._keeper_loop()

    async def _keeper_loop(self) -> None:
        logger.info("Ledger keeper started")
        try:
            while True:
                try:
                    await self.sync_all()
                    self.rounds += 1
                except BeforeGenesisError:
                    logger.debug("Keeper idle until genesis")
                except LedgerError as e:
                    logger.warning(f"Keeper round failed: {e}")
                await trio.sleep(self.keeper_interval)
        except trio.Cancelled:
            logger.info("Ledger keeper stopped")
            raise

    async def start(self, nursery: Optional[trio.Nursery] = None) -> bool:
        """
        Start the service.

        Args:
            nursery: Optional trio nursery for the keeper task

        Returns:
            True if started
        """
        if self._started:
            return True
        if nursery is not None:
            await nursery.start(self.run_keeper)
        self._started = True
        logger.info(f"Ledger service started ({len(self.distributors)} distributors)")
        return True

    async def stop(self) -> None:
        if not self._started:
            return
        if self._keeper_cancel_scope is not None:
            self._keeper_cancel_scope.cancel()
            self._keeper_cancel_scope = None
        self._started = False
        logger.info("Ledger service stopped")
