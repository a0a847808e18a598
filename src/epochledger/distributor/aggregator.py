"""
epochledger/distributor/aggregator.py

Epoch reward aggregator.

Accepts reward deposits for the current or a future epoch. Once an epoch
has ended it is finalized: every registered component reports its total
weight for that epoch, the optional pull source tops up the reward and

    reward_integral += reward * PRECISION // total_weight

is recorded as epoch_integral[epoch]. A component then claims

    weight * (epoch_integral[e] - epoch_integral[e - 1]) // PRECISION

for each finalized epoch, strictly in order. Reward of an epoch without
any weight rolls over to the next epoch.

Finalization is bounded to max_sync_epochs per call; sync() returns False
while the backlog is not cleared and must be called again.

Usage:
    aggregator = EpochAggregator("aggregator", clock, asset, authority, journal=journal)
    aggregator.add_component(distributor, caller="management")
    aggregator.deposit(0, 1_400 * UNIT, sender="alice")

    # after epoch 0 has ended
    aggregator.sync()
    epoch, weight, amount = aggregator.claim(distributor.address)
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from ..assets import AssetLedger, PullSource, safe_transfer, safe_transfer_from
from ..auth import Authority
from ..config import COMPONENTS_SENTINEL, MAX_NUM_COMPONENTS, MAX_SYNC_EPOCHS, PRECISION
from ..epoch import EpochClock
from ..exceptions import (
    EpochNotFinalizedError,
    NotSynchronizedError,
    PreconditionError,
    TransferFailedError,
    UnknownComponentError,
)
from ..fixedpoint import add, check_uint, from_integral, mul_div, to_integral
from ..journal import Journal, Stateful, atomic
from .registry import ComponentInfo, ComponentRegistry

logger = logging.getLogger("epochledger.distributor.aggregator")


def _int_keys(data: Dict[str, Any]) -> Dict[int, int]:
    return {int(k): int(v) for k, v in data.items()}


@dataclass
class AggregatorState:
    """Finalized epochs and the global reward integral."""
    last_epoch: int = 0                    # first epoch not yet finalized
    reward_integral: int = 0
    epoch_rewards: Dict[int, int] = field(default_factory=dict)
    epoch_total_weight: Dict[int, int] = field(default_factory=dict)
    epoch_weights: Dict[int, Dict[str, int]] = field(default_factory=dict)
    epoch_integral: Dict[int, int] = field(default_factory=dict)
    total_deposited: int = 0
    total_pulled: int = 0
    total_claimed: int = 0

    def to_dict(self) -> dict:
        return {
            "last_epoch": self.last_epoch,
            "reward_integral": self.reward_integral,
            "epoch_rewards": {str(k): v for k, v in self.epoch_rewards.items()},
            "epoch_total_weight": {str(k): v for k, v in self.epoch_total_weight.items()},
            "epoch_weights": {str(k): dict(v) for k, v in self.epoch_weights.items()},
            "epoch_integral": {str(k): v for k, v in self.epoch_integral.items()},
            "total_deposited": self.total_deposited,
            "total_pulled": self.total_pulled,
            "total_claimed": self.total_claimed,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "AggregatorState":
        return cls(
            last_epoch=int(data.get("last_epoch", 0)),
            reward_integral=int(data.get("reward_integral", 0)),
            epoch_rewards=_int_keys(data.get("epoch_rewards", {})),
            epoch_total_weight=_int_keys(data.get("epoch_total_weight", {})),
            epoch_weights={
                int(k): {cid: int(w) for cid, w in v.items()}
                for k, v in data.get("epoch_weights", {}).items()
            },
            epoch_integral=_int_keys(data.get("epoch_integral", {})),
            total_deposited=int(data.get("total_deposited", 0)),
            total_pulled=int(data.get("total_pulled", 0)),
            total_claimed=int(data.get("total_claimed", 0)),
        )


class EpochAggregator(Stateful):
    """Finalizes epochs across all registered components."""

    def __init__(
        self,
        address: str,
        clock: EpochClock,
        asset: AssetLedger,
        authority: Authority,
        pull: Optional[PullSource] = None,
        max_sync_epochs: int = MAX_SYNC_EPOCHS,
        max_components: int = MAX_NUM_COMPONENTS,
        journal: Optional[Journal] = None,
    ):
        """
        Initialize the aggregator.

        Args:
            address: Account holding deposited rewards on the asset ledger
            clock: Epoch clock shared by every ledger object
            asset: Reward asset ledger
            authority: Management capability for admin operations
            pull: Optional upstream asked for extra reward per epoch
            max_sync_epochs: Epochs finalized per sync call at most
            max_components: Registry capacity
            journal: Shared transaction journal
        """
        if max_sync_epochs <= 0:
            raise ValueError(f"max_sync_epochs must be positive, got {max_sync_epochs}")
        self.address = address
        self.clock = clock
        self.asset = asset
        self.authority = authority
        self.pull = pull
        self.max_sync_epochs = max_sync_epochs
        self._components: Dict[str, Any] = {}
        self._state = AggregatorState(last_epoch=clock.first_open_epoch())
        super().__init__(journal)
        self.registry = ComponentRegistry(max_components, journal=self.journal)

    # ========== Views ==========

    @property
    def genesis(self) -> int:
        return self.clock.genesis

    @property
    def last_epoch(self) -> int:
        return self._state.last_epoch

    @property
    def reward_integral(self) -> int:
        return self._state.reward_integral

    @property
    def num_components(self) -> int:
        return len(self.registry)

    def epoch_rewards(self, epoch: int) -> int:
        return self._state.epoch_rewards.get(epoch, 0)

    def epoch_total_weight(self, epoch: int) -> int:
        return self._state.epoch_total_weight.get(epoch, 0)

    def epoch_weight(self, component_id: str, epoch: int) -> int:
        return self._state.epoch_weights.get(epoch, {}).get(component_id, 0)

    def epoch_integral(self, epoch: int) -> int:
        return self._state.epoch_integral.get(epoch, 0)

    def component_info(self, component_id: str) -> ComponentInfo:
        return self.registry.info(component_id)

    def component_cursor(self, component_id: str) -> Optional[int]:
        """Next epoch the component may claim, None if never registered."""
        if not self.registry.is_known(component_id):
            return None
        return self.registry.record(component_id).cursor

    def components(self) -> List[str]:
        return self.registry.ids()

    def component(self, component_id: str) -> Any:
        return self._components[component_id]

    def is_synced(self, timestamp: Optional[int] = None) -> bool:
        timestamp = self.clock.now() if timestamp is None else timestamp
        return self._state.last_epoch >= self.clock.first_open_epoch(timestamp)

    def get_stats(self) -> Dict[str, Any]:
        return {
            "last_epoch": self._state.last_epoch,
            "reward_integral": self._state.reward_integral,
            "num_components": len(self.registry),
            "total_deposited": self._state.total_deposited,
            "total_pulled": self._state.total_pulled,
            "total_claimed": self._state.total_claimed,
            "has_pull": self.pull is not None,
        }

    # ========== Deposits ==========

    @atomic
    def deposit(self, epoch: int, amount: int, sender: str) -> None:
        """Add reward for `epoch`, which must not be in the past."""
        first_open = self.clock.first_open_epoch()
        if epoch < first_open or epoch < self._state.last_epoch:
            raise PreconditionError(f"Cannot deposit into past epoch {epoch} (current {first_open})")
        if amount <= 0:
            raise PreconditionError("Deposit amount must be positive")

        safe_transfer_from(self.asset, self.address, sender, self.address, amount)
        self._state.epoch_rewards[epoch] = add(self.epoch_rewards(epoch), amount, "epoch reward")
        self._state.total_deposited += amount
        logger.info(f"Deposit of {amount} for epoch {epoch} from {sender}")

    # ========== Finalization ==========

    @atomic
    def sync(self) -> bool:
        """Finalize ended epochs. True once fully caught up."""
        return self._sync(self.clock.epoch())

    def _sync(self, current: int) -> bool:
        state = self._state
        target = min(current, state.last_epoch + self.max_sync_epochs)
        while state.last_epoch < target:
            self._finalize(state.last_epoch)
            state.last_epoch += 1

        if state.last_epoch < current:
            logger.warning(
                f"Aggregator partially synced to epoch {state.last_epoch}, current is {current}"
            )
            return False
        return True

    def _require_sync(self) -> None:
        if not self.clock.has_started():
            return
        if not self._sync(self.clock.epoch()):
            raise NotSynchronizedError("Aggregator is behind; call sync() first")

    def _pull(self, epoch: int) -> int:
        before = self.asset.balance_of(self.address)
        amount = check_uint(self.pull.pull(epoch, caller=self.address), "pulled amount")
        received = self.asset.balance_of(self.address) - before
        if received < amount:
            raise TransferFailedError(
                f"Pull source reported {amount} for epoch {epoch} but {received} arrived"
            )
        return amount

    def _finalize(self, epoch: int) -> None:
        state = self._state
        weights: Dict[str, int] = {}
        total = 0
        for component_id, rec in self.registry.items():
            component = self._components[component_id]
            reported = check_uint(component.sync_total_weight(epoch), "component weight")
            weight = mul_div(reported, rec.numerator, rec.denominator, "scaled weight")
            weights[component_id] = weight
            total = add(total, weight, "total weight")

        if self.pull is not None:
            pulled = self._pull(epoch)
            if pulled:
                state.epoch_rewards[epoch] = add(self.epoch_rewards(epoch), pulled, "epoch reward")
                state.total_pulled += pulled

        reward = self.epoch_rewards(epoch)
        state.epoch_total_weight[epoch] = total
        state.epoch_weights[epoch] = weights

        if total == 0:
            if reward:
                state.epoch_rewards[epoch + 1] = add(self.epoch_rewards(epoch + 1), reward, "epoch reward")
                state.epoch_rewards[epoch] = 0
                logger.warning(f"Epoch {epoch} has no weight, rolling {reward} into epoch {epoch + 1}")
        else:
            state.reward_integral = add(state.reward_integral, to_integral(reward, total), "reward integral")

        state.epoch_integral[epoch] = state.reward_integral
        logger.debug(f"Finalized epoch {epoch}: reward={reward} weight={total} integral={state.reward_integral}")

    # ========== Claims ==========

    @atomic
    def claim(self, caller: str) -> Tuple[int, int, int]:
        """
        Claim the caller component's share of its next unclaimed epoch.

        Returns:
            (epoch, weight, amount)
        """
        rec = self.registry.record(caller)
        epoch = rec.cursor
        if epoch >= self._state.last_epoch:
            self._sync(self.clock.epoch())
            if epoch >= self._state.last_epoch:
                raise EpochNotFinalizedError(f"Epoch {epoch} is not finalized yet")

        weight = self.epoch_weight(caller, epoch)
        # the first finalized epoch starts from zero
        start = self._state.epoch_integral.get(epoch - 1, 0)
        amount = from_integral(self.epoch_integral(epoch) - start, weight)
        self.registry.advance_cursor(caller)

        if amount:
            safe_transfer(self.asset, self.address, caller, amount)
            self._state.total_claimed += amount
            logger.info(f"Component {caller} claimed {amount} for epoch {epoch}")
        return epoch, weight, amount

    # ========== Administration ==========

    @atomic
    def add_component(
        self,
        component: Any,
        numerator: int = 1,
        denominator: int = 1,
        after: str = COMPONENTS_SENTINEL,
        caller: str = "",
    ) -> ComponentInfo:
        """Register a component; it earns from the current epoch onwards."""
        self.authority.require(caller)
        self._require_sync()
        component_id = component.address
        self.registry.insert(
            component_id, after, numerator, denominator, cursor=self.clock.first_open_epoch()
        )
        self._components[component_id] = component
        logger.info(f"Component {component_id} added with scale {numerator}/{denominator}")
        return self.registry.info(component_id)

    @atomic
    def remove_component(
        self, component_id: str, previous: Optional[str] = None, caller: str = ""
    ) -> None:
        self.authority.require(caller)
        self._require_sync()
        self.registry.remove(component_id, previous)
        logger.info(f"Component {component_id} removed")

    @atomic
    def set_component_scale(
        self, component_id: str, numerator: int, denominator: int, caller: str = ""
    ) -> None:
        self.authority.require(caller)
        self._require_sync()
        self.registry.set_scale(component_id, numerator, denominator)
        logger.info(f"Component {component_id} scale set to {numerator}/{denominator}")

    def set_pull(self, pull: Optional[PullSource], caller: str = "") -> None:
        self.authority.require(caller)
        self.pull = pull
        logger.info(f"Pull source set to {pull!r}")

    def state_to_dict(self) -> dict:
        data = self._state.to_dict()
        data["registry"] = self.registry.state_to_dict()
        return data

    def load_state(self, data: dict) -> None:
        self._state = AggregatorState.from_dict(data)
        if "registry" in data:
            self.registry.load_state(data["registry"])

    def attach_component(self, component: Any) -> None:
        """Bind a component object to its existing registry record after a restore."""
        if not self.registry.is_known(component.address):
            raise UnknownComponentError(f"Component {component.address} is not registered")
        self._components[component.address] = component
