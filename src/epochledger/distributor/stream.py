"""
epochledger/distributor/stream.py

Component distributor: streams a component's reward to its accounts.

The reward a component earned in epoch e is claimed from the aggregator
once e is finalized and released linearly over epoch e + 1:

    unlocked(t) = reward * (t - epoch_start) // epoch_length

Every unlocked slice is folded into the component's reward integral
against the total weight of the epoch it unlocks in. Slices that unlock
while the total weight is zero are carried into the next epoch's stream.

Accounts accrue per epoch segment since their last checkpoint:

    pending += (integral_end - snapshot) * weight(account, epoch) // PRECISION

Weights come from a WeightSource evaluated on the account's packed
state, so totals for every epoch can be re-derived from stored states.

Usage:
    source = RampedBalanceSource(clock)
    distributor = ComponentDistributor(
        "staking", clock, reward_asset, source, authority,
        upstream=aggregator, journal=journal,
    )
    distributor.set_depositor("vault", True, caller="management")
    aggregator.add_component(distributor, caller="management")

    distributor.deposit("alice", 100 * UNIT, caller="vault")
    ...
    distributor.claim("alice", caller="alice")
"""

import logging
from dataclasses import dataclass, field, asdict
from typing import Any, Dict, Optional

from ..assets import AssetLedger, safe_transfer
from ..auth import Authority
from ..config import BPS, MAX_SYNC_EPOCHS, PRECISION, DistributorConfig
from ..epoch import EpochClock
from ..exceptions import NotSynchronizedError, PreconditionError, UnauthorizedError
from ..fixedpoint import add, check_uint, from_integral, mul_div, sub, to_integral
from ..journal import Journal, Stateful, atomic
from ..sources.base import WeightSource

logger = logging.getLogger("epochledger.distributor.stream")


# ============================================================================
# DATA CLASSES
# ============================================================================

@dataclass
class StreamState:
    """Progress of the linear release within the current epoch."""
    offset: int = 0     # seconds since genesis of the last integral sync
    reward: int = 0     # reward unlocking in the epoch containing offset

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "StreamState":
        return cls(offset=int(data.get("offset", 0)), reward=int(data.get("reward", 0)))


@dataclass
class AccountRecord:
    """Per-account accrual bookkeeping."""
    state: int = 0          # packed weight source state
    integral: int = 0       # reward integral at the last checkpoint
    epoch: int = 0          # epoch of the last checkpoint
    pending: int = 0        # accrued, unclaimed reward

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "AccountRecord":
        return cls(
            state=int(data.get("state", 0)),
            integral=int(data.get("integral", 0)),
            epoch=int(data.get("epoch", 0)),
            pending=int(data.get("pending", 0)),
        )


@dataclass
class DistributorState:
    stream: StreamState = field(default_factory=StreamState)
    reward_integral: int = 0
    epoch_integrals: Dict[int, int] = field(default_factory=dict)
    total_weights: Dict[int, int] = field(default_factory=dict)
    carry: int = 0
    accounts: Dict[str, AccountRecord] = field(default_factory=dict)
    depositors: Dict[str, bool] = field(default_factory=dict)
    claimers: Dict[str, bool] = field(default_factory=dict)
    config: DistributorConfig = field(default_factory=DistributorConfig)
    total_received: int = 0
    total_claimed: int = 0
    total_reclaimed: int = 0
    total_reported: int = 0

    def to_dict(self) -> dict:
        return {
            "stream": self.stream.to_dict(),
            "reward_integral": self.reward_integral,
            "epoch_integrals": {str(k): v for k, v in self.epoch_integrals.items()},
            "total_weights": {str(k): v for k, v in self.total_weights.items()},
            "carry": self.carry,
            "accounts": {k: v.to_dict() for k, v in self.accounts.items()},
            "depositors": dict(self.depositors),
            "claimers": dict(self.claimers),
            "config": self.config.to_dict(),
            "total_received": self.total_received,
            "total_claimed": self.total_claimed,
            "total_reclaimed": self.total_reclaimed,
            "total_reported": self.total_reported,
        }

    @classmethod
    def _fields_from_dict(cls, data: dict) -> Dict[str, Any]:
        return dict(
            stream=StreamState.from_dict(data.get("stream", {})),
            reward_integral=int(data.get("reward_integral", 0)),
            epoch_integrals={int(k): int(v) for k, v in data.get("epoch_integrals", {}).items()},
            total_weights={int(k): int(v) for k, v in data.get("total_weights", {}).items()},
            carry=int(data.get("carry", 0)),
            accounts={k: AccountRecord.from_dict(v) for k, v in data.get("accounts", {}).items()},
            depositors={k: bool(v) for k, v in data.get("depositors", {}).items()},
            claimers={k: bool(v) for k, v in data.get("claimers", {}).items()},
            config=DistributorConfig.from_dict(data.get("config", {})),
            total_received=int(data.get("total_received", 0)),
            total_claimed=int(data.get("total_claimed", 0)),
            total_reclaimed=int(data.get("total_reclaimed", 0)),
            total_reported=int(data.get("total_reported", 0)),
        )

    @classmethod
    def from_dict(cls, data: dict) -> "DistributorState":
        return cls(**cls._fields_from_dict(data))


# ============================================================================
# DISTRIBUTOR
# ============================================================================

class ComponentDistributor(Stateful):
    """Streams one component's reward to the accounts holding its weight."""

    state_class = DistributorState

    def __init__(
        self,
        address: str,
        clock: EpochClock,
        asset: AssetLedger,
        source: WeightSource,
        authority: Authority,
        upstream: Any = None,
        config: Optional[DistributorConfig] = None,
        max_sync_epochs: int = MAX_SYNC_EPOCHS,
        journal: Optional[Journal] = None,
    ):
        """
        Initialize the distributor.

        Args:
            address: Account receiving upstream rewards on the asset ledger
            clock: Epoch clock shared with the aggregator
            asset: Reward asset ledger
            source: Weighting policy for the packed account states
            authority: Management capability for admin operations
            upstream: Aggregator this distributor is registered with
            config: Expiration and report parameters
            max_sync_epochs: Epoch boundaries processed per sync at most
            journal: Shared transaction journal
        """
        if max_sync_epochs <= 0:
            raise ValueError(f"max_sync_epochs must be positive, got {max_sync_epochs}")
        self.address = address
        self.clock = clock
        self.asset = asset
        self.source = source
        self.authority = authority
        self.upstream = upstream
        self.max_sync_epochs = max_sync_epochs

        start = clock.offset() if clock.has_started() else 0
        self._state = self.state_class(
            stream=StreamState(offset=start),
            config=config if config is not None else DistributorConfig(),
        )
        super().__init__(journal)

    # ========== Views ==========

    @property
    def genesis(self) -> int:
        return self.clock.genesis

    @property
    def config(self) -> DistributorConfig:
        return self._state.config

    @property
    def stream_state(self) -> StreamState:
        return StreamState(self._state.stream.offset, self._state.stream.reward)

    @property
    def reward_integral(self) -> int:
        return self._state.reward_integral

    @property
    def carry(self) -> int:
        return self._state.carry

    def epoch_integral(self, epoch: int) -> int:
        return self._state.epoch_integrals.get(epoch, 0)

    def accounts(self):
        return list(self._state.accounts)

    def get_account_state(self, account: str) -> int:
        rec = self._state.accounts.get(account)
        return rec.state if rec is not None else 0

    def pending_rewards(self, account: str) -> int:
        """Accrued reward as of the account's last checkpoint."""
        rec = self._state.accounts.get(account)
        return rec.pending if rec is not None else 0

    def account_reward_integral(self, account: str) -> int:
        rec = self._state.accounts.get(account)
        return rec.integral if rec is not None else 0

    def account_weight(self, account: str, epoch: Optional[int] = None) -> int:
        epoch = self.clock.first_open_epoch() if epoch is None else epoch
        return self.source.compute_weight(account, self.get_account_state(account), epoch)

    def total_weight(self, epoch: Optional[int] = None) -> int:
        epoch = self.clock.first_open_epoch() if epoch is None else epoch
        cached = self._state.total_weights.get(epoch)
        if cached is not None:
            return cached
        return self._compute_total_weight(epoch)

    def is_depositor(self, account: str) -> bool:
        return self._state.depositors.get(account, False)

    def is_claimer(self, account: str) -> bool:
        return self._state.claimers.get(account, False)

    def claimable(self, account: str) -> int:
        """Reward the account could claim right now; leaves no trace."""
        with self.journal.preview():
            now = self.clock.now()
            while not self._sync(now):
                pass
            rec = self._checkpoint(account, self.clock.epoch(now))
            return rec.pending

    def get_stats(self) -> Dict[str, Any]:
        s = self._state
        return {
            "address": self.address,
            "source": self.source.name,
            "accounts": len(s.accounts),
            "reward_integral": s.reward_integral,
            "stream_offset": s.stream.offset,
            "stream_reward": s.stream.reward,
            "carry": s.carry,
            "total_received": s.total_received,
            "total_claimed": s.total_claimed,
            "total_reclaimed": s.total_reclaimed,
            "total_reported": s.total_reported,
        }

    # ========== Weights ==========

    def _compute_total_weight(self, epoch: int) -> int:
        total = 0
        for account, rec in self._state.accounts.items():
            if rec.state:
                total = add(total, self.source.compute_weight(account, rec.state, epoch), "total weight")
        return total

    def _total_weight(self, epoch: int) -> int:
        """Total weight of `epoch`, frozen in the cache on first use."""
        weights = self._state.total_weights
        if epoch not in weights:
            weights[epoch] = self._compute_total_weight(epoch)
        return weights[epoch]

    def sync_total_weight(self, epoch: int) -> int:
        """Total weight reported to the aggregator when it finalizes `epoch`."""
        return self._total_weight(epoch)

    # ========== Integral sync ==========

    def _sync_upstream(self, current: int) -> bool:
        if self.upstream is None:
            return True
        return self.upstream._sync(current)

    def _claim_upstream(self, epoch: int) -> int:
        """Claim every upstream epoch up to and including `epoch`."""
        if self.upstream is None:
            return 0
        total = 0
        cursor = self.upstream.component_cursor(self.address)
        while cursor is not None and cursor <= epoch:
            _, _, amount = self.upstream.claim(self.address)
            total = add(total, amount, "upstream reward")
            cursor += 1
        if total:
            self._state.total_received += total
        return total

    def _fold(self, epoch: int, amount: int) -> None:
        if amount == 0:
            return
        s = self._state
        weight = self._total_weight(epoch)
        if weight == 0:
            s.carry = add(s.carry, amount, "carry")
            return
        s.reward_integral = add(s.reward_integral, to_integral(amount, weight), "reward integral")

    def _unlock(self, epoch: int, to_offset: int) -> None:
        """Release the stream from its offset up to to_offset within `epoch`."""
        stream = self._state.stream
        base = epoch * self.clock.epoch_length
        length = self.clock.epoch_length
        released = (
            mul_div(stream.reward, to_offset - base, length, "stream")
            - mul_div(stream.reward, stream.offset - base, length, "stream")
        )
        stream.offset = to_offset
        self._fold(epoch, check_uint(released, "released reward"))

    def _start_epoch(self, epoch: int) -> int:
        """Reward to stream during `epoch`."""
        return self._claim_upstream(epoch - 1)

    def _sync(self, now: int) -> bool:
        """Advance the integral to `now`. False if the catch-up bound was hit."""
        offset = self.clock.offset(now)
        length = self.clock.epoch_length
        current = offset // length
        if not self._sync_upstream(current):
            return False

        s = self._state
        epoch = s.stream.offset // length
        steps = 0
        while epoch < current:
            if steps >= self.max_sync_epochs:
                logger.warning(
                    f"Distributor {self.address} partially synced to epoch {epoch}, current is {current}"
                )
                return False
            self._unlock(epoch, (epoch + 1) * length)
            s.epoch_integrals[epoch] = s.reward_integral
            epoch += 1
            s.stream.reward = add(self._start_epoch(epoch), s.carry, "stream reward")
            s.carry = 0
            steps += 1

        self._unlock(current, offset)
        return True

    def _require_sync(self, now: int) -> int:
        if not self._sync(now):
            raise NotSynchronizedError(f"Distributor {self.address} is behind; call sync() first")
        return self.clock.epoch(now)

    @atomic
    def sync(self) -> bool:
        """Advance the integral as far as the catch-up bound allows."""
        return self._sync(self.clock.now())

    # ========== Account accrual ==========

    def _record(self, account: str, epoch: int) -> AccountRecord:
        rec = self._state.accounts.get(account)
        if rec is None:
            rec = AccountRecord(integral=self._state.reward_integral, epoch=epoch)
            self._state.accounts[account] = rec
        return rec

    def _accrue(self, account: str, rec: AccountRecord, until: int) -> int:
        """Reward accrued from the record's checkpoint to the end of epoch `until`."""
        integrals = self._state.epoch_integrals
        earned = 0
        snapshot = rec.integral
        for epoch in range(rec.epoch, until + 1):
            end = integrals[epoch]
            if end != snapshot:
                weight = self.source.compute_weight(account, rec.state, epoch)
                earned = add(earned, from_integral(end - snapshot, weight), "accrual")
                snapshot = end
        return earned

    def _checkpoint(self, account: str, current: int) -> AccountRecord:
        """Bring an account up to the current integral. Call after _sync."""
        rec = self._record(account, current)
        if rec.state:
            earned = self._accrue(account, rec, current - 1)
            if rec.epoch < current:
                snapshot = self._state.epoch_integrals[current - 1]
            else:
                snapshot = rec.integral
            weight = self.source.compute_weight(account, rec.state, current)
            earned = add(earned, from_integral(self._state.reward_integral - snapshot, weight), "accrual")
            rec.pending = add(rec.pending, earned, "pending reward")
        rec.integral = self._state.reward_integral
        rec.epoch = current
        return rec

    def _apply_state(self, account: str, rec: AccountRecord, new_state: int, epoch: int) -> None:
        """Replace an account's packed state, keeping the epoch total in step."""
        total = self._total_weight(epoch)
        old_weight = self.source.compute_weight(account, rec.state, epoch)
        new_weight = self.source.compute_weight(account, new_state, epoch)
        self._state.total_weights[epoch] = sub(add(total, new_weight, "total weight"), old_weight, "total weight")
        rec.state = new_state

    def _pay(self, to: str, amount: int) -> None:
        safe_transfer(self.asset, self.address, to, amount)

    # ========== Hooks ==========

    def _require_depositor(self, caller: str) -> None:
        if not self.is_depositor(caller):
            raise UnauthorizedError(f"{caller} is not a depositor of {self.address}")

    @atomic
    def deposit(self, account: str, amount: int, caller: str, **params: Any) -> int:
        """Record a balance increase. Returns the new packed state."""
        self._require_depositor(caller)
        check_uint(amount, "deposit amount")
        now = self.clock.now()
        current = self._require_sync(now)
        rec = self._checkpoint(account, current)
        new_state = self.source.on_increase(rec.state, amount, now, **params)
        self._apply_state(account, rec, new_state, current)
        logger.debug(f"{self.address}: deposit {amount} for {account}")
        return new_state

    @atomic
    def withdraw(self, account: str, amount: int, caller: str, **params: Any) -> int:
        """Record a balance decrease. Returns the new packed state."""
        self._require_depositor(caller)
        check_uint(amount, "withdraw amount")
        now = self.clock.now()
        current = self._require_sync(now)
        rec = self._checkpoint(account, current)
        new_state = self.source.on_decrease(rec.state, amount, now, **params)
        self._apply_state(account, rec, new_state, current)
        logger.debug(f"{self.address}: withdraw {amount} for {account}")
        return new_state

    @atomic
    def transfer(self, sender: str, receiver: str, amount: int, caller: str, **params: Any) -> None:
        """Move balance between accounts; both are checkpointed first."""
        self._require_depositor(caller)
        check_uint(amount, "transfer amount")
        if sender == receiver or amount == 0:
            return
        now = self.clock.now()
        current = self._require_sync(now)
        src = self._checkpoint(sender, current)
        dst = self._checkpoint(receiver, current)
        self._apply_state(sender, src, self.source.on_decrease(src.state, amount, now, **params), current)
        self._apply_state(receiver, dst, self.source.on_increase(dst.state, amount, now, **params), current)
        logger.debug(f"{self.address}: transfer {amount} from {sender} to {receiver}")

    @atomic
    def report_account_state(self, account: str, packed_state: int, caller: str) -> None:
        """Overwrite an account's packed state."""
        self._require_depositor(caller)
        self.source.layout.unpack(packed_state)
        current = self._require_sync(self.clock.now())
        rec = self._checkpoint(account, current)
        self._apply_state(account, rec, packed_state, current)

    # ========== Claims ==========

    @atomic
    def sync_rewards(self, account: str) -> int:
        """Checkpoint an account. Returns its pending reward."""
        current = self._require_sync(self.clock.now())
        return self._checkpoint(account, current).pending

    @atomic
    def claim(self, account: str, caller: str, recipient: Optional[str] = None) -> int:
        """Pay out the account's pending reward. Zero is not an error."""
        if caller != account and not self.is_claimer(caller):
            raise UnauthorizedError(f"{caller} may not claim for {account}")
        current = self._require_sync(self.clock.now())
        rec = self._checkpoint(account, current)
        amount = rec.pending
        if amount == 0:
            return 0
        rec.pending = 0
        self._pay(recipient or account, amount)
        self._state.total_claimed += amount
        logger.info(f"{self.address}: {account} claimed {amount}")
        return amount

    # ========== Reclaim ==========

    @atomic
    def reclaim(self, account: str, caller: str) -> int:
        """
        Reclaim reward the account left unclaimed past the expiration window.

        Only the slice accrued up to the end of the expired epoch is taken;
        later accrual stays with the account.
        """
        config = self._state.config
        if config.expiration_epochs == 0 or config.reclaim_recipient is None:
            raise PreconditionError("Reclaiming is disabled")
        current = self._require_sync(self.clock.now())
        expired = current - config.expiration_epochs - 1
        rec = self._state.accounts.get(account)
        if expired < 0 or rec is None or rec.epoch > expired:
            raise PreconditionError(f"Rewards of {account} have not expired")

        amount = add(rec.pending, self._accrue(account, rec, expired), "reclaim")
        rec.pending = 0
        rec.integral = self._state.epoch_integrals[expired]
        rec.epoch = expired + 1

        bounty = amount * config.reclaim_bounty_bps // BPS
        self._pay(caller, bounty)
        self._pay(config.reclaim_recipient, amount - bounty)
        self._state.total_reclaimed += amount
        logger.info(f"{self.address}: reclaimed {amount} from {account} (bounty {bounty} to {caller})")
        return amount

    # ========== Report ==========

    @atomic
    def report(self, account: str, caller: str) -> int:
        """Zero an invalidated position and forward its pending reward."""
        config = self._state.config
        if config.report_recipient is None:
            raise PreconditionError("Reporting is disabled")
        current = self._require_sync(self.clock.now())
        rec = self._checkpoint(account, current)
        if rec.state == 0 or not self.source.is_invalidated(account, rec.state):
            raise PreconditionError(f"Position of {account} is still valid")

        self._apply_state(account, rec, 0, current)
        amount = rec.pending
        rec.pending = 0
        bounty = amount * config.report_bounty_bps // BPS
        self._pay(caller, bounty)
        self._pay(config.report_recipient, amount - bounty)
        self._state.total_reported += amount
        logger.info(f"{self.address}: reported {account}, forwarded {amount} (bounty {bounty})")
        return amount

    # ========== Administration ==========

    @atomic
    def set_depositor(self, account: str, flag: bool, caller: str) -> None:
        self.authority.require(caller)
        self._state.depositors[account] = flag
        logger.info(f"{self.address}: depositor {account} -> {flag}")

    @atomic
    def set_claimer(self, account: str, flag: bool, caller: str) -> None:
        self.authority.require(caller)
        self._state.claimers[account] = flag
        logger.info(f"{self.address}: claimer {account} -> {flag}")

    def set_upstream(self, upstream: Any, caller: str) -> None:
        self.authority.require(caller)
        self.upstream = upstream

    @atomic
    def set_expiration(
        self,
        expiration_epochs: int,
        bounty_bps: int,
        recipient: Optional[str],
        caller: str,
    ) -> None:
        self.authority.require(caller)
        if expiration_epochs > 0 and not recipient:
            raise PreconditionError("A reclaim recipient is required")
        c = self._state.config
        self._state.config = DistributorConfig(
            expiration_epochs=expiration_epochs,
            reclaim_bounty_bps=bounty_bps,
            reclaim_recipient=recipient,
            report_bounty_bps=c.report_bounty_bps,
            report_recipient=c.report_recipient,
        )
        logger.info(f"{self.address}: expiration {expiration_epochs} epochs, bounty {bounty_bps} bps")

    @atomic
    def set_report_params(self, bounty_bps: int, recipient: Optional[str], caller: str) -> None:
        self.authority.require(caller)
        c = self._state.config
        self._state.config = DistributorConfig(
            expiration_epochs=c.expiration_epochs,
            reclaim_bounty_bps=c.reclaim_bounty_bps,
            reclaim_recipient=c.reclaim_recipient,
            report_bounty_bps=bounty_bps,
            report_recipient=recipient,
        )
        logger.info(f"{self.address}: report bounty {bounty_bps} bps to {recipient}")
