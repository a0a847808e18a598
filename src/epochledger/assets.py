"""
epochledger/assets.py

Asset ledger boundary and optional reward pull sources.

The core never moves value itself: it asks an AssetLedger to transfer and
aborts the whole operation if the transfer is rejected. Ledgers may follow
the non-standard convention of returning nothing on success, so only an
explicit False (or an exception) counts as failure.

Usage:
    journal = Journal()
    asset = InMemoryAssetLedger(journal=journal)
    asset.mint("alice", 10**18)
    asset.approve("alice", aggregator.address, 10**18)
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from .auth import Authority
from .exceptions import LedgerError, TransferFailedError, UnauthorizedError
from .fixedpoint import add, check_uint
from .journal import Journal, Stateful, atomic

logger = logging.getLogger("epochledger.assets")


# ============================================================================
# INTERFACES
# ============================================================================

class AssetLedger(ABC):
    """Transfer/approve semantics of the reward and staked assets."""

    @abstractmethod
    def balance_of(self, account: str) -> int:
        ...

    @abstractmethod
    def transfer(self, sender: str, to: str, amount: int) -> Optional[bool]:
        ...

    @abstractmethod
    def transfer_from(self, spender: str, owner: str, to: str, amount: int) -> Optional[bool]:
        ...

    @abstractmethod
    def approve(self, owner: str, spender: str, amount: int) -> Optional[bool]:
        ...


class PullSource(ABC):
    """Upstream that can top up the reward of an epoch during finalization."""

    @abstractmethod
    def pull(self, epoch: int, caller: str) -> int:
        """Transfer extra reward for `epoch` to `caller` and return the amount."""
        ...


def safe_transfer(asset: AssetLedger, sender: str, to: str, amount: int) -> None:
    """Transfer or raise TransferFailedError."""
    if amount == 0:
        return
    try:
        ok = asset.transfer(sender, to, amount)
    except LedgerError:
        raise
    except Exception as e:
        raise TransferFailedError(f"transfer {sender} -> {to} of {amount} failed: {e}") from e
    if ok is False:
        raise TransferFailedError(f"transfer {sender} -> {to} of {amount} rejected")


def safe_transfer_from(
    asset: AssetLedger, spender: str, owner: str, to: str, amount: int
) -> None:
    """Allowance-based transfer or raise TransferFailedError."""
    if amount == 0:
        return
    try:
        ok = asset.transfer_from(spender, owner, to, amount)
    except LedgerError:
        raise
    except Exception as e:
        raise TransferFailedError(
            f"transfer_from {owner} -> {to} of {amount} by {spender} failed: {e}"
        ) from e
    if ok is False:
        raise TransferFailedError(
            f"transfer_from {owner} -> {to} of {amount} by {spender} rejected"
        )


# ============================================================================
# IN-MEMORY LEDGER
# ============================================================================

@dataclass
class AssetState:
    """Balances and allowances of an in-memory asset."""
    balances: Dict[str, int] = field(default_factory=dict)
    allowances: Dict[str, Dict[str, int]] = field(default_factory=dict)
    total_supply: int = 0

    def to_dict(self) -> dict:
        return {
            "balances": dict(self.balances),
            "allowances": {k: dict(v) for k, v in self.allowances.items()},
            "total_supply": self.total_supply,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "AssetState":
        return cls(
            balances={k: int(v) for k, v in data.get("balances", {}).items()},
            allowances={
                owner: {spender: int(v) for spender, v in inner.items()}
                for owner, inner in data.get("allowances", {}).items()
            },
            total_supply=int(data.get("total_supply", 0)),
        )


class InMemoryAssetLedger(Stateful, AssetLedger):
    """
    Journaled asset ledger for tests, simulations and embedding.

    Returns False instead of raising on insufficient balance or allowance,
    like token contracts that signal failure through their return value.
    """

    def __init__(self, symbol: str = "REWARD", journal: Optional[Journal] = None):
        self.symbol = symbol
        self._state = AssetState()
        super().__init__(journal)

    def balance_of(self, account: str) -> int:
        return self._state.balances.get(account, 0)

    def allowance(self, owner: str, spender: str) -> int:
        return self._state.allowances.get(owner, {}).get(spender, 0)

    def holders(self) -> List[str]:
        return sorted(a for a, b in self._state.balances.items() if b)

    @property
    def total_supply(self) -> int:
        return self._state.total_supply

    @atomic
    def mint(self, to: str, amount: int) -> None:
        check_uint(amount, "mint amount")
        self._state.balances[to] = add(self.balance_of(to), amount, "balance")
        self._state.total_supply = add(self._state.total_supply, amount, "total supply")

    @atomic
    def approve(self, owner: str, spender: str, amount: int) -> bool:
        check_uint(amount, "allowance")
        self._state.allowances.setdefault(owner, {})[spender] = amount
        return True

    def _move(self, sender: str, to: str, amount: int) -> bool:
        if amount < 0:
            return False
        balance = self.balance_of(sender)
        if balance < amount:
            logger.debug(f"{self.symbol}: {sender} balance {balance} < {amount}")
            return False
        self._state.balances[sender] = balance - amount
        self._state.balances[to] = add(self.balance_of(to), amount, "balance")
        return True

    @atomic
    def transfer(self, sender: str, to: str, amount: int) -> bool:
        return self._move(sender, to, amount)

    @atomic
    def transfer_from(self, spender: str, owner: str, to: str, amount: int) -> bool:
        allowed = self.allowance(owner, spender)
        if spender != owner and allowed < amount:
            logger.debug(f"{self.symbol}: allowance {owner}->{spender} {allowed} < {amount}")
            return False
        if not self._move(owner, to, amount):
            return False
        if spender != owner:
            self._state.allowances[owner][spender] = allowed - amount
        return True


# ============================================================================
# TREASURY PULL SOURCE
# ============================================================================

@dataclass
class TreasuryState:
    """Scheduled top-ups per epoch and what was already paid."""
    scheduled: Dict[int, int] = field(default_factory=dict)
    paid: Dict[int, int] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "scheduled": {str(k): v for k, v in self.scheduled.items()},
            "paid": {str(k): v for k, v in self.paid.items()},
        }

    @classmethod
    def from_dict(cls, data: dict) -> "TreasuryState":
        return cls(
            scheduled={int(k): int(v) for k, v in data.get("scheduled", {}).items()},
            paid={int(k): int(v) for k, v in data.get("paid", {}).items()},
        )


class TreasuryPull(Stateful, PullSource):
    """
    Pull source funded from its own balance on the asset ledger.

    Management schedules an amount per epoch; the configured recipient (the
    aggregator) receives it the first time it pulls that epoch.
    """

    def __init__(
        self,
        address: str,
        asset: AssetLedger,
        recipient: str,
        authority: Authority,
        journal: Optional[Journal] = None,
    ):
        self.address = address
        self.asset = asset
        self.recipient = recipient
        self.authority = authority
        self._state = TreasuryState()
        super().__init__(journal)

    def scheduled(self, epoch: int) -> int:
        return self._state.scheduled.get(epoch, 0)

    @atomic
    def set_rewards(self, epoch: int, amount: int, caller: str) -> None:
        self.authority.require(caller)
        check_uint(amount, "scheduled amount")
        if epoch in self._state.paid:
            raise UnauthorizedError(f"Epoch {epoch} was already pulled")
        self._state.scheduled[epoch] = amount
        logger.info(f"Treasury {self.address}: scheduled {amount} for epoch {epoch}")

    @atomic
    def pull(self, epoch: int, caller: str) -> int:
        if caller != self.recipient:
            raise UnauthorizedError(f"{caller} may not pull from {self.address}")
        if epoch in self._state.paid:
            return 0
        amount = self._state.scheduled.pop(epoch, 0)
        self._state.paid[epoch] = amount
        safe_transfer(self.asset, self.address, self.recipient, amount)
        if amount:
            logger.info(f"Treasury {self.address}: pulled {amount} for epoch {epoch}")
        return amount
