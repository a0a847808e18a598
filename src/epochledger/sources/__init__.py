"""
epochledger.sources - Weight source policies.

Each policy turns one packed per-account word into a weight per epoch.
"""

from .base import WeightSource, BalanceWeightSource
from .ramped import RampedBalanceSource
from .lock_boost import (
    DecayingLockBoostSource,
    VotingEscrow,
    VotingEscrowSnapshot,
    LockedBalance,
    SnapshotLock,
)
from .multi_bucket import MultiBucketBoostSource

SOURCES = {
    BalanceWeightSource.name: BalanceWeightSource,
    RampedBalanceSource.name: RampedBalanceSource,
    DecayingLockBoostSource.name: DecayingLockBoostSource,
    MultiBucketBoostSource.name: MultiBucketBoostSource,
}

__all__ = [
    "WeightSource",
    "BalanceWeightSource",
    "RampedBalanceSource",
    "DecayingLockBoostSource",
    "VotingEscrow",
    "VotingEscrowSnapshot",
    "LockedBalance",
    "SnapshotLock",
    "MultiBucketBoostSource",
    "SOURCES",
]
