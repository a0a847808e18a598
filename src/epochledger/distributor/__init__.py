"""
epochledger.distributor - Reward aggregation and per-account streaming.
"""

from .registry import ComponentRegistry, ComponentRecord, ComponentInfo
from .aggregator import EpochAggregator, AggregatorState
from .stream import ComponentDistributor, DistributorState, StreamState, AccountRecord
from .locked import LockedPositionDistributor
from .chained import ChainedDistributor
from .claimer import RewardClaimer

__all__ = [
    "ComponentRegistry",
    "ComponentRecord",
    "ComponentInfo",
    "EpochAggregator",
    "AggregatorState",
    "ComponentDistributor",
    "DistributorState",
    "StreamState",
    "AccountRecord",
    "LockedPositionDistributor",
    "ChainedDistributor",
    "RewardClaimer",
]
