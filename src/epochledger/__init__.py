"""
epochledger - Epoch-quantized, multi-source reward distribution ledger

Built from:
- EpochAggregator: per-epoch reward finalization across registered components
- ComponentDistributor: linear intra-epoch streaming to weighted accounts
- Pluggable weight sources (ramped balance, decaying lock boost, multi-bucket boost)
- Journaled, all-or-nothing operations over one shared state boundary
- Prometheus metrics, JSON snapshots and a trio keeper service

Usage:
    from epochledger import (
        Journal, EpochClock, Authority, InMemoryAssetLedger,
        EpochAggregator, ComponentDistributor, RampedBalanceSource,
    )

    journal = Journal()
    clock = EpochClock(genesis)
    authority = Authority("management")
    reward = InMemoryAssetLedger(journal=journal)

    aggregator = EpochAggregator("aggregator", clock, reward, authority, journal=journal)
    staking = ComponentDistributor(
        "staking", clock, reward, RampedBalanceSource(clock), authority,
        upstream=aggregator, journal=journal,
    )
    aggregator.add_component(staking, caller="management")

    # Rewards for epoch 0, streamed to stakers during epoch 1
    aggregator.deposit(0, amount, sender="treasury")
    staking.set_depositor("vault", True, caller="management")
    staking.deposit("alice", stake, caller="vault")
    ...
    staking.claim("alice", caller="alice")

Service Usage:
    from epochledger.service import LedgerService

    service = LedgerService(aggregator, [staking])
    async with trio.open_nursery() as nursery:
        await service.start(nursery)
"""

from .config import (
    LedgerConfig,
    DistributorConfig,
    EPOCH_LENGTH,
    PRECISION,
    UNIT,
    BPS,
    COMPONENTS_SENTINEL,
    MAX_SYNC_EPOCHS,
)
from .exceptions import (
    LedgerError,
    PreconditionError,
    BeforeGenesisError,
    UnauthorizedError,
    EpochNotFinalizedError,
    UnknownComponentError,
    RegistryError,
    NotSynchronizedError,
    InvalidStateError,
    ArithmeticStateError,
    PackingOverflowError,
    TransferFailedError,
)
from .packing import BitLayout, pack, unpack
from .epoch import EpochClock, ManualTime
from .journal import Journal, Stateful, atomic
from .auth import Authority
from .assets import (
    AssetLedger,
    InMemoryAssetLedger,
    PullSource,
    TreasuryPull,
    safe_transfer,
    safe_transfer_from,
)
from .sources import (
    WeightSource,
    BalanceWeightSource,
    RampedBalanceSource,
    DecayingLockBoostSource,
    MultiBucketBoostSource,
    VotingEscrow,
    VotingEscrowSnapshot,
)
from .distributor import (
    ComponentRegistry,
    EpochAggregator,
    ComponentDistributor,
    LockedPositionDistributor,
    ChainedDistributor,
    RewardClaimer,
)
from .metrics import LedgerMetricsCollector
from .storage import LedgerStore

__version__ = "0.1.0"
__all__ = [
    # Config
    "LedgerConfig",
    "DistributorConfig",
    "EPOCH_LENGTH",
    "PRECISION",
    "UNIT",
    "BPS",
    "COMPONENTS_SENTINEL",
    "MAX_SYNC_EPOCHS",
    # Errors
    "LedgerError",
    "PreconditionError",
    "BeforeGenesisError",
    "UnauthorizedError",
    "EpochNotFinalizedError",
    "UnknownComponentError",
    "RegistryError",
    "NotSynchronizedError",
    "InvalidStateError",
    "ArithmeticStateError",
    "PackingOverflowError",
    "TransferFailedError",
    # Primitives
    "BitLayout",
    "pack",
    "unpack",
    "EpochClock",
    "ManualTime",
    "Journal",
    "Stateful",
    "atomic",
    "Authority",
    # Assets
    "AssetLedger",
    "InMemoryAssetLedger",
    "PullSource",
    "TreasuryPull",
    "safe_transfer",
    "safe_transfer_from",
    # Weight sources
    "WeightSource",
    "BalanceWeightSource",
    "RampedBalanceSource",
    "DecayingLockBoostSource",
    "MultiBucketBoostSource",
    "VotingEscrow",
    "VotingEscrowSnapshot",
    # Distribution
    "ComponentRegistry",
    "EpochAggregator",
    "ComponentDistributor",
    "LockedPositionDistributor",
    "ChainedDistributor",
    "RewardClaimer",
    # Observability & persistence
    "LedgerMetricsCollector",
    "LedgerStore",
]
