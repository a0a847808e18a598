"""
epochledger/config.py

Configuration constants and data classes for epochledger.

Values can come from code, a JSON file or the environment. Precedence:
    1. Explicit keyword arguments
    2. Environment variables (EPOCHLEDGER_*)
    3. JSON config file
    4. Defaults below
"""

import json
import os
import logging
from dataclasses import dataclass, asdict, fields
from pathlib import Path
from typing import Any, Dict, Optional, Tuple, Union

logger = logging.getLogger("epochledger.config")


# ============================================================================
# PROTOCOL CONSTANTS
# ============================================================================

# Epochs are two weeks long
EPOCH_LENGTH = 14 * 24 * 60 * 60

# Fixed point scale of every reward integral
PRECISION = 10**30

# Token base unit (18 decimals)
UNIT = 10**18

# Basis points denominator for bounties
BPS = 10_000

# Largest value any integral, weight or balance may reach
MAX_UINT256 = 2**256 - 1

# Registry bounds
MAX_NUM_COMPONENTS = 32
COMPONENTS_SENTINEL = "0x1111111111111111111111111111111111111111"

# Maximum number of epochs a single sync call may finalize
MAX_SYNC_EPOCHS = 32

# Weight source defaults
MAX_LOCK_EPOCHS = 104                     # ~4 years of two-week epochs
DEFAULT_RAMP_LENGTH = 2 * EPOCH_LENGTH    # ramp window for ramped balances
DEFAULT_BOOST_EPOCHS = 104                # 2x -> 1x boost decay duration
DEFAULT_BUCKET_WEIGHTS: Tuple[int, ...] = (1, 1, 2)

# Environment variable prefix
ENV_PREFIX = "EPOCHLEDGER_"


# ============================================================================
# CONFIG DATA CLASSES
# ============================================================================

@dataclass
class LedgerConfig:
    """
    Settings shared by the aggregator and every distributor.

    Usage:
        config = LedgerConfig.load(path="ledger.json", genesis=1_700_000_000)
        clock = EpochClock(config.genesis, config.epoch_length)
    """
    genesis: int = 0
    epoch_length: int = EPOCH_LENGTH
    max_sync_epochs: int = MAX_SYNC_EPOCHS
    max_components: int = MAX_NUM_COMPONENTS

    def __post_init__(self):
        if self.genesis < 0:
            raise ValueError(f"genesis must be non-negative, got {self.genesis}")
        if self.epoch_length <= 0:
            raise ValueError(f"epoch_length must be positive, got {self.epoch_length}")
        if self.max_sync_epochs <= 0:
            raise ValueError(f"max_sync_epochs must be positive, got {self.max_sync_epochs}")
        if self.max_components <= 0:
            raise ValueError(f"max_components must be positive, got {self.max_components}")

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "LedgerConfig":
        return cls(**{k: int(v) for k, v in data.items() if k in cls.__dataclass_fields__})

    @classmethod
    def from_env(cls, environ: Optional[Dict[str, str]] = None) -> Dict[str, int]:
        """
        Read overrides from EPOCHLEDGER_* environment variables.

        Returns only the keys that are set, so the result can be layered
        on top of a file config.
        """
        environ = os.environ if environ is None else environ
        overrides: Dict[str, int] = {}
        for f in fields(cls):
            raw = environ.get(f"{ENV_PREFIX}{f.name.upper()}")
            if raw is None or raw == "":
                continue
            try:
                overrides[f.name] = int(raw)
            except ValueError:
                raise ValueError(f"Invalid value for {ENV_PREFIX}{f.name.upper()}: {raw!r}")
        return overrides

    @classmethod
    def load(
        cls,
        path: Optional[Union[str, Path]] = None,
        environ: Optional[Dict[str, str]] = None,
        **overrides: Any,
    ) -> "LedgerConfig":
        """Build a config from file, environment and explicit overrides."""
        data: Dict[str, Any] = {}
        if path is not None:
            with open(path, "r") as f:
                data.update(json.load(f))
            logger.debug(f"Loaded ledger config from {path}")
        data.update(cls.from_env(environ))
        data.update({k: v for k, v in overrides.items() if v is not None})
        return cls.from_dict(data)


@dataclass
class DistributorConfig:
    """
    Expiration and forced-exit parameters of a component distributor.

    expiration_epochs = 0 disables reclaiming.
    """
    expiration_epochs: int = 0
    reclaim_bounty_bps: int = 0
    reclaim_recipient: Optional[str] = None
    report_bounty_bps: int = 0
    report_recipient: Optional[str] = None

    def __post_init__(self):
        if self.expiration_epochs < 0:
            raise ValueError("expiration_epochs must be non-negative")
        for name in ("reclaim_bounty_bps", "report_bounty_bps"):
            value = getattr(self, name)
            if not 0 <= value <= BPS:
                raise ValueError(f"{name} must be between 0 and {BPS}, got {value}")

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "DistributorConfig":
        return cls(**{k: v for k, v in data.items() if k in cls.__dataclass_fields__})
