"""
Tests for epochledger/config.py and epochledger/auth.py
"""

import json

import pytest

from epochledger.auth import Authority
from epochledger.config import (
    BPS,
    EPOCH_LENGTH,
    MAX_SYNC_EPOCHS,
    DistributorConfig,
    LedgerConfig,
)
from epochledger.exceptions import UnauthorizedError


# ============================================================================
# LEDGER CONFIG TESTS
# ============================================================================

class TestLedgerConfig:
    """Test config defaults and layering."""

    def test_defaults(self):
        config = LedgerConfig()
        assert config.epoch_length == EPOCH_LENGTH
        assert config.max_sync_epochs == MAX_SYNC_EPOCHS

    def test_invalid_values_raise(self):
        with pytest.raises(ValueError):
            LedgerConfig(epoch_length=0)
        with pytest.raises(ValueError):
            LedgerConfig(max_sync_epochs=0)
        with pytest.raises(ValueError):
            LedgerConfig(genesis=-5)

    def test_from_env_reads_only_set_keys(self):
        overrides = LedgerConfig.from_env({
            "EPOCHLEDGER_GENESIS": "1000",
            "EPOCHLEDGER_MAX_SYNC_EPOCHS": "",
            "UNRELATED": "1",
        })
        assert overrides == {"genesis": 1000}

    def test_from_env_rejects_garbage(self):
        with pytest.raises(ValueError):
            LedgerConfig.from_env({"EPOCHLEDGER_EPOCH_LENGTH": "two weeks"})

    def test_load_precedence(self, tmp_path):
        """Test file < environment < explicit overrides."""
        path = tmp_path / "ledger.json"
        path.write_text(json.dumps({"genesis": 1, "epoch_length": 100, "max_sync_epochs": 4}))

        config = LedgerConfig.load(
            path,
            environ={"EPOCHLEDGER_EPOCH_LENGTH": "200", "EPOCHLEDGER_GENESIS": "2"},
            genesis=3,
            max_components=None,
        )
        assert config.genesis == 3
        assert config.epoch_length == 200
        assert config.max_sync_epochs == 4

    def test_dict_round_trip(self):
        config = LedgerConfig(genesis=7, epoch_length=60)
        assert LedgerConfig.from_dict(config.to_dict()) == config


class TestDistributorConfig:
    """Test distributor parameter validation."""

    def test_defaults_disable_reclaim(self):
        config = DistributorConfig()
        assert config.expiration_epochs == 0
        assert config.reclaim_recipient is None

    def test_bounty_bounds(self):
        DistributorConfig(reclaim_bounty_bps=BPS)
        with pytest.raises(ValueError):
            DistributorConfig(reclaim_bounty_bps=BPS + 1)
        with pytest.raises(ValueError):
            DistributorConfig(report_bounty_bps=-1)

    def test_dict_round_trip(self):
        config = DistributorConfig(2, 100, "sink", 50, "fallback")
        assert DistributorConfig.from_dict(config.to_dict()) == config


# ============================================================================
# AUTHORITY TESTS
# ============================================================================

class TestAuthority:
    """Test the management capability."""

    def test_only_management_is_authorized(self):
        authority = Authority("management")
        authority.require("management")
        with pytest.raises(UnauthorizedError):
            authority.require("mallory")

    def test_blacklisted_management_is_refused(self):
        authority = Authority("management")
        authority.set_blacklisted("management", True, caller="management")
        assert authority.is_blacklisted("management")
        with pytest.raises(UnauthorizedError):
            authority.require("management")

    def test_blacklist_requires_management(self):
        authority = Authority("management")
        with pytest.raises(UnauthorizedError):
            authority.set_blacklisted("alice", True, caller="alice")

    def test_management_required(self):
        with pytest.raises(ValueError):
            Authority("")
