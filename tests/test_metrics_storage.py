"""
Tests for epochledger/metrics.py and epochledger/storage.py
"""

import json

import pytest

from epochledger.distributor.stream import ComponentDistributor
from epochledger.exceptions import InvalidStateError
from epochledger.metrics import LedgerMetricsCollector
from epochledger.sources import BalanceWeightSource
from epochledger.storage import SNAPSHOT_VERSION, LedgerStore

from ledger_helpers import (
    DEPOSITOR,
    GENESIS,
    L,
    create_test_distributor,
    create_test_ledger,
    fund_epoch,
)


def create_test_setup(start: int = GENESIS):
    ledger = create_test_ledger(start=start)
    staking = create_test_distributor(ledger)
    fund_epoch(ledger, 0, 1400)
    staking.deposit("alice", 100, caller=DEPOSITOR)
    return ledger, staking


# ============================================================================
# METRICS TESTS
# ============================================================================

class TestLedgerMetricsCollector:
    """Test Prometheus output."""

    def test_collect_reports_ledger_state(self):
        ledger, staking = create_test_setup()
        ledger.now.set(GENESIS + L)
        ledger.aggregator.sync()

        output = LedgerMetricsCollector(ledger.aggregator, [staking]).collect()
        assert "epochledger_current_epoch 1" in output
        assert "epochledger_last_finalized_epoch 1" in output
        assert "epochledger_deposited_total 1400" in output
        assert 'epochledger_component_weight{component="staking"} 100' in output
        assert 'epochledger_distributor_accounts{distributor="staking"} 1' in output
        assert "# TYPE epochledger_deposited_total counter" in output

    def test_help_emitted_once_per_family(self):
        ledger, staking = create_test_setup()
        other = create_test_distributor(ledger, "other")
        metrics = LedgerMetricsCollector(ledger.aggregator, [staking])
        metrics.add_distributor(other)

        output = metrics.collect()
        assert output.count("# HELP epochledger_distributor_accounts ") == 1
        assert 'epochledger_distributor_accounts{distributor="other"} 0' in output

    def test_metrics_dict(self):
        ledger, staking = create_test_setup()
        data = LedgerMetricsCollector(ledger.aggregator, [staking]).get_metrics_dict()
        assert data["current_epoch"] == 0
        assert data["aggregator"]["total_deposited"] == 1400
        assert data["distributors"]["staking"]["accounts"] == 1
        assert "uptime_seconds" in data


# ============================================================================
# STORAGE TESTS
# ============================================================================

class TestLedgerStore:
    """Test JSON snapshots."""

    def test_save_and_restore(self, tmp_path):
        """Test a restored ledger continues exactly like the saved one."""
        ledger, staking = create_test_setup()
        ledger.now.set(GENESIS + L + L // 2)
        staking.sync_rewards("alice")

        store = LedgerStore(tmp_path / "ledger.json")
        store.save(
            {"asset": ledger.asset, "aggregator": ledger.aggregator, "staking": staking},
            metadata={"note": "mid-epoch"},
        )
        assert store.exists()

        restored = create_test_ledger(start=GENESIS + L + L // 2)
        restored_staking = ComponentDistributor(
            "staking", restored.clock, restored.asset, BalanceWeightSource(restored.clock),
            restored.authority, upstream=restored.aggregator, journal=restored.journal,
        )
        metadata = store.load(
            {"asset": restored.asset, "aggregator": restored.aggregator, "staking": restored_staking}
        )
        restored.aggregator.attach_component(restored_staking)

        assert metadata == {"note": "mid-epoch"}
        assert restored_staking.state_to_dict() == staking.state_to_dict()
        assert restored.asset.balance_of("staking") == ledger.asset.balance_of("staking")

        ledger.now.set(GENESIS + 2 * L)
        restored.now.set(GENESIS + 2 * L)
        assert restored_staking.claim("alice", caller="alice") == 1400
        assert staking.claim("alice", caller="alice") == 1400

    def test_missing_participant(self, tmp_path):
        ledger, staking = create_test_setup()
        store = LedgerStore(tmp_path / "ledger.json")
        store.save({"asset": ledger.asset})
        with pytest.raises(InvalidStateError):
            store.load({"asset": ledger.asset, "staking": staking})

    def test_unsupported_version(self, tmp_path):
        path = tmp_path / "ledger.json"
        path.write_text(json.dumps({"version": SNAPSHOT_VERSION + 1, "participants": {}}))
        with pytest.raises(InvalidStateError):
            LedgerStore(path).read()

    def test_participants_must_share_journal(self, tmp_path):
        ledger, staking = create_test_setup()
        stray = create_test_ledger()
        assert stray.journal is not ledger.journal
        store = LedgerStore(tmp_path / "ledger.json")
        store.save({"asset": ledger.asset, "aggregator": stray.aggregator})
        with pytest.raises(InvalidStateError):
            store.load({"asset": ledger.asset, "aggregator": stray.aggregator})

    def test_corrupt_state_leaves_objects_untouched(self, tmp_path):
        ledger, staking = create_test_setup()
        path = tmp_path / "ledger.json"
        LedgerStore(path).save({"asset": ledger.asset, "staking": staking})

        document = json.loads(path.read_text())
        document["participants"]["staking"]["accounts"]["alice"]["state"] = "lots"
        path.write_text(json.dumps(document))

        before = ledger.asset.state_to_dict()
        with pytest.raises(InvalidStateError):
            LedgerStore(path).load({"asset": ledger.asset, "staking": staking})
        assert ledger.asset.state_to_dict() == before
        assert staking.get_account_state("alice") == 100
