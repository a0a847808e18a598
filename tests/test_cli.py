"""
Tests for epochledger/cli.py and epochledger/simulation.py
"""

import json

import pytest
from click.testing import CliRunner

from epochledger.cli import main
from epochledger.config import EPOCH_LENGTH, LedgerConfig
from epochledger.simulation import ScenarioError, Simulation, run_scenario
from epochledger.storage import LedgerStore

from ledger_helpers import create_test_ledger


def create_test_scenario(**extra) -> dict:
    """Short epochs; 1400 for epoch 0 streamed to alice during epoch 1."""
    scenario = {
        "genesis": 0,
        "epoch_length": 100,
        "components": [{"name": "staking", "source": "balance"}],
        "steps": [
            {"at": 0, "action": "mint", "account": "treasury", "amount": 1400},
            {"action": "deposit_reward", "epoch": 0, "amount": 1400, "sender": "treasury"},
            {"action": "stake", "component": "staking", "account": "alice", "amount": 100},
            {"at": 150, "action": "sync"},
            {"at": 200, "action": "claim", "component": "staking", "account": "alice"},
        ],
    }
    scenario.update(extra)
    return scenario


# ============================================================================
# SIMULATION TESTS
# ============================================================================

class TestSimulation:
    """Test scenario replay."""

    def test_run_scenario(self):
        report = run_scenario(create_test_scenario())
        assert report["time"] == 200
        assert report["epoch"] == 2
        assert report["balances"]["alice"] == 1400
        assert report["claimable"] == {"staking": {"alice": 0}}
        assert report["events"][-1]["result"] == 1400

    def test_midway_claimable(self):
        scenario = create_test_scenario()
        scenario["steps"] = scenario["steps"][:4]
        report = run_scenario(scenario)
        assert report["claimable"]["staking"]["alice"] == 700

    def test_overrides(self):
        report = run_scenario(create_test_scenario(), max_sync_epochs=1)
        assert report["metrics"]["aggregator"]["last_epoch"] == 2

    def test_ramped_component(self):
        sim = Simulation(LedgerConfig(genesis=0, epoch_length=100))
        distributor = sim.add_component({"name": "ramped", "source": "ramped", "params": {"ramp_length": 200}})
        sim.apply({"action": "stake", "component": "ramped", "account": "alice", "amount": 100})
        sim.apply({"at": 100})
        assert distributor.account_weight("alice") == 50

    def test_unknown_action(self):
        sim = Simulation(LedgerConfig(genesis=0, epoch_length=100))
        with pytest.raises(ScenarioError):
            sim.apply({"action": "fly"})

    def test_unknown_source_and_component(self):
        sim = Simulation(LedgerConfig(genesis=0, epoch_length=100))
        with pytest.raises(ScenarioError):
            sim.add_component({"name": "x", "source": "magic"})
        with pytest.raises(ScenarioError):
            sim.apply({"action": "claim", "component": "missing", "account": "alice"})


# ============================================================================
# CLI TESTS
# ============================================================================

class TestEpochCommand:
    """Test `epochledger epoch`."""

    def test_epoch_json(self):
        runner = CliRunner()
        at = 2 * EPOCH_LENGTH + 5
        result = runner.invoke(main, ["epoch", "--genesis", "0", "--at", str(at), "--json"])
        assert result.exit_code == 0
        info = json.loads(result.output)
        assert info["epoch"] == 2
        assert info["epoch_start"] == 2 * EPOCH_LENGTH
        assert info["elapsed"] == 5

    def test_epoch_text(self):
        runner = CliRunner()
        result = runner.invoke(main, ["epoch", "--genesis", "0", "--epoch-length", "100", "--at", "250"])
        assert result.exit_code == 0
        assert "Epoch 2: [200, 300) elapsed 50s" in result.output

    def test_before_genesis(self):
        runner = CliRunner()
        result = runner.invoke(main, ["epoch", "--genesis", "1000", "--at", "400"])
        assert result.exit_code == 0
        assert "Before genesis (600s to go); deposits go to epoch 0" in result.output

    def test_config_file(self, tmp_path):
        path = tmp_path / "ledger.json"
        path.write_text(json.dumps({"genesis": 0, "epoch_length": 100}))
        runner = CliRunner()
        result = runner.invoke(main, ["--config", str(path), "epoch", "--at", "250", "--json"])
        assert result.exit_code == 0
        assert json.loads(result.output)["epoch"] == 2


class TestSimulateCommand:
    """Test `epochledger simulate`."""

    def test_simulate_text(self, tmp_path):
        path = tmp_path / "scenario.json"
        path.write_text(json.dumps(create_test_scenario()))
        result = CliRunner().invoke(main, ["simulate", str(path)])
        assert result.exit_code == 0
        assert "Time 200 (epoch 2)" in result.output
        assert "alice: 1400" in result.output

    def test_simulate_json(self, tmp_path):
        path = tmp_path / "scenario.json"
        path.write_text(json.dumps(create_test_scenario()))
        result = CliRunner().invoke(main, ["simulate", str(path), "--json"])
        assert result.exit_code == 0
        assert json.loads(result.output)["balances"]["alice"] == 1400

    def test_simulate_uses_config_file(self, tmp_path):
        scenario = create_test_scenario()
        del scenario["epoch_length"]
        path = tmp_path / "scenario.json"
        path.write_text(json.dumps(scenario))
        config = tmp_path / "ledger.json"
        config.write_text(json.dumps({"epoch_length": 100}))

        result = CliRunner().invoke(main, ["--config", str(config), "simulate", str(path), "--json"])
        assert result.exit_code == 0
        report = json.loads(result.output)
        assert report["epoch"] == 2
        assert report["balances"]["alice"] == 1400

    def test_simulate_uses_environment(self, tmp_path):
        scenario = create_test_scenario()
        del scenario["epoch_length"]
        path = tmp_path / "scenario.json"
        path.write_text(json.dumps(scenario))

        result = CliRunner(env={"EPOCHLEDGER_EPOCH_LENGTH": "100"}).invoke(main, ["simulate", str(path), "--json"])
        assert result.exit_code == 0
        assert json.loads(result.output)["epoch"] == 2

    def test_scenario_overrides_config_file(self, tmp_path):
        path = tmp_path / "scenario.json"
        path.write_text(json.dumps(create_test_scenario()))
        config = tmp_path / "ledger.json"
        config.write_text(json.dumps({"epoch_length": 50}))

        result = CliRunner().invoke(main, ["--config", str(config), "simulate", str(path), "--json"])
        assert result.exit_code == 0
        assert json.loads(result.output)["epoch"] == 2

    def test_simulate_reports_ledger_errors(self, tmp_path):
        scenario = create_test_scenario()
        scenario["steps"].append({"action": "unstake", "component": "staking", "account": "alice", "amount": 101})
        path = tmp_path / "scenario.json"
        path.write_text(json.dumps(scenario))
        result = CliRunner().invoke(main, ["simulate", str(path)])
        assert result.exit_code == 1
        assert "ArithmeticStateError" in result.output


class TestInspectCommand:
    """Test `epochledger inspect`."""

    def test_inspect_snapshot(self, tmp_path):
        ledger = create_test_ledger()
        path = tmp_path / "ledger.json"
        LedgerStore(path).save({"asset": ledger.asset, "aggregator": ledger.aggregator})

        result = CliRunner().invoke(main, ["inspect", str(path)])
        assert result.exit_code == 0
        assert "Snapshot v1" in result.output
        assert "aggregator:" in result.output
        assert "registry" in result.output
