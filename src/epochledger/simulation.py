"""
epochledger/simulation.py

Replay a scripted scenario against an in-memory ledger.

A scenario is a JSON document:

    {
        "genesis": 0,
        "epoch_length": 1209600,
        "components": [
            {"name": "staking", "source": "balance", "numerator": 1, "denominator": 1}
        ],
        "steps": [
            {"at": 0, "action": "mint", "account": "alice", "amount": 1400},
            {"action": "deposit_reward", "epoch": 0, "amount": 1400, "sender": "alice"},
            {"action": "stake", "component": "staking", "account": "bob", "amount": 100},
            {"advance": 1814400, "action": "claim", "component": "staking", "account": "bob"}
        ]
    }

Each step may move time with "at" (absolute) or "advance" (relative)
before its action runs. The simulation itself is management and the only
depositor of every component.
"""

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from .assets import InMemoryAssetLedger
from .auth import Authority
from .config import LedgerConfig
from .distributor.aggregator import EpochAggregator
from .distributor.stream import ComponentDistributor
from .epoch import EpochClock, ManualTime
from .journal import Journal
from .metrics import LedgerMetricsCollector
from .sources import SOURCES
from .sources.base import WeightSource

logger = logging.getLogger("epochledger.simulation")

MANAGEMENT = "management"
AGGREGATOR = "aggregator"


class ScenarioError(ValueError):
    """Malformed scenario document."""
    pass


class Simulation:
    """In-memory ledger driven by scenario steps."""

    def __init__(self, config: LedgerConfig, start: Optional[int] = None):
        self.config = config
        self.time = ManualTime(config.genesis if start is None else start)
        self.clock = EpochClock(config.genesis, config.epoch_length, time_source=self.time)
        self.journal = Journal()
        self.authority = Authority(MANAGEMENT)
        self.asset = InMemoryAssetLedger(journal=self.journal)
        self.aggregator = EpochAggregator(
            AGGREGATOR, self.clock, self.asset, self.authority,
            max_sync_epochs=config.max_sync_epochs,
            max_components=config.max_components,
            journal=self.journal,
        )
        self.distributors: Dict[str, ComponentDistributor] = {}
        self.metrics = LedgerMetricsCollector(self.aggregator)
        self.events: List[Dict[str, Any]] = []

    # ========== Setup ==========

    def _build_source(self, kind: str, params: Dict[str, Any]) -> WeightSource:
        if kind not in SOURCES:
            raise ScenarioError(f"Unknown weight source {kind!r}; choose from {sorted(SOURCES)}")
        return SOURCES[kind](self.clock, **params)

    def add_component(self, entry: Dict[str, Any]) -> ComponentDistributor:
        name = entry.get("name")
        if not name:
            raise ScenarioError("Component needs a name")
        source = self._build_source(entry.get("source", "balance"), entry.get("params", {}))
        distributor = ComponentDistributor(
            name, self.clock, self.asset, source, self.authority,
            upstream=self.aggregator,
            max_sync_epochs=self.config.max_sync_epochs,
            journal=self.journal,
        )
        distributor.set_depositor(MANAGEMENT, True, caller=MANAGEMENT)
        self.aggregator.add_component(
            distributor,
            numerator=int(entry.get("numerator", 1)),
            denominator=int(entry.get("denominator", 1)),
            caller=MANAGEMENT,
        )
        expiration = int(entry.get("expiration_epochs", 0))
        if expiration:
            distributor.set_expiration(
                expiration, int(entry.get("reclaim_bounty_bps", 0)),
                entry.get("reclaim_recipient", MANAGEMENT), caller=MANAGEMENT,
            )
        self.distributors[name] = distributor
        self.metrics.add_distributor(distributor)
        return distributor

    # ========== Steps ==========

    def _component(self, step: Dict[str, Any]) -> ComponentDistributor:
        name = step.get("component")
        if name not in self.distributors:
            raise ScenarioError(f"Unknown component {name!r}")
        return self.distributors[name]

    def sync_all(self) -> None:
        while not self.aggregator.sync():
            pass
        for distributor in self.distributors.values():
            while not distributor.sync():
                pass

    def apply(self, step: Dict[str, Any]) -> Any:
        if "at" in step:
            self.time.set(int(step["at"]))
        if "advance" in step:
            self.time.advance(int(step["advance"]))

        action = step.get("action")
        params = step.get("params", {})
        if action is None:
            return None
        if action == "mint":
            return self.asset.mint(step["account"], int(step["amount"]))
        if action == "deposit_reward":
            amount = int(step["amount"])
            self.asset.approve(step["sender"], AGGREGATOR, amount)
            return self.aggregator.deposit(int(step["epoch"]), amount, step["sender"])
        if action == "stake":
            return self._component(step).deposit(step["account"], int(step["amount"]), MANAGEMENT, **params)
        if action == "unstake":
            return self._component(step).withdraw(step["account"], int(step["amount"]), MANAGEMENT, **params)
        if action == "transfer":
            return self._component(step).transfer(
                step["sender"], step["receiver"], int(step["amount"]), MANAGEMENT, **params
            )
        if action == "claim":
            return self._component(step).claim(step["account"], caller=step["account"])
        if action == "reclaim":
            return self._component(step).reclaim(step["account"], caller=step.get("caller", MANAGEMENT))
        if action == "sync":
            return self.sync_all()
        raise ScenarioError(f"Unknown action {action!r}")

    def run(self, steps: List[Dict[str, Any]]) -> Dict[str, Any]:
        for i, step in enumerate(steps):
            result = self.apply(step)
            self.events.append({"step": i, "action": step.get("action"), "time": self.time(), "result": result})
            logger.debug(f"Step {i}: {step.get('action')} -> {result}")
        return self.report()

    # ========== Results ==========

    def report(self) -> Dict[str, Any]:
        claimable = {}
        if self.clock.has_started():
            claimable = {
                name: {a: d.claimable(a) for a in d.accounts()}
                for name, d in self.distributors.items()
            }
        return {
            "time": self.time(),
            "epoch": self.clock.first_open_epoch(),
            "balances": {a: self.asset.balance_of(a) for a in self.asset.holders()},
            "claimable": claimable,
            "events": self.events,
            "metrics": self.metrics.get_metrics_dict(),
        }


def load_scenario(path: Union[str, Path]) -> Dict[str, Any]:
    with open(path, 'r') as f:
        return json.load(f)


def run_scenario(
    scenario: Dict[str, Any],
    base: Optional[LedgerConfig] = None,
    **overrides: Any,
) -> Dict[str, Any]:
    """
    Build a ledger for the scenario, replay its steps and report.

    Settings layer as base config < scenario file < explicit overrides.
    """
    data = (base if base is not None else LedgerConfig()).to_dict()
    data.update({k: v for k, v in scenario.items() if k in LedgerConfig.__dataclass_fields__})
    data.update({k: v for k, v in overrides.items() if v is not None})
    config = LedgerConfig.from_dict(data)
    sim = Simulation(config, start=scenario.get("start"))
    for entry in scenario.get("components", []):
        sim.add_component(entry)
    return sim.run(scenario.get("steps", []))
