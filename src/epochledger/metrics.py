"""
epochledger/metrics.py

Prometheus metrics collection for epochledger.

Exposes aggregator and distributor state (epochs, integrals, weights,
reward flows) in Prometheus text format.
"""

import time
import logging
from typing import Any, Dict, List, Optional

from .distributor.aggregator import EpochAggregator
from .distributor.stream import ComponentDistributor

logger = logging.getLogger("epochledger.metrics")


class LedgerMetricsCollector:
    """
    Prometheus metrics collector for a reward ledger.

    Usage:
        metrics = LedgerMetricsCollector(aggregator, [staking, locked])
        prometheus_output = metrics.collect()
    """

    # Metric definitions
    METRICS = {
        "epochledger_current_epoch": {
            "type": "gauge",
            "help": "Epoch index of the ledger clock",
        },
        "epochledger_last_finalized_epoch": {
            "type": "gauge",
            "help": "Number of epochs finalized by the aggregator",
        },
        "epochledger_reward_integral": {
            "type": "gauge",
            "help": "Cumulative reward per unit of weight (PRECISION scaled)",
        },
        "epochledger_components": {
            "type": "gauge",
            "help": "Number of registered components",
        },
        "epochledger_deposited_total": {
            "type": "counter",
            "help": "Total reward deposited into the aggregator",
        },
        "epochledger_pulled_total": {
            "type": "counter",
            "help": "Total reward pulled from the pull source",
        },
        "epochledger_component_claimed_total": {
            "type": "counter",
            "help": "Total reward claimed by components",
        },
        "epochledger_component_weight": {
            "type": "gauge",
            "help": "Scaled weight of a component in the last finalized epoch",
        },
        "epochledger_distributor_accounts": {
            "type": "gauge",
            "help": "Accounts known to a distributor",
        },
        "epochledger_distributor_total_weight": {
            "type": "gauge",
            "help": "Total weight of a distributor in the current epoch",
        },
        "epochledger_distributor_stream_reward": {
            "type": "gauge",
            "help": "Reward unlocking in the distributor's current epoch",
        },
        "epochledger_distributor_received_total": {
            "type": "counter",
            "help": "Total reward received from upstream",
        },
        "epochledger_distributor_claimed_total": {
            "type": "counter",
            "help": "Total reward claimed by accounts",
        },
        "epochledger_distributor_reclaimed_total": {
            "type": "counter",
            "help": "Total expired reward reclaimed",
        },
        "epochledger_distributor_reported_total": {
            "type": "counter",
            "help": "Total reward forwarded from reported positions",
        },
        "epochledger_uptime_seconds": {
            "type": "counter",
            "help": "Collector uptime in seconds",
        },
    }

    def __init__(
        self,
        aggregator: EpochAggregator,
        distributors: Optional[List[ComponentDistributor]] = None,
    ):
        """
        Initialize metrics collector.

        Args:
            aggregator: Aggregator to collect metrics from
            distributors: Component distributors to include
        """
        self.aggregator = aggregator
        self.distributors = list(distributors or [])
        self._start_time = time.time()

    def add_distributor(self, distributor: ComponentDistributor) -> None:
        self.distributors.append(distributor)

    def _current_epoch(self) -> int:
        return self.aggregator.clock.first_open_epoch()

    def collect(self) -> str:
        """
        Collect all metrics and return in Prometheus format.

        Returns:
            Prometheus-formatted metrics string
        """
        lines = []
        declared = set()

        def add_metric(name: str, value: float, labels: Dict[str, str] = None):
            # HELP and TYPE once per metric family
            if name not in declared:
                metric_def = self.METRICS.get(name, {})
                lines.append(f"# HELP {name} {metric_def.get('help', '')}")
                lines.append(f"# TYPE {name} {metric_def.get('type', 'gauge')}")
                declared.add(name)

            if labels:
                label_str = ",".join(f'{k}="{v}"' for k, v in labels.items())
                lines.append(f"{name}{{{label_str}}} {value}")
            else:
                lines.append(f"{name} {value}")

        agg = self.aggregator
        try:
            add_metric("epochledger_current_epoch", self._current_epoch())
            add_metric("epochledger_last_finalized_epoch", agg.last_epoch)
            add_metric("epochledger_reward_integral", agg.reward_integral)
            add_metric("epochledger_components", agg.num_components)

            stats = agg.get_stats()
            add_metric("epochledger_deposited_total", stats["total_deposited"])
            add_metric("epochledger_pulled_total", stats["total_pulled"])
            add_metric("epochledger_component_claimed_total", stats["total_claimed"])

            last = agg.last_epoch - 1
            for component_id in agg.components():
                add_metric(
                    "epochledger_component_weight",
                    agg.epoch_weight(component_id, last),
                    {"component": component_id},
                )

            for distributor in self.distributors:
                labels = {"distributor": distributor.address}
                d = distributor.get_stats()
                add_metric("epochledger_distributor_accounts", d["accounts"], labels)
                add_metric("epochledger_distributor_total_weight", distributor.total_weight(), labels)
                add_metric("epochledger_distributor_stream_reward", d["stream_reward"], labels)
                add_metric("epochledger_distributor_received_total", d["total_received"], labels)
                add_metric("epochledger_distributor_claimed_total", d["total_claimed"], labels)
                add_metric("epochledger_distributor_reclaimed_total", d["total_reclaimed"], labels)
                add_metric("epochledger_distributor_reported_total", d["total_reported"], labels)

            add_metric("epochledger_uptime_seconds", time.time() - self._start_time)

        except Exception as e:
            logger.error(f"Error collecting metrics: {e}")
            lines.append(f"# Error collecting metrics: {e}")

        return "\n".join(lines) + "\n"

    def get_metrics_dict(self) -> Dict[str, Any]:
        """
        Get metrics as a dictionary (for JSON output).

        Returns:
            Dictionary of metric values
        """
        return {
            "current_epoch": self._current_epoch(),
            "aggregator": self.aggregator.get_stats(),
            "distributors": {d.address: d.get_stats() for d in self.distributors},
            "uptime_seconds": time.time() - self._start_time,
        }
