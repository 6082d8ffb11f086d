"""Link evaluation by the drift-plus-penalty rule over CPU virtual queues."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Sequence

from linksched.records import NetState, NodeState


def _rank_fraction(value: float, population: Sequence[float]) -> float:
    """Share of the other entries in ``population`` lying strictly below ``value``."""
    below = sum(1 for item in population if item < value)
    return below / (len(population) - 1)


def _normalize(
    value: float, threshold: float, above: Sequence[float], below: Sequence[float]
) -> float:
    if value > threshold:
        return _rank_fraction(value, above) if len(above) > 1 else 0.0
    return -(1 - _rank_fraction(value, below)) if len(below) > 1 else 0.0


@dataclass
class SystemParams:
    threshold_cpu_mean: float
    threshold_cpu_var: float
    weight: float

    def normalize(self, node: NodeState, net: NetState) -> tuple[float, float]:
        """Map a node's CPU mean and variance onto [-1, 1] by rank among all nodes."""
        mean_norm = _normalize(
            node.cpu_mean,
            self.threshold_cpu_mean,
            net.above_threshold_cpu_means,
            net.below_threshold_cpu_means,
        )
        var_norm = _normalize(
            node.cpu_var,
            self.threshold_cpu_var,
            net.above_threshold_cpu_vars,
            net.below_threshold_cpu_vars,
        )
        return mean_norm, var_norm


@dataclass
class Evaluation:
    delay: float
    normal_cpu_mean: float
    normal_cpu_var: float
    q_mean: float
    q_var: float
    params: SystemParams
    state: NetState = field(default_factory=NetState)

    def update_q_mean(self) -> float:
        return max(self.q_mean + self.normal_cpu_mean, 0.0)

    def update_q_var(self) -> float:
        return max(self.q_var + self.normal_cpu_var, 0.0)

    def drift_plus_penalty(self) -> float:
        delay_part = self.params.weight * self.delay
        mean_part = self.q_mean * self.normal_cpu_mean
        var_part = self.q_var * self.normal_cpu_var
        return delay_part + mean_part + var_part