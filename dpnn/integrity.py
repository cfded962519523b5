import logging
import math
import numpy as np
from collections.abc import Mapping
from dataclasses import dataclass, field, fields
from typing import Dict, List
from .activations import Activation
from .layer import NEUTRAL_CONFIDENCE
from .topology import random_weights

logger = logging.getLogger(__name__)


WEIGHT_LIMIT = 10.0
WEIGHT_CAP = 5.0
BIAS_LIMIT = 5.0
BIAS_CAP = 2.0


@dataclass
class NetworkStats:
    """Monotonically accumulating training counters."""
    training_iterations: int = 0
    last_error: float = 0.0
    total_reward: float = 0.0
    reward_count: int = 0
    path_deletions: int = 0
    node_mutations: int = 0
    weight_mutations: int = 0
    integrity_repairs: int = 0
    activation_function_counts: Dict[str, int] = field(
        default_factory=lambda: {kind.value: 0 for kind in Activation}
    )

    def record_reward(self, reward: float):
        self.total_reward += reward
        self.reward_count += 1

    @property
    def average_reward(self) -> float:
        if self.reward_count == 0:
            return 0.0
        return self.total_reward / self.reward_count

    def count_activation_functions(self, layers):
        """Recount nonlinearity usage over every hidden node."""
        counts = {kind.value: 0 for kind in Activation}
        for layer in layers:
            if not layer.is_hidden:
                continue
            for kind in layer.node_activations:
                counts[kind.value] += 1
        self.activation_function_counts = counts
        return counts

    def to_dict(self) -> Dict:
        return {
            'training_iterations': self.training_iterations,
            'last_error': self.last_error,
            'total_reward': self.total_reward,
            'reward_count': self.reward_count,
            'path_deletions': self.path_deletions,
            'node_mutations': self.node_mutations,
            'weight_mutations': self.weight_mutations,
            'integrity_repairs': self.integrity_repairs,
            'activation_function_counts': dict(self.activation_function_counts),
        }

    @classmethod
    def from_dict(cls, data: Dict) -> 'NetworkStats':
        """
        Rebuild counters from `to_dict` output.

        Raises:
            TypeError: If `data` or the activation counts are not mappings
        """
        if not isinstance(data, Mapping):
            raise TypeError(f"Stats must be a mapping, got {type(data).__name__}")
        stats = cls()
        names = {f.name for f in fields(cls)}
        for key, value in data.items():
            if key == 'activation_function_counts':
                if not isinstance(value, Mapping):
                    raise TypeError(f"Activation counts must be a mapping, got {type(value).__name__}")
                stats.activation_function_counts.update({k: int(v) for k, v in value.items()})
            elif key in names:
                setattr(stats, key, type(getattr(stats, key))(value))
        return stats


@dataclass
class IntegrityReport:
    """Repairs made by one integrity scan. Empty means the state was clean."""
    issues: List[str] = field(default_factory=list)

    @property
    def clean(self) -> bool:
        return not self.issues

    def add(self, message: str):
        self.issues.append(message)


class IntegrityGuard:
    """
    Scans all numeric state after an update and repairs what it finds.

    Non-finite node values and biases become 0, non-finite weights get a fresh
    random value (and their confidence resets), non-finite confidences reset to
    neutral. Runaway weights and biases are pulled back to fixed caps.
    """

    def verify(self, network) -> IntegrityReport:
        """
        Check and repair the network in place.

        Args:
            network: Network to scan

        Returns:
            IntegrityReport listing every repair
        """
        report = IntegrityReport()
        rng = network.rng

        for l, layer in enumerate(network.layers):
            for i in np.flatnonzero(~np.isfinite(layer.values)):
                report.add(f"NaN/Infinity found in layer {l}, node {i}")
                layer.values[i] = 0.0
                layer.active[i] = False
            for i in np.flatnonzero(~np.isfinite(layer.node_confidence)):
                report.add(f"NaN/Infinity node confidence found in layer {l}, node {i}")
                layer.node_confidence[i] = NEUTRAL_CONFIDENCE

        for connection in network.connections:
            l = connection.index
            weights = connection.weights

            for i, j in zip(*np.nonzero(~np.isfinite(weights))):
                report.add(f"NaN/Infinity weight found from layer {l}, node {i} to node {j}")
                weights[i, j] = random_weights(rng, 1, 1)[0, 0]
                connection.confidence[i, j] = NEUTRAL_CONFIDENCE

            for i, j in zip(*np.nonzero(np.abs(weights) > WEIGHT_LIMIT)):
                report.add(f"Extremely large weight in layer {l}, node {i} to {j}: {weights[i, j]:.3f}")
                weights[i, j] = math.copysign(WEIGHT_CAP, weights[i, j])

            biases = connection.biases
            for j in np.flatnonzero(~np.isfinite(biases)):
                report.add(f"NaN/Infinity bias found in layer {l}, node {j}")
                biases[j] = 0.0
                network.layers[l + 1].node_confidence[j] = NEUTRAL_CONFIDENCE
            for j in np.flatnonzero(np.abs(biases) > BIAS_LIMIT):
                report.add(f"Extremely large bias in layer {l}, node {j}: {biases[j]:.3f}")
                biases[j] = math.copysign(BIAS_CAP, biases[j])

            for i, j in zip(*np.nonzero(~np.isfinite(connection.confidence))):
                report.add(f"NaN/Infinity connection confidence in layer {l}, from {i} to {j}")
                connection.confidence[i, j] = NEUTRAL_CONFIDENCE

        for message in report.issues:
            logger.warning("%s - fixed", message)
        network.stats.integrity_repairs += len(report.issues)
        return report
