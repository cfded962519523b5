import logging
import math
import numpy as np
from collections import defaultdict
from dataclasses import dataclass, fields, asdict
from typing import Dict, List, Sequence
from .activations import rectifier_gate
from .forward import Path

logger = logging.getLogger(__name__)


ERROR_EXPONENT = 1.5
TARGET_LEARNING_RATE_BOOST = 1.5

# Confidence bookkeeping for fired connections
SMALL_ERROR_THRESHOLD = 0.1
CONFIDENCE_STEP_UP = 0.01
CONFIDENCE_DECAY = 0.02
CONFIDENCE_FLOOR = 0.05
LEARNING_RATE_FLOOR = 0.2
MUTATION_STRENGTH = 8.0

# Synthetic targets for reward-only updates
POSITIVE_REWARD_TARGET = 0.7
INVERSION_THRESHOLD = 0.4


@dataclass
class LearningParameters:
    """Externally tunable knobs read on every training call."""
    base_learning_rate: float = 0.05
    confidence_modifier: float = 3.0
    mutation_threshold: float = 0.15
    mutation_rate: float = 0.25
    reward_scaling: float = 2.0

    def update(self, **params):
        """
        Set any subset of the parameters; None values are ignored.

        Raises:
            ValueError: On an unknown parameter name
        """
        known = {f.name for f in fields(self)}
        for name, value in params.items():
            if name not in known:
                raise ValueError(f"Unknown learning parameter: {name}")
            if value is not None:
                setattr(self, name, float(value))

    def to_dict(self) -> Dict[str, float]:
        return asdict(self)


def learning_rate_multiplier(confidence: float, confidence_modifier: float) -> float:
    """Less trusted connections adapt faster: (1 - c)^2 * modifier + 0.2."""
    return (1.0 - confidence) ** 2 * confidence_modifier + LEARNING_RATE_FLOOR


def scaled_errors(outputs: np.ndarray, target: np.ndarray) -> np.ndarray:
    """Super-linear error, sign(t - o) * |t - o|^1.5."""
    diff = target - outputs
    return np.sign(diff) * np.abs(diff) ** ERROR_EXPONENT


def reward_to_target(outputs: np.ndarray, reward: float) -> np.ndarray:
    """
    Turn a scalar reward into a target for the current output.

    Positive rewards lift every output to at least 0.7; anything else inverts
    each output around 0.4.
    """
    if reward > 0:
        return np.maximum(outputs, POSITIVE_REWARD_TARGET)
    return np.where(outputs > INVERSION_THRESHOLD, 0.0, 1.0)


def coerce_target(target, size: int) -> np.ndarray:
    """Pad, truncate and sanitize a caller target to the output width."""
    if not isinstance(target, (list, tuple, np.ndarray)):
        return np.zeros(size)
    values = np.zeros(size)
    for i, value in enumerate(list(target)[:size]):
        try:
            number = float(value)
        except (TypeError, ValueError):
            number = 0.0
        values[i] = number if math.isfinite(number) else 0.0
    return values


def group_paths(paths: Sequence[Path]) -> Dict[int, List[Path]]:
    by_layer: Dict[int, List[Path]] = defaultdict(list)
    for path in paths:
        by_layer[path.layer].append(path)
    return by_layer


class ConfidenceTrainer:
    """
    Online trainer that only touches connections which fired on the last forward pass.

    Gradients follow the recorded paths backward, reusing the forward routing
    factors, and every weight step is scaled by how little the connection is
    trusted. Confidence itself moves with the observed gradient size.
    """

    def compute_deltas(self, network, errors: np.ndarray):
        """
        Propagate output errors back along the recorded paths.

        Args:
            network: Network whose last forward pass produced the paths
            errors: Scaled output errors

        Returns:
            (deltas per layer, weight gradient per path key)
        """
        layers = network.layers
        connections = network.connections
        by_layer = group_paths(network.paths)

        deltas = [np.zeros(layer.size) for layer in layers]
        deltas[-1] = errors.copy()

        for l in range(len(layers) - 2, 0, -1):
            layer = layers[l]
            weights = connections[l].weights
            outgoing: Dict[int, List[Path]] = defaultdict(list)
            for path in by_layer.get(l, []):
                outgoing[path.source].append(path)

            for i in layer.active_indices():
                node_delta = 0.0
                for path in outgoing.get(i, []):
                    node_delta += deltas[l + 1][path.target] * weights[i, path.target] * path.backward_factor
                deltas[l][i] = node_delta * rectifier_gate(layer.pre_activations[i])

        gradients = {}
        for path in network.paths:
            gradients[path.key] = deltas[path.layer + 1][path.target] * path.input_term
        return deltas, gradients

    def _apply_bias_updates(self, network, deltas, learning_rate: float):
        for connection in network.connections:
            dest = network.layers[connection.index + 1]
            for j in dest.active_indices():
                step = learning_rate * deltas[connection.index + 1][j]
                if math.isfinite(step):
                    connection.biases[j] += step

    def backpropagate(self, network, target, learning_rate: float = 0.01) -> float:
        """
        Plain path-restricted backpropagation, no confidence scaling or mutation.

        Returns:
            Mean absolute scaled error
        """
        outputs = network.layers[-1].values
        errors = scaled_errors(outputs, coerce_target(target, len(outputs)))
        deltas, gradients = self.compute_deltas(network, errors)

        for path in network.paths:
            step = learning_rate * gradients[path.key]
            if math.isfinite(step):
                network.connections[path.layer].weights[path.source, path.target] += step
        self._apply_bias_updates(network, deltas, learning_rate)

        return float(np.mean(np.abs(errors))) if len(errors) else 0.0

    def train_target(self, network, target, learning_rate: float = None) -> float:
        """
        Confidence-weighted update toward a full target vector.

        Args:
            network: Network after a forward pass
            target: Desired output vector
            learning_rate: Step size (defaults to the base learning rate)

        Returns:
            Mean absolute scaled error
        """
        params = network.params
        if learning_rate is None:
            learning_rate = params.base_learning_rate

        outputs = network.layers[-1].values
        errors = scaled_errors(outputs, coerce_target(target, len(outputs)))
        deltas, gradients = self.compute_deltas(network, errors)

        for path in network.paths:
            self._update_confidence(network.connections[path.layer], path, abs(gradients[path.key]))

        rng = network.rng
        mutated = 0
        for path in network.paths:
            connection = network.connections[path.layer]
            i, j = path.source, path.target
            confidence = connection.confidence[i, j]

            multiplier = learning_rate_multiplier(confidence, params.confidence_modifier)
            step = learning_rate * gradients[path.key] * multiplier
            if math.isfinite(step):
                connection.weights[i, j] += step

            if confidence < params.mutation_threshold and rng.random() < params.mutation_rate:
                strength = (params.mutation_threshold - confidence) * MUTATION_STRENGTH
                mutated_weight = connection.weights[i, j] + rng.uniform(-1.0, 1.0) * strength
                if math.isfinite(mutated_weight):
                    connection.weights[i, j] = mutated_weight
                    mutated += 1

        self._apply_bias_updates(network, deltas, learning_rate)

        stats = network.stats
        stats.training_iterations += 1
        stats.last_error = float(np.mean(np.abs(errors))) if len(errors) else 0.0
        stats.weight_mutations += mutated
        if mutated:
            logger.debug("Mutated %d low-confidence weights", mutated)
        return stats.last_error

    def train_reward(self, network, reward: float) -> float:
        """
        Reinforce or invert the current output from a scalar reward.

        The step size is |reward| * base learning rate * reward scaling.
        """
        params = network.params
        network.stats.record_reward(reward)
        target = reward_to_target(network.layers[-1].values, reward)
        rate = abs(reward) * params.base_learning_rate * params.reward_scaling
        return self.train_target(network, target, rate)

    @staticmethod
    def _update_confidence(connection, path: Path, error_magnitude: float):
        i, j = path.source, path.target
        current = connection.confidence[i, j]
        if error_magnitude < SMALL_ERROR_THRESHOLD:
            connection.confidence[i, j] = min(current + CONFIDENCE_STEP_UP, 1.0)
        else:
            connection.confidence[i, j] = max(current - CONFIDENCE_DECAY * error_magnitude, CONFIDENCE_FLOOR)
