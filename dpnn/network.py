import logging
import numbers
import numpy as np
from typing import Dict, List, Optional, Tuple
from .activations import Activation
from .errors import SnapshotError
from .forward import ForwardEngine, Path
from .integrity import IntegrityGuard, IntegrityReport, NetworkStats
from .layer import Layer
from .movement import MoveEvaluation, MovementEvaluator, ReinforcementResult, reinforce_confidence
from .plasticity import PlasticityManager, StructuralChange, activation_density
from .topology import Connection, build_topology
from .trainer import ConfidenceTrainer, LearningParameters, TARGET_LEARNING_RATE_BOOST

logger = logging.getLogger(__name__)


SNAPSHOT_VERSION = 1


class DiamondNetwork:
    """
    Online learner with a fixed expand / fully-connect / contract topology.

    Features:
    - Stage-dependent routing recorded as per-tick paths
    - Path-restricted backpropagation with confidence-scaled learning rates
    - Pruning and growth of central connections driven by activation density
    - Nonlinearity mutation and path deletion driven by reward history
    - Integrity scans that repair non-finite or runaway state

    One decision tick is forward -> train (target or reward) -> plasticity ->
    integrity, see `tick`.
    """

    def __init__(self,
                 input_size: int = 4,
                 output_size: int = 4,
                 hidden_layers: Optional[List[int]] = None,
                 seed: Optional[int] = None,
                 rng: Optional[np.random.Generator] = None,
                 learning_params: Optional[LearningParameters] = None):
        """
        Initialize the network.

        Args:
            input_size: Width of the state vector
            output_size: Number of action scores
            hidden_layers: Accepted for call compatibility; the hidden shape is fixed
            seed: Seed for the network's random generator
            rng: Generator to use instead of seeding a new one
            learning_params: Initial learning parameters
        """
        self.input_size = input_size
        self.output_size = output_size
        if hidden_layers:
            logger.debug("Ignoring hidden layer sizes %s; the diamond shape is fixed", hidden_layers)
        self.rng = rng if rng is not None else np.random.default_rng(seed)

        self.layers: List[Layer]
        self.connections: List[Connection]
        self.layers, self.connections, self.shape_repairs = build_topology(input_size, output_size, self.rng)

        self.params = learning_params if learning_params is not None else LearningParameters()
        self.stats = NetworkStats()

        # Components
        self.forward_engine = ForwardEngine()
        self.trainer = ConfidenceTrainer()
        self.plasticity = PlasticityManager()
        self.guard = IntegrityGuard()
        self.movement = MovementEvaluator()

        self._paths: List[Path] = []
        self.last_output = np.zeros(output_size)

    # ------------------------------------------------------------------
    # Forward / training
    # ------------------------------------------------------------------

    def forward(self, state) -> np.ndarray:
        """
        Propagate a state vector and record the paths that fired.

        Args:
            state: Vector of `input_size` floats; malformed input is normalized

        Returns:
            Raw output scores, one per action
        """
        output, self._paths = self.forward_engine.propagate(self.layers, self.connections, state)
        self.last_output = output
        return output.copy()

    def train(self, input_or_reward, target=None) -> float:
        """
        Dispatch a training call.

        A bare number is a reward for the last forward pass. Otherwise the
        input is propagated first; a numeric target is then treated as a
        reward and a vector target as the desired output.

        Returns:
            Mean absolute scaled error of the update
        """
        if isinstance(input_or_reward, numbers.Number) and target is None:
            return self.train_reward(float(input_or_reward))

        self.forward(input_or_reward)
        if isinstance(target, numbers.Number):
            return self.train_reward(float(target))
        return self.train_target(target, self.params.base_learning_rate * TARGET_LEARNING_RATE_BOOST)

    def train_target(self, target, learning_rate: Optional[float] = None) -> float:
        error = self.trainer.train_target(self, target, learning_rate)
        self.guard.verify(self)
        return error

    def train_reward(self, reward: float) -> float:
        error = self.trainer.train_reward(self, reward)
        self.guard.verify(self)
        return error

    def backpropagate(self, target, learning_rate: float = 0.01) -> float:
        return self.trainer.backpropagate(self, target, learning_rate)

    def evaluate_move(self, direction: str, goal, head) -> Tuple[MoveEvaluation, Optional[ReinforcementResult]]:
        """
        Score a move by distance change and run a confidence-only update on it.

        Returns:
            (evaluation, reinforcement result or None when the reward was 0)
        """
        evaluation = self.movement.evaluate(direction, goal, head)
        result = None
        if evaluation.reward != 0:
            result = reinforce_confidence(self, evaluation.reward, direction)
        return evaluation, result

    def reinforce(self, reward: float, direction: Optional[str] = None) -> ReinforcementResult:
        return reinforce_confidence(self, reward, direction)

    def adapt_structure(self) -> Optional[StructuralChange]:
        return self.plasticity.step(self)

    def verify_integrity(self) -> IntegrityReport:
        return self.guard.verify(self)

    def tick(self, state, reward: Optional[float] = None, target=None) -> np.ndarray:
        """
        One decision tick: forward, train, plasticity, integrity.

        The integrity scan runs once, after plasticity.

        Args:
            state: State vector
            reward: Scalar reward for this tick (ignored when a target is given)
            target: Full target vector

        Returns:
            Output scores computed by the forward pass
        """
        output = self.forward(state)
        if target is not None:
            self.trainer.train_target(self, target)
        elif reward is not None:
            self.trainer.train_reward(self, reward)
        self.adapt_structure()
        self.verify_integrity()
        return output

    def update_learning_params(self, **params):
        self.params.update(**params)

    def reset_episode(self):
        """Drop per-tick state after an episode restart; learned parameters stay."""
        for layer in self.layers:
            layer.reset_state()
        self._paths = []
        self.last_output = np.zeros(self.output_size)
        self.movement.reset()

    def clear_paths(self):
        self._paths = []

    # ------------------------------------------------------------------
    # Observability
    # ------------------------------------------------------------------

    @property
    def paths(self) -> Tuple[Path, ...]:
        return tuple(self._paths)

    @property
    def layer_types(self) -> List[str]:
        return [layer.stage.value for layer in self.layers]

    @property
    def layer_sizes(self) -> List[int]:
        return [layer.size for layer in self.layers]

    def activations(self) -> List[List[bool]]:
        return [layer.active.tolist() for layer in self.layers]

    def values(self) -> List[List[float]]:
        return [layer.values.tolist() for layer in self.layers]

    def get_density(self) -> float:
        return activation_density(self.layers)

    def get_network_stats(self) -> Dict:
        """Get comprehensive network statistics."""
        self.stats.count_activation_functions(self.layers)
        stats = self.stats.to_dict()
        stats.update({
            'avg_reward': self.stats.average_reward,
            'density': self.get_density(),
            'active_paths': len(self._paths),
            'pruning': self.plasticity.history.to_dict(),
            'layer_stats': [layer.get_layer_stats() for layer in self.layers],
        })
        return stats

    def print_network_summary(self):
        """Print a summary of the network structure and training state."""
        stats = self.get_network_stats()

        print("\n" + "="*60)
        print("DIAMOND NETWORK SUMMARY")
        print("="*60)
        print(f"Training Iterations: {stats['training_iterations']}")
        print(f"Last Error: {stats['last_error']:.4f}")
        print(f"Avg Reward: {stats['avg_reward']:.4f} over {stats['reward_count']} rewards")
        print(f"Density: {stats['density']*100:.1f}% ({stats['active_paths']} active paths)")
        print(f"Path Deletions: {stats['path_deletions']}, Node Mutations: {stats['node_mutations']}")
        print()

        print("Layer Details:")
        for i, layer_stat in enumerate(stats['layer_stats']):
            print(f"  Layer {i} ({layer_stat['stage']}): {layer_stat['active_nodes']}/{layer_stat['size']} active, "
                  f"avg confidence={layer_stat['avg_node_confidence']:.3f}")
        print()

        print("Activation Functions:")
        for name, count in stats['activation_function_counts'].items():
            print(f"  {name}: {count}")
        print("="*60 + "\n")

    # ------------------------------------------------------------------
    # Snapshots
    # ------------------------------------------------------------------

    def to_snapshot(self) -> Dict:
        """Serializable copy of everything needed to rebuild an equivalent network."""
        return {
            'format_version': SNAPSHOT_VERSION,
            'input_size': self.input_size,
            'output_size': self.output_size,
            'layer_sizes': self.layer_sizes,
            'weights': [c.weights.tolist() for c in self.connections],
            'biases': [c.biases.tolist() for c in self.connections],
            'connection_confidence': [c.confidence.tolist() for c in self.connections],
            'node_confidence': [layer.node_confidence.tolist() for layer in self.layers],
            'node_activations': [[kind.value for kind in layer.node_activations] for layer in self.layers],
            'learning_params': self.params.to_dict(),
            'stats': self.stats.to_dict(),
        }

    @classmethod
    def from_snapshot(cls, snapshot: Dict, seed: Optional[int] = None) -> 'DiamondNetwork':
        """
        Build a fresh diamond and assign a snapshot onto it.

        Raises:
            SnapshotError: If the snapshot is malformed or was taken from a different shape
        """
        try:
            version = snapshot.get('format_version')
            if version != SNAPSHOT_VERSION:
                raise SnapshotError(f"Unsupported snapshot format version {version!r}, expected {SNAPSHOT_VERSION}")
            network = cls(int(snapshot['input_size']), int(snapshot['output_size']), seed=seed)
            if list(snapshot['layer_sizes']) != network.layer_sizes:
                raise SnapshotError(f"Snapshot layer sizes {snapshot['layer_sizes']} "
                                    f"do not match {network.layer_sizes}")

            for connection, weights, biases, confidence in zip(network.connections,
                                                               _per_connection(snapshot, 'weights', network),
                                                               _per_connection(snapshot, 'biases', network),
                                                               _per_connection(snapshot, 'connection_confidence', network)):
                rows, cols = connection.weights.shape
                connection.weights = _array(weights, (rows, cols), 'weights', connection.index)
                connection.biases = _array(biases, (cols,), 'biases', connection.index)
                connection.confidence = _array(confidence, (rows, cols), 'connection_confidence', connection.index)

            node_confidence = snapshot.get('node_confidence')
            if node_confidence is not None:
                if len(node_confidence) != len(network.layers):
                    raise SnapshotError("Node confidence does not cover every layer")
                for layer, values in zip(network.layers, node_confidence):
                    layer.node_confidence = _array(values, (layer.size,), 'node_confidence', layer.stage.value)

            node_activations = snapshot.get('node_activations')
            if node_activations is not None:
                if len(node_activations) != len(network.layers):
                    raise SnapshotError("Node activations do not cover every layer")
                for layer, kinds in zip(network.layers, node_activations):
                    if len(kinds) != layer.size:
                        raise SnapshotError(f"Node activations for {layer.stage.value} layer have wrong length")
                    layer.node_activations = [Activation(kind) for kind in kinds]

            network.params.update(**snapshot.get('learning_params', {}))
            network.stats = NetworkStats.from_dict(snapshot.get('stats', {}))
        except SnapshotError:
            raise
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            raise SnapshotError(f"Malformed snapshot: {e}") from e
        return network

    def __repr__(self):
        return (f"DiamondNetwork(sizes={self.layer_sizes}, "
                f"iterations={self.stats.training_iterations}, paths={len(self._paths)})")


def _per_connection(snapshot: Dict, key: str, network: DiamondNetwork) -> list:
    values = snapshot[key]
    if len(values) != len(network.connections):
        raise SnapshotError(f"Snapshot has {len(values)} {key} entries, expected {len(network.connections)}")
    return values


def _array(values, shape: Tuple[int, ...], name: str, where) -> np.ndarray:
    array = np.asarray(values, dtype=float)
    if array.shape != shape:
        raise SnapshotError(f"Snapshot {name} at {where} has shape {array.shape}, expected {shape}")
    return array.copy()
