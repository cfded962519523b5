import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple
from .layer import Stage
from .topology import Connection, Routing

logger = logging.getLogger(__name__)


PRUNE_DENSITY = 0.30
GROW_DENSITY = 0.20

PRUNE_CONFIDENCE_CEILING = 0.85
PRUNE_MIN_WEIGHT = 0.1
PRUNED_CONFIDENCE = 0.1

BOOST_MIN_WEIGHT = 0.1
BOOST_FACTOR = 1.5
BOOST_CONFIDENCE_STEP = 0.1
BOOST_CONFIDENCE_CAP = 0.9
NEW_WEIGHT_MIN = 0.4
NEW_WEIGHT_SPAN = 0.8
NEW_CONFIDENCE = 0.7
ACTIVE_BIAS = 0.75


@dataclass
class StructuralChange:
    """One prune, boost or growth event."""
    kind: str
    layer: int
    source: int
    target: int
    weight: float
    confidence: float


@dataclass
class PruningHistory:
    pruned_connections: int = 0
    added_connections: int = 0
    boosted_connections: int = 0
    last_pruned: Optional[Tuple[int, int, int]] = None
    last_density: float = 0.0

    def to_dict(self) -> Dict:
        return {
            'pruned_connections': self.pruned_connections,
            'added_connections': self.added_connections,
            'boosted_connections': self.boosted_connections,
            'last_pruned': list(self.last_pruned) if self.last_pruned else None,
            'last_density': self.last_density,
        }


def activation_density(layers) -> float:
    """Fraction of all nodes, across every layer, that fired this tick."""
    total = sum(layer.size for layer in layers)
    if total == 0:
        return 0.0
    active = sum(layer.get_active_count() for layer in layers)
    return active / total


class PlasticityManager:
    """
    Keeps activation density inside a hysteresis band by editing central connections.

    Above 30% it prunes the least trusted firing connection of one central
    layer; below 20% it boosts or creates one connection; in between it does
    nothing.
    """

    def __init__(self, prune_density: float = PRUNE_DENSITY, grow_density: float = GROW_DENSITY):
        self.prune_density = prune_density
        self.grow_density = grow_density
        self.history = PruningHistory()

    @staticmethod
    def central_connections(network) -> List[Connection]:
        """Mesh connections whose source layer belongs to the central stage."""
        return [c for c in network.connections
                if network.layers[c.index].stage is Stage.CENTRAL and c.routing is Routing.MESH]

    def step(self, network) -> Optional[StructuralChange]:
        """
        Run one plasticity pass after training.

        Returns:
            The structural change made, or None inside the band
        """
        density = activation_density(network.layers)
        change = None

        if density > self.prune_density:
            change = self.prune(network)
            if change is not None:
                self.history.pruned_connections += 1
                self.history.last_pruned = (change.layer, change.source, change.target)
        elif density < self.grow_density:
            change = self.grow(network)
            if change is not None:
                if change.kind == 'boosted':
                    self.history.boosted_connections += 1
                else:
                    self.history.added_connections += 1
                logger.info("Activation %.1f%% (was %.1f%%): %s connection in layer %d from %d to %d, weight %.2f",
                            density * 100, self.history.last_density * 100, change.kind,
                            change.layer, change.source, change.target, change.weight)

        if change is not None:
            # The edited weights must be rerouted on the next forward pass
            network.clear_paths()

        self.history.last_density = density
        return change

    def prune(self, network) -> Optional[StructuralChange]:
        """
        Zero the least-confident firing connection among the central layers.

        Connections at or above 0.85 confidence, or with |w| <= 0.1, are left alone.
        """
        best = None
        candidates = {c.index: c for c in self.central_connections(network)}
        for path in network.paths:
            connection = candidates.get(path.layer)
            if connection is None:
                continue
            i, j = path.source, path.target
            confidence = connection.confidence[i, j]
            if confidence >= PRUNE_CONFIDENCE_CEILING or abs(connection.weights[i, j]) <= PRUNE_MIN_WEIGHT:
                continue
            if best is None or confidence < best[0]:
                best = (confidence, connection, i, j)

        if best is None:
            return None

        confidence, connection, i, j = best
        weight = connection.weights[i, j]
        connection.weights[i, j] = 0.0
        connection.confidence[i, j] = PRUNED_CONFIDENCE
        logger.debug("Pruned layer %d connection %d->%d (weight %.3f, confidence %.3f)",
                     connection.index, i, j, weight, confidence)
        return StructuralChange('pruned', connection.index, i, j, 0.0, float(confidence))

    def grow(self, network) -> Optional[StructuralChange]:
        """
        Boost or create one connection in a randomly chosen central layer.

        Sources are drawn from active nodes and targets from inactive nodes
        75% of the time each, so the new connection is likely to fire.
        """
        connections = self.central_connections(network)
        if not connections:
            return None
        rng = network.rng
        connection = connections[rng.integers(len(connections))]
        source_layer = network.layers[connection.index]
        dest_layer = network.layers[connection.index + 1]

        active_sources = source_layer.active_indices()
        if active_sources and rng.random() < ACTIVE_BIAS:
            i = active_sources[rng.integers(len(active_sources))]
        else:
            i = int(rng.integers(connection.source_size))

        inactive_targets = dest_layer.inactive_indices()
        if inactive_targets and rng.random() < ACTIVE_BIAS:
            j = inactive_targets[rng.integers(len(inactive_targets))]
        else:
            j = int(rng.integers(connection.dest_size))

        weights = connection.weights
        if abs(weights[i, j]) > BOOST_MIN_WEIGHT:
            weights[i, j] *= BOOST_FACTOR
            connection.confidence[i, j] = min(connection.confidence[i, j] + BOOST_CONFIDENCE_STEP,
                                              BOOST_CONFIDENCE_CAP)
            return StructuralChange('boosted', connection.index, i, j,
                                    float(weights[i, j]), float(connection.confidence[i, j]))

        magnitude = rng.random() * NEW_WEIGHT_SPAN + NEW_WEIGHT_MIN
        weights[i, j] = magnitude if rng.random() < 0.5 else -magnitude
        connection.confidence[i, j] = NEW_CONFIDENCE
        return StructuralChange('new', connection.index, i, j, float(weights[i, j]), NEW_CONFIDENCE)
