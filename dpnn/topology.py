import logging
import numpy as np
from enum import Enum
from typing import List, Optional, Sequence, Tuple
from .layer import Layer, Stage, NEUTRAL_CONFIDENCE

logger = logging.getLogger(__name__)


# Fixed diamond: input -> 8 -> 16 | 16 x4 | 16 -> 8 -> output
EXPANSION_SIZES = (8, 16)
CENTRAL_SIZES = (16, 16, 16, 16)
CONTRACTION_SIZES = (16, 8)

WEIGHT_INIT_RANGE = 1.0
BIAS_INIT_RANGE = 0.25


class Routing(Enum):
    """How signal travels from one layer into the next."""
    BRIDGE = "bridge"      # index-aligned single weight across a stage boundary
    EXPAND = "expand"      # fan-out, sign picks one of two targets
    MESH = "mesh"          # every source to every target
    CONTRACT = "contract"  # pairwise fan-in with averaging


def random_weights(rng: np.random.Generator, rows: int, cols: int) -> np.ndarray:
    return rng.uniform(-WEIGHT_INIT_RANGE, WEIGHT_INIT_RANGE, size=(rows, cols))


def random_biases(rng: np.random.Generator, size: int) -> np.ndarray:
    return rng.uniform(-BIAS_INIT_RANGE, BIAS_INIT_RANGE, size=size)


class Connection:
    """
    Weights, biases and confidence between layer `index` and `index + 1`.

    Attributes:
        index: Source layer index
        source_size: Node count of the source layer
        dest_size: Node count of the destination layer
        routing: Routing rule applied by the forward and backward passes
        split: Mesh routing halves non index-aligned (secondary) pairs
        weights: Matrix shaped (source_size, dest_size)
        biases: Vector shaped (dest_size,)
        confidence: Matrix shaped like weights
        fan_in: Number of sources collapsing into each destination (contract routing)
    """

    def __init__(self,
                 index: int,
                 source_size: int,
                 dest_size: int,
                 routing: Routing,
                 rng: np.random.Generator,
                 split: bool = False):
        self.index = index
        self.source_size = source_size
        self.dest_size = dest_size
        self.routing = routing
        self.split = split

        self.weights = random_weights(rng, source_size, dest_size)
        self.biases = random_biases(rng, dest_size)
        self.confidence = np.full((source_size, dest_size), NEUTRAL_CONFIDENCE)

        self.fan_in = np.zeros(dest_size, dtype=int)
        if routing is Routing.CONTRACT:
            for i in range(source_size):
                target = i // 2
                if target < dest_size:
                    self.fan_in[target] += 1

    def target_index(self, source: int) -> int:
        """Destination used by single-target routings (bridge and contract)."""
        if self.routing is Routing.CONTRACT:
            return source // 2
        return source if source < self.dest_size else source % self.dest_size

    def nonzero_weight_count(self) -> int:
        return int(np.count_nonzero(self.weights))

    def __repr__(self):
        flag = ", split" if self.split else ""
        return f"Connection({self.index}: {self.source_size}->{self.dest_size}, {self.routing.value}{flag})"


def plan_stages(input_size: int, output_size: int) -> List[Tuple[Stage, int]]:
    """
    Derive the fixed stage sequence of the diamond.

    Only the outer widths come from the caller; the hidden shape never changes.

    Args:
        input_size: Width of the input layer
        output_size: Width of the output layer

    Returns:
        List of (stage, size) pairs from input to output
    """
    plan = [(Stage.INPUT, input_size)]
    plan += [(Stage.EXPANSION, size) for size in EXPANSION_SIZES]
    plan += [(Stage.CENTRAL, size) for size in CENTRAL_SIZES]
    plan += [(Stage.CONTRACTION, size) for size in CONTRACTION_SIZES]
    plan.append((Stage.OUTPUT, output_size))
    return plan


def derive_routing(stages: Sequence[Stage], index: int) -> Tuple[Routing, bool]:
    """
    Pick the routing rule for the connection from layer `index` to `index + 1`.

    A change of stage after the input is a bridge. Otherwise the destination
    stage decides; the layer feeding a bridge splits its mesh into primary and
    secondary pairs.

    Returns:
        (routing, split) pair
    """
    source, dest = stages[index], stages[index + 1]
    if source is not Stage.INPUT and source is not dest:
        return Routing.BRIDGE, False

    feeds_bridge = index + 2 < len(stages) and stages[index + 2] is not dest

    if dest is Stage.EXPANSION:
        return Routing.EXPAND, False
    if dest is Stage.CENTRAL:
        return Routing.MESH, feeds_bridge
    if dest is Stage.CONTRACTION:
        # The last contraction layer meshes into its bridge like the last central one
        if feeds_bridge:
            return Routing.MESH, True
        return Routing.CONTRACT, False
    return Routing.MESH, False


def build_layers(plan: Sequence[Tuple[Stage, int]]) -> List[Layer]:
    return [Layer(stage, size) for stage, size in plan]


def build_connections(layers: Sequence[Layer], rng: np.random.Generator) -> List[Connection]:
    """Allocate one connection per adjacent layer pair with randomized weights."""
    stages = [layer.stage for layer in layers]
    connections = []
    for index in range(len(layers) - 1):
        routing, split = derive_routing(stages, index)
        connections.append(Connection(
            index=index,
            source_size=layers[index].size,
            dest_size=layers[index + 1].size,
            routing=routing,
            rng=rng,
            split=split
        ))
    return connections


def validate_connections(layers: Sequence[Layer],
                         connections: Sequence[Connection],
                         rng: np.random.Generator) -> List[str]:
    """
    Check every matrix against its adjacent layer sizes and repair mismatches.

    Repairs reallocate the offending array with the right shape (random weights
    and biases, neutral confidence). Nothing here is fatal.

    Args:
        layers: Layers of the network
        connections: Connections to check, repaired in place
        rng: Generator for replacement values

    Returns:
        One message per repair, empty when every shape matched
    """
    repairs = []
    for connection in connections:
        l = connection.index
        rows = layers[l].size
        cols = layers[l + 1].size

        weights = np.asarray(connection.weights, dtype=float)
        if weights.ndim != 2 or weights.shape[0] != rows:
            got = weights.shape[0] if weights.ndim >= 1 else 0
            repairs.append(f"Weight matrix dimension mismatch at layer {l}: expected {rows} rows but got {got}")
            weights = random_weights(rng, rows, cols)
        elif weights.shape[1] != cols:
            repairs.append(f"Weight matrix column mismatch at layer {l}: expected {cols} but got {weights.shape[1]}")
            weights = random_weights(rng, rows, cols)
        connection.weights = weights

        biases = np.asarray(connection.biases, dtype=float)
        if biases.shape != (cols,):
            repairs.append(f"Bias dimension mismatch at layer {l}: expected {cols} but got {biases.size}")
            biases = random_biases(rng, cols)
        connection.biases = biases

        confidence = np.asarray(connection.confidence, dtype=float)
        if confidence.shape != (rows, cols):
            repairs.append(f"Confidence matrix mismatch at layer {l}: expected {(rows, cols)} but got {confidence.shape}")
            confidence = np.full((rows, cols), NEUTRAL_CONFIDENCE)
        connection.confidence = confidence

        connection.source_size = rows
        connection.dest_size = cols

    for message in repairs:
        logger.warning(message)
    return repairs


def build_topology(input_size: int,
                   output_size: int,
                   rng: Optional[np.random.Generator] = None) -> Tuple[List[Layer], List[Connection], List[str]]:
    """
    Build the diamond's layers and connections and validate their shapes.

    Returns:
        (layers, connections, repairs)
    """
    rng = rng if rng is not None else np.random.default_rng()
    layers = build_layers(plan_stages(input_size, output_size))
    connections = build_connections(layers, rng)
    repairs = validate_connections(layers, connections, rng)
    return layers, connections, repairs
