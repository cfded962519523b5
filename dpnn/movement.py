import logging
from collections import deque
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple
from .activations import Activation
from .layer import NEUTRAL_CONFIDENCE

logger = logging.getLogger(__name__)


DIRECTIONS = ('up', 'right', 'down', 'left')
OPPOSITES = {'up': 'down', 'down': 'up', 'left': 'right', 'right': 'left'}

MIN_MOVE_REWARD = 0.01
MAX_MOVE_REWARD = 0.1
MOVE_REWARD_SCALE = 0.5
STREAK_LENGTH = 2
STREAK_MULTIPLIER = 2.0

DISTANCE_HISTORY = 20
DIRECTION_HISTORY = 10

MIN_CONFIDENCE_CHANGE = 0.001
PATH_REWARD_RATE = 0.1
NODE_REWARD_RATE = 0.05
DIRECTION_PENALTY_RATE = 0.2
DIRECTION_PENALTY_MIN_WEIGHT = 0.1
LOG_REWARD_THRESHOLD = 0.05


def _xy(point) -> Tuple[float, float]:
    if isinstance(point, Mapping):
        return float(point['x']), float(point['y'])
    if hasattr(point, 'x') and hasattr(point, 'y'):
        return float(point.x), float(point.y)
    x, y = point
    return float(x), float(y)


def manhattan_distance(a, b) -> float:
    ax, ay = _xy(a)
    bx, by = _xy(b)
    return abs(ax - bx) + abs(ay - by)


def choose_action(outputs: Sequence[float], current: Optional[str] = None) -> str:
    """
    Pick the direction with the highest score without reversing.

    Args:
        outputs: One score per direction, in DIRECTIONS order
        current: Direction currently travelled, if any

    Returns:
        Chosen direction name
    """
    ranked = sorted(range(len(DIRECTIONS)), key=lambda k: outputs[k], reverse=True)
    for k in ranked:
        if current is None or OPPOSITES[DIRECTIONS[k]] != current:
            return DIRECTIONS[k]
    return DIRECTIONS[ranked[0]]


@dataclass
class MoveEvaluation:
    reward: float
    distance: float
    getting_closer: bool
    consecutive_correct_moves: int


@dataclass
class ReinforcementResult:
    """Outcome of one confidence-only update pass."""
    reward: float
    nodes_updated: int = 0
    paths_updated: int = 0
    deleted_paths: List[Tuple[int, int, int]] = field(default_factory=list)
    mutated_nodes: List[Tuple[int, int]] = field(default_factory=list)


class MovementEvaluator:
    """
    Small shaping reward from the change in Manhattan distance to the goal.

    Keeps a short history of distances and of the directions that helped or
    hurt. The first move of an episode has nothing to compare against and
    earns 0.
    """

    def __init__(self):
        self.reset()

    def reset(self):
        self.last_direction: Optional[str] = None
        self.consecutive_correct_moves = 0
        self.distances = deque(maxlen=DISTANCE_HISTORY)
        self.last_distance: Optional[float] = None
        self.correct_directions = deque(maxlen=DIRECTION_HISTORY)
        self.wrong_directions = deque(maxlen=DIRECTION_HISTORY)

    def evaluate(self, direction: str, goal, head) -> MoveEvaluation:
        """
        Score the move that brought the agent's head to `head`.

        Args:
            direction: Direction just taken
            goal: Goal position as (x, y), mapping or object with x/y
            head: Current head position, same formats

        Returns:
            MoveEvaluation with the shaping reward
        """
        distance = manhattan_distance(head, goal)
        self.distances.append(distance)

        reward = 0.0
        getting_closer = False
        if self.last_distance is not None:
            if distance < self.last_distance:
                getting_closer = True
                improvement = (self.last_distance - distance) / self.last_distance
                reward = min(MAX_MOVE_REWARD, max(MIN_MOVE_REWARD, improvement * MOVE_REWARD_SCALE))
                self.correct_directions.append(direction)
                self.consecutive_correct_moves += 1
                if self.consecutive_correct_moves >= STREAK_LENGTH:
                    reward *= STREAK_MULTIPLIER
                    logger.debug("Double reward for %d consecutive good moves", self.consecutive_correct_moves)
            else:
                regression = (distance - self.last_distance) / distance if distance > 0 else 0.0
                reward = -min(MAX_MOVE_REWARD, max(MIN_MOVE_REWARD, regression * MOVE_REWARD_SCALE))
                self.wrong_directions.append(direction)
                self.consecutive_correct_moves = 0

        self.last_direction = direction
        self.last_distance = distance
        return MoveEvaluation(reward, distance, getting_closer, self.consecutive_correct_moves)

    def to_dict(self) -> Dict:
        return {
            'last_direction': self.last_direction,
            'consecutive_correct_moves': self.consecutive_correct_moves,
            'distances': list(self.distances),
            'correct_directions': list(self.correct_directions),
            'wrong_directions': list(self.wrong_directions),
        }


def _step(reward: float, rate: float) -> float:
    if reward > 0:
        return max(reward * rate, MIN_CONFIDENCE_CHANGE)
    return min(reward * rate, -MIN_CONFIDENCE_CHANGE)


def _mutate_node(network, l: int, i: int) -> Optional[Activation]:
    layer = network.layers[l]
    layer.node_confidence[i] = NEUTRAL_CONFIDENCE
    if not layer.is_hidden:
        return None
    current = layer.node_activations[i]
    choices = [kind for kind in Activation if kind is not current]
    new_kind = choices[network.rng.integers(len(choices))]
    layer.set_activation(i, new_kind)
    logger.info("Node mutation at layer %d, index %d: %s -> %s", l, i, current.value, new_kind.value)
    return new_kind


def reinforce_confidence(network, reward: float, direction: Optional[str] = None) -> ReinforcementResult:
    """
    Confidence-only update of everything that fired on the last forward pass.

    Positive rewards raise confidence with diminishing returns up to 1.0.
    Other rewards lower it with no floor: a path that drops below 0 is
    deleted, a hidden node that drops below 0 gets a different nonlinearity.
    Weights are never trained here.

    Args:
        network: Network after a forward pass
        reward: Shaping reward
        direction: Direction just taken; on a penalty its output node is hit harder

    Returns:
        ReinforcementResult describing deletions and mutations
    """
    result = ReinforcementResult(reward=reward)
    fired: Dict[Tuple[int, int], None] = {}

    path_step = _step(reward, PATH_REWARD_RATE)
    for path in network.paths:
        fired[(path.layer, path.source)] = None
        fired[(path.layer + 1, path.target)] = None

        connection = network.connections[path.layer]
        i, j = path.source, path.target
        current = connection.confidence[i, j]
        if reward > 0:
            connection.confidence[i, j] = min(1.0, current + path_step * (1.0 - current))
        else:
            connection.confidence[i, j] = current + path_step
            if connection.confidence[i, j] < 0:
                result.deleted_paths.append(path.key)
        result.paths_updated += 1

    for l, i, j in result.deleted_paths:
        logger.info("Deleting path at layer %d from node %d to node %d due to negative confidence", l, i, j)
        network.connections[l].weights[i, j] = 0.0
        network.connections[l].confidence[i, j] = 0.0

    node_step = _step(reward, NODE_REWARD_RATE)
    for l, i in fired:
        layer = network.layers[l]
        current = layer.node_confidence[i]
        if reward > 0:
            layer.node_confidence[i] = min(1.0, current + node_step * (1.0 - current))
        else:
            layer.node_confidence[i] = current + node_step
            if layer.node_confidence[i] < 0:
                result.mutated_nodes.append((l, i))
    result.nodes_updated = len(fired)

    mutations = 0
    for l, i in result.mutated_nodes:
        if _mutate_node(network, l, i) is not None:
            mutations += 1

    if reward < 0 and direction in DIRECTIONS:
        result.deleted_paths.extend(_penalize_direction(network, reward, DIRECTIONS.index(direction)))

    if abs(reward) > LOG_REWARD_THRESHOLD:
        logger.debug("Updated %d node confidences and %d path confidences with reward %.4f",
                     result.nodes_updated, result.paths_updated, reward)

    stats = network.stats
    stats.training_iterations += 1
    stats.path_deletions += len(result.deleted_paths)
    stats.node_mutations += mutations
    return result


def _penalize_direction(network, reward: float, output_index: int) -> List[Tuple[int, int, int]]:
    """Extra confidence penalty on connections into the output that chose the bad move."""
    connection = network.connections[-1]
    output_layer = network.layers[-1]
    if output_index >= connection.dest_size:
        return []

    penalty = min(-MIN_CONFIDENCE_CHANGE * 2, -abs(reward) * DIRECTION_PENALTY_RATE)
    deleted = []
    for i in range(connection.source_size):
        if abs(connection.weights[i, output_index]) <= DIRECTION_PENALTY_MIN_WEIGHT:
            continue
        connection.confidence[i, output_index] += penalty
        if connection.confidence[i, output_index] < 0:
            logger.info("Deleting output path from node %d to output %d due to negative confidence", i, output_index)
            connection.weights[i, output_index] = 0.0
            connection.confidence[i, output_index] = 0.0
            deleted.append((connection.index, i, output_index))

        # The output node takes half of the connection penalty
        output_layer.node_confidence[output_index] += penalty / 2
        if output_layer.node_confidence[output_index] < 0:
            output_layer.node_confidence[output_index] = NEUTRAL_CONFIDENCE
    return deleted
