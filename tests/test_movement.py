import numpy as np
import pytest

from dpnn import DiamondNetwork, MovementEvaluator, choose_action
from dpnn.layer import NEUTRAL_CONFIDENCE
from dpnn.movement import manhattan_distance
from helpers import STATE, set_uniform


# ============================================================================
# Move scoring
# ============================================================================

def test_manhattan_distance_accepts_point_formats():
    assert manhattan_distance((0, 0), (3, 4)) == 7
    assert manhattan_distance({'x': 1, 'y': 1}, [4, 5]) == 7


class TestMovementEvaluator:

    def test_first_move_earns_nothing(self):
        evaluator = MovementEvaluator()
        evaluation = evaluator.evaluate('right', goal=(10, 0), head=(0, 0))
        assert evaluation.reward == 0.0
        assert evaluation.distance == 10

    def test_closer_moves_are_rewarded_and_streak_doubles(self):
        evaluator = MovementEvaluator()
        evaluator.evaluate('right', goal=(10, 0), head=(0, 0))

        first = evaluator.evaluate('right', goal=(10, 0), head=(2, 0))
        assert first.getting_closer
        assert first.reward == pytest.approx(0.1)
        assert first.consecutive_correct_moves == 1

        second = evaluator.evaluate('right', goal=(10, 0), head=(3, 0))
        assert second.reward == pytest.approx(0.125)
        assert second.consecutive_correct_moves == 2

    def test_moving_away_is_penalized(self):
        evaluator = MovementEvaluator()
        evaluator.evaluate('right', goal=(10, 0), head=(3, 0))
        evaluation = evaluator.evaluate('left', goal=(10, 0), head=(1, 0))
        assert not evaluation.getting_closer
        assert evaluation.reward == pytest.approx(-0.1)
        assert evaluation.consecutive_correct_moves == 0
        assert list(evaluator.wrong_directions) == ['left']

    def test_standing_still_costs_the_minimum(self):
        evaluator = MovementEvaluator()
        evaluator.evaluate('up', goal=(0, 0), head=(0, 5))
        evaluation = evaluator.evaluate('left', goal=(0, 0), head=(5, 0))
        assert evaluation.reward == pytest.approx(-0.01)

    def test_reaching_the_goal_without_improving(self):
        evaluator = MovementEvaluator()
        evaluator.evaluate('up', goal=(0, 0), head=(0, 0))
        evaluation = evaluator.evaluate('up', goal=(0, 0), head=(0, 0))
        assert evaluation.reward == pytest.approx(-0.01)

    def test_histories_are_bounded(self):
        evaluator = MovementEvaluator()
        for step in range(30):
            evaluator.evaluate('right', goal=(100, 0), head=(step, 0))
        assert len(evaluator.distances) == 20
        assert len(evaluator.correct_directions) == 10

    def test_reset_forgets_everything(self):
        evaluator = MovementEvaluator()
        evaluator.evaluate('right', goal=(10, 0), head=(0, 0))
        evaluator.evaluate('right', goal=(10, 0), head=(1, 0))
        evaluator.reset()
        assert evaluator.to_dict() == {
            'last_direction': None,
            'consecutive_correct_moves': 0,
            'distances': [],
            'correct_directions': [],
            'wrong_directions': [],
        }


@pytest.mark.parametrize("outputs, current, expected", [
    ([0.1, 0.9, 0.3, 0.2], None, 'right'),
    ([0.1, 0.9, 0.3, 0.2], 'up', 'right'),
    ([0.1, 0.9, 0.3, 0.2], 'left', 'down'),
    ([0.8, 0.1, 0.3, 0.2], 'down', 'down'),
])
def test_choose_action_never_reverses(outputs, current, expected):
    assert choose_action(outputs, current) == expected


# ============================================================================
# Confidence-only reinforcement
# ============================================================================

def test_positive_reinforcement_is_monotone_and_bounded(network):
    network.forward(STATE)
    weights = [c.weights.copy() for c in network.connections]

    previous = [network.connections[p.layer].confidence[p.source, p.target] for p in network.paths]
    for _ in range(40):
        network.reinforce(0.5)
        current = [network.connections[p.layer].confidence[p.source, p.target] for p in network.paths]
        assert all(b >= a for a, b in zip(previous, current))
        assert all(c <= 1.0 for c in current)
        previous = current

    for before, connection in zip(weights, network.connections):
        assert np.array_equal(before, connection.weights)
    for layer in network.layers:
        assert np.all(layer.node_confidence <= 1.0)


def test_tiny_rewards_still_move_confidence(network):
    network.forward(STATE)
    path = network.paths[0]
    network.reinforce(1e-6)
    assert network.connections[path.layer].confidence[path.source, path.target] > NEUTRAL_CONFIDENCE


def test_negative_reinforcement_deletes_paths(network):
    network.forward(STATE)
    path = next(p for p in network.paths if p.layer == 4)
    connection = network.connections[4]
    connection.confidence[path.source, path.target] = 0.05

    result = network.reinforce(-1.0)

    assert path.key in result.deleted_paths
    assert connection.weights[path.source, path.target] == 0.0
    assert connection.confidence[path.source, path.target] == 0.0
    assert network.stats.path_deletions == len(result.deleted_paths)


def test_negative_confidence_has_no_floor(network):
    network.forward(STATE)
    path = network.paths[0]
    network.reinforce(-1.0)
    confidence = network.connections[path.layer].confidence[path.source, path.target]
    assert confidence == pytest.approx(NEUTRAL_CONFIDENCE - 0.1)


def test_failing_hidden_node_gets_new_nonlinearity(network):
    network.forward(STATE)
    path = next(p for p in network.paths if p.layer == 4)
    layer = network.layers[4]
    old_kind = layer.node_activations[path.source]
    layer.node_confidence[path.source] = 0.01

    result = network.reinforce(-1.0)

    assert (4, path.source) in result.mutated_nodes
    assert layer.node_activations[path.source] is not old_kind
    assert layer.node_confidence[path.source] == NEUTRAL_CONFIDENCE
    assert network.stats.node_mutations == 1


def test_failing_output_node_only_resets_confidence(network):
    network.forward(STATE)
    output_layer = network.layers[-1]
    fired = output_layer.active_indices()[0]
    output_layer.node_confidence[fired] = 0.01

    result = network.reinforce(-1.0)

    assert (len(network.layers) - 1, fired) in result.mutated_nodes
    assert output_layer.node_confidence[fired] == NEUTRAL_CONFIDENCE
    assert network.stats.node_mutations == 0


def test_direction_penalty_hits_the_chosen_output():
    network = DiamondNetwork(4, 4, seed=21)
    set_uniform(network, 0.5)
    network.forward(STATE)
    connection = network.connections[-1]

    network.reinforce(-1.0, direction='right')

    # (0, 1) never fired through the bridge, (1, 1) did
    assert connection.confidence[0, 1] == pytest.approx(0.3)
    assert connection.confidence[1, 1] == pytest.approx(0.2)
    assert connection.confidence[0, 0] == pytest.approx(0.4)
    assert connection.confidence[2, 3] == pytest.approx(0.5)


def test_evaluate_move_reinforces_nonzero_rewards(network):
    network.forward(STATE)
    evaluation, result = network.evaluate_move('right', goal=(5, 0), head=(0, 0))
    assert evaluation.reward == 0.0
    assert result is None

    network.forward(STATE)
    evaluation, result = network.evaluate_move('right', goal=(5, 0), head=(1, 0))
    assert evaluation.reward > 0
    assert result is not None
    assert result.paths_updated == len(network.paths)
