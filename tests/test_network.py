import numpy as np
import pytest

from dpnn import DiamondNetwork, LearningParameters, Stage
from helpers import STATE


def test_layer_types_and_sizes(network):
    assert network.layer_types == ['input', 'expansion', 'expansion', 'central', 'central',
                                   'central', 'central', 'contraction', 'contraction', 'output']
    assert network.layer_sizes == [4, 8, 16, 16, 16, 16, 16, 16, 8, 4]
    assert network.layers[3].stage is Stage.CENTRAL


def test_same_seed_gives_same_outputs():
    a = DiamondNetwork(4, 4, seed=99)
    b = DiamondNetwork(4, 4, seed=99)
    for _ in range(3):
        assert np.array_equal(a.tick(STATE, reward=0.5), b.tick(STATE, reward=0.5))


def test_injected_generator_is_used():
    rng = np.random.default_rng(5)
    network = DiamondNetwork(4, 4, rng=rng)
    assert network.rng is rng


def test_learning_params_can_be_injected():
    params = LearningParameters(base_learning_rate=0.2)
    network = DiamondNetwork(4, 4, seed=0, learning_params=params)
    assert network.params.base_learning_rate == 0.2


# ============================================================================
# Training entry points
# ============================================================================

class TestTrainDispatch:

    def test_bare_number_is_a_reward(self, network):
        network.forward(STATE)
        network.train(0.5)
        assert network.stats.reward_count == 1
        assert network.stats.training_iterations == 1

    def test_state_and_vector_target(self, network):
        error = network.train(STATE, [1.0, 0.0, 0.0, 0.0])
        assert error > 0
        assert network.stats.reward_count == 0
        assert network.stats.training_iterations == 1
        assert network.paths

    def test_state_and_numeric_target_is_a_reward(self, network):
        network.train(STATE, -0.5)
        assert network.stats.total_reward == -0.5


def test_tick_runs_the_full_cycle(network):
    output = network.tick(STATE, reward=0.3)
    assert output.shape == (4,)
    assert np.all(np.isfinite(output))
    assert network.stats.training_iterations == 1
    assert network.stats.reward_count == 1
    assert network.plasticity.history.last_density > 0


def test_tick_prefers_target_over_reward(network):
    network.tick(STATE, reward=1.0, target=[0.0, 1.0, 0.0, 0.0])
    assert network.stats.reward_count == 0
    assert network.stats.training_iterations == 1


def test_tick_without_feedback_does_not_train(network):
    network.tick(STATE)
    assert network.stats.training_iterations == 0


@pytest.mark.parametrize("feedback", [{'reward': 0.5}, {'target': [1.0, 0.0, 0.0, 0.0]}])
def test_tick_scans_integrity_once_after_plasticity(network, monkeypatch, feedback):
    calls = []

    def recorded(name, method):
        def wrapper(*args, **kwargs):
            calls.append(name)
            return method(*args, **kwargs)
        return wrapper

    monkeypatch.setattr(network.guard, 'verify', recorded('verify', network.guard.verify))
    monkeypatch.setattr(network.plasticity, 'step', recorded('step', network.plasticity.step))

    network.tick(STATE, **feedback)

    assert calls == ['step', 'verify']


def test_long_run_stays_finite(network):
    rng = np.random.default_rng(0)
    for step in range(60):
        state = rng.uniform(-2, 2, size=4)
        reward = float(rng.uniform(-1, 1))
        output = network.tick(state, reward=reward)
        assert np.all(np.isfinite(output))
    for connection in network.connections:
        assert np.all(np.isfinite(connection.weights))
        assert np.all(np.abs(connection.weights) <= 10.0)
        assert np.all(np.abs(connection.biases) <= 5.0)


# ============================================================================
# Runtime configuration and episode control
# ============================================================================

def test_update_learning_params(network):
    network.update_learning_params(base_learning_rate=0.1, reward_scaling=None)
    assert network.params.base_learning_rate == 0.1
    assert network.params.reward_scaling == 2.0
    with pytest.raises(ValueError):
        network.update_learning_params(learning_rate=0.1)


def test_reset_episode_keeps_learned_state(network):
    network.forward(STATE)
    network.evaluate_move('up', goal=(0, 0), head=(3, 3))
    weights = [c.weights.copy() for c in network.connections]

    network.reset_episode()

    assert network.paths == ()
    assert not any(layer.active.any() for layer in network.layers)
    assert network.movement.last_distance is None
    for before, connection in zip(weights, network.connections):
        assert np.array_equal(before, connection.weights)


def test_network_stats_report(network):
    network.tick(STATE, reward=0.5)
    stats = network.get_network_stats()
    for key in ('training_iterations', 'last_error', 'avg_reward', 'density', 'active_paths',
                'path_deletions', 'node_mutations', 'pruning', 'layer_stats', 'activation_function_counts'):
        assert key in stats
    assert len(stats['layer_stats']) == 10
    assert stats['avg_reward'] == pytest.approx(0.5)


def test_print_summary(network, capsys):
    network.tick(STATE, reward=0.5)
    network.print_network_summary()
    out = capsys.readouterr().out
    assert "DIAMOND NETWORK SUMMARY" in out
    assert "Training Iterations: 1" in out


def test_observability_views(network):
    network.forward(STATE)
    assert len(network.activations()) == 10
    assert network.activations()[0] == [True, True, False, False]
    assert network.values()[0] == STATE
    assert 0.0 < network.get_density() <= 1.0
