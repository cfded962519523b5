import logging

import numpy as np
import pytest

from dpnn import IntegrityGuard, NetworkStats
from dpnn.integrity import BIAS_CAP, WEIGHT_CAP
from dpnn.layer import NEUTRAL_CONFIDENCE
from helpers import STATE


def test_fresh_network_is_clean(network):
    network.forward(STATE)
    report = network.verify_integrity()
    assert report.clean
    assert report.issues == []
    assert network.stats.integrity_repairs == 0


def test_nan_weight_is_replaced(network, caplog):
    network.connections[4].weights[2, 3] = np.nan
    network.connections[4].confidence[2, 3] = 0.9

    with caplog.at_level(logging.WARNING, logger="dpnn.integrity"):
        report = network.verify_integrity()

    assert not report.clean
    assert "NaN/Infinity weight" in report.issues[0]
    assert "fixed" in caplog.text
    assert np.isfinite(network.connections[4].weights[2, 3])
    assert abs(network.connections[4].weights[2, 3]) <= 1.0
    assert network.connections[4].confidence[2, 3] == NEUTRAL_CONFIDENCE
    assert network.stats.integrity_repairs == 1


def test_non_finite_biases_and_values_are_zeroed(network):
    network.forward(STATE)
    network.connections[2].biases[5] = np.inf
    network.layers[3].values[1] = np.nan
    network.layers[3].active[1] = True
    network.layers[6].node_confidence[0] = -np.inf

    report = network.verify_integrity()

    assert len(report.issues) == 3
    assert network.connections[2].biases[5] == 0.0
    assert network.layers[3].values[1] == 0.0
    assert not network.layers[3].active[1]
    assert network.layers[6].node_confidence[0] == NEUTRAL_CONFIDENCE


def test_runaway_parameters_are_capped(network):
    network.connections[0].weights[0, 0] = 50.0
    network.connections[7].weights[3, 1] = -12.0
    network.connections[1].biases[2] = 9.0
    network.connections[8].biases[0] = -6.0

    report = network.verify_integrity()

    assert len(report.issues) == 4
    assert network.connections[0].weights[0, 0] == WEIGHT_CAP
    assert network.connections[7].weights[3, 1] == -WEIGHT_CAP
    assert network.connections[1].biases[2] == BIAS_CAP
    assert network.connections[8].biases[0] == -BIAS_CAP


def test_values_inside_the_limits_are_kept(network):
    network.connections[0].weights[0, 0] = 9.5
    network.connections[1].biases[2] = -4.5
    assert network.verify_integrity().clean
    assert network.connections[0].weights[0, 0] == 9.5


def test_nan_confidence_resets_to_neutral(network):
    network.connections[5].confidence[0, 0] = np.nan
    report = IntegrityGuard().verify(network)
    assert len(report.issues) == 1
    assert network.connections[5].confidence[0, 0] == NEUTRAL_CONFIDENCE


def test_training_runs_the_guard(network):
    network.forward(STATE)
    network.connections[3].weights[0, 0] = 40.0
    network.train(0.5)
    assert np.all(np.abs(network.connections[3].weights) <= 10.0)
    assert network.stats.integrity_repairs >= 1


class TestNetworkStats:

    def test_average_reward(self):
        stats = NetworkStats()
        assert stats.average_reward == 0.0
        stats.record_reward(1.0)
        stats.record_reward(-0.5)
        assert stats.average_reward == pytest.approx(0.25)

    def test_round_trip_through_dict(self):
        stats = NetworkStats(training_iterations=4, path_deletions=2, last_error=0.3)
        stats.activation_function_counts['tanh'] = 3
        restored = NetworkStats.from_dict(stats.to_dict())
        assert restored == stats

    def test_counts_hidden_nonlinearities(self, network):
        counts = network.stats.count_activation_functions(network.layers)
        assert counts['leakyrelu'] == sum(network.layer_sizes[1:-1])
        assert sum(counts.values()) == 112
